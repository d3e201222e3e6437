from __future__ import annotations

import re

from dri.session.device import (
    DeviceFingerprinter,
    EnvironmentSignals,
    collect_environment_signals,
    format_device_id,
    rolling_hash,
)
from dri.session.storage import DEVICE_KEY, MemoryStorage, TwoTierSessionStore
from tests.fakes import SIGNALS


def _store() -> TwoTierSessionStore:
    return TwoTierSessionStore(MemoryStorage(), MemoryStorage())


def test_rolling_hash_matches_known_values() -> None:
    assert rolling_hash("") == 0
    assert rolling_hash("a") == 97
    assert rolling_hash("ab") == 3105
    assert rolling_hash("hello") == 99162322
    assert rolling_hash("polygenelubricants") == -2147483648


def test_format_device_id_uses_absolute_hash() -> None:
    assert format_device_id(-35, 36) == "dev_z_10"
    assert format_device_id(97, 0) == "dev_2p_0"


def test_device_id_is_created_once_and_persisted() -> None:
    store = _store()
    ticks = iter([1_700_000_000_000, 1_800_000_000_000])
    fingerprinter = DeviceFingerprinter(store, SIGNALS, clock_ms=lambda: next(ticks))

    first = fingerprinter.get_device_id()
    second = fingerprinter.get_device_id()

    assert first == second
    assert re.fullmatch(r"dev_[0-9a-z]+_[0-9a-z]+", first)
    assert store.durable_tier.get_item(DEVICE_KEY) == first


def test_device_id_depends_on_signals_and_timestamp() -> None:
    other_signals = EnvironmentSignals(
        screen="1280x720",
        color_depth=24,
        timezone="UTC",
        language="en-US",
        platform="Darwin",
        user_agent="pytest-agent",
    )

    first = DeviceFingerprinter(_store(), SIGNALS, clock_ms=lambda: 1).get_device_id()
    same = DeviceFingerprinter(_store(), SIGNALS, clock_ms=lambda: 1).get_device_id()
    other = DeviceFingerprinter(_store(), other_signals, clock_ms=lambda: 1).get_device_id()

    assert first == same
    assert first != other
    assert first.endswith("_1")


def test_device_info_reports_signals() -> None:
    info = DeviceFingerprinter(_store(), SIGNALS).device_info()

    assert info.user_agent == "pytest-agent"
    assert info.platform == "Linux"
    assert info.screen == "1920x1080"
    assert info.model_dump(by_alias=True)["userAgent"] == "pytest-agent"


def test_collect_environment_signals_reads_language(monkeypatch) -> None:
    monkeypatch.setenv("LANG", "pt_BR.UTF-8")

    signals = collect_environment_signals()

    assert signals.language == "pt-BR"
    assert signals.user_agent.startswith("dri-client python/")
