"""Stable pseudo-random device fingerprint for the local client profile."""

from __future__ import annotations

import locale
import logging
import os
import platform
import shutil
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from dri.auth.codes import now_millis, to_base36
from dri.auth.models import DeviceInfo
from dri.session.storage import TwoTierSessionStore

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnvironmentSignals:
    """Environment signals the fingerprint is derived from."""

    screen: str
    color_depth: int
    timezone: str
    language: str
    platform: str
    user_agent: str


def collect_environment_signals() -> EnvironmentSignals:
    """Read signals from the running interpreter and terminal."""
    size = shutil.get_terminal_size(fallback=(80, 24))
    tz_name = datetime.now().astimezone().tzname() or "UTC"
    language = (
        os.getenv("LANG", "").split(".", 1)[0]
        or (locale.getlocale()[0] or "")
        or "und"
    ).replace("_", "-")
    return EnvironmentSignals(
        screen=f"{size.columns}x{size.lines}",
        color_depth=24,
        timezone=tz_name,
        language=language,
        platform=platform.system() or "unknown",
        user_agent=f"dri-client python/{platform.python_version()} ({platform.platform()})",
    )


def rolling_hash(text: str) -> int:
    """Return the signed 32-bit ``h * 31 + unit`` hash over UTF-16 code units."""
    value = 0
    data = text.encode("utf-16-le")
    for index in range(0, len(data), 2):
        unit = data[index] | (data[index + 1] << 8)
        value = ((value << 5) - value + unit) & 0xFFFFFFFF
    if value & 0x80000000:
        value -= 0x100000000
    return value


def format_device_id(hash_value: int, timestamp_ms: int) -> str:
    return f"dev_{to_base36(abs(hash_value))}_{to_base36(timestamp_ms)}"


class DeviceFingerprinter:
    """Derive once, then serve the persisted device id from the durable tier."""

    def __init__(
        self,
        store: TwoTierSessionStore,
        signals: EnvironmentSignals | None = None,
        clock_ms: Callable[[], int] = now_millis,
    ) -> None:
        self._store = store
        self._signals = signals
        self._clock_ms = clock_ms

    @property
    def signals(self) -> EnvironmentSignals:
        if self._signals is None:
            self._signals = collect_environment_signals()
        return self._signals

    def get_device_id(self) -> str:
        """Return the persisted device id, creating it on first use."""
        device_id = self._store.get_device_id()
        if device_id:
            return device_id

        signals = self.signals
        timestamp = self._clock_ms()
        device_string = "|".join(
            [
                f"{signals.screen}x{signals.color_depth}",
                signals.timezone,
                signals.language,
                signals.platform,
                signals.user_agent,
                str(timestamp),
            ]
        )
        device_id = format_device_id(rolling_hash(device_string), timestamp)
        self._store.set_device_id(device_id)
        LOGGER.info("Registered new device fingerprint", extra={"device_id": device_id})
        return device_id

    def device_info(self) -> DeviceInfo:
        """Return metadata stored alongside session rows."""
        signals = self.signals
        return DeviceInfo(
            user_agent=signals.user_agent,
            platform=signals.platform,
            language=signals.language,
            screen=signals.screen,
            timezone=signals.timezone,
        )
