"""Proof of avatar control through the public profile motto."""

from __future__ import annotations

import logging
from typing import Any

import requests

LOGGER = logging.getLogger(__name__)


class ProfileVerifier:
    """Look up public avatar profiles and check for issued codes in the motto."""

    def __init__(
        self,
        base_url: str = "https://www.habbo.com.br",
        timeout_sec: int = 10,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_sec
        self._http = session or requests.Session()

    def close(self) -> None:
        self._http.close()

    def fetch_external_profile(self, nick: str) -> dict[str, Any] | None:
        """Return the public profile for ``nick``, or ``None`` when unavailable.

        Transport errors, non-2xx answers and malformed bodies are all reported
        as ``None``; callers cannot tell a missing avatar from a network fault.
        """
        if not nick:
            return None

        url = f"{self._base_url}/api/public/users"
        try:
            response = self._http.get(url, params={"name": nick}, timeout=self._timeout)
            if not response.ok:
                LOGGER.info(
                    "Profile lookup status=%s", response.status_code, extra={"nick": nick}
                )
                return None
            payload = response.json()
        except (requests.RequestException, ValueError):
            LOGGER.exception("Failed requesting public profile API.", extra={"nick": nick})
            return None
        return payload if isinstance(payload, dict) else None

    def verify_code_in_profile(self, nick: str, code: str) -> bool:
        """Return whether ``code`` appears verbatim in the profile motto."""
        profile = self.fetch_external_profile(nick)
        if profile is None:
            return False
        motto = str(profile.get("motto") or "")
        found = bool(code) and code in motto
        LOGGER.info(
            "Profile motto check found=%s", found, extra={"nick": nick, "operation": "verify_motto"}
        )
        return found
