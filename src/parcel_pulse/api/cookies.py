from __future__ import annotations

import logging
from http.cookiejar import Cookie, CookieJar, LoadError, MozillaCookieJar
from pathlib import Path
from typing import Dict, Iterable, Optional, Protocol
import time

TRACKING_PATH = "/progress-tracker/package/"


class CookieSource(Protocol):
    """The host's credential jar."""

    def cookie_header(self, domain: str) -> str:
        """Current cookies for https://<domain> as 'a=1; b=2' ('' if none)."""
        ...


def _domain_matches(cookie_domain: str, host: str) -> bool:
    cd = cookie_domain.lstrip(".").lower()
    host = host.lower()
    return host == cd or host.endswith("." + cd)


def format_cookie_header(cookies: Iterable[Cookie], domain: str, *, now: Optional[float] = None) -> str:
    """Join the cookies valid for `domain` into a single Cookie header."""
    now = time.time() if now is None else now
    parts = []
    for c in cookies:
        if not _domain_matches(c.domain, domain):
            continue
        if c.expires and c.expires < now:
            continue
        # the tracking endpoint lives under /progress-tracker/
        if c.path and not TRACKING_PATH.startswith(c.path):
            continue
        parts.append(f"{c.name}={c.value or ''}")
    return "; ".join(parts)


class NetscapeCookieFile:
    """Cookie jar backed by a Netscape/Mozilla cookies.txt export.

    The file is re-read on every call so cookies refreshed by the browser
    export are picked up without restarting.
    """

    def __init__(self, path: Path, *, logger: Optional[logging.Logger] = None) -> None:
        self.path = Path(path)
        self.logger = logger or logging.getLogger("parcel_pulse.api.cookies")

    def _load(self) -> CookieJar:
        jar = MozillaCookieJar(str(self.path))
        if not self.path.exists():
            self.logger.warning("Cookie file not found: %s", self.path)
            return jar
        try:
            jar.load(ignore_discard=True, ignore_expires=False)
        except (LoadError, OSError) as ex:
            self.logger.warning("Could not read cookie file %s: %s", self.path, ex)
        return jar

    def cookie_header(self, domain: str) -> str:
        return format_cookie_header(self._load(), domain)


class StaticCookies:
    """In-memory jar: {domain: {name: value}}. Handy for tests and scripts."""

    def __init__(self, cookies: Optional[Dict[str, Dict[str, str]]] = None) -> None:
        self.cookies: Dict[str, Dict[str, str]] = dict(cookies or {})

    def set(self, domain: str, name: str, value: str) -> None:
        self.cookies.setdefault(domain, {})[name] = value

    def cookie_header(self, domain: str) -> str:
        values = self.cookies.get(domain) or {}
        return "; ".join(f"{k}={v}" for k, v in values.items())
