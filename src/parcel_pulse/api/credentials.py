from __future__ import annotations

from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Iterator, List, Optional, Protocol, Sequence
import logging

from parcel_pulse.api.cookies import CookieSource
from parcel_pulse.api.page import extract_token_from_html, scan_token
from parcel_pulse.api.transport import RequestsTransport
from parcel_pulse.config.logging_config import mask_secret
from parcel_pulse.io.session_store import SessionStore
from parcel_pulse.models import SessionRecord
from parcel_pulse.utils.clock import now_ms

# Most specific first; each later pattern is only tried when the previous
# one matched no context at all.
CONTEXT_PATTERNS: tuple[str, ...] = (
    "https://{domain}/*",
    "https://www.amazon.*/*",
    "https://www.amazon.co.*/*",
)


class AuthenticatedContext(Protocol):
    """A page already signed in to the carrier (e.g. an open browser tab)."""

    url: str

    def extract_token(self) -> Optional[str]:
        ...


class ContextProvider(Protocol):
    def query(self, pattern: str) -> List[AuthenticatedContext]:
        ...


@dataclass
class PageContext:
    """A rendered page whose HTML is already at hand."""
    url: str
    html: str

    def extract_token(self) -> Optional[str]:
        return extract_token_from_html(self.html)


@dataclass
class LivePageContext:
    """A page fetched at extraction time with the current cookie header."""
    url: str
    domain: str
    cookies: CookieSource
    transport: RequestsTransport

    def extract_token(self) -> Optional[str]:
        cookie_header = self.cookies.cookie_header(self.domain)
        if not cookie_header:
            return None
        resp = self.transport.get(self.url, headers={"Cookie": cookie_header})
        resp.raise_for_status()
        return extract_token_from_html(resp.text)


class StaticContextProvider:
    """Fixed list of contexts matched against URL glob patterns."""

    def __init__(self, contexts: Sequence[AuthenticatedContext] = ()) -> None:
        self.contexts = list(contexts)

    def query(self, pattern: str) -> List[AuthenticatedContext]:
        return [c for c in self.contexts if fnmatchcase(c.url, pattern)]


class SessionContextProvider:
    """One live context per stored session that remembers its source page."""

    def __init__(self, sessions: SessionStore, cookies: CookieSource, transport: RequestsTransport) -> None:
        self.sessions = sessions
        self.cookies = cookies
        self.transport = transport

    def query(self, pattern: str) -> List[AuthenticatedContext]:
        out: List[AuthenticatedContext] = []
        for record in self.sessions.get_all().values():
            if record.source_url and fnmatchcase(record.source_url, pattern):
                out.append(LivePageContext(record.source_url, record.domain, self.cookies, self.transport))
        return out


@dataclass(frozen=True)
class Credentials:
    cookie_header: str
    token: Optional[str] = None
    fresh: bool = False          # token came from a live context, not the store

    @property
    def complete(self) -> bool:
        return bool(self.cookie_header and self.token)


class CredentialRefresher:
    """Produce a cookie header and an anti-forgery token valid right now.

    The carrier has no refresh endpoint, so tokens are pulled from already
    authenticated contexts at the moment of use. Absence is reported as None,
    never raised.
    """

    def __init__(
        self,
        sessions: SessionStore,
        cookies: CookieSource,
        contexts: Optional[ContextProvider] = None,
        *,
        transport: Optional[RequestsTransport] = None,
        patterns: Sequence[str] = CONTEXT_PATTERNS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.sessions = sessions
        self.cookies = cookies
        self.contexts = contexts
        self.transport = transport
        self.patterns = tuple(patterns)
        self.logger = logger or logging.getLogger("parcel_pulse.api.credentials")

    # --- building blocks ---------------------------------------------------

    def cookie_header(self, domain: str) -> str:
        return self.cookies.cookie_header(domain) or ""

    def candidate_contexts(self, domain: str) -> Iterator[AuthenticatedContext]:
        if self.contexts is None:
            return
        for pattern in self.patterns:
            found = self.contexts.query(pattern.format(domain=domain))
            if found:
                yield from found
                return

    def extract_fresh_token(self, domain: str) -> Optional[str]:
        tried = 0
        for ctx in self.candidate_contexts(domain):
            tried += 1
            try:
                token = ctx.extract_token()
            except Exception as ex:
                self.logger.debug("Token extraction failed on %s: %s", ctx.url, ex)
                continue
            if token:
                self.logger.info("Fresh token extracted from %s", ctx.url[:60])
                return token
        if tried:
            self.logger.info("No token found in %d context(s) for %s", tried, domain)
        else:
            self.logger.info("No authenticated context available for %s", domain)
        return None

    def rederive_from_source(self, domain: str, cookie_header: str) -> Optional[str]:
        """Fetch the stored source page with fresh cookies and scan it."""
        record = self.sessions.get(domain)
        if record is None or not record.source_url or self.transport is None or not cookie_header:
            return None
        try:
            resp = self.transport.get(record.source_url, headers={"Cookie": cookie_header})
            resp.raise_for_status()
            token = scan_token(resp.text)
        except Exception as ex:
            self.logger.warning("Token refresh from %s failed: %s", record.source_url, ex)
            return None
        if token:
            self.logger.info("Token re-derived from source page for %s", domain)
        return token

    def resolve_token(self, domain: str, *, force: bool = False,
                      cookie_header: Optional[str] = None) -> tuple[Optional[str], bool]:
        """
        Return (token, fresh). Live contexts first; a forced resolution then
        re-derives from the source page and never uses the stored token,
        otherwise the stored (possibly stale) token is the fallback.
        """
        token = self.extract_fresh_token(domain)
        if token:
            return token, True

        if force:
            if cookie_header is None:
                cookie_header = self.cookie_header(domain)
            token = self.rederive_from_source(domain, cookie_header)
            return token, bool(token)

        stored = self.sessions.get(domain)
        if stored is not None and stored.anti_forgery_token:
            self.logger.debug("Falling back to stored token %s for %s",
                              mask_secret(stored.anti_forgery_token), domain)
            return stored.anti_forgery_token, False
        return None, False

    # --- operations --------------------------------------------------------

    def refresh(self, domain: str, *, force: bool = False, persist: bool = True) -> Credentials:
        """Cookies unconditionally, then the freshest token obtainable."""
        cookie_header = self.cookie_header(domain)
        token, fresh = self.resolve_token(domain, force=force, cookie_header=cookie_header)
        creds = Credentials(cookie_header=cookie_header, token=token, fresh=fresh)
        if persist and creds.complete:
            self.store(domain, creds)
        return creds

    def store(self, domain: str, creds: Credentials) -> SessionRecord:
        changes = {"anti_forgery_token": creds.token, "cookie_header": creds.cookie_header}
        if creds.fresh:
            changes["captured_at"] = now_ms()
        return self.sessions.put(domain, **changes)

    def capture(self, domain: str, token: str, source_url: str = "") -> Optional[SessionRecord]:
        """Store a token handed over by an authenticated page."""
        if not domain or not token:
            self.logger.warning("Capture ignored: missing token or domain")
            return None
        cookie_header = self.cookie_header(domain)
        if not cookie_header:
            self.logger.warning("Capture ignored: no cookies found for %s", domain)
            return None
        record = self.sessions.put(
            domain,
            anti_forgery_token=token,
            cookie_header=cookie_header,
            source_url=source_url or "",
            captured_at=now_ms(),
        )
        self.logger.info("Connected to %s", domain)
        return record

    def refresh_session(self, domain: Optional[str] = None) -> Optional[SessionRecord]:
        """Refresh a stored session (the given one, else the most recent)."""
        record = self.sessions.get(domain) if domain else None
        if record is None:
            record = self.sessions.most_recent()
        if record is None:
            return None

        changes = {}
        cookie_header = self.cookie_header(record.domain)
        if cookie_header:
            changes["cookie_header"] = cookie_header
        token = self.extract_fresh_token(record.domain)
        if token:
            changes["anti_forgery_token"] = token
            changes["captured_at"] = now_ms()
        return self.sessions.put(record.domain, **changes)

    def force_refresh(self, domain: str) -> Optional[SessionRecord]:
        """Refresh cookies, then re-derive the token from the source page."""
        record = self.sessions.get(domain)
        if record is None:
            self.logger.warning("No session for %s", domain)
            return None
        cookie_header = self.cookie_header(domain)
        if not cookie_header:
            self.logger.warning("No cookies found for %s", domain)
            return None
        record = self.sessions.put(domain, cookie_header=cookie_header)
        token = self.rederive_from_source(domain, cookie_header)
        if token:
            record = self.sessions.put(domain, anti_forgery_token=token, captured_at=now_ms())
        return record
