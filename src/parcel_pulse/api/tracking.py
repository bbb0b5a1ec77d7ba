from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict, Optional
import logging

from parcel_pulse.api.credentials import Credentials, CredentialRefresher
from parcel_pulse.api.normalize import is_invalid_token
from parcel_pulse.api.transport import RequestsTransport
from parcel_pulse.config.logging_config import mask_secret
from parcel_pulse.errors import InvalidTokenError, NetworkError, NoCredentialsError
from parcel_pulse.io.session_store import SessionStore

DEFAULT_DOMAIN = "www.amazon.it"
TRACKING_PATH = "/progress-tracker/package/actions/map-tracking-deans-proxy"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded;charset=UTF-8"


class FetchState(str, Enum):
    FETCHING = "FETCHING"
    RETRYING_WITH_FRESH_TOKEN = "RETRYING_WITH_FRESH_TOKEN"
    DONE = "DONE"
    FAILED = "FAILED"


class TrackingClient:
    """Client for the carrier's private map-tracking endpoint.

    Responsibilities:
    - fetch_tracking(): resolve the domain, pull fresh cookies and the
      freshest token, persist them, POST the form and return the decoded
      JSON untouched.
    - fetch_with_token_retry(): the same call with at most one retry on a
      rejected token, using a forced token re-acquisition.

    Normalization is the caller's job.
    """

    def __init__(
        self,
        refresher: CredentialRefresher,
        sessions: SessionStore,
        transport: Optional[RequestsTransport] = None,
        *,
        default_domain: str = DEFAULT_DOMAIN,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.refresher = refresher
        self.sessions = sessions
        self.transport = transport or RequestsTransport(max_retries=0)
        self.default_domain = default_domain
        self.logger: logging.Logger = logger or logging.getLogger(
            "parcel_pulse.api.tracking"
        )

    def resolve_domain(self, domain: Optional[str] = None) -> str:
        if domain:
            return domain
        recent = self.sessions.most_recent()
        if recent is not None:
            return recent.domain
        return self.default_domain

    def endpoint(self, domain: str) -> str:
        return f"https://{domain}{TRACKING_PATH}"

    def _credentials(self, domain: str, force_fresh_token: bool) -> Credentials:
        cookie_header = self.refresher.cookie_header(domain)
        if not cookie_header:
            raise NoCredentialsError(f"No cookies for {domain}. Sign in to the carrier site first.")

        token, fresh = self.refresher.resolve_token(
            domain, force=force_fresh_token, cookie_header=cookie_header)
        if not token:
            raise NoCredentialsError(f"No anti-forgery token for {domain}. Open a carrier page and retry.")

        creds = Credentials(cookie_header=cookie_header, token=token, fresh=fresh)
        self.refresher.store(domain, creds)
        return creds

    def fetch_tracking(
        self,
        tracking_id: str,
        domain: Optional[str] = None,
        *,
        force_fresh_token: bool = False,
    ) -> Dict[str, Any]:
        """POST one tracking request and return the decoded payload."""
        if not tracking_id:
            raise ValueError("tracking_id is required")

        target = self.resolve_domain(domain)
        creds = self._credentials(target, force_fresh_token)

        url = self.endpoint(target)
        headers = {"Content-Type": FORM_CONTENT_TYPE, "Cookie": creds.cookie_header}
        data = {"trackingId": tracking_id, "csrfToken": creds.token}

        self.logger.debug("POST %s trackingId=%s token=%s", url, tracking_id, mask_secret(creds.token))

        try:
            resp = self.transport.post(url, headers=headers, data=data)
        except Exception as ex:
            self.logger.warning("Tracking request failed for %s: %s", tracking_id, ex)
            raise NetworkError(str(ex)) from ex

        try:
            payload = resp.json()
        except ValueError as ex:
            status = getattr(resp, "status_code", None)
            self.logger.warning("Tracking response for %s is not JSON (status=%s)", tracking_id, status)
            raise NetworkError(f"Non-JSON response (status={status})") from ex

        if isinstance(payload, dict):
            pkg = payload.get("packageLocationDetails") or {}
            self.logger.info(
                "fetchTracking %s response=%s state=%s",
                tracking_id,
                payload.get("responseCode") or ("OK" if payload.get("success", True) else "FAIL"),
                (pkg.get("trackingObjectState") if isinstance(pkg, dict) else None) or "N/A",
            )
        return payload

    def fetch_with_token_retry(
        self,
        tracking_id: str,
        domain: Optional[str] = None,
        *,
        classify: Callable[[Any], bool] = is_invalid_token,
    ) -> Dict[str, Any]:
        """
        FETCHING -> (invalid token) -> RETRYING_WITH_FRESH_TOKEN -> DONE | FAILED.
        The retry bound is fixed at one.
        """
        state = FetchState.FETCHING
        payload: Dict[str, Any] = {}
        while state in (FetchState.FETCHING, FetchState.RETRYING_WITH_FRESH_TOKEN):
            forced = state is FetchState.RETRYING_WITH_FRESH_TOKEN
            try:
                payload = self.fetch_tracking(tracking_id, domain, force_fresh_token=forced)
            except NoCredentialsError:
                if forced:
                    # no fresh token could be found for the retry
                    state = FetchState.FAILED
                    break
                raise

            if not classify(payload):
                state = FetchState.DONE
            elif forced:
                state = FetchState.FAILED
            else:
                self.logger.info("Token rejected for %s; retrying once with a fresh token", tracking_id)
                state = FetchState.RETRYING_WITH_FRESH_TOKEN

        if state is FetchState.FAILED:
            raise InvalidTokenError()
        return payload
