from __future__ import annotations

from typing import Any, Dict, Optional
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

# desktop browser UA
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


class RequestsTransport:
    """Requests session wrapper with an explicit timeout on every call.

    Only idempotent GETs are retried (connection errors and 502/503/504);
    POSTs are never replayed.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        max_retries: int = 2,
        backoff_factor: float = 0.3,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})
        self.timeout = timeout

        retry = Retry(
            total=max_retries,
            read=max_retries,
            connect=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=(502, 503, 504),
            allowed_methods=("GET",),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def post(self, url: str, *, headers: Optional[Dict[str, str]] = None, data: Any = None,
             params: Optional[Dict[str, Any]] = None):
        return self.session.post(url, headers=headers, data=data, params=params, timeout=self.timeout)

    def get(self, url: str, *, headers: Optional[Dict[str, str]] = None,
            params: Optional[Dict[str, Any]] = None):
        return self.session.get(url, headers=headers, params=params, timeout=self.timeout)

    def close(self) -> None:
        self.session.close()
