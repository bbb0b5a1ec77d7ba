from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class EnvCfg:
    """Runtime settings resolved by get_app_env()."""
    DEFAULT_DOMAIN: str = "www.amazon.it"
    POLL_INTERVAL: float = 30.0
    HTTP_TIMEOUT: float = 10.0
    OSRM_URL: str = "https://router.project-osrm.org"
    STORE_PATH: Optional[Path] = None
    COOKIE_FILE: Optional[Path] = None
