# src/parcel_pulse/config/env.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple, TypeVar

from parcel_pulse.models import EnvCfg

try:
    from dotenv import load_dotenv, find_dotenv, dotenv_values  # type: ignore
except Exception as e:  # pragma: no cover
    raise RuntimeError(
        "Missing dependency 'python-dotenv'. Install it with:\n"
        "  pip install python-dotenv"
    ) from e

T = TypeVar("T")


class EnvError(RuntimeError):
    """Raised when configuration is missing or malformed."""


PREFIX = "PARCEL_PULSE_"

# Only needed when the CLI is asked to be strict
REQUIRED_KEYS: Tuple[str, ...] = (
    PREFIX + "COOKIE_FILE",
)

DEFAULTS: Dict[str, str] = {
    PREFIX + "DEFAULT_DOMAIN": "www.amazon.it",
    PREFIX + "POLL_INTERVAL": "30",
    PREFIX + "HTTP_TIMEOUT": "10",
    PREFIX + "OSRM_URL": "https://router.project-osrm.org",
}


def load_project_dotenv(start: Optional[Path] = None, *, override: bool = False) -> Path:
    """
    Load the nearest `.env` (searching upward from `start` or CWD) into the
    process environment. Existing variables win unless `override=True`.
    Returns the resolved path, or Path() when no file was found.
    """
    start_path = Path.cwd() if start is None else Path(start)

    dotenv_str = find_dotenv(filename=".env", usecwd=True)
    dotenv_path = Path(dotenv_str) if dotenv_str else Path()

    if not dotenv_str:
        for p in (start_path, *start_path.parents):
            candidate = p / ".env"
            if candidate.exists():
                dotenv_path = candidate
                break

    if not dotenv_path.exists() or dotenv_path.is_dir():
        return Path()

    load_dotenv(dotenv_path=dotenv_path, override=override)
    return dotenv_path.resolve()


def env(name: str, *, default: Optional[str] = None, required: bool = False,
        cast: Optional[Callable[[str], T]] = None):
    """
    Test-friendly accessor.

    - `required=True` and missing raises KeyError(name).
    - `cast` is applied to the raw string; cast errors propagate.
    """
    raw = os.getenv(name)
    if raw is None or raw == "":
        if required:
            raise KeyError(name)
        raw = default
        if raw is None:
            return None

    if cast is not None:
        return cast(raw)
    return raw


def load_env(
    dotenv_path: Optional[Path] = None,
    *,
    override: bool = False,
    required_keys: Tuple[str, ...] = (),
    strict: bool = False,
    discover: bool = True,
) -> Dict[str, str]:
    """
    Load a .env file into the process environment and return the key/value
    pairs found in it.

    - With `dotenv_path`, load exactly that file (a missing file is ignored).
    - Otherwise auto-discover via `load_project_dotenv` (unless `discover=False`).
    - With `strict=True`, every key in `required_keys` must be set afterwards.
    """
    loaded: Dict[str, str] = {}

    if dotenv_path:
        path = Path(dotenv_path)
        if path.exists():
            load_dotenv(dotenv_path=path, override=override)
            loaded = {k: v for k, v in dotenv_values(path).items() if v is not None}
    elif discover:
        path = load_project_dotenv(override=override)
        if path and path.exists():
            loaded = {k: v for k, v in dotenv_values(path).items() if v is not None}

    if strict and required_keys:
        missing = [k for k in required_keys if not os.getenv(k)]
        if missing:
            raise EnvError(
                f"Missing required environment variable(s): {', '.join(missing)}")

    return loaded


def _positive_float(name: str) -> float:
    raw = env(name, default=DEFAULTS[name])
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise EnvError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise EnvError(f"{name} must be positive, got {raw!r}")
    return value


def _optional_path(name: str) -> Optional[Path]:
    raw = env(name)
    return Path(raw).expanduser() if raw else None


def get_app_env(dotenv_path: Path | str | None = None, *, strict: bool = False,
                discover: bool = True) -> EnvCfg:
    """
    Resolve runtime settings from the environment (after loading `.env`).

    - With `dotenv_path`, exactly that file is loaded; otherwise the nearest
      `.env` upward from the CWD. `discover=False` disables file loading.
    - Process env wins over the file.
    - `strict=True` requires REQUIRED_KEYS to be present.
    """
    load_env(
        Path(dotenv_path) if dotenv_path else None,
        override=False,
        required_keys=REQUIRED_KEYS,
        strict=strict,
        discover=discover,
    )

    name = PREFIX + "DEFAULT_DOMAIN"
    return EnvCfg(
        DEFAULT_DOMAIN=env(name, default=DEFAULTS[name]).strip(),
        POLL_INTERVAL=_positive_float(PREFIX + "POLL_INTERVAL"),
        HTTP_TIMEOUT=_positive_float(PREFIX + "HTTP_TIMEOUT"),
        OSRM_URL=env(PREFIX + "OSRM_URL",
                     default=DEFAULTS[PREFIX + "OSRM_URL"]).rstrip("/"),
        STORE_PATH=_optional_path(PREFIX + "STORE"),
        COOKIE_FILE=_optional_path(PREFIX + "COOKIE_FILE"),
    )


__all__ = [
    "EnvError",
    "REQUIRED_KEYS",
    "DEFAULTS",
    "load_project_dotenv",
    "load_env",
    "env",
    "get_app_env",
]
