from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union
import os
import re
import sys

# timestamp | level | logger | message
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# handler attribute holding "stderr" or the absolute log path
_TARGET_ATTR = "_parcel_pulse_target"

# csrfToken=..., "csrfToken": "...", anti_forgery_token='...'
_TOKEN_RE = re.compile(
    r"""(?i)((?:csrf_?token|anti_forgery_token)["']?\s*[:=]\s*["']?)([^"'&;,\s)}]+)""")
# Cookie: a=1; b=2  /  'Cookie': '...'  /  cookie_header='...'
_COOKIE_RE = re.compile(
    r"""(?i)(\bcookie(?:_header)?["']?\s*[:=]\s*["']?)([^"'\r\n]+)""")


def mask_secret(value: Optional[str], keep: int = 4) -> str:
    """Shorten tokens/cookies for log lines: 'abcd…(37)'."""
    if not value:
        return "<empty>"
    if len(value) <= keep:
        return "*" * len(value)
    return f"{value[:keep]}…({len(value)})"


def _mask_match(m: "re.Match[str]") -> str:
    value = m.group(2)
    if "…" in value or value == "<empty>":
        return m.group(0)
    return m.group(1) + mask_secret(value)


def redact(text: str) -> str:
    """Mask anti-forgery token and cookie values inside free text."""
    return _TOKEN_RE.sub(_mask_match, _COOKIE_RE.sub(_mask_match, text))


class RedactSecretsFilter(logging.Filter):
    """Rewrites the rendered message so no handler ever sees a full secret."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


def _resolve_level(level: Optional[Union[int, str]]) -> int:
    if level is None:
        level = os.getenv("LOG_LEVEL") or "INFO"
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else logging.INFO


def get_logger(
    name: str = "parcel_pulse",
    *,
    level: Optional[Union[int, str]] = None,
    log_file: Optional[Union[str, Path]] = None,
    console: bool = True,
    max_bytes: int = 2_000_000,
    backup_count: int = 3,
) -> logging.Logger:
    """
    Configure the application logger (module loggers `parcel_pulse.<area>`
    propagate into it).

    Handlers are keyed by target, stderr or the absolute log path, so repeated
    calls only attach what is missing. Every handler carries the redaction
    filter. Level falls back to LOG_LEVEL, then INFO.
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))
    logger.propagate = False

    present = {getattr(h, _TARGET_ATTR, None) for h in logger.handlers}
    new_handlers: list[tuple[str, logging.Handler]] = []

    if console and "stderr" not in present:
        new_handlers.append(("stderr", logging.StreamHandler(stream=sys.stderr)))

    if log_file is not None:
        target = os.path.abspath(str(log_file))
        if target not in present:
            Path(target).parent.mkdir(parents=True, exist_ok=True)
            new_handlers.append((target, RotatingFileHandler(
                filename=target,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
                delay=True,
            )))

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    for target, handler in new_handlers:
        setattr(handler, _TARGET_ATTR, target)
        handler.setFormatter(formatter)
        handler.addFilter(RedactSecretsFilter())
        logger.addHandler(handler)
    return logger
