from __future__ import annotations
from dataclasses import dataclass, asdict, field, fields
from typing import Any, Optional


@dataclass(frozen=True)
class SessionRecord:
    """Credentials captured for one carrier domain.

    Timestamps are epoch milliseconds, the same unit the store persists.
    """
    domain: str
    anti_forgery_token: str = ""
    cookie_header: str = ""
    source_url: str = ""
    captured_at: int = 0
    updated_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionRecord":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass(frozen=True)
class PendingImport:
    """One-shot handoff of tracking ids to an importing collaborator."""
    tracking_ids: list[str] = field(default_factory=list)
    domain: str = ""
    created_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PendingImport":
        return cls(
            tracking_ids=[str(t) for t in data.get("tracking_ids") or []],
            domain=str(data.get("domain") or ""),
            created_at=int(data.get("created_at") or 0),
        )


@dataclass(frozen=True)
class DetectedTrackingId:
    tracking_id: str
    domain: str
    source_url: Optional[str] = None
    detected_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
