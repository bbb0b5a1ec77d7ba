from __future__ import annotations
from dataclasses import dataclass, asdict, field
from typing import Any, Optional

from .tracking import TrackingRecord


@dataclass(frozen=True)
class Notification:
    """A fired alert; rendering is left to the display collaborator."""
    title_key: str
    message_params: dict[str, Any] = field(default_factory=dict)
    tag: str = "generic"


@dataclass(frozen=True)
class NotificationSettings:
    status_change: bool = True
    delivered: bool = True
    nearby: bool = True
    few_stops: bool = True
    nearby_km: float = 1.0
    few_stops_count: int = 3

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PollUpdate:
    """What the poller hands to display collaborators after each cycle."""
    tracking_id: str
    record: Optional[TrackingRecord] = None
    notifications: list[Notification] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
