from __future__ import annotations
from dataclasses import dataclass, asdict, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class TrackingStatus(str, Enum):
    """Canonical shipment states used throughout the package."""
    NOT_READY = "NOT_READY"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class TrackingRecord:
    # identity/context
    tracking_id: str
    status: str                        # canonical value or passed-through raw value
    domain: Optional[str] = None

    # delivery progress
    stops_remaining: Optional[int] = None
    courier_lat: Optional[float] = None
    courier_lon: Optional[float] = None
    dest_lat: Optional[float] = None
    dest_lon: Optional[float] = None
    last_update: Optional[datetime] = None
    session_state: Optional[str] = None

    # geo enrichment
    distance_km: Optional[float] = None
    road_distance_km: Optional[float] = None
    route_duration_min: Optional[int] = None
    route_geometry: Optional[dict[str, Any]] = None

    # informational text when data is missing (e.g. no GPS yet)
    reason: Optional[str] = None

    # raw payload for audit
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def has_courier_position(self) -> bool:
        return self.courier_lat is not None and self.courier_lon is not None

    @property
    def has_destination(self) -> bool:
        return self.dest_lat is not None and self.dest_lon is not None

    @property
    def effective_distance_km(self) -> Optional[float]:
        """Routed distance when available, else the great-circle one."""
        if self.road_distance_km is not None:
            return self.road_distance_km
        return self.distance_km

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out.pop("raw", None)
        if self.last_update is not None:
            out["last_update"] = self.last_update.isoformat()
        return out


@dataclass(frozen=True)
class RouteResult:
    km: float
    minutes: int
    geometry: Optional[dict[str, Any]] = None
