# src/parcel_pulse/rules/status_mapper.py
from __future__ import annotations

from typing import Any

from parcel_pulse.models import TrackingStatus

# Carrier vocabulary -> canonical status. Lookups are upper-cased first.
STATUS_MAP: dict[str, TrackingStatus] = {
    "DELIVERED": TrackingStatus.DELIVERED,
    "OUT_FOR_DELIVERY": TrackingStatus.OUT_FOR_DELIVERY,
    "PICKED_UP": TrackingStatus.OUT_FOR_DELIVERY,
    "PENDING_PICKUP": TrackingStatus.OUT_FOR_DELIVERY,
    "IN_TRANSIT": TrackingStatus.IN_TRANSIT,
    "SHIPPED": TrackingStatus.IN_TRANSIT,
    "NOT_READY": TrackingStatus.NOT_READY,
    "CREATED": TrackingStatus.NOT_READY,
    "CANCELLED": TrackingStatus.CANCELLED,
}

STATUS_LABELS: dict[str, str] = {
    TrackingStatus.OUT_FOR_DELIVERY.value: "Out for delivery",
    TrackingStatus.IN_TRANSIT.value: "In transit",
    TrackingStatus.DELIVERED.value: "Delivered",
    TrackingStatus.NOT_READY.value: "Being prepared",
    TrackingStatus.CANCELLED.value: "Cancelled",
    TrackingStatus.UNKNOWN.value: "Unknown",
}


def map_status(raw: Any) -> str:
    """
    Normalize a raw carrier state to its canonical value.

    Unrecognized values are passed through (upper-cased) so new carrier
    states stay visible; empty/missing values become UNKNOWN.
    """
    if raw is None:
        return TrackingStatus.UNKNOWN.value
    key = str(raw).strip().upper()
    if not key:
        return TrackingStatus.UNKNOWN.value
    mapped = STATUS_MAP.get(key)
    return mapped.value if mapped is not None else key


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status or STATUS_LABELS[TrackingStatus.UNKNOWN.value])
