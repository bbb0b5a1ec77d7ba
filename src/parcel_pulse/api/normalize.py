# src/parcel_pulse/api/normalize.py
from __future__ import annotations

import math
from typing import Any, Dict, Optional, Tuple

from parcel_pulse.errors import InvalidTokenError, MalformedResponseError
from parcel_pulse.models import TrackingRecord, TrackingStatus
from parcel_pulse.rules.status_mapper import map_status
from parcel_pulse.utils.clock import parse_timestamp

INVALID_TOKEN_CODE = "INVALID_TOKEN"
NO_GPS_REASON = "GPS tracking is not available yet for this shipment."


def is_invalid_token(raw: Any) -> bool:
    return isinstance(raw, dict) and str(raw.get("responseCode") or "").upper() == INVALID_TOKEN_CODE


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def _point(geo: Any) -> Tuple[Optional[float], Optional[float]]:
    """(lat, lon) only when both are usable; a half point is dropped."""
    geo = _as_dict(geo)
    lat = _as_float(geo.get("latitude"))
    lon = _as_float(geo.get("longitude"))
    if lat is None or lon is None:
        return None, None
    return lat, lon


def _stops(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        n = int(value) if float(value).is_integer() else None
    else:
        s = str(value).strip()
        n = int(s) if s.lstrip("+").isdigit() else None
    if n is None or n < 0:
        return None
    return n


def normalize_tracking(
    raw: Any,
    *,
    tracking_id: str,
    domain: Optional[str] = None,
) -> TrackingRecord:
    """
    Build a TrackingRecord from a map-tracking payload:

      packageLocationDetails.trackingObjectState        -> status
      packageLocationDetails.stopsRemaining             -> stops_remaining
      ...transporterDetails.geoLocation{lat,lon,time}   -> courier position
      ...transporterDetails.transporterSessionState     -> session_state
      ...destinationAddress.geoLocation{lat,lon}        -> destination

    Raises InvalidTokenError when the carrier rejected the token (the caller
    decides about retrying) and MalformedResponseError for unusable shapes.
    A payload without location details is not an error: it yields an UNKNOWN
    (or value.status) record carrying a reason.
    """
    if not isinstance(raw, dict):
        raise MalformedResponseError(
            f"Expected a JSON object, got {type(raw).__name__}")

    if is_invalid_token(raw):
        raise InvalidTokenError()

    if raw.get("success") is False:
        raise MalformedResponseError(str(raw.get("error") or "Carrier reported failure"))

    pkg = raw.get("packageLocationDetails")
    if not isinstance(pkg, dict):
        value_status = _as_dict(raw.get("value")).get("status")
        return TrackingRecord(
            tracking_id=tracking_id,
            status=map_status(value_status) if value_status else TrackingStatus.UNKNOWN.value,
            domain=domain,
            reason=NO_GPS_REASON,
            raw=raw,
        )

    transporter = _as_dict(pkg.get("transporterDetails"))
    courier_geo = _as_dict(transporter.get("geoLocation"))
    courier_lat, courier_lon = _point(courier_geo)
    dest_lat, dest_lon = _point(_as_dict(pkg.get("destinationAddress")).get("geoLocation"))

    session_state = transporter.get("transporterSessionState")

    return TrackingRecord(
        tracking_id=tracking_id,
        status=map_status(pkg.get("trackingObjectState")),
        domain=domain,
        stops_remaining=_stops(pkg.get("stopsRemaining")),
        courier_lat=courier_lat,
        courier_lon=courier_lon,
        dest_lat=dest_lat,
        dest_lon=dest_lon,
        last_update=parse_timestamp(courier_geo.get("locationTime")) if courier_lat is not None else None,
        session_state=str(session_state) if session_state else None,
        raw=raw,
    )
