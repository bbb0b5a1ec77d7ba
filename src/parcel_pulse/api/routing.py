from __future__ import annotations

import logging
from typing import Optional, Protocol

from parcel_pulse.api.transport import RequestsTransport
from parcel_pulse.models import RouteResult

DEFAULT_OSRM_URL = "https://router.project-osrm.org"


class Router(Protocol):
    def route(self, lat1: float, lon1: float, lat2: float, lon2: float) -> Optional[RouteResult]:
        ...


class OsrmRouter:
    """Road distance/time from an OSRM server. Best effort: None on any failure."""

    def __init__(
        self,
        base_url: str = DEFAULT_OSRM_URL,
        transport: Optional[RequestsTransport] = None,
        *,
        profile: str = "driving",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.transport = transport or RequestsTransport()
        self.profile = profile
        self.logger = logger or logging.getLogger("parcel_pulse.api.routing")

    def _endpoint(self, lat1: float, lon1: float, lat2: float, lon2: float) -> str:
        # OSRM wants lon,lat pairs
        return f"{self.base_url}/route/v1/{self.profile}/{lon1},{lat1};{lon2},{lat2}"

    def route(self, lat1: float, lon1: float, lat2: float, lon2: float) -> Optional[RouteResult]:
        url = self._endpoint(lat1, lon1, lat2, lon2)
        try:
            resp = self.transport.get(url, params={"overview": "full", "geometries": "geojson"})
            resp.raise_for_status()
            data = resp.json()
        except Exception as ex:
            self.logger.warning("OSRM error: %s", ex)
            return None

        if not isinstance(data, dict) or data.get("code") != "Ok":
            self.logger.warning("OSRM returned code=%s", data.get("code") if isinstance(data, dict) else None)
            return None
        routes = data.get("routes") or []
        if not routes or not isinstance(routes[0], dict):
            return None

        route = routes[0]
        try:
            km = round(float(route["distance"]) / 1000.0, 1)
            minutes = int(round(float(route["duration"]) / 60.0))
        except (KeyError, TypeError, ValueError) as ex:
            self.logger.warning("OSRM route malformed: %s", ex)
            return None
        geometry = route.get("geometry") if isinstance(route.get("geometry"), dict) else None
        return RouteResult(km=km, minutes=minutes, geometry=geometry)
