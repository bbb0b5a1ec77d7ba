from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from parcel_pulse.api.routing import Router
from parcel_pulse.models import TrackingRecord
from parcel_pulse.rules.geo import haversine_km


class DistanceEnricher:
    """Adds great-circle and (when available) road distance to a record."""

    def __init__(self, router: Optional[Router] = None, *, logger: Optional[logging.Logger] = None):
        self.router = router
        self.logger = logger or logging.getLogger("parcel_pulse.pipelines.enricher")

    def enrich(self, record: TrackingRecord) -> TrackingRecord:
        if not (record.has_courier_position and record.has_destination):
            return record

        out = replace(
            record,
            distance_km=haversine_km(record.courier_lat, record.courier_lon,
                                     record.dest_lat, record.dest_lon),
        )

        if self.router is None:
            return out

        try:
            road = self.router.route(record.courier_lat, record.courier_lon,
                                     record.dest_lat, record.dest_lon)
        except Exception as ex:
            # routers should not raise, but a plug-in one might
            self.logger.warning("Routing failed for %s: %s", record.tracking_id, ex)
            road = None

        if road is None:
            return out
        return replace(
            out,
            road_distance_km=road.km,
            route_duration_min=road.minutes,
            route_geometry=road.geometry,
        )
