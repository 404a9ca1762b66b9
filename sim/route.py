#!/usr/bin/env python3
"""
sim/route.py
============
Constant-velocity routes and the default route table.

:class:`Route` answers "where is the car *t* seconds after it started?"
with a :class:`~bus.message.LocationReport`, or ``None`` once the route
has run out.  ``None`` is the expired tag; the driver removes the car.

:func:`default_routes` builds the straight north/south/east/west routes
the simulation spawns cars onto.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional

from bus.message import LocationReport
from sim.geo import LAT2KM, LON2KM, lon_scale


@dataclass(frozen=True)
class Route:
    """A straight route travelled at constant speed.

    Parameters
    ----------
    longitude, latitude : float
        Starting point in degrees.
    heading : float
        Degrees clockwise of north.
    speed : float
        km/h.
    duration : float
        Seconds the route is good for.
    """

    longitude: float
    latitude: float
    heading: float
    speed: float
    duration: float

    # degrees per second, derived once
    _lat_rate: float = field(init=False, repr=False, compare=False)
    _lon_rate: float = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        rad = self.heading * math.pi / 180.0
        km_per_s = self.speed / 3600.0
        object.__setattr__(self, "_lat_rate", km_per_s * math.cos(rad) / LAT2KM)
        object.__setattr__(
            self, "_lon_rate",
            km_per_s * math.sin(rad) / LON2KM / lon_scale(self.latitude),
        )

    def position_at(
        self, elapsed: float, started_at: float = 0.0,
    ) -> Optional[LocationReport]:
        """Location *elapsed* seconds into the route, or ``None`` if expired.

        The report is stamped ``started_at + elapsed``.
        """
        if elapsed < 0.0 or elapsed > self.duration:
            return None
        return LocationReport(
            longitude=self.longitude + self._lon_rate * elapsed,
            latitude=self.latitude + self._lat_rate * elapsed,
            heading=self.heading,
            speed=self.speed,
            timestamp=started_at + elapsed,
        )

    def __str__(self) -> str:
        return (
            f"<Route {self.duration:g}s from ({self.longitude:.4f}, "
            f"{self.latitude:.4f}) hdg={self.heading:g} spd={self.speed:g}>"
        )


# ── Default layout ────────────────────────────────────────────────────────────

_WEST_LON = -100.42
_EAST_LON = -100.00
_SOUTH_LAT = 40.00
_NORTH_LAT = 40.30
_LON_STEP = 0.14
_LAT_STEP = 0.1
_ROUTE_KM = 10.0


def default_routes() -> List[Route]:
    """Eighty straight routes over a 0.42° x 0.4° patch of road.

    For each of four offsets and five speeds (10..90 km/h) there is one
    route heading east, south, north and west.  Every route lasts as long
    as it takes to drive :data:`_ROUTE_KM` kilometres.
    """
    routes: List[Route] = []
    for i in range(4):
        for speed in range(10, 100, 20):
            duration = 3600.0 * _ROUTE_KM / speed
            lat = _SOUTH_LAT + i * _LAT_STEP
            lon = _WEST_LON + i * _LON_STEP
            routes.append(Route(_WEST_LON + _LON_STEP, lat, 90.0, speed, duration))
            routes.append(Route(_EAST_LON + _LON_STEP, lat, 180.0, speed, duration))
            routes.append(Route(lon, _SOUTH_LAT + _LAT_STEP, 0.0, speed, duration))
            routes.append(Route(lon, _NORTH_LAT + _LAT_STEP, 270.0, speed, duration))
    return routes


# Stride through the route table; coprime with its size so every route is used.
ROUTE_STRIDE = 33
