#!/usr/bin/env python3
"""
sim/geo.py
==========
Low-level geographic helpers used by :mod:`sim.car`, :mod:`sim.directory`
and :mod:`sim.route`.

Distances use an equirectangular approximation: a degree of latitude is a
fixed number of kilometres, a degree of longitude shrinks with the cosine
of the latitude.  Good enough over the few kilometres a radio reaches.
"""

from __future__ import annotations

import math
from typing import Tuple

# Earth circumference in kilometres through the poles and round the equator.
LAT_CIRCUMFERENCE_KM = 4.0007860e4
LON_CIRCUMFERENCE_KM = 4.0075017e4

LAT2KM = LAT_CIRCUMFERENCE_KM / 360.0
LON2KM = LON_CIRCUMFERENCE_KM / 360.0


def lon_scale(latitude: float) -> float:
    """Kilometres per degree of longitude at *latitude*, relative to the equator."""
    return math.cos(latitude * math.pi / 180.0)


def distance_sqr_km(
    lat_a: float, lon_a: float, lat_b: float, lon_b: float,
) -> float:
    """Squared distance in km² between *a* and *b*.

    The longitude scale is taken at *a*'s latitude, which is the receiver's
    point of view everywhere this is called.
    """
    lat_diff = (lat_a - lat_b) * LAT2KM
    lon_diff = (lon_a - lon_b) * LON2KM * lon_scale(lat_a)
    return lat_diff * lat_diff + lon_diff * lon_diff


def kph_to_kps(speed_kph: float) -> float:
    """Convert km/h to km/s, clamping negatives to zero."""
    return max(0.0, float(speed_kph)) / 3600.0


def grid_cell(longitude: float, latitude: float, grid_km: float) -> Tuple[int, int]:
    """Square grid cell ``(x, y)`` of side *grid_km* containing the point."""
    x = math.floor(longitude * LON2KM * lon_scale(latitude) / grid_km)
    y = math.floor(latitude * LAT2KM / grid_km)
    return x, y


def cell_key(cell: Tuple[int, int], x_mult: int) -> int:
    """Pack a grid cell into one hashable integer."""
    return cell[0] * x_mult + cell[1]
