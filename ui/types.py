"""
ui/types.py
===========
Lightweight data containers used across every UI module.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple

ColorRGB = Tuple[int, int, int]
ColorRGBA = Tuple[int, int, int, int]


@dataclass
class Camera:
    """Viewport mapping world kilometres to screen pixels."""
    screen_w: int
    screen_h: int
    world_x: float = 0.0
    world_y: float = 0.0
    zoom: float = 14.0  # pixels per km

    def world_to_screen(self, wx: float, wy: float) -> Tuple[float, float]:
        cx = self.screen_w / 2
        cy = self.screen_h / 2
        sx = cx + (wx - self.world_x) * self.zoom
        sy = cy - (wy - self.world_y) * self.zoom
        return sx, sy

    def screen_to_world(self, sx: float, sy: float) -> Tuple[float, float]:
        cx = self.screen_w / 2
        cy = self.screen_h / 2
        wx = (sx - cx) / self.zoom + self.world_x
        wy = -((sy - cy) / self.zoom) + self.world_y
        return wx, wy


@dataclass
class CarSnapshot:
    """What the map needs to draw one car."""
    car_id: int
    x_km: float
    y_km: float
    heading_deg: float
    speed: float
    messages: int
    alerts: int
