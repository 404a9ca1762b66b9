#!/usr/bin/env python3

from .types import Camera, CarSnapshot, ColorRGB, ColorRGBA
from .constants import ViewConstants
from .draw_map import MapRenderer
from .hud import HudRenderer
from .pygame_view import RoadReportView, run_view

__all__ = [
    "Camera",
    "CarSnapshot",
    "ColorRGB",
    "ColorRGBA",
    "ViewConstants",
    "MapRenderer",
    "HudRenderer",
    "RoadReportView",
    "run_view",
]
