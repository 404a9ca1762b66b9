#!/usr/bin/env python3
"""Visual constants shared across all renderers."""

from __future__ import annotations

from typing import Dict, Sequence, Tuple

from bus.message import MessageKind

from .types import ColorRGB


class ViewConstants:
    """Mixin providing every visual / layout constant."""

    BG_COLOR: ColorRGB = (15, 15, 15)
    GRID_COLOR: ColorRGB = (30, 30, 30)
    ROUTE_COLOR: ColorRGB = (42, 42, 42)
    HUD_BG_COLOR: ColorRGB = (22, 22, 22)
    HUD_BORDER_COLOR: ColorRGB = (42, 42, 42)
    CAR_COLOR: ColorRGB = (86, 168, 255)
    CAR_WITH_ALERTS_COLOR: ColorRGB = (246, 191, 90)
    RADIO_RANGE_COLOR: ColorRGB = (86, 168, 255)
    MISSING_CELL_COLOR: ColorRGB = (255, 136, 0)

    RADIO_RANGE_ALPHA = 28
    MISSING_CELL_ALPHA = 60

    CAR_RADIUS_PX = 4
    ALERT_RADIUS_PX = 6

    ALERT_COLORS: Dict[int, ColorRGB] = {
        MessageKind.ALERT_SLICK: (100, 226, 170),
        MessageKind.ALERT_VISION: (180, 120, 255),
        MessageKind.ALERT_BLOCKED: (255, 60, 60),
        MessageKind.ALERT_SLOW: (255, 160, 100),
    }

    LEGEND_ITEMS: Sequence[Tuple[str, ColorRGB]] = (
        ("CAR", (86, 168, 255)),
        ("CAR + ALERTS", (246, 191, 90)),
        ("SLICK", (100, 226, 170)),
        ("VISION", (180, 120, 255)),
        ("BLOCKED", (255, 60, 60)),
        ("SLOW", (255, 160, 100)),
        ("MISSING CELL", (255, 136, 0)),
    )

    SCREENSHOT_DIR = "screenshots"
