#!/usr/bin/env python3
"""
config.py
=========
Application-wide configuration constants.

Values can be overridden via environment variables (see :mod:`main`).
This module is a thin, import-safe leaf; it never imports from
other project packages.
"""

# ── Simulation defaults ──────────────────────────────────────────────────────
DEFAULT_SEED: int = 0xABCDEF987653
DEFAULT_HORIZON_S: float = 600.0

# ── Output ───────────────────────────────────────────────────────────────────
LOG_FILE: str = "roadreport.log"
CAR_DEBUG_LOG_FILE: str = "car_debug.log"
DEFAULT_REPORT_CSV: str = ""

# ── UI defaults ──────────────────────────────────────────────────────────────
WINDOW_WIDTH: int = 1000
WINDOW_HEIGHT: int = 700
TARGET_FPS: int = 60
SIM_SECONDS_PER_FRAME: float = 0.5

# ── HTTP service ─────────────────────────────────────────────────────────────
API_HOST: str = "0.0.0.0"
API_PORT: int = 8000
API_MAX_HORIZON_S: float = 3600.0
