#!/usr/bin/env python3
"""
main.py
=======
Run one road report simulation and print its metrics.

Environment overrides::

    ROADREPORT_SEED        random seed (decimal or 0x hex)
    ROADREPORT_HORIZON     simulation end time in seconds
    ROADREPORT_VIEW        1 to watch the run in the pygame viewer
    ROADREPORT_REPORT_CSV  write the per-tick history to this CSV file
    ROADREPORT_LOG_LEVEL   DEBUG, INFO, WARNING ...
    ROADREPORT_CAR_DEBUG   1 to log every reception decision to car_debug.log
"""

import logging
import os
from typing import Mapping, Optional

import config
from logging_setup import setup_logging
from sim.report import history_frame, summary_lines, write_report
from sim.simulation import Simulation


def _env_flag(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() in ("1", "true", "yes", "on")


def settings_from_env(env: Optional[Mapping[str, str]] = None) -> dict:
    """Read ``ROADREPORT_*`` overrides on top of :mod:`config` defaults.

    Raises
    ------
    ValueError
        If a numeric override cannot be parsed or is out of range.
    """
    env = os.environ if env is None else env
    seed_text = env.get("ROADREPORT_SEED")
    horizon_text = env.get("ROADREPORT_HORIZON")
    try:
        seed = int(seed_text, 0) if seed_text else config.DEFAULT_SEED
        horizon = float(horizon_text) if horizon_text else config.DEFAULT_HORIZON_S
    except ValueError as exc:
        raise ValueError(f"bad ROADREPORT_* override: {exc}") from exc
    if horizon <= 0:
        raise ValueError(f"ROADREPORT_HORIZON must be positive, got {horizon!r}")

    level_name = env.get("ROADREPORT_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"unknown ROADREPORT_LOG_LEVEL {level_name!r}")

    return {
        "seed": seed,
        "horizon": horizon,
        "view": _env_flag(env, "ROADREPORT_VIEW"),
        "report_csv": env.get("ROADREPORT_REPORT_CSV", config.DEFAULT_REPORT_CSV),
        "log_level": level,
        "car_debug": _env_flag(env, "ROADREPORT_CAR_DEBUG"),
    }


def main() -> None:
    settings = settings_from_env()
    setup_logging(settings["log_level"], car_debug=settings["car_debug"])
    log = logging.getLogger("main")

    sim = Simulation(
        seed=settings["seed"],
        horizon=settings["horizon"],
        record_history=bool(settings["report_csv"]),
    )
    log.info("Starting simulation seed=%#x horizon=%.0fs", settings["seed"], settings["horizon"])

    try:
        if settings["view"]:
            from ui.pygame_view import run_view
            run_view(sim)
        else:
            sim.run()
    except KeyboardInterrupt:
        log.info("Interrupted at t=%.1f", sim.now)

    for name, value in sim.metrics.report().items():
        print(f"{name:<20} {value}")

    if settings["report_csv"]:
        frame = history_frame(sim.history)
        write_report(frame, settings["report_csv"])
        for line in summary_lines(frame):
            print(line)
        log.info("History written to %s", settings["report_csv"])


if __name__ == "__main__":
    main()
