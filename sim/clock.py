#!/usr/bin/env python3
"""
sim/clock.py
============
Coalesced next-event scheduler.

The clock keeps the current time and the single earliest wake time any
component has asked for.  It is not a priority queue: after each jump the
driver asks *every* component whether one of its own timers is due.
"""

from __future__ import annotations

import logging
from typing import Optional

log = logging.getLogger("clock")


class Clock:
    """Simulation time source.

    Parameters
    ----------
    horizon : float
        Time at which the run ends.
    start : float
        Initial current time.
    """

    def __init__(self, horizon: float, start: float = 0.0) -> None:
        self.horizon = horizon
        self.now = start
        self._next_wake: Optional[float] = None

    @property
    def next_wake(self) -> Optional[float]:
        return self._next_wake

    @property
    def finished(self) -> bool:
        return self.now >= self.horizon

    def request_wake(self, when: float) -> None:
        """Record *when* if it is earlier than the pending wake (or none is pending)."""
        if when < self.now:
            log.debug("wake %.3f is in the past, clamped to %.3f", when, self.now)
            when = self.now
        if self._next_wake is None or when < self._next_wake:
            self._next_wake = when

    def advance(self) -> float:
        """Jump to the pending wake (or the horizon if none) and clear it.

        Never moves past the horizon.
        """
        target = self.horizon
        if self._next_wake is not None and self._next_wake < self.horizon:
            target = self._next_wake
        self._next_wake = None
        self.now = target
        return self.now
