"""
sim/context.py
==============
The explicit owner value handed to every component constructor.

:class:`SimContext` replaces a global simulation object: the clock, the
shared random stream, the policy and the metrics, plus the three shared
collaborators (radio channel, backhaul, directory) that the
:class:`~sim.simulation.Simulation` wires in after construction.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from bus.metrics import SimMetrics
from sim.clock import Clock
from sim.policy import ProtocolPolicy

if TYPE_CHECKING:
    from bus.backhaul import Backhaul
    from bus.radio import RadioChannel
    from sim.directory import Directory


@dataclass
class SimContext:
    clock: Clock
    rng: random.Random
    policy: ProtocolPolicy = field(default_factory=ProtocolPolicy)
    metrics: SimMetrics = field(default_factory=SimMetrics)

    radio: Optional["RadioChannel"] = None
    backhaul: Optional["Backhaul"] = None
    directory: Optional["Directory"] = None

    @property
    def now(self) -> float:
        return self.clock.now
