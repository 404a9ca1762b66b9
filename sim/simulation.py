#!/usr/bin/env python3
"""
sim/simulation.py
=================
The simulation driver.

:class:`Simulation` owns the car population and wires the shared
collaborators (clock, random stream, radio channel, backhaul, directory)
into one :class:`~sim.context.SimContext`.  Each tick it spawns cars and
injects hazard alerts on their own timers, lets every car and the
directory run whatever is due, and removes cars whose route has ended.
"""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, List, Optional, Sequence

from bus.backhaul import Backhaul
from bus.message import ALERT_KINDS, AlertObservation
from bus.metrics import SimMetrics
from bus.radio import RadioChannel
from sim.car import Car
from sim.clock import Clock
from sim.context import SimContext
from sim.directory import Directory
from sim.policy import ProtocolPolicy
from sim.route import ROUTE_STRIDE, Route, default_routes

log = logging.getLogger("simulation")

# Time of the first tick after start.
_FIRST_TICK_S: float = 0.1


class Simulation:
    """Road report scenario: cars, radio, backhaul and the alert directory.

    Parameters
    ----------
    seed : int or None
        Seed of the single shared random stream.
    horizon : float or None
        Simulation end time; ``policy.simulation_interval`` when *None*.
    policy : ProtocolPolicy or None
        Tunable constants; uses defaults when *None*.
    routes : sequence of Route or None
        Routes new cars are put on, used with a fixed stride.  Uses
        :func:`default_routes` when *None*; an empty sequence disables
        automatic spawning.
    record_history : bool
        Keep a metrics snapshot after every tick (see :mod:`sim.report`).
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        horizon: Optional[float] = None,
        policy: Optional[ProtocolPolicy] = None,
        routes: Optional[Sequence[Route]] = None,
        record_history: bool = False,
    ) -> None:
        self.policy = (policy or ProtocolPolicy()).validate()
        if horizon is None:
            horizon = self.policy.simulation_interval
        self.seed = seed
        self.clock = Clock(horizon)
        self.metrics = SimMetrics()
        self.context = SimContext(
            clock=self.clock,
            rng=random.Random(seed),
            policy=self.policy,
            metrics=self.metrics,
        )

        # Insertion ordered, so every tick visits cars in creation order.
        self.cars: Dict[int, Car] = {}
        self.directory = Directory(self.context)
        self.context.directory = self.directory
        self.context.radio = RadioChannel(self.context, self.cars)
        self.context.backhaul = Backhaul(self.context, self.cars)

        self.routes: List[Route] = default_routes() if routes is None else list(routes)
        self._route_index = 0

        self.next_car_at: Optional[float] = (
            self.policy.first_car_time if self.routes else None
        )
        self.next_alert_at: Optional[float] = self.policy.first_alert_time

        self.history: Optional[List[Dict[str, Any]]] = [] if record_history else None
        self._started = False
        self._in_tick = False

    # ── queries ───────────────────────────────────────────────────────────

    @property
    def now(self) -> float:
        return self.clock.now

    def is_finished(self) -> bool:
        return self.clock.finished

    def all_cars(self) -> List[Car]:
        return list(self.cars.values())

    def snapshot(self) -> Dict[str, Any]:
        """Counters plus population sizes at the current time."""
        row: Dict[str, Any] = {
            "time": self.now,
            "cars": len(self.cars),
            "alerts": len(self.directory.alerts),
            "directory_cars": len(self.directory.cars),
        }
        row.update(self.metrics.report())
        return row

    # ── population ────────────────────────────────────────────────────────

    def _next_route(self) -> Route:
        route = self.routes[self._route_index]
        self._route_index = (self._route_index + ROUTE_STRIDE) % len(self.routes)
        return route

    def spawn_car(self, route: Optional[Route] = None) -> Car:
        """Create a car on *route* (or the next table route) at the current time."""
        if route is None:
            route = self._next_route()
        car = Car(self.directory.new_car_id(), route, self.context)
        self.cars[car.id] = car
        self.metrics.cars_spawned += 1
        # Inside a tick, update_cars runs the new car's first broadcast.
        if not self._in_tick:
            self.clock.request_wake(car.location_send_at)
        return car

    def remove_car(self, car_id: int) -> None:
        if self.cars.pop(car_id, None) is not None:
            self.metrics.cars_expired += 1
            log.info("car_removed t=%.3f car=%s live=%d", self.now, car_id, len(self.cars))

    def add_car(self) -> Optional[Car]:
        """Spawn a car if the creation timer is due."""
        if self.next_car_at is None:
            return None
        car = None
        if self.next_car_at <= self.now:
            car = self.spawn_car()
            self.next_car_at += self.policy.car_creation_interval
        self.clock.request_wake(self.next_car_at)
        return car

    def add_alert(self) -> Optional[AlertObservation]:
        """Have a random live car report a random hazard if the alert timer is due."""
        if self.next_alert_at is None:
            return None
        alert = None
        if self.next_alert_at <= self.now:
            self.next_alert_at += self.policy.alert_creation_interval
            if self.cars:
                rng = self.context.rng
                kind = ALERT_KINDS[int(rng.random() * len(ALERT_KINDS))]
                cars = self.all_cars()
                car = cars[int(rng.random() * len(cars))]
                alert = car.generate_alert(kind)
            else:
                log.debug("no_cars_for_alert t=%.3f", self.now)
        self.clock.request_wake(self.next_alert_at)
        return alert

    def update_cars(self) -> int:
        """Run every car's timers; returns how many cars were removed."""
        removed = 0
        for car_id in list(self.cars):
            car = self.cars.get(car_id)
            if car is None:
                continue
            if not car.update_time():
                self.remove_car(car_id)
                removed += 1
        return removed

    # ── main loop ─────────────────────────────────────────────────────────

    def start(self) -> None:
        if not self._started:
            self._started = True
            self.clock.request_wake(self.now + _FIRST_TICK_S)
            log.info("simulation_start seed=%s horizon=%.1f routes=%d",
                     self.seed, self.clock.horizon, len(self.routes))

    def tick(self) -> None:
        """Let every component act at the current time."""
        self._in_tick = True
        try:
            self.add_car()
            self.add_alert()
            self.update_cars()
            self.directory.update_time()
        finally:
            self._in_tick = False
        if self.history is not None:
            self.history.append(self.snapshot())

    def step(self) -> bool:
        """Advance to the next wake and tick.  False once the horizon is reached."""
        self.start()
        self.clock.advance()
        if self.clock.finished:
            return False
        self.tick()
        return True

    def run(self) -> Dict[str, int]:
        """Run to the horizon and return the metrics report."""
        while self.step():
            pass
        report = self.metrics.report()
        log.info("simulation_end t=%.3f cars=%d alerts=%d %s",
                 self.now, len(self.cars), len(self.directory.alerts), report)
        return report
