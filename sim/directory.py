"""
sim/directory.py
================
The central alert directory reached over the cellular backhaul.

It keeps:
  - the last known location of every car that has been reported
  - the canonical table of every alert uploaded so far
  - per car, a miss counter for every alert (``-1`` confirmed, ``0`` not
    pushed yet, ``>0`` sweeps passed without confirmation)

On its own timer it sweeps the cars, groups the alerts each one is missing
by the car's grid cell, and pushes one batch per cell to a relay car (the
one that has waited longest) plus any car whose wait crossed the
escalation limit.  The receiving cars re-flood the batch over the radio.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

import numpy as np

from bus.message import (
    AlertBatch,
    AlertKey,
    AlertObservation,
    AlertUpload,
    LocationReport,
    LocationUpload,
)
from sim.geo import cell_key, distance_sqr_km, grid_cell

if TYPE_CHECKING:
    from sim.context import SimContext

log = logging.getLogger("directory")

Cell = Tuple[int, int]
Box = Tuple[int, int, int, int]


@dataclass
class DirectoryAlertInfo:
    observation: AlertObservation
    cell: Cell

    @property
    def key(self) -> AlertKey:
        return self.observation.key


@dataclass
class DirectoryCarInfo:
    """What the directory knows about one car.

    ``box`` is ``(x_min, x_max, y_min, y_max)`` in grid cells, inclusive.
    ``location`` is None for a car that has confirmed alerts but has not been
    located yet; sweeps skip it until it is.
    """

    car_id: int
    location: Optional[LocationReport]
    cell: Cell
    box: Box
    radius_km: float
    misses: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=int))

    def contains(self, cell: Cell) -> bool:
        x_min, x_max, y_min, y_max = self.box
        return x_min <= cell[0] <= x_max and y_min <= cell[1] <= y_max


@dataclass
class CellBatch:
    """Missing alerts of every car in one grid cell, gathered by a sweep."""

    key: int
    cell: Cell
    alerts: List[int] = field(default_factory=list)
    members: Dict[int, List[int]] = field(default_factory=dict)
    scores: Dict[int, int] = field(default_factory=dict)
    relay: Optional[int] = None
    max_misses: int = -1

    def add(self, car_id: int, missing: List[int], score: int) -> None:
        self.members[car_id] = missing
        self.scores[car_id] = score
        for index in missing:
            if index not in self.alerts:
                self.alerts.append(index)
        # Ties keep the first car seen.
        if self.relay is None or score > self.max_misses:
            self.relay = car_id
            self.max_misses = score

    def targets(self, miss_limit: int) -> List[int]:
        """The relay, then every member whose miss count reached *miss_limit*."""
        chosen = [self.relay]
        for car_id, score in self.scores.items():
            if car_id != self.relay and score >= miss_limit:
                chosen.append(car_id)
        return chosen


class Directory:
    """
    Global car location and alert tables with grid based escalation.

    Parameters
    ----------
    context : SimContext
        Provides the clock, policy, metrics and the backhaul for deliveries.
    """

    def __init__(self, context: "SimContext") -> None:
        self._ctx = context
        self.policy = context.policy
        self.cars: Dict[int, DirectoryCarInfo] = {}
        self.alerts: List[DirectoryAlertInfo] = []
        self._alert_index: Dict[AlertKey, int] = {}
        self.resend_at: Optional[float] = None
        self._last_car_id = 0

    @property
    def now(self) -> float:
        return self._ctx.now

    def new_car_id(self) -> int:
        """Issue the next unused car id."""
        self._last_car_id += 1
        return self._last_car_id

    # ── Uploads ───────────────────────────────────────────────────────────────

    def receive(self, message) -> None:
        """Entry point for everything the backhaul uploads."""
        if isinstance(message, LocationUpload):
            self.receive_locations(message)
        elif isinstance(message, AlertUpload):
            self.receive_alerts(message)
        else:
            log.warning("unknown_upload t=%.3f type=%s", self.now, type(message).__name__)

    def _place(self, info: DirectoryCarInfo, report: LocationReport) -> None:
        p = self.policy
        info.location = report
        info.cell = grid_cell(report.longitude, report.latitude, p.grid_km)
        info.radius_km = p.locality_radius_km(report.speed)
        pad = math.ceil(info.radius_km / p.grid_km) + 1
        x, y = info.cell
        info.box = (x - pad, x + pad, y - pad, y + pad)

    def _new_car(self, car_id: int) -> DirectoryCarInfo:
        info = DirectoryCarInfo(
            car_id=car_id,
            location=None,
            cell=(0, 0),
            box=(0, 0, 0, 0),
            radius_km=0.0,
            misses=np.zeros(len(self.alerts), dtype=int),
        )
        self.cars[car_id] = info
        return info

    def receive_locations(self, upload: LocationUpload) -> int:
        """Store newer locations; returns how many entries were applied."""
        applied = 0
        for entry in upload.entries:
            info = self.cars.get(entry.car_id)
            stored = info.location if info is not None else None
            if stored is not None and entry.report.timestamp < stored.timestamp:
                self._ctx.metrics.stale_locations += 1
                log.debug("stale_location t=%.3f car=%s reported=%.3f stored=%.3f",
                          self.now, entry.car_id, entry.report.timestamp,
                          stored.timestamp)
                continue
            if info is None:
                info = self._new_car(entry.car_id)
            self._place(info, entry.report)
            applied += 1
        log.debug("locations t=%.3f reporter=%s applied=%d of %d",
                  self.now, upload.reporter, applied, len(upload.entries))
        return applied

    def _grow(self, info: DirectoryCarInfo) -> None:
        short = len(self.alerts) - info.misses.size
        if short > 0:
            info.misses = np.concatenate([info.misses, np.zeros(short, dtype=int)])

    def _find_or_insert(self, alert: AlertObservation) -> int:
        index = self._alert_index.get(alert.key)
        if index is not None:
            return index
        cell = grid_cell(alert.longitude, alert.latitude, self.policy.grid_km)
        self.alerts.append(DirectoryAlertInfo(alert, cell))
        index = len(self.alerts) - 1
        self._alert_index[alert.key] = index
        for info in self.cars.values():
            self._grow(info)
        log.info("alert_logged t=%.3f id=%s kind=%s cell=%s",
                 self.now, alert.msg_id, alert.kind.name, cell)
        return index

    def receive_alerts(self, upload: AlertUpload) -> None:
        """Merge an alert upload and mark what each reported car confirmed."""
        columns = [self._find_or_insert(a) for a in upload.alerts]

        for row, car_id in enumerate(upload.car_ids):
            info = self.cars.get(car_id)
            if info is None:
                # Keep the confirmations until the car's location arrives.
                log.debug("alert_ack_unlocated_car t=%.3f car=%s", self.now, car_id)
                info = self._new_car(car_id)
            self._grow(info)
            for col, index in enumerate(columns):
                if upload.ack_matrix[row, col]:
                    info.misses[index] = -1

        if self.alerts and self.resend_at is None:
            self.resend_at = self.now + self.policy.alert_resend_interval
            self._ctx.clock.request_wake(self.resend_at)

    # ── Escalation ────────────────────────────────────────────────────────────

    def update_time(self) -> None:
        if self.resend_at is not None and self.resend_at <= self.now:
            self.sweep()
        if self.resend_at is not None:
            self._ctx.clock.request_wake(self.resend_at)

    def missing_alerts(self, info: DirectoryCarInfo) -> List[int]:
        """Unconfirmed alert indices inside *info*'s box and locality radius."""
        missing = []
        loc = info.location
        radius_sqr = info.radius_km * info.radius_km
        for index, count in enumerate(info.misses):
            if count < 0:
                continue
            alert = self.alerts[index]
            if not info.contains(alert.cell):
                continue
            obs = alert.observation
            if distance_sqr_km(loc.latitude, loc.longitude,
                               obs.latitude, obs.longitude) > radius_sqr:
                continue
            missing.append(index)
        return missing

    def collect(self) -> Dict[int, CellBatch]:
        """Group every car's missing alerts by the car's grid cell."""
        cells: Dict[int, CellBatch] = {}
        for info in self.cars.values():
            if info.location is None or info.misses.size == 0:
                continue
            missing = self.missing_alerts(info)
            if not missing:
                continue
            score = int(info.misses[missing].max())
            key = cell_key(info.cell, self.policy.grid_id_xmult)
            batch = cells.get(key)
            if batch is None:
                batch = cells[key] = CellBatch(key, info.cell)
            batch.add(info.car_id, missing, score)
        return cells

    def sweep(self) -> Dict[int, List[int]]:
        """Push missing alerts to each cell's relay and overdue cars.

        Returns
        -------
        dict
            Cell key to the car ids a batch was successfully delivered to.
        """
        self._ctx.metrics.sweeps += 1
        cells = self.collect()
        delivered: Dict[int, List[int]] = {}

        for key, batch in cells.items():
            targets = batch.targets(self.policy.alert_miss_limit)
            sent: List[int] = []
            for car_id in targets:
                info = self.cars[car_id]
                # Never resend what this car has already confirmed.
                indices = [i for i in batch.alerts if info.misses[i] >= 0]
                payload = AlertBatch(tuple(self.alerts[i].observation for i in indices))
                if self._ctx.backhaul.deliver_to_car(car_id, payload):
                    info.misses[indices] = -1
                    sent.append(car_id)
                else:
                    log.info("car_gone t=%.3f car=%s", self.now, car_id)
                    self.cars.pop(car_id, None)
            for car_id, missing in batch.members.items():
                if car_id in targets:
                    continue
                self.cars[car_id].misses[missing] += 1
            delivered[key] = sent
            log.debug("cell t=%.3f cell=%s alerts=%d members=%d relay=%s sent=%s",
                      self.now, batch.cell, len(batch.alerts), len(batch.members),
                      batch.relay, sent)

        if self.alerts:
            self.resend_at = self.now + self.policy.alert_resend_interval
        else:
            self.resend_at = None
        log.info("sweep t=%.3f cells=%d alerts=%d cars=%d",
                 self.now, len(cells), len(self.alerts), len(self.cars))
        return delivered

    def __repr__(self) -> str:
        return f"<Directory cars={len(self.cars)} alerts={len(self.alerts)}>"
