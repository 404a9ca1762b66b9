"""
sim/car.py
==========
A single car running the flooding protocol.  Each car:
  - follows a :class:`~sim.route.Route` and refreshes its position on demand
  - broadcasts its location on a fixed period
  - filters, deduplicates, stores and rebroadcasts what it hears
  - accumulates hazard alerts and which peers are known to hold them
  - uploads locations and alerts to the directory with jittered backoff
  - re-floods alert batches pushed down by the directory

All timers are plain ``Optional[float]`` deadlines; ``None`` means idle.
:meth:`Car.update_time` runs whichever are due and asks the clock to wake
it at the earliest one still pending.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

import numpy as np

from bus.message import (
    AlertBatch,
    AlertKey,
    AlertObservation,
    AlertUpload,
    FloodMessage,
    LocationEntry,
    LocationReport,
    LocationUpload,
    MessageId,
    MessageKind,
    next_seq,
    parse_kind,
)
from bus.utils import JitteredBackoff
from sim.geo import distance_sqr_km

if TYPE_CHECKING:
    from sim.context import SimContext
    from sim.route import Route

log = logging.getLogger("car")


class Reception(Enum):
    """Outcome of :meth:`Car.receive`."""

    ACCEPTED = "accepted"
    WEAK = "weak"
    FAR = "far"
    DUPLICATE = "duplicate"
    UNKNOWN_KIND = "unknown_kind"
    EXPIRED = "expired"


@dataclass
class ReceivedMessageEntry:
    """A row of the received message table.

    ``resend_time`` of 0.0 means the message was already rebroadcast or is
    never to be (own messages).  Age is counted from ``received_at`` so an
    alert re-flooded long after it was raised is still held for the full
    expiration interval.
    """

    message: FloodMessage
    received_count: int
    resend_time: float
    received_at: float


@dataclass
class CarAckRecord:
    """Which of this car's alerts another car is known to hold.

    ``received[i]`` refers to ``Car.alerts[i]``; the list may be longer or
    shorter than the alert table.
    """

    car_id: int
    received: List[bool] = field(default_factory=list)
    received_count: int = 0


def _swap_remove(items: list, index: int) -> None:
    """Remove ``items[index]`` by moving the last element into its slot."""
    last = items.pop()
    if index < len(items):
        items[index] = last


class Car:
    """
    One car on the road.

    Parameters
    ----------
    car_id : int
        Unique identifier issued by the directory.
    route : Route
        Route the car follows from its creation time.
    context : SimContext
        Clock, random stream, policy, metrics and the shared transports.
    """

    def __init__(self, car_id: int, route: "Route", context: "SimContext") -> None:
        self.id = car_id
        self.route = route
        self._ctx = context
        self.policy = context.policy

        self.created_at = context.now
        self.location: Optional[LocationReport] = None
        self.expired = False
        self._seq = 0

        self.received: List[ReceivedMessageEntry] = []
        self.alerts: List[AlertObservation] = []
        self.car_acks: List[CarAckRecord] = []
        self._alerts_announced = True

        # Timers (absolute simulation times, None = idle).
        self.expire_at: Optional[float] = None
        self.resend_at: Optional[float] = None
        self.location_send_at: Optional[float] = self.created_at
        self.location_log_at: Optional[float] = None
        self.alert_log_at: Optional[float] = None

        p = self.policy
        self.location_backoff = JitteredBackoff(
            context.rng,
            p.location_log_interval,
            p.location_log_interval_fract,
            p.location_log_interval_adj,
            p.location_log_interval_backoff,
        )
        self.alert_backoff = JitteredBackoff(
            context.rng,
            p.alert_log_interval,
            p.alert_log_interval_fract,
            p.alert_log_interval_adj,
            p.alert_log_interval_backoff,
        )

        self.refresh_location()
        log.info("car_created t=%.3f car=%s route=%s", self.created_at, self.id, route)

    # ── Position ──────────────────────────────────────────────────────────────

    @property
    def now(self) -> float:
        return self._ctx.now

    def refresh_location(self) -> bool:
        """Update :attr:`location` for the current time.

        Returns False (and marks the car expired) once the route has ended.
        """
        if self.expired:
            return False
        report = self.route.position_at(self.now - self.created_at, self.created_at)
        if report is None:
            self.expired = True
            log.info("route_expired t=%.3f car=%s", self.now, self.id)
            return False
        self.location = report
        return True

    # ── Timer handling ────────────────────────────────────────────────────────

    def _wake(self, when: float) -> None:
        self._ctx.clock.request_wake(when)

    def _due(self, when: Optional[float]) -> bool:
        return when is not None and when <= self.now

    def update_time(self) -> bool:
        """Run every timer that is due and schedule the next wake.

        Returns
        -------
        bool
            False if the route has ended; the owner removes the car.
        """
        if not self.refresh_location():
            return False

        next_timer = self.now + self.policy.next_update_interval

        if self._due(self.expire_at):
            self.expire_messages()
        if self._due(self.resend_at):
            self.rebroadcast_messages()
        if self._due(self.location_send_at):
            self.send_location()
        if self._due(self.location_log_at):
            self.log_locations()
        if self._due(self.alert_log_at):
            self.log_alerts()

        for pending in (
            self.expire_at,
            self.resend_at,
            self.location_send_at,
            self.location_log_at,
            self.alert_log_at,
        ):
            if pending is not None and pending < next_timer:
                next_timer = pending

        self._wake(next_timer)
        return True

    def expire_messages(self) -> None:
        """Drop table rows at least ``msg_expire_interval`` old."""
        interval = self.policy.msg_expire_interval
        kept = []
        for entry in self.received:
            if entry.received_at + interval <= self.now:
                log.debug("expire t=%.3f car=%s msg=%s", self.now, self.id, entry.message)
            else:
                kept.append(entry)
        self.received = kept

        if kept:
            self.expire_at = min(e.received_at for e in kept) + interval
        else:
            self.expire_at = None

    def rebroadcast_messages(self) -> None:
        """Resend every due entry that has not been heard too often already.

        Entries heard ``msg_receive_max`` times or more stay pending but are
        not rescheduled.
        """
        next_resend: Optional[float] = None
        for entry in self.received:
            if entry.resend_time <= 0.0:
                continue
            if entry.resend_time <= self.now:
                if entry.received_count < self.policy.msg_receive_max:
                    self._send(entry.message)
                    self._ctx.metrics.rebroadcasts += 1
                    entry.resend_time = 0.0
            elif next_resend is None or entry.resend_time < next_resend:
                next_resend = entry.resend_time
        self.resend_at = next_resend

    # ── Sending ───────────────────────────────────────────────────────────────

    def _send(self, message: FloodMessage) -> None:
        """Put *message* on the air from the current position."""
        self._ctx.radio.broadcast(
            self.id, self.location.latitude, self.location.longitude, message,
        )

    def _remember_own(self, message: FloodMessage) -> None:
        # Stored with count 0 and no resend so echoes are seen as duplicates.
        self.received.append(ReceivedMessageEntry(message, 0, 0.0, self.now))
        if self.expire_at is None:
            self.expire_at = self.now + self.policy.msg_expire_interval
            self._wake(self.expire_at)

    def transmit(
        self,
        kind: MessageKind,
        car_ids: Sequence[int] = (),
        alert_keys: Sequence[AlertKey] = (),
        ack_matrix: Optional[np.ndarray] = None,
    ) -> FloodMessage:
        """Build a new message with the next sequence number and broadcast it."""
        self._seq = next_seq(self._seq)
        message = FloodMessage(
            msg_id=MessageId(self.id, self._seq),
            origin=self.location,
            kind=int(kind),
            car_ids=tuple(car_ids),
            alert_keys=tuple(alert_keys),
            ack_matrix=ack_matrix,
        )
        log.debug("send t=%.3f car=%s msg=%s", self.now, self.id, message)
        self._send(message)
        self._remember_own(message)
        return message

    def send_location(self) -> None:
        """Periodic location broadcast; also announces a changed alert set."""
        self.transmit(MessageKind.LOCATION)
        self.location_send_at = self.now + self.policy.location_send_interval
        self._arm_location_log()

        if self.alerts and not self._alerts_announced:
            self.announce_alerts()

    def announce_alerts(self) -> FloodMessage:
        """Tell peers which alerts this car holds (a CAR_ACK message)."""
        message = self.transmit(
            MessageKind.CAR_ACK, alert_keys=[a.key for a in self.alerts],
        )
        self._alerts_announced = True
        return message

    def _arm_location_log(self) -> None:
        soon = self.now + self.policy.location_log_interval
        if self.location_log_at is None or self.location_log_at > soon:
            self.location_log_at = soon
            self._wake(soon)

    def _arm_alert_log(self) -> None:
        self.alert_log_at = self.now + self.alert_backoff.next_interval()
        self._wake(self.alert_log_at)

    def _add_alert(self, alert: AlertObservation) -> bool:
        if any(a.key == alert.key for a in self.alerts):
            return False
        if not self.alerts:
            self._arm_alert_log()
        self.alerts.append(alert)
        self._alerts_announced = False
        return True

    def generate_alert(self, kind: MessageKind) -> Optional[AlertObservation]:
        """Originate a hazard alert at the car's current position."""
        if not self.refresh_location():
            return None
        if not kind.is_alert:
            raise ValueError(f"{kind!r} is not a hazard alert kind")

        message = self.transmit(kind)
        alert = AlertObservation(
            msg_id=message.msg_id,
            kind=kind,
            longitude=message.origin.longitude,
            latitude=message.origin.latitude,
            time=message.time,
        )
        self._add_alert(alert)
        self._ctx.metrics.alerts_generated += 1
        log.info("alert_generated t=%.3f car=%s kind=%s id=%s",
                 self.now, self.id, kind.name, alert.msg_id)
        return alert

    # ── Uploads ───────────────────────────────────────────────────────────────

    def log_locations(self) -> LocationUpload:
        """Upload every known car location and announce the upload to peers."""
        entries = [LocationEntry(self.id, self.location)]
        for entry in self.received:
            message = entry.message
            if message.kind == MessageKind.LOCATION and message.sender_id != self.id:
                entries.append(LocationEntry(message.sender_id, message.origin))

        upload = LocationUpload(reporter=self.id, entries=tuple(entries))
        log.info("location_upload t=%.3f car=%s cars=%d", self.now, self.id, len(entries))
        self._ctx.backhaul.upload_to_directory(upload)

        self.transmit(
            MessageKind.LOCATION_TABLE_ACK, car_ids=[e.car_id for e in entries],
        )

        self.location_backoff.reset()
        self.location_log_at = self.now + self.location_backoff.next_interval()
        self._wake(self.location_log_at)
        return upload

    def alert_ack_matrix(self) -> Tuple[List[int], np.ndarray]:
        """Car ids and the ``[car, alert]`` matrix of who holds which alert.

        Row 0 is this car, which holds all of them.
        """
        count = len(self.alerts)
        car_ids = [self.id] + [r.car_id for r in self.car_acks]
        matrix = np.zeros((len(car_ids), count), dtype=bool)
        matrix[0, :] = True
        for row, record in enumerate(self.car_acks, start=1):
            bits = record.received[:count]
            matrix[row, :len(bits)] = bits
        return car_ids, matrix

    def log_alerts(self) -> AlertUpload:
        """Upload alerts and peer acknowledgements, then start afresh."""
        car_ids, matrix = self.alert_ack_matrix()
        upload = AlertUpload(
            reporter=self.id,
            car_ids=tuple(car_ids),
            alerts=tuple(self.alerts),
            ack_matrix=matrix,
        )
        log.info("alert_upload t=%.3f car=%s alerts=%d cars=%d",
                 self.now, self.id, len(self.alerts), len(car_ids))
        self._ctx.backhaul.upload_to_directory(upload)

        self.transmit(
            MessageKind.ALERT_TABLE_ACK,
            car_ids=car_ids,
            alert_keys=[a.key for a in self.alerts],
            ack_matrix=matrix,
        )

        self.alerts = []
        self.car_acks = []
        self._alerts_announced = True
        self.alert_backoff.reset()
        self.alert_log_at = None
        return upload

    # ── Reception ─────────────────────────────────────────────────────────────

    def receive(
        self,
        sender_lat: float,
        sender_lon: float,
        tx_clarity: float,
        rx_clarity: float,
        message: FloodMessage,
    ) -> Reception:
        """Radio reception pipeline.

        Parameters
        ----------
        sender_lat, sender_lon : float
            Position of the transmitter (originator or rebroadcaster).
        tx_clarity, rx_clarity : float
            Clarity drawn by the channel for this transmission / this receiver.
        message : FloodMessage
            What was sent.
        """
        metrics = self._ctx.metrics
        if not self.refresh_location():
            return Reception.EXPIRED
        here = self.location

        dist_sqr = distance_sqr_km(here.latitude, here.longitude, sender_lat, sender_lon)
        strength = (tx_clarity * rx_clarity) / dist_sqr if dist_sqr > 0.0 else math.inf
        if strength < self.policy.signal_str_min:
            metrics.rx_weak += 1
            log.debug("rx_weak t=%.3f car=%s strength=%.4g msg=%s",
                      self.now, self.id, strength, message)
            return Reception.WEAK

        kind = parse_kind(message.kind)
        if kind is None:
            metrics.rx_unknown += 1
            log.warning("rx_unknown_kind t=%.3f car=%s kind=%s msg_id=%s",
                        self.now, self.id, message.kind, message.msg_id)
            return Reception.UNKNOWN_KIND

        loc_index = -1
        for index, entry in enumerate(self.received):
            known = entry.message
            if known.msg_id == message.msg_id:
                entry.received_count += 1
                metrics.rx_duplicate += 1
                log.debug("rx_duplicate t=%.3f car=%s msg=%s count=%d",
                          self.now, self.id, message, entry.received_count)
                return Reception.DUPLICATE
            if (
                kind == MessageKind.LOCATION
                and known.kind == MessageKind.LOCATION
                and known.sender_id == message.sender_id
            ):
                loc_index = index

        origin = message.origin
        speed = max(here.speed, origin.speed)
        radius = self.policy.locality_radius_km(speed)
        dist_sqr = distance_sqr_km(here.latitude, here.longitude,
                                   origin.latitude, origin.longitude)
        if dist_sqr > radius * radius:
            metrics.rx_far += 1
            log.debug("rx_far t=%.3f car=%s dist=%.3f radius=%.3f msg=%s",
                      self.now, self.id, math.sqrt(dist_sqr), radius, message)
            return Reception.FAR

        resend_time = self.now + self.policy.msg_resend_interval / (dist_sqr + 1.0)
        entry = ReceivedMessageEntry(message, 1, resend_time, self.now)
        if loc_index >= 0:
            self.received[loc_index] = entry
        else:
            self.received.append(entry)
        if self.expire_at is None:
            self.expire_at = self.now + self.policy.msg_expire_interval
            self._wake(self.expire_at)

        if self.resend_at is None or self.resend_at > resend_time:
            self.resend_at = resend_time
            self._wake(resend_time)

        metrics.rx_accepted += 1
        log.debug("rx_accepted t=%.3f car=%s msg=%s resend=%.3f",
                  self.now, self.id, message, resend_time)

        if kind == MessageKind.LOCATION:
            self._arm_location_log()
        elif kind.is_alert:
            self._add_alert(AlertObservation(
                msg_id=message.msg_id,
                kind=kind,
                longitude=origin.longitude,
                latitude=origin.latitude,
                time=message.time,
            ))
        elif kind == MessageKind.LOCATION_TABLE_ACK:
            self._on_location_table_ack(message)
        elif kind == MessageKind.ALERT_TABLE_ACK:
            self._on_alert_table_ack(message)
        elif kind == MessageKind.CAR_ACK:
            self._on_car_ack(message)
        return Reception.ACCEPTED

    def _on_location_table_ack(self, message: FloodMessage) -> None:
        if self.id not in message.car_ids:
            return
        self.location_log_at = self.now + self.location_backoff.next_interval()
        self._wake(self.location_log_at)
        log.debug("location_logged_by_peer t=%.3f car=%s peer=%s next=%.3f",
                  self.now, self.id, message.sender_id, self.location_log_at)

    def _on_alert_table_ack(self, message: FloodMessage) -> int:
        """Drop the alerts a peer has logged on this car's behalf."""
        if self.id not in message.car_ids or message.ack_matrix is None:
            return 0
        row = message.ack_matrix[message.car_ids.index(self.id)]
        logged = {key for key, flag in zip(message.alert_keys, row) if flag}

        removed = 0
        index = 0
        while index < len(self.alerts):
            if self.alerts[index].key in logged:
                self.remove_alert(index)
                removed += 1
                # The last alert now sits at *index*; look at it again.
                continue
            index += 1

        if removed:
            if self.alerts:
                self._arm_alert_log()
            else:
                self.alert_log_at = None
            log.debug("alerts_logged_by_peer t=%.3f car=%s peer=%s removed=%d left=%d",
                      self.now, self.id, message.sender_id, removed, len(self.alerts))
        return removed

    def _on_car_ack(self, message: FloodMessage) -> None:
        peer = message.sender_id
        held = set(message.alert_keys)
        record = CarAckRecord(peer)
        record.received = [a.key in held for a in self.alerts]
        record.received_count = sum(record.received)

        index = next(
            (i for i, r in enumerate(self.car_acks) if r.car_id == peer), -1,
        )
        if record.received_count > 0:
            if index < 0:
                self.car_acks.append(record)
            else:
                self.car_acks[index] = record
        elif index >= 0:
            _swap_remove(self.car_acks, index)

    # ── Alert table maintenance ───────────────────────────────────────────────

    def remove_alert(self, index: int) -> AlertObservation:
        """Remove ``alerts[index]``, moving the last alert into its slot."""
        replacement = len(self.alerts) - 1
        self._purge_alert_bits(index, replacement)
        alert = self.alerts[index]
        _swap_remove(self.alerts, index)
        return alert

    def _purge_alert_bits(self, alert_no: int, alert_replace: int) -> None:
        """Keep every :class:`CarAckRecord` in step with an alert removal."""
        car_no = 0
        while car_no < len(self.car_acks):
            record = self.car_acks[car_no]
            bits = record.received
            if len(bits) > alert_no:
                if bits[alert_no]:
                    record.received_count -= 1
                if len(bits) > alert_replace:
                    bits[alert_no] = bits[alert_replace]
                    bits[alert_replace] = False
                else:
                    bits[alert_no] = False

                if record.received_count <= 0:
                    _swap_remove(self.car_acks, car_no)
                    continue
            car_no += 1

    # ── Cellular ──────────────────────────────────────────────────────────────

    def receive_cell_message(self, batch: AlertBatch) -> bool:
        """Take alerts pushed by the directory and flood them locally.

        Returns False if the car's route has already ended.
        """
        if not isinstance(batch, AlertBatch):
            log.warning("cell_unknown t=%.3f car=%s type=%s",
                        self.now, self.id, type(batch).__name__)
            return True
        if not self.refresh_location():
            return False

        log.info("cell_alerts t=%.3f car=%s alerts=%d", self.now, self.id, len(batch.alerts))
        for alert in batch.alerts:
            # Flood every alert in the batch, held or not.
            self._add_alert(alert)
            message = FloodMessage(
                msg_id=alert.msg_id,
                origin=LocationReport(alert.longitude, alert.latitude, 0.0, 0.0, alert.time),
                kind=int(alert.kind),
            )
            self._send(message)
            if not any(e.message.msg_id == message.msg_id for e in self.received):
                self._remember_own(message)
        return True

    def __repr__(self) -> str:
        return (
            f"<Car {self.id} msgs={len(self.received)} alerts={len(self.alerts)} "
            f"acks={len(self.car_acks)}{' expired' if self.expired else ''}>"
        )
