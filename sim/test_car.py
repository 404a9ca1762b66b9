#!/usr/bin/env python3
"""
Protocol tests for a single car: reception filtering, deduplication,
alert bookkeeping and acknowledgements.
"""

from __future__ import annotations

import math
import unittest
from typing import Sequence

import numpy as np

from bus.message import (
    AlertBatch,
    AlertObservation,
    FloodMessage,
    LocationReport,
    MessageId,
    MessageKind,
)
from sim.car import Car, Reception
from sim.geo import LAT2KM, distance_sqr_km
from sim.policy import ProtocolPolicy
from sim.route import Route
from sim.simulation import Simulation

_BASE_LAT = 40.1
_BASE_LON = -100.2

# Perfect radio: every clarity draw is 1.0.
_PERFECT = ProtocolPolicy(tx_clarity_range=0.0, rx_clarity_range=0.0)


def _parked(north_km: float = 0.0, duration: float = 1e6) -> Route:
    """A car standing still *north_km* north of the base point."""
    return Route(_BASE_LON, _BASE_LAT + north_km / LAT2KM, 0.0, 0.0, duration)


def _sim(policy: ProtocolPolicy = _PERFECT) -> Simulation:
    return Simulation(seed=11, horizon=1000.0, policy=policy, routes=[])


def _message(
    sender: int,
    seq: int,
    kind: int,
    origin: LocationReport,
    car_ids: Sequence[int] = (),
    alert_keys=(),
    ack_matrix=None,
) -> FloodMessage:
    return FloodMessage(
        msg_id=MessageId(sender, seq),
        origin=origin,
        kind=kind,
        car_ids=tuple(car_ids),
        alert_keys=tuple(alert_keys),
        ack_matrix=ack_matrix,
    )


def _hear(car: Car, message: FloodMessage) -> Reception:
    """Deliver *message* to *car* as if sent from its origin with perfect clarity."""
    return car.receive(message.origin.latitude, message.origin.longitude, 1.0, 1.0, message)


class ReceptionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sim = _sim()
        self.a = self.sim.spawn_car(_parked(0.0))

    def test_close_pair_accepts_location(self) -> None:
        b = self.sim.spawn_car(_parked(0.05))
        msg = _message(self.a.id, 1, MessageKind.LOCATION, self.a.location)

        result = b.receive(self.a.location.latitude, self.a.location.longitude, 1.0, 1.0, msg)

        self.assertEqual(result, Reception.ACCEPTED)
        self.assertEqual(len(b.received), 1)
        entry = b.received[0]
        self.assertEqual(entry.received_count, 1)
        self.assertGreater(entry.resend_time, self.sim.now)
        self.assertIsNotNone(b.expire_at)

    def test_distant_pair_rejects_as_weak(self) -> None:
        b = self.sim.spawn_car(_parked(2.0))
        msg = _message(self.a.id, 1, MessageKind.LOCATION, self.a.location)

        result = b.receive(self.a.location.latitude, self.a.location.longitude, 1.0, 1.0, msg)

        self.assertEqual(result, Reception.WEAK)
        self.assertEqual(b.received, [])
        self.assertEqual(self.sim.metrics.rx_weak, 1)

    def test_signal_equal_to_threshold_is_accepted(self) -> None:
        b = self.sim.spawn_car(_parked(0.1))
        here = b.location
        there = self.a.location
        dist_sqr = distance_sqr_km(here.latitude, here.longitude, there.latitude, there.longitude)
        tx = dist_sqr * self.sim.policy.signal_str_min

        at_threshold = _message(self.a.id, 1, MessageKind.LOCATION, there)
        self.assertEqual(
            b.receive(there.latitude, there.longitude, tx, 1.0, at_threshold),
            Reception.ACCEPTED,
        )

        below = _message(self.a.id, 2, MessageKind.LOCATION, there)
        self.assertEqual(
            b.receive(there.latitude, there.longitude, math.nextafter(tx, 0.0), 1.0, below),
            Reception.WEAK,
        )

    def test_far_origin_is_rejected_by_locality(self) -> None:
        b = self.sim.spawn_car(_parked(0.05))
        # Heard from a nearby relay, but the originator stood 5 km away.
        origin = LocationReport(_BASE_LON, _BASE_LAT + 5.0 / LAT2KM, 0.0, 0.0, 0.0)
        msg = _message(99, 1, MessageKind.LOCATION, origin)

        result = b.receive(self.a.location.latitude, self.a.location.longitude, 1.0, 1.0, msg)

        self.assertEqual(result, Reception.FAR)
        self.assertEqual(b.received, [])

    def test_duplicate_only_bumps_the_counter(self) -> None:
        b = self.sim.spawn_car(_parked(0.05))
        msg = _message(self.a.id, 1, MessageKind.ALERT_SLICK, self.a.location)

        self.assertEqual(_hear(b, msg), Reception.ACCEPTED)
        resend = b.received[0].resend_time
        self.assertEqual(_hear(b, msg), Reception.DUPLICATE)

        self.assertEqual(len(b.received), 1)
        self.assertEqual(b.received[0].received_count, 2)
        self.assertEqual(b.received[0].resend_time, resend)
        self.assertEqual(len(b.alerts), 1)

    def test_unknown_kind_is_ignored(self) -> None:
        b = self.sim.spawn_car(_parked(0.05))
        msg = _message(self.a.id, 1, 7, self.a.location)

        self.assertEqual(_hear(b, msg), Reception.UNKNOWN_KIND)
        self.assertEqual(b.received, [])
        self.assertEqual(self.sim.metrics.rx_unknown, 1)

    def test_newer_location_replaces_older_from_same_sender(self) -> None:
        b = self.sim.spawn_car(_parked(0.05))
        first = _message(42, 1, MessageKind.LOCATION, self.a.location)
        second = _message(42, 2, MessageKind.LOCATION, self.a.location)
        other = _message(43, 1, MessageKind.LOCATION, self.a.location)

        for msg in (first, other, second):
            self.assertEqual(_hear(b, msg), Reception.ACCEPTED)

        ids = [e.message.msg_id for e in b.received]
        self.assertEqual(ids, [MessageId(42, 2), MessageId(43, 1)])

    def test_own_echo_is_a_duplicate(self) -> None:
        b = self.sim.spawn_car(_parked(0.05))
        sent = b.transmit(MessageKind.LOCATION)

        self.assertEqual(_hear(b, sent), Reception.DUPLICATE)
        own = [e for e in b.received if e.message.msg_id == sent.msg_id]
        self.assertEqual(len(own), 1)
        self.assertEqual(own[0].resend_time, 0.0)


class AlertTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sim = _sim()
        self.a = self.sim.spawn_car(_parked(0.0))
        self.b = self.sim.spawn_car(_parked(0.05))

    def _alert_from(self, sender: int, seq: int = 1) -> AlertObservation:
        origin = self.a.location
        msg = _message(sender, seq, MessageKind.ALERT_BLOCKED, origin)
        self.assertEqual(_hear(self.b, msg), Reception.ACCEPTED)
        return self.b.alerts[-1]

    def _table_ack(self, sender: int, seq: int, alerts, logged) -> FloodMessage:
        keys = [a.key for a in alerts]
        matrix = np.array([logged], dtype=bool)
        return _message(
            sender, seq, MessageKind.ALERT_TABLE_ACK, self.a.location,
            car_ids=[self.b.id], alert_keys=keys, ack_matrix=matrix,
        )

    def test_generated_alert_arrives_unchanged(self) -> None:
        alert = self.a.generate_alert(MessageKind.ALERT_SLICK)

        self.assertIsNotNone(alert)
        self.assertEqual(self.b.alerts, [alert])
        got = self.b.alerts[0]
        self.assertEqual(got.msg_id, alert.msg_id)
        self.assertEqual(got.kind, MessageKind.ALERT_SLICK)
        self.assertEqual((got.longitude, got.latitude), (alert.longitude, alert.latitude))
        self.assertEqual(got.time, alert.time)
        self.assertIsNotNone(self.b.alert_log_at)
        self.assertEqual(self.sim.metrics.alerts_generated, 1)

    def test_generate_rejects_non_alert_kind(self) -> None:
        with self.assertRaises(ValueError):
            self.a.generate_alert(MessageKind.LOCATION)

    def test_alert_table_ack_is_idempotent(self) -> None:
        alert = self._alert_from(50)
        self.assertEqual(_hear(self.b, self._table_ack(60, 1, [alert], [True])), Reception.ACCEPTED)
        self.assertEqual(self.b.alerts, [])
        self.assertIsNone(self.b.alert_log_at)

        acks_before = list(self.b.car_acks)
        self.assertEqual(_hear(self.b, self._table_ack(60, 2, [alert], [True])), Reception.ACCEPTED)
        self.assertEqual(self.b.alerts, [])
        self.assertEqual(self.b.car_acks, acks_before)
        self.assertIsNone(self.b.alert_log_at)

    def test_removal_revisits_swapped_in_slot(self) -> None:
        first = self._alert_from(50)
        middle = self._alert_from(51)
        last = self._alert_from(52)

        ack = self._table_ack(60, 1, [first, last], [True, True])
        self.assertEqual(_hear(self.b, ack), Reception.ACCEPTED)

        self.assertEqual(self.b.alerts, [middle])
        self.assertIsNotNone(self.b.alert_log_at)

    def test_table_ack_for_other_car_changes_nothing(self) -> None:
        alert = self._alert_from(50)
        msg = _message(
            60, 1, MessageKind.ALERT_TABLE_ACK, self.a.location,
            car_ids=[self.b.id + 100], alert_keys=[alert.key],
            ack_matrix=np.array([[True]]),
        )
        _hear(self.b, msg)
        self.assertEqual(self.b.alerts, [alert])

    def test_car_ack_creates_updates_and_drops_record(self) -> None:
        first = self._alert_from(50)
        second = self._alert_from(51)

        ack = _message(70, 1, MessageKind.CAR_ACK, self.a.location, alert_keys=[second.key])
        _hear(self.b, ack)
        self.assertEqual(len(self.b.car_acks), 1)
        record = self.b.car_acks[0]
        self.assertEqual(record.car_id, 70)
        self.assertEqual(record.received, [False, True])
        self.assertEqual(record.received_count, 1)

        ack = _message(70, 2, MessageKind.CAR_ACK, self.a.location, alert_keys=[first.key, second.key])
        _hear(self.b, ack)
        self.assertEqual(len(self.b.car_acks), 1)
        self.assertEqual(self.b.car_acks[0].received_count, 2)

        ack = _message(70, 3, MessageKind.CAR_ACK, self.a.location, alert_keys=[])
        _hear(self.b, ack)
        self.assertEqual(self.b.car_acks, [])

    def test_alert_removal_purges_ack_bits(self) -> None:
        first = self._alert_from(50)
        second = self._alert_from(51)
        _hear(self.b, _message(70, 1, MessageKind.CAR_ACK, self.a.location,
                               alert_keys=[first.key, second.key]))
        _hear(self.b, _message(71, 1, MessageKind.CAR_ACK, self.a.location,
                               alert_keys=[first.key]))

        _hear(self.b, self._table_ack(60, 1, [first], [True]))

        self.assertEqual(self.b.alerts, [second])
        self.assertEqual(len(self.b.car_acks), 1)
        record = self.b.car_acks[0]
        self.assertEqual(record.car_id, 70)
        self.assertEqual(record.received_count, 1)
        self.assertTrue(record.received[0])

    def test_ack_matrix_puts_uploader_first(self) -> None:
        first = self._alert_from(50)
        second = self._alert_from(51)
        _hear(self.b, _message(70, 1, MessageKind.CAR_ACK, self.a.location,
                               alert_keys=[second.key]))

        car_ids, matrix = self.b.alert_ack_matrix()

        self.assertEqual(car_ids, [self.b.id, 70])
        self.assertEqual(matrix.shape, (2, 2))
        self.assertTrue(matrix[0].all())
        self.assertEqual(matrix[1].tolist(), [False, True])
        self.assertEqual([a.key for a in self.b.alerts], [first.key, second.key])

    def test_log_alerts_uploads_and_clears(self) -> None:
        self._alert_from(50)
        self._alert_from(51)

        upload = self.b.log_alerts()

        self.assertEqual(len(upload.alerts), 2)
        self.assertEqual(upload.car_ids[0], self.b.id)
        self.assertEqual(self.b.alerts, [])
        self.assertEqual(self.b.car_acks, [])
        self.assertIsNone(self.b.alert_log_at)
        self.assertEqual(len(self.sim.directory.alerts), 2)
        self.assertEqual(self.sim.metrics.alert_uploads, 1)

    def test_cell_batch_is_always_reflooded(self) -> None:
        origin = LocationReport(_BASE_LON, _BASE_LAT, 0.0, 0.0, 0.0)
        alert = AlertObservation(MessageId(90, 5), MessageKind.ALERT_SLOW,
                                 origin.longitude, origin.latitude, 0.0)
        broadcasts = self.sim.metrics.broadcasts

        self.assertTrue(self.b.receive_cell_message(AlertBatch((alert,))))
        self.assertEqual(self.b.alerts, [alert])
        self.assertEqual(self.a.alerts, [alert])
        self.assertEqual(self.sim.metrics.broadcasts, broadcasts + 1)
        own = [e for e in self.b.received if e.message.msg_id == alert.msg_id]
        self.assertEqual(len(own), 1)

        # Held alerts go out again, without growing the tables.
        self.assertTrue(self.b.receive_cell_message(AlertBatch((alert,))))
        self.assertEqual(self.sim.metrics.broadcasts, broadcasts + 2)
        self.assertEqual(self.b.alerts, [alert])
        own = [e for e in self.b.received if e.message.msg_id == alert.msg_id]
        self.assertEqual(len(own), 1)

    def test_held_alert_reaches_a_newcomer(self) -> None:
        alert = self._alert_from(80)
        c = self.sim.spawn_car(_parked(0.1))
        self.assertEqual(c.alerts, [])

        self.assertTrue(self.b.receive_cell_message(AlertBatch((alert,))))

        self.assertEqual(c.alerts, [alert])


class TimerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sim = _sim()

    def test_sequence_wraps_to_zero(self) -> None:
        car = self.sim.spawn_car(_parked())
        car._seq = 62
        self.assertEqual(car.transmit(MessageKind.LOCATION).msg_id.seq, 63)
        self.assertEqual(car.transmit(MessageKind.LOCATION).msg_id.seq, 0)

    def test_no_id_reuse_within_expiry_window(self) -> None:
        sim = Simulation(seed=5, horizon=300.0, policy=_PERFECT, routes=[])
        cars = [sim.spawn_car(_parked(0.05 * i)) for i in range(4)]
        while sim.step():
            for car in cars:
                own = [e.message.msg_id for e in car.received if e.message.sender_id == car.id]
                self.assertEqual(len(own), len(set(own)), msg=f"car {car.id} at t={sim.now}")

    def test_rebroadcast_once_then_stop(self) -> None:
        a = self.sim.spawn_car(_parked(0.0))
        b = self.sim.spawn_car(_parked(0.05))
        msg = _message(80, 1, MessageKind.LOCATION, a.location)
        _hear(b, msg)

        self.sim.clock.now = b.resend_at
        b.rebroadcast_messages()

        self.assertEqual(self.sim.metrics.rebroadcasts, 1)
        self.assertEqual(b.received[0].resend_time, 0.0)
        self.assertIsNone(b.resend_at)

    def test_heard_too_often_is_not_rebroadcast(self) -> None:
        b = self.sim.spawn_car(_parked(0.05))
        origin = LocationReport(_BASE_LON, _BASE_LAT, 0.0, 0.0, 0.0)
        msg = _message(80, 1, MessageKind.LOCATION, origin)
        for _ in range(self.sim.policy.msg_receive_max):
            _hear(b, msg)
        due = b.received[0].resend_time

        self.sim.clock.now = due
        b.rebroadcast_messages()

        self.assertEqual(self.sim.metrics.rebroadcasts, 0)
        self.assertEqual(b.received[0].resend_time, due)
        self.assertIsNone(b.resend_at)

    def test_messages_expire_after_interval(self) -> None:
        b = self.sim.spawn_car(_parked(0.05))
        origin = LocationReport(_BASE_LON, _BASE_LAT, 0.0, 0.0, 0.0)
        _hear(b, _message(80, 1, MessageKind.LOCATION, origin))

        self.sim.clock.now = self.sim.policy.msg_expire_interval - 1.0
        b.expire_messages()
        self.assertEqual(len(b.received), 1)

        self.sim.clock.now = self.sim.policy.msg_expire_interval
        b.expire_messages()
        self.assertEqual(b.received, [])
        self.assertIsNone(b.expire_at)

    def test_location_table_ack_reschedules_upload(self) -> None:
        a = self.sim.spawn_car(_parked(0.0))
        b = self.sim.spawn_car(_parked(0.05))
        a.update_time()
        b.update_time()
        self.assertIsNotNone(b.location_log_at)
        base = self.sim.policy.location_log_interval

        ack = _message(a.id, 40, MessageKind.LOCATION_TABLE_ACK, a.location, car_ids=[b.id])
        self.assertEqual(_hear(b, ack), Reception.ACCEPTED)

        # base * (0.5 + 0.5 - U[0, 1) * 0.1), then the factor decays by 0.9
        self.assertGreaterEqual(b.location_log_at, self.sim.now + 0.9 * base - 1e-9)
        self.assertLessEqual(b.location_log_at, self.sim.now + base + 1e-9)
        self.assertAlmostEqual(b.location_backoff.factor, 0.45)

    def test_update_time_reports_expiry(self) -> None:
        car = self.sim.spawn_car(_parked(duration=10.0))
        self.assertTrue(car.update_time())

        self.sim.clock.now = 10.5
        self.assertFalse(car.update_time())
        self.assertTrue(car.expired)
        msg = _message(80, 1, MessageKind.LOCATION, LocationReport(_BASE_LON, _BASE_LAT, 0, 0, 0))
        self.assertEqual(_hear(car, msg), Reception.EXPIRED)


if __name__ == "__main__":
    unittest.main()
