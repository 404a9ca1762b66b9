"""
Message shapes exchanged over the radio channel and the cellular backhaul.

Radio (car to car):
    - :class:`FloodMessage`

Cellular (car to directory, directory to car):
    - :class:`LocationUpload`
    - :class:`AlertUpload`
    - :class:`AlertBatch`

All messages are frozen once built so a rebroadcast carries exactly what the
originator sent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import NamedTuple, Optional, Tuple

import numpy as np

# Sequence numbers are 6 bits and wrap modulo 64.
MSG_SEQ_BITS = 6
MSG_SEQ_MASK = (1 << MSG_SEQ_BITS) - 1


class MessageKind(IntEnum):
    """Radio message kinds.  Every value from ``ALERT_SLICK`` up is a hazard alert."""

    LOCATION = 1
    LOCATION_TABLE_ACK = 2
    CAR_ACK = 3
    ALERT_TABLE_ACK = 4

    ALERT_SLICK = 10
    ALERT_VISION = 11
    ALERT_BLOCKED = 12
    ALERT_SLOW = 13

    @property
    def is_alert(self) -> bool:
        return self.value >= MessageKind.ALERT_SLICK.value


ALERT_KINDS: Tuple[MessageKind, ...] = tuple(k for k in MessageKind if k.is_alert)


def parse_kind(value: int) -> Optional[MessageKind]:
    """Map a raw kind number to :class:`MessageKind`, or ``None`` if unknown."""
    try:
        return MessageKind(value)
    except ValueError:
        return None


@dataclass(frozen=True, order=True)
class MessageId:
    """
    Dedup key for flooded messages.

    Attributes:
        car_id (int): Car that originated the message.
        seq (int): 6-bit sequence number of that car.
    """
    car_id: int
    seq: int

    @property
    def packed(self) -> int:
        return (self.car_id << MSG_SEQ_BITS) | self.seq

    @classmethod
    def from_packed(cls, value: int) -> "MessageId":
        return cls(value >> MSG_SEQ_BITS, value & MSG_SEQ_MASK)

    def __str__(self) -> str:
        return f"{self.car_id}.{self.seq}"


def next_seq(seq: int) -> int:
    """Sequence number following *seq* (63 wraps to 0)."""
    return (seq + 1) & MSG_SEQ_MASK


@dataclass(frozen=True)
class LocationReport:
    """
    Position and movement of a car at one instant.

    Attributes:
        longitude (float): Degrees east (west is negative).
        latitude (float): Degrees north (south is negative).
        heading (float): Degrees clockwise of north.
        speed (float): km/h.
        timestamp (float): Simulation seconds.
    """
    longitude: float
    latitude: float
    heading: float
    speed: float
    timestamp: float


class AlertKey(NamedTuple):
    """Identity of an alert: the originating message id and its time."""
    msg_id: MessageId
    time: float


def _frozen_matrix(matrix: Optional[np.ndarray], rows: int, cols: int) -> np.ndarray:
    if matrix is None:
        out = np.zeros((rows, cols), dtype=bool)
    else:
        out = np.array(matrix, dtype=bool, copy=True)
        if out.shape != (rows, cols):
            raise ValueError(
                f"ack matrix shape {out.shape} does not match ({rows}, {cols})"
            )
    out.flags.writeable = False
    return out


@dataclass(frozen=True)
class FloodMessage:
    """
    A message flooded car to car over the radio channel.

    Attributes:
        msg_id (MessageId): Originator and sequence number.
        origin (LocationReport): Originator's location when the message was built.
        kind (int): A :class:`MessageKind` value (unknown values are tolerated
            here and rejected by the receiver).
        car_ids (tuple): Cars named by an ack message.
        alert_keys (tuple): Alerts named by an ack message.
        ack_matrix (np.ndarray): ``[car, alert]`` flags, read-only.
    """
    msg_id: MessageId
    origin: LocationReport
    kind: int
    car_ids: Tuple[int, ...] = ()
    alert_keys: Tuple[AlertKey, ...] = ()
    ack_matrix: Optional[np.ndarray] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "car_ids", tuple(self.car_ids))
        object.__setattr__(self, "alert_keys", tuple(self.alert_keys))
        if self.ack_matrix is not None:
            object.__setattr__(
                self,
                "ack_matrix",
                _frozen_matrix(self.ack_matrix, len(self.car_ids), len(self.alert_keys)),
            )

    @property
    def time(self) -> float:
        return self.origin.timestamp

    @property
    def sender_id(self) -> int:
        return self.msg_id.car_id

    def __str__(self) -> str:
        kind = parse_kind(self.kind)
        name = kind.name if kind is not None else f"UNKNOWN({self.kind})"
        return (
            f"<Msg {self.msg_id} {name} t={self.time:g} "
            f"cars={len(self.car_ids)} alerts={len(self.alert_keys)}>"
        )


@dataclass(frozen=True)
class AlertObservation:
    """A hazard alert as known to a car or to the directory."""
    msg_id: MessageId
    kind: MessageKind
    longitude: float
    latitude: float
    time: float

    @property
    def key(self) -> AlertKey:
        return AlertKey(self.msg_id, self.time)


# ---------- Cellular messages ----------

@dataclass(frozen=True)
class LocationEntry:
    car_id: int
    report: LocationReport


@dataclass(frozen=True)
class LocationUpload:
    """Car locations known to *reporter*, sent to the directory."""
    reporter: int
    entries: Tuple[LocationEntry, ...]


@dataclass(frozen=True)
class AlertUpload:
    """
    Alerts known to *reporter* and which cars are known to hold them.

    Row ``i`` of ``ack_matrix`` belongs to ``car_ids[i]``; column ``j`` to
    ``alerts[j]``.
    """
    reporter: int
    car_ids: Tuple[int, ...]
    alerts: Tuple[AlertObservation, ...]
    ack_matrix: np.ndarray = field(compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "car_ids", tuple(self.car_ids))
        object.__setattr__(self, "alerts", tuple(self.alerts))
        object.__setattr__(
            self,
            "ack_matrix",
            _frozen_matrix(self.ack_matrix, len(self.car_ids), len(self.alerts)),
        )


@dataclass(frozen=True)
class AlertBatch:
    """Alerts pushed by the directory to one car for re-flooding."""
    alerts: Tuple[AlertObservation, ...]
