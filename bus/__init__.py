"""
bus — Simulated radio and cellular transports
===============================================

Carries messages between cars (lossy, range-limited radio) and between cars
and the central alert directory (reliable cellular backhaul), without a real
network stack.

Modules
-------
message
    Message ids, location reports, flood and cellular message dataclasses.
radio
    :class:`RadioChannel` broadcast with clarity draws.
backhaul
    :class:`Backhaul` upload / deliver transport.
metrics
    :class:`SimMetrics` counter snapshot.
utils
    Clarity draws and jittered backoff.
"""

from .message import (
    ALERT_KINDS,
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
)
from .radio import RadioChannel
from .backhaul import Backhaul
from .metrics import SimMetrics
from .utils import JitteredBackoff, clarity_params, draw_clarity

__all__ = [
    "ALERT_KINDS",
    "AlertBatch",
    "AlertKey",
    "AlertObservation",
    "AlertUpload",
    "FloodMessage",
    "LocationEntry",
    "LocationReport",
    "LocationUpload",
    "MessageId",
    "MessageKind",
    "RadioChannel",
    "Backhaul",
    "SimMetrics",
    "JitteredBackoff",
    "clarity_params",
    "draw_clarity",
]
