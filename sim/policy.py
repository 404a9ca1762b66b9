#!/usr/bin/env python3
"""
sim/policy.py
=============
Tunable timing, radio, locality and escalation parameters for the road
report simulation.  Every constant lives in the frozen
:class:`ProtocolPolicy` dataclass so that experiments can swap policies
without touching code.

Times are in seconds, distances in kilometres, speeds in km/h.
"""

from __future__ import annotations

from dataclasses import dataclass, fields

from sim.geo import kph_to_kps


@dataclass(frozen=True)
class ProtocolPolicy:
    """Immutable bag of every tunable simulation parameter.

    Groups: car timers, upload backoff, flooding, population,
    radio, locality, directory grid and escalation.
    """

    # ── Car timers ────────────────────────────────────────────────────────
    location_send_interval: float = 5.0
    """Period of a car's own location broadcast."""

    next_update_interval: float = 60.0
    """Longest a car sleeps between updates, so route expiry is noticed."""

    # ── Upload backoff ────────────────────────────────────────────────────
    location_log_interval: float = 25.0
    """Base interval between location uploads to the directory."""

    location_log_interval_adj: float = 0.1
    """Jitter width as a fraction of the base interval."""

    location_log_interval_fract: float = 0.5
    """Fixed fraction of the base interval added to every upload interval."""

    location_log_interval_backoff: float = 0.9
    """Decay of the backoff factor on every rescheduling."""

    alert_log_interval: float = 25.0
    alert_log_interval_adj: float = 0.1
    alert_log_interval_fract: float = 0.5
    alert_log_interval_backoff: float = 0.9

    # ── Flooding ──────────────────────────────────────────────────────────
    msg_resend_interval: float = 1.0
    """Rebroadcast delay for a sender at distance zero; shrinks as 1/(d²+1)."""

    msg_expire_interval: float = 60.0
    """Age at which a received message is dropped from a car's table."""

    msg_receive_max: int = 4
    """A message heard this many times is no longer worth rebroadcasting."""

    # ── Population ────────────────────────────────────────────────────────
    first_car_time: float = 0.5
    car_creation_interval: float = 3.0
    first_alert_time: float = 60.3
    alert_creation_interval: float = 60.0
    simulation_interval: float = 600.0
    """Default horizon of a run."""

    # ── Radio ─────────────────────────────────────────────────────────────
    signal_max_range_km: float = 1.0
    """Distance at which a perfectly clear signal fades to the threshold."""

    tx_clarity_range: float = 1.0
    """Transmit degradation, 0.0 (perfect) to 1.0; outside that, perfect."""

    rx_clarity_range: float = 1.0
    """Receive degradation, 0.0 (perfect) to 1.0; outside that, perfect."""

    # ── Locality ──────────────────────────────────────────────────────────
    separation_base_km: float = 0.3
    """Locality radius of a stationary car."""

    separation_time_s: float = 60.0
    """Seconds of travel at the faster car's speed added to the radius."""

    # ── Directory grid / escalation ───────────────────────────────────────
    grid_km: float = 0.5
    grid_id_xmult: int = 46340
    alert_miss_limit: int = 3
    """Sweeps a car may miss an alert before it is sent the batch directly."""

    alert_resend_interval: float = 30.0
    """Period of the directory's escalation sweep."""

    # ── derived ───────────────────────────────────────────────────────────

    @property
    def signal_str_min(self) -> float:
        return 1.0 / (self.signal_max_range_km * self.signal_max_range_km)

    def locality_radius_km(self, speed_kph: float) -> float:
        """Radius within which traffic at *speed_kph* is locally relevant."""
        return self.separation_base_km + self.separation_time_s * kph_to_kps(speed_kph)

    def validate(self) -> "ProtocolPolicy":
        """Raise :class:`ValueError` for settings the engine cannot run with."""
        positive = (
            "location_send_interval", "next_update_interval",
            "location_log_interval", "alert_log_interval",
            "msg_resend_interval", "msg_expire_interval",
            "car_creation_interval", "alert_creation_interval",
            "signal_max_range_km", "grid_km", "alert_resend_interval",
        )
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in positive and value <= 0:
                raise ValueError(f"{f.name} must be positive, got {value!r}")
        if self.msg_receive_max < 1:
            raise ValueError("msg_receive_max must be at least 1")
        if self.alert_miss_limit < 1:
            raise ValueError("alert_miss_limit must be at least 1")
        return self
