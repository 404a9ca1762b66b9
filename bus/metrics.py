"""
SimMetrics: Counters for every protocol decision point of a simulation run.
"""


class SimMetrics:
    """
    Tracks protocol outcomes across the radio channel, the backhaul, the cars
    and the directory.

    Attributes:
        broadcasts (int): Radio transmissions (originals and rebroadcasts).
        rebroadcasts (int): Transmissions of messages received from others.
        rx_weak (int): Receptions dropped because the signal was too weak.
        rx_far (int): Receptions dropped by the locality filter.
        rx_duplicate (int): Receptions of an already known message id.
        rx_accepted (int): Receptions stored in a car's message table.
        rx_unknown (int): Receptions with an unknown message kind.
        alerts_generated (int): Hazard alerts originated by cars.
        location_uploads (int): Location tables uploaded to the directory.
        alert_uploads (int): Alert tables uploaded to the directory.
        stale_locations (int): Location entries ignored for being older.
        sweeps (int): Directory escalation sweeps.
        deliveries (int): Alert batches delivered to cars.
        delivery_failures (int): Deliveries to cars that no longer exist.
        cars_spawned (int): Cars added to the population.
        cars_expired (int): Cars removed at the end of their route.
    """

    _FIELDS = (
        "broadcasts",
        "rebroadcasts",
        "rx_weak",
        "rx_far",
        "rx_duplicate",
        "rx_accepted",
        "rx_unknown",
        "alerts_generated",
        "location_uploads",
        "alert_uploads",
        "stale_locations",
        "sweeps",
        "deliveries",
        "delivery_failures",
        "cars_spawned",
        "cars_expired",
    )

    def __init__(self):
        """Initialize all counters to zero."""
        for name in self._FIELDS:
            setattr(self, name, 0)

    def report(self) -> dict:
        """
        Return a snapshot of current metrics.

        Returns:
            dict: Counter name to value, in a fixed order.
        """
        return {name: getattr(self, name) for name in self._FIELDS}
