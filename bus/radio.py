"""
RadioChannel: Lossy car-to-car broadcast medium.

Supports:
    - One transmit-clarity draw per message, shared by all recipients
    - An independent receive-clarity draw per recipient
    - Silent skipping of the sender and of cars whose route has ended

Intended usage:
    - A car calls ``broadcast`` with its own position; every other live car
      runs its reception pipeline, which applies distance attenuation.
"""

import logging
from typing import TYPE_CHECKING, Mapping

from .message import FloodMessage
from .utils import clarity_params, draw_clarity

if TYPE_CHECKING:
    from sim.car import Car
    from sim.context import SimContext

log = logging.getLogger(__name__)


class RadioChannel:
    """
    Transport layer for car-to-car flood messages.

    Attributes:
        tx_range (float): Transmit clarity range after clamping.
        tx_offset (float): Transmit clarity offset.
        rx_range (float): Receive clarity range after clamping.
        rx_offset (float): Receive clarity offset.
    """

    def __init__(self, context: "SimContext", cars: Mapping[int, "Car"]):
        """
        Initialize a RadioChannel.

        Args:
            context (SimContext): Shared clock, random stream, policy and metrics.
            cars (Mapping[int, Car]): The owner's live car table, by car id.
        """
        self._ctx = context
        self._cars = cars
        self.tx_range, self.tx_offset = clarity_params(context.policy.tx_clarity_range)
        self.rx_range, self.rx_offset = clarity_params(context.policy.rx_clarity_range)

    def broadcast(
        self,
        sender_id: int,
        latitude: float,
        longitude: float,
        message: FloodMessage,
    ) -> int:
        """
        Offer *message* to every other live car.

        Args:
            sender_id (int): Car transmitting (originator or rebroadcaster).
            latitude (float): Transmitter latitude.
            longitude (float): Transmitter longitude.
            message (FloodMessage): Message to transmit.

        Returns:
            int: Number of cars the message was offered to.
        """
        rng = self._ctx.rng
        tx_clarity = draw_clarity(rng, self.tx_range, self.tx_offset)
        self._ctx.metrics.broadcasts += 1

        offered = 0
        for car_id, car in list(self._cars.items()):
            if car_id == sender_id or car.expired:
                continue
            rx_clarity = draw_clarity(rng, self.rx_range, self.rx_offset)
            car.receive(latitude, longitude, tx_clarity, rx_clarity, message)
            offered += 1

        log.debug("broadcast sender=%s msg=%s offered=%d", sender_id, message, offered)
        return offered
