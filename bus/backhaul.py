"""
Backhaul: Reliable cellular link between the cars and the directory.

Supports:
    - Synchronous car-to-directory uploads
    - Directory-to-car delivery by car id, reporting whether the car still exists
"""

import logging
from typing import TYPE_CHECKING, Mapping, Union

from .message import AlertBatch, AlertUpload, LocationUpload

if TYPE_CHECKING:
    from sim.car import Car
    from sim.context import SimContext

log = logging.getLogger(__name__)

Upload = Union[LocationUpload, AlertUpload]


class Backhaul:
    """
    Cellular transport.  Never drops; a delivery only fails when the target
    car is gone, which is a normal race with route expiry.
    """

    def __init__(self, context: "SimContext", cars: Mapping[int, "Car"]):
        """
        Initialize a Backhaul.

        Args:
            context (SimContext): Shared context; its ``directory`` receives uploads.
            cars (Mapping[int, Car]): The owner's live car table, by car id.
        """
        self._ctx = context
        self._cars = cars

    def upload_to_directory(self, message: Upload) -> None:
        """
        Hand an upload to the directory.

        Args:
            message (LocationUpload | AlertUpload): Upload from a car.
        """
        if isinstance(message, LocationUpload):
            self._ctx.metrics.location_uploads += 1
        elif isinstance(message, AlertUpload):
            self._ctx.metrics.alert_uploads += 1
        log.debug("upload reporter=%s type=%s", message.reporter, type(message).__name__)
        self._ctx.directory.receive(message)

    def deliver_to_car(self, car_id: int, batch: AlertBatch) -> bool:
        """
        Deliver an alert batch to the car with the given id.

        Args:
            car_id (int): Target car.
            batch (AlertBatch): Alerts to hand over.

        Returns:
            bool: True if the car took the batch, False if it no longer exists.
        """
        car = self._cars.get(car_id)
        if car is None or not car.receive_cell_message(batch):
            self._ctx.metrics.delivery_failures += 1
            log.info("delivery_miss car=%s alerts=%d", car_id, len(batch.alerts))
            return False
        self._ctx.metrics.deliveries += 1
        log.info("delivered car=%s alerts=%d", car_id, len(batch.alerts))
        return True
