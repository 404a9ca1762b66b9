"""
Utility functions for the radio channel and the cars:
    - clarity draws (transmit / receive degradation)
    - jittered exponential backoff for periodic uploads
"""

import logging
import random
from typing import Optional, Tuple

log = logging.getLogger(__name__)


# ---------- Clarity ----------
def clarity_params(clarity_range: float) -> Tuple[float, float]:
    """
    Turn a configured clarity range into ``(range, offset)``.

    A drawn clarity is ``range * U[0, 1) + offset`` so the best case is
    always 1.0.  Ranges outside ``[0, 1]`` mean perfect clarity.

    Args:
        clarity_range (float): Degree of degradation, 0.0 (none) to 1.0.

    Returns:
        Tuple[float, float]: Range and offset to draw with.
    """
    if clarity_range < 0.0 or clarity_range > 1.0:
        log.debug("clarity range %s out of [0, 1], using perfect clarity", clarity_range)
        return 0.0, 1.0
    return clarity_range, 1.0 - clarity_range


def draw_clarity(rng: random.Random, clarity_range: float, offset: float) -> float:
    """
    Draw one clarity sample.

    Args:
        rng (random.Random): The simulation's shared generator.
        clarity_range (float): Range from :func:`clarity_params`.
        offset (float): Offset from :func:`clarity_params`.

    Returns:
        float: Clarity in ``[offset, offset + range)``.
    """
    return clarity_range * rng.random() + offset


# ---------- Backoff ----------
class JitteredBackoff:
    """
    Repeat interval that shrinks geometrically and carries bounded jitter.

    Each :meth:`next_interval` returns
    ``base * (factor + fraction - U[0, 1) * adjustment)`` and then multiplies
    ``factor`` by ``ratio``.  :meth:`reset` puts ``factor`` back to
    ``fraction``.

    Args:
        rng (random.Random): Shared generator.
        base (float): Base interval in seconds.
        fraction (float): Fixed fraction added to every interval.
        adjustment (float): Width of the random jitter, as a fraction of base.
        ratio (float): Decay applied to the factor on every firing.
        factor (float): Starting factor (defaults to ``fraction``).
    """

    def __init__(
        self,
        rng: random.Random,
        base: float,
        fraction: float,
        adjustment: float,
        ratio: float,
        factor: Optional[float] = None,
    ):
        self._rng = rng
        self.base = base
        self.fraction = fraction
        self.adjustment = adjustment
        self.ratio = ratio
        self.factor = fraction if factor is None else factor

    def next_interval(self) -> float:
        interval = self.base * (
            self.factor + self.fraction - self._rng.random() * self.adjustment
        )
        self.factor *= self.ratio
        return interval

    def reset(self) -> None:
        self.factor = self.fraction
