"""
Tracking number generation for invoices built without an explicit one.
"""
from __future__ import annotations

import random


class AutoRandomTrackingNumberProvider:
    """Draws a random tracking number in ``[minimum, 2**63 - 1]``."""

    MAXIMUM = 2**63 - 1

    def __init__(self, minimum: int = 1000) -> None:
        if minimum < 0 or minimum > self.MAXIMUM:
            raise ValueError(f"minimum must be between 0 and {self.MAXIMUM}")
        self.minimum = minimum
        self._random = random.SystemRandom()

    def provide(self) -> int:
        return self._random.randint(self.minimum, self.MAXIMUM)
