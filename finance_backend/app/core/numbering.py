"""
Business number generation.

Settlement and withdrawal numbers are a type prefix ("ST", "WD") followed by
a timestamp and a random suffix. Uniqueness is probabilistic; the unique
column on the table is what actually rejects a collision.
"""

import secrets
from typing import Protocol

from finance_backend.app.core.clock import Clock, system_clock


class NumberGenerator(Protocol):
    def generate(self, prefix: str) -> str:
        ...


class TimestampNumberGenerator:
    """<prefix><YYYYMMDDHHMMSS><6 random digits>"""

    def __init__(self, clock: Clock = system_clock):
        self.clock = clock

    def generate(self, prefix: str) -> str:
        stamp = self.clock.now().strftime("%Y%m%d%H%M%S")
        return f"{prefix}{stamp}{secrets.randbelow(1_000_000):06d}"


class SequentialNumberGenerator:
    """Deterministic generator: <prefix>000001, <prefix>000002, ..."""

    def __init__(self, start: int = 1):
        self._next = start

    def generate(self, prefix: str) -> str:
        value = self._next
        self._next += 1
        return f"{prefix}{value:06d}"


default_number_generator = TimestampNumberGenerator()
