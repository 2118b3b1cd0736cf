"""Time-ordered 63-bit identifier generator.

Layout (most significant first), compatible with Sonyflake:

- 39 bits: elapsed time since ``EPOCH`` in 10 ms ticks (~174 years)
- 8 bits: sequence within one tick
- 16 bits: machine id

Identifiers from one process are strictly increasing. Two processes with
different machine ids never collide.
"""

import threading
from datetime import UTC, datetime
from functools import lru_cache

from gatekeeper.core.clock import Clock, utcnow
from gatekeeper.core.config import get_settings

EPOCH = datetime(2014, 9, 1, tzinfo=UTC)

_TIME_BITS = 39
_SEQUENCE_BITS = 8
_MACHINE_BITS = 16
_TICK_MICROSECONDS = 10_000

_SEQUENCE_MASK = (1 << _SEQUENCE_BITS) - 1
_MAX_MACHINE_ID = (1 << _MACHINE_BITS) - 1


class IdGeneratorError(Exception):
    """Raised when no further identifiers can be produced."""


class IdGenerator:
    """Thread-safe Sonyflake-style id source.

    When more than 256 ids are requested within one tick the generator
    borrows the next tick instead of sleeping, so callers on the event loop
    are never blocked. Ordering is preserved because the clock is compared
    against the borrowed tick on every call.
    """

    def __init__(self, machine_id: int, clock: Clock = utcnow) -> None:
        if not 0 <= machine_id <= _MAX_MACHINE_ID:
            msg = f"machine id must fit in {_MACHINE_BITS} bits, got {machine_id}"
            raise ValueError(msg)
        self._machine_id = machine_id
        self._clock = clock
        self._lock = threading.Lock()
        self._elapsed = 0
        self._sequence = _SEQUENCE_MASK

    @property
    def machine_id(self) -> int:
        return self._machine_id

    def _current_tick(self) -> int:
        delta = self._clock() - EPOCH
        micros = (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds
        return micros // _TICK_MICROSECONDS

    def next_id(self) -> int:
        """Return the next identifier.

        Raises:
            IdGeneratorError: If the clock is before the epoch or the 39-bit
                time field is exhausted.
        """
        with self._lock:
            current = self._current_tick()
            if current < 0:
                raise IdGeneratorError("clock is set before the generator epoch")

            if self._elapsed < current:
                self._elapsed = current
                self._sequence = 0
            else:
                self._sequence = (self._sequence + 1) & _SEQUENCE_MASK
                if self._sequence == 0:
                    self._elapsed += 1

            if self._elapsed >= 1 << _TIME_BITS:
                raise IdGeneratorError("time field exhausted")

            return (
                self._elapsed << (_SEQUENCE_BITS + _MACHINE_BITS)
                | self._sequence << _MACHINE_BITS
                | self._machine_id
            )


def decompose(identifier: int) -> dict[str, int]:
    """Split an identifier into its fields.

    Args:
        identifier: Value produced by ``IdGenerator.next_id``.

    Returns:
        Dict with ``time`` (ticks since EPOCH), ``sequence`` and ``machine_id``.
    """
    return {
        "time": identifier >> (_SEQUENCE_BITS + _MACHINE_BITS),
        "sequence": (identifier >> _MACHINE_BITS) & _SEQUENCE_MASK,
        "machine_id": identifier & _MAX_MACHINE_ID,
    }


@lru_cache
def get_id_generator() -> IdGenerator:
    """Process-wide generator keyed by the configured machine id."""
    return IdGenerator(get_settings().machine_id_value)
