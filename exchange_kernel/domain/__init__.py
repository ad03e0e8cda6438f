"""
Pure domain layer: value objects, clocks and DTOs.

No ORM, database or I/O dependencies (SystemClock excepted).
"""

from exchange_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from exchange_kernel.domain.values import Amount

__all__ = ["Amount", "Clock", "DeterministicClock", "SystemClock"]
