"""Logarithmic scale factor carried alongside a tensor payload.

Norms of intermediate tensors in a sweep can span hundreds of orders of
magnitude. Every tensor therefore stores its payload together with a
:class:`LogScale` and represents the value ``payload * sign * exp(log_num)``.
Contractions multiply scales; nothing multiplies the scale into the payload
unless explicitly asked to (``scale_to``, ``todense``).
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

# Largest log-magnitude whose exponential is a finite float64
_MAX_LOG = float(np.log(np.finfo(np.float64).max))


@dataclass(frozen=True, slots=True)
class LogScale:
    """A real number stored as ``sign * exp(log_num)``.

    ``sign`` is +1, -1, or 0 (the number zero). Instances are immutable and
    hashable so they can sit in pytree aux data.

    Example:
        >>> s = LogScale.from_real(-2.0) * LogScale(log_num=800.0)
        >>> s.sign, s.is_finite_real()
        (-1, False)
    """

    log_num: float = 0.0
    sign: int = 1

    def __post_init__(self) -> None:
        if self.sign not in (-1, 0, 1):
            raise ValueError(f"sign must be -1, 0 or 1, got {self.sign}")
        object.__setattr__(self, "log_num", float(self.log_num))
        object.__setattr__(self, "sign", int(self.sign))

    @classmethod
    def from_real(cls, value: float) -> LogScale:
        """Build the scale representing a real number."""
        value = float(value)
        if value == 0.0:
            return cls(0.0, 0)
        return cls(math.log(abs(value)), 1 if value > 0 else -1)

    def is_zero(self) -> bool:
        return self.sign == 0

    def is_finite_real(self) -> bool:
        """True when ``real()`` is representable as a float64."""
        if self.sign == 0:
            return True
        return -_MAX_LOG < self.log_num < _MAX_LOG

    def real(self) -> float:
        """The represented value as a float.

        Raises:
            OverflowError: If the magnitude exceeds the float64 range.
        """
        if self.sign == 0:
            return 0.0
        if self.log_num >= _MAX_LOG:
            raise OverflowError(
                f"scale exp({self.log_num:.2f}) is not a finite float64"
            )
        return self.sign * math.exp(self.log_num)

    def abs(self) -> LogScale:
        return LogScale(self.log_num, abs(self.sign))

    def __neg__(self) -> LogScale:
        return LogScale(self.log_num, -self.sign)

    def __mul__(self, other: LogScale | float) -> LogScale:
        if not isinstance(other, LogScale):
            other = LogScale.from_real(other)
        if self.sign == 0 or other.sign == 0:
            return LogScale(0.0, 0)
        return LogScale(self.log_num + other.log_num, self.sign * other.sign)

    __rmul__ = __mul__

    def __truediv__(self, other: LogScale | float) -> LogScale:
        if not isinstance(other, LogScale):
            other = LogScale.from_real(other)
        if other.sign == 0:
            raise ZeroDivisionError("division by a zero LogScale")
        if self.sign == 0:
            return LogScale(0.0, 0)
        return LogScale(self.log_num - other.log_num, self.sign * other.sign)

    def __repr__(self) -> str:
        if self.sign == 0:
            return "LogScale(0)"
        sign = "-" if self.sign < 0 else ""
        return f"LogScale({sign}exp({self.log_num:.4g}))"
