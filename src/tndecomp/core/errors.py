"""Exception types raised by tndecomp.

Two families matter to callers:

- :class:`PreconditionError` marks a broken contract (null LocalOp, wrong
  tensor rank, missing unprimed leg). It subclasses ``ValueError`` so generic
  argument-checking code keeps working.
- :class:`ResultIsZero` is not a bug. A decomposition raises it when the
  result is identically zero (no blocks, a zero-dimensional leg, or nothing
  left after truncation), and sweep code is expected to catch it and treat
  the state as annihilated.

Complex-valued decompositions raise the builtin ``NotImplementedError``.
"""

from __future__ import annotations


class TNDecompError(Exception):
    """Base class for tndecomp errors."""


class PreconditionError(TNDecompError, ValueError):
    """An operation was called on inputs that violate its contract."""


class ResultIsZero(TNDecompError):
    """The decomposed tensor is identically zero.

    Attributes:
        reason: Short description of which check produced the zero result.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
