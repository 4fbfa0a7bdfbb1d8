"""Effective operator of an MPO projected onto one or two MPS sites.

::

    .-              -.
    |    |      |    |
    L - Op1 -- Op2 - R
    |    |      |    |
    '-              -'

:class:`LocalOp` applies this operator to a wavefunction without ever
forming it as a matrix. L and R are optional environments; Op2 is only
present for two-site updates. The tensors need not have exactly this
shape: contraction is driven by leg keys, so any legs that match are
summed.

Operators follow the prime convention: the unprimed site leg ``s``
contracts with the wavefunction and the output appears on ``s'``.
Environments carry the wavefunction link ``a`` and its prime ``a'`` the
same way.
"""

from __future__ import annotations

from enum import Enum

import numpy as np

from tndecomp.contraction.contractor import common_index, contract, tie_indices
from tndecomp.core.errors import PreconditionError
from tndecomp.core.index import IndexType, TensorIndex
from tndecomp.core.tensor import DenseTensor, Tensor


class Direction(Enum):
    """Sweep direction used by :meth:`LocalOp.delta_rho`."""

    FROM_LEFT = "Fromleft"
    FROM_RIGHT = "Fromright"


def _find_index_pair(tensor: Tensor) -> TensorIndex | None:
    """First unprimed leg whose prime is also present."""
    keys = set(tensor.keys())
    for idx in tensor.indices:
        if idx.plev == 0 and (idx.label, 1) in keys:
            return idx
    return None


def _site_index(op: Tensor) -> TensorIndex:
    site = op.find_index(IndexType.SITE, plev=0)
    if site is None:
        raise PreconditionError(f"Operator has no unprimed site leg, keys {op.keys()}")
    return site


class LocalOp:
    """Matrix-free effective operator built from borrowed tensors.

    The tensors passed to the constructor or to :meth:`update` are held by
    reference and never copied. The caller owns them and must not mutate
    them while this LocalOp is in use.

    A LocalOp is null (``bool(op) is False``) until Op1 has been set; every
    accessor and operation on a null LocalOp raises
    :class:`PreconditionError`.

    Args:
        op1: First site operator.
        op2: Second site operator (two-site updates).
        L:   Left environment.
        R:   Right environment.

    Example:
        >>> H = LocalOp(W1, W2, L, R)
        >>> Hphi = H.product(phi)
        >>> energy = H.expect(phi)
    """

    def __init__(
        self,
        op1: Tensor | None = None,
        op2: Tensor | None = None,
        L: Tensor | None = None,
        R: Tensor | None = None,
    ) -> None:
        self._op1: Tensor | None = None
        self._op2: Tensor | None = None
        self._L: Tensor | None = None
        self._R: Tensor | None = None
        self._size: int | None = None
        self._nc = 0
        if op1 is not None:
            self.update(op1, op2, L, R)
        elif op2 is not None or L is not None or R is not None:
            raise PreconditionError("LocalOp needs op1 before op2, L or R")

    # --- updates ---

    def update(
        self,
        op1: Tensor,
        op2: Tensor | None = None,
        L: Tensor | None = None,
        R: Tensor | None = None,
    ) -> None:
        """Replace every reference. ``num_center`` becomes 1 or 2 from ``op2``."""
        self._op1 = op1
        self._op2 = op2
        self._L = L
        self._R = R
        self._nc = 1 if op2 is None else 2
        self._size = None

    def update_lr(self, L: Tensor | None, R: Tensor | None) -> None:
        """Replace the environments only; site operators are switched off."""
        self._L = L
        self._R = R
        self._nc = 0
        self._size = None

    # --- accessors ---

    def __bool__(self) -> bool:
        return self._op1 is not None

    def _require(self) -> None:
        if not self:
            raise PreconditionError("LocalOp is default constructed")

    @property
    def op1(self) -> Tensor:
        self._require()
        return self._op1  # type: ignore[return-value]

    @property
    def op2(self) -> Tensor | None:
        self._require()
        return self._op2

    @property
    def L(self) -> Tensor | None:
        self._require()
        return self._L

    @property
    def R(self) -> Tensor | None:
        self._require()
        return self._R

    def l_is_null(self) -> bool:
        return self._L is None

    def r_is_null(self) -> bool:
        return self._R is None

    @property
    def num_center(self) -> int:
        """Number of active site operators (0, 1 or 2)."""
        return self._nc

    @num_center.setter
    def num_center(self, value: int) -> None:
        if value not in (1, 2):
            raise PreconditionError(f"num_center must be set to 1 or 2, got {value}")
        self._nc = value
        self._size = None

    def _active_ops(self) -> list[Tensor]:
        if self._nc == 1:
            return [self._op1]  # type: ignore[list-item]
        if self._nc == 2:
            if self._op2 is None:
                raise PreconditionError("num_center is 2 but op2 was never set")
            return [self._op1, self._op2]  # type: ignore[list-item]
        return []

    def _apply_ops(self, phi: Tensor) -> Tensor:
        # Op2 first, then Op1
        for op in reversed(self._active_ops()):
            phi = contract(phi, op)
        return phi

    # --- operations ---

    def product(self, phi: Tensor) -> Tensor:
        """Apply the effective operator to ``phi``; output legs are unprimed."""
        self._require()
        if self.l_is_null():
            phip = phi
            if not self.r_is_null():
                phip = contract(phip, self._R)
            phip = self._apply_ops(phip)
        else:
            phip = self._apply_ops(contract(phi, self._L))
            if not self.r_is_null():
                phip = contract(phip, self._R)
        return phip.map_prime(1, 0)

    def expect(self, phi: Tensor) -> float:
        """Real part of ``<phi| H |phi>``."""
        phip = self.product(phi)
        return float(np.real(contract(phip.dag(), phi).item()))

    def delta_rho(self, AA: Tensor, combine: Tensor, direction: Direction) -> Tensor:
        """Density-matrix correction from the operator acting on ``AA``.

        The environment and operator on the side named by ``direction`` are
        applied, the legs being grouped are fused with ``combine`` into a
        single leg ``c``, and ``rho = drho · dag(drho')`` is formed over all
        other legs. The result is symmetrized as ``(rho + rho^dag) / 2``.
        """
        self._require()
        if direction is Direction.FROM_LEFT:
            drho = AA if self.l_is_null() else contract(AA, self._L)
            drho = contract(drho, self._op1)
        else:
            if self._op2 is None:
                raise PreconditionError("delta_rho from the right needs op2")
            drho = AA if self.r_is_null() else contract(AA, self._R)
            drho = contract(drho, self._op2)

        drho = contract(combine, drho.noprime())
        ci = common_index(combine, drho)
        if ci is None:
            raise PreconditionError("combiner shares no leg with the projected state")
        rho = contract(drho, drho.prime(ci).dag())
        return (rho + rho.swap_prime(0, 1).dag()) / 2.0

    def diag(self) -> DenseTensor:
        """Diagonal of the effective operator, shaped like the wavefunction.

        Site operators are tied over ``s``/``s'``. An environment is tied
        over its first leg pair ``a``/``a'`` when one exists and contracted
        in whole otherwise. The operator is assumed Hermitian, so the real
        part is returned.
        """
        self._require()
        result: Tensor | None = None
        for op in self._active_ops():
            part = tie_indices(op, _site_index(op)).noprime()
            result = part if result is None else contract(result, part)

        for env in (self._L, self._R):
            if env is None:
                continue
            pair = _find_index_pair(env)
            if pair is not None:
                part = tie_indices(env, pair).noprime()
            else:
                part = env.to_dense_tensor()
            result = part if result is None else contract(result, part)

        if result is None:
            raise PreconditionError("LocalOp has neither site operators nor environments")
        return result.dag().real()  # type: ignore[return-value]

    def size(self) -> int:
        """Linear dimension of the effective operator as a square matrix."""
        self._require()
        if self._size is None:
            size = 1
            for env in (self._L, self._R):
                if env is None:
                    continue
                primed = next((idx for idx in env.indices if idx.plev > 0), None)
                if primed is not None:
                    size *= primed.dim
            for op in self._active_ops():
                size *= _site_index(op).dim
            self._size = size
        return self._size

    def __repr__(self) -> str:
        if not self:
            return "LocalOp(null)"
        return (
            f"LocalOp(num_center={self._nc}, L={'set' if self._L is not None else 'null'}, "
            f"R={'set' if self._R is not None else 'null'})"
        )
