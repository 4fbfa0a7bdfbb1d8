"""Abelian symmetry groups labelling the quantum-number sectors of a leg.

A symmetry decides how charges combine when legs meet (``fuse``), how a
charge reads from the other end of a bond (``dual``), and which combination
counts as neutral (``identity``). Block-sparse tensors store a block only
when the flow-weighted charges of its legs fuse to the identity.

Pure numpy integer arithmetic; nothing here touches JAX.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

import numpy as np


class BaseSymmetry(ABC):
    """Abstract abelian group acting on integer charge arrays.

    Subclasses implement the four group primitives and must compare and hash
    by value so that indices built from separately constructed symmetry
    objects still match.
    """

    @abstractmethod
    def fuse(self, charges_a: np.ndarray, charges_b: np.ndarray) -> np.ndarray:
        """Combine two charge arrays element-wise."""

    @abstractmethod
    def dual(self, charges: np.ndarray) -> np.ndarray:
        """Group inverse of each charge."""

    @abstractmethod
    def identity(self) -> int:
        """Neutral charge."""

    @abstractmethod
    def n_values(self) -> int | None:
        """Group order, or None for an infinite group."""

    def fuse_many(self, charge_list: Sequence[np.ndarray]) -> np.ndarray:
        """Fold ``fuse`` over a non-empty list of charge arrays."""
        if not charge_list:
            raise ValueError("charge_list must be non-empty")
        result = np.asarray(charge_list[0])
        for c in charge_list[1:]:
            result = self.fuse(result, np.asarray(c))
        return result

    def reduce(self, charge: int) -> int:
        """Bring an integer charge into the canonical range of the group."""
        n = self.n_values()
        if n is None:
            return int(charge)
        return int(charge) % n

    def net_charge(self, charges: Sequence[int], flows: Sequence[int]) -> int:
        """Flow-weighted net charge of one sector tuple.

        Args:
            charges: One charge per leg.
            flows:   +1 (IN) or -1 (OUT) per leg.

        Returns:
            ``sum(flow * charge)`` reduced into the group.
        """
        net = sum(int(f) * int(q) for f, q in zip(flows, charges))
        return self.reduce(net)

    def is_conserved(
        self,
        charges: Sequence[int],
        flows: Sequence[int],
        target: int | None = None,
    ) -> bool:
        """True when the sector tuple fuses to ``target`` (default identity)."""
        if target is None:
            target = self.identity()
        return self.net_charge(charges, flows) == self.reduce(target)

    def fused_charges(
        self,
        charge_arrays: Sequence[np.ndarray],
        flows: Sequence[int],
    ) -> np.ndarray:
        """Charges of the product basis of several legs, row-major order.

        The combined state ``(i_0, ..., i_k)`` carries
        ``sum_k flow_k * charges_k[i_k]``. Used to label the leg produced by
        a combiner.
        """
        if not charge_arrays:
            return np.zeros(1, dtype=np.int32)
        grids = np.meshgrid(*[np.asarray(c, dtype=np.int64) for c in charge_arrays],
                            indexing="ij")
        total = np.zeros(grids[0].shape, dtype=np.int64)
        for f, g in zip(flows, grids):
            total = total + int(f) * g
        n = self.n_values()
        if n is not None:
            total = total % n
        return total.reshape(-1).astype(np.int32)


class U1Symmetry(BaseSymmetry):
    """U(1): unbounded integer charges combined by addition.

    Example:
        >>> U1Symmetry().fuse(np.array([0, 1]), np.array([1, 1]))
        array([1, 2])
    """

    def fuse(self, charges_a: np.ndarray, charges_b: np.ndarray) -> np.ndarray:
        return charges_a + charges_b

    def dual(self, charges: np.ndarray) -> np.ndarray:
        return -charges

    def identity(self) -> int:
        return 0

    def n_values(self) -> None:
        return None

    def __eq__(self, other: object) -> bool:
        return isinstance(other, U1Symmetry)

    def __hash__(self) -> int:
        return hash("U1Symmetry")

    def __repr__(self) -> str:
        return "U1Symmetry()"


class ZnSymmetry(BaseSymmetry):
    """Z_n: charges modulo n (parity for n=2).

    Args:
        n: Group order, at least 2.
    """

    def __init__(self, n: int) -> None:
        if n < 2:
            raise ValueError(f"n must be >= 2, got {n}")
        self.n = n

    def fuse(self, charges_a: np.ndarray, charges_b: np.ndarray) -> np.ndarray:
        return (charges_a + charges_b) % self.n

    def dual(self, charges: np.ndarray) -> np.ndarray:
        return (-charges) % self.n

    def identity(self) -> int:
        return 0

    def n_values(self) -> int:
        return self.n

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ZnSymmetry) and self.n == other.n

    def __hash__(self) -> int:
        return hash(("ZnSymmetry", self.n))

    def __repr__(self) -> str:
        return f"ZnSymmetry({self.n})"
