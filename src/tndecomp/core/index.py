"""Tensor legs: labels, prime levels, charges and flow.

Each leg of a tensor is described by a :class:`TensorIndex`:

- the symmetry group and the charge of every basis state on the leg,
- the flow direction (incoming/outgoing),
- a label plus an integer prime level, which together form the leg's
  ``key``. Legs with equal keys on different tensors are contracted, so a
  physical leg ``("s1", 0)`` and its primed copy ``("s1", 1)`` stay distinct
  until the prime is removed,
- an :class:`IndexType` telling site (physical) legs from link (bond) legs.

Both ends of one bond carry the *same* charge array with opposite flows;
``flip()`` produces the other end.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from enum import Enum, IntEnum

import numpy as np

from tndecomp.core.symmetry import BaseSymmetry

# Label type: strings (descriptive) or integers (positional)
Label = str | int

# A leg is addressed by (label, prime level)
IndexKey = tuple[Label, int]


class FlowDirection(IntEnum):
    """Flow direction of a tensor leg.

    IN (+1):  charge flows into the tensor (ket side).
    OUT (-1): charge flows out of the tensor (bra side).

    A block with charges ``q_i`` is allowed when
    ``sum_i(flow_i * q_i) == symmetry.identity()``.
    """

    IN = 1
    OUT = -1


class IndexType(Enum):
    """Role of a leg: physical site or virtual link."""

    LINK = "Link"
    SITE = "Site"

    @classmethod
    def coerce(cls, value: IndexType | str) -> IndexType:
        """Accept an IndexType or its name/value (case-insensitive)."""
        if isinstance(value, IndexType):
            return value
        if isinstance(value, str):
            for member in cls:
                if value.lower() in (member.value.lower(), member.name.lower()):
                    return member
        raise ValueError(f"Unknown index type {value!r}")


@dataclass(frozen=True, slots=True)
class TensorIndex:
    """Metadata for one leg of a tensor.

    Attributes:
        symmetry: The symmetry group governing charges on this leg.
        charges:  1-D int32 array; ``charges[i]`` is the charge of state i.
        flow:     IN or OUT.
        label:    Identifier shared with the leg this one contracts against.
        plev:     Prime level; distinguishes input/output copies of a leg.
        itype:    SITE for physical legs, LINK for bonds.

    Example:
        >>> u1 = U1Symmetry()
        >>> s = TensorIndex(u1, np.array([1, -1]), FlowDirection.IN, "s1",
        ...                 itype=IndexType.SITE)
        >>> s.prime().key
        ('s1', 1)
    """

    symmetry: BaseSymmetry
    charges: np.ndarray  # shape (D,), dtype int32
    flow: FlowDirection
    label: Label = ""
    plev: int = 0
    itype: IndexType = IndexType.LINK

    def __post_init__(self) -> None:
        charges = np.asarray(self.charges)
        if charges.ndim != 1:
            raise ValueError(f"charges must be 1-D, got shape {charges.shape}")
        if charges.dtype != np.int32:
            charges = charges.astype(np.int32)
        object.__setattr__(self, "charges", charges)
        object.__setattr__(self, "flow", FlowDirection(int(self.flow)))
        if self.plev < 0:
            raise ValueError(f"prime level must be >= 0, got {self.plev}")

    @classmethod
    def from_sectors(
        cls,
        symmetry: BaseSymmetry,
        sectors: Sequence[tuple[int, int]],
        flow: FlowDirection,
        label: Label = "",
        plev: int = 0,
        itype: IndexType = IndexType.LINK,
    ) -> TensorIndex:
        """Build a leg from ``(charge, multiplicity)`` sectors, in order."""
        parts = [np.full(int(m), int(q), dtype=np.int32) for q, m in sectors if m > 0]
        charges = np.concatenate(parts) if parts else np.zeros(0, dtype=np.int32)
        return cls(symmetry, charges, flow, label=label, plev=plev, itype=itype)

    @property
    def dim(self) -> int:
        """Number of basis states on this leg."""
        return len(self.charges)

    @property
    def key(self) -> IndexKey:
        """``(label, plev)``: the identity used for contraction."""
        return (self.label, self.plev)

    def sectors(self) -> list[tuple[int, int]]:
        """``(charge, multiplicity)`` pairs in order of first appearance."""
        if self.dim == 0:
            return []
        _, first = np.unique(self.charges, return_index=True)
        order = [int(self.charges[i]) for i in sorted(first)]
        return [(q, int(np.sum(self.charges == q))) for q in order]

    def dual(self) -> TensorIndex:
        """Flip the flow and invert every charge."""
        return replace(
            self,
            charges=self.symmetry.dual(self.charges),
            flow=FlowDirection(-int(self.flow)),
        )

    def flip(self) -> TensorIndex:
        """Flip the flow, keeping charges: the other end of the same bond."""
        return replace(self, flow=FlowDirection(-int(self.flow)))

    def relabel(self, new_label: Label) -> TensorIndex:
        return replace(self, label=new_label)

    def prime(self, inc: int = 1) -> TensorIndex:
        """Raise the prime level by ``inc``."""
        return replace(self, plev=self.plev + inc)

    def set_prime(self, plev: int) -> TensorIndex:
        return replace(self, plev=plev)

    def noprime(self) -> TensorIndex:
        return replace(self, plev=0)

    def is_dual_of(self, other: TensorIndex) -> bool:
        """Exact dual: opposite flows and inverted charges."""
        if type(self.symmetry) is not type(other.symmetry):
            return False
        if self.flow == other.flow or self.dim != other.dim:
            return False
        return np.array_equal(self.charges, self.symmetry.dual(other.charges))

    def compatible_with(self, other: TensorIndex) -> bool:
        """Can this leg be contracted against ``other``?

        Requires the same symmetry, equal dimensions and equal charge
        arrays; flows are not checked.
        """
        return (
            self.symmetry == other.symmetry
            and self.dim == other.dim
            and np.array_equal(self.charges, other.charges)
        )

    def __hash__(self) -> int:
        return hash((
            self.symmetry,
            self.charges.tobytes(),
            int(self.flow),
            self.label,
            self.plev,
            self.itype,
        ))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TensorIndex):
            return NotImplemented
        return (
            self.symmetry == other.symmetry
            and np.array_equal(self.charges, other.charges)
            and self.flow == other.flow
            and self.label == other.label
            and self.plev == other.plev
            and self.itype == other.itype
        )

    def __repr__(self) -> str:
        prime = "'" * self.plev if self.plev <= 3 else f"'{self.plev}"
        return (
            f"TensorIndex(sym={self.symmetry!r}, dim={self.dim}, "
            f"flow={self.flow.name}, label={self.label!r}{prime}, "
            f"type={self.itype.value})"
        )
