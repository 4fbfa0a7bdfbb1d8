"""Matrix views of rank-2 tensors.

A rank-2 payload is read as a matrix with the requested row leg first. When
the row leg is stored second the view is the transpose; JAX arrays are
immutable so ``.T`` costs nothing until the kernel consumes it. Scales are
never applied here.
"""

from __future__ import annotations

from typing import NamedTuple

import jax

from tndecomp.core.errors import PreconditionError
from tndecomp.core.tensor import DenseTensor, IndexRef, SymmetricTensor, Tensor


class Rank2Block(NamedTuple):
    """One dense sector of a rank-2 block-sparse tensor.

    Attributes:
        matrix:      Block payload with rows on the row leg.
        row_charge:  Charge of the row leg in this sector.
        col_charge:  Charge of the column leg in this sector.
        transposed:  True when the row leg is the tensor's second leg.
                     Informational; ``matrix`` is already transposed.
    """

    matrix: jax.Array
    row_charge: int
    col_charge: int
    transposed: bool


def resolve_axis(tensor: Tensor, ref: IndexRef) -> int:
    """Axis position of ``ref`` (TensorIndex, ``(label, plev)`` or bare label)."""
    return tensor.axis(ref)


def _row_col_axes(tensor: Tensor, row: IndexRef, col: IndexRef) -> tuple[int, int]:
    if tensor.ndim != 2:
        raise PreconditionError(f"Expected a rank-2 tensor, got rank {tensor.ndim}")
    r, c = resolve_axis(tensor, row), resolve_axis(tensor, col)
    if r == c:
        raise PreconditionError(f"Row and column both name leg {tensor.indices[r].key!r}")
    return r, c


def to_matrix(tensor: DenseTensor, row: IndexRef, col: IndexRef) -> jax.Array:
    """Payload of a rank-2 dense tensor with ``row`` as the row leg.

    Raises:
        PreconditionError: If the tensor is not rank 2 or row == col.
        KeyError:          If either leg is missing.
    """
    r, _ = _row_col_axes(tensor, row, col)
    return tensor.data if r == 0 else tensor.data.T


def rank2_blocks(tensor: SymmetricTensor, row: IndexRef, col: IndexRef) -> list[Rank2Block]:
    """Sectors of a rank-2 block-sparse tensor in ascending (row, col) charge order."""
    r, _ = _row_col_axes(tensor, row, col)
    transposed = r == 1
    result: list[Rank2Block] = []
    for key, block in tensor.blocks.items():
        row_q, col_q = (key[1], key[0]) if transposed else (key[0], key[1])
        result.append(Rank2Block(block.T if transposed else block, row_q, col_q, transposed))
    result.sort(key=lambda b: (b.row_charge, b.col_charge))
    return result
