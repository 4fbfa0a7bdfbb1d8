"""General (non-Hermitian) eigendecomposition of rank-2 tensors.

``eig_decomp(T, row, col)`` diagonalizes ``T`` read as a matrix with
``row`` as the row leg::

    V: (dag(col), n)   right eigenvectors as columns
    D: (n', dag(n))    diagonal eigenvalues, scale = T.scale

No truncation is applied. Outputs are real when every imaginary part is
below ``IMAG_TOL`` and complex otherwise. Block-sparse tensors are
diagonalized sector by sector and the new leg carries the column charge of
each sector.
"""

from __future__ import annotations

import jax
import jax.numpy as jnp

from tndecomp.core.errors import PreconditionError, ResultIsZero
from tndecomp.core.index import FlowDirection, TensorIndex
from tndecomp.core.tensor import DenseTensor, IndexRef, SymmetricTensor, Tensor
from tndecomp.decomposition.config import DecompConfig
from tndecomp.decomposition.kernels import eig_kernel
from tndecomp.decomposition.matrix import rank2_blocks, to_matrix
from tndecomp.decomposition.svd import ConfigLike, _check_rank2_real

IMAG_TOL = 1e-12


def _is_real(*arrays: jax.Array) -> bool:
    return all(float(jnp.max(jnp.abs(jnp.imag(a)), initial=0.0)) <= IMAG_TOL for a in arrays)


def _new_leg(col: TensorIndex, sectors: list[tuple[int, int]], cfg: DecompConfig) -> TensorIndex:
    return TensorIndex.from_sectors(
        col.symmetry, sectors, FlowDirection(-int(col.flow)),
        label=cfg.index_name, itype=col.itype,
    )


def eig_decomp(
    T: Tensor,
    row: IndexRef,
    col: IndexRef,
    config: ConfigLike = None,
) -> tuple[Tensor, Tensor]:
    """Eigendecomposition ``T V = V D`` of a square rank-2 tensor.

    Raises:
        PreconditionError:   If ``T`` is not rank 2 or not square.
        NotImplementedError: If ``T`` is complex.
        ResultIsZero:        If a block-sparse ``T`` has no blocks.
    """
    cfg = DecompConfig.coerce(config)
    _check_rank2_real(T, "eig_decomp")
    row_idx, col_idx = T.index(row), T.index(col)
    if row_idx.dim != col_idx.dim:
        raise PreconditionError(
            f"eig_decomp needs a square tensor, got {row_idx.dim} x {col_idx.dim}"
        )
    if isinstance(T, SymmetricTensor):
        return _eig_symmetric(T, row, col, col_idx, cfg)
    if isinstance(T, DenseTensor):
        return _eig_dense(T, row, col, col_idx, cfg)
    raise TypeError(f"eig_decomp expects DenseTensor or SymmetricTensor, got {type(T).__name__}")


def _eig_dense(
    T: DenseTensor,
    row: IndexRef,
    col: IndexRef,
    col_idx: TensorIndex,
    cfg: DecompConfig,
) -> tuple[DenseTensor, DenseTensor]:
    V, d = eig_kernel(to_matrix(T, row, col))
    if _is_real(V):
        V = jnp.real(V)
    if _is_real(d):
        d = jnp.real(d)
    n = _new_leg(col_idx, [(0, len(d))], cfg)
    V_t = DenseTensor(V, (col_idx.flip(), n.flip()))
    D_t = DenseTensor(jnp.diag(d), (n.prime(), n.flip()), T.scale)
    return V_t, D_t


def _eig_symmetric(
    T: SymmetricTensor,
    row: IndexRef,
    col: IndexRef,
    col_idx: TensorIndex,
    cfg: DecompConfig,
) -> tuple[SymmetricTensor, SymmetricTensor]:
    blocks = rank2_blocks(T, row, col)
    if not blocks:
        raise ResultIsZero("tensor has no blocks")
    for b in blocks:
        if b.matrix.shape[0] != b.matrix.shape[1]:
            raise PreconditionError(
                f"Sector ({b.row_charge}, {b.col_charge}) is not square: {b.matrix.shape}"
            )

    factors = [eig_kernel(b.matrix) for b in blocks]
    real_vectors = _is_real(*[V for V, _ in factors])
    real_values = _is_real(*[d for _, d in factors])

    n = _new_leg(col_idx, [(b.col_charge, b.matrix.shape[1]) for b in blocks], cfg)
    V_blocks, D_blocks = {}, {}
    for b, (V, d) in zip(blocks, factors):
        q = b.col_charge
        V_blocks[(q, q)] = jnp.real(V) if real_vectors else V
        D_blocks[(q, q)] = jnp.diag(jnp.real(d) if real_values else d)

    V_t = SymmetricTensor(V_blocks, (col_idx.flip(), n.flip()))
    D_t = SymmetricTensor(D_blocks, (n.prime(), n.flip()), T.scale)
    return V_t, D_t
