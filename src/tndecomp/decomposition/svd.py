"""Rank-2 singular value decomposition with truncation.

``svd_rank2(A, ui, vi)`` factors a rank-2 tensor as ``A = U · D · V``::

    U: (ui, ul)   left singular vectors, scale = sign fix
    D: (ul, vl)   diagonal, un-squared singular values, scale = A.scale * sign fix
    V: (vi, vl)   right singular vectors, unit scale

The sign fix is -1 exactly when ``A.scale`` is negative, so D's scale is
never negative and its stored entries are non-negative. The returned
:class:`Spectrum` holds the kept squared singular values multiplied by
``A.scale**2``.

For block-sparse input every charge sector is decomposed on its own, the
squared singular values of all sectors are pooled and truncated once, and
each sector keeps its values above the global threshold ``docut``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import jax.numpy as jnp
import numpy as np

from tndecomp.core.errors import PreconditionError, ResultIsZero
from tndecomp.core.index import TensorIndex
from tndecomp.core.scale import LogScale
from tndecomp.core.tensor import DenseTensor, IndexRef, SymmetricTensor, Tensor
from tndecomp.decomposition.config import DecompConfig
from tndecomp.decomposition.kernels import svd_kernel
from tndecomp.decomposition.matrix import rank2_blocks, to_matrix
from tndecomp.decomposition.truncation import Spectrum, show_eigs, truncate

logger = logging.getLogger(__name__)

ConfigLike = DecompConfig | Mapping[str, Any] | None


def _check_rank2_real(A: Tensor, routine: str) -> None:
    if A.ndim != 2:
        raise PreconditionError(f"{routine} needs a rank-2 tensor, got rank {A.ndim}")
    if A.is_complex:
        raise NotImplementedError(f"Complex {routine} not yet implemented")


def _sign_fix(scale: LogScale) -> int:
    return -1 if scale.sign == -1 else 1


def scaled_eigs(weights: np.ndarray, scale: LogScale, power: int) -> np.ndarray:
    """``weights * scale**power``, or ``weights`` unchanged if the scale overflows."""
    weights = np.asarray(weights, dtype=np.float64)
    if scale.is_finite_real():
        return weights * scale.real() ** power
    logger.warning("Scale %r is not a finite real; omitting it from the spectrum", scale)
    return weights


def svd_rank2(
    A: Tensor,
    ui: IndexRef,
    vi: IndexRef,
    config: ConfigLike = None,
) -> tuple[Tensor, Tensor, Tensor, Spectrum]:
    """Truncated SVD of a rank-2 tensor.

    Args:
        A:      Dense or block-sparse rank-2 tensor.
        ui:     Leg that becomes the row (left) side.
        vi:     Leg that becomes the column (right) side.
        config: DecompConfig, options mapping, or None for defaults.

    Returns:
        ``(U, D, V, spectrum)``, all of the same storage type as ``A``.

    Raises:
        PreconditionError:   If ``A`` is not rank 2.
        NotImplementedError: If ``A`` is complex.
        ResultIsZero:        If a leg has dimension zero, a block-sparse
                             ``A`` has no blocks, or nothing survives.

    Example:
        >>> U, D, V, spectrum = svd_rank2(A, "i", "j", {"Maxm": 10})
        >>> contract(U, D, V)   # approximates A
    """
    cfg = DecompConfig.coerce(config)
    if isinstance(A, SymmetricTensor):
        return _svd_rank2_symmetric(A, ui, vi, cfg)
    if isinstance(A, DenseTensor):
        return _svd_rank2_dense(A, ui, vi, cfg)
    raise TypeError(f"svd_rank2 expects DenseTensor or SymmetricTensor, got {type(A).__name__}")


def _bond_legs(
    row: TensorIndex,
    col: TensorIndex,
    cfg: DecompConfig,
    row_sectors: list[tuple[int, int]],
    col_sectors: list[tuple[int, int]],
) -> tuple[TensorIndex, TensorIndex]:
    ul = TensorIndex.from_sectors(row.symmetry, row_sectors, row.flow,
                                  label=cfg.left_index_name, itype=cfg.left_index_type)
    vl = TensorIndex.from_sectors(col.symmetry, col_sectors, col.flow,
                                  label=cfg.right_index_name, itype=cfg.right_index_type)
    return ul, vl


def _svd_rank2_dense(
    A: DenseTensor,
    ui: IndexRef,
    vi: IndexRef,
    cfg: DecompConfig,
) -> tuple[DenseTensor, DenseTensor, DenseTensor, Spectrum]:
    _check_rank2_real(A, "svd_rank2")
    row, col = A.index(ui), A.index(vi)
    if row.dim == 0 or col.dim == 0:
        raise ResultIsZero(f"leg of dimension zero ({row.key!r}: {row.dim}, {col.key!r}: {col.dim})")

    M = to_matrix(A, ui, vi)
    U, s, V = svd_kernel(M, cfg.svd_threshold, cfg.svd_n_orth_pass)
    weights = np.asarray(s, dtype=np.float64) ** 2
    n_total = len(weights)

    truncerr = 0.0
    m = n_total
    if cfg.truncate:
        result = truncate(weights, cfg.max_dim, cfg.min_dim, cfg.cutoff,
                          cfg.absolute_cutoff, cfg.relative_cutoff)
        weights, truncerr, m = result.weights, result.truncation_error, result.n_kept
        U, s, V = U[:, :m], s[:m], V[:, :m]

    if cfg.show_eigs:
        show_eigs(weights, truncerr, A.scale, cfg)
    logger.debug("svd_rank2 (dense): kept %d of %d states, truncation error %.3e",
                 m, n_total, truncerr)

    ul, vl = _bond_legs(row, col, cfg, [(0, m)], [(0, m)])
    signfix = _sign_fix(A.scale)
    U_t = DenseTensor(U, (row, ul.flip()), LogScale(0.0, signfix))
    D_t = DenseTensor(jnp.diag(s), (ul, vl), A.scale * signfix)
    V_t = DenseTensor(V, (col, vl.flip()))

    eigs = scaled_eigs(np.asarray(s, dtype=np.float64) ** 2, A.scale, 2)
    return U_t, D_t, V_t, Spectrum(eigs, truncerr)


def _svd_rank2_symmetric(
    A: SymmetricTensor,
    ui: IndexRef,
    vi: IndexRef,
    cfg: DecompConfig,
) -> tuple[SymmetricTensor, SymmetricTensor, SymmetricTensor, Spectrum]:
    _check_rank2_real(A, "svd_rank2")
    row, col = A.index(ui), A.index(vi)
    blocks = rank2_blocks(A, ui, vi)
    if not blocks:
        raise ResultIsZero("tensor has no blocks")
    if row.dim == 0:
        raise ResultIsZero(f"{row.key!r} has dimension zero")
    if col.dim == 0:
        raise ResultIsZero(f"{col.key!r} has dimension zero")

    factors = [svd_kernel(b.matrix, cfg.svd_threshold, cfg.svd_n_orth_pass) for b in blocks]
    block_weights = [np.asarray(s, dtype=np.float64) ** 2 for _, s, _ in factors]
    pooled = np.sort(np.concatenate(block_weights))[::-1]

    truncerr = 0.0
    docut = -1.0
    m = len(pooled)
    if cfg.truncate:
        result = truncate(pooled, cfg.max_dim, cfg.min_dim, cfg.cutoff,
                          cfg.absolute_cutoff, cfg.relative_cutoff)
        truncerr, m, docut = result.truncation_error, result.n_kept, result.docut
    keep_all = m == len(pooled)

    counts = [len(w) if keep_all else int(np.sum(w > docut)) for w in block_weights]
    if sum(counts) == 0:
        # an all-zero bond would annihilate the state; keep one arbitrary state
        for b, w in enumerate(block_weights):
            if len(w) > 0:
                counts[b] = 1
                break
    if sum(counts) == 0:
        raise ResultIsZero("no block survives truncation")

    kept_weights = np.sort(np.concatenate(
        [w[:n] for w, n in zip(block_weights, counts)]
    ))[::-1]
    if cfg.show_eigs:
        show_eigs(kept_weights, truncerr, A.scale, cfg)
    logger.debug("svd_rank2 (block-sparse): kept %d of %d states in %d of %d blocks, "
                 "truncation error %.3e", sum(counts), len(pooled),
                 sum(1 for n in counts if n > 0), len(blocks), truncerr)

    survivors = [(b, f, n) for b, f, n in zip(blocks, factors, counts) if n > 0]
    ul, vl = _bond_legs(
        row, col, cfg,
        [(b.row_charge, n) for b, _, n in survivors],
        [(b.col_charge, n) for b, _, n in survivors],
    )

    U_blocks, D_blocks, V_blocks = {}, {}, {}
    for b, (U, s, V), n in survivors:
        U_blocks[(b.row_charge, b.row_charge)] = U[:, :n]
        D_blocks[(b.row_charge, b.col_charge)] = jnp.diag(s[:n])
        V_blocks[(b.col_charge, b.col_charge)] = V[:, :n]

    signfix = _sign_fix(A.scale)
    U_t = SymmetricTensor(U_blocks, (row, ul.flip()), LogScale(0.0, signfix))
    D_t = SymmetricTensor(D_blocks, (ul, vl), A.scale * signfix)
    V_t = SymmetricTensor(V_blocks, (col, vl.flip()))

    return U_t, D_t, V_t, Spectrum(scaled_eigs(kept_weights, A.scale, 2), truncerr)
