"""Eigendecomposition of Hermitian rank-2 tensors (density matrices).

``diag_hermitian(rho)`` expects legs ``s`` and ``s'`` (prime levels 0 and
1) and returns ``U`` and ``D`` with ``rho = prime(U) · D · dag(U)``::

    U: (dag(s), n)    eigenvectors as columns
    D: (n', dag(n))   diagonal, eigenvalues in descending order

A negative ``rho.scale`` is first folded into the payload, so the solver
sees the true matrix up to a positive factor and its descending order is
the order of the true eigenvalues. Eigenvalues are truncated directly (they
already are weights); the spectrum reports them times ``rho.scale``.
"""

from __future__ import annotations

import logging

import jax.numpy as jnp
import numpy as np

from tndecomp.core.errors import PreconditionError, ResultIsZero
from tndecomp.core.index import FlowDirection, TensorIndex
from tndecomp.core.tensor import DenseTensor, SymmetricTensor, Tensor
from tndecomp.decomposition.config import DecompConfig
from tndecomp.decomposition.kernels import eigh_kernel
from tndecomp.decomposition.matrix import rank2_blocks, to_matrix
from tndecomp.decomposition.svd import ConfigLike, _check_rank2_real, scaled_eigs
from tndecomp.decomposition.truncation import Spectrum, show_eigs, truncate

logger = logging.getLogger(__name__)


def _active_legs(rho: Tensor) -> tuple[TensorIndex, TensorIndex]:
    """The unprimed leg ``s`` and its partner ``s'``."""
    _check_rank2_real(rho, "diag_hermitian")
    active = next((idx for idx in rho.indices if idx.plev == 0), None)
    if active is None:
        raise PreconditionError(f"Tensor must have one unprimed leg, got keys {rho.keys()}")
    partner = (active.label, 1)
    if not rho.has_index(partner):
        raise PreconditionError(f"Tensor has {active.key!r} but not its prime {partner!r}")
    return active, rho.index(partner)


def _positive_scale(rho: Tensor) -> Tensor:
    if rho.scale.sign < 0:
        return rho.scale_to(-rho.scale)
    return rho


def _new_leg(active: TensorIndex, sectors: list[tuple[int, int]], cfg: DecompConfig) -> TensorIndex:
    return TensorIndex.from_sectors(
        active.symmetry, sectors, FlowDirection(-int(active.flow)),
        label=cfg.index_name, itype=cfg.index_type,
    )


def diag_hermitian(
    rho: Tensor,
    config: ConfigLike = None,
) -> tuple[Tensor, Tensor, Spectrum]:
    """Truncated eigendecomposition of a Hermitian rank-2 tensor.

    Args:
        rho:    Dense or block-sparse tensor with legs ``s`` and ``s'``.
        config: DecompConfig, options mapping, or None for defaults.
                Nothing is discarded unless ``Truncate`` is set.

    Returns:
        ``(U, D, spectrum)`` of the same storage type as ``rho``.

    Raises:
        PreconditionError:   If ``rho`` is not rank 2 or lacks ``s``/``s'``.
        NotImplementedError: If ``rho`` is complex.
        ResultIsZero:        If the leg has dimension zero, a block-sparse
                             ``rho`` has no blocks, or nothing survives.
    """
    cfg = DecompConfig.coerce(config, truncate=False)
    if isinstance(rho, SymmetricTensor):
        return _diag_hermitian_symmetric(rho, cfg)
    if isinstance(rho, DenseTensor):
        return _diag_hermitian_dense(rho, cfg)
    raise TypeError(f"diag_hermitian expects DenseTensor or SymmetricTensor, got {type(rho).__name__}")


def _diag_hermitian_dense(
    rho: DenseTensor,
    cfg: DecompConfig,
) -> tuple[DenseTensor, DenseTensor, Spectrum]:
    active, primed = _active_legs(rho)
    if active.dim == 0:
        raise ResultIsZero(f"{active.key!r} has dimension zero")
    rho = _positive_scale(rho)

    U, d = eigh_kernel(to_matrix(rho, active, primed))
    weights = np.asarray(d, dtype=np.float64)
    n_total = len(weights)

    truncerr = 0.0
    m = n_total
    if cfg.truncate:
        result = truncate(weights, cfg.max_dim, cfg.min_dim, cfg.cutoff,
                          cfg.absolute_cutoff, cfg.relative_cutoff)
        weights, truncerr, m = result.weights, result.truncation_error, result.n_kept
        U = U[:, :m]

    if cfg.show_eigs:
        show_eigs(weights, truncerr, rho.scale, cfg, scale_power=1)
    logger.debug("diag_hermitian (dense): kept %d of %d states, truncation error %.3e",
                 m, n_total, truncerr)

    n = _new_leg(active, [(0, m)], cfg)
    U_t = DenseTensor(U, (active.flip(), n.flip()))
    D_t = DenseTensor(jnp.diag(jnp.asarray(weights)), (n.prime(), n.flip()), rho.scale)
    return U_t, D_t, Spectrum(scaled_eigs(weights, rho.scale, 1), truncerr)


def _diag_hermitian_symmetric(
    rho: SymmetricTensor,
    cfg: DecompConfig,
) -> tuple[SymmetricTensor, SymmetricTensor, Spectrum]:
    active, primed = _active_legs(rho)
    if active.dim == 0:
        raise ResultIsZero(f"{active.key!r} has dimension zero")
    rho = _positive_scale(rho)
    blocks = rank2_blocks(rho, active, primed)
    if not blocks:
        raise ResultIsZero("tensor has no blocks")

    factors = [eigh_kernel(b.matrix) for b in blocks]
    block_eigs = [np.asarray(d, dtype=np.float64) for _, d in factors]
    pooled = np.sort(np.concatenate(block_eigs))[::-1]

    truncerr = 0.0
    docut = -1.0
    m = len(pooled)
    if cfg.truncate:
        result = truncate(pooled, cfg.max_dim, cfg.min_dim, cfg.cutoff,
                          cfg.absolute_cutoff, cfg.relative_cutoff)
        truncerr, m, docut = result.truncation_error, result.n_kept, result.docut
    keep_all = m == len(pooled)

    counts = [len(d) if keep_all else int(np.sum(d > docut)) for d in block_eigs]
    if sum(counts) == 0:
        # an all-zero bond would annihilate the state; keep one arbitrary state
        for b, d in enumerate(block_eigs):
            if len(d) > 0:
                counts[b] = 1
                break
    if sum(counts) == 0:
        raise ResultIsZero("no block survives truncation")

    kept = [d[:n] for d, n in zip(block_eigs, counts)]
    if cfg.truncate:
        kept = [np.maximum(d, 0.0) for d in kept]
    kept_weights = np.sort(np.concatenate(kept))[::-1]
    if cfg.show_eigs:
        show_eigs(kept_weights, truncerr, rho.scale, cfg, scale_power=1)
    logger.debug("diag_hermitian (block-sparse): kept %d of %d states in %d of %d blocks, "
                 "truncation error %.3e", sum(counts), len(pooled),
                 sum(1 for n in counts if n > 0), len(blocks), truncerr)

    survivors = [(b, U, d, n) for b, (U, _), d, n in zip(blocks, factors, kept, counts) if n > 0]
    n_leg = _new_leg(active, [(b.row_charge, n) for b, _, _, n in survivors], cfg)

    U_blocks, D_blocks = {}, {}
    for b, U, d, n in survivors:
        q = b.row_charge
        U_blocks[(q, q)] = U[:, :n]
        D_blocks[(q, q)] = jnp.diag(jnp.asarray(d))

    U_t = SymmetricTensor(U_blocks, (active.flip(), n_leg.flip()))
    D_t = SymmetricTensor(D_blocks, (n_leg.prime(), n_leg.flip()), rho.scale)
    return U_t, D_t, Spectrum(scaled_eigs(kept_weights, rho.scale, 1), truncerr)
