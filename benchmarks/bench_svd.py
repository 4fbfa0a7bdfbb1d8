#!/usr/bin/env python
"""Benchmark: dense vs block-sparse decompositions at DMRG-relevant sizes.

Part 1: svd_rank2
    Build a rank-2 SymmetricTensor mimicking a fused two-site wavefunction
    (chi*d rows, d*chi columns) with U(1) charges, and compare truncated
    svd_rank2 timings for dense vs block-sparse storage.

Part 2: diag_hermitian
    Same comparison for a block-diagonal density matrix on (s, s').

Usage:
    python benchmarks/bench_svd.py
"""

from __future__ import annotations

import time

import jax
import numpy as np

from tndecomp import (
    DecompConfig,
    FlowDirection,
    SymmetricTensor,
    TensorIndex,
    U1Symmetry,
    diag_hermitian,
    svd_rank2,
)

N_WARMUP = 2
N_ITER = 10


def _fused_charges(chi: int, d: int = 2) -> np.ndarray:
    """Charges of a chi-dim bond (Sz in {-1, 0, +1}) fused with a spin-1/2 site."""
    q_each = max(1, chi // 4)
    q_zero = max(1, chi - 2 * q_each)
    virt = np.concatenate([
        np.full(q_each, -1, dtype=np.int32),
        np.full(q_zero, 0, dtype=np.int32),
        np.full(q_each, 1, dtype=np.int32),
    ])[:chi]
    phys = np.array([1, -1], dtype=np.int32)[:d]
    return (virt[:, None] + phys[None, :]).reshape(-1)


def _time(fn) -> float:
    for _ in range(N_WARMUP):
        fn()
    t0 = time.perf_counter()
    for _ in range(N_ITER):
        fn()
    return 1000.0 * (time.perf_counter() - t0) / N_ITER


def _header(title: str) -> None:
    print("=" * 70)
    print(title)
    print("=" * 70)
    print(f"{'chi':>6} {'dim':>6} {'dense(ms)':>10} {'sparse(ms)':>11} "
          f"{'speedup':>8} {'fill%':>7} {'n_blocks':>9}")
    print("-" * 70)


def _row(chi: int, dim: int, dense_ms: float, sparse_ms: float, sym: SymmetricTensor) -> None:
    total = dim * dim
    nnz = sum(v.size for v in sym.blocks.values())
    fill_pct = 100.0 * nnz / total if total > 0 else 0.0
    speedup = dense_ms / sparse_ms if sparse_ms > 0 else float("inf")
    print(f"{chi:>6} {dim:>6} {dense_ms:>10.2f} {sparse_ms:>11.2f} "
          f"{speedup:>7.2f}x {fill_pct:>6.1f}% {sym.n_blocks:>9}")


def bench_svd() -> None:
    """Time svd_rank2 on dense and block-sparse storage of the same matrix."""
    _header("Part 1: svd_rank2")
    sym = U1Symmetry()
    for chi in [16, 32, 64, 128, 256]:
        charges = _fused_charges(chi)
        indices = (
            TensorIndex(sym, charges, FlowDirection.IN, label="left"),
            TensorIndex(sym, charges, FlowDirection.OUT, label="right"),
        )
        sym_tensor = SymmetricTensor.random_normal(indices, key=jax.random.PRNGKey(42))
        dense_tensor = sym_tensor.to_dense_tensor()
        config = DecompConfig(max_dim=chi, cutoff=1e-10, truncate=True)

        dense_ms = _time(lambda: svd_rank2(dense_tensor, "left", "right", config))
        sparse_ms = _time(lambda: svd_rank2(sym_tensor, "left", "right", config))
        _row(chi, len(charges), dense_ms, sparse_ms, sym_tensor)
    print()


def bench_hermitian() -> None:
    """Time diag_hermitian on a block-diagonal density matrix."""
    _header("Part 2: diag_hermitian")
    sym = U1Symmetry()
    for chi in [16, 32, 64, 128, 256]:
        charges = _fused_charges(chi)
        indices = (
            TensorIndex(sym, charges, FlowDirection.IN, label="s"),
            TensorIndex(sym, charges, FlowDirection.OUT, label="s", plev=1),
        )
        x = SymmetricTensor.random_normal(indices, key=jax.random.PRNGKey(7))
        sym_rho = SymmetricTensor({k: v @ v.T for k, v in x.blocks.items()}, indices)
        dense_rho = sym_rho.to_dense_tensor()
        config = DecompConfig(max_dim=chi, cutoff=1e-10, truncate=True)

        dense_ms = _time(lambda: diag_hermitian(dense_rho, config))
        sparse_ms = _time(lambda: diag_hermitian(sym_rho, config))
        _row(chi, len(charges), dense_ms, sparse_ms, sym_rho)
    print()


if __name__ == "__main__":
    bench_svd()
    bench_hermitian()
