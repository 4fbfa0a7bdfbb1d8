"""Dense linear-algebra kernels used by the decomposition routines.

Thin wrappers over ``jax.numpy.linalg`` that fix the output conventions the
orchestrators rely on: descending order and column-wise right factors.
"""

from __future__ import annotations

import jax
import jax.numpy as jnp
import numpy as np


def svd_kernel(
    matrix: jax.Array,
    threshold: float = 1e-3,
    n_orth_pass: int = 2,
) -> tuple[jax.Array, jax.Array, jax.Array]:
    """Thin SVD ``M = U @ diag(s) @ V.T`` with ``V`` returned column-wise.

    Singular values below ``threshold * s[0]`` lose relative accuracy in a
    single LAPACK call. For those, the matrix is projected onto the trailing
    left/right singular subspaces and decomposed again, up to
    ``n_orth_pass`` times, which recovers small singular values to relative
    precision.

    Returns:
        (U, s, V) with ``s`` descending.
    """
    M = jnp.asarray(matrix)
    U, s, Vh = jnp.linalg.svd(M, full_matrices=False)
    V = Vh.T
    if s.shape[0] == 0 or n_orth_pass <= 0:
        return U, s, V

    for _ in range(n_orth_pass):
        s_np = np.asarray(s)
        if s_np[0] == 0:
            break
        small = np.nonzero(s_np < threshold * s_np[0])[0]
        if small.size == 0:
            break
        start = int(small[0])
        Ut, Vt = U[:, start:], V[:, start:]
        u2, s2, vh2 = jnp.linalg.svd(Ut.T @ M @ Vt, full_matrices=False)
        U = U.at[:, start:].set(Ut @ u2)
        V = V.at[:, start:].set(Vt @ vh2.T)
        s = s.at[start:].set(s2)
    return U, s, V


def eigh_kernel(matrix: jax.Array) -> tuple[jax.Array, jax.Array]:
    """Symmetric eigendecomposition with eigenvalues in descending order.

    Returns:
        (U, d) with ``M = U @ diag(d) @ U.T``.
    """
    d, U = jnp.linalg.eigh(jnp.asarray(matrix))
    return U[:, ::-1], d[::-1]


def eig_kernel(matrix: jax.Array) -> tuple[jax.Array, jax.Array]:
    """General (non-symmetric) eigendecomposition, CPU only.

    Eigenpairs are ordered by descending real part (stable), so the output
    is reproducible across runs.

    Returns:
        (V, d), complex, with ``M @ V = V @ diag(d)``.
    """
    d, V = jnp.linalg.eig(jnp.asarray(matrix))
    order = np.argsort(-np.real(np.asarray(d)), kind="stable")
    return V[:, order], d[order]
