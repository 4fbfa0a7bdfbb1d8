"""Tests for eig_decomp."""

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from tndecomp.core.errors import PreconditionError, ResultIsZero
from tndecomp.core.index import FlowDirection, IndexType, TensorIndex
from tndecomp.core.scale import LogScale
from tndecomp.core.tensor import DenseTensor, SymmetricTensor
from tndecomp.decomposition.eig import eig_decomp


def square_legs(u1, dim, itype=IndexType.LINK):
    charges = np.zeros(dim, dtype=np.int32)
    return (TensorIndex(u1, charges, FlowDirection.IN, "a", itype=itype),
            TensorIndex(u1, charges, FlowDirection.OUT, "b", itype=itype))


def assert_eigen_equation(M, V, D):
    """``M V = V D`` on dense payloads."""
    M, V, D = (np.asarray(x) for x in (M, V, D))
    np.testing.assert_allclose(M @ V, V @ D, atol=1e-10)


class TestDenseEig:
    def test_real_spectrum(self, u1):
        M = jnp.array([[2.0, 1.0], [0.0, 3.0]])
        V, D = eig_decomp(DenseTensor(M, square_legs(u1, 2)), "a", "b")
        assert not V.is_complex
        assert not D.is_complex
        np.testing.assert_allclose(jnp.diag(D.data), [3.0, 2.0])
        assert_eigen_equation(M, V.data, D.data)

    def test_complex_spectrum(self, u1):
        M = jnp.array([[0.0, -1.0], [1.0, 0.0]])
        V, D = eig_decomp(DenseTensor(M, square_legs(u1, 2)), "a", "b")
        assert D.is_complex
        np.testing.assert_allclose(np.sort(np.imag(np.diag(np.asarray(D.data)))), [-1.0, 1.0])
        assert_eigen_equation(M, V.data, D.data)

    def test_leg_layout(self, u1):
        M = jnp.array([[1.0, 2.0], [3.0, 4.0]])
        legs = square_legs(u1, 2, IndexType.SITE)
        V, D = eig_decomp(DenseTensor(M, legs), "a", "b", {"IndexName": "n"})
        assert V.keys() == (("b", 0), ("n", 0))
        assert V.index("b").flow == FlowDirection.IN
        assert D.keys() == (("n", 1), ("n", 0))
        assert V.index("n").itype is IndexType.SITE

    def test_transposed_request(self, u1, rng):
        M = jax.random.normal(rng, (4, 4))
        T = DenseTensor(M, square_legs(u1, 4))
        V, D = eig_decomp(T, "b", "a")
        assert_eigen_equation(M.T, V.data, D.data)

    def test_scale_on_d(self, u1):
        M = jnp.array([[2.0, 0.0], [0.0, 1.0]])
        T = DenseTensor(M, square_legs(u1, 2), LogScale.from_real(-4.0))
        V, D = eig_decomp(T, "a", "b")
        assert D.scale == T.scale
        assert V.scale == LogScale()
        np.testing.assert_allclose(jnp.diag(D.todense()), [-8.0, -4.0])

    def test_non_square_raises(self, small_dense_matrix):
        with pytest.raises(PreconditionError, match="square"):
            eig_decomp(small_dense_matrix, "row", "col")

    def test_complex_input_not_implemented(self, u1):
        T = DenseTensor(jnp.eye(2), square_legs(u1, 2)) * 1j
        with pytest.raises(NotImplementedError):
            eig_decomp(T, "a", "b")


class TestSymmetricEig:
    def test_blockwise_eigen_equation(self, u1_sym_matrix):
        V, D = eig_decomp(u1_sym_matrix, "i", "j")
        assert isinstance(V, SymmetricTensor)
        assert set(D.blocks) == {(-1, -1), (0, 0), (1, 1)}
        assert_eigen_equation(u1_sym_matrix.todense(), V.todense(), D.todense())

    def test_new_leg_carries_column_charges(self, u1_sym_matrix):
        V, D = eig_decomp(u1_sym_matrix, "i", "j")
        assert D.index("qlink").sectors() == [(-1, 2), (0, 3), (1, 2)]
        assert V.index("j").flow == -u1_sym_matrix.index("j").flow

    def test_symmetric_blocks_give_real_output(self, u1_sym_density_matrix):
        V, D = eig_decomp(u1_sym_density_matrix, "s", ("s", 1))
        assert not V.is_complex
        assert not D.is_complex

    def test_non_square_block_raises(self, u1, rng):
        legs = (TensorIndex(u1, [0, 0, 1], FlowDirection.IN, "a"),
                TensorIndex(u1, [0, 1, 1], FlowDirection.OUT, "b"))
        T = SymmetricTensor.random_normal(legs, rng)
        with pytest.raises(PreconditionError, match="not square"):
            eig_decomp(T, "a", "b")

    def test_no_blocks(self, u1):
        legs = (TensorIndex(u1, [0], FlowDirection.IN, "a"),
                TensorIndex(u1, [1], FlowDirection.OUT, "b"))
        with pytest.raises(ResultIsZero):
            eig_decomp(SymmetricTensor({}, legs), "a", "b")

    def test_rank_check(self, u1_sym_tensor_pair):
        A, _ = u1_sym_tensor_pair
        with pytest.raises(PreconditionError):
            eig_decomp(A, "p0", "bond")
