"""Tests for diag_hermitian."""

import jax.numpy as jnp
import numpy as np
import pytest

from tndecomp.contraction.contractor import contract
from tndecomp.core.errors import PreconditionError, ResultIsZero
from tndecomp.core.index import FlowDirection, IndexType, TensorIndex
from tndecomp.core.scale import LogScale
from tndecomp.core.tensor import DenseTensor, SymmetricTensor
from tndecomp.decomposition.config import DecompConfig
from tndecomp.decomposition.hermitian import diag_hermitian


def reconstruct(U, D, rho):
    """``prime(U) · D · dag(U)`` laid out like ``rho``."""
    return contract(U.prime(), D, U.dag()).permute(list(rho.keys())).todense()


def descending_eigvals(rho):
    return np.sort(np.linalg.eigvalsh(np.asarray(rho.todense())))[::-1]


class TestDenseHermitian:
    def test_reconstruction(self, dense_density_matrix):
        U, D, spectrum = diag_hermitian(dense_density_matrix)
        np.testing.assert_allclose(
            reconstruct(U, D, dense_density_matrix), dense_density_matrix.todense(), atol=1e-10
        )
        assert spectrum.num_kept == 5

    def test_leg_layout(self, dense_density_matrix):
        U, D, _ = diag_hermitian(dense_density_matrix)
        assert U.keys() == (("s", 0), ("qlink", 0))
        assert D.keys() == (("qlink", 1), ("qlink", 0))
        s = dense_density_matrix.index("s")
        assert U.index("s").flow == -s.flow
        assert D.index(("qlink", 1)).flow == -D.index("qlink").flow

    def test_eigenvalues_descending(self, dense_density_matrix):
        _, D, spectrum = diag_hermitian(dense_density_matrix)
        ref = descending_eigvals(dense_density_matrix)
        np.testing.assert_allclose(spectrum.eigs_kept, ref, rtol=1e-10)
        np.testing.assert_allclose(jnp.diag(D.data), ref, rtol=1e-10)

    def test_orthonormal_columns(self, dense_density_matrix):
        U, _, _ = diag_hermitian(dense_density_matrix, {"Maxm": 3, "Truncate": True})
        np.testing.assert_allclose(U.data.T @ U.data, jnp.eye(3), atol=1e-12)

    def test_max_dim(self, dense_density_matrix):
        _, D, spectrum = diag_hermitian(dense_density_matrix, DecompConfig(max_dim=2, truncate=True))
        ref = descending_eigvals(dense_density_matrix)
        assert spectrum.num_kept == 2
        assert D.data.shape == (2, 2)
        np.testing.assert_allclose(spectrum.truncation_error, np.sum(ref[2:]), rtol=1e-10)

    def test_rank_one_keeps_full_dimension_by_default(self, u1):
        psi = np.array([1.0, 2.0, 3.0, 4.0]) / np.sqrt(30.0)
        legs = (TensorIndex(u1, np.zeros(4, dtype=np.int32), FlowDirection.IN, "s"),
                TensorIndex(u1, np.zeros(4, dtype=np.int32), FlowDirection.OUT, "s", plev=1))
        rho = DenseTensor(jnp.asarray(np.outer(psi, psi)), legs)
        U, D, spectrum = diag_hermitian(rho)
        assert spectrum.num_kept == 4
        assert D.data.shape == (4, 4)
        assert spectrum.truncation_error == 0.0
        np.testing.assert_allclose(reconstruct(U, D, rho), rho.todense(), atol=1e-12)

        _, D, spectrum = diag_hermitian(rho, {"Truncate": True, "Cutoff": 1e-10})
        assert spectrum.num_kept == 1
        np.testing.assert_allclose(spectrum.eigs_kept, [1.0], rtol=1e-10)

    def test_index_name_and_type(self, dense_density_matrix):
        U, D, _ = diag_hermitian(dense_density_matrix, {"IndexName": "n", "IndexType": "Site"})
        assert U.index("n").itype is IndexType.SITE
        assert D.keys() == (("n", 1), ("n", 0))

    def test_scale_carried_on_d(self, dense_density_matrix):
        rho = dense_density_matrix * 1e-3
        U, D, spectrum = diag_hermitian(rho)
        assert D.scale == rho.scale
        np.testing.assert_allclose(spectrum.eigs_kept, 1e-3 * descending_eigvals(dense_density_matrix),
                                   rtol=1e-10)
        np.testing.assert_allclose(reconstruct(U, D, rho), rho.todense(), atol=1e-12)

    def test_negative_scale_folded(self, dense_density_matrix):
        rho = DenseTensor(-dense_density_matrix.data, dense_density_matrix.indices,
                          LogScale.from_real(-2.0))
        U, D, spectrum = diag_hermitian(rho)
        assert D.scale.sign == 1
        np.testing.assert_allclose(spectrum.eigs_kept, 2.0 * descending_eigvals(dense_density_matrix),
                                   rtol=1e-10)
        np.testing.assert_allclose(reconstruct(U, D, rho), rho.todense(), atol=1e-10)

    def test_primed_leg_first(self, dense_density_matrix):
        rho = dense_density_matrix.permute([("s", 1), ("s", 0)])
        U, D, _ = diag_hermitian(rho)
        np.testing.assert_allclose(reconstruct(U, D, rho), rho.todense(), atol=1e-10)

    def test_missing_prime_raises(self, small_dense_matrix):
        with pytest.raises(PreconditionError, match="prime"):
            diag_hermitian(small_dense_matrix)

    def test_no_unprimed_leg_raises(self, dense_density_matrix):
        with pytest.raises(PreconditionError, match="unprimed"):
            diag_hermitian(dense_density_matrix.prime())

    def test_complex_not_implemented(self, dense_density_matrix):
        with pytest.raises(NotImplementedError):
            diag_hermitian(dense_density_matrix * 1j)

    def test_zero_dim_leg(self, u1):
        legs = (TensorIndex(u1, [], FlowDirection.IN, "s"),
                TensorIndex(u1, [], FlowDirection.OUT, "s", plev=1))
        with pytest.raises(ResultIsZero):
            diag_hermitian(DenseTensor(jnp.zeros((0, 0)), legs))


class TestSymmetricHermitian:
    def test_reconstruction(self, u1_sym_density_matrix):
        U, D, spectrum = diag_hermitian(u1_sym_density_matrix)
        assert isinstance(D, SymmetricTensor)
        np.testing.assert_allclose(
            reconstruct(U, D, u1_sym_density_matrix), u1_sym_density_matrix.todense(), atol=1e-10
        )

    def test_spectrum_matches_dense(self, u1_sym_density_matrix):
        _, _, spectrum = diag_hermitian(u1_sym_density_matrix)
        np.testing.assert_allclose(
            spectrum.eigs_kept, descending_eigvals(u1_sym_density_matrix), rtol=1e-8, atol=1e-12
        )

    def test_new_leg_carries_sector_charges(self, u1_sym_density_matrix):
        U, D, _ = diag_hermitian(u1_sym_density_matrix)
        assert D.index("qlink").sectors() == [(-1, 2), (0, 3), (1, 2)]
        assert set(U.blocks) == {(-1, -1), (0, 0), (1, 1)}

    def test_global_truncation(self, u1_sym_density_matrix):
        _, D, spectrum = diag_hermitian(u1_sym_density_matrix, {"Maxm": 4, "Truncate": True})
        ref = descending_eigvals(u1_sym_density_matrix)
        assert spectrum.num_kept == 4
        assert D.index("qlink").dim == 4
        np.testing.assert_allclose(spectrum.eigs_kept, ref[:4], rtol=1e-10)
        np.testing.assert_allclose(spectrum.truncation_error, np.sum(ref[4:]), rtol=1e-8)

    def test_kept_negative_eigenvalues_zeroed(self, u1):
        charges = np.array([0, 1], dtype=np.int32)
        legs = (TensorIndex(u1, charges, FlowDirection.IN, "s"),
                TensorIndex(u1, charges, FlowDirection.OUT, "s", plev=1))
        rho = SymmetricTensor({(0, 0): jnp.array([[1.0]]), (1, 1): jnp.array([[-1e-3]])}, legs)
        _, D, spectrum = diag_hermitian(rho, {"Cutoff": 0.0, "Truncate": True})
        assert spectrum.num_kept == 2
        np.testing.assert_allclose(spectrum.eigs_kept, [1.0, 0.0])
        np.testing.assert_allclose(D.blocks[(1, 1)], [[0.0]])

    def test_truncate_off_keeps_negative(self, u1):
        charges = np.array([0, 1], dtype=np.int32)
        legs = (TensorIndex(u1, charges, FlowDirection.IN, "s"),
                TensorIndex(u1, charges, FlowDirection.OUT, "s", plev=1))
        rho = SymmetricTensor({(0, 0): jnp.array([[1.0]]), (1, 1): jnp.array([[-0.5]])}, legs)
        _, D, spectrum = diag_hermitian(rho, {"Truncate": False})
        np.testing.assert_allclose(spectrum.eigs_kept, [1.0, -0.5])
        np.testing.assert_allclose(D.blocks[(1, 1)], [[-0.5]])

    def test_zero_block_kept_by_default(self, u1):
        charges = np.array([0, 0, 1], dtype=np.int32)
        legs = (TensorIndex(u1, charges, FlowDirection.IN, "s"),
                TensorIndex(u1, charges, FlowDirection.OUT, "s", plev=1))
        psi = np.array([0.6, 0.8])
        rho = SymmetricTensor({(0, 0): jnp.asarray(np.outer(psi, psi)),
                               (1, 1): jnp.array([[0.0]])}, legs)
        _, D, spectrum = diag_hermitian(rho)
        assert spectrum.num_kept == 3
        assert D.index("qlink").sectors() == [(0, 2), (1, 1)]

        _, D, spectrum = diag_hermitian(rho, {"Truncate": True, "Cutoff": 1e-10})
        assert spectrum.num_kept == 1
        assert D.index("qlink").sectors() == [(0, 1)]

    def test_negative_scale_folded(self, u1_sym_density_matrix):
        rho = SymmetricTensor({k: -v for k, v in u1_sym_density_matrix.blocks.items()},
                              u1_sym_density_matrix.indices, LogScale.from_real(-1.0))
        U, D, spectrum = diag_hermitian(rho)
        assert D.scale.sign == 1
        np.testing.assert_allclose(reconstruct(U, D, rho), rho.todense(), atol=1e-10)

    def test_no_blocks(self, u1):
        legs = (TensorIndex(u1, [0], FlowDirection.IN, "s"),
                TensorIndex(u1, [0], FlowDirection.OUT, "s", plev=1))
        with pytest.raises(ResultIsZero, match="no blocks"):
            diag_hermitian(SymmetricTensor({}, legs))

    def test_show_eigs_prints(self, u1_sym_density_matrix, capsys):
        diag_hermitian(u1_sym_density_matrix, {"ShowEigs": True, "Maxm": 3, "Truncate": True})
        out = capsys.readouterr().out
        assert "Kept m=3 states" in out
        assert "Denmat evals" in out
