"""Shared fixtures for the TN-Decomp test suite."""

import jax
import numpy as np
import pytest

from tndecomp.core.index import FlowDirection, IndexType, TensorIndex
from tndecomp.core.symmetry import U1Symmetry, ZnSymmetry
from tndecomp.core.tensor import DenseTensor, SymmetricTensor

# ------------------------------------------------------------------ #
# Symmetry fixtures                                                    #
# ------------------------------------------------------------------ #

@pytest.fixture
def u1():
    return U1Symmetry()


@pytest.fixture
def z2():
    return ZnSymmetry(2)


@pytest.fixture
def z3():
    return ZnSymmetry(3)


# ------------------------------------------------------------------ #
# Random key fixture                                                   #
# ------------------------------------------------------------------ #

@pytest.fixture
def rng():
    return jax.random.PRNGKey(42)


@pytest.fixture
def rng2():
    return jax.random.PRNGKey(99)


# ------------------------------------------------------------------ #
# TensorIndex fixtures                                                 #
# ------------------------------------------------------------------ #

@pytest.fixture
def u1_charges_3():
    """U(1) charges [-1, 0, 1], typical for spin-1 or bond dim 3."""
    return np.array([-1, 0, 1], dtype=np.int32)


@pytest.fixture
def u1_charges_2():
    """U(1) charges [-1, 1], typical for spin-1/2."""
    return np.array([-1, 1], dtype=np.int32)


def _dense_index(u1, dim, label, flow=FlowDirection.IN, plev=0, itype=IndexType.LINK):
    """Leg with all-zero charges, as used by dense tensors."""
    return TensorIndex(u1, np.zeros(dim, dtype=np.int32), flow, label=label,
                       plev=plev, itype=itype)


def _dense_tensor(key, legs):
    """Random DenseTensor on the given legs."""
    return DenseTensor.random_normal(legs, key)


# ------------------------------------------------------------------ #
# DenseTensor fixtures                                                 #
# ------------------------------------------------------------------ #

@pytest.fixture
def small_dense_matrix(u1, rng):
    """A 3x4 DenseTensor with legs 'row' and 'col'."""
    return _dense_tensor(rng, (_dense_index(u1, 3, "row"),
                              _dense_index(u1, 4, "col", FlowDirection.OUT)))


@pytest.fixture
def dense_density_matrix(u1, rng):
    """A 5x5 symmetric positive semi-definite DenseTensor on legs s, s'."""
    x = np.asarray(jax.random.normal(rng, (5, 5)))
    rho = x @ x.T
    legs = (_dense_index(u1, 5, "s"), _dense_index(u1, 5, "s", FlowDirection.OUT, plev=1))
    return DenseTensor(rho, legs)


# ------------------------------------------------------------------ #
# SymmetricTensor fixtures                                             #
# ------------------------------------------------------------------ #

@pytest.fixture
def u1_bond_charges():
    """Charges of a U(1) bond with sectors -1 (x2), 0 (x3), 1 (x2)."""
    return np.array([-1, -1, 0, 0, 0, 1, 1], dtype=np.int32)


@pytest.fixture
def u1_sym_matrix(u1, u1_bond_charges, rng):
    """Rank-2 U(1) tensor IN x OUT on the same charges: one block per sector."""
    indices = (
        TensorIndex(u1, u1_bond_charges, FlowDirection.IN, label="i"),
        TensorIndex(u1, u1_bond_charges, FlowDirection.OUT, label="j"),
    )
    return SymmetricTensor.random_normal(indices, rng)


@pytest.fixture
def u1_sym_density_matrix(u1, u1_bond_charges, rng):
    """Block-diagonal positive semi-definite U(1) tensor on legs s, s'."""
    indices = (
        TensorIndex(u1, u1_bond_charges, FlowDirection.IN, label="s"),
        TensorIndex(u1, u1_bond_charges, FlowDirection.OUT, label="s", plev=1),
    )
    x = SymmetricTensor.random_normal(indices, rng)
    blocks = {k: v @ v.T for k, v in x.blocks.items()}
    return SymmetricTensor(blocks, indices)


@pytest.fixture
def u1_sym_tensor_pair(u1, rng, rng2):
    """A pair of 3-leg U(1)-symmetric tensors that can be contracted on 'bond'.

    Both tensors use the SAME charge array for the shared bond leg with
    opposite flow directions (OUT for A, IN for B).
    """
    phys_c = np.array([-1, 1], dtype=np.int32)
    bond_c = np.array([-1, 0, 1], dtype=np.int32)

    indices_A = (
        TensorIndex(u1, phys_c, FlowDirection.IN, label="p0"),
        TensorIndex(u1, bond_c, FlowDirection.IN, label="bond_left"),
        TensorIndex(u1, bond_c, FlowDirection.OUT, label="bond"),
    )
    indices_B = (
        TensorIndex(u1, phys_c, FlowDirection.IN, label="p1"),
        TensorIndex(u1, bond_c, FlowDirection.IN, label="bond"),
        TensorIndex(u1, bond_c, FlowDirection.OUT, label="bond_right"),
    )
    A = SymmetricTensor.random_normal(indices_A, rng)
    B = SymmetricTensor.random_normal(indices_B, rng2)
    return A, B
