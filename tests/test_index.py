"""Tests for TensorIndex, FlowDirection and IndexType."""

import numpy as np
import pytest

from tndecomp.core.index import FlowDirection, IndexType, TensorIndex
from tndecomp.core.symmetry import ZnSymmetry


class TestFlowDirection:
    def test_values(self):
        assert int(FlowDirection.IN) == 1
        assert int(FlowDirection.OUT) == -1


class TestIndexType:
    def test_coerce_accepts_names_and_values(self):
        assert IndexType.coerce("Site") is IndexType.SITE
        assert IndexType.coerce("link") is IndexType.LINK
        assert IndexType.coerce(IndexType.SITE) is IndexType.SITE

    def test_coerce_unknown_raises(self):
        with pytest.raises(ValueError, match="Unknown index type"):
            IndexType.coerce("Bond")


class TestTensorIndexCreation:
    def test_basic_creation(self, u1, u1_charges_3):
        idx = TensorIndex(u1, u1_charges_3, FlowDirection.IN, label="test")
        assert idx.dim == 3
        assert idx.flow == FlowDirection.IN
        assert idx.plev == 0
        assert idx.itype is IndexType.LINK
        assert idx.key == ("test", 0)

    def test_int32_coercion(self, u1):
        idx = TensorIndex(u1, np.array([0, 1, -1], dtype=np.int64), FlowDirection.IN)
        assert idx.charges.dtype == np.int32

    def test_flow_coerced_from_int(self, u1, u1_charges_2):
        idx = TensorIndex(u1, u1_charges_2, -1)
        assert idx.flow is FlowDirection.OUT

    def test_multidim_raises(self, u1):
        with pytest.raises(ValueError, match="1-D"):
            TensorIndex(u1, np.zeros((2, 2), dtype=np.int32), FlowDirection.IN)

    def test_negative_plev_raises(self, u1, u1_charges_2):
        with pytest.raises(ValueError, match="prime level"):
            TensorIndex(u1, u1_charges_2, FlowDirection.IN, plev=-1)

    def test_from_sectors(self, u1):
        idx = TensorIndex.from_sectors(u1, [(1, 2), (-1, 0), (0, 3)], FlowDirection.OUT, "b")
        np.testing.assert_array_equal(idx.charges, [1, 1, 0, 0, 0])
        assert idx.sectors() == [(1, 2), (0, 3)]

    def test_from_sectors_empty(self, u1):
        idx = TensorIndex.from_sectors(u1, [], FlowDirection.IN)
        assert idx.dim == 0
        assert idx.sectors() == []


class TestTensorIndexTransforms:
    def test_prime_and_noprime(self, u1, u1_charges_2):
        s = TensorIndex(u1, u1_charges_2, FlowDirection.IN, label="s", itype=IndexType.SITE)
        sp = s.prime()
        assert sp.key == ("s", 1)
        assert s.prime(2).plev == 2
        assert sp.noprime() == s
        assert sp.set_prime(3).plev == 3
        assert sp.itype is IndexType.SITE

    def test_flip_keeps_charges(self, u1, u1_charges_3):
        idx = TensorIndex(u1, u1_charges_3, FlowDirection.IN, label="a")
        f = idx.flip()
        assert f.flow == FlowDirection.OUT
        np.testing.assert_array_equal(f.charges, idx.charges)
        assert f.compatible_with(idx)

    def test_dual_inverts_charges(self, u1, u1_charges_3):
        idx = TensorIndex(u1, u1_charges_3, FlowDirection.IN, label="a")
        d = idx.dual()
        np.testing.assert_array_equal(d.charges, -u1_charges_3)
        assert d.is_dual_of(idx)
        assert not idx.flip().is_dual_of(TensorIndex(u1, [0, 0, 1], FlowDirection.IN))

    def test_relabel(self, u1, u1_charges_2):
        idx = TensorIndex(u1, u1_charges_2, FlowDirection.IN, label="a", plev=1)
        r = idx.relabel("b")
        assert r.key == ("b", 1)

    def test_zn_dual(self):
        z3 = ZnSymmetry(3)
        idx = TensorIndex(z3, np.array([0, 1, 2]), FlowDirection.IN)
        np.testing.assert_array_equal(idx.dual().charges, [0, 2, 1])


class TestTensorIndexEquality:
    def test_equal_and_hash(self, u1, u1_charges_3):
        a = TensorIndex(u1, u1_charges_3, FlowDirection.IN, label="x")
        b = TensorIndex(u1, u1_charges_3.copy(), FlowDirection.IN, label="x")
        assert a == b
        assert hash(a) == hash(b)

    def test_plev_and_type_distinguish(self, u1, u1_charges_3):
        a = TensorIndex(u1, u1_charges_3, FlowDirection.IN, label="x")
        assert a != a.prime()
        assert a != TensorIndex(u1, u1_charges_3, FlowDirection.IN, label="x",
                                itype=IndexType.SITE)

    def test_incompatible_dims(self, u1):
        a = TensorIndex(u1, [0, 0], FlowDirection.IN)
        b = TensorIndex(u1, [0, 0, 0], FlowDirection.OUT)
        assert not a.compatible_with(b)

    def test_repr_shows_primes(self, u1, u1_charges_2):
        idx = TensorIndex(u1, u1_charges_2, FlowDirection.IN, label="s", plev=2)
        assert "'s''" in repr(idx)
