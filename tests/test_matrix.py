"""Tests for the rank-2 matrix views."""

import numpy as np
import pytest

from tndecomp.core.errors import PreconditionError
from tndecomp.core.index import FlowDirection, TensorIndex
from tndecomp.core.tensor import SymmetricTensor
from tndecomp.decomposition.matrix import rank2_blocks, to_matrix


class TestToMatrix:
    def test_row_first(self, small_dense_matrix):
        M = to_matrix(small_dense_matrix, "row", "col")
        np.testing.assert_array_equal(M, small_dense_matrix.data)

    def test_row_second_is_transpose(self, small_dense_matrix):
        M = to_matrix(small_dense_matrix, ("col", 0), small_dense_matrix.index("row"))
        np.testing.assert_array_equal(M, small_dense_matrix.data.T)

    def test_same_leg_raises(self, small_dense_matrix):
        with pytest.raises(PreconditionError, match="both name"):
            to_matrix(small_dense_matrix, "row", "row")

    def test_rank_check(self, u1_sym_tensor_pair):
        A, _ = u1_sym_tensor_pair
        with pytest.raises(PreconditionError, match="rank-2"):
            to_matrix(A.to_dense_tensor(), "p0", "bond")

    def test_missing_leg_raises(self, small_dense_matrix):
        with pytest.raises(KeyError):
            to_matrix(small_dense_matrix, "row", "nope")


class TestRank2Blocks:
    def test_ascending_order(self, u1_sym_matrix):
        blocks = rank2_blocks(u1_sym_matrix, "i", "j")
        assert [(b.row_charge, b.col_charge) for b in blocks] == [(-1, -1), (0, 0), (1, 1)]
        assert not any(b.transposed for b in blocks)
        np.testing.assert_array_equal(blocks[1].matrix, u1_sym_matrix.blocks[(0, 0)])

    def test_transposed_view(self, u1, rng):
        a = TensorIndex(u1, [0, 0, 1], FlowDirection.IN, "a")
        b = TensorIndex(u1, [1, 0], FlowDirection.OUT, "b")
        T = SymmetricTensor.random_normal((a, b), rng)
        blocks = rank2_blocks(T, "b", "a")
        assert [(blk.row_charge, blk.col_charge) for blk in blocks] == [(0, 0), (1, 1)]
        assert all(blk.transposed for blk in blocks)
        assert blocks[0].matrix.shape == (1, 2)
        np.testing.assert_array_equal(blocks[0].matrix, T.blocks[(0, 0)].T)

    def test_block_shapes(self, u1, rng):
        a = TensorIndex(u1, [0, 0, 1], FlowDirection.IN, "a")
        b = TensorIndex(u1, [1, 0, 0, 0], FlowDirection.OUT, "b")
        T = SymmetricTensor.random_normal((a, b), rng)
        assert [blk.matrix.shape for blk in rank2_blocks(T, "a", "b")] == [(2, 3), (1, 1)]

    def test_empty(self, u1):
        a = TensorIndex(u1, [0], FlowDirection.IN, "a")
        b = TensorIndex(u1, [1], FlowDirection.OUT, "b")
        assert rank2_blocks(SymmetricTensor({}, (a, b)), "a", "b") == []
