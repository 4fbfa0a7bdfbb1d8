"""Rank-2 decompositions with truncation: SVD, Hermitian and general eigensolvers."""

from tndecomp.decomposition.config import MAX_M, MIN_CUT, DecompConfig
from tndecomp.decomposition.eig import eig_decomp
from tndecomp.decomposition.hermitian import diag_hermitian
from tndecomp.decomposition.matrix import Rank2Block, rank2_blocks, resolve_axis, to_matrix
from tndecomp.decomposition.svd import svd_rank2
from tndecomp.decomposition.truncation import Spectrum, TruncationResult, show_eigs, truncate

__all__ = [
    "MIN_CUT",
    "MAX_M",
    "DecompConfig",
    "Rank2Block",
    "rank2_blocks",
    "resolve_axis",
    "to_matrix",
    "TruncationResult",
    "truncate",
    "Spectrum",
    "show_eigs",
    "svd_rank2",
    "diag_hermitian",
    "eig_decomp",
]
