"""TN-Decomp: truncated decompositions and local operators for tensor networks.

Rank-2 SVD and Hermitian eigendecomposition with truncation, sign fixing
and log-scale bookkeeping, for dense and block-sparse (charge-conserving)
tensors, plus :class:`LocalOp`, an MPO projected onto one or two MPS sites.

.. note::
    Importing ``tndecomp`` enables JAX 64-bit mode (``jax_enable_x64``).
    All tensors and decompositions default to ``float64``.

Quick start::

    import jax
    import numpy as np
    from tndecomp import (
        U1Symmetry, TensorIndex, FlowDirection, SymmetricTensor, svd_rank2
    )

    u1 = U1Symmetry()
    charges = np.array([-1, 0, 0, 1], dtype=np.int32)
    A = SymmetricTensor.random_normal(
        indices=(
            TensorIndex(u1, charges, FlowDirection.IN, label="i"),
            TensorIndex(u1, charges, FlowDirection.OUT, label="j"),
        ),
        key=jax.random.PRNGKey(0),
    )
    U, D, V, spectrum = svd_rank2(A, "i", "j", {"Maxm": 3})
    print(spectrum.num_kept, spectrum.truncation_error)
"""

import jax

jax.config.update("jax_enable_x64", True)

from tndecomp.contraction.contractor import (
    combiner,
    common_index,
    contract,
    contract_with_subscripts,
    tie_indices,
)
from tndecomp.core.errors import PreconditionError, ResultIsZero, TNDecompError
from tndecomp.core.index import FlowDirection, IndexKey, IndexType, Label, TensorIndex
from tndecomp.core.scale import LogScale
from tndecomp.core.symmetry import BaseSymmetry, U1Symmetry, ZnSymmetry
from tndecomp.core.tensor import BlockKey, DenseTensor, SymmetricTensor, Tensor
from tndecomp.decomposition.config import MAX_M, MIN_CUT, DecompConfig
from tndecomp.decomposition.eig import eig_decomp
from tndecomp.decomposition.hermitian import diag_hermitian
from tndecomp.decomposition.matrix import Rank2Block, rank2_blocks, to_matrix
from tndecomp.decomposition.svd import svd_rank2
from tndecomp.decomposition.truncation import Spectrum, TruncationResult, show_eigs, truncate
from tndecomp.local_op import Direction, LocalOp

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Symmetries
    "BaseSymmetry",
    "U1Symmetry",
    "ZnSymmetry",
    # Index
    "FlowDirection",
    "IndexType",
    "IndexKey",
    "Label",
    "TensorIndex",
    # Tensors
    "LogScale",
    "Tensor",
    "DenseTensor",
    "SymmetricTensor",
    "BlockKey",
    # Errors
    "TNDecompError",
    "PreconditionError",
    "ResultIsZero",
    # Contraction
    "contract",
    "contract_with_subscripts",
    "tie_indices",
    "combiner",
    "common_index",
    # Decompositions
    "MIN_CUT",
    "MAX_M",
    "DecompConfig",
    "Rank2Block",
    "rank2_blocks",
    "to_matrix",
    "TruncationResult",
    "truncate",
    "Spectrum",
    "show_eigs",
    "svd_rank2",
    "diag_hermitian",
    "eig_decomp",
    # Local operator
    "Direction",
    "LocalOp",
]
