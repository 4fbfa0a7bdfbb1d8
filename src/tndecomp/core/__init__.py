"""Core tensor, index, scale and symmetry classes."""

from tndecomp.core.errors import PreconditionError, ResultIsZero, TNDecompError
from tndecomp.core.index import FlowDirection, IndexKey, IndexType, Label, TensorIndex
from tndecomp.core.scale import LogScale
from tndecomp.core.symmetry import BaseSymmetry, U1Symmetry, ZnSymmetry
from tndecomp.core.tensor import BlockKey, DenseTensor, IndexRef, SymmetricTensor, Tensor

__all__ = [
    "BaseSymmetry",
    "U1Symmetry",
    "ZnSymmetry",
    "FlowDirection",
    "IndexType",
    "IndexKey",
    "Label",
    "TensorIndex",
    "LogScale",
    "Tensor",
    "DenseTensor",
    "SymmetricTensor",
    "BlockKey",
    "IndexRef",
    "TNDecompError",
    "PreconditionError",
    "ResultIsZero",
]
