"""Tensor contraction engine with key-based API."""

from tndecomp.contraction.contractor import (
    combiner,
    common_index,
    contract,
    contract_with_subscripts,
    tie_indices,
)

__all__ = [
    "contract",
    "contract_with_subscripts",
    "tie_indices",
    "combiner",
    "common_index",
]
