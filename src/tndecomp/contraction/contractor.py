r"""Tensor contraction engine with key-based API.

Primary API::

    contract(\*tensors, output_labels=None, optimize="auto") -> Tensor

A leg is identified by its key ``(label, plev)``. Legs with the same key on
two tensors are contracted (summed over); keys that occur once become output
legs. ``s`` and its prime ``s'`` therefore never contract with each other,
which is how operator input/output legs are kept apart.

Keys are translated to einsum subscript strings which are fed to opt_einsum
for contraction path finding, then executed with the JAX backend. The output
scale is the product of the input scales; payloads are never rescaled.

Helpers::

    contract_with_subscripts(tensors, subscripts, output_indices, optimize) -> Tensor
    tie_indices(tensor, ref) -> Tensor
    combiner(indices, label) -> Tensor
    common_index(a, b) -> TensorIndex | None
"""

from __future__ import annotations

import string
from collections import Counter
from collections.abc import Iterator, Sequence
from typing import Any

import jax
import jax.numpy as jnp
import numpy as np
import opt_einsum

from tndecomp.core.index import FlowDirection, IndexKey, IndexType, Label, TensorIndex
from tndecomp.core.scale import LogScale
from tndecomp.core.tensor import (
    BlockKey,
    DenseTensor,
    IndexRef,
    SymmetricTensor,
    Tensor,
    _key_of,
)

_CHARS = string.ascii_lowercase + string.ascii_uppercase


# ---------- Key → Subscript Translation ----------

def _keys_to_subscripts(
    tensors: Sequence[Tensor],
    output_labels: Sequence[IndexRef] | None = None,
) -> tuple[str, tuple[TensorIndex, ...]]:
    """Build an einsum subscript string from leg keys.

    Args:
        tensors:       Sequence of Tensor objects.
        output_labels: Explicit ordering of free legs in the output. If None,
                       free legs of t0, then t1, ... in order.

    Returns:
        (subscripts, output_indices).

    Raises:
        ValueError: If a key appears more than twice, if two contracted legs
            differ in dimension, or if output_labels names a leg that is not
            free.
    """
    key_counts: Counter[IndexKey] = Counter()
    key_to_index: dict[IndexKey, TensorIndex] = {}

    for tensor in tensors:
        for idx in tensor.indices:
            key_counts[idx.key] += 1
            first = key_to_index.setdefault(idx.key, idx)
            if first.dim != idx.dim:
                raise ValueError(
                    f"Leg {idx.key!r} has dimension {first.dim} on one tensor "
                    f"and {idx.dim} on another"
                )

    for key, count in key_counts.items():
        if count > 2:
            raise ValueError(
                f"Leg {key!r} appears {count} times across tensors. "
                f"Keys must appear at most 2 times."
            )

    all_keys = sorted(key_counts.keys(), key=str)
    if len(all_keys) > len(_CHARS):
        raise ValueError(
            f"Too many distinct legs ({len(all_keys)}) for einsum encoding. "
            f"Maximum supported is {len(_CHARS)}."
        )
    key_to_char = {key: _CHARS[i] for i, key in enumerate(all_keys)}

    free_keys = [key for key, cnt in key_counts.items() if cnt == 1]
    if output_labels is None:
        out_keys = [idx.key for t in tensors for idx in t.indices if key_counts[idx.key] == 1]
    else:
        out_keys = [_key_of(ref) for ref in output_labels]
        free_set = set(free_keys)
        for key in out_keys:
            if key not in free_set:
                raise ValueError(
                    f"output_labels contains {key!r} which is not a free leg. "
                    f"Free legs are: {free_keys}"
                )

    tensor_subs = ["".join(key_to_char[idx.key] for idx in t.indices) for t in tensors]
    subscripts = ",".join(tensor_subs) + "->" + "".join(key_to_char[k] for k in out_keys)
    return subscripts, tuple(key_to_index[k] for k in out_keys)


def _product_scale(tensors: Sequence[Tensor]) -> LogScale:
    scale = LogScale()
    for t in tensors:
        scale = scale * t.scale
    return scale


# ---------- Dense contraction ----------

def _contract_dense(
    tensors: Sequence[DenseTensor],
    subscripts: str,
    output_indices: tuple[TensorIndex, ...],
    optimize: str = "auto",
) -> DenseTensor:
    """Contract dense payloads using opt_einsum with the JAX backend."""
    arrays = [t.data for t in tensors]
    _, path_info = opt_einsum.contract_path(subscripts, *arrays, optimize=optimize)
    result = opt_einsum.contract(
        subscripts, *arrays, optimize=path_info.path, backend="jax"
    )
    return DenseTensor(result, output_indices, _product_scale(tensors))


# ---------- Symmetric (block-sparse) contraction ----------

def _check_symmetric_legs(
    tensors: Sequence[SymmetricTensor],
    input_subs: Sequence[str],
) -> None:
    seen: dict[str, TensorIndex] = {}
    for tensor, subs in zip(tensors, input_subs):
        for char, idx in zip(subs, tensor.indices):
            other = seen.get(char)
            if other is None:
                seen[char] = idx
                continue
            if not idx.compatible_with(other):
                raise ValueError(f"Contracted legs {idx.key!r} carry different charges")
            if idx.flow == other.flow:
                raise ValueError(
                    f"Contracted legs {idx.key!r} both flow {idx.flow.name}; "
                    f"one end of a bond must be the flip of the other"
                )


def _block_combinations(
    tensors: Sequence[SymmetricTensor],
    input_subs: Sequence[str],
) -> Iterator[tuple[dict[str, int], list[jax.Array]]]:
    """Yield block choices (one per tensor) whose shared legs agree in charge.

    Partial choices are pruned as soon as a contracted leg disagrees, and
    blocks are visited in sorted key order so accumulation is deterministic.
    """
    def extend(pos: int, assigned: dict[str, int], chosen: list[jax.Array]):
        if pos == len(tensors):
            yield assigned, chosen
            return
        blocks = tensors[pos].blocks
        for key in sorted(blocks):
            merged = dict(assigned)
            if all(merged.setdefault(c, q) == q for c, q in zip(input_subs[pos], key)):
                yield from extend(pos + 1, merged, chosen + [blocks[key]])

    yield from extend(0, {}, [])


def _contract_symmetric(
    tensors: Sequence[SymmetricTensor],
    subscripts: str,
    output_indices: tuple[TensorIndex, ...],
    optimize: str = "auto",
) -> SymmetricTensor:
    """Contract block-sparse tensors sector by sector.

    Every combination of stored blocks whose contracted legs carry matching
    charges is contracted with opt_einsum, and the result is accumulated into
    the output block named by the free-leg charges. Conservation of the
    output follows from conservation of the inputs, because both ends of a
    contracted bond carry equal charges with opposite flows.
    """
    input_part, output_part = subscripts.split("->")
    input_subs = input_part.split(",")
    _check_symmetric_legs(tensors, input_subs)

    output_blocks: dict[BlockKey, Any] = {}
    for charges, arrays in _block_combinations(tensors, input_subs):
        out_key = tuple(charges[c] for c in output_part)
        result = opt_einsum.contract(subscripts, *arrays, optimize=optimize, backend="jax")
        if out_key in output_blocks:
            output_blocks[out_key] = output_blocks[out_key] + result
        else:
            output_blocks[out_key] = result

    return SymmetricTensor(output_blocks, output_indices, _product_scale(tensors))


# ---------- Public API ----------

def contract(
    *tensors: Tensor,
    output_labels: Sequence[IndexRef] | None = None,
    optimize: str = "auto",
) -> Tensor:
    """Contract tensors over legs with matching ``(label, plev)`` keys.

    Args:
        *tensors:       One or more Tensor objects.
        output_labels:  Explicit ordering of output legs. Entries may be
                        TensorIndex objects, ``(label, plev)`` keys or bare
                        labels (prime level 0).
        optimize:       opt_einsum path optimizer strategy.

    Returns:
        Contracted Tensor whose scale is the product of the input scales.

    Raises:
        ValueError: If a key appears more than twice (ambiguous contraction).
        TypeError:  If tensors have mixed DenseTensor/SymmetricTensor types.

    Example:
        >>> # A has keys (('i',0), ('k',0)), B has (('k',0), ('k',1))
        >>> contract(A, B).keys()
        (('i', 0), ('k', 1))
    """
    if not tensors:
        raise ValueError("contract() requires at least one tensor")

    subscripts, output_indices = _keys_to_subscripts(tensors, output_labels)

    if len(tensors) == 1:
        lhs, rhs = subscripts.split("->")
        if lhs == rhs:
            return tensors[0]

    return contract_with_subscripts(tensors, subscripts, output_indices, optimize)


def contract_with_subscripts(
    tensors: Sequence[Tensor],
    subscripts: str,
    output_indices: tuple[TensorIndex, ...],
    optimize: str = "auto",
) -> Tensor:
    """Contract tensors using an explicit einsum subscript string.

    Args:
        tensors:        Sequence of Tensor objects.
        subscripts:     Einsum subscript string (e.g., "ij,jk->ik").
        output_indices: TensorIndex metadata for output legs in subscript order.
        optimize:       opt_einsum optimizer.

    Raises:
        TypeError: If tensors have mixed DenseTensor/SymmetricTensor types.
    """
    if all(isinstance(t, DenseTensor) for t in tensors):
        return _contract_dense(list(tensors), subscripts, output_indices, optimize)  # type: ignore[arg-type]
    if all(isinstance(t, SymmetricTensor) for t in tensors):
        return _contract_symmetric(list(tensors), subscripts, output_indices, optimize)  # type: ignore[arg-type]
    types = [type(t).__name__ for t in tensors]
    raise TypeError(
        f"Cannot mix DenseTensor and SymmetricTensor in a single contraction. "
        f"Got types: {types}. Convert all tensors to the same type first."
    )


# ---------- Structural helpers ----------

def tie_indices(tensor: Tensor, ref: IndexRef) -> DenseTensor:
    """Diagonal of ``tensor`` over a leg and its next prime level.

    For a leg ``s`` (prime level p) and its partner ``s'`` (level p+1) the
    result keeps ``s`` in place and drops ``s'``:
    ``out[..., i, ...] = tensor[..., i, ..., i, ...]``.

    The diagonal of a charge-conserving tensor does not conserve charge in
    general, so block-sparse inputs are materialized and the result is
    always a DenseTensor.

    Raises:
        KeyError:   If either leg is missing.
        ValueError: If the two legs differ in dimension.
    """
    dense = tensor.to_dense_tensor()
    key = _key_of(ref)
    ax = dense.axis(key)
    partner = dense.axis((key[0], key[1] + 1))
    if dense.indices[ax].dim != dense.indices[partner].dim:
        raise ValueError(f"Cannot tie legs of different dimensions at {key!r}")

    diag = jnp.diagonal(dense.data, axis1=ax, axis2=partner)
    # jnp.diagonal appends the diagonal as the last axis
    rest = [i for i in range(dense.ndim) if i not in (ax, partner)]
    position = sum(1 for i in rest if i < ax)
    diag = jnp.moveaxis(diag, -1, position)
    indices = tuple(dense.indices[i] for i in rest)
    indices = indices[:position] + (dense.indices[ax],) + indices[position:]
    return DenseTensor(diag, indices, dense.scale)


def combiner(
    indices: Sequence[TensorIndex],
    label: Label = "cmb",
    *,
    symmetric: bool = False,
    itype: IndexType = IndexType.LINK,
) -> Tensor:
    """Tensor fusing several legs into one.

    ``indices`` are the legs as they appear on the tensor to be combined.
    The combiner carries their flipped copies plus one combined leg of
    dimension ``prod(dims)`` (flow IN), in row-major order; its charges are
    the flow-weighted fused charges so block-sparse combiners conserve
    charge.

    Example:
        >>> C = combiner([a, s1], "c")
        >>> contract(T, C).keys()   # a and s1 replaced by ('c', 0)
    """
    if not indices:
        raise ValueError("combiner() needs at least one index")
    sym = indices[0].symmetry
    dims = tuple(idx.dim for idx in indices)
    total = int(np.prod(dims))
    fused = sym.fused_charges([idx.charges for idx in indices],
                              [int(idx.flow) for idx in indices])
    combined = TensorIndex(sym, fused, FlowDirection.IN, label=label, itype=itype)
    legs = tuple(idx.flip() for idx in indices) + (combined,)
    data = jnp.eye(total, dtype=jnp.float64).reshape(dims + (total,))
    if symmetric:
        return SymmetricTensor.from_dense(data, legs)
    return DenseTensor(data, legs)


def common_index(a: Tensor, b: Tensor) -> TensorIndex | None:
    """First leg of ``a`` whose key also appears on ``b``, else None."""
    b_keys = set(b.keys())
    for idx in a.indices:
        if idx.key in b_keys:
            return idx
    return None
