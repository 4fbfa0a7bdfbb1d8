"""Tensor storage classes: DenseTensor and SymmetricTensor.

DenseTensor wraps a plain JAX array with leg metadata. SymmetricTensor stores
only the charge sectors allowed by its symmetry (block-sparse). Both carry a
:class:`~tndecomp.core.scale.LogScale`; the represented value is
``payload * scale.real()``.

Both are registered as JAX pytree nodes. Payload arrays are the leaves;
indices, block keys and the scale are static aux data.

Block-sparse design (SymmetricTensor):
- Blocks are stored as ``dict[BlockKey, jax.Array]``
- BlockKey = one charge per leg
- A block spans every basis state of each leg carrying that charge
- Only blocks satisfying the conservation law are stored
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import jax
import jax.numpy as jnp
import numpy as np

from tndecomp.core.index import IndexKey, IndexType, Label, TensorIndex
from tndecomp.core.scale import LogScale

# Block key: tuple of one charge value per leg identifying a charge sector
BlockKey = tuple[int, ...]

# Anything that names a leg: the index itself, its (label, plev) key, or a
# bare label meaning prime level 0
IndexRef = TensorIndex | IndexKey | Label

_UNIT = LogScale()


def _key_of(ref: IndexRef) -> IndexKey:
    if isinstance(ref, TensorIndex):
        return ref.key
    if isinstance(ref, tuple) and len(ref) == 2 and isinstance(ref[1], int):
        return ref  # type: ignore[return-value]
    return (ref, 0)  # type: ignore[return-value]


def _compute_valid_blocks(
    indices: Sequence[TensorIndex],
) -> list[BlockKey]:
    """All charge tuples (one per leg) that satisfy conservation.

    Partial tuples are grouped by their running net charge so incompatible
    branches are pruned leg by leg. For infinite groups the charge of the
    last leg is solved for instead of enumerated.

    Returns:
        Sorted list of valid BlockKeys.
    """
    if not indices:
        return [()]

    sym = indices[0].symmetry
    ident = sym.identity()
    uniques = [sorted(set(idx.charges.tolist())) for idx in indices]
    flows = [int(idx.flow) for idx in indices]

    partial: dict[int, list[BlockKey]] = {ident: [()]}
    for leg in range(len(indices) - 1):
        grown: dict[int, list[BlockKey]] = {}
        for net, prefixes in partial.items():
            for q in uniques[leg]:
                new_net = sym.reduce(net + flows[leg] * q)
                grown.setdefault(new_net, []).extend(p + (q,) for p in prefixes)
        partial = grown

    last_flow = flows[-1]
    last_set = set(uniques[-1])
    valid: list[BlockKey] = []
    for net, prefixes in partial.items():
        if sym.n_values() is None:
            # net + flow * q == 0  =>  q = -net * flow  (flow is +-1)
            candidates = [-net * last_flow]
        else:
            candidates = [q for q in uniques[-1]
                          if sym.reduce(net + last_flow * q) == ident]
        for q in candidates:
            if q in last_set:
                valid.extend(p + (q,) for p in prefixes)
    return sorted(valid)


def _block_slices(
    indices: Sequence[TensorIndex],
    key: BlockKey,
) -> tuple[tuple[np.ndarray, ...], tuple[int, ...]]:
    """Boolean position masks and block shape for one BlockKey."""
    masks = tuple(idx.charges == q for idx, q in zip(indices, key))
    shape = tuple(int(m.sum()) for m in masks)
    return masks, shape


def _block_grid(indices: Sequence[TensorIndex], key: BlockKey) -> tuple:
    masks, _ = _block_slices(indices, key)
    return np.ix_(*[np.where(m)[0] for m in masks])


# ---------- Tensor base ----------

class Tensor:
    """Shared behaviour of DenseTensor and SymmetricTensor.

    Leg bookkeeping (labels, prime levels, flows) lives here; subclasses
    supply payload handling through ``_with_indices``, ``conj``,
    ``transpose`` and friends.
    """

    _indices: tuple[TensorIndex, ...]
    _scale: LogScale

    @property
    def indices(self) -> tuple[TensorIndex, ...]:
        return self._indices

    @property
    def ndim(self) -> int:
        return len(self._indices)

    @property
    def scale(self) -> LogScale:
        return self._scale

    @property
    def dtype(self) -> Any:
        raise NotImplementedError

    @property
    def is_complex(self) -> bool:
        return bool(jnp.issubdtype(self.dtype, jnp.complexfloating))

    def todense(self) -> jax.Array:
        raise NotImplementedError

    def to_dense_tensor(self) -> DenseTensor:
        """Same value as a DenseTensor; the scale is carried over, not applied."""
        raise NotImplementedError

    def conj(self) -> Tensor:
        raise NotImplementedError

    def transpose(self, axes: Sequence[int]) -> Tensor:
        raise NotImplementedError

    def norm(self) -> jax.Array:
        raise NotImplementedError

    def real(self) -> Tensor:
        raise NotImplementedError

    def scale_to(self, scale: LogScale) -> Tensor:
        raise NotImplementedError

    def with_scale(self, scale: LogScale) -> Tensor:
        raise NotImplementedError

    def _with_indices(self, indices: tuple[TensorIndex, ...]) -> Tensor:
        raise NotImplementedError

    def _add(self, other: Tensor, sign: int) -> Tensor:
        raise NotImplementedError

    # --- leg lookup ---

    def labels(self) -> tuple[Label, ...]:
        """Return the label of each leg in order."""
        return tuple(idx.label for idx in self._indices)

    def keys(self) -> tuple[IndexKey, ...]:
        """Return the ``(label, plev)`` key of each leg in order."""
        return tuple(idx.key for idx in self._indices)

    def has_index(self, ref: IndexRef) -> bool:
        return _key_of(ref) in self.keys()

    def axis(self, ref: IndexRef) -> int:
        """Position of the leg named by ``ref``.

        Raises:
            KeyError: If no leg matches.
        """
        key = _key_of(ref)
        for i, idx in enumerate(self._indices):
            if idx.key == key:
                return i
        raise KeyError(f"Leg {key!r} not found in tensor with keys {self.keys()}")

    def index(self, ref: IndexRef) -> TensorIndex:
        return self._indices[self.axis(ref)]

    def find_index(
        self,
        itype: IndexType | None = None,
        plev: int | None = None,
    ) -> TensorIndex | None:
        """First leg matching the given type and/or prime level, else None."""
        for idx in self._indices:
            if itype is not None and idx.itype != itype:
                continue
            if plev is not None and idx.plev != plev:
                continue
            return idx
        return None

    # --- metadata transforms (payload shared) ---

    def relabel(self, old: Label, new: Label) -> Tensor:
        """Rename every leg labelled ``old`` (any prime level).

        Raises:
            KeyError: If *old* is not found among the tensor's labels.
        """
        if old not in self.labels():
            raise KeyError(f"Label {old!r} not found in tensor with labels {self.labels()}")
        return self._with_indices(tuple(
            idx.relabel(new) if idx.label == old else idx for idx in self._indices
        ))

    def relabels(self, mapping: dict[Label, Label]) -> Tensor:
        """Rename several labels at once; unknown labels are left unchanged."""
        return self._with_indices(tuple(
            idx.relabel(mapping[idx.label]) if idx.label in mapping else idx
            for idx in self._indices
        ))

    def _map_legs(self, refs: Sequence[IndexRef], fn) -> Tensor:
        if refs:
            targets = {_key_of(r) for r in refs}
            missing = targets - set(self.keys())
            if missing:
                raise KeyError(f"Legs {sorted(missing, key=str)} not found in {self.keys()}")
            new = tuple(fn(idx) if idx.key in targets else idx for idx in self._indices)
        else:
            new = tuple(fn(idx) for idx in self._indices)
        return self._with_indices(new)

    def prime(self, *refs: IndexRef, inc: int = 1) -> Tensor:
        """Raise the prime level of the named legs (all legs if none named)."""
        return self._map_legs(refs, lambda idx: idx.prime(inc))

    def noprime(self, *refs: IndexRef) -> Tensor:
        """Reset the prime level of the named legs (all legs if none named)."""
        return self._map_legs(refs, lambda idx: idx.noprime())

    def map_prime(self, old: int, new: int) -> Tensor:
        """Move every leg at prime level ``old`` to level ``new``."""
        return self._with_indices(tuple(
            idx.set_prime(new) if idx.plev == old else idx for idx in self._indices
        ))

    def swap_prime(self, a: int, b: int) -> Tensor:
        """Exchange prime levels ``a`` and ``b`` on every leg."""
        def swap(idx: TensorIndex) -> TensorIndex:
            if idx.plev == a:
                return idx.set_prime(b)
            if idx.plev == b:
                return idx.set_prime(a)
            return idx
        return self._with_indices(tuple(swap(idx) for idx in self._indices))

    def dag(self) -> Tensor:
        """Complex conjugate with every flow reversed."""
        conj = self.conj()
        return conj._with_indices(tuple(idx.flip() for idx in conj.indices))

    def permute(self, refs: Sequence[IndexRef]) -> Tensor:
        """Reorder legs to follow ``refs``."""
        axes = tuple(self.axis(r) for r in refs)
        if sorted(axes) != list(range(self.ndim)):
            raise ValueError(f"permute needs every leg exactly once, got {list(refs)}")
        return self.transpose(axes)

    def item(self) -> Any:
        """Value of a rank-0 tensor, scale included."""
        if self.ndim != 0:
            raise ValueError(f"item() needs a rank-0 tensor, got rank {self.ndim}")
        return self.todense().item()

    # --- arithmetic ---

    def __mul__(self, other: Any) -> Tensor:
        if isinstance(other, Tensor):
            return NotImplemented
        if isinstance(other, complex) and other.imag != 0:
            return self._times_payload(other)
        return self.with_scale(self._scale * float(np.real(other)))

    __rmul__ = __mul__

    def __truediv__(self, other: Any) -> Tensor:
        if isinstance(other, Tensor):
            return NotImplemented
        return self * (1.0 / other)

    def __neg__(self) -> Tensor:
        return self.with_scale(-self._scale)

    def __add__(self, other: Tensor) -> Tensor:
        return self._add(other, +1)

    def __sub__(self, other: Tensor) -> Tensor:
        return self._add(other, -1)

    def _times_payload(self, factor: complex) -> Tensor:
        raise NotImplementedError

    def _common_scale(self, other: Tensor) -> LogScale:
        if not self._scale.is_zero():
            return self._scale.abs()
        if not other.scale.is_zero():
            return other.scale.abs()
        return _UNIT

    def _aligned(self, other: Tensor) -> Tensor:
        if set(other.keys()) != set(self.keys()):
            raise ValueError(
                f"Cannot add tensors with legs {self.keys()} and {other.keys()}"
            )
        return other.permute(self.keys())


# ---------- DenseTensor ----------

@jax.tree_util.register_pytree_node_class
class DenseTensor(Tensor):
    """A tensor stored as one JAX array plus leg metadata.

    Pytree structure:
        Leaves:     (data,)
        Aux data:   (indices, scale)

    Args:
        data:    Payload array, one axis per index.
        indices: Tuple of TensorIndex objects, one per leg.
        scale:   LogScale multiplying the payload (default 1).

    Example:
        >>> t = DenseTensor(jnp.ones((2, 3)), (idx_a, idx_b))
        >>> float(t.norm())
        2.449...
    """

    def __init__(
        self,
        data: jax.Array,
        indices: Sequence[TensorIndex],
        scale: LogScale | None = None,
    ) -> None:
        data = jnp.asarray(data)
        if data.ndim != len(indices):
            raise ValueError(
                f"data has {data.ndim} dims but {len(indices)} indices given"
            )
        for i, (dim, idx) in enumerate(zip(data.shape, indices)):
            if dim != idx.dim:
                raise ValueError(
                    f"data.shape[{i}]={dim} but indices[{i}].dim={idx.dim}"
                )
        self._data = data
        self._indices = tuple(indices)
        self._scale = _UNIT if scale is None else scale

    @classmethod
    def _raw(
        cls,
        data: jax.Array,
        indices: tuple[TensorIndex, ...],
        scale: LogScale,
    ) -> DenseTensor:
        obj = object.__new__(cls)
        obj._data = data
        obj._indices = indices
        obj._scale = scale
        return obj

    # --- Pytree interface ---

    def tree_flatten(self) -> tuple[tuple[jax.Array], tuple[Any, ...]]:
        return (self._data,), (self._indices, self._scale)

    @classmethod
    def tree_unflatten(cls, aux: tuple[Any, ...], children: tuple[jax.Array]) -> DenseTensor:
        indices, scale = aux
        return cls._raw(children[0], indices, scale)

    @classmethod
    def random_normal(
        cls,
        indices: Sequence[TensorIndex],
        key: jax.Array,
        dtype: Any = jnp.float64,
        stddev: float = 1.0,
    ) -> DenseTensor:
        shape = tuple(idx.dim for idx in indices)
        return cls(jax.random.normal(key, shape, dtype=dtype) * stddev, tuple(indices))

    # --- Tensor interface ---

    @property
    def data(self) -> jax.Array:
        """Payload without the scale factor."""
        return self._data

    @property
    def dtype(self) -> Any:
        return self._data.dtype

    def todense(self) -> jax.Array:
        if self._scale == _UNIT:
            return self._data
        return self._data * self._scale.real()

    def to_dense_tensor(self) -> DenseTensor:
        return self

    def _with_indices(self, indices: tuple[TensorIndex, ...]) -> DenseTensor:
        return DenseTensor(self._data, indices, self._scale)

    def with_scale(self, scale: LogScale) -> DenseTensor:
        return DenseTensor._raw(self._data, self._indices, scale)

    def conj(self) -> DenseTensor:
        return DenseTensor._raw(jnp.conj(self._data), self._indices, self._scale)

    def real(self) -> DenseTensor:
        return DenseTensor._raw(jnp.real(self._data), self._indices, self._scale)

    def transpose(self, axes: Sequence[int]) -> DenseTensor:
        axes = tuple(axes)
        return DenseTensor._raw(
            jnp.transpose(self._data, axes),
            tuple(self._indices[i] for i in axes),
            self._scale,
        )

    def norm(self) -> jax.Array:
        """Frobenius norm, scale included."""
        return jnp.linalg.norm(self._data.ravel()) * abs(self._scale.real())

    def scale_to(self, scale: LogScale) -> DenseTensor:
        """Same value, re-expressed with the given scale."""
        factor = (self._scale / scale).real()
        return DenseTensor._raw(self._data * factor, self._indices, scale)

    def _times_payload(self, factor: complex) -> DenseTensor:
        return DenseTensor._raw(self._data * factor, self._indices, self._scale)

    def _add(self, other: Tensor, sign: int) -> DenseTensor:
        if not isinstance(other, DenseTensor):
            return NotImplemented
        other = self._aligned(other)
        target = self._common_scale(other)
        data = self.scale_to(target).data + sign * other.scale_to(target).data
        return DenseTensor._raw(data, self._indices, target)

    def __repr__(self) -> str:
        return (
            f"DenseTensor(shape={self._data.shape}, dtype={self.dtype}, "
            f"keys={self.keys()}, scale={self._scale!r})"
        )


# ---------- SymmetricTensor ----------

@jax.tree_util.register_pytree_node_class
class SymmetricTensor(Tensor):
    """Block-sparse tensor storing only symmetry-allowed charge sectors.

    Storage model:

    - ``_blocks``: ``dict[BlockKey, jax.Array]``; the key holds one charge
      per leg and the array spans all states of each leg with that charge.
    - ``_indices``: full leg metadata.
    - ``_scale``: LogScale shared by all blocks.

    Conservation law enforced on all stored blocks::

        sum_i(flow_i * charge_i) == symmetry.identity()

    Pytree structure:
        Leaves:     block arrays in sorted key order
        Aux data:   (sorted_keys, indices, scale)

    Args:
        blocks:  Dict mapping BlockKey -> payload array.
        indices: Tuple of TensorIndex objects, one per leg.
        scale:   LogScale multiplying every block (default 1).
    """

    def __init__(
        self,
        blocks: dict[BlockKey, jax.Array],
        indices: Sequence[TensorIndex],
        scale: LogScale | None = None,
    ) -> None:
        self._indices = tuple(indices)
        self._blocks: dict[BlockKey, jax.Array] = {
            tuple(int(q) for q in k): jnp.asarray(v) for k, v in blocks.items()
        }
        self._scale = _UNIT if scale is None else scale
        self._validate()

    def _validate(self) -> None:
        """Check conservation and shape of every block."""
        if not self._indices:
            return
        sym = self._indices[0].symmetry
        flows = [int(idx.flow) for idx in self._indices]
        for key, block in self._blocks.items():
            if len(key) != len(self._indices):
                raise ValueError(f"Block key {key} does not match rank {self.ndim}")
            if not sym.is_conserved(key, flows):
                raise ValueError(
                    f"Block {key} violates charge conservation: "
                    f"net={sym.net_charge(key, flows)}, expected identity={sym.identity()}"
                )
            _, shape = _block_slices(self._indices, key)
            if tuple(block.shape) != shape:
                raise ValueError(
                    f"Block {key} has shape {tuple(block.shape)}, legs require {shape}"
                )

    @classmethod
    def _raw(
        cls,
        blocks: dict[BlockKey, jax.Array],
        indices: tuple[TensorIndex, ...],
        scale: LogScale,
    ) -> SymmetricTensor:
        obj = object.__new__(cls)
        obj._indices = indices
        obj._blocks = blocks
        obj._scale = scale
        return obj

    # --- Pytree interface ---

    def tree_flatten(self) -> tuple[list[jax.Array], tuple[Any, ...]]:
        keys = sorted(self._blocks.keys())
        return [self._blocks[k] for k in keys], (keys, self._indices, self._scale)

    @classmethod
    def tree_unflatten(cls, aux: tuple[Any, ...], children: list[jax.Array]) -> SymmetricTensor:
        keys, indices, scale = aux
        return cls._raw(dict(zip(keys, children)), indices, scale)

    # --- Factory methods ---

    @classmethod
    def zeros(
        cls,
        indices: Sequence[TensorIndex],
        dtype: Any = jnp.float64,
    ) -> SymmetricTensor:
        """Every allowed block, filled with zeros."""
        blocks: dict[BlockKey, jax.Array] = {}
        for key in _compute_valid_blocks(indices):
            _, shape = _block_slices(indices, key)
            if all(s > 0 for s in shape):
                blocks[key] = jnp.zeros(shape, dtype=dtype)
        return cls(blocks, indices)

    @classmethod
    def random_normal(
        cls,
        indices: Sequence[TensorIndex],
        key: jax.Array,
        dtype: Any = jnp.float64,
        stddev: float = 1.0,
    ) -> SymmetricTensor:
        """Every allowed block drawn from N(0, stddev), one folded key per block."""
        blocks: dict[BlockKey, jax.Array] = {}
        for i, block_key in enumerate(_compute_valid_blocks(indices)):
            _, shape = _block_slices(indices, block_key)
            if all(s > 0 for s in shape):
                subkey = jax.random.fold_in(key, i)
                blocks[block_key] = jax.random.normal(subkey, shape, dtype=dtype) * stddev
        return cls(blocks, indices)

    @classmethod
    def from_dense(
        cls,
        data: jax.Array,
        indices: Sequence[TensorIndex],
        tol: float = 1e-12,
        scale: LogScale | None = None,
    ) -> SymmetricTensor:
        """Extract the block structure of a dense payload.

        Raises:
            ValueError: If the shape mismatches, or entries outside the
                allowed sectors exceed ``tol``.
        """
        dims = tuple(idx.dim for idx in indices)
        if tuple(data.shape) != dims:
            raise ValueError(f"data.shape {tuple(data.shape)} does not match index dims {dims}")

        data_np = np.asarray(data)
        covered = np.zeros(data_np.shape, dtype=bool)
        blocks: dict[BlockKey, jax.Array] = {}
        for key in _compute_valid_blocks(indices):
            _, shape = _block_slices(indices, key)
            if not all(s > 0 for s in shape):
                continue
            grid = _block_grid(indices, key)
            blocks[key] = jnp.asarray(data_np[grid])
            covered[grid] = True

        outside = np.abs(data_np[~covered])
        if outside.size and outside.max() > tol:
            raise ValueError(
                f"data has {int(np.sum(outside > tol))} non-zero elements "
                f"outside symmetry-allowed sectors (max abs value: {outside.max():.3e})"
            )
        return cls(blocks, indices, scale)

    # --- Tensor interface ---

    @property
    def dtype(self) -> Any:
        if not self._blocks:
            return jnp.float64
        return next(iter(self._blocks.values())).dtype

    @property
    def n_blocks(self) -> int:
        """Number of stored charge sectors."""
        return len(self._blocks)

    @property
    def blocks(self) -> dict[BlockKey, jax.Array]:
        """Payload blocks (scale not applied)."""
        return self._blocks

    def block_shapes(self) -> dict[BlockKey, tuple[int, ...]]:
        return {k: tuple(v.shape) for k, v in self._blocks.items()}

    def _dense_payload(self) -> jax.Array:
        shape = tuple(idx.dim for idx in self._indices)
        result = np.zeros(shape, dtype=np.dtype(self.dtype))
        for key, block in self._blocks.items():
            result[_block_grid(self._indices, key)] = np.asarray(block)
        return jnp.asarray(result)

    def todense(self) -> jax.Array:
        """Materialize the full dense value, scale included (testing/debugging)."""
        if self._scale == _UNIT:
            return self._dense_payload()
        return self._dense_payload() * self._scale.real()

    def to_dense_tensor(self) -> DenseTensor:
        return DenseTensor(self._dense_payload(), self._indices, self._scale)

    def _with_indices(self, indices: tuple[TensorIndex, ...]) -> SymmetricTensor:
        for old, new in zip(self._indices, indices):
            if not np.array_equal(old.charges, new.charges):
                raise ValueError("Relabelling legs must keep their charges")
        return SymmetricTensor._raw(self._blocks, tuple(indices), self._scale)

    def with_scale(self, scale: LogScale) -> SymmetricTensor:
        return SymmetricTensor._raw(self._blocks, self._indices, scale)

    def conj(self) -> SymmetricTensor:
        return SymmetricTensor._raw(
            {k: jnp.conj(v) for k, v in self._blocks.items()}, self._indices, self._scale
        )

    def real(self) -> SymmetricTensor:
        return SymmetricTensor._raw(
            {k: jnp.real(v) for k, v in self._blocks.items()}, self._indices, self._scale
        )

    def transpose(self, axes: Sequence[int]) -> SymmetricTensor:
        axes = tuple(axes)
        return SymmetricTensor._raw(
            {tuple(k[i] for i in axes): jnp.transpose(v, axes) for k, v in self._blocks.items()},
            tuple(self._indices[i] for i in axes),
            self._scale,
        )

    def norm(self) -> jax.Array:
        """Frobenius norm across all blocks, scale included."""
        if not self._blocks:
            return jnp.zeros((), dtype=jnp.float64)
        sq = sum(jnp.sum(jnp.abs(v) ** 2) for v in self._blocks.values())
        return jnp.sqrt(sq) * abs(self._scale.real())

    def scale_to(self, scale: LogScale) -> SymmetricTensor:
        factor = (self._scale / scale).real()
        return SymmetricTensor._raw(
            {k: v * factor for k, v in self._blocks.items()}, self._indices, scale
        )

    def item(self) -> Any:
        if self.ndim != 0:
            raise ValueError(f"item() needs a rank-0 tensor, got rank {self.ndim}")
        block = self._blocks.get(())
        if block is None:
            return 0.0
        return (block * self._scale.real()).item()

    def _times_payload(self, factor: complex) -> SymmetricTensor:
        return SymmetricTensor._raw(
            {k: v * factor for k, v in self._blocks.items()}, self._indices, self._scale
        )

    def _add(self, other: Tensor, sign: int) -> SymmetricTensor:
        if not isinstance(other, SymmetricTensor):
            return NotImplemented
        other = self._aligned(other)
        target = self._common_scale(other)
        lhs = self.scale_to(target).blocks
        rhs = other.scale_to(target).blocks
        blocks = dict(lhs)
        for k, v in rhs.items():
            blocks[k] = blocks[k] + sign * v if k in blocks else sign * v
        return SymmetricTensor._raw(blocks, self._indices, target)

    def __repr__(self) -> str:
        total = sum(v.size for v in self._blocks.values())
        return (
            f"SymmetricTensor(ndim={self.ndim}, n_blocks={self.n_blocks}, "
            f"nnz={total}, dtype={self.dtype}, keys={self.keys()}, scale={self._scale!r})"
        )
