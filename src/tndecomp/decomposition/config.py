"""Typed options shared by the decomposition routines.

Callers either build a :class:`DecompConfig` directly or hand over a
string-keyed options bag (``{"Cutoff": 1e-8, "Maxm": 200}``) which
:meth:`DecompConfig.from_options` reads with type checking. The library-wide
defaults ``MIN_CUT`` and ``MAX_M`` are plain module constants passed in as
explicit default parameters.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from tndecomp.core.index import IndexType

MIN_CUT = 1e-15
MAX_M = 5000


@dataclass
class DecompConfig:
    """Configuration for SVD / Hermitian / eigen decompositions.

    Attributes:
        cutoff:            Truncation threshold on discarded weight.
        max_dim:           Maximum number of kept states (Maxm).
        min_dim:           Minimum number of kept states (Minm).
        truncate:          Apply truncation at all. None defers to the routine:
                           svd_rank2 truncates, diag_hermitian does not.
        relative_cutoff:   Compare discarded weight against ``cutoff * P[0]``.
        absolute_cutoff:   Discard every weight below ``cutoff``.
        show_eigs:         Print the spectrum diagnostics.
        svd_threshold:     Relative size below which singular values are
                           refined by extra orthogonalization passes.
        svd_n_orth_pass:   Number of refinement passes.
        left_index_name:   Label of the new bond leg on U.
        right_index_name:  Label of the new bond leg on V.
        index_name:        Label of the new leg of eigendecompositions.
        index_type:        Type of new legs unless overridden below.
        left_index_type:   Type of the U-side bond leg (default index_type).
        right_index_type:  Type of the V-side bond leg (default index_type).
    """

    cutoff: float = MIN_CUT
    max_dim: int = MAX_M
    min_dim: int = 1
    truncate: bool | None = None
    relative_cutoff: bool = False
    absolute_cutoff: bool = False
    show_eigs: bool = False
    svd_threshold: float = 1e-3
    svd_n_orth_pass: int = 2
    left_index_name: str = "ul"
    right_index_name: str = "vl"
    index_name: str = "qlink"
    index_type: IndexType = IndexType.LINK
    left_index_type: IndexType | None = field(default=None)
    right_index_type: IndexType | None = field(default=None)

    def __post_init__(self) -> None:
        self.index_type = IndexType.coerce(self.index_type)
        self.left_index_type = IndexType.coerce(
            self.index_type if self.left_index_type is None else self.left_index_type
        )
        self.right_index_type = IndexType.coerce(
            self.index_type if self.right_index_type is None else self.right_index_type
        )
        if self.max_dim < 1:
            raise ValueError(f"max_dim must be >= 1, got {self.max_dim}")
        if self.min_dim < 0:
            raise ValueError(f"min_dim must be >= 0, got {self.min_dim}")
        if self.cutoff < 0:
            raise ValueError(f"cutoff must be >= 0, got {self.cutoff}")
        if self.svd_n_orth_pass < 0:
            raise ValueError(f"svd_n_orth_pass must be >= 0, got {self.svd_n_orth_pass}")

    @classmethod
    def from_options(
        cls,
        options: Mapping[str, Any] | None = None,
        *,
        cutoff: float = MIN_CUT,
        max_dim: int = MAX_M,
    ) -> DecompConfig:
        """Read an options bag keyed by ``Cutoff``-style option names.

        Unknown keys are ignored. ``cutoff`` and ``max_dim`` supply the
        defaults used when ``Cutoff`` / ``Maxm`` are absent.

        Raises:
            TypeError: If an option has the wrong type.
        """
        opts = dict(options or {})
        itype = _get_index_type(opts, "IndexType", IndexType.LINK)
        return cls(
            cutoff=_get_real(opts, "Cutoff", cutoff),
            max_dim=_get_int(opts, "Maxm", max_dim),
            min_dim=_get_int(opts, "Minm", 1),
            truncate=_get_bool(opts, "Truncate", False) if "Truncate" in opts else None,
            relative_cutoff=_get_bool(opts, "DoRelCutoff", False),
            absolute_cutoff=_get_bool(opts, "AbsoluteCutoff", False),
            show_eigs=_get_bool(opts, "ShowEigs", False),
            svd_threshold=_get_real(opts, "SVDThreshold", 1e-3),
            svd_n_orth_pass=_get_int(opts, "SVDNOrthPass", 2),
            left_index_name=_get_str(opts, "LeftIndexName", "ul"),
            right_index_name=_get_str(opts, "RightIndexName", "vl"),
            index_name=_get_str(opts, "IndexName", "qlink"),
            index_type=itype,
            left_index_type=_get_index_type(opts, "LeftIndexType", itype),
            right_index_type=_get_index_type(opts, "RightIndexType", itype),
        )

    @classmethod
    def coerce(
        cls,
        config: DecompConfig | Mapping[str, Any] | None,
        *,
        truncate: bool = True,
    ) -> DecompConfig:
        """Accept a DecompConfig, an options mapping, or None (all defaults).

        An unset ``truncate`` flag resolves to the caller's ``truncate``.
        """
        if isinstance(config, DecompConfig):
            cfg = config
        elif config is None:
            cfg = cls()
        elif isinstance(config, Mapping):
            cfg = cls.from_options(config)
        else:
            raise TypeError(f"Expected DecompConfig, mapping or None, got {type(config).__name__}")
        if cfg.truncate is None:
            cfg = replace(cfg, truncate=truncate)
        return cfg


def _get_bool(opts: Mapping[str, Any], name: str, default: bool) -> bool:
    value = opts.get(name, default)
    if not isinstance(value, bool):
        raise TypeError(f"Option {name!r} must be a bool, got {value!r}")
    return value


def _get_int(opts: Mapping[str, Any], name: str, default: int) -> int:
    value = opts.get(name, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Option {name!r} must be an int, got {value!r}")
    return value


def _get_real(opts: Mapping[str, Any], name: str, default: float) -> float:
    value = opts.get(name, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"Option {name!r} must be a real number, got {value!r}")
    return float(value)


def _get_str(opts: Mapping[str, Any], name: str, default: str) -> str:
    value = opts.get(name, default)
    if not isinstance(value, str):
        raise TypeError(f"Option {name!r} must be a string, got {value!r}")
    return value


def _get_index_type(opts: Mapping[str, Any], name: str, default: IndexType) -> IndexType:
    value = opts.get(name, default)
    if not isinstance(value, (IndexType, str)):
        raise TypeError(f"Option {name!r} must be an IndexType, got {value!r}")
    return IndexType.coerce(value)
