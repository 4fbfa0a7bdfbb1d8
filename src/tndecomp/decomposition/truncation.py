"""Truncation of a descending weight spectrum.

Weights are squared singular values or density-matrix eigenvalues sorted in
descending order. :func:`truncate` decides how many to keep and reports the
discarded weight together with a threshold ``docut`` that separates kept
from discarded values. Block-sparse routines pool the weights of all
sectors, truncate once, then keep in each sector the weights above
``docut``.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from tndecomp.core.scale import LogScale
from tndecomp.decomposition.config import DecompConfig


class TruncationResult(NamedTuple):
    """Outcome of :func:`truncate`.

    Attributes:
        weights:          Kept weights (copy; trailing negatives zeroed).
        truncation_error: Discarded weight, normalized like the cutoff test.
        n_kept:           Number of kept weights.
        docut:            Midpoint threshold between the last kept and first
                          discarded weight, or -1 if nothing was discarded.
    """

    weights: np.ndarray
    truncation_error: float
    n_kept: int
    docut: float


def truncate(
    weights: Sequence[float] | np.ndarray,
    max_dim: int,
    min_dim: int,
    cutoff: float,
    absolute_cutoff: bool = False,
    relative_cutoff: bool = False,
) -> TruncationResult:
    """Choose the number of states to keep from descending weights.

    Args:
        weights:         Descending weights. Not modified.
        max_dim:         Never keep more than this many.
        min_dim:         Stop discarding once this many remain.
        cutoff:          Threshold on discarded weight.
        absolute_cutoff: Discard each weight below ``cutoff``.
        relative_cutoff: Measure the cumulative discarded weight against
                         ``cutoff * weights[0]`` instead of ``cutoff``.

    Returns:
        TruncationResult. At least one state is kept whenever the input is
        non-empty.

    Example:
        >>> truncate([100.0, 25.0, 0.01, 0.0001], 4, 1, 1e-3).n_kept
        3
    """
    P = np.array(weights, dtype=np.float64).reshape(-1)
    orig = len(P)
    if orig == 0:
        return TruncationResult(P, 0.0, 0, -1.0)
    if orig == 1:
        return TruncationResult(P, 0.0, 1, float(P[0]) / 2.0)

    # eigensolver noise: negative tail is zeroed, not counted as error
    for j in range(orig - 1, -1, -1):
        if P[j] >= 0:
            break
        P[j] = 0.0

    m = orig
    err = 0.0
    while m > max_dim:
        err += P[m - 1]
        m -= 1

    if absolute_cutoff:
        while m > min_dim and m > 0 and P[m - 1] < cutoff:
            err += P[m - 1]
            m -= 1
    else:
        scale = float(P[0]) if relative_cutoff else 1.0
        while m > min_dim and m > 0 and err + P[m - 1] < cutoff * scale:
            err += P[m - 1]
            m -= 1
        err = 0.0 if P[0] == 0 else err / scale

    m = max(m, 1)
    docut = -1.0
    if m < orig:
        docut = (P[m] + P[m - 1]) / 2.0 - 1e-5 * P[m]

    return TruncationResult(P[:m].copy(), float(err), m, float(docut))


@dataclass(frozen=True, eq=False)
class Spectrum:
    """Kept eigenvalues (density-matrix convention) and truncation error."""

    eigs_kept: np.ndarray
    truncation_error: float = 0.0

    @property
    def num_kept(self) -> int:
        return len(self.eigs_kept)

    def __len__(self) -> int:
        return self.num_kept


def _fmt_eig(eig: float) -> str:
    return f"{eig:.3f}" if 1e-3 < eig < 1000 else f"{eig:.3E}"


def show_eigs(
    weights: np.ndarray,
    truncation_error: float,
    scale: LogScale,
    config: DecompConfig,
    scale_power: int = 2,
) -> None:
    """Print the kept spectrum and truncation settings.

    ``scale_power`` is 2 for squared singular values and 1 for eigenvalues.
    The scale is folded into the printed values only when the leading value
    is within a few orders of magnitude of one.
    """
    print()
    print(
        f"minm = {config.min_dim}, maxm = {config.max_dim}, "
        f"cutoff = {config.cutoff:.2E}, truncate = {config.truncate}"
    )
    print(f"Kept m={len(weights)} states, trunc. err. = {truncation_error:.3E}")
    print(f"doRelCutoff = {config.relative_cutoff}, absoluteCutoff = {config.absolute_cutoff}")
    sign = "-" if scale.sign < 0 else ""
    print(f"Scale is = {sign}exp({scale.log_num:.2f})")
    if len(weights) == 0:
        return

    shown = np.asarray(weights[:10], dtype=np.float64)
    lead = abs(float(shown[0]))
    order_mag = math.log(lead) + scale_power * scale.log_num if lead > 0 else math.inf
    if abs(order_mag) < 5 and scale.is_finite_real():
        shown = shown * scale.real() ** scale_power
        header = "Denmat evals: "
    else:
        header = f"Denmat evals (not including log(scale) = {scale.log_num:.2f}): "
    print(header + ", ".join(_fmt_eig(float(e)) for e in shown))
