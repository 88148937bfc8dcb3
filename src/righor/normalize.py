#!/usr/bin/env python3
"""Normalization of discrete probability tables.

Probability tables of a recombination model are conditional distributions
stored as numpy arrays: some axes index the event (e.g. number of
deletions) and the remaining axes index the conditioning parent (e.g. the
V gene). ``normalize_distribution`` rescales each slice over the event
axes so that it sums to one.

Some slices are identically zero after an EM round, for instance
p(delV | V = v) when gene v was never used. These slices are replaced by
the uniform distribution so that downstream likelihoods and logarithms
stay defined.
"""

import logging
from typing import Optional, Sequence, Tuple, Union

import numpy as np

LOGGER = logging.getLogger(__name__)

AxisSpec = Optional[Union[int, Sequence[int]]]


class NormalizationError(ValueError):
    """Raised when a normalization axis does not exist for an array."""


def _resolve_axes(axis: AxisSpec, ndim: int) -> Tuple[int, ...]:
    """Return ``axis`` as a sorted tuple of non-negative axis indices."""
    if axis is None:
        return tuple(range(ndim))
    raw_axes = (axis,) if isinstance(axis, (int, np.integer)) else tuple(axis)
    if len(raw_axes) == 0:
        raise NormalizationError("At least one axis must be given")

    resolved = []
    for ax in raw_axes:
        if not -ndim <= ax < ndim:
            raise NormalizationError(
                f"Axis {ax} is out of range for an array of rank {ndim}"
            )
        resolved.append(int(ax) % ndim)
    if len(set(resolved)) != len(resolved):
        raise NormalizationError(f"Repeated axis in {raw_axes}")
    return tuple(sorted(resolved))


def normalize_distribution(
    array: np.ndarray, axis: AxisSpec = None
) -> np.ndarray:
    """Normalize ``array`` so every slice over ``axis`` sums to one.

    Args:
        array: Array of non-negative weights, of any rank.
        axis: Axis or axes summed over. ``None`` normalizes the whole array
            as one joint distribution. A tuple normalizes jointly over all
            the given axes, e.g. ``(0, 1)`` on a ``[dd3, dd5, d]`` table
            gives p(dd3, dd5 | d).

    Returns:
        A new float array with the same shape as ``array``. Slices whose
        sum is exactly zero are uniform, each entry being one over the
        number of entries in the slice.

    Raises:
        NormalizationError: If an axis is out of range or repeated.
    """
    arr = np.asarray(array, dtype=np.float64)
    axes = _resolve_axes(axis, arr.ndim)
    if arr.size == 0:
        return arr.copy()

    extent = int(np.prod([arr.shape[ax] for ax in axes]))
    sums = arr.sum(axis=axes, keepdims=True)
    is_zero = sums == 0
    if np.any(is_zero):
        LOGGER.debug(
            f"Replacing {int(is_zero.sum())} empty slice(s) of an array of "
            f"shape {arr.shape} with a uniform distribution"
        )
    safe_sums = np.where(is_zero, 1.0, sums)
    return np.where(is_zero, 1.0 / extent, arr / safe_sums)
