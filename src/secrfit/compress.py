"""Compression of detection histories into frequency-weighted unique rows."""

from __future__ import annotations

import logging

import numpy as np

from .core import BINARY_CHANNEL, CaptureHistories, UniqueHistories

logger = logging.getLogger(__name__)


def sort_order(bincapt: np.ndarray) -> np.ndarray:
    """Return the stable lexicographic row ordering of a binary capture matrix.

    The first column is the primary key, then the second, and so on.
    """
    matrix = np.asarray(bincapt)
    if matrix.shape[0] == 0:
        return np.zeros(0, dtype=int)
    # lexsort treats the last key as primary.
    return np.lexsort(matrix.T[::-1])


def run_starts(sorted_rows: np.ndarray) -> np.ndarray:
    """Indices where a new run of identical rows begins in a sorted matrix."""
    n = sorted_rows.shape[0]
    if n == 0:
        return np.zeros(0, dtype=int)
    changed = np.any(sorted_rows[1:] != sorted_rows[:-1], axis=1)
    return np.concatenate(([0], np.flatnonzero(changed) + 1))


def compress_histories(captures: CaptureHistories) -> UniqueHistories:
    """Collapse identical binary histories and reorder every channel consistently.

    Auxiliary channels keep the row of the first individual in each run; their
    values act as proxies for the whole group and are never summed.
    """
    bincapt = captures.bincapt
    order = sort_order(bincapt)
    sorted_bin = bincapt[order]
    starts = run_starts(sorted_bin)
    freqs = np.diff(np.append(starts, sorted_bin.shape[0])).astype(int)

    group_sorted = np.repeat(np.arange(starts.size), freqs)
    row_map = np.empty_like(group_sorted)
    row_map[order] = group_sorted

    channels = {
        name: np.asarray(matrix)[order][starts] for name, matrix in captures.channels.items()
    }
    logger.debug(
        "Compressed %d detection histories into %d unique rows.",
        bincapt.shape[0],
        starts.size,
    )
    return UniqueHistories(
        channels=channels,
        freqs=freqs,
        order=order,
        row_map=row_map,
        starts=starts,
    )


def expand_histories(histories: UniqueHistories) -> np.ndarray:
    """Rebuild the binary matrix in sorted order by repeating each unique row."""
    return np.repeat(histories.channels[BINARY_CHANNEL], histories.freqs, axis=0)


__all__ = ["sort_order", "run_starts", "compress_histories", "expand_histories"]
