"""Local integration: restrict the mask to points plausible for each history."""

from __future__ import annotations

import logging

import numpy as np

logger = logging.getLogger(__name__)


def find_local(bincapt: np.ndarray, dists: np.ndarray, buffer: float) -> list[np.ndarray]:
    """Return, per history, the mask indices within ``buffer`` of every firing trap.

    A history with no firing trap keeps the full mask.
    """
    rows = np.asarray(bincapt)
    near = np.asarray(dists, dtype=float) <= buffer
    n_mask = near.shape[1]
    out: list[np.ndarray] = []
    for row in rows:
        fired = np.flatnonzero(row != 0)
        if fired.size == 0:
            out.append(np.arange(n_mask))
            continue
        out.append(np.flatnonzero(np.all(near[fired], axis=0)))
    if out:
        sizes = np.array([points.size for points in out])
        logger.debug(
            "Local integration keeps %d-%d of %d mask points per history.",
            int(sizes.min()),
            int(sizes.max()),
            n_mask,
        )
    return out


def full_domain(n_unique: int, n_mask: int) -> list[np.ndarray]:
    """Index lists covering the whole mask, used when local integration is off."""
    everything = np.arange(n_mask)
    return [everything for _ in range(n_unique)]


def local_membership(local_points: list[np.ndarray], n_mask: int) -> np.ndarray:
    """Boolean (n_unique, n_mask) matrix marking the points each history integrates."""
    member = np.zeros((len(local_points), n_mask), dtype=bool)
    for i, points in enumerate(local_points):
        member[i, points] = True
    return member


__all__ = ["find_local", "full_domain", "local_membership"]
