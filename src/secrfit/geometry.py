"""Detector/mask geometry: distances, bearings and time-of-arrival residuals."""

from __future__ import annotations

import logging

import numpy as np
from scipy.spatial.distance import cdist

from .core import MaskGrid, MatrixLike
from .errors import SecrConfigError

logger = logging.getLogger(__name__)


def distances(traps: MatrixLike, points: MatrixLike) -> np.ndarray:
    """Return the (n_traps, n_points) matrix of Euclidean distances."""
    return cdist(np.asarray(traps, dtype=float), np.asarray(points, dtype=float))


def bearings(traps: MatrixLike, points: MatrixLike) -> np.ndarray:
    """Bearings (radians clockwise from north, in [0, 2pi)) from each trap to each point."""
    a = np.asarray(traps, dtype=float)
    b = np.asarray(points, dtype=float)
    dx = b[None, :, 0] - a[:, None, 0]
    dy = b[None, :, 1] - a[:, None, 1]
    return np.mod(np.arctan2(dx, dy), 2.0 * np.pi)


def toa_ssq(capt_toa: np.ndarray, dists: np.ndarray, sound_speed: float) -> np.ndarray:
    """Sum of squared time-of-arrival residuals per history and mask point.

    For every detecting trap the implied emission time is the arrival time less
    the travel time from the mask point; the residuals are taken about their
    mean across the detecting traps.
    """
    toa = np.asarray(capt_toa, dtype=float)
    travel = np.asarray(dists, dtype=float) / float(sound_speed)
    out = np.zeros((toa.shape[0], travel.shape[1]), dtype=float)
    for i, row in enumerate(toa):
        detected = np.flatnonzero(row != 0)
        if detected.size == 0:
            continue
        emission = row[detected, None] - travel[detected]
        out[i] = np.sum(np.square(emission - emission.mean(axis=0)), axis=0)
    return out


def make_mask(
    traps: MatrixLike,
    *,
    buffer: float,
    spacing: float,
) -> MaskGrid:
    """Build a regular mask of points within ``buffer`` of at least one trap.

    Coordinates are in metres; the cell area is reported in hectares so that
    density estimates are animals per hectare.
    """
    if spacing <= 0:
        raise SecrConfigError("Mask spacing must be positive.")
    trap_arr = np.asarray(traps, dtype=float)
    lower = trap_arr.min(axis=0) - buffer
    upper = trap_arr.max(axis=0) + buffer
    xs = np.arange(lower[0] + spacing / 2.0, upper[0], spacing)
    ys = np.arange(lower[1] + spacing / 2.0, upper[1], spacing)
    grid = np.column_stack([coord.ravel() for coord in np.meshgrid(xs, ys)])
    keep = np.min(distances(trap_arr, grid), axis=0) <= buffer
    logger.debug("Mask retains %d of %d grid points.", int(keep.sum()), grid.shape[0])
    return MaskGrid(points=grid[keep], area=spacing**2 / 10_000.0, buffer=buffer)


__all__ = ["distances", "bearings", "toa_ssq", "make_mask"]
