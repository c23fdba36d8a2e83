"""Simulate binary capture histories for demonstrations and tests."""

from __future__ import annotations

import logging
from collections.abc import Mapping

import numpy as np

from .core import BINARY_CHANNEL, MaskGrid, MatrixLike, as_traps
from .detfns import get_detfn
from .errors import SecrConfigError
from .geometry import distances

logger = logging.getLogger(__name__)


def simulate_captures(
    traps: MatrixLike,
    mask: MaskGrid,
    detfn: str,
    params: Mapping[str, float],
    density: float,
    *,
    random_state: np.random.Generator | None = None,
) -> dict[str, np.ndarray]:
    """Draw a Poisson population on the mask and record who is detected.

    The number of activity centres is Poisson with mean ``density`` times the
    mask area; centres fall uniformly on mask points. Only animals detected at
    one or more traps are returned.
    """
    rng = random_state or np.random.default_rng()
    detection = get_detfn(detfn)
    if detection.requires_cutoff:
        raise SecrConfigError(f"Simulation of '{detfn}' detections is not supported.")
    if density <= 0:
        raise SecrConfigError("Density must be positive.")
    trap_arr = as_traps(traps)
    n_animals = int(rng.poisson(density * mask.area * mask.n_points))
    centres = rng.integers(0, mask.n_points, size=n_animals)
    dists = distances(trap_arr, mask.points[centres])
    g = np.clip(detection.probability(dists, params), 0.0, 1.0).T
    bincapt = (rng.random(g.shape) < g).astype(float)
    detected = bincapt.sum(axis=1) > 0
    logger.debug("Simulated %d animals, %d detected.", n_animals, int(detected.sum()))
    return {BINARY_CHANNEL: bincapt[detected]}


__all__ = ["simulate_captures"]
