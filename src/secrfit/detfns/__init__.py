"""Detection-function registry and canonical implementations."""

from __future__ import annotations

import os
from collections.abc import Mapping

import numpy as np
from scipy.special import erf
from scipy.stats import norm

from .base import (
    DetectionFunction,
    Probability,
    clear_registry,
    get_detfn,
    list_detfns,
    load_entry_points,
    load_yaml_config,
    register_detfn,
)

__all__ = [
    "DetectionFunction",
    "Probability",
    "STANDARD_DETFNS",
    "get_detfn",
    "list_detfns",
    "register_detfn",
    "clear_registry",
    "load_entry_points",
    "load_yaml_config",
    "p_dot",
    "effective_area",
]


def half_normal(d: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    """g(d) = g0 exp(-d^2 / (2 sigma^2))."""
    d = np.asarray(d, dtype=float)
    return params["g0"] * np.exp(-np.square(d) / (2.0 * params["sigma"] ** 2))


def hazard_rate(d: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    """g(d) = g0 (1 - exp(-(d / sigma)^-z))."""
    d = np.asarray(d, dtype=float)
    with np.errstate(divide="ignore", over="ignore"):
        return params["g0"] * (1.0 - np.exp(-np.power(d / params["sigma"], -params["z"])))


def threshold(d: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    d = np.asarray(d, dtype=float)
    return 0.5 - 0.5 * erf(d / params["scale"] - params["shape"])


def log_threshold(d: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    d = np.asarray(d, dtype=float)
    with np.errstate(over="ignore"):
        inner = params["shape_1"] - np.exp(params["shape_2"] - params["scale"] * d)
    return 0.5 - 0.5 * erf(inner)


def _signal_strength(expected: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    return 1.0 - norm.cdf((params["cutoff"] - expected) / params["sigma_ss"])


def signal_strength(d: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    """Detection when E(SS) = b0_ss - b1_ss d exceeds the cutoff."""
    d = np.asarray(d, dtype=float)
    return _signal_strength(params["b0_ss"] - params["b1_ss"] * d, params)


def log_signal_strength(d: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    """Detection when E(SS) = exp(b0_ss - b1_ss d) exceeds the cutoff."""
    d = np.asarray(d, dtype=float)
    with np.errstate(over="ignore"):
        expected = np.exp(params["b0_ss"] - params["b1_ss"] * d)
    return _signal_strength(expected, params)


STANDARD_DETFNS = [
    DetectionFunction(
        name="hn",
        parameters=("g0", "sigma"),
        probability=half_normal,
        id=1,
        notes="Half-normal.",
    ),
    DetectionFunction(
        name="hr",
        parameters=("g0", "sigma", "z"),
        probability=hazard_rate,
        id=2,
        notes="Hazard rate.",
    ),
    DetectionFunction(
        name="th",
        parameters=("shape", "scale"),
        probability=threshold,
        id=3,
        notes="Threshold: 0.5 - 0.5 erf(d/scale - shape).",
    ),
    DetectionFunction(
        name="lth",
        parameters=("shape_1", "shape_2", "scale"),
        probability=log_threshold,
        id=4,
        notes="Log-link threshold: 0.5 - 0.5 erf(shape_1 - exp(shape_2 - scale d)).",
    ),
    DetectionFunction(
        name="ss",
        parameters=("b0_ss", "b1_ss", "sigma_ss"),
        probability=signal_strength,
        id=5,
        requires_cutoff=True,
        notes="Signal strength, identity link.",
    ),
    DetectionFunction(
        name="log_ss",
        parameters=("b0_ss", "b1_ss", "sigma_ss"),
        probability=log_signal_strength,
        id=6,
        requires_cutoff=True,
        notes="Signal strength, log link.",
    ),
]


def p_dot(dists: np.ndarray, detfn: DetectionFunction, params: Mapping[str, float]) -> np.ndarray:
    """Probability of detection by at least one trap for each mask point.

    ``dists`` is the (n_traps, n_mask) distance matrix.
    """
    g = np.clip(detfn.probability(np.asarray(dists, dtype=float), params), 0.0, 1.0)
    return 1.0 - np.prod(1.0 - g, axis=0)


def effective_area(
    dists: np.ndarray,
    detfn: DetectionFunction,
    params: Mapping[str, float],
    area: float,
) -> float:
    """Integrate detection probability over the mask."""
    return float(area * np.sum(p_dot(dists, detfn, params)))


def _register_builtin() -> None:
    for detfn in STANDARD_DETFNS:
        register_detfn(detfn, overwrite=True)


def _load_config_files() -> None:
    env_paths = os.environ.get("SECRFIT_DETFNS")
    if env_paths:
        for item in env_paths.split(os.pathsep):
            load_yaml_config(item)


_register_builtin()
load_entry_points()
_load_config_files()
