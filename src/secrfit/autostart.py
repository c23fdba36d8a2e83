"""Automatic start values for parameters the user did not supply.

Each parameter name maps to one start-value function in a registry. The
functions all receive the same :class:`StartContext`; density depends on the
detection-function values and is therefore resolved last.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import numpy as np
from scipy.spatial.distance import pdist

from .core import CaptureHistories, MaskGrid, UniqueHistories
from .detfns import DetectionFunction, effective_area
from .errors import StartValueError
from .links import get_link

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StartContext:
    """Shared inputs available to every start-value function."""

    captures: CaptureHistories
    histories: UniqueHistories
    traps: np.ndarray
    mask: MaskGrid
    dists: np.ndarray
    detfn: DetectionFunction
    detpar_names: tuple[str, ...]
    cutoff: float | None = None
    ss_link: str = "identity"
    values: dict[str, float] = field(default_factory=dict)
    resolved_order: list[str] = field(default_factory=list)

    @property
    def area(self) -> float:
        return self.mask.area


StartValueFunction = Callable[[StartContext], float]

_START_VALUES: dict[str, StartValueFunction] = {}


def register_start_value(
    name: str, *, overwrite: bool = False
) -> Callable[[StartValueFunction], StartValueFunction]:
    """Decorator registering the start-value function for ``name``."""

    def decorator(func: StartValueFunction) -> StartValueFunction:
        if name in _START_VALUES and not overwrite:
            raise ValueError(f"Start value function for '{name}' already registered.")
        _START_VALUES[name] = func
        return func

    return decorator


def get_start_value_function(name: str) -> StartValueFunction:
    try:
        return _START_VALUES[name]
    except KeyError as exc:
        raise KeyError(f"No automatic start value available for '{name}'.") from exc


def resolve_start_values(names: Sequence[str], context: StartContext) -> dict[str, float]:
    """Fill ``context.values`` for every name lacking a value.

    Names are resolved in reverse declaration order; density is always
    declared first so it is computed after the detection parameters.
    """
    missing = [name for name in names if name not in context.values]
    for name in reversed(missing):
        value = float(get_start_value_function(name)(context))
        if not np.isfinite(value):
            raise StartValueError(name, f"computed value {value} is not finite")
        context.values[name] = value
        context.resolved_order.append(name)
        logger.debug("Automatic start value %s = %g", name, value)
    return {name: context.values[name] for name in names}


def mean_recapture_distance(context: StartContext, parameter: str = "sigma") -> float:
    """Mean distance between traps that detected the same individual.

    Each history contributes all positive pairwise distances between its
    firing traps, weighted by its frequency.
    """
    traps = np.asarray(context.traps, dtype=float)
    total = 0.0
    count = 0.0
    for row, freq in zip(context.histories.bincapt, context.histories.freqs, strict=True):
        fired = np.flatnonzero(row != 0)
        if fired.size < 2:
            continue
        pair_dists = pdist(traps[fired])
        positive = pair_dists[pair_dists > 0]
        total += freq * float(positive.sum())
        count += freq * positive.size
    if count == 0:
        raise StartValueError(
            parameter, "no individual was detected by more than one trap at distinct locations"
        )
    return total / count


def _signal_strengths(context: StartContext) -> np.ndarray:
    if not context.captures.has("ss"):
        raise StartValueError("b0_ss", "no signal strength channel is available")
    return np.asarray(context.captures.channels["ss"], dtype=float).ravel()


@register_start_value("D")
def start_density(context: StartContext) -> float:
    params = {name: context.values[name] for name in context.detpar_names}
    if context.cutoff is not None:
        params["cutoff"] = context.cutoff
    esa = effective_area(context.dists, context.detfn, params, context.area)
    # Horvitz-Thompson-like estimator.
    return context.histories.n / esa


@register_start_value("g0")
def start_g0(context: StartContext) -> float:
    return 0.95


@register_start_value("sigma")
def start_sigma(context: StartContext) -> float:
    return mean_recapture_distance(context, "sigma")


@register_start_value("z")
def start_z(context: StartContext) -> float:
    return mean_recapture_distance(context, "z")


@register_start_value("scale")
def start_scale(context: StartContext) -> float:
    if context.detfn.name == "lth":
        return 1.0 / mean_recapture_distance(context, "scale")
    return float(np.sqrt(mean_recapture_distance(context, "scale")))


@register_start_value("shape")
def start_shape(context: StartContext) -> float:
    return mean_recapture_distance(context, "shape") / context.values["scale"]


@register_start_value("shape_2")
def start_shape_2(context: StartContext) -> float:
    # g(0) ~ 0.998 and g(mrd) = 0.5 given the resolved scale.
    decay = context.values["scale"] * mean_recapture_distance(context, "shape_2")
    return float(np.log(2.0 / -np.expm1(-decay)))


@register_start_value("shape_1")
def start_shape_1(context: StartContext) -> float:
    decay = context.values["scale"] * mean_recapture_distance(context, "shape_1")
    return float(np.exp(context.values["shape_2"] - decay))


@register_start_value("b0_ss")
def start_b0_ss(context: StartContext) -> float:
    return get_link(context.ss_link)(float(np.max(_signal_strengths(context))))


@register_start_value("b1_ss")
def start_b1_ss(context: StartContext) -> float:
    max_ss = float(np.max(_signal_strengths(context)))
    cutoff = float(context.cutoff if context.cutoff is not None else 0.0)
    out = (max_ss - cutoff) / (context.mask.buffer / 2.0)
    if context.ss_link == "log":
        out = out / max_ss
    return out


@register_start_value("sigma_ss")
def start_sigma_ss(context: StartContext) -> float:
    ss = _signal_strengths(context)
    cutoff = float(context.cutoff if context.cutoff is not None else 0.0)
    above = ss[ss >= cutoff]
    if above.size < 2:
        raise StartValueError("sigma_ss", "fewer than two signal strengths exceed the cutoff")
    return float(np.std(above, ddof=1))


@register_start_value("sigma_toa")
def start_sigma_toa(context: StartContext) -> float:
    return 0.0025


@register_start_value("kappa")
def start_kappa(context: StartContext) -> float:
    return 10.0


@register_start_value("alpha")
def start_alpha(context: StartContext) -> float:
    return 2.0


__all__ = [
    "StartContext",
    "StartValueFunction",
    "register_start_value",
    "get_start_value_function",
    "resolve_start_values",
    "mean_recapture_distance",
]
