"""Parameter records and the construction of per-fit parameter specifications."""

from __future__ import annotations

import logging
import numbers
import warnings
from collections.abc import Collection, Mapping
from dataclasses import dataclass
from typing import Any

import numpy as np

from .autostart import StartContext, resolve_start_values
from .core import ParameterSpec
from .detfns import DetectionFunction, get_detfn
from .errors import DetfnOverrideWarning, ParameterDropWarning, SecrConfigError
from .links import get_link

logger = logging.getLogger(__name__)

DENSITY = "D"
DENSITY_UPPER = 1e8
SS_LINKS = {"identity": ("ss", 1), "log": ("log_ss", 2)}
NO_SS_LINK_ID = 3


@dataclass(slots=True, frozen=True)
class ParameterRecord:
    """Link, default bounds and applicability of one parameter name."""

    name: str
    link: str
    bounds: tuple[float, float]
    role: str
    channel: str | None = None

    def applies_to(self, detfn: DetectionFunction, info_types: Collection[str]) -> bool:
        if self.role == "density":
            return True
        if self.role == "detection":
            return self.name in detfn.parameters
        return self.channel in info_types


PARAMETER_TABLE: dict[str, ParameterRecord] = {
    record.name: record
    for record in (
        ParameterRecord("D", "log", (0.0, DENSITY_UPPER), "density"),
        ParameterRecord("g0", "logit", (0.0, 1.0), "detection"),
        ParameterRecord("sigma", "log", (0.0, 1e8), "detection"),
        ParameterRecord("z", "log", (0.0, 1e8), "detection"),
        ParameterRecord("shape", "identity", (-100.0, 100.0), "detection"),
        ParameterRecord("shape_1", "log", (0.0, 1e8), "detection"),
        ParameterRecord("shape_2", "identity", (-100.0, 100.0), "detection"),
        ParameterRecord("scale", "log", (0.0, 1e8), "detection"),
        ParameterRecord("b0_ss", "log", (0.0, 1e8), "detection"),
        ParameterRecord("b1_ss", "log", (0.0, 1e8), "detection"),
        ParameterRecord("sigma_ss", "log", (0.0, 1e8), "detection"),
        ParameterRecord("kappa", "log", (0.0, 700.0), "auxiliary", channel="bearing"),
        ParameterRecord("alpha", "log", (0.0, 1e8), "auxiliary", channel="dist"),
        ParameterRecord("sigma_toa", "log", (0.0, 1e8), "auxiliary", channel="toa"),
    )
}

# Auxiliary channels in the order their parameters are declared; mrds adds none.
AUXILIARY_ORDER = ("bearing", "dist", "toa")


@dataclass(slots=True)
class ModelFamily:
    """The detection function and parameter records selected for one fit."""

    detfn: DetectionFunction
    records: tuple[ParameterRecord, ...]
    info_types: tuple[str, ...]
    ss_link: str = "identity"
    cutoff: float | None = None

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(record.name for record in self.records)

    @property
    def detpar_names(self) -> tuple[str, ...]:
        return tuple(record.name for record in self.records if record.role == "detection")

    @property
    def suppar_names(self) -> tuple[str, ...]:
        return tuple(record.name for record in self.records if record.role == "auxiliary")

    @property
    def linkfn_id(self) -> int:
        if "ss" in self.info_types:
            return SS_LINKS[self.ss_link][1]
        return NO_SS_LINK_ID


def select_model(
    detfn: str | None,
    info_types: Collection[str],
    *,
    ss_link: str = "identity",
    cutoff: float | None = None,
) -> ModelFamily:
    """Resolve the detection function and the ordered parameter records."""
    info = tuple(info_types)
    if "ss" in info:
        if cutoff is None:
            raise SecrConfigError(
                "Argument 'cutoff' is missing; it is required with signal strength information."
            )
        if ss_link not in SS_LINKS:
            raise SecrConfigError('ss_link must be either "identity" or "log".')
        fitted = SS_LINKS[ss_link][0]
        if detfn is not None and detfn.lower() != fitted:
            warnings.warn(
                f"Argument detfn='{detfn}' is being ignored as signal strength information "
                f"is provided with ss_link='{ss_link}'; detfn='{fitted}' is fitted instead.",
                DetfnOverrideWarning,
                stacklevel=3,
            )
        detfn = fitted
    elif detfn is None:
        detfn = "hn"
    try:
        detection = get_detfn(detfn)
    except KeyError as exc:
        raise SecrConfigError(str(exc.args[0])) from exc
    if detection.requires_cutoff and "ss" not in info:
        raise SecrConfigError(f"Detection function '{detfn}' requires the 'ss' capture channel.")

    records = [PARAMETER_TABLE[DENSITY]]
    for name in detection.parameters:
        record = PARAMETER_TABLE.get(name)
        if record is None:
            # Plugin detection functions may introduce unbounded parameters.
            record = ParameterRecord(name, "identity", (-np.inf, np.inf), "detection")
        records.append(record)
    for channel in AUXILIARY_ORDER:
        records.extend(
            record
            for record in PARAMETER_TABLE.values()
            if record.channel == channel and record.applies_to(detection, info)
        )
    logger.debug("Model %s with parameters %s", detection.name, [r.name for r in records])
    return ModelFamily(
        detfn=detection,
        records=tuple(records),
        info_types=info,
        ss_link=ss_link,
        cutoff=cutoff,
    )


def drop_unused(overrides: Mapping[str, Any] | None, names: Collection[str], label: str) -> dict:
    """Remove overrides for parameters that are not part of the model, with a warning."""
    if not overrides:
        return {}
    unused = [key for key in overrides if key not in names]
    if unused:
        warnings.warn(
            f"Some parameters listed in '{label}' are not being used. These are being "
            f"removed: {', '.join(map(str, unused))}.",
            ParameterDropWarning,
            stacklevel=3,
        )
    return {key: value for key, value in overrides.items() if key in names}


def check_bounds(bounds: Mapping[str, Any] | None) -> dict[str, tuple[float, float]]:
    if bounds is None:
        return {}
    if not isinstance(bounds, Mapping):
        raise SecrConfigError("The 'bounds' argument must be None or a mapping.")
    checked: dict[str, tuple[float, float]] = {}
    for name, value in bounds.items():
        pair = np.asarray(value, dtype=float).ravel()
        if pair.size != 2:
            raise SecrConfigError("Each component of 'bounds' must contain exactly two values.")
        checked[name] = (float(pair[0]), float(pair[1]))
    return checked


def default_scale_factors(start_link: Mapping[str, float]) -> dict[str, float]:
    """Ratio of the largest link-scale start value to each parameter's own."""
    values = np.array(list(start_link.values()), dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        factors = np.abs(np.max(values) / values)
    return dict(zip(start_link, factors.tolist(), strict=True))


def build_parameter_specs(
    family: ModelFamily,
    context: StartContext,
    *,
    sv: Mapping[str, float] | None = None,
    bounds: Mapping[str, Any] | None = None,
    fix: Mapping[str, float] | None = None,
    sf: Mapping[str, float] | float | None = None,
) -> list[ParameterSpec]:
    """Resolve link, bounds, phase, scale factor and start value per parameter."""
    names = family.names
    for label, value in (("sv", sv), ("fix", fix)):
        if value is not None and not isinstance(value, Mapping):
            raise SecrConfigError(f"The '{label}' argument must be None or a mapping.")
    checked_bounds = check_bounds(bounds)
    if sf is not None and not isinstance(sf, Mapping | numbers.Real):
        raise SecrConfigError("The 'sf' argument must be None, a mapping or a single number.")

    sv = drop_unused(sv, names, "sv")
    fix = drop_unused(fix, names, "fix")
    checked_bounds = drop_unused(checked_bounds, names, "bounds")
    if isinstance(sf, Mapping):
        sf = drop_unused(sf, names, "sf")

    context.values.update({name: float(value) for name, value in sv.items()})
    context.values.update({name: float(value) for name, value in fix.items()})
    starts = resolve_start_values(names, context)

    n = context.histories.n
    start_link = {
        record.name: get_link(record.link)(starts[record.name]) for record in family.records
    }
    factors = default_scale_factors(start_link)
    if isinstance(sf, Mapping):
        factors.update({name: float(value) for name, value in sf.items()})
    elif sf is not None:
        factors = {name: float(sf) for name in names}

    specs: list[ParameterSpec] = []
    for record in family.records:
        lower, upper = record.bounds
        if record.role == "density":
            lower = n / (context.area * context.mask.n_points)
        lower, upper = checked_bounds.get(record.name, (lower, upper))
        factor = factors[record.name]
        specs.append(
            ParameterSpec(
                name=record.name,
                link=record.link,
                lower=lower,
                upper=upper,
                phase=-1 if record.name in fix else 0,
                scale_factor=factor if np.isfinite(factor) else 1.0,
                start=starts[record.name],
                role=record.role,
            )
        )
    logger.info(
        "Start values: %s",
        ", ".join(f"{spec.name}={spec.start:.4g}" for spec in specs),
    )
    return specs


__all__ = [
    "DENSITY",
    "ParameterRecord",
    "PARAMETER_TABLE",
    "ModelFamily",
    "select_model",
    "drop_unused",
    "check_bounds",
    "default_scale_factors",
    "build_parameter_specs",
]
