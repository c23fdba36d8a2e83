"""Core dataclasses and shared type aliases for secrfit modules."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeAlias

import numpy as np
import pandas as pd

from ..errors import SecrConfigError
from ..links import get_link

ArrayLike: TypeAlias = np.ndarray | Sequence[float]
MatrixLike: TypeAlias = np.ndarray | Sequence[Sequence[float]]

BINARY_CHANNEL = "bincapt"
AUXILIARY_CHANNELS: tuple[str, ...] = ("bearing", "dist", "ss", "toa", "mrds")
CAPTURE_CHANNELS: tuple[str, ...] = (BINARY_CHANNEL, *AUXILIARY_CHANNELS)


def _as_points(values: MatrixLike, label: str) -> np.ndarray:
    points = np.asarray(values, dtype=float)
    if points.ndim != 2 or points.shape[1] != 2:
        raise SecrConfigError(f"{label} must be an (n, 2) array of x/y coordinates.")
    points = points.copy()
    points.flags.writeable = False
    return points


@dataclass(slots=True, frozen=True)
class MaskGrid:
    """Candidate activity-centre locations with a uniform cell area and buffer."""

    points: np.ndarray
    area: float
    buffer: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "points", _as_points(self.points, "Mask"))
        if not np.isfinite(self.area) or self.area <= 0:
            raise SecrConfigError("Mask cell area must be a positive finite number.")
        if self.buffer is None or self.buffer <= 0:
            raise SecrConfigError("Mask buffer must be positive.")
        object.__setattr__(self, "area", float(self.area))
        object.__setattr__(self, "buffer", float(self.buffer))

    @property
    def n_points(self) -> int:
        return int(self.points.shape[0])


def as_traps(traps: MatrixLike) -> np.ndarray:
    """Return an immutable (k, 2) trap coordinate array."""
    return _as_points(traps, "Trap locations")


@dataclass(slots=True)
class CaptureHistories:
    """Detection matrices keyed by information channel, all n x k."""

    channels: dict[str, np.ndarray]

    @classmethod
    def from_mapping(cls, capt: Mapping[str, Any], n_traps: int) -> CaptureHistories:
        """Validate raw capture matrices against the trap array."""
        if BINARY_CHANNEL not in capt or capt[BINARY_CHANNEL] is None:
            raise SecrConfigError(
                "The binary capture history must be provided as the 'bincapt' channel."
            )
        channels: dict[str, np.ndarray] = {}
        for name, values in capt.items():
            if name not in CAPTURE_CHANNELS:
                raise SecrConfigError(
                    f"Unknown capture channel '{name}'. Expected one of {CAPTURE_CHANNELS}."
                )
            matrix = np.asarray(values, dtype=float)
            if matrix.ndim != 2:
                raise SecrConfigError(f"Capture channel '{name}' is not a matrix.")
            channels[name] = matrix
        if channels[BINARY_CHANNEL].shape[1] != n_traps:
            raise SecrConfigError(
                "There must be a trap location for each column in the capture channels."
            )
        shapes = {matrix.shape for matrix in channels.values()}
        if len(shapes) > 1:
            raise SecrConfigError("Capture channels have different dimensions.")
        bincapt = channels[BINARY_CHANNEL]
        if not np.all(np.isin(bincapt, (0.0, 1.0))):
            raise SecrConfigError("The 'bincapt' channel must contain only 0/1 values.")
        ordered = {name: channels[name] for name in CAPTURE_CHANNELS if name in channels}
        return cls(channels=ordered)

    @property
    def bincapt(self) -> np.ndarray:
        return self.channels[BINARY_CHANNEL]

    @property
    def n(self) -> int:
        return int(self.bincapt.shape[0])

    @property
    def n_traps(self) -> int:
        return int(self.bincapt.shape[1])

    @property
    def info_types(self) -> tuple[str, ...]:
        return tuple(name for name in AUXILIARY_CHANNELS if name in self.channels)

    def has(self, channel: str) -> bool:
        return channel in self.channels


@dataclass(slots=True)
class UniqueHistories:
    """Compressed detection histories.

    ``order`` is the sorting permutation applied to every channel,
    ``row_map[i]`` gives the unique-history index of original row ``i`` and
    ``local_points[u]`` lists the mask indices integrated over for history ``u``.
    """

    channels: dict[str, np.ndarray]
    freqs: np.ndarray
    order: np.ndarray
    row_map: np.ndarray
    starts: np.ndarray
    local_points: list[np.ndarray] | None = None

    @property
    def bincapt(self) -> np.ndarray:
        return self.channels[BINARY_CHANNEL]

    @property
    def n_unique(self) -> int:
        return int(self.freqs.size)

    @property
    def n(self) -> int:
        return int(self.freqs.sum())


@dataclass(slots=True)
class ParameterSpec:
    """Link, bounds, phase, scale factor and start value for one parameter."""

    name: str
    link: str
    lower: float
    upper: float
    phase: int
    scale_factor: float
    start: float
    role: str = "detection"

    @property
    def fixed(self) -> bool:
        return self.phase == -1

    @property
    def start_link(self) -> float:
        return get_link(self.link)(self.start)

    @property
    def bounds(self) -> tuple[float, float]:
        return self.lower, self.upper

    @property
    def bounds_link(self) -> tuple[float, float]:
        return get_link(self.link).transform_bounds(self.bounds)


@dataclass(slots=True)
class FitConfig:
    """Arguments of a single fit, captured at the call boundary."""

    detfn: str | None = None
    sv: dict[str, float] = field(default_factory=dict)
    bounds: dict[str, tuple[float, float]] = field(default_factory=dict)
    fix: dict[str, float] = field(default_factory=dict)
    sf: dict[str, float] | float | None = None
    ss_link: str = "identity"
    cutoff: float | None = None
    call_freqs: np.ndarray | None = None
    sound_speed: float = 330.0
    local: bool = False
    hess: bool | None = None
    trace: bool = False

    @property
    def fit_freqs(self) -> bool:
        return self.call_freqs is not None and bool(np.any(self.call_freqs != 1))


class UncertaintyStatus(str, Enum):
    AVAILABLE = "available"
    NOT_COMPUTED = "not-computed"
    INVALID_CALL_FREQUENCIES = "invalid-call-frequencies"


@dataclass(slots=True)
class FitResult:
    """Container for a fitted SECR model."""

    coefficients: pd.Series
    se: pd.Series
    vcov: pd.DataFrame
    cor: pd.DataFrame
    uncertainty: UncertaintyStatus
    maxgrad: float
    detfn: str
    parameters: list[ParameterSpec]
    fixed: dict[str, float]
    config: FitConfig
    traps: np.ndarray
    mask: MaskGrid
    histories: UniqueHistories
    info_types: tuple[str, ...] = ()
    log_likelihood: float | None = None
    diagnostics: dict[str, Any] = field(default_factory=dict)

    @property
    def detpars(self) -> list[str]:
        return [spec.name for spec in self.parameters if spec.role == "detection"]

    @property
    def suppars(self) -> list[str]:
        return [spec.name for spec in self.parameters if spec.role == "auxiliary"]

    @property
    def fit_freqs(self) -> bool:
        return self.config.fit_freqs

    def get_par(self, name: str) -> float:
        """Return a natural-scale estimate, derived quantity or fixed value."""
        if name in self.coefficients.index and not name.endswith("_link"):
            return float(self.coefficients[name])
        if name in self.fixed:
            return float(self.fixed[name])
        raise KeyError(f"Parameter '{name}' is not part of this fit.")

    def to_frame(self) -> pd.DataFrame:
        """Return a tidy data frame of estimates and standard errors."""
        frame = pd.DataFrame(
            {"estimate": self.coefficients, "se": self.se.reindex(self.coefficients.index)}
        )
        frame.index.name = "coefficient"
        return frame.reset_index()


__all__ = [
    "ArrayLike",
    "MatrixLike",
    "BINARY_CHANNEL",
    "AUXILIARY_CHANNELS",
    "CAPTURE_CHANNELS",
    "MaskGrid",
    "as_traps",
    "CaptureHistories",
    "UniqueHistories",
    "ParameterSpec",
    "FitConfig",
    "UncertaintyStatus",
    "FitResult",
]
