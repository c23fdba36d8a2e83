"""Solver interface: the input deck handed to an optimiser and its raw output."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import numpy as np

from ..core import ParameterSpec, UniqueHistories
from ..detfns import DetectionFunction
from ..links import get_link

# Floor applied to probability products so they never underflow to zero.
DBL_MIN = 1e-150


@dataclass(slots=True)
class InputDeck:
    """Every logical field the optimiser needs, aligned to the unique-history order."""

    detfn: DetectionFunction
    parameters: list[ParameterSpec]
    histories: UniqueHistories
    dists: np.ndarray
    area: float
    buffer: float
    local: bool
    local_points: list[np.ndarray]
    linkfn_id: int = 3
    cutoff: float | None = None
    bearings: np.ndarray | None = None
    toa_ssq: np.ndarray | None = None
    trace: bool = False
    dbl_min: float = DBL_MIN
    info_types: tuple[str, ...] = field(default_factory=tuple)

    @property
    def names(self) -> list[str]:
        return [spec.name for spec in self.parameters]

    @property
    def free(self) -> list[ParameterSpec]:
        return [spec for spec in self.parameters if not spec.fixed]

    @property
    def n_traps(self) -> int:
        return int(self.dists.shape[0])

    @property
    def n_mask(self) -> int:
        return int(self.dists.shape[1])

    def _group(self, role: str) -> list[ParameterSpec]:
        return [spec for spec in self.parameters if spec.role == role]

    def start_vector(self) -> np.ndarray:
        """Link-scale start values, padded with a dummy when no auxiliary parameters exist."""
        values = [spec.start_link for spec in self.parameters]
        if not self._group("auxiliary"):
            values.append(0.0)
        return np.asarray(values, dtype=float)

    def to_data_list(self) -> dict[str, Any]:
        """Named data fields in the order the ADMB template reads them."""
        density = self._group("density")[0]
        detpars = self._group("detection")
        suppars = self._group("auxiliary")
        d_lb, d_ub = density.bounds_link

        def lower(specs: Sequence[ParameterSpec]) -> list[float]:
            return [spec.bounds_link[0] for spec in specs]

        def upper(specs: Sequence[ParameterSpec]) -> list[float]:
            return [spec.bounds_link[1] for spec in specs]

        def links(specs: Sequence[ParameterSpec]) -> list[int]:
            return [get_link(spec.link).id for spec in specs]

        if self.local:
            all_n_local = [points.size for points in self.local_points]
            # The template expects one-based mask indices.
            all_which_local: Any = np.concatenate(
                [points + 1 for points in self.local_points]
            ).astype(int)
        else:
            all_n_local = [1] * self.histories.n_unique
            all_which_local = [0] * self.histories.n_unique

        channels = self.histories.channels

        def channel(name: str) -> Any:
            return channels[name] if name in channels else 0

        return {
            "n_unique": self.histories.n_unique,
            "local": int(self.local),
            "all_n_local": all_n_local,
            "all_which_local": all_which_local,
            "D_lb": d_lb,
            "D_ub": d_ub,
            "D_phase": density.phase,
            "D_sf": density.scale_factor,
            "n_detpars": len(detpars),
            "detpars_lb": lower(detpars),
            "detpars_ub": upper(detpars),
            "detpars_phase": [spec.phase for spec in detpars],
            "detpars_sf": [spec.scale_factor for spec in detpars],
            "detpars_linkfns": links(detpars),
            "n_suppars": max(len(suppars), 1),
            "suppars_lb": lower(suppars) if suppars else 0,
            "suppars_ub": upper(suppars) if suppars else 0,
            "suppars_phase": [spec.phase for spec in suppars] if suppars else -1,
            "suppars_sf": [spec.scale_factor for spec in suppars] if suppars else 1,
            "suppars_linkfns": links(suppars) if suppars else 1,
            "detfn_id": self.detfn.id,
            "buffer": self.buffer,
            "trace": int(self.trace),
            "DBL_MIN": self.dbl_min,
            "n": self.histories.n,
            "n_traps": self.n_traps,
            "n_mask": self.n_mask,
            "A": self.area,
            "capt_bin_unique": self.histories.bincapt,
            "capt_bin_freqs": self.histories.freqs,
            "fit_angs": int("bearing" in channels),
            "capt_ang": channel("bearing"),
            "fit_dists": int("dist" in channels),
            "capt_dist": channel("dist"),
            "fit_ss": int("ss" in channels),
            "cutoff": self.cutoff if self.cutoff is not None else 0.0,
            "linkfn_id": self.linkfn_id,
            "capt_ss": channel("ss"),
            "fit_toas": int("toa" in channels),
            "capt_toa": channel("toa"),
            "fit_mrds": int("mrds" in channels),
            "mrds_dist": channel("mrds"),
            "dists": self.dists,
            "angs": self.bearings if self.bearings is not None else 0,
            "toa_ssq": self.toa_ssq if self.toa_ssq is not None else 0,
        }


@dataclass(slots=True)
class SolverOutput:
    """Raw optimiser results.

    ``estimates`` are link-scale values for every parameter in deck order
    (fixed ones included); ``covariance`` covers the free parameters only.
    """

    estimates: np.ndarray
    maxgrad: float
    covariance: np.ndarray | None = None
    log_likelihood: float | None = None
    diagnostics: dict[str, Any] = field(default_factory=dict)


class Solver(Protocol):
    """Anything that can turn an input deck into solver output."""

    def run(self, deck: InputDeck, *, hess: bool) -> SolverOutput:
        """Maximise the likelihood described by ``deck``."""
        ...


from .admb import AdmbSolver  # noqa: E402
from .native import NativeSolver  # noqa: E402

__all__ = [
    "DBL_MIN",
    "InputDeck",
    "SolverOutput",
    "Solver",
    "AdmbSolver",
    "NativeSolver",
]
