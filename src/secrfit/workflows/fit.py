"""End-to-end SECR fitting workflow."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import numpy as np

from ..autostart import StartContext
from ..compress import compress_histories
from ..core import (
    CaptureHistories,
    FitConfig,
    FitResult,
    MaskGrid,
    MatrixLike,
    ParameterSpec,
    as_traps,
)
from ..errors import SecrConfigError
from ..geometry import bearings, distances, toa_ssq
from ..local import find_local, full_domain
from ..parameters import ModelFamily, build_parameter_specs, select_model
from ..reconstruct import reconstruct
from ..settings import load_settings, make_solver
from ..solvers import InputDeck, Solver

logger = logging.getLogger(__name__)


def _call_freqs(values: Any) -> np.ndarray | None:
    if values is None:
        return None
    freqs = np.asarray(values, dtype=float).ravel()
    if freqs.size == 0 or np.any(~np.isfinite(freqs)) or np.any(freqs <= 0):
        raise SecrConfigError("Call frequencies must be positive finite numbers.")
    return freqs


def _copy(value: Any) -> Any:
    # Non-mapping values pass through and are rejected during parameter construction.
    if value is None:
        return {}
    return dict(value) if isinstance(value, Mapping) else value


def prepare_fit(
    capt: Mapping[str, Any],
    traps: MatrixLike,
    mask: MaskGrid,
    config: FitConfig,
) -> tuple[InputDeck, ModelFamily, StartContext]:
    """Validate inputs and assemble the solver input deck without running it."""
    trap_arr = as_traps(traps)
    if not isinstance(mask, MaskGrid):
        raise SecrConfigError("The mask must be a MaskGrid carrying its cell area and buffer.")
    captures = CaptureHistories.from_mapping(capt, trap_arr.shape[0])
    family = select_model(
        config.detfn,
        captures.info_types,
        ss_link=config.ss_link,
        cutoff=config.cutoff,
    )

    histories = compress_histories(captures)
    dists = distances(trap_arr, mask.points)
    if config.local:
        histories.local_points = find_local(histories.bincapt, dists, mask.buffer)
        local_points = histories.local_points
    else:
        local_points = full_domain(histories.n_unique, mask.n_points)

    context = StartContext(
        captures=captures,
        histories=histories,
        traps=trap_arr,
        mask=mask,
        dists=dists,
        detfn=family.detfn,
        detpar_names=family.detpar_names,
        cutoff=config.cutoff,
        ss_link=config.ss_link,
    )
    specs = build_parameter_specs(
        family,
        context,
        sv=config.sv,
        bounds=config.bounds,
        fix=config.fix,
        sf=config.sf,
    )

    deck = InputDeck(
        detfn=family.detfn,
        parameters=specs,
        histories=histories,
        dists=dists,
        area=mask.area,
        buffer=mask.buffer,
        local=config.local,
        local_points=local_points,
        linkfn_id=family.linkfn_id,
        cutoff=config.cutoff,
        bearings=bearings(trap_arr, mask.points) if captures.has("bearing") else None,
        toa_ssq=(
            toa_ssq(histories.channels["toa"], dists, config.sound_speed)
            if captures.has("toa")
            else None
        ),
        trace=config.trace,
        info_types=captures.info_types,
    )
    return deck, family, context


def fit_secr(
    capt: Mapping[str, Any],
    traps: MatrixLike,
    mask: MaskGrid,
    detfn: str | None = None,
    *,
    sv: Mapping[str, float] | None = None,
    bounds: Mapping[str, Any] | None = None,
    fix: Mapping[str, float] | None = None,
    sf: Mapping[str, float] | float | None = None,
    ss_link: str = "identity",
    cutoff: float | None = None,
    call_freqs: Any = None,
    sound_speed: float = 330.0,
    local: bool = False,
    hess: bool | None = None,
    trace: bool = False,
    solver: Solver | None = None,
) -> FitResult:
    """Fit an SECR model by maximum likelihood.

    Parameters
    ----------
    capt:
        Detection matrices keyed by channel (``bincapt`` required; optional
        ``bearing``, ``dist``, ``ss``, ``toa`` and ``mrds``), each n x k.
    traps:
        (k, 2) detector coordinates.
    mask:
        Integration mask with its cell area and buffer.
    detfn:
        Detection function name; defaults to ``"hn"`` and is replaced by the
        signal-strength family when signal strengths are supplied.
    sv, bounds, fix, sf:
        Start values, natural-scale bounds, fixed values and scale factors keyed
        by parameter name. Names not in the model are dropped with a warning.
    call_freqs:
        Per-individual call frequencies for acoustic surveys. Values other than
        1 disable the Hessian by default and make standard errors unavailable.
    hess:
        Whether to compute the Hessian; defaults to ``True`` unless call
        frequencies other than 1 are supplied.
    solver:
        Backend implementing :class:`secrfit.solvers.Solver`; defaults to the
        configured backend from :func:`secrfit.settings.load_settings`.
    """
    freqs = _call_freqs(call_freqs)
    config = FitConfig(
        detfn=detfn,
        sv=_copy(sv),
        bounds=_copy(bounds),
        fix=_copy(fix),
        sf=dict(sf) if isinstance(sf, Mapping) else sf,
        ss_link=ss_link,
        cutoff=cutoff,
        call_freqs=freqs,
        sound_speed=sound_speed,
        local=local,
        hess=hess,
        trace=trace,
    )
    if config.hess is None:
        config.hess = not config.fit_freqs

    deck, family, _ = prepare_fit(capt, traps, mask, config)
    backend = solver or make_solver(load_settings())
    logger.info(
        "Fitting %s with %d unique histories (n=%d) on %d mask points.",
        family.detfn.name,
        deck.histories.n_unique,
        deck.histories.n,
        deck.n_mask,
    )
    output = backend.run(deck, hess=config.hess)

    coefficients, se, vcov, cor, status, fixed = reconstruct(
        output,
        deck.parameters,
        detfn=family.detfn,
        dists=deck.dists,
        area=mask.area,
        cutoff=config.cutoff,
        call_freqs=config.call_freqs,
    )
    return FitResult(
        coefficients=coefficients,
        se=se,
        vcov=vcov,
        cor=cor,
        uncertainty=status,
        maxgrad=output.maxgrad,
        detfn=family.detfn.name,
        parameters=list(deck.parameters),
        fixed=fixed,
        config=config,
        traps=as_traps(traps),
        mask=mask,
        histories=deck.histories,
        info_types=family.info_types,
        log_likelihood=output.log_likelihood,
        diagnostics=dict(output.diagnostics),
    )


def get_mask(fit: FitResult) -> MaskGrid:
    """Return the (read-only) mask used by a fit."""
    return fit.mask


def get_par(fit: FitResult, name: str) -> float:
    """Return a natural-scale estimate or fixed value from a fit."""
    return fit.get_par(name)


def parameter_table(specs: list[ParameterSpec]) -> list[dict[str, Any]]:
    """Summarise parameter specifications as plain records."""
    return [
        {
            "name": spec.name,
            "link": spec.link,
            "lower": spec.lower,
            "upper": spec.upper,
            "phase": spec.phase,
            "scale_factor": spec.scale_factor,
            "start": spec.start,
            "start_link": spec.start_link,
        }
        for spec in specs
    ]


__all__ = ["fit_secr", "prepare_fit", "get_mask", "get_par", "parameter_table"]
