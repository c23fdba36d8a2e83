"""Turn raw solver output into user-facing estimates."""

from __future__ import annotations

import logging
import warnings
from collections.abc import Sequence

import numpy as np
import pandas as pd
from scipy.optimize import approx_fprime

from .core import ParameterSpec, UncertaintyStatus
from .detfns import DetectionFunction, effective_area
from .errors import ConvergenceWarning
from .links import get_link
from .solvers import SolverOutput

logger = logging.getLogger(__name__)

# Two gradient thresholds are checked at different stages; both are advisory.
FAILED_CONVERGENCE_MAXGRAD = 0.1
LARGE_GRADIENT_MAXGRAD = 0.01


def _natural_values(specs: Sequence[ParameterSpec], estimates: np.ndarray) -> dict[str, float]:
    return {
        spec.name: get_link(spec.link).unlink(value)
        for spec, value in zip(specs, estimates, strict=True)
    }


def _esa_at(
    values: dict[str, float],
    detfn: DetectionFunction,
    dists: np.ndarray,
    area: float,
    cutoff: float | None,
) -> float:
    params = {name: values[name] for name in detfn.parameters}
    if cutoff is not None:
        params["cutoff"] = cutoff
    return effective_area(dists, detfn, params, area)


def _unavailable(names: Sequence[str]) -> tuple[pd.Series, pd.DataFrame, pd.DataFrame]:
    se = pd.Series(np.nan, index=list(names), dtype=float)
    vcov = pd.DataFrame(np.nan, index=list(names), columns=list(names), dtype=float)
    return se, vcov, vcov.copy()


def reconstruct(
    output: SolverOutput,
    specs: Sequence[ParameterSpec],
    *,
    detfn: DetectionFunction,
    dists: np.ndarray,
    area: float,
    cutoff: float | None = None,
    call_freqs: np.ndarray | None = None,
) -> tuple[pd.Series, pd.Series, pd.DataFrame, pd.DataFrame, UncertaintyStatus, dict[str, float]]:
    """Map link-scale output to coefficients, standard errors, vcov and correlations.

    Returns ``(coefficients, se, vcov, cor, status, fixed)``. Fixed parameters
    are excluded from the coefficient vector but reported in ``fixed``.
    """
    if abs(output.maxgrad) > FAILED_CONVERGENCE_MAXGRAD:
        warnings.warn(
            "Failed convergence -- maximum gradient component is large.",
            ConvergenceWarning,
            stacklevel=3,
        )

    estimates = np.asarray(output.estimates, dtype=float)
    natural = _natural_values(specs, estimates)
    fixed = {spec.name: natural[spec.name] for spec in specs if spec.fixed}
    free_idx = [i for i, spec in enumerate(specs) if not spec.fixed]
    est_pars = [specs[i] for i in free_idx]

    names = [f"{spec.name}_link" for spec in est_pars] + [spec.name for spec in est_pars]
    values = [estimates[i] for i in free_idx] + [natural[spec.name] for spec in est_pars]
    esa = _esa_at(natural, detfn, dists, area, cutoff)
    names.append("esa")
    values.append(esa)
    coefficients = pd.Series(values, index=names, dtype=float)

    fit_freqs = call_freqs is not None and bool(np.any(np.asarray(call_freqs) != 1))
    if fit_freqs:
        mu_freqs = float(np.mean(call_freqs))
        coefficients["Da"] = natural["D"] / mu_freqs
        coefficients["mu_freqs"] = mu_freqs
        se, vcov, cor = _unavailable(coefficients.index)
        status = UncertaintyStatus.INVALID_CALL_FREQUENCIES
        logger.info("Standard errors not reported for repeated call frequencies.")
    elif output.covariance is None:
        se, vcov, cor = _unavailable(coefficients.index)
        status = UncertaintyStatus.NOT_COMPUTED
    else:
        k = len(free_idx)
        link_cov = np.asarray(output.covariance, dtype=float)[:k, :k]
        jacobian = np.zeros((len(names), k), dtype=float)
        jacobian[:k, :k] = np.eye(k)
        for j, spec in enumerate(est_pars):
            jacobian[k + j, j] = float(get_link(spec.link).derivative(estimates[free_idx[j]]))

        def esa_of(theta_free: np.ndarray) -> float:
            theta = estimates.copy()
            theta[free_idx] = theta_free
            return _esa_at(_natural_values(specs, theta), detfn, dists, area, cutoff)

        jacobian[-1] = approx_fprime(estimates[free_idx], esa_of, epsilon=1e-6)
        full = jacobian @ link_cov @ jacobian.T
        with np.errstate(invalid="ignore", divide="ignore"):
            ses = np.sqrt(np.diag(full))
            correlation = full / np.outer(ses, ses)
        se = pd.Series(ses, index=names, dtype=float)
        vcov = pd.DataFrame(full, index=names, columns=names)
        cor = pd.DataFrame(correlation, index=names, columns=names)
        status = UncertaintyStatus.AVAILABLE

    if abs(output.maxgrad) > LARGE_GRADIENT_MAXGRAD:
        warnings.warn("Maximum gradient component is large.", ConvergenceWarning, stacklevel=3)
    return coefficients, se, vcov, cor, status, fixed


__all__ = [
    "FAILED_CONVERGENCE_MAXGRAD",
    "LARGE_GRADIENT_MAXGRAD",
    "reconstruct",
]
