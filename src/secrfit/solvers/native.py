"""In-process maximum-likelihood backend for binary capture histories.

The likelihood is the single-session Poisson SECR likelihood evaluated over
the mask, with each unique history weighted by its frequency and integrated
over its local index list. Optimisation runs on the link scale multiplied by
each parameter's scale factor, the same convention the ADMB template uses.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from lmfit import Parameters, minimize
from scipy.optimize import approx_fprime
from scipy.special import gammaln

from ..errors import SolverError
from ..links import get_link
from ..local import local_membership

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from . import InputDeck, SolverOutput

logger = logging.getLogger(__name__)

PENALTY = 1e300


def numerical_hessian(
    func: Callable[[np.ndarray], float],
    theta: np.ndarray,
    *,
    step: float = 1e-4,
) -> np.ndarray | None:
    """Approximate the Hessian using central finite differences."""
    n_params = theta.size
    hessian = np.zeros((n_params, n_params), dtype=float)
    f0 = func(theta)
    if not np.isfinite(f0):
        return None
    for i in range(n_params):
        ei = np.zeros(n_params, dtype=float)
        ei[i] = step
        f_plus = func(theta + ei)
        f_minus = func(theta - ei)
        hessian[i, i] = (f_plus - 2.0 * f0 + f_minus) / (step**2)
        for j in range(i + 1, n_params):
            ej = np.zeros(n_params, dtype=float)
            ej[j] = step
            f_pp = func(theta + ei + ej)
            f_pm = func(theta + ei - ej)
            f_mp = func(theta - ei + ej)
            f_mm = func(theta - ei - ej)
            value = (f_pp - f_pm - f_mp + f_mm) / (4.0 * step**2)
            hessian[i, j] = value
            hessian[j, i] = value
    if not np.all(np.isfinite(hessian)):
        return None
    return hessian


def invert_hessian(hessian: np.ndarray | None) -> np.ndarray | None:
    """Return the covariance matrix, or None when the Hessian is not positive definite."""
    if hessian is None:
        return None
    try:
        np.linalg.cholesky(hessian)
    except np.linalg.LinAlgError:
        logger.warning("Hessian is not positive definite; standard errors unavailable.")
        return None
    return np.linalg.inv(hessian)


class BinaryLikelihood:
    """Negative log-likelihood of the binary-only SECR model as a function of link values."""

    def __init__(self, deck: InputDeck) -> None:
        self.deck = deck
        self.links = [get_link(spec.link) for spec in deck.parameters]
        self.detpar_names = [spec.name for spec in deck.parameters if spec.role == "detection"]
        self.omega = np.asarray(deck.histories.bincapt, dtype=float)
        self.freqs = np.asarray(deck.histories.freqs, dtype=float)
        self.member = local_membership(deck.local_points, deck.n_mask)
        self.n = float(self.freqs.sum())

    def natural(self, theta_link: np.ndarray) -> dict[str, float]:
        return {
            spec.name: link.unlink(value)
            for spec, link, value in zip(self.deck.parameters, self.links, theta_link, strict=True)
        }

    def __call__(self, theta_link: np.ndarray) -> float:
        deck = self.deck
        params = self.natural(theta_link)
        density = params["D"]
        g = np.clip(
            deck.detfn.probability(deck.dists, {name: params[name] for name in self.detpar_names}),
            0.0,
            1.0,
        )
        floor = deck.dbl_min
        log_g = np.log(np.maximum(g, floor))
        log_miss = np.log(np.maximum(1.0 - g, floor))
        log_f = self.omega @ log_g + (1.0 - self.omega) @ log_miss
        f_sum = np.sum(np.exp(log_f) * self.member, axis=1)
        esa = deck.area * np.sum(1.0 - np.prod(1.0 - g, axis=0))
        with np.errstate(divide="ignore"):
            loglik = (
                self.n * np.log(density)
                + float(np.sum(self.freqs * np.log(np.maximum(deck.area * f_sum, floor))))
                - density * esa
                - gammaln(self.n + 1.0)
            )
        return float(-loglik) if np.isfinite(loglik) else PENALTY


@dataclass(slots=True)
class NativeSolver:
    """Fit binary capture histories with lmfit's L-BFGS-B driver."""

    method: str = "lbfgsb"
    gradient_step: float = 1e-6
    hessian_step: float = 1e-4

    def check(self, deck: InputDeck) -> None:
        if deck.info_types:
            raise SolverError(
                "The native solver supports binary capture histories only; "
                f"got auxiliary channels {deck.info_types}. Use the ADMB backend."
            )
        if deck.detfn.requires_cutoff:
            raise SolverError(
                f"The native solver cannot fit the '{deck.detfn.name}' detection function."
            )

    def run(self, deck: InputDeck, *, hess: bool) -> SolverOutput:
        from . import SolverOutput

        self.check(deck)
        nll = BinaryLikelihood(deck)
        theta = np.array([spec.start_link for spec in deck.parameters], dtype=float)
        free = [i for i, spec in enumerate(deck.parameters) if not spec.fixed]
        scale = np.array([deck.parameters[i].scale_factor for i in free], dtype=float)

        def full_vector(internal: np.ndarray) -> np.ndarray:
            out = theta.copy()
            out[free] = np.asarray(internal, dtype=float) / scale
            return out

        if not free:
            value = nll(theta)
            return SolverOutput(estimates=theta, maxgrad=0.0, log_likelihood=-value)

        params = Parameters()
        for i, factor in zip(free, scale, strict=True):
            spec = deck.parameters[i]
            lower, upper = spec.bounds_link
            params.add(
                spec.name,
                value=spec.start_link * factor,
                min=lower * factor,
                max=upper * factor,
            )
        names = [deck.parameters[i].name for i in free]

        def objective(current: Parameters) -> float:
            return nll(full_vector(np.array([current[name].value for name in names])))

        logger.debug("Native solver starting from %s", dict(zip(names, theta[free], strict=True)))
        result = minimize(objective, params, method=self.method)
        internal = np.array([result.params[name].value for name in names], dtype=float)
        estimates = full_vector(internal)

        gradient = approx_fprime(
            internal, lambda x: nll(full_vector(x)), epsilon=self.gradient_step
        )
        maxgrad = float(np.max(np.abs(gradient)))

        covariance = None
        if hess:

            def on_link_scale(values: np.ndarray) -> float:
                out = estimates.copy()
                out[free] = values
                return nll(out)

            covariance = invert_hessian(
                numerical_hessian(on_link_scale, estimates[free], step=self.hessian_step)
            )
        return SolverOutput(
            estimates=estimates,
            maxgrad=maxgrad,
            covariance=covariance,
            log_likelihood=-nll(estimates),
            diagnostics={"success": bool(result.success), "nfev": int(result.nfev)},
        )


__all__ = ["NativeSolver", "BinaryLikelihood", "numerical_hessian", "invert_hessian"]
