"""Link functions used to map natural-scale parameters onto the optimiser scale."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

import numpy as np
from scipy.special import expit, logit

Transform = Callable[[np.ndarray], np.ndarray]


@dataclass(slots=True, frozen=True)
class Link:
    """A monotonic reparameterisation and its inverse.

    ``derivative`` is d(natural)/d(link) evaluated at a link-scale value and is
    used for delta-method standard errors.
    """

    name: str
    id: int
    forward: Transform
    inverse: Transform
    derivative: Transform

    def __call__(self, value: float) -> float:
        with np.errstate(divide="ignore", over="ignore"):
            return float(self.forward(np.asarray(value, dtype=float)))

    def unlink(self, value: float) -> float:
        with np.errstate(over="ignore"):
            return float(self.inverse(np.asarray(value, dtype=float)))

    def transform_bounds(self, bounds: Iterable[float]) -> tuple[float, float]:
        lower, upper = (self(value) for value in bounds)
        return lower, upper


def _identity(x: np.ndarray) -> np.ndarray:
    return np.asarray(x, dtype=float)


def _unit(x: np.ndarray) -> np.ndarray:
    return np.ones_like(np.asarray(x, dtype=float))


def _logit_derivative(x: np.ndarray) -> np.ndarray:
    p = expit(x)
    return p * (1.0 - p)


# Ids follow the optimiser deck convention: 1 = identity, 2 = log, 3 = logit.
LINKS: dict[str, Link] = {
    "identity": Link("identity", 1, _identity, _identity, _unit),
    "log": Link("log", 2, np.log, np.exp, np.exp),
    "logit": Link("logit", 3, logit, expit, _logit_derivative),
}


def get_link(name: str) -> Link:
    """Retrieve a link by name."""
    try:
        return LINKS[name]
    except KeyError as exc:
        raise KeyError(f"Unknown link function '{name}'.") from exc


def list_links() -> list[str]:
    return sorted(LINKS)


__all__ = ["Link", "LINKS", "get_link", "list_links"]
