"""Exception and warning taxonomy for secrfit.

Validation problems are raised before any solver is invoked so callers can
correct their inputs. Non-fatal diagnostics use dedicated warning categories so
they can be filtered individually with :mod:`warnings`.
"""

from __future__ import annotations


class SecrError(Exception):
    """Base class for every error raised by secrfit."""


class SecrConfigError(SecrError, ValueError):
    """Raised when survey data or fit arguments are malformed."""


class StartValueError(SecrError, ArithmeticError):
    """Raised when an automatic start value cannot be computed from the data."""

    def __init__(self, parameter: str, reason: str) -> None:
        self.parameter = parameter
        super().__init__(f"Cannot derive a start value for '{parameter}': {reason}")


class SolverError(SecrError, RuntimeError):
    """Raised when the optimiser fails to run or produces no usable output."""


class ParameterDropWarning(UserWarning):
    """An override referenced a parameter that is not part of the model."""


class DetfnOverrideWarning(UserWarning):
    """The requested detection function was replaced by the signal-strength family."""


class ConvergenceWarning(UserWarning):
    """The optimiser finished with a large gradient component."""


__all__ = [
    "SecrError",
    "SecrConfigError",
    "StartValueError",
    "SolverError",
    "ParameterDropWarning",
    "DetfnOverrideWarning",
    "ConvergenceWarning",
]
