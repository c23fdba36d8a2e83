"""Top-level package exports for secrfit."""

from __future__ import annotations

from importlib import metadata

__version__ = "0.0.1-alpha"

try:
    __version__ = metadata.version("secrfit")
except metadata.PackageNotFoundError:  # pragma: no cover - local dev fallback
    pass

from . import core as core  # noqa: F401
from . import detfns as detfns  # noqa: F401
from .core import FitConfig, FitResult, MaskGrid, UncertaintyStatus  # noqa: F401
from .geometry import make_mask  # noqa: F401
from .settings import SolverSettings, load_settings, make_solver  # noqa: F401
from .workflows.fit import fit_secr, get_mask, get_par  # noqa: F401

__all__ = [
    "__version__",
    "core",
    "detfns",
    "FitConfig",
    "FitResult",
    "MaskGrid",
    "UncertaintyStatus",
    "SolverSettings",
    "load_settings",
    "make_solver",
    "make_mask",
    "fit_secr",
    "get_mask",
    "get_par",
]
