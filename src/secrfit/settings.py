"""Solver settings loaded from YAML with environment overrides."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .errors import SecrConfigError
from .solvers import AdmbSolver, NativeSolver, Solver

logger = logging.getLogger(__name__)

CONFIG_ENV = "SECRFIT_CONFIG"
ENV_OVERRIDES = {
    "SECRFIT_BACKEND": "backend",
    "SECRFIT_ADMB_EXE": "admb_executable",
    "SECRFIT_WORKDIR": "workdir",
}
BACKENDS = ("native", "admb")


@dataclass(slots=True)
class SolverSettings:
    """Which optimiser to run and how."""

    backend: str = "native"
    admb_executable: Path | None = None
    workdir: Path | None = None
    clean: bool = True
    timeout: float | None = None
    cbs: int | None = None
    gbs: int | None = None


def load_settings(path: str | os.PathLike[str] | None = None) -> SolverSettings:
    """Read settings from ``path`` (or ``$SECRFIT_CONFIG``), then apply env overrides.

    The YAML file holds a top-level ``solver`` mapping whose keys match
    :class:`SolverSettings` fields.
    """
    values: dict[str, Any] = {}
    source = path or os.environ.get(CONFIG_ENV)
    if source:
        config_path = Path(source)
        if not config_path.exists():
            raise SecrConfigError(f"Settings file {config_path} does not exist.")
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        values.update(data.get("solver", {}) or {})
        logger.debug("Loaded solver settings from %s", config_path)
    for env_name, key in ENV_OVERRIDES.items():
        if env_name in os.environ:
            values[key] = os.environ[env_name]

    known = {item.name for item in fields(SolverSettings)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise SecrConfigError(f"Unknown solver settings: {', '.join(unknown)}.")
    for key in ("admb_executable", "workdir"):
        if values.get(key) is not None:
            values[key] = Path(values[key])
    settings = SolverSettings(**values)
    if settings.backend not in BACKENDS:
        raise SecrConfigError(f"Unknown solver backend '{settings.backend}'; use {BACKENDS}.")
    return settings


def make_solver(settings: SolverSettings | None = None) -> Solver:
    """Instantiate the configured backend."""
    settings = settings or SolverSettings()
    if settings.backend == "admb":
        return AdmbSolver(
            executable=settings.admb_executable,
            workdir=settings.workdir,
            clean=settings.clean,
            timeout=settings.timeout,
            cbs=settings.cbs,
            gbs=settings.gbs,
        )
    return NativeSolver()


__all__ = ["SolverSettings", "load_settings", "make_solver", "CONFIG_ENV", "BACKENDS"]
