"""AD Model Builder backend: write the data/pin files, run the executable, parse results."""

# ruff: noqa: S603

from __future__ import annotations

import logging
import math
import os
import shutil
import subprocess
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np

from ..errors import SolverError

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from . import InputDeck, SolverOutput

logger = logging.getLogger(__name__)

EXECUTABLE_ENV = "SECRFIT_ADMB_EXE"
DEFAULT_EXECUTABLE = "secr"


def format_value(value: Any) -> str:
    """Render a scalar the way the ADMB template reader expects."""
    number = float(value)
    if math.isnan(number):
        return "NaN"
    if math.isinf(number):
        return "Inf" if number > 0 else "-Inf"
    if number.is_integer() and abs(number) < 1e15:
        return str(int(number))
    return repr(number)


def _format_block(value: Any) -> list[str]:
    arr = np.asarray(value)
    if arr.ndim == 0:
        return [format_value(arr)]
    if arr.ndim == 1:
        return [" ".join(format_value(item) for item in arr)]
    return [" ".join(format_value(item) for item in row) for row in arr]


def write_dat(path: Path, data: Mapping[str, Any]) -> Path:
    """Write the data file: a comment line with the field name, then its values."""
    lines: list[str] = []
    for name, value in data.items():
        lines.append(f"# {name}")
        lines.extend(_format_block(value))
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def write_pin(path: Path, names: list[str], values: np.ndarray) -> Path:
    """Write link-scale start values, one per line."""
    lines: list[str] = []
    for name, value in zip(names, values, strict=True):
        lines.append(f"# {name}")
        lines.append(format_value(value))
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def read_par(text: str) -> tuple[np.ndarray, float, float]:
    """Parse a ``.par`` file into (estimates, objective, maximum gradient)."""
    lines = text.splitlines()
    if not lines:
        raise SolverError("The solver parameter file is empty.")
    header = lines[0]
    try:
        objective = float(header.split("Objective function value =")[1].split()[0])
        maxgrad = float(header.split("Maximum gradient component =")[1].split()[0])
    except (IndexError, ValueError) as exc:
        raise SolverError(f"Unrecognised parameter file header: {header!r}") from exc
    values: list[float] = []
    for line in lines[1:]:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        values.extend(float(token) for token in stripped.split())
    return np.asarray(values, dtype=float), objective, maxgrad


def read_cor(text: str) -> tuple[list[str], np.ndarray, np.ndarray, np.ndarray]:
    """Parse a ``.cor`` file into (names, values, standard deviations, correlations)."""
    rows = [line.split() for line in text.splitlines()[2:] if line.strip()]
    names: list[str] = []
    values: list[float] = []
    stds: list[float] = []
    n = len(rows)
    cor = np.eye(n, dtype=float)
    for i, tokens in enumerate(rows):
        names.append(tokens[1])
        values.append(_parse_float(tokens[2]))
        stds.append(_parse_float(tokens[3]))
        lower = [_parse_float(token) for token in tokens[4 : 4 + i + 1]]
        cor[i, : len(lower)] = lower
        cor[: len(lower), i] = lower
    return names, np.asarray(values), np.asarray(stds), cor


def _parse_float(token: str) -> float:
    # Solver output may contain tokens such as "-nan(ind)".
    try:
        return float(token)
    except ValueError:
        return float("nan")


@dataclass(slots=True)
class AdmbSolver:
    """Run the compiled SECR template in a fresh working directory per call."""

    executable: Path | None = None
    workdir: Path | None = None
    clean: bool = True
    timeout: float | None = None
    cbs: int | None = None
    gbs: int | None = None
    trace: bool = False

    def resolve_executable(self) -> Path:
        candidate = self.executable or os.environ.get(EXECUTABLE_ENV)
        if candidate is None:
            found = shutil.which(DEFAULT_EXECUTABLE)
            if found is None:
                raise SolverError(
                    f"ADMB executable not found; set {EXECUTABLE_ENV} or pass an executable path."
                )
            candidate = found
        path = Path(candidate).expanduser().resolve()
        if not path.exists():
            raise SolverError(f"ADMB executable {path} does not exist.")
        return path

    def command(self, executable: Path, *, hess: bool) -> list[str]:
        cmd = [str(executable), "-ind", "secr.dat", "-ainp", "secr.pin"]
        if not hess:
            cmd.append("-nohess")
        if self.cbs is not None:
            cmd.extend(["-cbs", str(int(self.cbs))])
        if self.gbs is not None:
            cmd.extend(["-gbs", str(int(self.gbs))])
        return cmd

    def run(self, deck: InputDeck, *, hess: bool) -> SolverOutput:
        from . import SolverOutput

        if deck.detfn.id is None:
            raise SolverError(
                f"Detection function '{deck.detfn.name}' has no ADMB id and cannot be fitted here."
            )
        executable = self.resolve_executable()
        if self.workdir is not None:
            Path(self.workdir).mkdir(parents=True, exist_ok=True)
        tempdir = Path(tempfile.mkdtemp(prefix="secrfit-", dir=self.workdir))
        prefix = executable.stem
        try:
            names = [f"{name}_link" for name in deck.names]
            if not any(spec.role == "auxiliary" for spec in deck.parameters):
                names.append("dummy")
            write_pin(tempdir / "secr.pin", names, deck.start_vector())
            write_dat(tempdir / "secr.dat", deck.to_data_list())
            cmd = self.command(executable, hess=hess)
            logger.info("Running %s in %s", " ".join(cmd), tempdir)
            try:
                completed = subprocess.run(
                    cmd,
                    cwd=tempdir,
                    check=False,
                    capture_output=not (self.trace or deck.trace),
                    text=True,
                    timeout=self.timeout,
                )
            except subprocess.TimeoutExpired as exc:
                raise SolverError(
                    f"ADMB run exceeded {self.timeout} seconds; treated as non-convergence."
                ) from exc
            if completed.returncode != 0:
                logger.warning("ADMB exited with status %d", completed.returncode)

            par_path = tempdir / f"{prefix}.par"
            if not par_path.exists():
                raise SolverError(
                    f"Solver output {par_path.name} is missing; the optimisation failed."
                )
            estimates, objective, maxgrad = read_par(par_path.read_text(encoding="utf-8"))
            estimates = estimates[: len(deck.parameters)]

            covariance = None
            cor_path = tempdir / f"{prefix}.cor"
            if hess and cor_path.exists():
                _, _, stds, cor = read_cor(cor_path.read_text(encoding="utf-8"))
                k = len(deck.free)
                with np.errstate(invalid="ignore"):
                    covariance = cor[:k, :k] * np.outer(stds[:k], stds[:k])
            elif hess:
                logger.warning("Hessian requested but %s was not produced.", cor_path.name)
            return SolverOutput(
                estimates=estimates,
                maxgrad=maxgrad,
                covariance=covariance,
                log_likelihood=-objective,
                diagnostics={"returncode": completed.returncode, "workdir": str(tempdir)},
            )
        finally:
            if self.clean:
                shutil.rmtree(tempdir, ignore_errors=True)
            else:
                logger.info("ADMB files found in %s", tempdir)


__all__ = [
    "AdmbSolver",
    "EXECUTABLE_ENV",
    "format_value",
    "write_dat",
    "write_pin",
    "read_par",
    "read_cor",
]
