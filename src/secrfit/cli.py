"""Typer-based CLI entry point."""

from __future__ import annotations

import logging
import math
import numbers
from pathlib import Path
from typing import Any

import pandas as pd
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .core import FitConfig
from .detfns import get_detfn, list_detfns
from .errors import SecrConfigError, SecrError
from .geometry import make_mask
from .ingest import captures_from_frame, traps_from_frame
from .settings import BACKENDS, load_settings, make_solver
from .workflows.fit import fit_secr, parameter_table, prepare_fit

app = typer.Typer(help="Spatially explicit capture-recapture fitting CLI.")
console = Console()

CAPTURES_ARGUMENT = typer.Argument(
    ...,
    exists=True,
    readable=True,
    help="CSV of detections with `id` and `trap` columns plus optional channel columns.",
)
TRAPS_ARGUMENT = typer.Argument(
    ...,
    exists=True,
    readable=True,
    help="CSV with `trap`, `x` and `y` columns.",
)
BUFFER_OPTION = typer.Option(..., "--buffer", help="Mask buffer around the traps (metres).")
SPACING_OPTION = typer.Option(..., "--spacing", help="Mask point spacing (metres).")
DETFN_OPTION = typer.Option(None, "--detfn", "-d", help="Detection function name.")
SV_OPTION = typer.Option(
    None, "--sv", help="Start value as NAME=VALUE (repeat for multiples).", show_default=False
)
FIX_OPTION = typer.Option(
    None, "--fix", help="Fixed value as NAME=VALUE (repeat for multiples).", show_default=False
)
SS_LINK_OPTION = typer.Option("identity", "--ss-link", help="Signal strength link: identity or log.")
CUTOFF_OPTION = typer.Option(None, "--cutoff", help="Signal strength detection cutoff.")
LOCAL_OPTION = typer.Option(
    False, "--local/--no-local", help="Integrate each history over its local mask points."
)
BACKEND_OPTION = typer.Option(
    None, "--backend", help=f"Solver backend ({', '.join(BACKENDS)}).", show_default=False
)
CONFIG_OPTION = typer.Option(
    None, "--config", exists=True, readable=True, help="YAML solver settings file."
)
HESS_OPTION = typer.Option(
    None, "--hess/--no-hess", help="Force the Hessian on or off.", show_default=False
)

VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Enable verbose output.")
VERSION_OPTION = typer.Option(False, "--version", help="Show version and exit.")


def _format_metric(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, numbers.Real):
        if math.isnan(value):
            return "NaN"
        return f"{value:.6g}"
    return str(value)


def parse_pairs(values: list[str] | None, option: str) -> dict[str, float]:
    """Turn repeated NAME=VALUE options into a mapping."""
    pairs: dict[str, float] = {}
    for item in values or []:
        name, sep, raw = item.partition("=")
        if not sep or not name.strip():
            raise typer.BadParameter(f"Expected NAME=VALUE, got '{item}'.", param_hint=option)
        try:
            pairs[name.strip()] = float(raw)
        except ValueError as exc:
            raise typer.BadParameter(f"'{raw}' is not a number.", param_hint=option) from exc
    return pairs


def _load_inputs(captures: Path, traps: Path, buffer: float, spacing: float):
    labels, coords = traps_from_frame(pd.read_csv(traps))
    capt = captures_from_frame(pd.read_csv(captures), labels)
    mask = make_mask(coords, buffer=buffer, spacing=spacing)
    return capt, coords, mask


@app.callback(invoke_without_command=True)
def cli_callback(  # noqa: B008
    ctx: typer.Context,
    verbose: bool = VERBOSE_OPTION,
    version: bool = VERSION_OPTION,
) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )
    if verbose or version:
        console.print(f"[bold green]secrfit {__version__}[/bold green]")
    if ctx.invoked_subcommand is None and not ctx.resilient_parsing:
        raise typer.Exit()


@app.command()
def detfns() -> None:
    """List registered detection functions."""
    table = Table(title="Registered Detection Functions")
    table.add_column("Name")
    table.add_column("Id", justify="right")
    table.add_column("Parameters")
    table.add_column("Description", overflow="fold")
    for name in list_detfns():
        detfn = get_detfn(name)
        table.add_row(
            detfn.name,
            "-" if detfn.id is None else str(detfn.id),
            ", ".join(detfn.parameters),
            detfn.notes or "",
        )
    console.print(table)


@app.command()
def parameters(  # noqa: B008
    captures: Path = CAPTURES_ARGUMENT,
    traps: Path = TRAPS_ARGUMENT,
    buffer: float = BUFFER_OPTION,
    spacing: float = SPACING_OPTION,
    detfn: str | None = DETFN_OPTION,
    sv: list[str] | None = SV_OPTION,
    fix: list[str] | None = FIX_OPTION,
    ss_link: str = SS_LINK_OPTION,
    cutoff: float | None = CUTOFF_OPTION,
    local: bool = LOCAL_OPTION,
) -> None:
    """Show links, bounds, phases, scale factors and start values without fitting."""
    config = FitConfig(
        detfn=detfn,
        sv=parse_pairs(sv, "--sv"),
        fix=parse_pairs(fix, "--fix"),
        ss_link=ss_link,
        cutoff=cutoff,
        local=local,
    )
    try:
        capt, coords, mask = _load_inputs(captures, traps, buffer, spacing)
        deck, family, _ = prepare_fit(capt, coords, mask, config)
    except (SecrError, KeyError, ValueError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc

    table = Table(title=f"Parameters ({family.detfn.name})", expand=True)
    for column in ("Name", "Link", "Lower", "Upper", "Phase", "Scale", "Start"):
        table.add_column(column, justify="left" if column in {"Name", "Link"} else "right")
    for row in parameter_table(deck.parameters):
        table.add_row(
            row["name"],
            row["link"],
            _format_metric(row["lower"]),
            _format_metric(row["upper"]),
            str(row["phase"]),
            _format_metric(row["scale_factor"]),
            _format_metric(row["start"]),
        )
    console.print(table)
    console.print(
        f"{deck.histories.n_unique} unique histories from n={deck.histories.n} "
        f"on {deck.n_mask} mask points."
    )


@app.command()
def fit(  # noqa: B008
    captures: Path = CAPTURES_ARGUMENT,
    traps: Path = TRAPS_ARGUMENT,
    buffer: float = BUFFER_OPTION,
    spacing: float = SPACING_OPTION,
    detfn: str | None = DETFN_OPTION,
    sv: list[str] | None = SV_OPTION,
    fix: list[str] | None = FIX_OPTION,
    ss_link: str = SS_LINK_OPTION,
    cutoff: float | None = CUTOFF_OPTION,
    local: bool = LOCAL_OPTION,
    hess: bool | None = HESS_OPTION,
    backend: str | None = BACKEND_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Fit an SECR model and print estimates with standard errors."""
    start_values = parse_pairs(sv, "--sv")
    fixed_values = parse_pairs(fix, "--fix")
    try:
        settings = load_settings(config)
        if backend is not None:
            if backend not in BACKENDS:
                raise SecrConfigError(f"Unknown solver backend '{backend}'; use {BACKENDS}.")
            settings.backend = backend
        solver = make_solver(settings)
        capt, coords, mask = _load_inputs(captures, traps, buffer, spacing)
        result = fit_secr(
            capt,
            coords,
            mask,
            detfn,
            sv=start_values,
            fix=fixed_values,
            ss_link=ss_link,
            cutoff=cutoff,
            local=local,
            hess=hess,
            solver=solver,
        )
    except (SecrError, KeyError, ValueError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc

    table = Table(title=f"SECR Fit ({result.detfn})", expand=True)
    table.add_column("Coefficient", no_wrap=True)
    table.add_column("Estimate", justify="right", no_wrap=True)
    table.add_column("Std. Error", justify="right", no_wrap=True)
    for row in result.to_frame().itertuples(index=False):
        table.add_row(row.coefficient, _format_metric(row.estimate), _format_metric(row.se))
    console.print(table)
    for name, value in result.fixed.items():
        console.print(f"Fixed: {name} = {_format_metric(value)}")
    console.print(f"Maximum gradient component: {_format_metric(result.maxgrad)}")


def main() -> None:
    app()


__all__ = ["app", "main", "parse_pairs"]
