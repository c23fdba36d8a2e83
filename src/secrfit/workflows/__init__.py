"""Workflow entry points for SECR fitting."""

from __future__ import annotations

from .fit import fit_secr, get_mask, get_par, parameter_table, prepare_fit

__all__ = ["fit_secr", "prepare_fit", "get_mask", "get_par", "parameter_table"]
