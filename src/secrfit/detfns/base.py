"""Detection-function registry infrastructure."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from importlib import import_module, metadata
from pathlib import Path
from typing import Any

import numpy as np
import yaml

Probability = Callable[[np.ndarray, Mapping[str, float]], np.ndarray]

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "secrfit.detfns"


@dataclass(slots=True)
class DetectionFunction:
    """Describe a detection function g(d) with metadata.

    ``id`` is the family number understood by the ADMB executable; families
    registered without one can only be fitted by in-process solvers.
    ``requires_cutoff`` marks families whose probability also reads a
    ``cutoff`` entry from the parameter mapping.
    """

    name: str
    parameters: tuple[str, ...]
    probability: Probability
    id: int | None = None
    requires_cutoff: bool = False
    notes: str | None = None


_REGISTRY: dict[str, DetectionFunction] = {}


def list_detfns() -> Iterable[str]:
    """Return registered detection-function names."""
    return sorted(_REGISTRY.keys())


def get_detfn(name: str) -> DetectionFunction:
    """Retrieve a detection function by name (case-insensitive)."""
    detfn = _REGISTRY.get(name.lower())
    if detfn is None:
        raise KeyError(f"Unknown detection function '{name}'.")
    return detfn


def register_detfn(detfn: DetectionFunction, *, overwrite: bool = False) -> None:
    """Add ``detfn`` to the registry.

    Names are unique, and so are ADMB family ids: the template dispatches on
    the id alone.
    """
    key = detfn.name.lower()
    if not detfn.parameters:
        raise ValueError(f"Detection function '{detfn.name}' declares no parameters.")
    if not overwrite:
        if key in _REGISTRY:
            raise ValueError(f"Detection function '{detfn.name}' already registered.")
        clash = next(
            (
                other.name
                for other in _REGISTRY.values()
                if detfn.id is not None and other.id == detfn.id
            ),
            None,
        )
        if clash is not None:
            raise ValueError(f"ADMB id {detfn.id} is already used by '{clash}'.")
    _REGISTRY[key] = detfn


def clear_registry() -> None:
    """Reset the registry (primarily for testing)."""
    _REGISTRY.clear()


def _from_mapping(entry: Mapping[str, Any]) -> DetectionFunction:
    raw_id = entry.get("id")
    return DetectionFunction(
        name=str(entry["name"]),
        parameters=tuple(str(param) for param in entry.get("parameters", ())),
        probability=_load_object(str(entry["probability"])),
        id=None if raw_id is None else int(raw_id),
        requires_cutoff=bool(entry.get("requires_cutoff", False)),
        notes=entry.get("notes"),
    )


def _iter_detfns(candidate: Any) -> Iterable[DetectionFunction]:
    if isinstance(candidate, DetectionFunction):
        yield candidate
    elif isinstance(candidate, Mapping):
        if "name" not in candidate or "probability" not in candidate:
            raise TypeError("Detection function mappings need 'name' and 'probability' keys.")
        yield _from_mapping(candidate)
    elif callable(candidate):
        yield from _iter_detfns(candidate())
    elif isinstance(candidate, Iterable) and not isinstance(candidate, str | bytes):
        for item in candidate:
            yield from _iter_detfns(item)
    else:
        raise TypeError(
            "Unsupported detection function entry; expected a DetectionFunction, a mapping, "
            "an iterable of those, or a callable returning them."
        )


def _load_object(path: str) -> Any:
    module_name, sep, attribute = path.partition(":")
    if not sep:
        module_name, _, attribute = path.rpartition(".")
    if not module_name or not attribute:
        raise ValueError(f"Invalid import path '{path}'. Expected 'module:callable'.")
    module = import_module(module_name)
    try:
        return getattr(module, attribute)
    except AttributeError as exc:
        raise AttributeError(f"Module '{module_name}' has no attribute '{attribute}'.") from exc


def load_entry_points(group: str = ENTRY_POINT_GROUP) -> list[str]:
    """Register detection functions advertised by installed plugins."""
    loaded: list[str] = []
    try:
        candidates = metadata.entry_points().select(group=group)
    except Exception as exc:  # pragma: no cover - discovery failure
        logger.debug("Entry point discovery failed: %s", exc)
        return loaded

    for ep in candidates:
        try:
            detfns = list(_iter_detfns(ep.load()))
        except Exception as exc:  # pragma: no cover - plugin failure
            logger.warning("Failed to load detection function entry point '%s': %s", ep.name, exc)
            continue
        for detfn in detfns:
            register_detfn(detfn, overwrite=True)
            loaded.append(detfn.name)
    if loaded:
        logger.debug("Registered plugin detection functions: %s", ", ".join(loaded))
    return loaded


def load_yaml_config(path: str | os.PathLike[str]) -> list[str]:
    """Register detection functions listed under a top-level ``detfns`` key.

    Each entry needs ``name``, ``parameters`` and a ``probability`` import path
    and may carry ``id``, ``requires_cutoff``, ``notes`` and ``overwrite``.
    Malformed entries are logged and skipped.
    """
    path = Path(path)
    if not path.exists():
        logger.debug("Skipping detection function config %s (file not found)", path)
        return []

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        logger.warning("Failed to parse detection function config %s: %s", path, exc)
        return []

    registered: list[str] = []
    for entry in data.get("detfns", []) or []:
        try:
            detfn = _from_mapping(entry)
            register_detfn(detfn, overwrite=bool(entry.get("overwrite", True)))
        except (KeyError, TypeError, ValueError, ImportError, AttributeError) as exc:
            logger.warning("Skipping detection function entry %s in %s: %s", entry, path, exc)
            continue
        registered.append(detfn.name)
    return registered


__all__ = [
    "DetectionFunction",
    "ENTRY_POINT_GROUP",
    "Probability",
    "list_detfns",
    "get_detfn",
    "register_detfn",
    "clear_registry",
    "load_entry_points",
    "load_yaml_config",
]
