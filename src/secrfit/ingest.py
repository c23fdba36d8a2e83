"""Build capture, trap and mask inputs from tidy pandas tables."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np
import pandas as pd

from .core import AUXILIARY_CHANNELS, BINARY_CHANNEL, MaskGrid
from .errors import SecrConfigError

logger = logging.getLogger(__name__)


def _require(frame: pd.DataFrame, columns: Sequence[str], label: str) -> None:
    for column in columns:
        if column not in frame.columns:
            raise KeyError(f"{label} missing column '{column}'.")


def traps_from_frame(
    frame: pd.DataFrame,
    *,
    label_col: str = "trap",
    x_col: str = "x",
    y_col: str = "y",
) -> tuple[list[str], np.ndarray]:
    """Return trap labels (as strings) and their (k, 2) coordinates, in table order."""
    _require(frame, (label_col, x_col, y_col), "Trap table")
    labels = frame[label_col].astype(str).tolist()
    if len(set(labels)) != len(labels):
        raise SecrConfigError("Trap labels must be unique.")
    coords = frame[[x_col, y_col]].apply(pd.to_numeric, errors="coerce").to_numpy(dtype=float)
    if not np.all(np.isfinite(coords)):
        raise SecrConfigError("Trap coordinates must be numeric.")
    return labels, coords


def captures_from_frame(
    frame: pd.DataFrame,
    trap_labels: Sequence[str],
    *,
    id_col: str = "id",
    trap_col: str = "trap",
) -> dict[str, np.ndarray]:
    """Pivot a long detection table into capture matrices.

    Each row records one detection of animal/call ``id_col`` at trap
    ``trap_col``; any column named after an auxiliary channel (``bearing``,
    ``dist``, ``ss``, ``toa``, ``mrds``) supplies that channel's value. Rows of
    the returned matrices follow first appearance of each id; columns follow
    ``trap_labels``. Undetected cells are 0.
    """
    _require(frame, (id_col, trap_col), "Capture table")
    labels = [str(label) for label in trap_labels]
    trap_index = {label: j for j, label in enumerate(labels)}
    traps = frame[trap_col].astype(str)
    unknown = sorted(set(traps) - set(trap_index))
    if unknown:
        raise SecrConfigError(f"Detections at unknown traps: {', '.join(unknown)}.")
    if frame.duplicated(subset=[id_col, trap_col]).any():
        raise SecrConfigError("Each id may be detected at most once per trap.")

    ids = pd.unique(frame[id_col])
    row_index = {value: i for i, value in enumerate(ids)}
    rows = frame[id_col].map(row_index).to_numpy(dtype=int)
    cols = traps.map(trap_index).to_numpy(dtype=int)

    shape = (len(ids), len(labels))
    bincapt = np.zeros(shape, dtype=float)
    bincapt[rows, cols] = 1.0
    capt = {BINARY_CHANNEL: bincapt}
    for channel in AUXILIARY_CHANNELS:
        if channel not in frame.columns:
            continue
        values = pd.to_numeric(frame[channel], errors="coerce").to_numpy(dtype=float)
        if not np.all(np.isfinite(values)):
            raise SecrConfigError(f"Column '{channel}' must be numeric for every detection.")
        matrix = np.zeros(shape, dtype=float)
        matrix[rows, cols] = values
        capt[channel] = matrix
    logger.debug("Built %d capture histories across %d traps.", shape[0], shape[1])
    return capt


def mask_from_frame(
    frame: pd.DataFrame,
    *,
    area: float,
    buffer: float,
    x_col: str = "x",
    y_col: str = "y",
) -> MaskGrid:
    """Wrap a table of mask point coordinates as a :class:`MaskGrid`."""
    _require(frame, (x_col, y_col), "Mask table")
    points = frame[[x_col, y_col]].apply(pd.to_numeric, errors="coerce").to_numpy(dtype=float)
    if not np.all(np.isfinite(points)):
        raise SecrConfigError("Mask coordinates must be numeric.")
    return MaskGrid(points=points, area=area, buffer=buffer)


__all__ = ["traps_from_frame", "captures_from_frame", "mask_from_frame"]
