import numpy as np
import pandas as pd
import pytest

from secrfit.errors import SecrConfigError
from secrfit.geometry import make_mask
from secrfit.ingest import captures_from_frame, mask_from_frame, traps_from_frame
from secrfit.simulate import simulate_captures


def _traps() -> pd.DataFrame:
    return pd.DataFrame({"trap": ["A", "B", "C"], "x": [0.0, 10.0, 20.0], "y": [0.0, 0.0, 5.0]})


def test_traps_from_frame() -> None:
    labels, coords = traps_from_frame(_traps())
    assert labels == ["A", "B", "C"]
    assert coords.shape == (3, 2)
    assert coords[2].tolist() == [20.0, 5.0]


def test_traps_require_unique_labels_and_columns() -> None:
    frame = _traps()
    frame.loc[2, "trap"] = "A"
    with pytest.raises(SecrConfigError, match="unique"):
        traps_from_frame(frame)
    with pytest.raises(KeyError, match="'x'"):
        traps_from_frame(_traps().drop(columns="x"))


def test_captures_from_long_table() -> None:
    detections = pd.DataFrame(
        {
            "id": [7, 7, 3, 9],
            "trap": ["A", "B", "C", "A"],
            "ss": [71.5, 64.0, 58.0, 80.0],
        }
    )
    capt = captures_from_frame(detections, ["A", "B", "C"])
    assert set(capt) == {"bincapt", "ss"}
    assert capt["bincapt"].tolist() == [[1, 1, 0], [0, 0, 1], [1, 0, 0]]
    assert capt["ss"][0].tolist() == [71.5, 64.0, 0.0]
    assert capt["ss"].shape == capt["bincapt"].shape


def test_captures_reject_unknown_traps_and_duplicates() -> None:
    detections = pd.DataFrame({"id": [1, 1], "trap": ["A", "Z"]})
    with pytest.raises(SecrConfigError, match="Z"):
        captures_from_frame(detections, ["A", "B"])
    duplicated = pd.DataFrame({"id": [1, 1], "trap": ["A", "A"]})
    with pytest.raises(SecrConfigError, match="at most once"):
        captures_from_frame(duplicated, ["A", "B"])


def test_mask_from_frame() -> None:
    mask = mask_from_frame(pd.DataFrame({"x": [0.0, 1.0], "y": [2.0, 3.0]}), area=0.5, buffer=40)
    assert mask.n_points == 2
    assert mask.area == 0.5
    assert mask.buffer == 40.0
    with pytest.raises(SecrConfigError):
        mask_from_frame(pd.DataFrame({"x": [0.0], "y": [1.0]}), area=0.0, buffer=40)


def test_simulation_rejects_signal_strength() -> None:
    traps = np.array([[0.0, 0.0], [10.0, 0.0]])
    mask = make_mask(traps, buffer=20.0, spacing=5.0)
    with pytest.raises(SecrConfigError):
        simulate_captures(traps, mask, "ss", {}, density=1.0)
