import numpy as np
import pytest

from secrfit.compress import compress_histories, expand_histories, run_starts, sort_order
from secrfit.core import CaptureHistories
from secrfit.errors import SecrConfigError


def _captures(**channels: np.ndarray) -> CaptureHistories:
    n_traps = np.asarray(channels["bincapt"]).shape[1]
    return CaptureHistories.from_mapping(channels, n_traps)


def test_identical_rows_collapse_with_frequencies() -> None:
    bincapt = np.array(
        [
            [1, 1, 0, 0],
            [0, 1, 1, 0],
            [1, 1, 0, 0],
        ]
    )
    histories = compress_histories(_captures(bincapt=bincapt))
    assert histories.n_unique == 2
    assert histories.n == 3
    assert sorted(histories.freqs.tolist()) == [1, 2]
    shared = np.flatnonzero((histories.bincapt == [1, 1, 0, 0]).all(axis=1))[0]
    assert histories.freqs[shared] == 2
    assert histories.row_map[0] == histories.row_map[2] == shared
    assert histories.row_map[1] != shared


def test_sort_is_lexicographic_on_first_column() -> None:
    bincapt = np.array([[1, 0], [0, 1], [0, 0], [1, 1]])
    order = sort_order(bincapt)
    assert bincapt[order].tolist() == [[0, 0], [0, 1], [1, 0], [1, 1]]
    assert run_starts(bincapt[order]).tolist() == [0, 1, 2, 3]


def test_single_group_covers_all_rows() -> None:
    bincapt = np.ones((5, 3))
    histories = compress_histories(_captures(bincapt=bincapt))
    assert histories.freqs.tolist() == [5]
    assert histories.row_map.tolist() == [0] * 5


def test_expansion_reproduces_binary_matrix_up_to_permutation() -> None:
    rng = np.random.default_rng(7)
    bincapt = (rng.random((40, 5)) < 0.4).astype(float)
    bincapt[:, 0] = 1.0
    histories = compress_histories(_captures(bincapt=bincapt))
    assert histories.freqs.sum() == bincapt.shape[0]
    expanded = expand_histories(histories)
    assert np.array_equal(expanded, bincapt[histories.order])
    assert np.array_equal(histories.bincapt[histories.row_map], bincapt)


def test_auxiliary_channels_keep_first_row_of_each_run() -> None:
    bincapt = np.array([[1, 0], [1, 0], [0, 1]])
    ss = np.array([[70.0, 0.0], [65.0, 0.0], [0.0, 80.0]])
    histories = compress_histories(_captures(bincapt=bincapt, ss=ss))
    assert histories.channels["ss"].shape == (2, 2)
    assert histories.channels["ss"].tolist() == [[0.0, 80.0], [70.0, 0.0]]


def test_channel_validation() -> None:
    with pytest.raises(SecrConfigError, match="bincapt"):
        CaptureHistories.from_mapping({"ss": np.ones((2, 2))}, 2)
    with pytest.raises(SecrConfigError, match="trap location"):
        CaptureHistories.from_mapping({"bincapt": np.ones((2, 3))}, 2)
    with pytest.raises(SecrConfigError, match="different dimensions"):
        CaptureHistories.from_mapping({"bincapt": np.ones((2, 2)), "toa": np.ones((3, 2))}, 2)
    with pytest.raises(SecrConfigError, match="not a matrix"):
        CaptureHistories.from_mapping({"bincapt": np.ones((2, 2)), "bearing": np.ones(2)}, 2)
    with pytest.raises(SecrConfigError, match="Unknown capture channel"):
        CaptureHistories.from_mapping({"bincapt": np.ones((2, 2)), "acoustic": np.ones((2, 2))}, 2)
    with pytest.raises(SecrConfigError, match="0/1"):
        CaptureHistories.from_mapping({"bincapt": np.full((2, 2), 2.0)}, 2)
