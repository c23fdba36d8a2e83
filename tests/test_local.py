import numpy as np

from secrfit.geometry import distances
from secrfit.local import find_local, full_domain, local_membership

TRAPS = np.array([[0.0, 0.0], [10.0, 0.0], [20.0, 0.0]])
POINTS = np.array([[0.0, 0.0], [5.0, 0.0], [10.0, 0.0], [20.0, 0.0], [40.0, 0.0]])


def test_local_points_are_and_over_firing_traps() -> None:
    dists = distances(TRAPS, POINTS)
    bincapt = np.array([[1, 1, 0], [0, 0, 1], [0, 0, 0]])
    local = find_local(bincapt, dists, buffer=10.0)
    assert local[0].tolist() == [0, 1, 2]
    assert local[1].tolist() == [2, 3]
    assert local[2].tolist() == [0, 1, 2, 3, 4]


def test_infinite_buffer_gives_full_domain() -> None:
    dists = distances(TRAPS, POINTS)
    bincapt = np.array([[1, 0, 1], [0, 1, 0]])
    local = find_local(bincapt, dists, buffer=np.inf)
    full = full_domain(2, POINTS.shape[0])
    for got, expected in zip(local, full, strict=True):
        assert np.array_equal(got, expected)


def test_finite_buffer_is_subset_of_full_domain() -> None:
    rng = np.random.default_rng(3)
    points = rng.uniform(-50, 70, size=(200, 2))
    dists = distances(TRAPS, points)
    bincapt = (rng.random((15, 3)) < 0.5).astype(int)
    everything = set(range(points.shape[0]))
    for buffer in (5.0, 25.0, 60.0):
        for points_idx in find_local(bincapt, dists, buffer=buffer):
            assert set(points_idx.tolist()) <= everything


def test_membership_matrix() -> None:
    member = local_membership([np.array([0, 2]), np.array([1])], 3)
    assert member.tolist() == [[True, False, True], [False, True, False]]
