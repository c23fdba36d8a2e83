from typing import Any

import numpy as np
import pytest

from secrfit import fit_secr, get_mask, get_par
from secrfit.core import MaskGrid, UncertaintyStatus
from secrfit.errors import ParameterDropWarning, SecrConfigError, SolverError
from secrfit.geometry import make_mask
from secrfit.simulate import simulate_captures
from secrfit.solvers import InputDeck, NativeSolver, SolverOutput

TRAPS = np.array([[0.0, 0.0], [10.0, 0.0], [20.0, 0.0], [30.0, 0.0]])
BINCAPT = np.array(
    [
        [1, 1, 0, 0],
        [0, 1, 1, 0],
        [0, 0, 1, 1],
    ]
)
MASK = make_mask(TRAPS, buffer=50.0, spacing=5.0)


class _StartValueSolver:
    """Return the start values unchanged, recording the deck it received."""

    def __init__(self) -> None:
        self.decks: list[InputDeck] = []
        self.hess: list[bool] = []

    def run(self, deck: InputDeck, *, hess: bool) -> SolverOutput:
        self.decks.append(deck)
        self.hess.append(hess)
        estimates = np.array([spec.start_link for spec in deck.parameters])
        k = len(deck.free)
        return SolverOutput(
            estimates=estimates,
            maxgrad=1e-6,
            covariance=np.eye(k) * 0.01 if hess else None,
        )


def test_half_normal_with_fixed_g0() -> None:
    solver = _StartValueSolver()
    with pytest.warns(ParameterDropWarning, match="shape"):
        result = fit_secr(
            {"bincapt": BINCAPT},
            TRAPS,
            MASK,
            "hn",
            fix={"g0": 1.0, "shape": 2.0},
            solver=solver,
        )
    deck = solver.decks[0]
    assert [spec.name for spec in deck.free] == ["D", "sigma"]
    assert deck.cutoff is None
    assert solver.hess == [True]
    assert result.detpars == ["g0", "sigma"]
    assert result.fixed == {"g0": pytest.approx(1.0)}
    assert get_par(result, "g0") == pytest.approx(1.0)
    assert get_par(result, "sigma") == pytest.approx(10.0)
    assert list(result.coefficients.index) == ["D_link", "sigma_link", "D", "sigma", "esa"]
    assert result.uncertainty is UncertaintyStatus.AVAILABLE
    assert get_mask(result) is MASK
    with pytest.raises(KeyError):
        get_par(result, "z")


def test_result_frame_and_config() -> None:
    result = fit_secr({"bincapt": BINCAPT}, TRAPS, MASK, solver=_StartValueSolver())
    frame = result.to_frame()
    assert list(frame.columns) == ["coefficient", "estimate", "se"]
    assert result.config.detfn is None
    assert result.detfn == "hn"
    assert result.histories.n == 3


def test_call_frequencies_disable_hessian_by_default() -> None:
    solver = _StartValueSolver()
    result = fit_secr(
        {"bincapt": BINCAPT}, TRAPS, MASK, call_freqs=[1.0, 2.0, 3.0], solver=solver
    )
    assert solver.hess == [False]
    assert result.fit_freqs
    assert result.uncertainty is UncertaintyStatus.INVALID_CALL_FREQUENCIES
    assert result.coefficients["Da"] == pytest.approx(result.coefficients["D"] / 2.0)
    assert result.se.isna().all()


def test_explicit_hessian_request_wins() -> None:
    solver = _StartValueSolver()
    fit_secr({"bincapt": BINCAPT}, TRAPS, MASK, call_freqs=[2.0], hess=True, solver=solver)
    assert solver.hess == [True]


def test_validation_happens_before_solving() -> None:
    solver = _StartValueSolver()
    with pytest.raises(SecrConfigError, match="Call frequencies"):
        fit_secr({"bincapt": BINCAPT}, TRAPS, MASK, call_freqs=[0.0], solver=solver)
    with pytest.raises(SecrConfigError, match="MaskGrid"):
        fit_secr({"bincapt": BINCAPT}, TRAPS, MASK.points, solver=solver)
    with pytest.raises(SecrConfigError, match="cutoff"):
        fit_secr({"bincapt": BINCAPT, "ss": BINCAPT * 70.0}, TRAPS, MASK, solver=solver)
    with pytest.raises(SecrConfigError, match="trap location"):
        fit_secr({"bincapt": BINCAPT}, TRAPS[:3], MASK, solver=solver)
    assert solver.decks == []


def test_auxiliary_channels_reach_the_deck() -> None:
    solver = _StartValueSolver()
    capt = {"bincapt": BINCAPT, "bearing": BINCAPT * 1.2, "toa": BINCAPT * 0.05}
    result = fit_secr(capt, TRAPS, MASK, solver=solver)
    deck = solver.decks[0]
    assert deck.bearings is not None and deck.bearings.shape == (4, MASK.n_points)
    assert deck.toa_ssq is not None and deck.toa_ssq.shape == (3, MASK.n_points)
    assert result.suppars == ["kappa", "sigma_toa"]
    assert deck.start_vector().size == len(deck.parameters)


def test_local_integration_restricts_each_history() -> None:
    solver = _StartValueSolver()
    fit_secr({"bincapt": BINCAPT}, TRAPS, MASK, local=True, solver=solver)
    deck = solver.decks[0]
    assert deck.histories.local_points is not None
    assert all(points.size < MASK.n_points for points in deck.local_points)


def _simulated(seed: int = 11) -> tuple[np.ndarray, MaskGrid, dict[str, np.ndarray]]:
    xs, ys = np.meshgrid(np.arange(5) * 20.0, np.arange(5) * 20.0)
    traps = np.column_stack([xs.ravel(), ys.ravel()])
    mask = make_mask(traps, buffer=80.0, spacing=8.0)
    capt = simulate_captures(
        traps,
        mask,
        "hn",
        {"g0": 0.6, "sigma": 15.0},
        density=10.0,
        random_state=np.random.default_rng(seed),
    )
    return traps, mask, capt


def test_simulated_captures_are_detected_only() -> None:
    traps, mask, capt = _simulated()
    assert set(capt) == {"bincapt"}
    assert capt["bincapt"].shape[1] == traps.shape[0]
    assert np.all(capt["bincapt"].sum(axis=1) >= 1)


def test_native_solver_recovers_simulation() -> None:
    traps, mask, capt = _simulated()
    result = fit_secr(capt, traps, mask, "hn", solver=NativeSolver())
    assert 3.0 < get_par(result, "D") < 30.0
    assert 7.0 < get_par(result, "sigma") < 30.0
    assert 0.2 < get_par(result, "g0") < 1.0
    assert result.log_likelihood is not None and np.isfinite(result.log_likelihood)
    if result.uncertainty is UncertaintyStatus.AVAILABLE:
        assert result.se["D"] > 0


def test_native_solver_rejects_auxiliary_channels() -> None:
    capt: dict[str, Any] = {"bincapt": BINCAPT, "bearing": BINCAPT * 0.5}
    with pytest.raises(SolverError, match="binary capture histories only"):
        fit_secr(capt, TRAPS, MASK, solver=NativeSolver())
