import numpy as np
import pytest

from secrfit.core import ParameterSpec, UncertaintyStatus
from secrfit.detfns import get_detfn
from secrfit.errors import ConvergenceWarning
from secrfit.reconstruct import reconstruct
from secrfit.solvers import SolverOutput

DISTS = np.array([[0.0, 5.0, 10.0, 20.0], [10.0, 5.0, 0.0, 10.0]])
SPECS = [
    ParameterSpec("D", "log", 0.1, 1e8, 0, 1.0, 5.0, role="density"),
    ParameterSpec("g0", "logit", 0.0, 1.0, -1, 1.0, 0.9),
    ParameterSpec("sigma", "log", 0.0, 1e8, 0, 1.0, 10.0),
]


def _output(maxgrad: float = 0.0, covariance=None) -> SolverOutput:
    estimates = np.array([np.log(5.0), np.log(0.9 / 0.1), np.log(10.0)])
    if covariance is None:
        covariance = np.diag([0.01, 0.04])
    return SolverOutput(estimates=estimates, maxgrad=maxgrad, covariance=covariance)


def _run(output: SolverOutput, call_freqs=None):
    return reconstruct(
        output,
        SPECS,
        detfn=get_detfn("hn"),
        dists=DISTS,
        area=1.0,
        call_freqs=call_freqs,
    )


def test_fixed_parameters_reported_separately() -> None:
    coefficients, se, vcov, cor, status, fixed = _run(_output())
    assert list(coefficients.index) == ["D_link", "sigma_link", "D", "sigma", "esa"]
    assert fixed == {"g0": pytest.approx(0.9)}
    assert coefficients["D"] == pytest.approx(5.0)
    assert coefficients["sigma"] == pytest.approx(10.0)
    assert status is UncertaintyStatus.AVAILABLE


def test_delta_method_standard_errors() -> None:
    coefficients, se, vcov, cor, status, _ = _run(_output())
    assert se["D_link"] == pytest.approx(0.1)
    assert se["D"] == pytest.approx(5.0 * 0.1)
    assert se["sigma"] == pytest.approx(10.0 * 0.2)
    assert np.isfinite(se["esa"]) and se["esa"] > 0
    assert list(vcov.columns) == list(coefficients.index)
    assert np.allclose(np.diag(cor.to_numpy()), 1.0)
    assert cor.loc["D", "sigma"] == pytest.approx(0.0, abs=1e-12)


def test_effective_area_matches_fitted_detection_function() -> None:
    coefficients, *_ = _run(_output())
    g = 0.9 * np.exp(-(DISTS**2) / (2 * 10.0**2))
    expected = float(np.sum(1.0 - np.prod(1.0 - g, axis=0)))
    assert coefficients["esa"] == pytest.approx(expected)


def test_call_frequencies_invalidate_uncertainty() -> None:
    coefficients, se, vcov, cor, status, _ = _run(_output(), call_freqs=np.array([1.0, 2.0, 3.0]))
    assert coefficients["Da"] == pytest.approx(5.0 / 2.0)
    assert coefficients["mu_freqs"] == pytest.approx(2.0)
    assert status is UncertaintyStatus.INVALID_CALL_FREQUENCIES
    assert se.isna().all()
    assert vcov.isna().all().all()
    assert cor.isna().all().all()
    assert "Da" in se.index


def test_unit_call_frequencies_are_ignored() -> None:
    coefficients, se, _, _, status, _ = _run(_output(), call_freqs=np.ones(4))
    assert "Da" not in coefficients.index
    assert status is UncertaintyStatus.AVAILABLE
    assert se.notna().all()


def test_missing_covariance_is_flagged() -> None:
    output = _output()
    output.covariance = None
    coefficients, se, _, _, status, _ = _run(output)
    assert status is UncertaintyStatus.NOT_COMPUTED
    assert se.isna().all()
    assert coefficients.notna().all()


def test_large_gradient_emits_both_warnings() -> None:
    with pytest.warns(ConvergenceWarning) as record:
        coefficients, *_ = _run(_output(maxgrad=-0.5))
    messages = [str(item.message) for item in record]
    assert "Failed convergence -- maximum gradient component is large." in messages
    assert "Maximum gradient component is large." in messages
    assert coefficients["D"] == pytest.approx(5.0)


def test_moderate_gradient_emits_only_second_warning() -> None:
    with pytest.warns(ConvergenceWarning) as record:
        _run(_output(maxgrad=0.05))
    messages = [str(item.message) for item in record]
    assert messages == ["Maximum gradient component is large."]
