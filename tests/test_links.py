import numpy as np
import pytest

from secrfit.links import LINKS, get_link, list_links


def test_link_ids_follow_deck_convention() -> None:
    assert {name: link.id for name, link in LINKS.items()} == {
        "identity": 1,
        "log": 2,
        "logit": 3,
    }
    assert list_links() == ["identity", "log", "logit"]


@pytest.mark.parametrize(
    ("name", "values"),
    [
        ("identity", [-5.0, 0.0, 3.5]),
        ("log", [1e-6, 0.5, 250.0]),
        ("logit", [1e-4, 0.3, 0.999]),
    ],
)
def test_inverse_undoes_link(name: str, values: list[float]) -> None:
    link = get_link(name)
    for value in values:
        assert link.unlink(link(value)) == pytest.approx(value, rel=1e-10)


def test_derivative_matches_finite_difference() -> None:
    step = 1e-6
    for name in ("identity", "log", "logit"):
        link = get_link(name)
        x = 0.4
        numeric = (link.unlink(x + step) - link.unlink(x - step)) / (2 * step)
        assert float(link.derivative(np.asarray(x))) == pytest.approx(numeric, rel=1e-6)


def test_bounds_transform_to_link_scale() -> None:
    lower, upper = get_link("logit").transform_bounds((0.0, 1.0))
    assert lower == -np.inf
    assert upper == np.inf
    assert get_link("log").transform_bounds((0.0, 1e8)) == (-np.inf, pytest.approx(np.log(1e8)))


def test_unknown_link() -> None:
    with pytest.raises(KeyError, match="Unknown link function"):
        get_link("probit")
