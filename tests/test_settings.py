from pathlib import Path

import pytest

from secrfit.errors import SecrConfigError
from secrfit.settings import SolverSettings, load_settings, make_solver
from secrfit.solvers import AdmbSolver, NativeSolver


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("SECRFIT_CONFIG", "SECRFIT_BACKEND", "SECRFIT_ADMB_EXE", "SECRFIT_WORKDIR"):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = load_settings()
    assert settings == SolverSettings()
    assert isinstance(make_solver(settings), NativeSolver)


def test_yaml_settings(tmp_path: Path) -> None:
    path = tmp_path / "secrfit.yaml"
    path.write_text(
        """
solver:
  backend: admb
  admb_executable: /opt/admb/secr
  timeout: 30
  clean: false
""",
        encoding="utf-8",
    )
    settings = load_settings(path)
    assert settings.backend == "admb"
    assert settings.admb_executable == Path("/opt/admb/secr")
    assert settings.timeout == 30
    solver = make_solver(settings)
    assert isinstance(solver, AdmbSolver)
    assert solver.clean is False


def test_environment_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "secrfit.yaml"
    path.write_text("solver:\n  backend: native\n", encoding="utf-8")
    monkeypatch.setenv("SECRFIT_CONFIG", str(path))
    monkeypatch.setenv("SECRFIT_BACKEND", "admb")
    monkeypatch.setenv("SECRFIT_WORKDIR", str(tmp_path / "work"))
    settings = load_settings()
    assert settings.backend == "admb"
    assert settings.workdir == tmp_path / "work"


def test_invalid_settings(tmp_path: Path) -> None:
    with pytest.raises(SecrConfigError, match="does not exist"):
        load_settings(tmp_path / "missing.yaml")
    path = tmp_path / "bad.yaml"
    path.write_text("solver:\n  threads: 4\n", encoding="utf-8")
    with pytest.raises(SecrConfigError, match="threads"):
        load_settings(path)
    path.write_text("solver:\n  backend: tmb\n", encoding="utf-8")
    with pytest.raises(SecrConfigError, match="backend"):
        load_settings(path)
