import os

import pytest

from schoolbus.core.env import get_project_root, load_dotenv_if_present, resolve_project_path


@pytest.fixture(autouse=True)
def _fresh_env_caches(monkeypatch):
    monkeypatch.delenv("SCHOOLBUS_PROJECT_ROOT", raising=False)
    monkeypatch.delenv("SCHOOLBUS_ENV_FILE", raising=False)
    get_project_root.cache_clear()
    load_dotenv_if_present.cache_clear()
    yield
    get_project_root.cache_clear()
    load_dotenv_if_present.cache_clear()


def test_project_root_is_nearest_ancestor_with_marker(monkeypatch, tmp_path):
    (tmp_path / "pyproject.toml").write_text("[project]\nname = 'x'\n", encoding="utf-8")
    nested = tmp_path / "data" / "routes"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert get_project_root() == tmp_path.resolve()
    assert resolve_project_path("fixtures/stops.json") == (tmp_path / "fixtures" / "stops.json").resolve()


def test_project_root_override(monkeypatch, tmp_path):
    monkeypatch.setenv("SCHOOLBUS_PROJECT_ROOT", str(tmp_path))
    assert get_project_root() == tmp_path.resolve()


def test_absolute_paths_pass_through(tmp_path):
    target = tmp_path / "positions.json"
    assert resolve_project_path(target) == target


def test_env_file_loads_without_overriding_process_env(monkeypatch, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("MAPBOX_ACCESS_TOKEN=pk.from-file\nOSRM_BASE_URL=http://from-file\n", encoding="utf-8")
    monkeypatch.setenv("SCHOOLBUS_ENV_FILE", str(env_file))
    monkeypatch.setenv("OSRM_BASE_URL", "http://from-process")
    monkeypatch.delenv("MAPBOX_ACCESS_TOKEN", raising=False)

    assert load_dotenv_if_present() == env_file.resolve()
    assert os.environ["MAPBOX_ACCESS_TOKEN"] == "pk.from-file"
    assert os.environ["OSRM_BASE_URL"] == "http://from-process"
    assert get_project_root() == tmp_path.resolve()

    # load_dotenv writes straight into os.environ; drop it so later tests see defaults.
    monkeypatch.delenv("MAPBOX_ACCESS_TOKEN", raising=False)


def test_missing_env_file_is_ignored(monkeypatch, tmp_path):
    monkeypatch.setenv("SCHOOLBUS_ENV_FILE", str(tmp_path / "absent.env"))
    assert load_dotenv_if_present() is None
