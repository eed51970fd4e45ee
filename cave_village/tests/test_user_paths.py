from __future__ import annotations

from pathlib import Path

from cave_village.app.services import paths


def test_override_root_is_first_candidate(monkeypatch, tmp_path: Path) -> None:
    override = tmp_path / "override"
    monkeypatch.setenv(paths.HOME_ENV_VAR, str(override))
    monkeypatch.setattr(paths, "_is_windows", lambda: False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg"))

    roots = paths._candidate_roots(paths.APP_DIR_NAME)
    assert roots[0] == override
    assert roots[1] == tmp_path / "xdg" / paths.APP_DIR_NAME
    assert roots[-1] == Path.home() / paths.APP_DIR_NAME


def test_windows_uses_local_app_data(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv(paths.HOME_ENV_VAR, raising=False)
    monkeypatch.setattr(paths, "_is_windows", lambda: True)
    monkeypatch.setenv("LOCALAPPDATA", str(tmp_path / "LocalAppData"))

    roots = paths._candidate_roots(paths.APP_DIR_NAME)
    assert roots[0] == tmp_path / "LocalAppData" / paths.APP_DIR_NAME


def test_resolve_user_paths_creates_runtime_directories(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv(paths.HOME_ENV_VAR, str(tmp_path / "CaveVillage"))

    resolved = paths.resolve_user_paths()
    assert resolved.root == tmp_path / "CaveVillage"
    assert resolved.saves.exists()
    assert resolved.logs.exists()
    assert resolved.config.exists()
    assert resolved.settings_file == resolved.config / "settings.json"
