from __future__ import annotations

import json
from pathlib import Path

from cave_village.app.services.settings_store import SettingsStore


def test_settings_store_read_write(tmp_path: Path) -> None:
    path = tmp_path / "config" / "settings.json"
    store = SettingsStore(path)
    loaded = store.load()
    assert path.exists()
    assert loaded["gameplay"]["base_seed"] == 1337
    assert loaded["engine"]["tick_interval_ms"] == 250

    loaded["gameplay"]["dev_mode"] = True
    loaded["audio"]["master"] = 0.5
    store.save(loaded)

    reloaded = store.load()
    assert reloaded["gameplay"]["dev_mode"] is True
    assert reloaded["audio"]["master"] == 0.5


def test_unknown_keys_are_dropped_and_missing_ones_filled(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"gameplay": {"save_slots": 5, "theme": "dark"}, "video": {"fullscreen": True}}), encoding="utf-8")

    loaded = SettingsStore(path).load()

    assert loaded["gameplay"]["save_slots"] == 5
    assert "theme" not in loaded["gameplay"]
    assert "video" not in loaded
    assert loaded["engine"]["production_interval_ms"] == 15000


def test_invalid_values_fall_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"engine": {"frame_rate": 0}}), encoding="utf-8")

    store = SettingsStore(path)

    assert store.load()["engine"]["frame_rate"] == 30
    assert store.engine_settings().frame_interval_ms == 1000 / 30


def test_corrupt_file_is_replaced(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")

    model = SettingsStore(path).load_model()

    assert model.gameplay.autosave_interval_s == 30
    assert json.loads(path.read_text(encoding="utf-8"))["audio"]["sfx"] == 0.9
