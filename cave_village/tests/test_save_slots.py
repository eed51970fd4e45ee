from __future__ import annotations

from pathlib import Path

import pytest

from cave_village.app.services.saves import SaveService


def test_save_slot_create_and_load_roundtrip(tmp_path: Path) -> None:
    service = SaveService(tmp_path / "saves", slot_count=3)
    created = service.create_new_game(slot=1, base_seed=2026)
    created.game_state.resources["wood"] = 42
    created.game_state.villagers.update({"free": 1, "hunter": 2})
    created.game_state.buildings["woodenHut"] = 2
    created.game_state.play_time = 90000
    service.save_slot(1, created)

    loaded = service.load_slot(1)
    assert loaded.game_state.resources["wood"] == 42
    assert loaded.game_state.play_time == 90000

    summaries = service.list_slots()
    assert [summary.slot for summary in summaries] == [1, 2, 3]
    slot1 = summaries[0]
    assert slot1.occupied is True
    assert slot1.slot_name == "Slot 1"
    assert slot1.population == 3
    assert slot1.buildings == 2
    assert slot1.seed_preview == "2026"
    assert slot1.last_played is not None
    assert summaries[1].occupied is False
    assert service.last_slot() == 1


def test_dev_mode_new_game(tmp_path: Path) -> None:
    service = SaveService(tmp_path, slot_count=2)
    created = service.create_new_game(slot=2, base_seed=5, dev_mode=True)
    assert created.game_state.dev_mode is True
    assert service.load_slot(2).game_state.dev_mode is True


def test_empty_and_out_of_range_slots(tmp_path: Path) -> None:
    service = SaveService(tmp_path, slot_count=2)

    with pytest.raises(FileNotFoundError):
        service.load_slot(1)
    with pytest.raises(ValueError):
        service.slot_exists(3)


def test_slot_count_is_clamped(tmp_path: Path) -> None:
    assert SaveService(tmp_path / "a", slot_count=9).slot_ids == (1, 2, 3, 4, 5)
    assert SaveService(tmp_path / "b", slot_count=0).slot_ids == (1,)


def test_rename_and_delete(tmp_path: Path) -> None:
    service = SaveService(tmp_path, slot_count=3)
    service.create_new_game(slot=2)
    service.rename_slot(2, "  Winter camp  ")

    assert service.list_slots()[1].slot_name == "Winter camp"
    with pytest.raises(ValueError):
        service.rename_slot(2, "   ")

    service.delete_slot(2)
    assert not service.slot_exists(2)
    assert service.list_slots()[1].slot_name == "Slot 2"
    assert service.last_slot() is None
