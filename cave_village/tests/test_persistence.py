from __future__ import annotations

import json

from cave_village.core.ledger import LIMITS_FLAG
from cave_village.core.models import SAVE_VERSION
from cave_village.core.persistence import (
    backfill,
    build_save_data,
    create_initial_state,
    hydrate_save_data,
    load_save_data,
    migrate_save,
    restore_state,
    save_save_data,
)


def test_backfill_merges_nested_dicts():
    defaults = {"resources": {"wood": 0, "stone": 0}, "flags": {}, "play_time": 0}
    loaded = {"resources": {"wood": 40}, "flags": {"fireLit": True}, "extra": 1}

    merged = backfill(defaults, loaded)

    assert merged == {
        "resources": {"wood": 40, "stone": 0},
        "flags": {"fireLit": True},
        "play_time": 0,
        "extra": 1,
    }


def test_restore_state_fills_missing_fields():
    state = restore_state({"resources": {"wood": 12}, "buildings": {"woodenHut": 2}})

    assert state.resources["wood"] == 12
    assert state.resources["stone"] == 0
    assert state.buildings == {"woodenHut": 2}
    assert state.villagers == {"free": 0}
    assert state.pending_event is None


def test_restore_state_accepts_garbage():
    state = restore_state("not a save")
    assert state.play_time == 0


def test_versionless_save_is_the_bare_game_state():
    migrated = migrate_save({"resources": {"wood": 7}})

    assert migrated["save_version"] == SAVE_VERSION
    assert migrated["gameState"]["resources"] == {"wood": 7}
    # saves from before storage limits stay unlimited
    assert migrated["gameState"]["flags"][LIMITS_FLAG] is False


def test_v1_deadline_becomes_a_time_limit():
    payload = {
        "save_version": 1,
        "gameState": {
            "play_time": 5000,
            "pending_event": {"event_id": "wolfPack", "started_at": 4000, "deadline": 34000},
        },
        "playTime": 5000,
    }

    save = hydrate_save_data(payload)

    assert save.save_version == SAVE_VERSION
    assert save.game_state.pending_event is not None
    assert save.game_state.pending_event.time_limit_ms == 30000
    assert save.game_state.pending_event.elapsed_ms == 0
    assert save.play_time == 5000


def test_future_versions_are_clamped():
    migrated = migrate_save({"save_version": 99, "gameState": {}})
    assert migrated["save_version"] == SAVE_VERSION


def test_new_games_have_storage_limits():
    state = create_initial_state(5)
    assert state.flags[LIMITS_FLAG] is True
    assert state.seed == 5


def test_missing_file_gives_a_fresh_game(tmp_path):
    save = load_save_data(tmp_path / "missing.json", base_seed=21)
    assert save.game_state.seed == 21
    assert save.game_state.flags[LIMITS_FLAG] is True


def test_save_and_load_round_trip(tmp_path):
    state = create_initial_state(9)
    state.resources["wood"] = 120
    state.flags["fireLit"] = True
    state.play_time = 45000
    state.append_log("A stranger joins your community, bringing skills and hope.")
    path = tmp_path / "save.json"

    save_save_data(build_save_data(state, timestamp=1234), path)

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["save_version"] == SAVE_VERSION
    assert raw["playTime"] == 45000
    assert raw["timestamp"] == 1234

    loaded = load_save_data(path)
    assert loaded.game_state.resources["wood"] == 120
    assert loaded.game_state.flags["fireLit"] is True
    assert loaded.game_state.log[0].message.startswith("A stranger")
    assert loaded.game_state.rng_state == state.rng_state
