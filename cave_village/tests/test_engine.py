from __future__ import annotations

from pathlib import Path

import pytest

from cave_village.core.engine import GameEngine, autoplay_step
from cave_village.core.loader import load_content
from cave_village.core.persistence import create_initial_state

CONTENT_DIR = Path(__file__).resolve().parents[1] / "content"


@pytest.fixture(scope="module")
def content():
    return load_content(CONTENT_DIR)


def test_state_is_a_detached_copy(content):
    engine = GameEngine(content=content, seed=11)

    copy = engine.state
    copy.resources["wood"] = 999

    assert engine.state.resources["wood"] == 0


def test_observers_see_each_committed_change(content):
    engine = GameEngine(content=content, seed=11)
    seen: list[bool] = []
    unsubscribe = engine.subscribe(lambda state: seen.append(state.flags.get("fireLit", False)))

    assert engine.execute_action("lightFire") is not None
    assert seen == [True]

    unsubscribe()
    engine.toggle_pause()
    assert seen == [True]


def test_blocked_action_notifies_nobody(content):
    engine = GameEngine(content=content, seed=11)
    calls: list[object] = []
    engine.subscribe(calls.append)

    assert engine.execute_action("buildTorch") is None
    assert calls == []


def test_sound_sinks_receive_action_sounds(content):
    engine = GameEngine(content=content, seed=11)
    sounds: list[str] = []
    engine.add_sound_sink(sounds.append)

    engine.execute_action("lightFire")
    engine.execute_action("chopWood")

    assert sounds == ["fire", "chop"]


def test_failing_sinks_do_not_break_the_engine(content):
    engine = GameEngine(content=content, seed=11)

    def broken(_):
        raise RuntimeError("speaker unplugged")

    engine.add_sound_sink(broken)
    engine.subscribe(broken)

    assert engine.execute_action("lightFire") is not None
    assert engine.state.flags["fireLit"] is True


def test_log_sinks_receive_new_entries_once(content):
    state = create_initial_state(11)
    state.button_clicks["chopWood"] = 5
    engine = GameEngine(content=content, state=state)
    entries = []
    engine.add_log_sink(entries.append)

    engine.advance(1000)
    engine.advance(1000)

    assert [entry.event_id for entry in entries] == ["buttonMastery"]


def test_snapshot_carries_the_rng_cursor(content):
    engine = GameEngine(content=content, seed=11)
    engine.execute_action("lightFire")
    engine.execute_action("chopWood")

    snapshot = engine.snapshot()

    assert snapshot.game_state.rng_calls == engine.rng.calls
    assert snapshot.game_state.rng_state == engine.rng.state
    assert snapshot.play_time == snapshot.game_state.play_time


def test_load_restores_a_snapshot(content):
    engine = GameEngine(content=content, seed=11)
    engine.execute_action("lightFire")
    engine.execute_action("chopWood")
    snapshot = engine.snapshot()
    wood = engine.state.resources["wood"]

    engine.restart()
    assert engine.state.resources["wood"] == 0
    assert engine.state.seed == 11

    engine.load(snapshot)
    assert engine.state.resources["wood"] == wood
    assert engine.state.flags["fireLit"] is True


def test_loaded_games_continue_identically(content):
    engine = GameEngine(content=content, seed=11)
    engine.execute_action("lightFire")
    snapshot = engine.snapshot()

    engine.execute_action("chopWood")
    first = engine.state.resources["wood"]

    engine.load(snapshot)
    engine.execute_action("chopWood")
    assert engine.state.resources["wood"] == first


def test_assign_requires_a_free_villager(content):
    state = create_initial_state(11)
    state.villagers["free"] = 1
    engine = GameEngine(content=content, state=state)

    assert engine.assign("hunter")
    assert not engine.assign("hunter")
    assert engine.unassign("hunter")
    assert engine.state.villagers["free"] == 1


def test_autoplay_answers_open_choices(content):
    state = create_initial_state(11)
    engine = GameEngine(content=content, state=state)
    engine.events.trigger("wanderingTrader", engine._state)

    autoplay_step(engine, "idle")

    assert engine.state.pending_event is None

