from __future__ import annotations

from pathlib import Path

import pytest

from cave_village.core.loader import load_content
from cave_village.core.models import total_population
from cave_village.core.persistence import create_initial_state
from cave_village.core.population import (
    STARVATION_FLAG,
    SurvivalReport,
    apply_survival_upkeep,
    assign_villager,
    check_mortality,
    check_stranger,
    kill_villagers,
    max_population,
    produce,
    run_production_phase,
    unassign_villager,
)
from cave_village.core.rng import DeterministicRNG

CONTENT_DIR = Path(__file__).resolve().parents[1] / "content"


@pytest.fixture(scope="module")
def content():
    return load_content(CONTENT_DIR)


def _totals(lines):
    return {line.resource: line.total_amount for line in lines}


def test_basic_job_output(content):
    state = create_initial_state(1)
    assert _totals(produce("gatherer", 2, state, content)) == {"wood": 20, "stone": 10}
    assert _totals(produce("iron_miner", 1, state, content)) == {"iron": 5, "food": -5}
    assert produce("gatherer", 0, state, content) == []
    assert produce("wizard", 3, state, content) == []


def test_building_production_bonus_scales_with_level(content):
    state = create_initial_state(1)
    state.buildings["timberMill"] = 2

    assert _totals(produce("gatherer", 1, state, content))["wood"] == 20


def test_feast_doubles_and_curse_halves_positive_output(content):
    state = create_initial_state(1)
    state.feast_state.is_active = True
    state.feast_state.end_time = 600000
    assert _totals(produce("hunter", 1, state, content)) == {"food": 10, "fur": 2, "bones": 2}

    state.feast_state.is_active = False
    state.curse_state.is_active = True
    state.curse_state.end_time = 600000
    assert _totals(produce("iron_miner", 1, state, content)) == {"iron": 2, "food": -5}


def test_mining_boost_doubles_both_sides(content):
    state = create_initial_state(1)
    state.mining_boost_state.is_active = True
    state.mining_boost_state.end_time = 600000

    assert _totals(produce("coal_miner", 1, state, content)) == {"coal": 10, "food": -10}
    assert _totals(produce("gatherer", 1, state, content)) == {"wood": 10, "stone": 5}


def test_blessing_adds_flat_output(content):
    state = create_initial_state(1)
    state.blessings["flames_touch"] = True

    assert _totals(produce("steel_forger", 2, state, content))["steel"] == 6


def test_jobs_use_resources_produced_earlier_in_the_same_pass(content):
    state = create_initial_state(1)
    state.resources["food"] = 15
    state.villagers.update({"iron_miner": 1, "coal_miner": 1, "steel_forger": 1})

    report = run_production_phase(state, content)

    assert report.skipped_jobs == []
    assert state.resources["steel"] == 2
    assert state.resources["iron"] == 0
    assert state.resources["coal"] == 0
    assert state.resources["food"] == 0


def test_job_without_inputs_is_skipped_whole(content):
    state = create_initial_state(1)
    state.resources["food"] = 5
    state.villagers.update({"iron_miner": 1, "coal_miner": 1})

    report = run_production_phase(state, content)

    assert report.skipped_jobs == ["coal_miner"]
    assert state.resources["iron"] == 5
    assert state.resources["coal"] == 0
    assert state.resources["food"] == 0


def test_production_respects_storage_limit(content):
    state = create_initial_state(1)
    state.resources["wood"] = 495
    state.villagers["gatherer"] = 1

    run_production_phase(state, content)

    assert state.resources["wood"] == 500
    assert state.resources["stone"] == 5


def test_upkeep_consumes_food_and_wood_and_flags_starvation():
    state = create_initial_state(1)
    state.villagers.update({"free": 1, "gatherer": 2})
    state.resources.update({"food": 2, "wood": 10})

    report = apply_survival_upkeep(state)

    assert report.population == 3
    assert report.unfed == 1
    assert report.unheated == 0
    assert state.resources["food"] == 0
    assert state.resources["wood"] == 7
    assert state.flags[STARVATION_FLAG] is True


def test_mortality_never_kills_more_than_the_population():
    state = create_initial_state(5)
    state.villagers.update({"free": 2, "hunter": 2})
    state.resources["wood"] = 0
    state.flags[STARVATION_FLAG] = True
    survival = SurvivalReport(population=4, unfed=4, unheated=4)

    report = check_mortality(state, survival, total_madness=80, rng=DeterministicRNG.from_seed(5))

    assert 0 <= report.total <= 4
    assert total_population(state) == 4 - report.total
    if report.freezing_deaths:
        assert any("cold" in message or "freeze" in message for message in report.messages)


def test_no_mortality_for_an_empty_village():
    state = create_initial_state(5)
    report = check_mortality(state, SurvivalReport(), total_madness=100, rng=DeterministicRNG.from_seed(5))
    assert report.total == 0
    assert report.messages == []


def test_kill_villagers_takes_free_villagers_first():
    state = create_initial_state(1)
    state.villagers.update({"free": 2, "gatherer": 3})

    killed = kill_villagers(state, 3, DeterministicRNG.from_seed(1))

    assert killed == 3
    assert state.villagers["free"] == 0
    assert state.villagers["gatherer"] == 2


def test_kill_villagers_stops_when_nobody_is_left():
    state = create_initial_state(1)
    state.villagers.update({"free": 1})
    assert kill_villagers(state, 10, DeterministicRNG.from_seed(1)) == 1


def test_housing_capacity(content):
    state = create_initial_state(1)
    state.buildings.update({"woodenHut": 2, "stoneHut": 1})
    assert max_population(state, content) == 8


def test_stranger_needs_free_housing(content):
    state = create_initial_state(1)
    state.buildings["woodenHut"] = 1
    state.villagers["free"] = 2

    assert check_stranger(state, content, DeterministicRNG.from_seed(1), cycle_ms=600000) is None

    state.villagers["free"] = 1
    message = check_stranger(state, content, DeterministicRNG.from_seed(1), cycle_ms=600000)
    assert message is not None
    assert state.villagers["free"] == 2
    assert state.story.seen["hasVillagers"] is True


def test_assign_and_unassign(content):
    state = create_initial_state(1)
    state.villagers["free"] = 1

    assert assign_villager(state, "hunter", content)
    assert state.villagers == {"free": 0, "hunter": 1}
    assert not assign_villager(state, "hunter", content)
    assert not assign_villager(state, "wizard", content)

    assert unassign_villager(state, "hunter", content)
    assert state.villagers == {"free": 1, "hunter": 0}
    assert not unassign_villager(state, "hunter", content)
