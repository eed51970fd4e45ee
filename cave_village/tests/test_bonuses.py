from __future__ import annotations

from pathlib import Path

import pytest

from cave_village.core.bonuses import BUTTON_UPGRADES_FLAG, BonusAggregator, button_upgrade_bonus
from cave_village.core.loader import load_content
from cave_village.core.persistence import create_initial_state

CONTENT_DIR = Path(__file__).resolve().parents[1] / "content"


@pytest.fixture(scope="module")
def content():
    return load_content(CONTENT_DIR)


def test_only_best_tool_in_a_family_counts(content):
    aggregator = BonusAggregator(content)
    state = create_initial_state(1)
    state.tools["stone_axe"] = True
    state.tools["iron_axe"] = True

    bonuses = aggregator.get_action_bonuses("chopWood", state)

    assert bonuses.resource_multiplier == pytest.approx(1.5)
    assert bonuses.cooldown_reduction == pytest.approx(0.5)
    active_ids = {effect.id for effect in aggregator.get_active_effects(state)}
    assert "iron_axe" in active_ids
    assert "stone_axe" not in active_ids


def test_multipliers_from_different_sources_stack_additively(content):
    aggregator = BonusAggregator(content)
    state = create_initial_state(1)
    state.tools["iron_axe"] = True
    state.clothing["loggers_gloves"] = True

    bonuses = aggregator.get_action_bonuses("chopWood", state)

    # +50% and +20% add up to +70%
    assert bonuses.resource_multiplier == pytest.approx(1.7)


def test_mining_key_applies_to_every_mine_action(content):
    aggregator = BonusAggregator(content)
    state = create_initial_state(1)
    state.tools["iron_pickaxe"] = True

    for action_id in ("mineStone", "mineIron", "mineCoal", "mineSulfur"):
        assert aggregator.get_action_bonuses(action_id, state).resource_multiplier == pytest.approx(1.5)
    assert aggregator.get_action_bonuses("chopWood", state).resource_multiplier == pytest.approx(1.0)


def test_cave_explore_multiplier_from_lantern_and_pack(content):
    aggregator = BonusAggregator(content)
    state = create_initial_state(1)
    state.tools["steel_lantern"] = True
    state.clothing["explorer_pack"] = True

    bonuses = aggregator.get_action_bonuses("exploreCave", state)

    assert bonuses.resource_multiplier == pytest.approx(1.2)
    assert bonuses.cave_explore_multiplier == pytest.approx(1.2)
    assert bonuses.combined_multiplier(include_cave_explore=True) == pytest.approx(1.4)


def test_stats_sum_base_items_and_buildings(content):
    aggregator = BonusAggregator(content)
    state = create_initial_state(1)
    state.stats.strength = 2
    state.tools["blacksmith_hammer"] = True
    state.weapons["iron_sword"] = True
    state.buildings["cabin"] = 1

    assert aggregator.get_total_strength(state) == 2 + 4 + 3
    assert aggregator.get_total_knowledge(state) == 2


def test_only_highest_storage_building_discount_counts(content):
    aggregator = BonusAggregator(content)
    state = create_initial_state(1)
    state.buildings["supplyHut"] = 1
    state.buildings["storehouse"] = 1

    assert aggregator.get_total_building_cost_reduction(state) == pytest.approx(0.1)


def test_button_upgrades_need_the_unlock_flag(content):
    aggregator = BonusAggregator(content)
    state = create_initial_state(1)
    state.button_clicks["chopWood"] = 30

    assert aggregator.get_action_bonuses("chopWood", state).resource_multiplier == pytest.approx(1.0)

    state.flags[BUTTON_UPGRADES_FLAG] = True
    assert aggregator.get_action_bonuses("chopWood", state).resource_multiplier == pytest.approx(1.10)


def test_button_upgrade_levels():
    assert button_upgrade_bonus(0) == 0.0
    assert button_upgrade_bonus(5) == pytest.approx(0.05)
    assert button_upgrade_bonus(99) == pytest.approx(0.15)
    assert button_upgrade_bonus(5000) == pytest.approx(0.35)


def test_double_gain_chance_from_compass(content):
    aggregator = BonusAggregator(content)
    state = create_initial_state(1)
    assert aggregator.get_double_gain_chance(state) == 0.0
    state.relics["tarnished_compass"] = True
    assert aggregator.get_double_gain_chance(state) == pytest.approx(0.1)
