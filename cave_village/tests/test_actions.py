from __future__ import annotations

from pathlib import Path

import pytest

from cave_village.core.actions import DOUBLE_GAIN_MESSAGE, ActionResolver
from cave_village.core.bonuses import BonusAggregator
from cave_village.core.loader import load_content
from cave_village.core.patch import merge_patch
from cave_village.core.paths import StatePath
from cave_village.core.persistence import create_initial_state
from cave_village.core.rng import DeterministicRNG

CONTENT_DIR = Path(__file__).resolve().parents[1] / "content"


@pytest.fixture(scope="module")
def content():
    return load_content(CONTENT_DIR)


def _resolver(content, seed: int = 1) -> ActionResolver:
    return ActionResolver(content, BonusAggregator(content), DeterministicRNG.from_seed(seed))


def test_unknown_action_resolves_to_empty_patch(content):
    resolver = _resolver(content)
    state = create_initial_state(1)

    patch = resolver.resolve("summonDragon", state)

    assert patch.is_empty
    ok, reasons = resolver.can_execute("summonDragon", state)
    assert ok is False
    assert "Unknown action" in reasons[0]
    assert resolver.execute("summonDragon", state) is None


def test_visibility_follows_show_when(content):
    resolver = _resolver(content)
    state = create_initial_state(1)
    assert resolver.should_show("lightFire", state)
    assert not resolver.should_show("chopWood", state)

    resolver.execute("lightFire", state)

    assert state.flags["fireLit"] is True
    assert not resolver.should_show("lightFire", state)
    assert resolver.should_show("chopWood", state)


def test_execute_deducts_cost_and_sets_cooldown(content):
    resolver = _resolver(content)
    state = create_initial_state(1)
    state.resources["wood"] = 30

    patch = resolver.execute("buildTorch", state)

    assert patch is not None
    assert state.resources["wood"] == 20
    assert state.resources["torch"] == 1
    assert state.cooldowns["buildTorch"] == pytest.approx(2)

    ok, reasons = resolver.can_execute("buildTorch", state)
    assert ok is False
    assert any("cooldown" in reason for reason in reasons)


def test_insufficient_resources_block_execution(content):
    resolver = _resolver(content)
    state = create_initial_state(1)
    state.resources["wood"] = 5

    ok, reasons = resolver.can_execute("buildTorch", state)

    assert ok is False
    assert reasons == ["Requires 10 resources.wood."]
    assert resolver.execute("buildTorch", state) is None
    assert state.resources["wood"] == 5


def test_tool_cooldown_reduction_applies(content):
    resolver = _resolver(content)
    state = create_initial_state(1)
    state.tools["stone_axe"] = True

    assert resolver.effective_cooldown("chopWood", state) == pytest.approx(2.75)


def test_dev_mode_removes_cooldowns_and_multiplies_gains(content):
    resolver = _resolver(content)
    state = create_initial_state(1, dev_mode=True)

    patch = resolver.resolve("chopWood", state)
    merge_patch(state, patch)

    assert resolver.effective_cooldown("chopWood", state) == 0.0
    assert "chopWood" not in state.cooldowns
    # 10..20 wood times the dev multiplier, capped by the base limit
    assert state.resources["wood"] == 500


def test_tiered_building_cost_follows_level(content):
    resolver = _resolver(content)
    state = create_initial_state(1)
    wood = StatePath.parse("resources.wood")

    assert resolver.get_cost("buildWoodenHut", state) == {wood: 50}
    state.buildings["woodenHut"] = 2
    assert resolver.get_cost("buildWoodenHut", state) == {wood: 100}
    state.buildings["woodenHut"] = 6
    assert resolver.get_cost("buildWoodenHut", state) == {wood: 400}


def test_building_discount_from_storage(content):
    resolver = _resolver(content)
    state = create_initial_state(1)
    state.buildings["supplyHut"] = 1

    cost = resolver.get_cost("buildCabin", state)

    assert cost == {StatePath.parse("resources.wood"): 142, StatePath.parse("resources.stone"): 47}


def test_crafting_discount_from_hammer(content):
    resolver = _resolver(content)
    state = create_initial_state(1)
    state.tools["blacksmith_hammer"] = True

    cost = resolver.get_cost("craftIronAxe", state)

    assert cost == {StatePath.parse("resources.wood"): 45, StatePath.parse("resources.iron"): 45}


def test_building_stops_at_max_level(content):
    resolver = _resolver(content)
    state = create_initial_state(1)
    state.buildings["cabin"] = 1
    state.resources.update({"wood": 400, "stone": 400})

    ok, reasons = resolver.can_execute("buildCabin", state)

    assert ok is False
    assert "maximum level" in reasons[0]
    assert resolver.resolve("buildCabin", state).is_empty


def test_build_wooden_hut_increments_level(content):
    resolver = _resolver(content)
    state = create_initial_state(1)
    state.flags["villageUnlocked"] = True
    state.resources["wood"] = 120

    resolver.execute("buildWoodenHut", state)

    assert state.buildings["woodenHut"] == 1
    assert state.resources["wood"] == 70
    assert state.story.seen["hasHut"] is True


def test_flat_bonus_folds_into_random_bounds(content):
    resolver = _resolver(content)
    state = create_initial_state(1)
    state.clothing["hunter_cloak"] = True

    preview = resolver.get_effect_preview("hunt", state)

    # (3 + 2) * 1.2 and (8 + 2) * 1.2, floored
    assert preview["food"] == (6, 12)


def test_focus_buff_doubles_gather_bounds(content):
    resolver = _resolver(content)
    state = create_initial_state(1)
    state.focus_state.is_active = True
    state.focus_state.end_time = 60000

    assert resolver.get_effect_preview("chopWood", state)["wood"] == (20, 40)


def test_sacrifice_cost_and_reward_escalate_with_use(content):
    resolver = _resolver(content)
    state = create_initial_state(1)
    totem = StatePath.parse("resources.bone_totem")

    assert resolver.get_cost("boneTotems", state) == {totem: 5}
    assert resolver.get_effect_preview("boneTotems", state)["silver"] == (10, 20)

    state.resources["bone_totem"] = 50
    resolver.execute("boneTotems", state)

    assert state.story.seen["boneTotemsUsageCount"] == 1
    assert state.resources["bone_totem"] == 45
    assert 10 <= state.resources["silver"] <= 20
    assert resolver.get_cost("boneTotems", state) == {totem: 6}
    assert resolver.get_effect_preview("boneTotems", state)["silver"] == (11, 21)


def test_sacrifice_escalation_is_capped(content):
    resolver = _resolver(content)
    state = create_initial_state(1)
    state.story.seen["leatherTotemsUsageCount"] = 40

    assert resolver.get_effect_preview("leatherTotems", state)["gold"] == (30, 40)


def test_compass_can_double_gains(content):
    state = create_initial_state(3)
    state.relics["tarnished_compass"] = True
    doubled = False
    for seed in range(200):
        resolver = _resolver(content, seed)
        trial = state.model_copy(deep=True)
        patch = resolver.resolve("chopWood", trial)
        if DOUBLE_GAIN_MESSAGE in patch.log_messages:
            doubled = True
            merge_patch(trial, patch)
            assert 20 <= trial.resources["wood"] <= 40
            break
    assert doubled


def test_computed_effects_resolve_through_builder(content):
    resolver = _resolver(content)
    state = create_initial_state(1)

    merge_patch(state, resolver.resolve("scoutForest", state))

    assert state.story.seen["forestScouted"] is True
    assert 5 <= state.resources["food"] <= 10


def test_button_clicks_are_counted(content):
    resolver = _resolver(content)
    state = create_initial_state(1)
    state.flags["fireLit"] = True

    resolver.execute("chopWood", state)

    assert state.button_clicks["chopWood"] == 1


def _explore(content, state, seeds):
    for seed in seeds:
        trial = state.model_copy(deep=True)
        patch = _resolver(content, seed).resolve("exploreCave", trial)
        merge_patch(trial, patch)
        yield patch, trial


def test_certain_chance_always_applies_its_range(content):
    state = create_initial_state(1)
    state.resources["torch"] = 5

    for _, trial in _explore(content, state, range(1, 61)):
        assert 2 <= trial.resources["stone"] <= 5


def test_luck_scales_chance_until_it_saturates(content):
    state = create_initial_state(1)
    state.resources["torch"] = 5

    plain = [trial.resources["wood"] > 0 for _, trial in _explore(content, state, range(1, 101))]
    assert any(plain) and not all(plain)

    state.stats.luck = 100
    for _, trial in _explore(content, state, range(1, 101)):
        assert 2 <= trial.resources["wood"] <= 5


def test_relic_find_logs_and_triggers_only_on_success(content):
    state = create_initial_state(1)
    state.resources["torch"] = 5

    missed = 0
    for patch, trial in _explore(content, state, range(1, 301)):
        found = trial.relics.get("tarnished_amulet", False)
        assert ("amuletWhispers" in patch.triggered_events) == found
        assert any("tarnished amulet" in message for message in patch.log_messages) == found
        missed += not found
    assert missed > 0

    state.stats.luck = 5000
    for patch, trial in _explore(content, state, range(1, 21)):
        assert trial.relics["tarnished_amulet"] is True
        assert patch.triggered_events == ["amuletWhispers"]


def test_negated_condition_skips_relic_even_with_saturated_luck(content):
    state = create_initial_state(1)
    state.resources["torch"] = 5
    state.relics["tarnished_amulet"] = True
    state.stats.luck = 5000

    for patch, _ in _explore(content, state, range(1, 41)):
        assert "amuletWhispers" not in patch.triggered_events
        assert not any("tarnished amulet" in message for message in patch.log_messages)
