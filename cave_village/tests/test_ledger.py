from __future__ import annotations

import math
from pathlib import Path

from cave_village.core import ledger
from cave_village.core.actions import ActionResolver
from cave_village.core.bonuses import BonusAggregator
from cave_village.core.loader import load_content
from cave_village.core.patch import merge_patch
from cave_village.core.persistence import create_initial_state
from cave_village.core.rng import DeterministicRNG

CONTENT_DIR = Path(__file__).resolve().parents[1] / "content"


def _resolver(seed: int):
    content = load_content(CONTENT_DIR)
    return ActionResolver(content, BonusAggregator(content), DeterministicRNG.from_seed(seed))


def test_base_limit_and_storage_tiers():
    state = create_initial_state(1)
    assert ledger.get_limit(state) == 500

    state.buildings["supplyHut"] = 1
    assert ledger.get_limit(state) == 1000

    # only the highest tier counts, even with lower tiers also built
    state.buildings["storehouse"] = 1
    assert ledger.get_limit(state) == 5000
    assert ledger.highest_storage_building(state) == "storehouse"


def test_legacy_state_without_limits_flag_is_unlimited():
    state = create_initial_state(1)
    state.flags[ledger.LIMITS_FLAG] = False
    assert ledger.get_limit(state) == math.inf
    assert ledger.apply(state, "wood", 123456) == 123456


def test_apply_floors_at_zero_then_caps():
    state = create_initial_state(1)
    assert ledger.apply(state, "stone", -40) == 0
    assert ledger.apply(state, "stone", 900) == 500
    assert state.flags[ledger.LIMIT_HIT_FLAG] is True
    assert ledger.is_at_limit(state, "stone")


def test_silver_and_gold_ignore_the_limit():
    state = create_initial_state(1)
    assert ledger.apply(state, "gold", 5000) == 5000
    assert ledger.apply(state, "silver", 2500) == 2500
    assert not ledger.is_at_limit(state, "gold")


def test_lowered_limit_never_shrinks_existing_stock():
    state = create_initial_state(1)
    state.resources["iron"] = 800

    assert ledger.apply(state, "iron", 50) == 800
    assert ledger.apply(state, "iron", -100) == 700


def test_chop_wood_near_limit_lands_in_declared_range():
    for seed in range(20):
        resolver = _resolver(seed)
        state = create_initial_state(seed)
        state.buildings["supplyHut"] = 1
        state.resources["wood"] = 950

        patch = resolver.resolve("chopWood", state)
        merge_patch(state, patch)

        assert 960 <= state.resources["wood"] <= 970


def test_chop_wood_gain_is_clamped_at_limit_and_flags_it():
    resolver = _resolver(7)
    state = create_initial_state(7)
    state.buildings["supplyHut"] = 1
    state.resources["wood"] = 995

    merge_patch(state, resolver.resolve("chopWood", state))

    assert state.resources["wood"] == 1000
    assert state.flags.get(ledger.LIMIT_HIT_FLAG) is True
