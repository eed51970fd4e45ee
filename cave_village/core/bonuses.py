"""Bonus aggregation over owned items, buildings and permanent upgrades.

Percentage multipliers stack additively around 1.0: two +50% sources give
+100%, never +125%. Flat bonuses and cooldown reductions simply sum.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from . import ledger
from .definitions import CAVE_EXPLORE_ACTIONS
from .models import ITEM_CATEGORIES, EffectBonuses, GameState

if TYPE_CHECKING:
    from .loader import ContentBundle

MINING_KEY = "mining"
CAVE_EXPLORE_KEY = "caveExplore"
BUTTON_UPGRADES_FLAG = "buttonUpgradesUnlocked"
# clicks needed -> additive multiplier bonus
BUTTON_UPGRADE_LEVELS: tuple[tuple[int, float], ...] = (
    (5, 0.05),
    (25, 0.10),
    (50, 0.15),
    (100, 0.20),
    (200, 0.25),
    (400, 0.30),
    (800, 0.35),
)
BUTTON_UPGRADE_KEYS = frozenset(
    {
        CAVE_EXPLORE_KEY,
        "chopWood",
        "hunt",
        "mineStone",
        "mineIron",
        "mineCoal",
        "mineSulfur",
        "mineObsidian",
        "mineAdamant",
    }
)


@dataclass(frozen=True, slots=True)
class ActiveEffect:
    id: str
    name: str
    source: str
    bonuses: EffectBonuses


@dataclass(slots=True)
class ActionBonuses:
    resource_multiplier: float = 1.0
    resource_bonus: dict[str, int] = field(default_factory=dict)
    cooldown_reduction: float = 0.0
    cave_explore_multiplier: float = 1.0

    def add_multiplier(self, multiplier: float) -> None:
        self.resource_multiplier += multiplier - 1.0

    def add_flat(self, bonus: dict[str, int]) -> None:
        for resource, amount in bonus.items():
            self.resource_bonus[resource] = self.resource_bonus.get(resource, 0) + amount

    def combined_multiplier(self, include_cave_explore: bool) -> float:
        if include_cave_explore:
            return self.resource_multiplier + (self.cave_explore_multiplier - 1.0)
        return self.resource_multiplier

    @property
    def is_zero(self) -> bool:
        return (
            self.resource_multiplier == 1.0
            and not self.resource_bonus
            and self.cooldown_reduction == 0.0
            and self.cave_explore_multiplier == 1.0
        )


def button_upgrade_bonus(clicks: int) -> float:
    bonus = 0.0
    for threshold, value in BUTTON_UPGRADE_LEVELS:
        if clicks >= threshold:
            bonus = value
    return bonus


def button_upgrade_level(clicks: int) -> int:
    return sum(1 for threshold, _ in BUTTON_UPGRADE_LEVELS if clicks >= threshold)


class BonusAggregator:
    def __init__(self, content: "ContentBundle") -> None:
        self.content = content

    def get_active_effects(self, state: GameState) -> list[ActiveEffect]:
        effects: list[ActiveEffect] = []
        best_by_family: dict[str, ActiveEffect] = {}
        best_tier: dict[str, int] = {}

        for category in ITEM_CATEGORIES:
            for item_id, owned in state.item_section(category).items():
                if not owned:
                    continue
                definition = self.content.effect_by_id.get(item_id)
                if definition is None or definition.category != category:
                    continue
                active = ActiveEffect(id=definition.id, name=definition.name, source=category, bonuses=definition.bonuses)
                if definition.family is None:
                    effects.append(active)
                    continue
                if definition.tier > best_tier.get(definition.family, -1):
                    best_tier[definition.family] = definition.tier
                    best_by_family[definition.family] = active

        effects.extend(best_by_family.values())

        top_storage = ledger.highest_storage_building(state)
        for building_id, level in state.buildings.items():
            if level <= 0:
                continue
            building = self.content.building_by_id.get(building_id)
            if building is None:
                continue
            if building.storage and building_id != top_storage:
                continue
            effects.append(
                ActiveEffect(id=f"building:{building_id}", name=building.name, source="buildings", bonuses=building.bonuses)
            )
        return effects

    def _category_keys(self, action_id: str) -> list[str]:
        keys: list[str] = []
        action = self.content.action_by_id.get(action_id)
        if action_id.startswith("mine") or (action is not None and action.is_mining):
            keys.append(MINING_KEY)
        if action_id in CAVE_EXPLORE_ACTIONS or (action is not None and action.is_cave_explore):
            keys.append(CAVE_EXPLORE_KEY)
        if action is not None and action.category not in keys and action.category != action_id:
            keys.append(action.category)
        return keys

    def get_action_bonuses(self, action_id: str, state: GameState) -> ActionBonuses:
        result = ActionBonuses()
        category_keys = self._category_keys(action_id)
        cave_explore = CAVE_EXPLORE_KEY in category_keys

        for effect in self.get_active_effects(state):
            action_bonuses = effect.bonuses.action_bonuses
            exact = action_bonuses.get(action_id)
            if exact is not None:
                result.add_multiplier(exact.resource_multiplier)
                result.add_flat(exact.resource_bonus)
                result.cooldown_reduction += exact.cooldown_reduction
            for key in category_keys:
                bonus = action_bonuses.get(key)
                if bonus is None:
                    continue
                result.add_multiplier(bonus.resource_multiplier)
                result.add_flat(bonus.resource_bonus)
                result.cooldown_reduction += bonus.cooldown_reduction
            if cave_explore:
                result.cave_explore_multiplier += effect.bonuses.cave_explore_multiplier - 1.0

        upgrade_key = self.button_key(action_id)
        if upgrade_key is not None and state.flags.get(BUTTON_UPGRADES_FLAG, False):
            upgrade = button_upgrade_bonus(state.button_clicks.get(upgrade_key, 0))
            result.resource_multiplier += upgrade

        return result

    def button_key(self, action_id: str) -> str | None:
        action = self.content.action_by_id.get(action_id)
        key = action.button_key if action is not None and action.button_key else action_id
        if action_id in CAVE_EXPLORE_ACTIONS:
            key = CAVE_EXPLORE_KEY
        return key if key in BUTTON_UPGRADE_KEYS else None

    def _stat_total(self, state: GameState, stat: str) -> int:
        total = int(getattr(state.stats, stat, 0))
        for effect in self.get_active_effects(state):
            total += int(getattr(effect.bonuses.general_bonuses, stat))
        return total

    def get_total_luck(self, state: GameState) -> int:
        return self._stat_total(state, "luck")

    def get_total_strength(self, state: GameState) -> int:
        return self._stat_total(state, "strength")

    def get_total_knowledge(self, state: GameState) -> int:
        return self._stat_total(state, "knowledge")

    def get_total_madness(self, state: GameState) -> int:
        return self._stat_total(state, "madness")

    def get_stat_total(self, state: GameState, stat: str) -> int:
        return self._stat_total(state, stat)

    def get_total_crafting_cost_reduction(self, state: GameState) -> float:
        reduction = sum(effect.bonuses.general_bonuses.crafting_cost_reduction for effect in self.get_active_effects(state))
        return min(1.0, reduction)

    def get_total_building_cost_reduction(self, state: GameState) -> float:
        reduction = sum(effect.bonuses.general_bonuses.building_cost_reduction for effect in self.get_active_effects(state))
        return min(1.0, reduction)

    def get_cooldown_reduction(self, action_id: str, state: GameState) -> float:
        return self.get_action_bonuses(action_id, state).cooldown_reduction

    def get_double_gain_chance(self, state: GameState) -> float:
        return min(1.0, sum(effect.bonuses.double_gain_chance for effect in self.get_active_effects(state)))
