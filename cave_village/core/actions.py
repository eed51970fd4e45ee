from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .bonuses import ActionBonuses, BonusAggregator
from .computed import DEFAULT_COMPUTED, ComputedBuilder, ComputedContext, usage_count
from .definitions import ActionSpec
from .effect_values import (
    Computed,
    Constant,
    EffectDefinitionError,
    EffectMap,
    EffectValue,
    Probabilistic,
    RandomRange,
    TieredTable,
    parse_effect_map,
    parse_effect_value,
)
from .models import GameState
from .patch import StatePatch, merge_patch
from .paths import PathError, Section, StatePath
from .requirements import evaluate_requirement, requirement_met
from .rng import DeterministicRNG
from .settings import EngineSettings

if TYPE_CHECKING:
    from .loader import ContentBundle

logger = logging.getLogger(__name__)

SACRIFICE_ESCALATION_CAP = 20
DOUBLE_GAIN_ACTIONS = frozenset(
    {
        "exploreCave",
        "ventureDeeper",
        "descendFurther",
        "exploreRuins",
        "exploreTemple",
        "exploreCitadel",
        "mineStone",
        "mineIron",
        "mineCoal",
        "mineSulfur",
        "mineObsidian",
        "mineAdamant",
        "chopWood",
        "hunt",
    }
)
DOUBLE_GAIN_MESSAGE = "The Tarnished Compass glows! Your gains are doubled!"
FOCUS_CATEGORIES = frozenset({"gather", "hunt", "mining", "caveExplore"})


@dataclass(slots=True)
class _Resolution:
    action: ActionSpec
    state: GameState
    patch: StatePatch
    bonuses: ActionBonuses
    luck: int
    # resources whose flat bonus was already folded into a random draw
    folded: set[str]
    fixed_gains: set[str]


class ActionResolver:
    """Turns an action id and the current state into a :class:`StatePatch`.

    The action table and bonus aggregator are injected; resolution never raises
    for unknown ids or malformed tiers, it returns an empty patch instead.
    """

    def __init__(
        self,
        content: "ContentBundle",
        aggregator: BonusAggregator,
        rng: DeterministicRNG,
        settings: EngineSettings | None = None,
        computed: dict[str, ComputedBuilder] | None = None,
    ) -> None:
        self.content = content
        self.aggregator = aggregator
        self.rng = rng
        self.settings = settings or EngineSettings()
        self.computed = computed if computed is not None else (content.computed or DEFAULT_COMPUTED)
        self._computed_ctx = ComputedContext(aggregator=aggregator)

    # ------------------------------------------------------------------
    # Table lookups
    # ------------------------------------------------------------------

    def _run_computed(self, name: str, state: GameState) -> Any:
        builder = self.computed.get(name)
        if builder is None:
            raise EffectDefinitionError(f"Unknown computed builder '{name}'.")
        return builder(state, self._computed_ctx)

    def _select(self, table: TieredTable, action: ActionSpec, state: GameState, where: str) -> EffectMap | None:
        if table.computed is not None:
            raw = self._run_computed(table.computed, state)
            if not isinstance(raw, dict):
                raise EffectDefinitionError(f"Computed {where} for '{action.id}' must return a mapping.")
            return parse_effect_map(raw, f"{action.id}.{where}")
        return table.select(action.next_level(state))

    def get_cost(self, action_id: str, state: GameState) -> dict[StatePath, int] | None:
        """Cost after discounts, as positive amounts; None when no tier applies."""
        action = self.content.action_by_id.get(action_id)
        if action is None:
            return None
        try:
            return self._cost_for(action, state)
        except (EffectDefinitionError, PathError) as exc:
            logger.warning("Cost for %s could not be resolved: %s", action_id, exc)
            return None

    def _cost_for(self, action: ActionSpec, state: GameState) -> dict[StatePath, int] | None:
        cost_map = self._select(action.cost, action, state, "cost")
        if cost_map is None:
            return None
        reduction = 0.0
        if action.is_crafting:
            reduction = self.aggregator.get_total_crafting_cost_reduction(state)
        elif action.building:
            reduction = self.aggregator.get_total_building_cost_reduction(state)

        amounts: dict[StatePath, int] = {}
        for path, value in cost_map.items():
            if not isinstance(value, Constant) or isinstance(value.value, bool):
                raise EffectDefinitionError(f"Cost '{path}' of '{action.id}' must be a number.")
            base = value.value
            if path.is_resource and reduction > 0:
                amounts[path] = math.floor(round(base * (1 - reduction), 9))
            else:
                amounts[path] = int(base)
        return amounts

    def effective_cooldown(self, action_id: str, state: GameState) -> float:
        action = self.content.action_by_id.get(action_id)
        if action is None or state.dev_mode:
            return 0.0
        reduction = self.aggregator.get_cooldown_reduction(action_id, state)
        return max(0.0, action.cooldown - reduction)

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def should_show(self, action_id: str, state: GameState) -> bool:
        action = self.content.action_by_id.get(action_id)
        if action is None:
            return False
        return requirement_met(action.show_when, state, self.content)

    def can_execute(self, action_id: str, state: GameState) -> tuple[bool, list[str]]:
        action = self.content.action_by_id.get(action_id)
        if action is None:
            return False, [f"Unknown action '{action_id}'."]

        reasons: list[str] = []
        remaining = state.cooldowns.get(action_id, 0.0)
        if remaining > 0 and not state.dev_mode:
            reasons.append(f"On cooldown for {remaining:.2f}s.")
        if action.max_level is not None and action.next_level(state) > action.max_level:
            reasons.append(f"{action.label} is already at maximum level.")

        ok, requirement_reasons = evaluate_requirement(action.requires, state, self.content)
        if not ok:
            reasons.extend(requirement_reasons)

        cost = self.get_cost(action_id, state)
        if cost is None:
            reasons.append(f"{action.label} has no cost tier for level {action.next_level(state)}.")
        else:
            for path, amount in cost.items():
                if path.read_number(state) < amount:
                    reasons.append(f"Requires {amount} {path}.")
        return (len(reasons) == 0, reasons)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, action_id: str, state: GameState) -> StatePatch:
        action = self.content.action_by_id.get(action_id)
        if action is None:
            logger.debug("resolve: unknown action %s", action_id)
            return StatePatch()
        try:
            return self._resolve(action, state)
        except (EffectDefinitionError, PathError) as exc:
            logger.warning("Action %s resolved to an empty patch: %s", action_id, exc)
            return StatePatch()

    def _resolve(self, action: ActionSpec, state: GameState) -> StatePatch:
        if action.max_level is not None and action.next_level(state) > action.max_level:
            return StatePatch()
        cost = self._cost_for(action, state)
        effects = self._select(action.effects, action, state, "effects")
        if cost is None or effects is None:
            return StatePatch()

        snapshot = dict(state.resources)
        ctx = _Resolution(
            action=action,
            state=state,
            patch=StatePatch(),
            bonuses=self.aggregator.get_action_bonuses(action.id, state),
            luck=self.aggregator.get_total_luck(state),
            folded=set(),
            fixed_gains=set(),
        )

        for path, amount in cost.items():
            ctx.patch.add(path, -amount, state)

        for path, value in effects.items():
            self._apply_effect(ctx, path, value)

        if not action.is_sacrifice:
            self._apply_fixed_bonuses(ctx)
        self._apply_double_gain(ctx, snapshot)
        if state.dev_mode:
            self._apply_dev_multiplier(ctx, snapshot)

        ctx.patch.cooldowns[action.id] = self.effective_cooldown(action.id, state)
        if action.sound:
            ctx.patch.sounds.append(action.sound)
        return ctx.patch

    def _apply_effect(self, ctx: _Resolution, path: StatePath, value: EffectValue) -> None:
        if isinstance(value, Computed):
            value = parse_effect_value(self._run_computed(value.name, ctx.state), f"{ctx.action.id}.{path}")
            if isinstance(value, Computed):
                raise EffectDefinitionError(f"Computed value for '{path}' cannot return another computed value.")

        if isinstance(value, Probabilistic):
            self._apply_probabilistic(ctx, path, value)
            return
        if isinstance(value, RandomRange):
            low, high = self.random_bounds(ctx.action, path, value, ctx.bonuses, ctx.state, ctx.folded)
            ctx.patch.add(path, self.rng.randint(low, high), ctx.state)
            return
        self._apply_constant(ctx, path, value)

    def _apply_constant(self, ctx: _Resolution, path: StatePath, value: Constant) -> None:
        if isinstance(value.value, bool):
            ctx.patch.set(path, value.value)
            return
        if path.is_resource and value.value > 0:
            ctx.fixed_gains.add(path.key)
        ctx.patch.add(path, value.value, ctx.state)

    def _apply_probabilistic(self, ctx: _Resolution, path: StatePath, value: Probabilistic) -> None:
        # one draw per evaluation, shared by the condition gate and the threshold
        roll = self.rng.next_float()
        if value.condition is not None and not requirement_met(value.condition, ctx.state, self.content):
            return
        adjusted = min(value.chance * (1 + ctx.luck / 100), 1.0)
        if roll >= adjusted:
            return

        inner = value.value
        if isinstance(inner, RandomRange):
            low, high = self.random_bounds(ctx.action, path, inner, ctx.bonuses, ctx.state, ctx.folded)
            ctx.patch.add(path, self.rng.randint(low, high), ctx.state)
        elif isinstance(inner, Constant):
            self._apply_constant(ctx, path, inner)
        if value.log_message:
            ctx.patch.log_messages.append(value.log_message)
        if value.trigger_event:
            ctx.patch.triggered_events.append(value.trigger_event)

    def random_bounds(
        self,
        action: ActionSpec,
        path: StatePath,
        value: RandomRange,
        bonuses: ActionBonuses,
        state: GameState,
        folded: set[str] | None = None,
    ) -> tuple[int, int]:
        """Bounds of a random draw after every deterministic bonus layer."""
        low, high = value.min, value.max
        if not path.is_resource or high <= 0:
            return low, high

        if action.is_sacrifice:
            escalation = min(usage_count(state, action.id), SACRIFICE_ESCALATION_CAP)
            multiplier = bonuses.resource_multiplier
            return math.ceil((low + escalation) * multiplier), math.ceil((high + escalation) * multiplier)

        flat = bonuses.resource_bonus.get(path.key, 0)
        if folded is not None and flat:
            folded.add(path.key)
        multiplier = bonuses.combined_multiplier(action.is_cave_explore)
        if action.category in FOCUS_CATEGORIES and state.buff_active("focus"):
            multiplier *= 2
        return math.floor((low + flat) * multiplier), math.floor((high + flat) * multiplier)

    def _apply_fixed_bonuses(self, ctx: _Resolution) -> None:
        for resource, amount in ctx.bonuses.resource_bonus.items():
            if resource in ctx.folded or resource not in ctx.fixed_gains:
                continue
            ctx.patch.add(StatePath.resource(resource), amount, ctx.state)

    def _apply_double_gain(self, ctx: _Resolution, snapshot: dict[str, int]) -> None:
        if ctx.action.id not in DOUBLE_GAIN_ACTIONS:
            return
        chance = self.aggregator.get_double_gain_chance(ctx.state)
        if chance <= 0 or not self.rng.roll(chance):
            return
        for path, gain in self._positive_gains(ctx.patch, snapshot):
            ctx.patch.add(path, gain, ctx.state)
        ctx.patch.log_messages.append(DOUBLE_GAIN_MESSAGE)

    def _apply_dev_multiplier(self, ctx: _Resolution, snapshot: dict[str, int]) -> None:
        factor = self.settings.dev_multiplier - 1
        for path, gain in self._positive_gains(ctx.patch, snapshot):
            ctx.patch.add(path, gain * factor, ctx.state)

    @staticmethod
    def _positive_gains(patch: StatePatch, snapshot: dict[str, int]) -> list[tuple[StatePath, int]]:
        gains = []
        for path, value in patch.values.items():
            if path.section is not Section.RESOURCES:
                continue
            gain = int(value) - int(snapshot.get(path.key, 0))
            if gain > 0:
                gains.append((path, gain))
        return gains

    # ------------------------------------------------------------------
    # Execution and previews
    # ------------------------------------------------------------------

    def execute(self, action_id: str, state: GameState) -> StatePatch | None:
        ok, reasons = self.can_execute(action_id, state)
        if not ok:
            logger.debug("Action %s blocked: %s", action_id, "; ".join(reasons))
            return None
        patch = self.resolve(action_id, state)
        merge_patch(state, patch, self.settings.log_max_entries)
        button_key = self.aggregator.button_key(action_id)
        if button_key is not None:
            state.button_clicks[button_key] = state.button_clicks.get(button_key, 0) + 1
        return patch

    def get_effect_preview(self, action_id: str, state: GameState) -> dict[str, tuple[int, int]]:
        """Resource gain ranges a player would see for ``action_id`` right now."""
        action = self.content.action_by_id.get(action_id)
        if action is None:
            return {}
        try:
            effects = self._select(action.effects, action, state, "effects")
        except (EffectDefinitionError, PathError):
            return {}
        if not effects:
            return {}

        bonuses = self.aggregator.get_action_bonuses(action_id, state)
        preview: dict[str, tuple[int, int]] = {}
        for path, value in effects.items():
            if not path.is_resource:
                continue
            if isinstance(value, Probabilistic):
                value = value.value
            if isinstance(value, RandomRange):
                preview[path.key] = self.random_bounds(action, path, value, bonuses, state)
            elif isinstance(value, Constant) and not isinstance(value.value, bool):
                amount = int(value.value)
                if amount > 0 and not action.is_sacrifice:
                    amount += bonuses.resource_bonus.get(path.key, 0)
                preview[path.key] = (amount, amount)
        return preview
