from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from .models import GameState

if TYPE_CHECKING:
    from .bonuses import BonusAggregator

SACRIFICE_BASE_COSTS: dict[str, tuple[str, int]] = {
    "boneTotems": ("bone_totem", 5),
    "leatherTotems": ("leather_totem", 10),
}


@dataclass(frozen=True, slots=True)
class ComputedContext:
    aggregator: "BonusAggregator"


ComputedBuilder = Callable[[GameState, ComputedContext], Any]


def usage_count(state: GameState, action_id: str) -> int:
    return int(state.story.seen.get(f"{action_id}UsageCount", 0) or 0)


def sacrifice_cost(state: GameState, action_id: str) -> int:
    _, base = SACRIFICE_BASE_COSTS[action_id]
    return base + usage_count(state, action_id)


def _bone_totems_cost(state: GameState, ctx: ComputedContext) -> dict[str, Any]:
    return {"resources.bone_totem": sacrifice_cost(state, "boneTotems")}


def _leather_totems_cost(state: GameState, ctx: ComputedContext) -> dict[str, Any]:
    return {"resources.leather_totem": sacrifice_cost(state, "leatherTotems")}


def _scout_forest_effects(state: GameState, ctx: ComputedContext) -> dict[str, Any]:
    luck = ctx.aggregator.get_total_luck(state)
    return {
        "resources.food": f"random(5,{10 + luck // 2})",
        "resources.fur": f"random(0,{2 + luck // 10})",
        "story.seen.forestScouted": True,
    }


def _torch_stock(state: GameState, ctx: ComputedContext) -> int:
    # one extra torch for every three huts built
    return 1 + state.buildings.get("woodenHut", 0) // 3


DEFAULT_COMPUTED: dict[str, ComputedBuilder] = {
    "boneTotemsCost": _bone_totems_cost,
    "leatherTotemsCost": _leather_totems_cost,
    "scoutForestEffects": _scout_forest_effects,
    "torchStock": _torch_stock,
}
