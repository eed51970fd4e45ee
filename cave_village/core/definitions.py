from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .effect_values import TieredTable
from .models import GameState, StatName
from .paths import StatePath
from .requirements import Requirement

CRAFTING_PREFIXES = ("craft", "forge")
CAVE_EXPLORE_ACTIONS = (
    "exploreCave",
    "ventureDeeper",
    "descendFurther",
    "exploreRuins",
    "exploreTemple",
    "exploreCitadel",
)


@dataclass(frozen=True, slots=True)
class ActionSpec:
    id: str
    label: str
    category: str
    cost: TieredTable
    effects: TieredTable
    building: bool = False
    level_key: str | None = None
    max_level: int | None = None
    cooldown: float = 0.0
    show_when: Requirement | None = None
    requires: Requirement | None = None
    button_key: str | None = None
    sound: str | None = None

    @property
    def is_sacrifice(self) -> bool:
        return self.category == "sacrifice"

    @property
    def is_crafting(self) -> bool:
        return self.category in {"crafting", "forging"} or self.id.startswith(CRAFTING_PREFIXES)

    @property
    def is_mining(self) -> bool:
        return self.category == "mining" or self.id.startswith("mine")

    @property
    def is_cave_explore(self) -> bool:
        return self.category == "caveExplore" or self.id in CAVE_EXPLORE_ACTIONS

    def current_level(self, state: GameState) -> int:
        if self.level_key is None:
            return 0
        return int(state.buildings.get(self.level_key, 0))

    def next_level(self, state: GameState) -> int:
        return self.current_level(state) + 1


@dataclass(frozen=True, slots=True)
class Outcome:
    op: str
    value: Any


@dataclass(frozen=True, slots=True)
class SuccessFormula:
    """``base + sum(total_stat * coefficient)`` plus the cruel-mode penalty when enabled."""

    base: float
    coefficients: tuple[tuple[StatName, float], ...] = ()
    cruel_mode_penalty: float = -0.05


@dataclass(frozen=True, slots=True)
class TimeProbability:
    base: float
    path: StatePath | None = None
    factor: float = 1.0

    def minutes(self, state: GameState) -> float:
        if self.path is None:
            return self.base
        return self.base * self.factor ** self.path.read_number(state)


@dataclass(frozen=True, slots=True)
class ChoiceSpec:
    id: str
    label: str
    requires: Requirement | None = None
    success: SuccessFormula | None = None
    effect: tuple[Outcome, ...] = ()
    on_success: tuple[Outcome, ...] = ()
    on_failure: tuple[Outcome, ...] = ()
    cooldown: float | None = None


@dataclass(frozen=True, slots=True)
class EventSpec:
    id: str
    message: str
    title: str = ""
    category: str = "base"
    condition: Requirement | None = None
    trigger_type: str = "resource"
    time_probability: TimeProbability | None = None
    priority: int = 0
    repeatable: bool = False
    effect: tuple[Outcome, ...] = ()
    choices: tuple[ChoiceSpec, ...] = ()
    fallback_choice: str | None = None
    time_limit: float | None = None
    sound: str | None = None
    choice_by_id: dict[str, ChoiceSpec] = field(default_factory=dict, compare=False, hash=False)

    @property
    def has_choices(self) -> bool:
        return bool(self.choices)
