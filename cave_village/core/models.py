from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ItemCategory = Literal["tools", "weapons", "clothing", "relics", "blessings", "books", "fellowship"]
ActionCategory = Literal[
    "gather",
    "hunt",
    "mining",
    "caveExplore",
    "crafting",
    "forging",
    "building",
    "sacrifice",
    "trade",
    "misc",
]
JobCategory = Literal["gathering", "hunting", "mining"]
StatName = Literal["luck", "strength", "knowledge", "madness"]
LogKind = Literal["log", "event", "choice", "system"]
TriggerType = Literal["resource", "time", "action"]
BuffName = Literal["feast", "great_feast", "curse", "mining_boost", "focus", "fog"]

SAVE_VERSION = 2

RESOURCE_NAMES: tuple[str, ...] = (
    "wood",
    "stone",
    "food",
    "fur",
    "bones",
    "leather",
    "iron",
    "coal",
    "sulfur",
    "steel",
    "obsidian",
    "adamant",
    "moonstone",
    "torch",
    "bone_totem",
    "leather_totem",
    "silver",
    "gold",
)
ITEM_CATEGORIES: tuple[ItemCategory, ...] = (
    "tools",
    "weapons",
    "clothing",
    "relics",
    "blessings",
    "books",
    "fellowship",
)
STAT_NAMES: tuple[StatName, ...] = ("luck", "strength", "knowledge", "madness")
BUFF_FIELDS: dict[BuffName, str] = {
    "feast": "feast_state",
    "great_feast": "great_feast_state",
    "curse": "curse_state",
    "mining_boost": "mining_boost_state",
    "focus": "focus_state",
    "fog": "fog_state",
}


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class StateModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# ---------------------------------------------------------------------------
# Content definitions
# ---------------------------------------------------------------------------


class ActionBonus(StrictModel):
    resource_multiplier: float = Field(default=1.0, alias="resourceMultiplier", ge=0)
    resource_bonus: dict[str, int] = Field(default_factory=dict, alias="resourceBonus")
    cooldown_reduction: float = Field(default=0.0, alias="cooldownReduction", ge=0)


class GeneralBonuses(StrictModel):
    luck: int = 0
    strength: int = 0
    knowledge: int = 0
    madness: int = 0
    crafting_cost_reduction: float = Field(default=0.0, alias="craftingCostReduction", ge=0, le=1)
    building_cost_reduction: float = Field(default=0.0, alias="buildingCostReduction", ge=0, le=1)


class EffectBonuses(StrictModel):
    general_bonuses: GeneralBonuses = Field(default_factory=GeneralBonuses, alias="generalBonuses")
    action_bonuses: dict[str, ActionBonus] = Field(default_factory=dict, alias="actionBonuses")
    cave_explore_multiplier: float = Field(default=1.0, alias="caveExploreMultiplier", ge=0)
    double_gain_chance: float = Field(default=0.0, alias="doubleGainChance", ge=0, le=1)


class EffectDefinition(StrictModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    category: ItemCategory
    family: str | None = None
    tier: int = Field(default=0, ge=0)
    description: str = ""
    bonuses: EffectBonuses = Field(default_factory=EffectBonuses)


class BuildingDefinition(StrictModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    storage: bool = False
    housing: int = Field(default=0, ge=0)
    bonuses: EffectBonuses = Field(default_factory=EffectBonuses)
    production_bonus: dict[str, dict[str, int]] = Field(default_factory=dict, alias="productionBonus")


class JobDefinition(StrictModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    category: JobCategory
    production: dict[str, int] = Field(min_length=1)
    blessing_bonus: dict[str, dict[str, int]] = Field(default_factory=dict, alias="blessingBonus")

    @field_validator("production")
    @classmethod
    def validate_production(cls, value: dict[str, int]) -> dict[str, int]:
        if not any(amount > 0 for amount in value.values()):
            raise ValueError("Job production must include at least one positive resource.")
        return value


class ActionModel(StrictModel):
    id: str = Field(min_length=1)
    label: str = Field(min_length=1)
    category: ActionCategory = "misc"
    building: bool = False
    level_key: str | None = Field(default=None, alias="levelKey")
    max_level: int | None = Field(default=None, alias="maxLevel", ge=1)
    cooldown: float = Field(default=0.0, ge=0)
    show_when: dict[str, Any] | str | None = Field(default=None, alias="showWhen")
    requires: dict[str, Any] | str | None = None
    cost: dict[str, Any] | str = Field(default_factory=dict)
    effects: dict[str, Any] | str = Field(default_factory=dict)
    button_key: str | None = Field(default=None, alias="buttonKey")
    sound: str | None = None

    @model_validator(mode="after")
    def validate_building_level_key(self) -> "ActionModel":
        if self.building and not self.level_key:
            raise ValueError(f"Building action '{self.id}' requires levelKey.")
        return self


class SuccessChanceModel(StrictModel):
    base: float = Field(ge=0, le=1)
    stats: dict[StatName, float] = Field(default_factory=dict)
    cruel_mode_penalty: float = Field(default=-0.05, alias="cruelModePenalty")


class TimeProbabilityModel(StrictModel):
    base: float = Field(gt=0)
    path: str | None = None
    factor: float = Field(default=1.0, gt=0)


class EventChoiceModel(StrictModel):
    id: str = Field(min_length=1)
    label: str = Field(min_length=1)
    requires: dict[str, Any] | str | None = None
    success_chance: SuccessChanceModel | None = Field(default=None, alias="successChance")
    effect: list[dict[str, Any]] = Field(default_factory=list)
    on_success: list[dict[str, Any]] = Field(default_factory=list, alias="onSuccess")
    on_failure: list[dict[str, Any]] = Field(default_factory=list, alias="onFailure")
    cooldown: float | None = Field(default=None, ge=0)


class EventModel(StrictModel):
    id: str = Field(min_length=1)
    title: str = ""
    message: str = Field(min_length=1)
    category: str = "base"
    condition: dict[str, Any] | str | None = None
    trigger_type: TriggerType = Field(default="resource", alias="triggerType")
    time_probability: float | TimeProbabilityModel | None = Field(default=None, alias="timeProbability")
    priority: int = 0
    repeatable: bool = False
    effect: list[dict[str, Any]] = Field(default_factory=list)
    choices: list[EventChoiceModel] = Field(default_factory=list)
    fallback_choice: str | None = Field(default=None, alias="fallbackChoice")
    time_limit: float | None = Field(default=None, alias="timeLimit", gt=0)
    sound: str | None = None

    @model_validator(mode="after")
    def validate_choices(self) -> "EventModel":
        if self.effect and self.choices:
            raise ValueError(f"Event '{self.id}' cannot declare both effect and choices.")
        if self.time_limit is not None and not self.fallback_choice:
            raise ValueError(f"Event '{self.id}' has timeLimit but no fallbackChoice.")
        return self


# ---------------------------------------------------------------------------
# Game state
# ---------------------------------------------------------------------------


class Stats(StateModel):
    luck: int = 0
    strength: int = 0
    knowledge: int = 0
    madness: int = 0


class TimedBuff(StateModel):
    is_active: bool = False
    end_time: int = 0

    def active_at(self, now_ms: int) -> bool:
        return self.is_active and now_ms < self.end_time


class FeastState(TimedBuff):
    last_accepted_level: int = 0


class FogState(TimedBuff):
    duration: int = 0


class StoryState(StateModel):
    seen: dict[str, Any] = Field(default_factory=dict)


class LogEntry(StateModel):
    id: str
    message: str
    timestamp: int = 0
    kind: LogKind = "log"
    event_id: str | None = None

    def format(self) -> str:
        seconds = self.timestamp // 1000
        return f"[{seconds // 60:03d}:{seconds % 60:02d}] [{self.kind.upper()}] {self.message}"


class PendingEvent(StateModel):
    event_id: str
    started_at: int = 0
    time_limit_ms: int | None = None
    # play time is frozen while a choice is open, so timed choices count modal time
    elapsed_ms: int = Field(default=0, ge=0)

    @property
    def expired(self) -> bool:
        return self.time_limit_ms is not None and self.elapsed_ms >= self.time_limit_ms


def _default_resources() -> dict[str, int]:
    return {name: 0 for name in RESOURCE_NAMES}


class GameState(StateModel):
    seed: int | str = 0
    rng_state: int = Field(default=0x9E3779B9, gt=0)
    rng_calls: int = Field(default=0, ge=0)
    resources: dict[str, int] = Field(default_factory=_default_resources)
    buildings: dict[str, int] = Field(default_factory=dict)
    villagers: dict[str, int] = Field(default_factory=lambda: {"free": 0})
    tools: dict[str, bool] = Field(default_factory=dict)
    weapons: dict[str, bool] = Field(default_factory=dict)
    clothing: dict[str, bool] = Field(default_factory=dict)
    relics: dict[str, bool] = Field(default_factory=dict)
    blessings: dict[str, bool] = Field(default_factory=dict)
    books: dict[str, bool] = Field(default_factory=dict)
    fellowship: dict[str, bool] = Field(default_factory=dict)
    stats: Stats = Field(default_factory=Stats)
    flags: dict[str, bool] = Field(default_factory=dict)
    story: StoryState = Field(default_factory=StoryState)
    events: dict[str, bool] = Field(default_factory=dict)
    triggered_events: dict[str, bool] = Field(default_factory=dict)
    event_last_fired: dict[str, int] = Field(default_factory=dict)
    choice_cooldowns: dict[str, int] = Field(default_factory=dict)
    cooldowns: dict[str, float] = Field(default_factory=dict)
    button_clicks: dict[str, int] = Field(default_factory=dict)
    feast_state: FeastState = Field(default_factory=FeastState)
    great_feast_state: TimedBuff = Field(default_factory=TimedBuff)
    curse_state: TimedBuff = Field(default_factory=TimedBuff)
    mining_boost_state: TimedBuff = Field(default_factory=TimedBuff)
    focus_state: TimedBuff = Field(default_factory=TimedBuff)
    fog_state: FogState = Field(default_factory=FogState)
    log: list[LogEntry] = Field(default_factory=list)
    log_counter: int = Field(default=0, ge=0)
    pending_event: PendingEvent | None = None
    play_time: int = Field(default=0, ge=0)
    is_paused: bool = False
    dev_mode: bool = False

    @field_validator("resources")
    @classmethod
    def validate_resources(cls, value: dict[str, int]) -> dict[str, int]:
        return {name: max(0, int(amount)) for name, amount in value.items()}

    def item_section(self, category: ItemCategory) -> dict[str, bool]:
        return getattr(self, category)

    def buff(self, name: BuffName) -> TimedBuff:
        return getattr(self, BUFF_FIELDS[name])

    def buff_active(self, name: BuffName) -> bool:
        return self.buff(name).active_at(self.play_time)

    def append_log(self, message: str, kind: LogKind = "log", event_id: str | None = None, max_entries: int = 20) -> LogEntry:
        self.log_counter += 1
        entry = LogEntry(
            id=f"log-{self.log_counter}",
            message=message,
            timestamp=self.play_time,
            kind=kind,
            event_id=event_id,
        )
        self.log.append(entry)
        overflow = len(self.log) - int(max_entries)
        if overflow > 0:
            del self.log[:overflow]
        return entry


class SaveData(StateModel):
    save_version: int = Field(default=SAVE_VERSION, ge=1)
    game_state: GameState = Field(alias="gameState")
    timestamp: int = Field(default=0, ge=0)
    play_time: int = Field(default=0, ge=0, alias="playTime")


@dataclass(slots=True)
class ProductionLine:
    resource: str
    base_amount: int
    total_amount: int

    def to_dict(self) -> dict[str, Any]:
        return {"resource": self.resource, "baseAmount": self.base_amount, "totalAmount": self.total_amount}


def total_population(state: GameState) -> int:
    return sum(max(0, int(count)) for count in state.villagers.values())
