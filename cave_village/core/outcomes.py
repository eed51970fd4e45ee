from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from . import ledger
from .buffs import start_buff
from .definitions import Outcome
from .effect_values import Constant, EffectDefinitionError, RandomRange, parse_random_range
from .models import BUFF_FIELDS, ITEM_CATEGORIES, STAT_NAMES, GameState, total_population
from .paths import PathError, StatePath
from .population import kill_villagers
from .rng import DeterministicRNG

if TYPE_CHECKING:
    from .loader import ContentBundle

OUTCOME_OPERATORS = frozenset(
    {
        "addResources",
        "add",
        "set",
        "setFlags",
        "unsetFlags",
        "grantItems",
        "addVillagers",
        "killVillagers",
        "killVillagerFraction",
        "addStats",
        "startBuff",
        "log",
        "chance",
        "triggerEvent",
    }
)


class OutcomeDefinitionError(ValueError):
    pass


@dataclass(slots=True)
class OutcomeReport:
    resources_delta: dict[str, int] = field(default_factory=dict)
    villagers_added: int = 0
    villagers_killed: int = 0
    flags_set: set[str] = field(default_factory=set)
    flags_unset: set[str] = field(default_factory=set)
    stats_delta: dict[str, int] = field(default_factory=dict)
    buffs_started: list[str] = field(default_factory=list)
    log_messages: list[str] = field(default_factory=list)
    triggered_events: list[str] = field(default_factory=list)

    def merge(self, other: "OutcomeReport") -> None:
        for resource, delta in other.resources_delta.items():
            self.resources_delta[resource] = self.resources_delta.get(resource, 0) + delta
        self.villagers_added += other.villagers_added
        self.villagers_killed += other.villagers_killed
        self.flags_set.update(other.flags_set)
        self.flags_unset.update(other.flags_unset)
        for stat, delta in other.stats_delta.items():
            self.stats_delta[stat] = self.stats_delta.get(stat, 0) + delta
        self.buffs_started.extend(other.buffs_started)
        self.log_messages.extend(other.log_messages)
        self.triggered_events.extend(other.triggered_events)

    @property
    def log_message(self) -> str | None:
        return " ".join(self.log_messages) if self.log_messages else None


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------


def _amount(raw: Any, where: str) -> Constant | RandomRange:
    if isinstance(raw, bool):
        raise OutcomeDefinitionError(f"{where} must be numeric or random(min,max).")
    if isinstance(raw, (int, float)):
        return Constant(raw)
    if isinstance(raw, str):
        try:
            parsed = parse_random_range(raw)
        except EffectDefinitionError as exc:
            raise OutcomeDefinitionError(f"{where}: {exc}") from exc
        if parsed is not None:
            return parsed
    raise OutcomeDefinitionError(f"{where} must be numeric or random(min,max).")


def _path(raw: str, where: str) -> StatePath:
    try:
        return StatePath.parse(raw)
    except PathError as exc:
        raise OutcomeDefinitionError(f"{where}: {exc}") from exc


def _string_list(value: Any, where: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not value or not all(isinstance(entry, str) and entry for entry in value):
        raise OutcomeDefinitionError(f"{where} must be a non-empty string array.")
    return tuple(value)


def _non_empty_dict(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict) or not value:
        raise OutcomeDefinitionError(f"{where} must be a non-empty object.")
    return value


def compile_outcome(raw: Any, where: str) -> Outcome:
    if not isinstance(raw, dict):
        raise OutcomeDefinitionError(f"{where} must be an object.")
    if len(raw) != 1:
        raise OutcomeDefinitionError(f"{where} must contain exactly one outcome operator.")

    (op, value), = raw.items()
    if op == "addResources":
        payload = _non_empty_dict(value, f"{where}.addResources")
        return Outcome(op, {name: _amount(amount, f"{where}.addResources.{name}") for name, amount in payload.items()})
    if op == "add":
        payload = _non_empty_dict(value, f"{where}.add")
        return Outcome(op, {_path(key, f"{where}.add"): _amount(amount, f"{where}.add.{key}") for key, amount in payload.items()})
    if op == "set":
        payload = _non_empty_dict(value, f"{where}.set")
        for key, entry in payload.items():
            if not isinstance(entry, (bool, int, float)):
                raise OutcomeDefinitionError(f"{where}.set.{key} must be a boolean or number.")
        return Outcome(op, {_path(key, f"{where}.set"): entry for key, entry in payload.items()})
    if op in {"setFlags", "unsetFlags"}:
        return Outcome(op, _string_list(value, f"{where}.{op}"))
    if op == "grantItems":
        paths = tuple(_path(entry, f"{where}.grantItems") for entry in _string_list(value, f"{where}.grantItems"))
        for path in paths:
            if path.section.value not in ITEM_CATEGORIES:
                raise OutcomeDefinitionError(f"{where}.grantItems entry '{path}' is not an item path.")
        return Outcome(op, paths)
    if op == "addVillagers":
        payload = _non_empty_dict(value, f"{where}.addVillagers")
        if not all(isinstance(count, int) and count > 0 for count in payload.values()):
            raise OutcomeDefinitionError(f"{where}.addVillagers counts must be positive integers.")
        return Outcome(op, dict(payload))
    if op == "killVillagers":
        return Outcome(op, _amount(value, f"{where}.killVillagers"))
    if op == "killVillagerFraction":
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 < value <= 1:
            raise OutcomeDefinitionError(f"{where}.killVillagerFraction must be in (0, 1].")
        return Outcome(op, float(value))
    if op == "addStats":
        payload = _non_empty_dict(value, f"{where}.addStats")
        for stat, delta in payload.items():
            if stat not in STAT_NAMES:
                raise OutcomeDefinitionError(f"{where}.addStats uses unknown stat '{stat}'.")
            if isinstance(delta, bool) or not isinstance(delta, int):
                raise OutcomeDefinitionError(f"{where}.addStats.{stat} must be an integer.")
        return Outcome(op, dict(payload))
    if op == "startBuff":
        payload = _non_empty_dict(value, f"{where}.startBuff")
        if payload.get("buff") not in BUFF_FIELDS:
            raise OutcomeDefinitionError(f"{where}.startBuff.buff must be one of {', '.join(BUFF_FIELDS)}.")
        minutes = payload.get("minutes")
        if isinstance(minutes, bool) or not isinstance(minutes, (int, float)) or minutes <= 0:
            raise OutcomeDefinitionError(f"{where}.startBuff.minutes must be positive.")
        return Outcome(op, {"buff": payload["buff"], "minutes": float(minutes), "level": payload.get("level")})
    if op in {"log", "triggerEvent"}:
        if not isinstance(value, str) or not value:
            raise OutcomeDefinitionError(f"{where}.{op} must be a non-empty string.")
        return Outcome(op, value)
    if op == "chance":
        payload = _non_empty_dict(value, f"{where}.chance")
        probability = payload.get("probability")
        if isinstance(probability, bool) or not isinstance(probability, (int, float)) or not 0 <= probability <= 1:
            raise OutcomeDefinitionError(f"{where}.chance.probability must be between 0 and 1.")
        return Outcome(
            op,
            {
                "probability": float(probability),
                "outcomes": compile_outcomes(payload.get("outcomes", []), f"{where}.chance.outcomes"),
                "otherwise": compile_outcomes(payload.get("otherwise", []), f"{where}.chance.otherwise"),
            },
        )

    raise OutcomeDefinitionError(f"{where} uses unsupported outcome operator '{op}'.")


def compile_outcomes(raw: Any, where: str) -> tuple[Outcome, ...]:
    if not isinstance(raw, list):
        raise OutcomeDefinitionError(f"{where} must be an array.")
    return tuple(compile_outcome(entry, f"{where}[{idx}]") for idx, entry in enumerate(raw))


def referenced_events(outcomes: tuple[Outcome, ...]) -> set[str]:
    found: set[str] = set()
    for outcome in outcomes:
        if outcome.op == "triggerEvent":
            found.add(outcome.value)
        elif outcome.op == "chance":
            found |= referenced_events(outcome.value["outcomes"])
            found |= referenced_events(outcome.value["otherwise"])
    return found


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def _draw(amount: Constant | RandomRange, rng: DeterministicRNG) -> int:
    if isinstance(amount, RandomRange):
        return rng.randint(amount.min, amount.max)
    return int(amount.value)


def _add_resource(state: GameState, resource: str, delta: int, report: OutcomeReport) -> None:
    before = state.resources.get(resource, 0)
    after = ledger.apply(state, resource, delta)
    report.resources_delta[resource] = report.resources_delta.get(resource, 0) + (after - before)


def apply_outcomes(
    state: GameState,
    outcomes: tuple[Outcome, ...],
    content: "ContentBundle",
    rng: DeterministicRNG,
) -> OutcomeReport:
    report = OutcomeReport()

    for outcome in outcomes:
        op, value = outcome.op, outcome.value

        if op == "addResources":
            for resource, amount in value.items():
                _add_resource(state, resource, _draw(amount, rng), report)

        elif op == "add":
            for path, amount in value.items():
                delta = _draw(amount, rng)
                if path.is_resource:
                    _add_resource(state, path.key, delta, report)
                else:
                    path.write(state, max(0, int(path.read_number(state) + delta)))

        elif op == "set":
            for path, entry in value.items():
                if path.is_resource:
                    _add_resource(state, path.key, int(entry) - state.resources.get(path.key, 0), report)
                else:
                    path.write(state, entry)

        elif op == "setFlags":
            for flag in value:
                state.flags[flag] = True
                report.flags_set.add(flag)

        elif op == "unsetFlags":
            for flag in value:
                state.flags[flag] = False
                report.flags_unset.add(flag)

        elif op == "grantItems":
            for path in value:
                path.write(state, True)

        elif op == "addVillagers":
            for job_id, count in value.items():
                state.villagers[job_id] = state.villagers.get(job_id, 0) + count
                report.villagers_added += count

        elif op == "killVillagers":
            report.villagers_killed += kill_villagers(state, _draw(value, rng), rng)

        elif op == "killVillagerFraction":
            count = math.ceil(total_population(state) * value)
            report.villagers_killed += kill_villagers(state, count, rng)

        elif op == "addStats":
            for stat, delta in value.items():
                current = getattr(state.stats, stat)
                setattr(state.stats, stat, max(0, current + delta))
                report.stats_delta[stat] = report.stats_delta.get(stat, 0) + delta

        elif op == "startBuff":
            start_buff(state, value["buff"], value["minutes"], value.get("level"))
            report.buffs_started.append(value["buff"])

        elif op == "log":
            report.log_messages.append(value)

        elif op == "triggerEvent":
            report.triggered_events.append(value)

        elif op == "chance":
            branch = value["outcomes"] if rng.roll(value["probability"]) else value["otherwise"]
            report.merge(apply_outcomes(state, branch, content, rng))

        else:
            raise ValueError(f"Unsupported outcome operator '{op}'.")

    return report
