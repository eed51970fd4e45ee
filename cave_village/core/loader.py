from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, TypeVar

from pydantic import TypeAdapter, ValidationError

from .computed import DEFAULT_COMPUTED, ComputedBuilder
from .definitions import ActionSpec, ChoiceSpec, EventSpec, Outcome, SuccessFormula, TimeProbability
from .effect_values import Computed, EffectDefinitionError, EffectMap, Probabilistic, TieredTable
from .models import (
    ITEM_CATEGORIES,
    RESOURCE_NAMES,
    STAT_NAMES,
    ActionModel,
    BuildingDefinition,
    EffectDefinition,
    EventChoiceModel,
    EventModel,
    JobDefinition,
)
from .outcomes import OutcomeDefinitionError, compile_outcomes, referenced_events
from .paths import PathError, Section, StatePath
from .requirements import AllOf, AnyOf, Compare, Not, Requirement, RequirementError, Truthy, compile_requirement

T = TypeVar("T")

DEFAULT_CONTENT_DIR = Path(__file__).resolve().parents[1] / "content"


class ContentValidationError(ValueError):
    def __init__(self, message: str, details: list[str] | None = None) -> None:
        self.details = details or []
        suffix = "\n".join(self.details)
        super().__init__(f"{message}\n{suffix}" if suffix else message)


@dataclass(slots=True)
class ContentBundle:
    effects: list[EffectDefinition]
    buildings: list[BuildingDefinition]
    jobs: list[JobDefinition]
    actions: list[ActionSpec]
    events: list[EventSpec]
    effect_by_id: dict[str, EffectDefinition]
    building_by_id: dict[str, BuildingDefinition]
    job_by_id: dict[str, JobDefinition]
    action_by_id: dict[str, ActionSpec]
    event_by_id: dict[str, EventSpec]
    computed: dict[str, ComputedBuilder] = field(default_factory=dict)


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ContentValidationError(f"Missing content file: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ContentValidationError(f"Invalid JSON in {path.name}: {exc.msg} at line {exc.lineno}") from exc


def _load_typed_list(path: Path, item_type: type[T]) -> list[T]:
    data = _load_json(path)
    adapter = TypeAdapter(list[item_type])  # type: ignore[index]
    try:
        return adapter.validate_python(data)
    except ValidationError as exc:
        errors = []
        for issue in exc.errors():
            issue_path = ".".join(str(part) for part in issue.get("loc", [])) or "(root)"
            errors.append(f"{path.name}:{issue_path}: {issue.get('msg', 'validation error')}")
        raise ContentValidationError(f"Schema validation failed for {path.name}.", errors) from exc


def _assert_unique_ids(kind: str, values: Iterable[Any]) -> None:
    seen: set[str] = set()
    for entry in values:
        entry_id = entry.id
        if entry_id in seen:
            raise ContentValidationError(f"Duplicate {kind} id '{entry_id}'.")
        seen.add(entry_id)


def _assert_ref(exists: bool, message: str) -> None:
    if not exists:
        raise ContentValidationError(message)


# ---------------------------------------------------------------------------
# Reference checks
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _Refs:
    building_ids: set[str]
    job_ids: set[str]
    effect_ids: set[str]
    event_ids: set[str]
    computed_names: set[str]


def _check_path(path: StatePath, where: str, refs: _Refs) -> None:
    if path.section is Section.RESOURCES:
        _assert_ref(path.key in RESOURCE_NAMES, f"{where} references unknown resource '{path.key}'.")
    elif path.section is Section.BUILDINGS:
        _assert_ref(path.key in refs.building_ids, f"{where} references missing building '{path.key}'.")
    elif path.section is Section.VILLAGERS:
        _assert_ref(
            path.key == "free" or path.key in refs.job_ids,
            f"{where} references missing job '{path.key}'.",
        )
    elif path.section is Section.STATS:
        _assert_ref(path.key in STAT_NAMES, f"{where} references unknown stat '{path.key}'.")
    elif path.section.value in ITEM_CATEGORIES:
        _assert_ref(path.key in refs.effect_ids, f"{where} references missing item '{path.key}'.")


def _check_requirement(req: Requirement | None, where: str, refs: _Refs) -> None:
    if req is None:
        return
    if isinstance(req, (AllOf, AnyOf)):
        for child in req.children:
            _check_requirement(child, where, refs)
    elif isinstance(req, Not):
        _check_requirement(req.child, where, refs)
    elif isinstance(req, (Truthy, Compare)):
        _check_path(req.path, where, refs)


def _check_effect_map(effect_map: EffectMap, where: str, refs: _Refs) -> None:
    for path, value in effect_map.items():
        _check_path(path, where, refs)
        if isinstance(value, Computed):
            _assert_ref(value.name in refs.computed_names, f"{where} references unknown computed value '{value.name}'.")
        if isinstance(value, Probabilistic):
            _check_requirement(value.condition, f"{where}.{path}.condition", refs)
            if value.trigger_event is not None:
                _assert_ref(
                    value.trigger_event in refs.event_ids,
                    f"{where}.{path} triggers missing event '{value.trigger_event}'.",
                )


def _check_table(table: TieredTable, where: str, refs: _Refs) -> None:
    if table.computed is not None:
        _assert_ref(table.computed in refs.computed_names, f"{where} references unknown computed table '{table.computed}'.")
        return
    if table.flat is not None:
        _check_effect_map(table.flat, where, refs)
    for level, tier_map in table.tiers:
        _check_effect_map(tier_map, f"{where}.{level}", refs)


def _check_outcomes(outcomes: tuple[Outcome, ...], where: str, refs: _Refs) -> None:
    for idx, outcome in enumerate(outcomes):
        at = f"{where}[{idx}]"
        if outcome.op == "addResources":
            for resource in outcome.value:
                _assert_ref(resource in RESOURCE_NAMES, f"{at}.addResources uses unknown resource '{resource}'.")
        elif outcome.op in {"add", "set"}:
            for path in outcome.value:
                _check_path(path, f"{at}.{outcome.op}", refs)
        elif outcome.op == "grantItems":
            for path in outcome.value:
                _check_path(path, f"{at}.grantItems", refs)
        elif outcome.op == "addVillagers":
            for job_id in outcome.value:
                _assert_ref(
                    job_id == "free" or job_id in refs.job_ids,
                    f"{at}.addVillagers references missing job '{job_id}'.",
                )
        elif outcome.op == "chance":
            _check_outcomes(outcome.value["outcomes"], f"{at}.chance.outcomes", refs)
            _check_outcomes(outcome.value["otherwise"], f"{at}.chance.otherwise", refs)
    for event_id in referenced_events(outcomes):
        _assert_ref(event_id in refs.event_ids, f"{where} triggers missing event '{event_id}'.")


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------


def _compile_requirement(expr: Any, where: str) -> Requirement | None:
    if expr is None:
        return None
    try:
        return compile_requirement(expr, where)
    except RequirementError as exc:
        raise ContentValidationError(str(exc)) from exc


def _compile_outcomes(raw: list[dict[str, Any]], where: str) -> tuple[Outcome, ...]:
    try:
        return compile_outcomes(raw, where)
    except OutcomeDefinitionError as exc:
        raise ContentValidationError(str(exc)) from exc


def _compile_action(model: ActionModel) -> ActionSpec:
    where = f"action '{model.id}'"
    try:
        cost = TieredTable.parse(model.cost, f"{where} cost")
        effects = TieredTable.parse(model.effects, f"{where} effects")
    except EffectDefinitionError as exc:
        raise ContentValidationError(str(exc)) from exc
    return ActionSpec(
        id=model.id,
        label=model.label,
        category=model.category,
        cost=cost,
        effects=effects,
        building=model.building,
        level_key=model.level_key,
        max_level=model.max_level,
        cooldown=model.cooldown,
        show_when=_compile_requirement(model.show_when, f"{where} showWhen"),
        requires=_compile_requirement(model.requires, f"{where} requires"),
        button_key=model.button_key,
        sound=model.sound,
    )


def _compile_choice(event_id: str, model: EventChoiceModel) -> ChoiceSpec:
    where = f"event '{event_id}' choice '{model.id}'"
    success = None
    if model.success_chance is not None:
        success = SuccessFormula(
            base=model.success_chance.base,
            coefficients=tuple(model.success_chance.stats.items()),
            cruel_mode_penalty=model.success_chance.cruel_mode_penalty,
        )
        if model.effect:
            raise ContentValidationError(f"{where} declares successChance, use onSuccess/onFailure instead of effect.")
    elif model.on_success or model.on_failure:
        raise ContentValidationError(f"{where} declares onSuccess/onFailure without successChance.")
    return ChoiceSpec(
        id=model.id,
        label=model.label,
        requires=_compile_requirement(model.requires, f"{where} requires"),
        success=success,
        effect=_compile_outcomes(model.effect, f"{where} effect"),
        on_success=_compile_outcomes(model.on_success, f"{where} onSuccess"),
        on_failure=_compile_outcomes(model.on_failure, f"{where} onFailure"),
        cooldown=model.cooldown,
    )


def _compile_time_probability(model: EventModel) -> TimeProbability | None:
    raw = model.time_probability
    if raw is None:
        return None
    if isinstance(raw, (int, float)):
        if raw <= 0:
            raise ContentValidationError(f"event '{model.id}' timeProbability must be positive.")
        return TimeProbability(base=float(raw))
    path = None
    if raw.path is not None:
        try:
            path = StatePath.parse(raw.path)
        except PathError as exc:
            raise ContentValidationError(f"event '{model.id}' timeProbability: {exc}") from exc
    return TimeProbability(base=raw.base, path=path, factor=raw.factor)


def _compile_event(model: EventModel) -> EventSpec:
    where = f"event '{model.id}'"
    choice_ids: set[str] = set()
    for choice in model.choices:
        if choice.id in choice_ids:
            raise ContentValidationError(f"{where} has duplicate choice id '{choice.id}'.")
        choice_ids.add(choice.id)
    if model.fallback_choice is not None:
        _assert_ref(
            model.fallback_choice in choice_ids,
            f"{where} fallbackChoice references missing choice '{model.fallback_choice}'.",
        )

    choices = tuple(_compile_choice(model.id, choice) for choice in model.choices)
    return EventSpec(
        id=model.id,
        message=model.message,
        title=model.title or model.id,
        category=model.category,
        condition=_compile_requirement(model.condition, f"{where} condition"),
        trigger_type=model.trigger_type,
        time_probability=_compile_time_probability(model),
        priority=model.priority,
        repeatable=model.repeatable,
        effect=_compile_outcomes(model.effect, f"{where} effect"),
        choices=choices,
        fallback_choice=model.fallback_choice,
        time_limit=model.time_limit,
        sound=model.sound,
        choice_by_id={choice.id: choice for choice in choices},
    )


def _validate_definitions(
    effects: list[EffectDefinition],
    buildings: list[BuildingDefinition],
    jobs: list[JobDefinition],
    refs: _Refs,
) -> None:
    for effect in effects:
        for resource in (
            resource for bonus in effect.bonuses.action_bonuses.values() for resource in bonus.resource_bonus
        ):
            _assert_ref(resource in RESOURCE_NAMES, f"effect '{effect.id}' boosts unknown resource '{resource}'.")

    for building in buildings:
        for job_id, per_head in building.production_bonus.items():
            _assert_ref(job_id in refs.job_ids, f"building '{building.id}' productionBonus references missing job '{job_id}'.")
            for resource in per_head:
                _assert_ref(resource in RESOURCE_NAMES, f"building '{building.id}' boosts unknown resource '{resource}'.")

    for job in jobs:
        for resource in job.production:
            _assert_ref(resource in RESOURCE_NAMES, f"job '{job.id}' produces unknown resource '{resource}'.")
        for blessing_id in job.blessing_bonus:
            blessing = next((effect for effect in effects if effect.id == blessing_id), None)
            _assert_ref(
                blessing is not None and blessing.category == "blessings",
                f"job '{job.id}' blessingBonus references missing blessing '{blessing_id}'.",
            )


def load_content(
    content_dir: Path | str = DEFAULT_CONTENT_DIR,
    computed: dict[str, ComputedBuilder] | None = None,
) -> ContentBundle:
    base_path = Path(content_dir)
    computed = dict(DEFAULT_COMPUTED if computed is None else computed)

    effects = _load_typed_list(base_path / "effects.json", EffectDefinition)
    buildings = _load_typed_list(base_path / "buildings.json", BuildingDefinition)
    jobs = _load_typed_list(base_path / "jobs.json", JobDefinition)
    action_models = _load_typed_list(base_path / "actions.json", ActionModel)
    event_models = _load_typed_list(base_path / "events.json", EventModel)

    _assert_unique_ids("effect", effects)
    _assert_unique_ids("building", buildings)
    _assert_unique_ids("job", jobs)
    _assert_unique_ids("action", action_models)
    _assert_unique_ids("event", event_models)
    _assert_ref("free" not in {job.id for job in jobs}, "Job id 'free' is reserved for unassigned villagers.")

    refs = _Refs(
        building_ids={building.id for building in buildings},
        job_ids={job.id for job in jobs},
        effect_ids={effect.id for effect in effects},
        event_ids={event.id for event in event_models},
        computed_names=set(computed),
    )
    _validate_definitions(effects, buildings, jobs, refs)

    actions = [_compile_action(model) for model in action_models]
    for action in actions:
        where = f"action '{action.id}'"
        if action.level_key is not None:
            _assert_ref(action.level_key in refs.building_ids, f"{where} levelKey references missing building '{action.level_key}'.")
        _check_requirement(action.show_when, f"{where} showWhen", refs)
        _check_requirement(action.requires, f"{where} requires", refs)
        _check_table(action.cost, f"{where} cost", refs)
        _check_table(action.effects, f"{where} effects", refs)

    events = [_compile_event(model) for model in event_models]
    for event in events:
        where = f"event '{event.id}'"
        _check_requirement(event.condition, f"{where} condition", refs)
        _check_outcomes(event.effect, f"{where} effect", refs)
        if event.time_probability is not None and event.time_probability.path is not None:
            _check_path(event.time_probability.path, f"{where} timeProbability", refs)
        for choice in event.choices:
            at = f"{where} choice '{choice.id}'"
            _check_requirement(choice.requires, f"{at} requires", refs)
            _check_outcomes(choice.effect, f"{at} effect", refs)
            _check_outcomes(choice.on_success, f"{at} onSuccess", refs)
            _check_outcomes(choice.on_failure, f"{at} onFailure", refs)

    return ContentBundle(
        effects=effects,
        buildings=buildings,
        jobs=jobs,
        actions=actions,
        events=events,
        effect_by_id={effect.id: effect for effect in effects},
        building_by_id={building.id: building for building in buildings},
        job_by_id={job.id: job for job in jobs},
        action_by_id={action.id: action for action in actions},
        event_by_id={event.id: event for event in events},
        computed=computed,
    )
