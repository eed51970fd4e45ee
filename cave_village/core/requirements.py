from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from .models import GameState, total_population
from .paths import PathError, StatePath
from .population import max_population

if TYPE_CHECKING:
    from .loader import ContentBundle

COMPARISON_OPS = ("gte", "gt", "lte", "lt", "eq")


class RequirementError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class AllOf:
    children: tuple["Requirement", ...]


@dataclass(frozen=True, slots=True)
class AnyOf:
    children: tuple["Requirement", ...]


@dataclass(frozen=True, slots=True)
class Not:
    child: "Requirement"


@dataclass(frozen=True, slots=True)
class Truthy:
    path: StatePath


@dataclass(frozen=True, slots=True)
class Compare:
    op: str
    path: StatePath
    value: float


@dataclass(frozen=True, slots=True)
class PopulationBelowMax:
    pass


@dataclass(frozen=True, slots=True)
class FoodBelowPopulation:
    pass


Requirement = Union[AllOf, AnyOf, Not, Truthy, Compare, PopulationBelowMax, FoodBelowPopulation]


def _parse_path(raw: Any, where: str) -> StatePath:
    if not isinstance(raw, str) or not raw:
        raise RequirementError(f"{where} must be a non-empty path string.")
    try:
        return StatePath.parse(raw)
    except PathError as exc:
        raise RequirementError(f"{where}: {exc}") from exc


def compile_requirement(expr: Any, where: str = "requirement") -> Requirement:
    """Compile a content requirement into an immutable expression tree.

    Strings are shorthand for a truthy lookup, with a leading ``!`` negating it.
    """
    if isinstance(expr, str):
        text = expr.strip()
        if text.startswith("!"):
            return Not(Truthy(_parse_path(text[1:], where)))
        return Truthy(_parse_path(text, where))

    if not isinstance(expr, dict):
        raise RequirementError(f"{where} must be an object or path string.")
    if len(expr) != 1:
        raise RequirementError(f"{where} must contain exactly one requirement operator.")

    (op, value), = expr.items()
    if op in {"all", "any"}:
        if not isinstance(value, list) or not value:
            raise RequirementError(f"{where}.{op} must be a non-empty array.")
        children = tuple(compile_requirement(child, f"{where}.{op}[{idx}]") for idx, child in enumerate(value))
        return AllOf(children) if op == "all" else AnyOf(children)
    if op == "not":
        return Not(compile_requirement(value, f"{where}.not"))
    if op == "truthy":
        return Truthy(_parse_path(value, f"{where}.truthy"))
    if op in COMPARISON_OPS:
        if not isinstance(value, dict):
            raise RequirementError(f"{where}.{op} must be an object with path and value.")
        threshold = value.get("value")
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
            raise RequirementError(f"{where}.{op}.value must be numeric.")
        return Compare(op, _parse_path(value.get("path"), f"{where}.{op}.path"), float(threshold))
    if op == "populationBelowMax":
        return PopulationBelowMax()
    if op == "foodBelowPopulation":
        return FoodBelowPopulation()

    raise RequirementError(f"{where} uses unsupported requirement operator '{op}'.")


def _compare(op: str, current: float, threshold: float) -> bool:
    if op == "gte":
        return current >= threshold
    if op == "gt":
        return current > threshold
    if op == "lte":
        return current <= threshold
    if op == "lt":
        return current < threshold
    return current == threshold


_OP_SYMBOLS = {"gte": ">=", "gt": ">", "lte": "<=", "lt": "<", "eq": "=="}


def _check_leaf(req: Requirement, state: GameState, content: "ContentBundle | None") -> tuple[bool, list[str]]:
    if isinstance(req, Truthy):
        # missing values read as None, which is falsy
        if req.path.read(state):
            return True, []
        return False, [f"Requires {req.path}."]

    if isinstance(req, Compare):
        current = req.path.read_number(state)
        if _compare(req.op, current, req.value):
            return True, []
        return False, [f"Requires {req.path} {_OP_SYMBOLS[req.op]} {req.value:g}."]

    if isinstance(req, PopulationBelowMax):
        capacity = max_population(state, content) if content is not None else 0
        if total_population(state) < capacity:
            return True, []
        return False, ["Requires free housing."]

    if isinstance(req, FoodBelowPopulation):
        population = total_population(state)
        if population > 0 and state.resources.get("food", 0) < population:
            return True, []
        return False, ["Requires food below population."]

    return False, ["Unknown requirement."]


def evaluate_requirement(
    req: Requirement | None,
    state: GameState,
    content: "ContentBundle | None" = None,
) -> tuple[bool, list[str]]:
    if req is None:
        return True, []

    if isinstance(req, AllOf):
        all_reasons: list[str] = []
        for child in req.children:
            ok, reasons = evaluate_requirement(child, state, content)
            if not ok:
                all_reasons.extend(reasons)
        return (len(all_reasons) == 0, all_reasons)

    if isinstance(req, AnyOf):
        all_failures: list[str] = []
        for child in req.children:
            ok, reasons = evaluate_requirement(child, state, content)
            if ok:
                return True, []
            all_failures.extend(reasons)
        if all_failures:
            return False, [f"Requires any of: {' OR '.join(all_failures)}"]
        return False, ["Requires any listed condition."]

    if isinstance(req, Not):
        ok, _ = evaluate_requirement(req.child, state, content)
        if ok:
            return False, ["Blocked by negated requirement."]
        return True, []

    return _check_leaf(req, state, content)


def requirement_met(req: Requirement | None, state: GameState, content: "ContentBundle | None" = None) -> bool:
    ok, _ = evaluate_requirement(req, state, content)
    return ok
