from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Union

from .paths import PathError, StatePath
from .requirements import Requirement, RequirementError, compile_requirement

RANDOM_RANGE_PATTERN = re.compile(r"^random\(\s*(-?\d+)\s*,\s*(-?\d+)\s*\)$")


class EffectDefinitionError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class Constant:
    value: int | float | bool


@dataclass(frozen=True, slots=True)
class RandomRange:
    min: int
    max: int

    def __str__(self) -> str:
        return f"random({self.min},{self.max})"


@dataclass(frozen=True, slots=True)
class Probabilistic:
    chance: float
    value: "EffectValue"
    condition: Requirement | None = None
    log_message: str | None = None
    trigger_event: str | None = None


@dataclass(frozen=True, slots=True)
class Computed:
    name: str


EffectValue = Union[Constant, RandomRange, Probabilistic, Computed]
EffectMap = dict[StatePath, EffectValue]


def parse_random_range(raw: str) -> RandomRange | None:
    match = RANDOM_RANGE_PATTERN.match(raw.strip())
    if match is None:
        return None
    low, high = int(match.group(1)), int(match.group(2))
    if high < low:
        raise EffectDefinitionError(f"'{raw}' has max below min.")
    return RandomRange(low, high)


def parse_effect_value(raw: Any, where: str) -> EffectValue:
    if isinstance(raw, bool) or isinstance(raw, (int, float)):
        return Constant(raw)

    if isinstance(raw, str):
        if raw.startswith("computed:"):
            return Computed(raw[len("computed:") :])
        parsed = parse_random_range(raw)
        if parsed is None:
            raise EffectDefinitionError(f"{where} has unsupported value '{raw}'.")
        return parsed

    if isinstance(raw, dict):
        if "probability" not in raw or "value" not in raw:
            raise EffectDefinitionError(f"{where} probability effects need 'probability' and 'value'.")
        chance = raw["probability"]
        if isinstance(chance, bool) or not isinstance(chance, (int, float)) or not 0 <= chance <= 1:
            raise EffectDefinitionError(f"{where}.probability must be between 0 and 1.")
        unknown = set(raw) - {"probability", "value", "condition", "logMessage", "triggerEvent"}
        if unknown:
            raise EffectDefinitionError(f"{where} has unknown probability keys: {', '.join(sorted(unknown))}.")
        inner = parse_effect_value(raw["value"], f"{where}.value")
        if isinstance(inner, (Probabilistic, Computed)):
            raise EffectDefinitionError(f"{where}.value must be a number, boolean or random range.")
        condition = None
        if raw.get("condition") is not None:
            try:
                condition = compile_requirement(raw["condition"], f"{where}.condition")
            except RequirementError as exc:
                raise EffectDefinitionError(str(exc)) from exc
        return Probabilistic(
            chance=float(chance),
            value=inner,
            condition=condition,
            log_message=raw.get("logMessage"),
            trigger_event=raw.get("triggerEvent"),
        )

    raise EffectDefinitionError(f"{where} has unsupported value type {type(raw).__name__}.")


def parse_effect_map(raw: dict[str, Any], where: str) -> EffectMap:
    parsed: EffectMap = {}
    for raw_path, raw_value in raw.items():
        try:
            path = StatePath.parse(raw_path)
        except PathError as exc:
            raise EffectDefinitionError(f"{where}: {exc}") from exc
        parsed[path] = parse_effect_value(raw_value, f"{where}.{raw_path}")
    return parsed


def _is_tiered(raw: dict[str, Any]) -> bool:
    return bool(raw) and all(isinstance(key, str) and key.isdigit() for key in raw)


@dataclass(frozen=True, slots=True)
class TieredTable:
    """A flat map, a table of maps keyed by level, or a named computed builder."""

    flat: EffectMap | None = None
    tiers: tuple[tuple[int, EffectMap], ...] = ()
    computed: str | None = None

    @classmethod
    def parse(cls, raw: dict[str, Any] | str, where: str) -> "TieredTable":
        if isinstance(raw, str):
            if not raw.startswith("computed:"):
                raise EffectDefinitionError(f"{where} must be an object or 'computed:<name>'.")
            return cls(computed=raw[len("computed:") :])
        if not raw:
            return cls(flat={})
        if _is_tiered(raw):
            tiers = []
            for key in sorted(raw, key=int):
                tier_raw = raw[key]
                if not isinstance(tier_raw, dict):
                    raise EffectDefinitionError(f"{where}.{key} must be an object.")
                tiers.append((int(key), parse_effect_map(tier_raw, f"{where}.{key}")))
            return cls(tiers=tuple(tiers))
        return cls(flat=parse_effect_map(raw, where))

    @property
    def is_tiered(self) -> bool:
        return bool(self.tiers)

    def select(self, level: int) -> EffectMap | None:
        """Pick the highest tier whose key does not exceed ``level``.

        Returns None when no tier is unlocked yet or the table is computed.
        """
        if self.flat is not None:
            return self.flat
        selected: EffectMap | None = None
        for tier_level, tier_map in self.tiers:
            if tier_level <= level:
                selected = tier_map
        return selected

    def paths(self) -> set[StatePath]:
        collected: set[StatePath] = set(self.flat or {})
        for _, tier_map in self.tiers:
            collected.update(tier_map)
        return collected
