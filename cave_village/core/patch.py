from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from . import ledger
from .models import GameState
from .paths import Section, StatePath

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StatePatch:
    """Absolute new values keyed by path, plus side-channel lists.

    Values are computed against the state the patch was resolved from; merging
    re-clamps every resource through the ledger.
    """

    values: dict[StatePath, Any] = field(default_factory=dict)
    log_messages: list[str] = field(default_factory=list)
    triggered_events: list[str] = field(default_factory=list)
    sounds: list[str] = field(default_factory=list)
    cooldowns: dict[str, float] = field(default_factory=dict)
    # resources whose gain was cut short by the storage limit
    capped: set[str] = field(default_factory=set)

    @property
    def is_empty(self) -> bool:
        return not (self.values or self.log_messages or self.triggered_events or self.sounds or self.cooldowns)

    def get(self, path: StatePath, state: GameState) -> Any:
        if path in self.values:
            return self.values[path]
        return path.read(state)

    def get_number(self, path: StatePath, state: GameState) -> float:
        value = self.get(path, state)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 0
        return value

    def set(self, path: StatePath, value: Any) -> None:
        self.values[path] = value

    def add(self, path: StatePath, delta: float, state: GameState) -> Any:
        current = self.get_number(path, state)
        if path.is_resource:
            new_value = ledger.next_value(state, path.key, current, delta)
            if ledger.is_limited(path.key) and current + delta > new_value > 0:
                self.capped.add(path.key)
        else:
            new_value = current + delta
            if isinstance(new_value, float) and new_value.is_integer():
                new_value = int(new_value)
        self.values[path] = new_value
        return new_value

    def resource_deltas(self, state: GameState) -> dict[str, int]:
        deltas: dict[str, int] = {}
        for path, value in self.values.items():
            if path.is_resource:
                deltas[path.key] = int(value) - int(state.resources.get(path.key, 0))
        return deltas

    def to_dict(self) -> dict[str, Any]:
        return {
            "values": {str(path): value for path, value in self.values.items()},
            "logMessages": list(self.log_messages),
            "triggeredEvents": list(self.triggered_events),
            "sounds": list(self.sounds),
            "cooldowns": dict(self.cooldowns),
        }


def merge_patch(state: GameState, patch: StatePatch, log_max_entries: int = 20) -> list[str]:
    """Write ``patch`` into ``state`` and return the queued event ids."""
    for path, value in patch.values.items():
        if path.is_resource:
            ledger.set_value(state, path.key, value)
        elif path.section in (Section.BUILDINGS, Section.VILLAGERS, Section.BUTTONS):
            path.write(state, max(0, int(value)))
        else:
            path.write(state, value)

    for resource in sorted(patch.capped):
        ledger.mark_limit_hit(state, resource)

    for action_id, seconds in patch.cooldowns.items():
        if seconds > 0:
            state.cooldowns[action_id] = seconds
        else:
            state.cooldowns.pop(action_id, None)

    for message in patch.log_messages:
        state.append_log(message, max_entries=log_max_entries)

    if patch.values:
        logger.debug("Merged patch touching %s", ", ".join(str(path) for path in patch.values))
    return list(patch.triggered_events)
