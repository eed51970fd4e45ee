from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .models import GameState


class Section(str, Enum):
    RESOURCES = "resources"
    BUILDINGS = "buildings"
    VILLAGERS = "villagers"
    TOOLS = "tools"
    WEAPONS = "weapons"
    CLOTHING = "clothing"
    RELICS = "relics"
    BLESSINGS = "blessings"
    BOOKS = "books"
    FELLOWSHIP = "fellowship"
    STATS = "stats"
    FLAGS = "flags"
    STORY = "story"
    EVENTS = "events"
    BUTTONS = "buttons"


NUMERIC_SECTIONS = frozenset({Section.RESOURCES, Section.BUILDINGS, Section.VILLAGERS, Section.STATS, Section.BUTTONS})
BOOLEAN_SECTIONS = frozenset(
    {
        Section.TOOLS,
        Section.WEAPONS,
        Section.CLOTHING,
        Section.RELICS,
        Section.BLESSINGS,
        Section.BOOKS,
        Section.FELLOWSHIP,
        Section.FLAGS,
        Section.EVENTS,
    }
)


class PathError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class StatePath:
    section: Section
    key: str

    @classmethod
    def parse(cls, raw: str) -> "StatePath":
        text = raw.strip()
        # story paths are written "story.seen.<key>" in content
        if text.startswith("story.seen."):
            key = text[len("story.seen.") :]
            if not key:
                raise PathError(f"Path '{raw}' is missing a key.")
            return cls(Section.STORY, key)
        head, sep, key = text.partition(".")
        if not sep or not key or "." in key:
            raise PathError(f"Path '{raw}' must look like '<section>.<key>'.")
        try:
            section = Section(head)
        except ValueError as exc:
            raise PathError(f"Path '{raw}' uses unknown section '{head}'.") from exc
        return cls(section, key)

    @classmethod
    def resource(cls, name: str) -> "StatePath":
        return cls(Section.RESOURCES, name)

    @property
    def is_resource(self) -> bool:
        return self.section is Section.RESOURCES

    @property
    def is_numeric(self) -> bool:
        return self.section in NUMERIC_SECTIONS or self.section is Section.STORY

    def container(self, state: GameState) -> dict[str, Any]:
        if self.section is Section.STORY:
            return state.story.seen
        if self.section is Section.BUTTONS:
            return state.button_clicks
        if self.section is Section.STATS:
            raise PathError("Stats are not stored in a mapping.")
        return getattr(state, self.section.value)

    def read(self, state: GameState) -> Any:
        if self.section is Section.STATS:
            return getattr(state.stats, self.key, None)
        return self.container(state).get(self.key)

    def read_number(self, state: GameState) -> float:
        value = self.read(state)
        if isinstance(value, bool):
            return 1.0 if value else 0.0
        if isinstance(value, (int, float)):
            return value
        return 0

    def write(self, state: GameState, value: Any) -> None:
        if self.section is Section.STATS:
            if not hasattr(state.stats, self.key):
                raise PathError(f"Unknown stat '{self.key}'.")
            setattr(state.stats, self.key, int(value))
            return
        self.container(state)[self.key] = value

    def __str__(self) -> str:
        if self.section is Section.STORY:
            return f"story.seen.{self.key}"
        return f"{self.section.value}.{self.key}"
