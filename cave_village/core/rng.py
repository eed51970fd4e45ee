from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence, TypeVar

if TYPE_CHECKING:
    from .models import GameState

T = TypeVar("T")


def seed_to_uint32(seed: int | str) -> int:
    text = str(seed).encode("utf-8")
    digest = hashlib.sha256(text).hexdigest()
    value = int(digest[:8], 16)
    return value if value != 0 else 0x9E3779B9


@dataclass(slots=True)
class DeterministicRNG:
    """Single uniform source for every roll the simulation makes."""

    seed: int | str
    state: int
    calls: int = 0

    @classmethod
    def from_seed(cls, seed: int | str) -> "DeterministicRNG":
        return cls(seed=seed, state=seed_to_uint32(seed), calls=0)

    @classmethod
    def from_game_state(cls, game_state: "GameState") -> "DeterministicRNG":
        return cls(seed=game_state.seed, state=game_state.rng_state, calls=game_state.rng_calls)

    def sync_to(self, game_state: "GameState") -> None:
        game_state.rng_state = self.state
        game_state.rng_calls = self.calls

    def _next_uint32(self) -> int:
        value = self.state & 0xFFFFFFFF
        value ^= (value << 13) & 0xFFFFFFFF
        value ^= (value >> 17) & 0xFFFFFFFF
        value ^= (value << 5) & 0xFFFFFFFF
        value &= 0xFFFFFFFF
        self.state = value if value != 0 else 0x6D2B79F5
        self.calls += 1
        return self.state

    def next_float(self) -> float:
        return self._next_uint32() / 2**32

    def next_int(self, min_inclusive: int, max_exclusive: int) -> int:
        if max_exclusive <= min_inclusive:
            raise ValueError(
                f"next_int requires max_exclusive ({max_exclusive}) > min_inclusive ({min_inclusive})."
            )
        span = max_exclusive - min_inclusive
        return min_inclusive + int(self.next_float() * span)

    def randint(self, low: int, high: int) -> int:
        """Inclusive on both ends; a collapsed range returns ``low`` without drawing."""
        if high <= low:
            return low
        return self.next_int(low, high + 1)

    def roll(self, probability: float) -> bool:
        return self.next_float() < probability

    def pick(self, values: Sequence[T]) -> T:
        if not values:
            raise ValueError("pick requires at least one value.")
        return values[self.next_int(0, len(values))]
