"""Resource quantities and the tiered storage ceiling.

Every resource mutation in the engine goes through :func:`apply` so that the
non-negative and storage-limit invariants hold after each call.
"""

from __future__ import annotations

import logging
import math

from .models import GameState

logger = logging.getLogger(__name__)

BASE_STORAGE_LIMIT = 500
# ordered lowest to highest; only the highest owned tier counts
STORAGE_TIERS: tuple[tuple[str, int], ...] = (
    ("supplyHut", 1000),
    ("storehouse", 5000),
    ("fortifiedStorehouse", 10000),
    ("villageWarehouse", 25000),
    ("grandRepository", 50000),
    ("greatVault", 100000),
)
UNLIMITED_RESOURCES = frozenset({"silver", "gold"})
LIMITS_FLAG = "resourceLimitsEnabled"
LIMIT_HIT_FLAG = "hasHitResourceLimit"


def storage_level(state: GameState) -> int:
    """1-based index of the highest storage building owned, 0 when none is built."""
    level = 0
    for index, (building_id, _) in enumerate(STORAGE_TIERS, start=1):
        if state.buildings.get(building_id, 0) > 0:
            level = index
    return level


def highest_storage_building(state: GameState) -> str | None:
    level = storage_level(state)
    return STORAGE_TIERS[level - 1][0] if level else None


def get_limit(state: GameState) -> float:
    if not state.flags.get(LIMITS_FLAG, False):
        return math.inf
    level = storage_level(state)
    if level == 0:
        return BASE_STORAGE_LIMIT
    return STORAGE_TIERS[level - 1][1]


def is_limited(resource: str) -> bool:
    return resource not in UNLIMITED_RESOURCES


def cap(resource: str, proposed: float, state: GameState) -> int:
    value = max(0, int(proposed))
    if not is_limited(resource):
        return value
    limit = get_limit(state)
    if value > limit:
        return int(limit)
    return value


def is_at_limit(state: GameState, resource: str) -> bool:
    if not is_limited(resource):
        return False
    return state.resources.get(resource, 0) >= get_limit(state)


def apply(state: GameState, resource: str, delta: float) -> int:
    """Add ``delta`` then clamp at 0 then clamp at the storage limit.

    A value already above the limit (the limit was lowered) is never shrunk by the
    cap: positive deltas are blocked and negative deltas still reduce it.
    """
    current = state.resources.get(resource, 0)
    proposed = next_value(state, resource, current, delta)
    if is_limited(resource) and current + delta > proposed and proposed > 0:
        mark_limit_hit(state, resource)
    state.resources[resource] = proposed
    return proposed


def next_value(state: GameState, resource: str, current: float, delta: float) -> int:
    """The value ``apply`` would store, without mutating ``state``."""
    proposed = max(0, int(current + delta))
    if is_limited(resource):
        limit = get_limit(state)
        if proposed > limit:
            proposed = min(proposed, max(int(current), int(limit)))
    return proposed


def set_value(state: GameState, resource: str, value: float) -> int:
    current = state.resources.get(resource, 0)
    return apply(state, resource, value - current)


def mark_limit_hit(state: GameState, resource: str) -> None:
    if not state.flags.get(LIMIT_HIT_FLAG, False):
        state.flags[LIMIT_HIT_FLAG] = True
        logger.debug("Storage limit first reached by %s at %s", resource, get_limit(state))
