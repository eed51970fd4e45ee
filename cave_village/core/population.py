from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from . import ledger
from .buffs import production_multiplier
from .models import GameState, ProductionLine, total_population
from .rng import DeterministicRNG

if TYPE_CHECKING:
    from .loader import ContentBundle

logger = logging.getLogger(__name__)

PRODUCTION_PASSES = ("gathering", "hunting", "mining")
UPKEEP_PER_VILLAGER = {"food": 1, "wood": 1}
STARVATION_FLAG = "starvationActive"
STARVATION_DEATH_CHANCE = 0.15
FREEZING_DEATH_CHANCE = 0.10
MADNESS_DEATH_THRESHOLD = 50
MADNESS_DEATH_CHANCE = 0.01
STRANGER_BASE_MINUTES = 1.0
STRANGER_HUT_FACTOR = 0.9
STRANGER_MESSAGES = (
    "A stranger approaches through the woods and joins your village.",
    "A traveler arrives and decides to stay.",
    "A wanderer appears from the woods and becomes part of your community.",
    "Someone approaches the village and settles in.",
    "A stranger joins your community, bringing skills and hope.",
    "A newcomer arrives and makes themselves at home.",
)


@dataclass(slots=True)
class ProductionReport:
    lines: dict[str, list[ProductionLine]] = field(default_factory=dict)
    skipped_jobs: list[str] = field(default_factory=list)

    def totals(self) -> dict[str, int]:
        summed: dict[str, int] = {}
        for job_lines in self.lines.values():
            for line in job_lines:
                summed[line.resource] = summed.get(line.resource, 0) + line.total_amount
        return summed


@dataclass(slots=True)
class SurvivalReport:
    population: int = 0
    unfed: int = 0
    unheated: int = 0


@dataclass(slots=True)
class MortalityReport:
    starvation_deaths: int = 0
    freezing_deaths: int = 0
    madness_deaths: int = 0
    messages: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.starvation_deaths + self.freezing_deaths + self.madness_deaths


def max_population(state: GameState, content: "ContentBundle") -> int:
    capacity = 0
    for building_id, level in state.buildings.items():
        building = content.building_by_id.get(building_id)
        if building is not None and level > 0:
            capacity += building.housing * int(level)
    return capacity


def produce(
    job_id: str,
    count: int,
    state: GameState,
    content: "ContentBundle",
    dev_multiplier: int = 100,
) -> list[ProductionLine]:
    """Per-cycle resource deltas for ``count`` villagers working ``job_id``.

    Negative lines are consumption. Feast, curse and dev multipliers only touch
    positive output; the mining boost scales both sides of mining jobs.
    """
    job = content.job_by_id.get(job_id)
    if job is None or count <= 0:
        return []

    feast = production_multiplier(state)
    cursed = state.buff_active("curse")
    boosted = job.category == "mining" and state.buff_active("mining_boost")

    lines: list[ProductionLine] = []
    for resource, amount in job.production.items():
        total = amount * count
        if amount > 0:
            for building_id, level in state.buildings.items():
                if level <= 0:
                    continue
                building = content.building_by_id.get(building_id)
                if building is None:
                    continue
                per_head = building.production_bonus.get(job_id, {}).get(resource, 0)
                total += per_head * count * int(level)
            total *= feast
            for blessing_id, bonus in job.blessing_bonus.items():
                if state.blessings.get(blessing_id, False):
                    total += bonus.get(resource, 0) * count
            if cursed:
                total = math.floor(total * 0.5)
        if boosted:
            total *= 2
        if state.dev_mode and total > 0:
            total *= dev_multiplier
        lines.append(ProductionLine(resource=resource, base_amount=amount, total_amount=int(total)))
    return lines


def run_production_pass(
    state: GameState,
    content: "ContentBundle",
    category: str,
    dev_multiplier: int = 100,
    report: ProductionReport | None = None,
) -> ProductionReport:
    """Apply one production pass with first-come-first-served input checks.

    Jobs are visited in content order against a running copy of resources. A job
    whose consumption cannot be covered is skipped whole for this cycle.
    """
    report = report or ProductionReport()
    available = dict(state.resources)
    for job in content.jobs:
        if job.category != category:
            continue
        count = int(state.villagers.get(job.id, 0))
        if count <= 0:
            continue
        lines = produce(job.id, count, state, content, dev_multiplier)
        consumption = [line for line in lines if line.total_amount < 0]
        if any(available.get(line.resource, 0) + line.total_amount < 0 for line in consumption):
            report.skipped_jobs.append(job.id)
            logger.debug("Production skipped for %s: inputs unavailable", job.id)
            continue
        for line in lines:
            new_value = ledger.apply(state, line.resource, line.total_amount)
            available[line.resource] = new_value
        report.lines[job.id] = lines
    return report


def run_production_phase(state: GameState, content: "ContentBundle", dev_multiplier: int = 100) -> ProductionReport:
    report = ProductionReport()
    for category in PRODUCTION_PASSES:
        run_production_pass(state, content, category, dev_multiplier, report)
    return report


def apply_survival_upkeep(state: GameState) -> SurvivalReport:
    population = total_population(state)
    report = SurvivalReport(population=population)
    if population <= 0:
        return report
    food_before = state.resources.get("food", 0)
    wood_before = state.resources.get("wood", 0)
    report.unfed = max(0, population * UPKEEP_PER_VILLAGER["food"] - food_before)
    report.unheated = max(0, population * UPKEEP_PER_VILLAGER["wood"] - wood_before)
    for resource, per_head in UPKEEP_PER_VILLAGER.items():
        ledger.apply(state, resource, -per_head * population)
    if report.unfed > 0:
        state.flags[STARVATION_FLAG] = True
    return report


def _roll_deaths(rng: DeterministicRNG, trials: int, chance: float) -> int:
    return sum(1 for _ in range(max(0, trials)) if rng.roll(chance))


def check_mortality(
    state: GameState,
    survival: SurvivalReport,
    total_madness: int,
    rng: DeterministicRNG,
) -> MortalityReport:
    report = MortalityReport()
    population = total_population(state)
    if population <= 0:
        return report

    if state.flags.get(STARVATION_FLAG, False) and survival.unfed > 0:
        deaths = _roll_deaths(rng, min(survival.unfed, population), STARVATION_DEATH_CHANCE)
        report.starvation_deaths = kill_villagers(state, deaths, rng)
        if report.starvation_deaths == 1:
            report.messages.append("One villager succumbs to starvation. The remaining villagers grow desperate.")
        elif report.starvation_deaths > 1:
            report.messages.append(
                f"{report.starvation_deaths} villagers starve to death. The survivors look gaunt and hollow-eyed."
            )
        else:
            report.messages.append(
                "Despite the lack of food, everyone survives another day, though they grow weaker and more desperate."
            )

    population = total_population(state)
    if population > 0 and state.resources.get("wood", 0) == 0:
        deaths = _roll_deaths(rng, population, FREEZING_DEATH_CHANCE)
        report.freezing_deaths = kill_villagers(state, deaths, rng)
        if report.freezing_deaths == 1:
            report.messages.append(
                "The bitter cold claims one villager's life. The others huddle together, shivering and afraid."
            )
        elif report.freezing_deaths > 1:
            report.messages.append(
                f"{report.freezing_deaths} villagers freeze to death in the night. "
                "The survivors are weak and traumatized by the loss."
            )

    population = total_population(state)
    if population > 0 and total_madness >= MADNESS_DEATH_THRESHOLD:
        deaths = _roll_deaths(rng, population, MADNESS_DEATH_CHANCE)
        report.madness_deaths = kill_villagers(state, deaths, rng)
        if report.madness_deaths:
            report.messages.append(
                f"{report.madness_deaths} villager(s) walk into the dark woods, whispering, and never return."
            )

    return report


def check_stranger(
    state: GameState,
    content: "ContentBundle",
    rng: DeterministicRNG,
    cycle_ms: int,
) -> str | None:
    """Roll for a new free villager when housing allows; returns the log line on arrival."""
    if total_population(state) >= max_population(state, content):
        return None
    minutes = STRANGER_BASE_MINUTES * STRANGER_HUT_FACTOR ** state.buildings.get("woodenHut", 0)
    chance = min(1.0, (cycle_ms / 60000) / minutes)
    if not rng.roll(chance):
        return None
    state.villagers["free"] = state.villagers.get("free", 0) + 1
    state.story.seen["hasVillagers"] = True
    return rng.pick(STRANGER_MESSAGES)


def kill_villagers(state: GameState, count: int, rng: DeterministicRNG) -> int:
    """Remove up to ``count`` villagers: free ones first, then random assigned heads."""
    remaining = max(0, int(count))
    killed = 0

    free = state.villagers.get("free", 0)
    from_free = min(free, remaining)
    if from_free:
        state.villagers["free"] = free - from_free
        remaining -= from_free
        killed += from_free

    while remaining > 0:
        occupied = [(job_id, heads) for job_id, heads in state.villagers.items() if job_id != "free" and heads > 0]
        assigned = sum(heads for _, heads in occupied)
        if assigned <= 0:
            break
        cursor = rng.next_int(0, assigned)
        for job_id, heads in occupied:
            if cursor < heads:
                state.villagers[job_id] = heads - 1
                break
            cursor -= heads
        remaining -= 1
        killed += 1

    return killed


def assign_villager(state: GameState, job_id: str, content: "ContentBundle") -> bool:
    if job_id not in content.job_by_id:
        return False
    if state.villagers.get("free", 0) <= 0:
        return False
    state.villagers["free"] -= 1
    state.villagers[job_id] = state.villagers.get(job_id, 0) + 1
    return True


def unassign_villager(state: GameState, job_id: str, content: "ContentBundle") -> bool:
    if job_id not in content.job_by_id:
        return False
    if state.villagers.get(job_id, 0) <= 0:
        return False
    state.villagers[job_id] -= 1
    state.villagers["free"] = state.villagers.get("free", 0) + 1
    return True
