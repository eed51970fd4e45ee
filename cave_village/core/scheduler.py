from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from .bonuses import BonusAggregator
from .buffs import expire_buffs
from .events import ChoiceResolution, EventEngine, FiredEvent
from .models import GameState
from .population import (
    MortalityReport,
    ProductionReport,
    apply_survival_upkeep,
    check_mortality,
    check_stranger,
    run_production_phase,
)
from .rng import DeterministicRNG
from .settings import EngineSettings

if TYPE_CHECKING:
    from .loader import ContentBundle

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CycleReport:
    production: ProductionReport
    mortality: MortalityReport
    stranger_message: str | None = None


@dataclass(slots=True)
class FrameReport:
    ticks: int = 0
    modal_ticks: int = 0
    skipped: bool = False
    fired_events: list[FiredEvent] = field(default_factory=list)
    timed_out: list[ChoiceResolution] = field(default_factory=list)
    cycles: list[CycleReport] = field(default_factory=list)
    expired_buffs: list[str] = field(default_factory=list)
    progress_reset: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.ticks or self.modal_ticks or self.timed_out or self.cycles)


class Simulation:
    """The per-tick and per-cycle phases, run against a live :class:`GameState`."""

    def __init__(
        self,
        content: "ContentBundle",
        aggregator: BonusAggregator,
        events: EventEngine,
        rng: DeterministicRNG,
        settings: EngineSettings | None = None,
    ) -> None:
        self.content = content
        self.aggregator = aggregator
        self.events = events
        self.rng = rng
        self.settings = settings or EngineSettings()

    def decay_cooldowns(self, state: GameState) -> None:
        step = self.settings.tick_seconds
        for action_id, remaining in list(state.cooldowns.items()):
            left = remaining - step
            if left > 1e-9:
                state.cooldowns[action_id] = left
            else:
                del state.cooldowns[action_id]

    def tick(self, state: GameState, report: FrameReport, cycle_due: bool = False) -> None:
        """Advance one tick; when ``cycle_due`` the production cycle runs before the event scan."""
        self.decay_cooldowns(state)
        report.expired_buffs.extend(expire_buffs(state))
        if cycle_due:
            self.production_cycle(state, report)
        # at most one event per tick, cycle or not
        fired = self.events.check_events(state)
        if fired is not None:
            report.fired_events.append(fired)
            report.fired_events.extend(self.chain(state, fired))
        state.play_time += self.settings.tick_interval_ms

    def chain(self, state: GameState, fired: FiredEvent) -> list[FiredEvent]:
        """Fire events queued by ``triggerEvent`` outcomes, breadth first."""
        chained: list[FiredEvent] = []
        queue = list(fired.report.triggered_events) if fired.report is not None else []
        while queue:
            follow_up = self.events.trigger(queue.pop(0), state)
            if follow_up is None:
                continue
            chained.append(follow_up)
            if follow_up.report is not None:
                queue.extend(follow_up.report.triggered_events)
        return chained

    def production_cycle(self, state: GameState, report: FrameReport) -> CycleReport:
        max_entries = self.settings.log_max_entries
        production = run_production_phase(state, self.content, self.settings.dev_multiplier)
        survival = apply_survival_upkeep(state)
        mortality = check_mortality(state, survival, self.aggregator.get_total_madness(state), self.rng)
        for message in mortality.messages:
            state.append_log(message, kind="system", max_entries=max_entries)

        stranger = check_stranger(state, self.content, self.rng, self.settings.production_interval_ms)
        if stranger is not None:
            state.append_log(stranger, max_entries=max_entries)

        cycle = CycleReport(production=production, mortality=mortality, stranger_message=stranger)
        report.cycles.append(cycle)
        logger.debug(
            "Production cycle at %sms: %s, %s deaths",
            state.play_time,
            production.totals(),
            mortality.total,
        )
        return cycle


class SchedulerHandle:
    """Frame-driven loop state: throttle, tick accumulator and production countdown.

    The handle never sleeps or spawns threads; the host calls :meth:`frame` with a
    monotonic millisecond clock and everything runs on that caller's thread.
    """

    def __init__(
        self,
        simulation: Simulation,
        get_state: Callable[[], GameState],
        settings: EngineSettings | None = None,
    ) -> None:
        self.simulation = simulation
        self.get_state = get_state
        self.settings = settings or simulation.settings
        self.running = False
        self.last_frame_ms: float | None = None
        self.last_render_ms: float | None = None
        self.tick_accumulator = 0.0
        self.production_elapsed_ms = 0
        self.progress_elapsed_ms = 0.0

    def start(self, now_ms: float) -> "SchedulerHandle":
        self.running = True
        self.last_frame_ms = now_ms
        self.last_render_ms = None
        self.tick_accumulator = 0.0
        self.progress_elapsed_ms = 0.0
        return self

    def stop(self) -> None:
        self.running = False
        self.last_frame_ms = None
        self.last_render_ms = None
        self.tick_accumulator = 0.0

    def reset_production(self) -> None:
        self.production_elapsed_ms = 0

    @property
    def production_progress(self) -> float:
        """Fraction of the current production cycle already played, in [0, 1)."""
        return self.production_elapsed_ms / self.settings.production_interval_ms

    def frame(self, now_ms: float) -> FrameReport:
        if not self.running or self.last_frame_ms is None:
            return FrameReport(skipped=True)
        if self.last_render_ms is not None and now_ms - self.last_render_ms < self.settings.frame_interval_ms - 1e-6:
            return FrameReport(skipped=True)

        self.last_render_ms = now_ms
        delta = max(0.0, now_ms - self.last_frame_ms)
        self.last_frame_ms = now_ms
        report = FrameReport()

        state = self.get_state()
        if state.is_paused:
            self.tick_accumulator = 0.0
            self.reset_production()
            return report

        self.progress_elapsed_ms += delta
        if self.progress_elapsed_ms >= self.settings.progress_reset_interval_ms:
            self.progress_elapsed_ms = 0.0
            report.progress_reset = True

        tick_ms = self.settings.tick_interval_ms
        self.tick_accumulator += delta
        while self.tick_accumulator >= tick_ms:
            self.tick_accumulator -= tick_ms
            if state.pending_event is not None:
                # play time stays frozen while a choice is open
                self.reset_production()
                report.modal_ticks += 1
                resolution = self.simulation.events.expire_pending(state, tick_ms)
                if resolution is not None:
                    report.timed_out.append(resolution)
                continue

            self.production_elapsed_ms += tick_ms
            cycle_due = self.production_elapsed_ms >= self.settings.production_interval_ms
            if cycle_due:
                self.production_elapsed_ms -= self.settings.production_interval_ms
            self.simulation.tick(state, report, cycle_due=cycle_due)
            report.ticks += 1
        return report
