from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Literal

from .actions import ActionResolver
from .bonuses import BonusAggregator
from .events import ChoiceResolution, EventEngine, FiredEvent
from .loader import ContentBundle, load_content
from .models import GameState, LogEntry, SaveData
from .patch import StatePatch
from .persistence import build_save_data, create_initial_state, hydrate_save_data
from .population import assign_villager, unassign_villager
from .rng import DeterministicRNG
from .scheduler import FrameReport, SchedulerHandle, Simulation
from .settings import EngineSettings

logger = logging.getLogger(__name__)

AutoplayPolicy = Literal["idle", "gather", "greedy"]
Observer = Callable[[GameState], None]
SoundSink = Callable[[str], None]
LogSink = Callable[[LogEntry], None]

GATHER_PRIORITY = ("lightFire", "chopWood", "hunt", "buildTorch")


@dataclass(slots=True)
class _Sinks:
    observers: list[Observer] = field(default_factory=list)
    sounds: list[SoundSink] = field(default_factory=list)
    logs: list[LogSink] = field(default_factory=list)


class GameEngine:
    """Owns the live state and the services that mutate it.

    Every mutation goes through a method here so observers, sound sinks and log
    sinks see each change exactly once, and the RNG cursor is written back to the
    state before anyone can snapshot it.
    """

    def __init__(
        self,
        content: ContentBundle | None = None,
        settings: EngineSettings | None = None,
        state: GameState | None = None,
        seed: int | str = 1337,
    ) -> None:
        self.content = content if content is not None else load_content()
        self.settings = settings or EngineSettings()
        self._state = state if state is not None else create_initial_state(seed)
        self._sinks = _Sinks()
        self._wire()

    def _wire(self) -> None:
        self.rng = DeterministicRNG.from_game_state(self._state)
        self.aggregator = BonusAggregator(self.content)
        self.resolver = ActionResolver(self.content, self.aggregator, self.rng, self.settings)
        self.events = EventEngine(self.content, self.aggregator, self.rng, self.settings)
        self.simulation = Simulation(self.content, self.aggregator, self.events, self.rng, self.settings)
        scheduler = getattr(self, "scheduler", None)
        self.scheduler = SchedulerHandle(self.simulation, lambda: self._state, self.settings)
        if scheduler is not None and scheduler.running and scheduler.last_frame_ms is not None:
            self.scheduler.start(scheduler.last_frame_ms)
        self._log_cursor = self._state.log_counter

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def state(self) -> GameState:
        return self._state.model_copy(deep=True)

    def snapshot(self) -> SaveData:
        self.rng.sync_to(self._state)
        return build_save_data(self._state)

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self._sinks.observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._sinks.observers:
                self._sinks.observers.remove(observer)

        return unsubscribe

    def add_sound_sink(self, sink: SoundSink) -> None:
        self._sinks.sounds.append(sink)

    def add_log_sink(self, sink: LogSink) -> None:
        self._sinks.logs.append(sink)

    def _play(self, sound: str) -> None:
        for sink in list(self._sinks.sounds):
            try:
                sink(sound)
            except Exception:  # sinks are fire-and-forget
                logger.exception("Sound sink failed for %s", sound)

    def _flush_logs(self) -> None:
        fresh = self._state.log_counter - self._log_cursor
        self._log_cursor = self._state.log_counter
        if fresh <= 0:
            return
        for entry in self._state.log[-fresh:]:
            for sink in list(self._sinks.logs):
                try:
                    sink(entry)
                except Exception:
                    logger.exception("Log sink failed for %s", entry.id)

    def _committed(self) -> None:
        self.rng.sync_to(self._state)
        self._flush_logs()
        snapshot = self._state
        for observer in list(self._sinks.observers):
            try:
                observer(snapshot)
            except Exception:
                logger.exception("State observer failed")

    def _announce(self, fired: list[FiredEvent]) -> None:
        for event in fired:
            spec = self.content.event_by_id.get(event.event_id)
            if spec is not None and spec.sound:
                self._play(spec.sound)

    def _trigger_all(self, event_ids: list[str]) -> list[FiredEvent]:
        fired: list[FiredEvent] = []
        for event_id in event_ids:
            event = self.events.trigger(event_id, self._state)
            if event is None:
                continue
            fired.append(event)
            fired.extend(self.simulation.chain(self._state, event))
        return fired

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def execute_action(self, action_id: str) -> StatePatch | None:
        patch = self.resolver.execute(action_id, self._state)
        if patch is None:
            return None
        for sound in patch.sounds:
            self._play(sound)
        self._announce(self._trigger_all(list(patch.triggered_events)))
        self._committed()
        return patch

    def choose(self, event_id: str, choice_id: str) -> ChoiceResolution | None:
        resolution = self.events.apply_choice(self._state, event_id, choice_id)
        if resolution is None:
            return None
        self._announce(self._trigger_all(list(resolution.report.triggered_events)))
        self._committed()
        return resolution

    def assign(self, job_id: str) -> bool:
        changed = assign_villager(self._state, job_id, self.content)
        if changed:
            self._committed()
        return changed

    def unassign(self, job_id: str) -> bool:
        changed = unassign_villager(self._state, job_id, self.content)
        if changed:
            self._committed()
        return changed

    def toggle_pause(self) -> bool:
        self._state.is_paused = not self._state.is_paused
        self._committed()
        return self._state.is_paused

    def restart(self, seed: int | str | None = None) -> None:
        self._state = create_initial_state(self._state.seed if seed is None else seed, dev_mode=self._state.dev_mode)
        self._wire()
        self._committed()

    def load(self, snapshot: SaveData | dict[str, Any]) -> None:
        if isinstance(snapshot, SaveData):
            save = hydrate_save_data(snapshot.model_dump(mode="json", by_alias=True))
        else:
            save = hydrate_save_data(snapshot)
        self._state = save.game_state
        self._wire()
        self._committed()

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def start(self, now_ms: float) -> None:
        self.scheduler.start(now_ms)

    def stop(self) -> None:
        self.scheduler.stop()

    def frame(self, now_ms: float) -> FrameReport:
        report = self.scheduler.frame(now_ms)
        if report.skipped:
            return report
        for resolution in report.timed_out:
            report.fired_events.extend(self._trigger_all(list(resolution.report.triggered_events)))
        self._announce(report.fired_events)
        # a progress reset re-syncs observers even on a frame with no ticks
        if report.changed or report.fired_events or report.progress_reset:
            self._committed()
        return report

    @property
    def production_progress(self) -> float:
        return self.scheduler.production_progress

    def advance(self, milliseconds: int, start_ms: float = 0.0) -> list[FrameReport]:
        """Drive frames at the configured frame rate for ``milliseconds`` of wall time."""
        if not self.scheduler.running:
            self.start(start_ms)
        clock = self.scheduler.last_frame_ms or start_ms
        end = clock + milliseconds
        reports: list[FrameReport] = []
        while clock < end:
            clock = min(end, clock + self.settings.frame_interval_ms)
            reports.append(self.frame(clock))
        return reports


# ---------------------------------------------------------------------------
# Headless autoplay
# ---------------------------------------------------------------------------


def _pick_choice(engine: GameEngine, policy: AutoplayPolicy) -> tuple[str, str] | None:
    pending = engine._state.pending_event
    if pending is None:
        return None
    spec = engine.content.event_by_id.get(pending.event_id)
    if spec is None:
        return None
    views = [view for view in engine.events.choice_views(spec, engine._state) if not view.locked]
    if not views:
        return None
    if policy == "greedy":
        views.sort(key=lambda view: -(view.success_chance if view.success_chance is not None else 1.0))
    return spec.id, views[0].id


def autoplay_step(engine: GameEngine, policy: AutoplayPolicy) -> None:
    """Answer any open choice, staff free villagers, then try one action."""
    picked = _pick_choice(engine, policy)
    if picked is not None:
        engine.choose(*picked)

    state = engine._state
    while state.villagers.get("free", 0) > 0 and engine.content.jobs:
        target = min(engine.content.jobs, key=lambda job: (state.villagers.get(job.id, 0), job.id))
        if not engine.assign(target.id):
            break

    if policy == "idle":
        return
    candidates: list[str] = [action_id for action_id in GATHER_PRIORITY if action_id in engine.content.action_by_id]
    if policy == "greedy":
        candidates = [action.id for action in engine.content.actions if action.id not in candidates] + candidates
    for action_id in candidates:
        if not engine.resolver.should_show(action_id, state):
            continue
        ok, _ = engine.resolver.can_execute(action_id, state)
        if ok and engine.execute_action(action_id) is not None:
            return


def run_simulation(
    engine: GameEngine,
    seconds: int,
    policy: AutoplayPolicy = "gather",
) -> tuple[GameState, list[LogEntry]]:
    """Play ``seconds`` of game time headlessly, acting once per simulated second."""
    timeline: list[LogEntry] = []
    engine.add_log_sink(timeline.append)
    engine.start(0.0)
    clock = 0.0
    frame_clock = 0.0
    for _ in range(seconds):
        autoplay_step(engine, policy)
        clock += 1000
        while frame_clock < clock:
            frame_clock = min(clock, frame_clock + engine.settings.frame_interval_ms)
            engine.frame(frame_clock)
    engine.stop()
    return engine.state, timeline
