from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .bonuses import BonusAggregator
from .definitions import ChoiceSpec, EventSpec, SuccessFormula
from .models import GameState, PendingEvent
from .outcomes import OutcomeReport, apply_outcomes
from .requirements import evaluate_requirement, requirement_met
from .rng import DeterministicRNG
from .settings import EngineSettings

if TYPE_CHECKING:
    from .loader import ContentBundle

logger = logging.getLogger(__name__)

CRUEL_MODE_FLAG = "cruelMode"


@dataclass(slots=True)
class ChoiceView:
    id: str
    label: str
    locked: bool
    lock_reasons: list[str]
    success_chance: float | None = None


@dataclass(slots=True)
class FiredEvent:
    event_id: str
    title: str
    message: str
    choices: list[ChoiceView] = field(default_factory=list)
    report: OutcomeReport | None = None
    time_limit_ms: int | None = None

    @property
    def awaiting_choice(self) -> bool:
        return bool(self.choices)


@dataclass(slots=True)
class ChoiceResolution:
    event_id: str
    choice_id: str
    report: OutcomeReport
    succeeded: bool | None = None
    timed_out: bool = False

    @property
    def log_message(self) -> str | None:
        return self.report.log_message


def success_chance(state: GameState, formula: SuccessFormula, aggregator: BonusAggregator) -> float:
    """Probability a success-gated choice succeeds.

    The event dialog and the choice effect both call this, so the displayed odds
    and the rolled odds always come from the same formula.
    """
    chance = formula.base
    for stat, coefficient in formula.coefficients:
        chance += aggregator.get_stat_total(state, stat) * coefficient
    if state.flags.get(CRUEL_MODE_FLAG, False):
        chance += formula.cruel_mode_penalty
    return max(0.0, min(1.0, chance))


class EventEngine:
    def __init__(
        self,
        content: "ContentBundle",
        aggregator: BonusAggregator,
        rng: DeterministicRNG,
        settings: EngineSettings | None = None,
    ) -> None:
        self.content = content
        self.aggregator = aggregator
        self.rng = rng
        self.settings = settings or EngineSettings()
        # sorted() is stable, so equal priorities keep content order
        self._ordered: list[EventSpec] = sorted(content.events, key=lambda event: -event.priority)

    # ------------------------------------------------------------------
    # Triggering
    # ------------------------------------------------------------------

    def is_spent(self, event: EventSpec, state: GameState) -> bool:
        if event.repeatable:
            return False
        return bool(state.events.get(event.id) or state.triggered_events.get(event.id))

    def cooldown_active(self, event: EventSpec, state: GameState) -> bool:
        last_fired = state.event_last_fired.get(event.id)
        if last_fired is None or event.time_probability is None:
            return False
        cooldown_ms = event.time_probability.minutes(state) * 60000 * self.settings.event_cooldown_fraction
        return state.play_time - last_fired < cooldown_ms

    def probability_per_tick(self, event: EventSpec, state: GameState) -> float:
        if event.time_probability is None:
            return 1.0
        minutes = event.time_probability.minutes(state)
        if minutes <= 0:
            return 1.0
        return min(1.0, 1.0 / (minutes * self.settings.ticks_per_minute))

    def check_events(self, state: GameState) -> FiredEvent | None:
        """Scan by priority and fire at most one event."""
        if state.pending_event is not None:
            return None
        for event in self._ordered:
            # action-triggered events only fire through trigger()
            if event.trigger_type == "action":
                continue
            if self.is_spent(event, state) or self.cooldown_active(event, state):
                continue
            if not requirement_met(event.condition, state, self.content):
                continue
            if event.time_probability is not None and not self.rng.roll(self.probability_per_tick(event, state)):
                continue
            return self.fire(event, state)
        return None

    def trigger(self, event_id: str, state: GameState) -> FiredEvent | None:
        """Fire ``event_id`` directly, skipping its condition and probability."""
        event = self.content.event_by_id.get(event_id)
        if event is None:
            logger.debug("trigger: unknown event %s", event_id)
            return None
        if self.is_spent(event, state):
            return None
        if event.has_choices and state.pending_event is not None:
            return None
        return self.fire(event, state)

    def fire(self, event: EventSpec, state: GameState) -> FiredEvent:
        max_entries = self.settings.log_max_entries
        state.event_last_fired[event.id] = state.play_time
        if not event.repeatable:
            state.events[event.id] = True
            state.triggered_events[event.id] = True
        state.append_log(event.message, kind="event", event_id=event.id, max_entries=max_entries)
        logger.debug("Event fired: %s", event.id)

        if not event.has_choices:
            report = apply_outcomes(state, event.effect, self.content, self.rng)
            for message in report.log_messages:
                state.append_log(message, kind="event", event_id=event.id, max_entries=max_entries)
            return FiredEvent(event_id=event.id, title=event.title, message=event.message, report=report)

        time_limit_ms = int(event.time_limit * 1000) if event.time_limit is not None else None
        state.pending_event = PendingEvent(event_id=event.id, started_at=state.play_time, time_limit_ms=time_limit_ms)
        return FiredEvent(
            event_id=event.id,
            title=event.title,
            message=event.message,
            choices=self.choice_views(event, state),
            time_limit_ms=time_limit_ms,
        )

    # ------------------------------------------------------------------
    # Choices
    # ------------------------------------------------------------------

    def _choice_cooldown_key(self, event: EventSpec, choice: ChoiceSpec) -> str:
        return f"{event.id}:{choice.id}"

    def choice_views(self, event: EventSpec, state: GameState) -> list[ChoiceView]:
        views: list[ChoiceView] = []
        for choice in event.choices:
            ok, reasons = evaluate_requirement(choice.requires, state, self.content)
            ready_at = state.choice_cooldowns.get(self._choice_cooldown_key(event, choice), 0)
            if ready_at > state.play_time:
                ok = False
                reasons = reasons + [f"Available again in {(ready_at - state.play_time) / 1000:.0f}s."]
            chance = success_chance(state, choice.success, self.aggregator) if choice.success else None
            views.append(ChoiceView(id=choice.id, label=choice.label, locked=not ok, lock_reasons=reasons, success_chance=chance))
        return views

    def success_chance(self, state: GameState, formula: SuccessFormula) -> float:
        return success_chance(state, formula, self.aggregator)

    def apply_choice(
        self,
        state: GameState,
        event_id: str,
        choice_id: str,
        timed_out: bool = False,
    ) -> ChoiceResolution | None:
        event = self.content.event_by_id.get(event_id)
        if event is None:
            return None
        choice = event.choice_by_id.get(choice_id)
        if choice is None:
            return None

        is_fallback = choice_id == event.fallback_choice
        if not (timed_out and is_fallback):
            view = next(view for view in self.choice_views(event, state) if view.id == choice_id)
            if view.locked:
                logger.debug("Choice %s.%s locked: %s", event_id, choice_id, "; ".join(view.lock_reasons))
                return None

        succeeded: bool | None = None
        if choice.success is not None:
            succeeded = self.rng.roll(success_chance(state, choice.success, self.aggregator))
            outcomes = choice.on_success if succeeded else choice.on_failure
        else:
            outcomes = choice.effect

        report = apply_outcomes(state, outcomes, self.content, self.rng)
        if choice.cooldown:
            state.choice_cooldowns[self._choice_cooldown_key(event, choice)] = state.play_time + int(choice.cooldown * 1000)
        if state.pending_event is not None and state.pending_event.event_id == event_id:
            state.pending_event = None
        for message in report.log_messages:
            state.append_log(message, kind="choice", event_id=event_id, max_entries=self.settings.log_max_entries)

        return ChoiceResolution(
            event_id=event_id,
            choice_id=choice_id,
            report=report,
            succeeded=succeeded,
            timed_out=timed_out,
        )

    def expire_pending(self, state: GameState, elapsed_ms: int = 0) -> ChoiceResolution | None:
        """Count ``elapsed_ms`` of modal time and apply the fallback once the limit is reached."""
        pending = state.pending_event
        if pending is None or pending.time_limit_ms is None:
            return None
        pending.elapsed_ms += max(0, int(elapsed_ms))
        if not pending.expired:
            return None
        event = self.content.event_by_id.get(pending.event_id)
        if event is None or event.fallback_choice is None:
            state.pending_event = None
            return None
        return self.apply_choice(state, event.id, event.fallback_choice, timed_out=True)
