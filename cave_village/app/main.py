from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path

from rich.console import Console

from cave_village.app.services.audio import AudioService
from cave_village.app.services.logger import AppLoggerBundle, configure_logging
from cave_village.app.services.paths import UserPaths, resolve_user_paths
from cave_village.app.services.saves import SaveService
from cave_village.app.services.settings_store import SettingsStore
from cave_village.core.engine import AutoplayPolicy, GameEngine, autoplay_step
from cave_village.core.loader import ContentBundle, ContentValidationError
from cave_village.core.models import LogEntry
from cave_village.core.settings import AppSettings


@dataclass(slots=True)
class GameSession:
    """Engine plus the host services around it: one save slot, logging, audio and autosave."""

    engine: GameEngine
    saves: SaveService
    slot: int
    settings: AppSettings
    loggers: AppLoggerBundle
    audio: AudioService
    last_autosave_ms: float = 0.0

    def save(self) -> None:
        self.saves.save_slot(self.slot, self.engine.snapshot())
        self.loggers.app.info("Saved slot %s at %sms of play.", self.slot, self.engine.state.play_time)

    def maybe_autosave(self, now_ms: float) -> bool:
        interval_ms = self.settings.gameplay.autosave_interval_s * 1000
        if now_ms - self.last_autosave_ms < interval_ms:
            return False
        self.last_autosave_ms = now_ms
        self.save()
        return True

    def close(self) -> None:
        self.engine.stop()
        self.save()


def open_session(
    paths: UserPaths,
    slot: int | None = None,
    content: ContentBundle | None = None,
    console_logging: bool = True,
) -> GameSession:
    loggers = configure_logging(paths.logs, console=console_logging)
    settings = SettingsStore(paths.settings_file).load_model()
    saves = SaveService(paths.saves, slot_count=settings.gameplay.save_slots)
    slot = slot or saves.last_slot() or 1

    if saves.slot_exists(slot):
        save_data = saves.load_slot(slot)
        loggers.app.info("Loaded slot %s.", slot)
    else:
        save_data = saves.create_new_game(slot, base_seed=settings.gameplay.base_seed, dev_mode=settings.gameplay.dev_mode)
        loggers.app.info("Started a new game in slot %s with seed %s.", slot, settings.gameplay.base_seed)

    engine = GameEngine(
        content=content,
        settings=settings.engine,
        state=save_data.game_state,
    )
    audio = AudioService.from_settings(settings.audio)
    engine.add_sound_sink(audio.play)
    engine.add_log_sink(loggers.log_sink)
    return GameSession(engine=engine, saves=saves, slot=slot, settings=settings, loggers=loggers, audio=audio)


def _print_entry(console: Console, entry: LogEntry) -> None:
    console.print(entry.format(), markup=False)


def status_line(engine: GameEngine) -> str:
    state = engine.state
    stocked = ", ".join(f"{name} {amount}" for name, amount in sorted(state.resources.items()) if amount)
    villagers = sum(state.villagers.values())
    return f"[{state.play_time // 1000}s] cycle {engine.production_progress:.0%} | villagers {villagers} | {stocked or 'no stock'}"


def run_idle(session: GameSession, console: Console, policy: AutoplayPolicy = "gather") -> None:
    """Drive the engine against the wall clock until interrupted."""
    engine = session.engine
    engine.add_log_sink(lambda entry: _print_entry(console, entry))
    start = time.monotonic() * 1000
    engine.start(0.0)
    session.last_autosave_ms = 0.0
    next_step_ms = 0.0
    try:
        while True:
            now_ms = time.monotonic() * 1000 - start
            if now_ms >= next_step_ms:
                autoplay_step(engine, policy)
                next_step_ms = now_ms + 1000
            report = engine.frame(now_ms)
            if report.progress_reset:
                console.print(status_line(engine), style="dim", markup=False)
            session.maybe_autosave(now_ms)
            time.sleep(engine.settings.frame_interval_ms / 1000)
    except KeyboardInterrupt:
        console.print("\n[bold]Stopping.[/bold]")
    finally:
        session.close()


def main() -> None:
    console = Console()
    paths = resolve_user_paths()
    console.print("[bold]Starting Cave Village...[/bold]")

    try:
        session = open_session(paths)
    except ContentValidationError as exc:
        logging.getLogger("cave_village").exception("Failed to load content.")
        console.print(f"[bold red]Failed to load game content:[/bold red]\n{exc}")
        raise SystemExit(1) from exc

    try:
        run_idle(session, console)
    except Exception:
        session.loggers.app.exception("Unhandled exception in game loop.")
        console.print(f"[bold red]A fatal error occurred.[/bold red] See {session.loggers.latest_log_path}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
