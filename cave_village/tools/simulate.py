from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Literal, Optional

import typer
from rich.console import Console
from rich.table import Table

from cave_village.app.services.saves import SaveService
from cave_village.core.engine import GameEngine, run_simulation
from cave_village.core.loader import DEFAULT_CONTENT_DIR, ContentBundle, ContentValidationError, load_content
from cave_village.core.models import GameState, LogEntry, total_population
from cave_village.core.persistence import create_initial_state
from cave_village.core.population import max_population
from cave_village.core.settings import EngineSettings

app = typer.Typer(add_completion=False, help="Run deterministic headless village simulations for balancing and testing.")
console = Console()

AutoplayPolicy = Literal["idle", "gather", "greedy"]


def _normalize_seed(raw_seed: str) -> int | str:
    try:
        return int(raw_seed)
    except ValueError:
        return raw_seed


def _load(content_dir: Path) -> ContentBundle:
    try:
        return load_content(content_dir)
    except ContentValidationError as exc:
        console.print(f"[bold red]Content load failed:[/bold red] {exc}")
        raise typer.Exit(1) from exc


def _nonzero(mapping: dict[str, int]) -> dict[str, int]:
    return {key: value for key, value in sorted(mapping.items()) if value}


def _owned(state: GameState) -> list[str]:
    owned: list[str] = []
    for section in ("tools", "weapons", "clothing", "relics", "blessings", "books", "fellowship"):
        owned.extend(f"{section}.{item_id}" for item_id, has in sorted(state.item_section(section).items()) if has)
    return owned


def _state_signature_payload(state: GameState, logs: list[LogEntry]) -> dict:
    return {
        "seed": state.seed,
        "play_time": state.play_time,
        "resources": _nonzero(state.resources),
        "buildings": _nonzero(state.buildings),
        "villagers": _nonzero(state.villagers),
        "items": _owned(state),
        "stats": state.stats.model_dump(mode="python"),
        "flags": sorted(flag for flag, value in state.flags.items() if value),
        "events": sorted(state.events),
        "pending_event": state.pending_event.event_id if state.pending_event else None,
        "rng_state": state.rng_state,
        "rng_calls": state.rng_calls,
        "timeline": [entry.model_dump(mode="json") for entry in logs],
    }


def state_signature(state: GameState, logs: list[LogEntry]) -> str:
    payload = _state_signature_payload(state, logs)
    return hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()[:16]


@app.command()
def run(
    seed: str = typer.Option("1337", "--seed", help="Seed value (int or string)."),
    seconds: int = typer.Option(300, "--seconds", min=1, help="Simulated seconds to play."),
    autoplay: AutoplayPolicy = typer.Option("gather", "--autoplay", help="Autoplay policy: idle|gather|greedy."),
    dev: bool = typer.Option(False, "--dev", help="Enable dev mode (no cooldowns, multiplied gains)."),
    content_dir: Path = typer.Option(DEFAULT_CONTENT_DIR, "--content-dir", help="Directory holding the content JSON."),
    quiet: bool = typer.Option(False, "--quiet", help="Skip printing the log timeline."),
    save_slot: Optional[int] = typer.Option(None, "--save-slot", min=1, max=5, help="Write the final state into this save slot."),
    saves_dir: Path = typer.Option(Path("saves"), "--saves-dir", help="Save directory used with --save-slot."),
) -> None:
    content = _load(content_dir)
    settings = EngineSettings()
    engine = GameEngine(content=content, settings=settings, state=create_initial_state(_normalize_seed(seed), dev_mode=dev))
    final_state, logs = run_simulation(engine, seconds, policy=autoplay)

    if not quiet:
        for entry in logs:
            console.print(entry.format(), markup=False)

    summary = Table(title="Simulation Summary")
    summary.add_column("Field", style="cyan", no_wrap=True)
    summary.add_column("Value", style="white")
    summary.add_row("Seed", str(final_state.seed))
    summary.add_row("Policy", autoplay)
    summary.add_row("Play Time", f"{final_state.play_time / 1000:.1f}s of {seconds}s")
    summary.add_row(
        "Population",
        f"{total_population(final_state)}/{max_population(final_state, content)}",
    )
    summary.add_row(
        "Villagers",
        ", ".join(f"{job}x{count}" for job, count in _nonzero(final_state.villagers).items()) or "-",
    )
    summary.add_row(
        "Resources",
        ", ".join(f"{name}={amount}" for name, amount in _nonzero(final_state.resources).items()) or "-",
    )
    summary.add_row(
        "Buildings",
        ", ".join(f"{name}x{level}" for name, level in _nonzero(final_state.buildings).items()) or "-",
    )
    summary.add_row("Items", ", ".join(_owned(final_state)) or "-")
    summary.add_row("Events Seen", str(len(final_state.events)))
    summary.add_row("Pending Choice", final_state.pending_event.event_id if final_state.pending_event else "-")
    console.print()
    console.print(summary)

    if save_slot is not None:
        service = SaveService(saves_dir, slot_count=max(3, save_slot))
        service.save_slot(save_slot, engine.snapshot())
        console.print(f"[bold]Saved to slot {save_slot} in {saves_dir}.[/bold]")

    console.print(f"\n[bold green]Deterministic signature:[/bold green] {state_signature(final_state, logs)}")


@app.command()
def validate(
    content_dir: Path = typer.Option(DEFAULT_CONTENT_DIR, "--content-dir", help="Directory holding the content JSON."),
) -> None:
    """Load and cross-check the content files without running anything."""
    content = _load(content_dir)
    table = Table(title="Content")
    table.add_column("Kind", style="cyan")
    table.add_column("Count", justify="right")
    for kind, entries in (
        ("effects", content.effects),
        ("buildings", content.buildings),
        ("jobs", content.jobs),
        ("actions", content.actions),
        ("events", content.events),
    ):
        table.add_row(kind, str(len(entries)))
    console.print(table)
    console.print("[bold green]Content OK.[/bold green]")


@app.command()
def slots(
    saves_dir: Path = typer.Option(Path("saves"), "--saves-dir", help="Save directory to inspect."),
    slot_count: int = typer.Option(3, "--slots", min=1, max=5, help="Number of slots to list."),
) -> None:
    service = SaveService(saves_dir, slot_count=slot_count)
    table = Table(title="Save Slots")
    table.add_column("Slot", justify="right")
    table.add_column("Name")
    table.add_column("Play Time", justify="right")
    table.add_column("Population", justify="right")
    table.add_column("Seed")
    table.add_column("Last Played")
    for summary in service.list_slots():
        if not summary.occupied:
            table.add_row(str(summary.slot), summary.slot_name, "-", "-", "-", summary.last_played or "-")
            continue
        table.add_row(
            str(summary.slot),
            summary.slot_name,
            f"{summary.play_time / 1000:.0f}s",
            str(summary.population),
            summary.seed_preview,
            summary.last_played or "-",
        )
    console.print(table)


if __name__ == "__main__":
    app()
