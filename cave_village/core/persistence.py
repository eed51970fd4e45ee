from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Callable

from .ledger import LIMITS_FLAG
from .models import SAVE_VERSION, GameState, SaveData
from .rng import DeterministicRNG


def create_initial_state(seed: int | str = 1337, dev_mode: bool = False) -> GameState:
    """Fresh game with storage limits switched on.

    Saves written before limits existed restore with the flag off and stay unlimited.
    """
    rng = DeterministicRNG.from_seed(seed)
    state = GameState(seed=seed, rng_state=rng.state, rng_calls=rng.calls, dev_mode=dev_mode)
    state.flags[LIMITS_FLAG] = True
    return state


def create_default_save_data(base_seed: int = 1337) -> SaveData:
    state = create_initial_state(base_seed)
    return build_save_data(state)


def build_save_data(state: GameState, timestamp: int | None = None) -> SaveData:
    if timestamp is None:
        timestamp = int(time.time() * 1000)
    return SaveData(
        save_version=SAVE_VERSION,
        game_state=state.model_copy(deep=True),
        timestamp=timestamp,
        play_time=state.play_time,
    )


def _coerce_dict(value: Any, default: dict[str, Any] | None = None) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {} if default is None else dict(default)


def backfill(defaults: Any, loaded: Any) -> Any:
    """Merge ``loaded`` over ``defaults``: dicts recursively, everything else replaced."""
    if isinstance(defaults, dict) and isinstance(loaded, dict):
        merged = dict(defaults)
        for key, value in loaded.items():
            merged[key] = backfill(defaults[key], value) if key in defaults else value
        return merged
    if loaded is None and defaults is not None and not isinstance(defaults, (int, float, str, bool)):
        return defaults
    return loaded


def restore_state(payload: Any) -> GameState:
    defaults = GameState().model_dump(mode="json")
    merged = backfill(defaults, _coerce_dict(payload))
    return GameState.model_validate(merged)


# ---------------------------------------------------------------------------
# Migrations
# ---------------------------------------------------------------------------


def _migrate_v0_to_v1(payload: dict[str, Any]) -> dict[str, Any]:
    # version-less saves were the bare game state
    if "gameState" not in payload and "game_state" not in payload:
        payload = {"gameState": payload}
    game_state = _coerce_dict(payload.get("gameState", payload.get("game_state")))
    flags = _coerce_dict(game_state.get("flags"))
    flags.setdefault(LIMITS_FLAG, False)
    game_state["flags"] = flags
    payload.pop("game_state", None)
    payload["gameState"] = game_state
    payload["save_version"] = 1
    return payload


def _migrate_v1_to_v2(payload: dict[str, Any]) -> dict[str, Any]:
    game_state = _coerce_dict(payload.get("gameState"))
    if "playTime" in payload and "play_time" not in game_state:
        game_state["play_time"] = int(payload.get("playTime") or 0)

    pending = game_state.get("pending_event")
    if isinstance(pending, dict) and "deadline" in pending:
        deadline = pending.pop("deadline")
        if deadline is not None:
            started_at = int(pending.get("started_at", 0) or 0)
            pending["time_limit_ms"] = max(0, int(deadline) - started_at)
    payload["gameState"] = game_state
    payload["save_version"] = 2
    return payload


MIGRATION_STEPS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    0: _migrate_v0_to_v1,
    1: _migrate_v1_to_v2,
}


def migrate_save(payload: Any) -> dict[str, Any]:
    state = _coerce_dict(payload)

    version_raw = state.get("save_version")
    try:
        version = int(version_raw) if version_raw is not None else 0
    except (TypeError, ValueError):
        version = 0
    if version < 0:
        version = 0
    if version > SAVE_VERSION:
        version = SAVE_VERSION

    while version < SAVE_VERSION:
        step = MIGRATION_STEPS.get(version)
        if step is None:
            raise ValueError(f"No migration step defined from version {version}.")
        state = step(state)
        version = int(state.get("save_version", version + 1))
    state["save_version"] = SAVE_VERSION
    return state


def hydrate_save_data(payload: Any) -> SaveData:
    migrated = migrate_save(payload)
    game_state = restore_state(migrated.get("gameState", migrated.get("game_state")))
    return SaveData(
        save_version=SAVE_VERSION,
        game_state=game_state,
        timestamp=int(migrated.get("timestamp", 0) or 0),
        play_time=int(migrated.get("playTime", game_state.play_time) or 0),
    )


def load_save_data(save_path: Path | str = "save.json", base_seed: int = 1337) -> SaveData:
    path = Path(save_path)
    if not path.exists():
        return create_default_save_data(base_seed=base_seed)
    data = json.loads(path.read_text(encoding="utf-8"))
    return hydrate_save_data(data)


def save_save_data(save_data: SaveData, save_path: Path | str = "save.json") -> None:
    path = Path(save_path)
    save_data.save_version = SAVE_VERSION
    save_data.play_time = save_data.game_state.play_time
    path.write_text(json.dumps(save_data.model_dump(mode="json", by_alias=True), indent=2), encoding="utf-8")
