from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from cave_village.core.models import SaveData, total_population
from cave_village.core.persistence import (
    build_save_data,
    create_default_save_data,
    create_initial_state,
    load_save_data,
    save_save_data,
)

MIN_SLOTS = 1
MAX_SLOTS = 5


@dataclass(slots=True)
class SlotSummary:
    slot: int
    occupied: bool
    slot_name: str
    play_time: int = 0
    population: int = 0
    buildings: int = 0
    seed_preview: str = "-"
    last_played: str | None = None


def _clamp_slots(value: Any, fallback: int) -> int:
    try:
        count = int(value)
    except (TypeError, ValueError):
        count = fallback
    return max(MIN_SLOTS, min(MAX_SLOTS, count))


class SaveService:
    def __init__(self, saves_dir: Path, slot_count: int = 3) -> None:
        self.saves_dir = saves_dir
        self.slot_count = _clamp_slots(slot_count, 3)
        self.slot_ids = tuple(range(1, self.slot_count + 1))
        self.meta_path = self.saves_dir / "meta.json"
        self.saves_dir.mkdir(parents=True, exist_ok=True)
        if not self.meta_path.exists():
            self._write_meta({"last_slot": None, "slot_count": self.slot_count, "slots": {}})

    def _slot_path(self, slot: int) -> Path:
        if slot not in self.slot_ids:
            raise ValueError(f"Slot {slot} is out of range 1..{self.slot_count}.")
        return self.saves_dir / f"slot{slot}.json"

    def _default_slot_meta(self, slot: int) -> dict[str, Any]:
        return {
            "slot_name": f"Slot {slot}",
            "last_played": None,
            "play_time": 0,
            "population": 0,
            "seed_preview": "-",
        }

    def _read_meta(self) -> dict[str, Any]:
        if not self.meta_path.exists():
            return {"last_slot": None, "slot_count": self.slot_count, "slots": {}}
        try:
            payload = json.loads(self.meta_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        payload.setdefault("last_slot", None)
        payload["slot_count"] = _clamp_slots(payload.get("slot_count", self.slot_count), self.slot_count)
        if not isinstance(payload.get("slots"), dict):
            payload["slots"] = {}
        return payload

    def _write_meta(self, payload: dict[str, Any]) -> None:
        self.meta_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def _touch_meta_slot(self, slot: int, save_data: SaveData | None = None) -> None:
        meta = self._read_meta()
        slots = meta.setdefault("slots", {})
        entry = slots.setdefault(str(slot), self._default_slot_meta(slot))
        entry["last_played"] = datetime.now(timezone.utc).isoformat()
        if save_data is not None:
            state = save_data.game_state
            entry["play_time"] = int(state.play_time)
            entry["population"] = total_population(state)
            entry["seed_preview"] = str(state.seed)
            entry.setdefault("slot_name", f"Slot {slot}")
        meta["last_slot"] = slot
        self._write_meta(meta)

    def list_slots(self) -> list[SlotSummary]:
        meta = self._read_meta()
        summaries: list[SlotSummary] = []
        for slot in self.slot_ids:
            path = self._slot_path(slot)
            slot_meta = meta.get("slots", {}).get(str(slot), self._default_slot_meta(slot))
            slot_name = str(slot_meta.get("slot_name", f"Slot {slot}"))
            if not path.exists():
                summaries.append(
                    SlotSummary(
                        slot=slot,
                        occupied=False,
                        slot_name=slot_name,
                        last_played=slot_meta.get("last_played"),
                    )
                )
                continue
            state = load_save_data(path).game_state
            summaries.append(
                SlotSummary(
                    slot=slot,
                    occupied=True,
                    slot_name=slot_name,
                    play_time=int(state.play_time),
                    population=total_population(state),
                    buildings=sum(max(0, int(level)) for level in state.buildings.values()),
                    seed_preview=str(state.seed),
                    last_played=slot_meta.get("last_played"),
                )
            )
        return summaries

    def slot_exists(self, slot: int) -> bool:
        return self._slot_path(slot).exists()

    def create_new_game(self, slot: int, base_seed: int = 1337, dev_mode: bool = False) -> SaveData:
        if dev_mode:
            data = build_save_data(create_initial_state(base_seed, dev_mode=True))
        else:
            data = create_default_save_data(base_seed=base_seed)
        self.save_slot(slot, data)
        return data

    def load_slot(self, slot: int) -> SaveData:
        path = self._slot_path(slot)
        if not path.exists():
            raise FileNotFoundError(f"Slot {slot} is empty.")
        data = load_save_data(path)
        self._touch_meta_slot(slot, save_data=data)
        return data

    def save_slot(self, slot: int, save_data: SaveData) -> None:
        save_save_data(save_data, self._slot_path(slot))
        self._touch_meta_slot(slot, save_data=save_data)

    def delete_slot(self, slot: int) -> None:
        self._slot_path(slot).unlink(missing_ok=True)
        meta = self._read_meta()
        meta.get("slots", {}).pop(str(slot), None)
        if meta.get("last_slot") == slot:
            meta["last_slot"] = None
        self._write_meta(meta)

    def rename_slot(self, slot: int, name: str) -> None:
        clean = name.strip()
        if not clean:
            raise ValueError("Slot name cannot be empty.")
        self._slot_path(slot)
        meta = self._read_meta()
        slots = meta.setdefault("slots", {})
        entry = slots.setdefault(str(slot), self._default_slot_meta(slot))
        entry["slot_name"] = clean[:32]
        self._write_meta(meta)

    def last_slot(self) -> int | None:
        value = self._read_meta().get("last_slot")
        if isinstance(value, int) and value in self.slot_ids:
            return value
        return None
