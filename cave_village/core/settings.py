from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EngineSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tick_interval_ms: int = Field(default=250, ge=10)
    production_interval_ms: int = Field(default=15000, ge=250)
    frame_rate: int = Field(default=30, ge=1, le=240)
    log_max_entries: int = Field(default=20, ge=1, le=500)
    dev_multiplier: int = Field(default=100, ge=1)
    event_cooldown_fraction: float = Field(default=0.25, ge=0.0, le=1.0)
    progress_reset_interval_ms: int = Field(default=30000, ge=1000)
    feast_duration_minutes: float = Field(default=10.0, gt=0)

    @property
    def ticks_per_minute(self) -> float:
        return 60000 / self.tick_interval_ms

    @property
    def tick_seconds(self) -> float:
        return self.tick_interval_ms / 1000

    @property
    def frame_interval_ms(self) -> float:
        return 1000 / self.frame_rate


class GameplaySettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    base_seed: int = 1337
    dev_mode: bool = False
    autosave_interval_s: int = Field(default=30, ge=5, le=600)
    save_slots: int = Field(default=3, ge=1, le=5)


class AudioSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    master: float = Field(default=1.0, ge=0.0, le=1.0)
    sfx: float = Field(default=0.9, ge=0.0, le=1.0)
    muted: bool = False


class AppSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    gameplay: GameplaySettings = Field(default_factory=GameplaySettings)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    audio: AudioSettings = Field(default_factory=AudioSettings)

    def as_dict(self) -> dict[str, Any]:
        return json.loads(self.model_dump_json(by_alias=True))


def merge_settings(payload: dict[str, Any] | None) -> dict[str, Any]:
    if not isinstance(payload, dict):
        payload = {}
    return AppSettings.model_validate(payload).as_dict()


def default_settings() -> dict[str, Any]:
    return AppSettings().as_dict()


def engine_settings_from(payload: dict[str, Any] | None) -> EngineSettings:
    return AppSettings.model_validate(merge_settings(payload)).engine
