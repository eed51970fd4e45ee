from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from cave_village.core.settings import AppSettings, EngineSettings, default_settings

logger = logging.getLogger(__name__)


def _merge_defaults(data: dict[str, Any]) -> dict[str, Any]:
    merged = default_settings()
    for section, section_values in data.items():
        if section not in merged or not isinstance(section_values, dict):
            continue
        for key, value in section_values.items():
            if key in merged[section]:
                merged[section][key] = value
    try:
        return AppSettings.model_validate(merged).as_dict()
    except ValidationError as exc:
        logger.warning("Settings file has invalid values, using defaults: %s", exc.errors()[0].get("msg"))
        return default_settings()


class SettingsStore:
    def __init__(self, settings_path: Path) -> None:
        self.settings_path = settings_path

    def load(self) -> dict[str, Any]:
        if not self.settings_path.exists():
            settings = default_settings()
            self.save(settings)
            return settings
        try:
            payload = json.loads(self.settings_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        settings = _merge_defaults(payload)
        self.save(settings)
        return settings

    def save(self, settings: dict[str, Any]) -> None:
        self.settings_path.parent.mkdir(parents=True, exist_ok=True)
        self.settings_path.write_text(json.dumps(settings, indent=2), encoding="utf-8")

    def load_model(self) -> AppSettings:
        return AppSettings.model_validate(self.load())

    def engine_settings(self) -> EngineSettings:
        return self.load_model().engine
