"""Core deterministic simulation modules."""

from .actions import ActionResolver
from .bonuses import BonusAggregator
from .engine import GameEngine, autoplay_step, run_simulation
from .events import ChoiceResolution, EventEngine, FiredEvent
from .loader import ContentBundle, ContentValidationError, load_content
from .models import GameState, SaveData
from .patch import StatePatch, merge_patch
from .persistence import (
    build_save_data,
    create_default_save_data,
    create_initial_state,
    load_save_data,
    migrate_save,
    restore_state,
    save_save_data,
)
from .scheduler import FrameReport, SchedulerHandle
from .settings import EngineSettings

__all__ = [
    "ActionResolver",
    "BonusAggregator",
    "ChoiceResolution",
    "ContentBundle",
    "ContentValidationError",
    "EngineSettings",
    "EventEngine",
    "FiredEvent",
    "FrameReport",
    "GameEngine",
    "GameState",
    "SaveData",
    "SchedulerHandle",
    "StatePatch",
    "autoplay_step",
    "build_save_data",
    "create_default_save_data",
    "create_initial_state",
    "load_content",
    "load_save_data",
    "merge_patch",
    "migrate_save",
    "restore_state",
    "run_simulation",
    "save_save_data",
]
