from __future__ import annotations

import logging
from dataclasses import dataclass, field

from cave_village.core.settings import AudioSettings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AudioService:
    """Sound sink for the engine.

    Playback itself belongs to whatever front end hosts the engine; this keeps the
    mixer levels and a short history of cues so hosts and tests can inspect them.
    """

    master: float = 1.0
    sfx: float = 0.9
    muted: bool = False
    history_limit: int = 32
    played: list[tuple[str, float]] = field(default_factory=list)

    @classmethod
    def from_settings(cls, settings: AudioSettings) -> "AudioService":
        service = cls()
        service.configure(settings.master, settings.sfx, settings.muted)
        return service

    def configure(self, master: float, sfx: float, muted: bool = False) -> None:
        self.master = max(0.0, min(1.0, float(master)))
        self.sfx = max(0.0, min(1.0, float(sfx)))
        self.muted = bool(muted)

    @property
    def effective_volume(self) -> float:
        return 0.0 if self.muted else self.master * self.sfx

    def play(self, sound: str) -> None:
        volume = self.effective_volume
        if volume <= 0:
            return
        self.played.append((sound, volume))
        overflow = len(self.played) - self.history_limit
        if overflow > 0:
            del self.played[:overflow]
        logger.debug("Sound cue %s at %.2f", sound, volume)

    __call__ = play
