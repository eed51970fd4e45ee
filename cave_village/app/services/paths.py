from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

APP_DIR_NAME = "CaveVillage"
HOME_ENV_VAR = "CAVE_VILLAGE_HOME"


@dataclass(slots=True)
class UserPaths:
    root: Path
    saves: Path
    logs: Path
    config: Path

    @classmethod
    def under(cls, root: Path) -> "UserPaths":
        return cls(root=root, saves=root / "saves", logs=root / "logs", config=root / "config")

    @property
    def settings_file(self) -> Path:
        return self.config / "settings.json"

    def ensure(self) -> "UserPaths":
        for directory in (self.saves, self.logs, self.config):
            directory.mkdir(parents=True, exist_ok=True)
        return self


def _is_windows() -> bool:
    return os.name == "nt"


def _candidate_roots(app_name: str) -> list[Path]:
    """Data roots in preference order: explicit override, platform data dir, home."""
    candidates: list[Path] = []
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        candidates.append(Path(override))

    platform_var = "LOCALAPPDATA" if _is_windows() else "XDG_DATA_HOME"
    platform_root = os.environ.get(platform_var)
    if platform_root:
        candidates.append(Path(platform_root) / app_name)

    candidates.append(Path.home() / app_name)
    return candidates


def resolve_user_paths(app_name: str = APP_DIR_NAME) -> UserPaths:
    failures: list[str] = []
    for root in _candidate_roots(app_name):
        try:
            return UserPaths.under(root).ensure()
        except OSError as exc:
            failures.append(f"{root}: {exc.strerror or exc}")
    raise RuntimeError("Unable to initialize user data directories. Tried " + "; ".join(failures))
