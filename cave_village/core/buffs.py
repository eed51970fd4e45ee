from __future__ import annotations

from .models import BUFF_FIELDS, BuffName, FeastState, FogState, GameState

EXCLUSIVE_BUFFS: dict[BuffName, BuffName] = {"feast": "great_feast", "great_feast": "feast"}


def start_buff(state: GameState, name: BuffName, minutes: float, level: int | None = None) -> None:
    duration_ms = int(minutes * 60000)
    buff = state.buff(name)
    buff.is_active = True
    buff.end_time = state.play_time + duration_ms
    if isinstance(buff, FeastState) and level is not None:
        buff.last_accepted_level = max(buff.last_accepted_level, int(level))
    if isinstance(buff, FogState):
        buff.duration = duration_ms

    rival = EXCLUSIVE_BUFFS.get(name)
    if rival is not None:
        state.buff(rival).is_active = False


def expire_buffs(state: GameState) -> list[BuffName]:
    expired: list[BuffName] = []
    for name in BUFF_FIELDS:
        buff = state.buff(name)
        if buff.is_active and state.play_time >= buff.end_time:
            buff.is_active = False
            expired.append(name)
    return expired


def production_multiplier(state: GameState) -> int:
    if state.buff_active("great_feast"):
        return 4
    if state.buff_active("feast"):
        return 2
    return 1
