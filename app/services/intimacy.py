"""
Intimacy levels.

A chat's intimacy level is a pure function of how many intimacy points the
paying participant has accumulated in it. Nothing here touches the database.
"""

from bisect import bisect_right
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class IntimacyLevel:
    level: int
    min_messages: int
    name: str
    badge: str


INTIMACY_LEVELS: List[IntimacyLevel] = [
    IntimacyLevel(level=1, min_messages=0, name="Strangers", badge="👋"),
    IntimacyLevel(level=2, min_messages=10, name="Acquaintances", badge="🙂"),
    IntimacyLevel(level=3, min_messages=20, name="Friends", badge="😊"),
    IntimacyLevel(level=4, min_messages=50, name="Close Friends", badge="🤗"),
    IntimacyLevel(level=5, min_messages=100, name="Crush", badge="😍"),
    IntimacyLevel(level=6, min_messages=200, name="Sweethearts", badge="💕"),
    IntimacyLevel(level=7, min_messages=500, name="Soulmates", badge="💞"),
]

_THRESHOLDS = [lvl.min_messages for lvl in INTIMACY_LEVELS]


@dataclass(frozen=True)
class LevelInfo:
    level: int
    name: str
    badge: str
    message_count: int
    min_messages: int
    next_level_at: Optional[int]
    messages_to_next_level: Optional[int]
    progress_percent: int
    is_max_level: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LevelUpCheck:
    leveled_up: bool
    previous_level: int
    new_level: int
    new_level_info: LevelInfo


def _level_index(message_count: int) -> int:
    return bisect_right(_THRESHOLDS, message_count) - 1


def level_for(message_count: int) -> LevelInfo:
    """Highest level whose threshold does not exceed ``message_count``."""
    if message_count < 0:
        raise ValueError("message_count must be non-negative")

    index = _level_index(message_count)
    current = INTIMACY_LEVELS[index]
    upcoming = INTIMACY_LEVELS[index + 1] if index + 1 < len(INTIMACY_LEVELS) else None

    if upcoming is None:
        return LevelInfo(
            level=current.level,
            name=current.name,
            badge=current.badge,
            message_count=message_count,
            min_messages=current.min_messages,
            next_level_at=None,
            messages_to_next_level=None,
            progress_percent=100,
            is_max_level=True,
        )

    span = upcoming.min_messages - current.min_messages
    progress = int((message_count - current.min_messages) * 100 / span)
    return LevelInfo(
        level=current.level,
        name=current.name,
        badge=current.badge,
        message_count=message_count,
        min_messages=current.min_messages,
        next_level_at=upcoming.min_messages,
        messages_to_next_level=upcoming.min_messages - message_count,
        progress_percent=progress,
        is_max_level=False,
    )


def check_level_up(previous_count: int, new_count: int) -> LevelUpCheck:
    previous_info = level_for(max(previous_count, 0))
    new_info = level_for(new_count)
    return LevelUpCheck(
        leveled_up=previous_info.level != new_info.level,
        previous_level=previous_info.level,
        new_level=new_info.level,
        new_level_info=new_info,
    )
