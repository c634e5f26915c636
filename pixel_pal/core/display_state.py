"""Energy level shown by the avatar, derived from today's steps."""

from enum import Enum

from pixel_pal.config import Settings, settings as default_settings


class AvatarState(str, Enum):
    LOW = "low"
    NEUTRAL = "neutral"
    VITAL = "vital"

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    AvatarState.LOW: "Resting",
    AvatarState.NEUTRAL: "Warming up",
    AvatarState.VITAL: "Full of energy",
}


def determine_state(today_steps: int, config: Settings | None = None) -> AvatarState:
    config = config or default_settings
    steps = max(today_steps, 0)
    if steps < config.NEUTRAL_STEPS_THRESHOLD:
        return AvatarState.LOW
    if steps < config.VITAL_STEPS_THRESHOLD:
        return AvatarState.NEUTRAL
    return AvatarState.VITAL
