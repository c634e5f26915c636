"""
Durable entities owned by the ProgressStore, plus the immutable snapshots
handed to renderers.

The durable models are persisted as versioned records; `to_record` and
`from_record` are the only (de)serialisation paths the data access layer sees.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from pixel_pal.core.display_state import AvatarState

SCHEMA_VERSION = 1

# Fixed record identifiers
PROFILE_KEY = "profile"
PROGRESS_KEY = "progress"
ENTITLEMENTS_KEY = "entitlements"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class _Record(BaseModel):
    """Base for models persisted through the DAL."""

    def to_record(self) -> Dict[str, Any]:
        return {"schema_version": SCHEMA_VERSION, "data": self.model_dump(mode="json")}

    @classmethod
    def from_record(cls, record: Dict[str, Any]):
        version = record.get("schema_version")
        if version != SCHEMA_VERSION:
            raise ValueError(f"Unsupported {cls.__name__} schema version: {version!r}")
        return cls.model_validate(record["data"])


class UserProfile(_Record):
    """Identity and baseline. `created_at` anchors cumulative counting."""

    model_config = ConfigDict(validate_assignment=True)

    gender: Gender
    starter_style: str = "default"
    created_at: datetime = Field(default_factory=utcnow, frozen=True)
    onboarding_complete: bool = False

    @classmethod
    def create_new(cls, gender: Gender, starter_style: str = "default", now: datetime | None = None) -> "UserProfile":
        return cls(
            gender=gender,
            starter_style=starter_style,
            created_at=now or utcnow(),
            onboarding_complete=True,
        )


class ProgressState(_Record):
    """Cumulative progress and the evolution phase it has unlocked."""

    total_steps_since_start: int = Field(0, ge=0)
    last_sync_time: Optional[datetime] = None
    current_phase: int = Field(1, ge=1, le=4)
    has_seen_paywall: bool = False
    today_steps: int = Field(0, ge=0)


class Entitlements(_Record):
    """Premium status, written by the billing collaborator."""

    is_premium: bool = False
    premium_since: Optional[datetime] = None

    @classmethod
    def create_free(cls) -> "Entitlements":
        return cls(is_premium=False, premium_since=None)

    def activate_premium(self, now: datetime | None = None) -> None:
        self.is_premium = True
        if self.premium_since is None:
            self.premium_since = now or utcnow()

    def deactivate_premium(self) -> None:
        # premium_since is kept as the historical record
        self.is_premium = False


class ContentSnapshot(BaseModel):
    """What the live surface draws. Renderers may receive repeats."""

    model_config = ConfigDict(frozen=True)

    steps: int
    phase: int = 1
    state: AvatarState = AvatarState.LOW
    gender: Gender = Gender.MALE
    is_walking: bool = False
    frame_index: int = 1
    milestone_text: Optional[str] = None


class ProgressSnapshot(BaseModel):
    """Read-only view of the store for the rendering layer."""

    model_config = ConfigDict(frozen=True)

    total_steps: int
    today_steps: int
    current_phase: int
    earned_phase: int
    phase_name: str
    progress_in_phase: float
    steps_to_next_phase: Optional[int]
    is_premium: bool
    has_seen_paywall: bool
    last_sync_time: Optional[datetime]
    gender: Optional[Gender] = None
