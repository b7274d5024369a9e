"""
Pydantic models for the appointment checking domain.

Pydantic-модели: наблюдение за страницей, итог классификации, состояние цикла.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class Observation(BaseModel):
    """Raw result of one visit to the target page."""

    model_config = ConfigDict(frozen=True)

    http_status: int = 0
    page_marker: str = ""
    heading_text: str = ""
    current_location: str = ""

    @field_validator("heading_text", mode="before")
    @classmethod
    def _strip(cls, value: Optional[str]) -> str:
        return (value or "").strip()


class Outcome(str, Enum):
    SUCCESS = "success"
    KNOWN_NON_SUCCESS = "known_non_success"
    UNKNOWN_NON_SUCCESS = "unknown_non_success"
    TRANSPORT_ERROR = "transport_error"

    @property
    def is_success(self) -> bool:
        return self is Outcome.SUCCESS


class LoopPhase(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    SLEEPING = "sleeping"
    TERMINATED = "terminated"


class MonitorState(BaseModel):
    """State of monitoring loop, used for logging and status only."""

    phase: LoopPhase = LoopPhase.IDLE
    is_running: bool = False
    last_check_at: Optional[datetime] = None
    last_outcome: Optional[Outcome] = None
    last_error: Optional[str] = None
    checks_count: int = 0
    successes_total: int = 0
    notifications_sent: int = 0
    notifications_suppressed: int = 0


__all__ = ["Observation", "Outcome", "LoopPhase", "MonitorState"]
