from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def now_ms() -> int:
    return int(time.time() * 1000)


class IntentAction(str, Enum):
    NAVIGATE = "navigate"
    CLICK = "click"
    TYPE = "type"
    SCROLL = "scroll"
    SEARCH = "search"
    EXTRACT = "extract"
    OBSERVE = "observe"
    WAIT = "wait"
    SCREENSHOT = "screenshot"
    UNKNOWN = "unknown"


# Verbs the parser model tends to produce instead of the canonical names.
ACTION_ALIASES = {
    "open": "navigate",
    "goto": "navigate",
    "go_to": "navigate",
    "visit": "navigate",
    "press": "click",
    "tap": "click",
    "fill": "type",
    "type_text": "type",
    "enter_text": "type",
    "search_web": "search",
    "find": "search",
    "read": "extract",
    "read_page": "extract",
    "describe": "observe",
    "sleep": "wait",
    "pause": "wait",
    "snapshot": "screenshot",
    "capture": "screenshot",
}


class Intent(BaseModel):
    """A parsed voice command, validated against the closed action set."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    action: IntentAction
    target: str | None = None
    value: str | None = None
    parameters: dict[str, Any] | None = None
    confidence: float = Field(ge=0.0, le=1.0)
    requires_confirmation: bool = Field(default=False, alias="requiresConfirmation")

    @field_validator("action", mode="before")
    @classmethod
    def _normalize_action(cls, value: Any) -> Any:
        if isinstance(value, str):
            key = value.strip().lower().replace("-", "_").replace(" ", "_")
            return ACTION_ALIASES.get(key, key)
        return value

    @field_validator("target", "value", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @classmethod
    def unknown(cls, confidence: float = 0.1) -> Intent:
        return cls(action=IntentAction.UNKNOWN, confidence=confidence)

    def label(self) -> str:
        if self.target:
            return f"{self.action.value} on {self.target}"
        return self.action.value

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ActionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


def _new_action_id() -> str:
    return f"action_{now_ms()}_{uuid.uuid4().hex[:9]}"


class BrowserAction(BaseModel):
    """One execution attempt of an intent.

    Status only moves forward: pending -> running -> success | failed.
    A terminal action carries exactly one of ``result`` and ``error``.
    """

    id: str = Field(default_factory=_new_action_id)
    intent: Intent
    status: ActionStatus = ActionStatus.PENDING
    timestamp: int = Field(default_factory=now_ms)
    error: str | None = None
    result: Any = None

    @model_validator(mode="after")
    def _check_outcome(self) -> BrowserAction:
        if self.status is ActionStatus.SUCCESS:
            if self.result is None or self.error is not None:
                raise ValueError("a successful action needs a result and no error")
        elif self.status is ActionStatus.FAILED:
            if self.error is None or self.result is not None:
                raise ValueError("a failed action needs an error and no result")
        elif self.result is not None or self.error is not None:
            raise ValueError(f"a {self.status.value} action has no outcome yet")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in {ActionStatus.SUCCESS, ActionStatus.FAILED}

    @property
    def succeeded(self) -> bool:
        return self.status is ActionStatus.SUCCESS

    def start(self) -> None:
        if self.status is not ActionStatus.PENDING:
            raise ValueError(f"cannot start an action that is {self.status.value}")
        self.status = ActionStatus.RUNNING

    def succeed(self, result: Any) -> None:
        self._require_running()
        if result is None:
            raise ValueError("a successful action needs a result")
        self.result = result
        self.status = ActionStatus.SUCCESS

    def fail(self, error: str) -> None:
        self._require_running()
        self.error = error or "Unknown error"
        self.status = ActionStatus.FAILED

    def _require_running(self) -> None:
        if self.status is not ActionStatus.RUNNING:
            raise ValueError(f"cannot finish an action that is {self.status.value}")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
