from __future__ import annotations

import logging
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from voicepilot.browser.actions import now_ms

logger = logging.getLogger(__name__)

Role = Literal["user", "assistant", "system"]

_MAX_RECORDED_TEXT = 500


class ConversationTurn(BaseModel):
    role: Role
    content: str
    timestamp: int


class ActionRecord(BaseModel):
    action: str
    succeeded: bool
    result: Any = None
    timestamp: int


class SessionContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    conversation_history: list[ConversationTurn] = Field(default_factory=list, alias="conversationHistory")
    current_url: str | None = Field(default=None, alias="currentUrl")
    last_action: ActionRecord | None = Field(default=None, alias="lastAction")

    @classmethod
    def empty(cls, session_id: str) -> SessionContext:
        return cls(session_id=session_id)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MemoryStore(Protocol):
    async def add_memory(
        self,
        session_id: str,
        content: str,
        metadata: dict[str, Any] | None = None,
        role: str = "user",
    ) -> Any: ...

    async def get_memories(self, session_id: str, limit: int = 50) -> list[dict[str, Any]]: ...


class MemorySink:
    """Session memory that never fails the caller.

    Without a store every write is a no-op and every read is an empty
    context. Store errors are logged and swallowed.
    """

    def __init__(self, store: MemoryStore | None = None, history_limit: int = 50) -> None:
        self.store = store
        self.history_limit = history_limit

    @property
    def available(self) -> bool:
        return self.store is not None

    async def record_action(self, session_id: str, action_name: str, result_or_error: Any, succeeded: bool) -> None:
        if self.store is None:
            logger.debug("Memory store not configured; skipping action record for %s", session_id)
            return
        metadata = {
            "type": "action",
            "action": action_name,
            "result": _compact(result_or_error),
            "success": succeeded,
            "timestamp": now_ms(),
        }
        try:
            await self.store.add_memory(session_id, f"Action: {action_name}", metadata, role="assistant")
        except Exception as exc:
            logger.warning("Failed to record action %s for session %s: %s", action_name, session_id, exc)

    async def record_conversation_turn(self, session_id: str, role: Role, content: str) -> None:
        if self.store is None:
            return
        metadata = {"type": "conversation", "role": role, "timestamp": now_ms()}
        try:
            await self.store.add_memory(
                session_id,
                content,
                metadata,
                role="assistant" if role == "assistant" else "user",
            )
        except Exception as exc:
            logger.warning("Failed to record %s turn for session %s: %s", role, session_id, exc)

    async def get_context(self, session_id: str) -> SessionContext:
        if self.store is None:
            return SessionContext.empty(session_id)
        try:
            memories = await self.store.get_memories(session_id, limit=self.history_limit)
        except Exception as exc:
            logger.warning("Failed to load memories for session %s: %s", session_id, exc)
            return SessionContext.empty(session_id)
        return self.build_context(session_id, memories)

    @staticmethod
    def build_context(session_id: str, memories: list[dict[str, Any]]) -> SessionContext:
        turns: list[ConversationTurn] = []
        actions: list[ActionRecord] = []

        for memory in memories:
            metadata = memory.get("metadata") or {}
            if not isinstance(metadata, dict):
                continue
            timestamp = metadata.get("timestamp")
            if not isinstance(timestamp, (int, float)):
                timestamp = 0
            try:
                if metadata.get("type") == "conversation":
                    turns.append(
                        ConversationTurn(
                            role=metadata.get("role") or "user",
                            content=str(memory.get("memory") or memory.get("content") or ""),
                            timestamp=int(timestamp),
                        )
                    )
                elif metadata.get("type") == "action":
                    actions.append(
                        ActionRecord(
                            action=str(metadata.get("action") or "unknown"),
                            succeeded=bool(metadata.get("success")),
                            result=metadata.get("result"),
                            timestamp=int(timestamp),
                        )
                    )
            except ValidationError:
                logger.debug("Skipping malformed memory %s", memory.get("id"))

        turns.sort(key=lambda turn: turn.timestamp)
        actions.sort(key=lambda record: record.timestamp)

        current_url = None
        for record in reversed(actions):
            if record.action == "navigate" and record.succeeded and isinstance(record.result, dict):
                url = record.result.get("url")
                if url:
                    current_url = str(url)
                    break

        return SessionContext(
            session_id=session_id,
            conversation_history=turns,
            current_url=current_url,
            last_action=actions[-1] if actions else None,
        )


def _compact(value: Any) -> Any:
    # Screenshots and extracted pages are too large to keep as memory metadata.
    if isinstance(value, str):
        return value if len(value) <= _MAX_RECORDED_TEXT else value[:_MAX_RECORDED_TEXT] + "..."
    if isinstance(value, dict):
        return {str(key): _compact(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_compact(item) for item in value[:20]]
    if value is None or isinstance(value, (bool, int, float)):
        return value
    return _compact(str(value))
