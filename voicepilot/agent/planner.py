from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from voicepilot.agent.memory import MemorySink, SessionContext
from voicepilot.agent.policy import to_intent
from voicepilot.browser.actions import Intent

logger = logging.getLogger(__name__)


class IntentModel(Protocol):
    async def parse_intent(self, transcript: str, context: SessionContext | None = None) -> dict[str, Any]: ...


class IntentParser:
    """Turns a transcript into a validated Intent, never raising on model failure."""

    def __init__(self, model: IntentModel | None, memory: MemorySink) -> None:
        self.model = model
        self.memory = memory

    async def parse(self, transcript: str, session_id: str | None = None) -> Intent:
        context = await self.memory.get_context(session_id) if session_id else None
        intent = await self._parse(transcript, context)

        if session_id:
            await self.memory.record_conversation_turn(session_id, "user", transcript)
            await self.memory.record_conversation_turn(
                session_id,
                "assistant",
                f"Parsed intent: {json.dumps(intent.to_wire())}",
            )
        return intent

    async def _parse(self, transcript: str, context: SessionContext | None) -> Intent:
        if self.model is None:
            logger.warning("No intent model configured; treating %r as unknown", transcript)
            return Intent.unknown()
        try:
            raw = await self.model.parse_intent(transcript, context)
        except Exception as exc:
            logger.error("Failed to parse intent: %s", exc)
            return Intent.unknown()
        if not isinstance(raw, dict):
            return Intent.unknown()
        return self._normalize(raw)

    @staticmethod
    def _normalize(raw: dict[str, Any]) -> Intent:
        # Some models wrap the object, e.g. {"intent": {...}}.
        nested = raw.get("intent")
        if isinstance(nested, dict) and "action" not in raw:
            raw = nested
        return to_intent(raw)
