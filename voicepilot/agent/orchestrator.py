from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from pydantic import ValidationError

from voicepilot.agent.executor import describe_exception
from voicepilot.agent.gate import ConfirmationGate
from voicepilot.agent.planner import IntentParser
from voicepilot.agent.policy import check_contract
from voicepilot.agent.registry import SessionRegistry
from voicepilot.browser.actions import BrowserAction, Intent, now_ms
from voicepilot.errors import CollaboratorUnavailable, InputValidationError, VoicePilotError
from voicepilot.speech.deepgram_client import STTResult

logger = logging.getLogger(__name__)


class Summarizer(Protocol):
    async def action_summary(self, intent: Intent, action: BrowserAction) -> str: ...


class Transcriber(Protocol):
    async def transcribe(self, audio: bytes, mimetype: str = "audio/wav") -> STTResult: ...


def envelope(data: Any = None, error: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": error is None, "timestamp": now_ms()}
    if data is not None:
        body["data"] = data
    if error is not None:
        body["error"] = error
    return body


def boundary(operation: str) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[dict[str, Any]]]]:
    """Wrap a boundary operation's data (or failure) in the response envelope."""

    def decorate(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[dict[str, Any]]]:
        @functools.wraps(func)
        async def wrapper(self: Orchestrator, *args: Any, **kwargs: Any) -> dict[str, Any]:
            try:
                data = await func(self, *args, **kwargs)
            except VoicePilotError as exc:
                logger.info("%s rejected: %s", operation, exc.describe())
                return envelope(error=exc.describe())
            except Exception as exc:
                logger.exception("%s error", operation)
                return envelope(error=describe_exception(exc))
            return envelope(data)

        return wrapper

    return decorate


def fallback_summary(intent: Intent, action: BrowserAction) -> str:
    if action.succeeded:
        return f"Completed {intent.label()}"
    return f"Failed to {intent.label()}: {action.error}"


class Orchestrator:
    """Boundary operations: every method returns ``{success, data?, error?, timestamp}``."""

    def __init__(
        self,
        registry: SessionRegistry,
        gate: ConfirmationGate,
        parser: IntentParser,
        summarizer: Summarizer | None = None,
        transcriber: Transcriber | None = None,
    ) -> None:
        self.registry = registry
        self.gate = gate
        self.parser = parser
        self.summarizer = summarizer
        self.transcriber = transcriber

    @boundary("submit intent")
    async def submit_intent(self, payload: dict[str, Any]) -> dict[str, Any]:
        body = self._body(payload)
        intent = self._intent(body)
        session_id = self._session_id(body)
        check_contract(intent)

        decision = await self.gate.evaluate(intent)
        if decision.must_confirm:
            return {
                "requiresConfirmation": True,
                "confirmationPrompt": decision.prompt,
                "intent": intent.to_wire(),
            }
        return await self._execute(session_id, intent)

    @boundary("confirm intent")
    async def resolve_confirmation(self, payload: dict[str, Any]) -> dict[str, Any]:
        body = self._body(payload)
        if not body.get("intent") or not body.get("sessionId") or "confirmed" not in body:
            raise InputValidationError("Intent, sessionId, and confirmed status are required")
        confirmed = body["confirmed"]
        if not isinstance(confirmed, bool):
            raise InputValidationError("confirmed must be a boolean")
        if not confirmed:
            return {"cancelled": True}

        intent = self._intent(body)
        session_id = self._session_id(body)
        check_contract(intent)
        return await self._execute(session_id, intent)

    @boundary("close session")
    async def close_session(self, payload: dict[str, Any]) -> dict[str, Any]:
        session_id = self._session_id(self._body(payload))
        await self.registry.close(session_id)
        return {"sessionClosed": True}

    @boundary("list sessions")
    async def list_sessions(self) -> dict[str, Any]:
        return {"activeSessions": sorted(self.registry.list())}

    @boundary("transcribe audio")
    async def transcribe(self, audio: bytes, mimetype: str = "audio/wav") -> dict[str, Any]:
        if not audio:
            raise InputValidationError("No audio file provided")
        if self.transcriber is None:
            raise CollaboratorUnavailable("Speech-to-text is not configured (set DEEPGRAM_API_KEY)")
        result = await self.transcriber.transcribe(audio, mimetype)
        return result.to_wire()

    @boundary("parse intent")
    async def parse_intent(self, payload: dict[str, Any]) -> dict[str, Any]:
        body = self._body(payload)
        transcript = body.get("transcript")
        if not isinstance(transcript, str) or not transcript.strip():
            raise InputValidationError("No transcript provided")
        session_id = body.get("sessionId")
        if session_id is not None and not isinstance(session_id, str):
            raise InputValidationError("sessionId must be a string")

        intent = await self.parser.parse(transcript.strip(), session_id or None)
        return intent.to_wire()

    async def shutdown(self) -> None:
        await self.registry.shutdown()

    async def _execute(self, session_id: str, intent: Intent) -> dict[str, Any]:
        executor = await self.registry.get_or_create(session_id)
        action = await executor.execute(intent)
        return {"action": action.to_wire(), "summary": await self._summarize(intent, action)}

    async def _summarize(self, intent: Intent, action: BrowserAction) -> str:
        if self.summarizer is None:
            return fallback_summary(intent, action)
        try:
            summary = await self.summarizer.action_summary(intent, action)
        except Exception as exc:
            logger.warning("Failed to generate action summary: %s", exc)
            return fallback_summary(intent, action)
        return (summary or "").strip() or fallback_summary(intent, action)

    @staticmethod
    def _body(payload: Any) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise InputValidationError("Request body must be an object")
        return payload

    @staticmethod
    def _session_id(body: dict[str, Any]) -> str:
        session_id = body.get("sessionId")
        if not isinstance(session_id, str) or not session_id:
            raise InputValidationError("sessionId is required")
        return session_id

    @staticmethod
    def _intent(body: dict[str, Any]) -> Intent:
        raw = body.get("intent")
        if isinstance(raw, Intent):
            return raw
        if not raw:
            raise InputValidationError("Intent and sessionId are required")
        if not isinstance(raw, dict):
            raise InputValidationError("intent must be an object")
        try:
            return Intent.model_validate(raw)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'intent'}: {error['msg']}"
                for error in exc.errors()
            )
            raise InputValidationError(f"Invalid intent: {problems}") from exc
