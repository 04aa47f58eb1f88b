import base64
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from conftest import PageFactory

from voicepilot.agent.gate import ConfirmationGate
from voicepilot.agent.orchestrator import Orchestrator, envelope
from voicepilot.agent.planner import IntentParser
from voicepilot.agent.registry import SessionRegistry
from voicepilot.config import Settings
from voicepilot.main import build_orchestrator, handle_transcript

CHECKOUT = {"action": "click", "target": "Pay", "confidence": 0.9, "requiresConfirmation": True}


def _orchestrator() -> AsyncMock:
    orchestrator = AsyncMock(spec=Orchestrator)
    orchestrator.parse_intent.return_value = envelope(CHECKOUT)
    orchestrator.submit_intent.return_value = envelope(
        {"requiresConfirmation": True, "confirmationPrompt": "Pay now?", "intent": CHECKOUT}
    )
    return orchestrator


def test_build_orchestrator_without_credentials() -> None:
    orchestrator = build_orchestrator(Settings())

    assert orchestrator.summarizer is None
    assert orchestrator.transcriber is None
    assert orchestrator.parser.model is None
    assert not orchestrator.parser.memory.available


@pytest.mark.asyncio
async def test_auto_confirm_resolves_the_intent() -> None:
    orchestrator = _orchestrator()
    action = {"id": "action_1", "status": "success", "result": {"target": "Pay"}}
    orchestrator.resolve_confirmation.return_value = envelope({"action": action, "summary": "Paid."})

    ok = await handle_transcript(orchestrator, "s1", "pay the bill", auto_confirm=True)

    assert ok
    orchestrator.resolve_confirmation.assert_awaited_once_with(
        {"intent": CHECKOUT, "sessionId": "s1", "confirmed": True}
    )


@pytest.mark.asyncio
async def test_unknown_command_is_not_submitted() -> None:
    orchestrator = _orchestrator()
    orchestrator.parse_intent.return_value = envelope({"action": "unknown", "confidence": 0.1})

    ok = await handle_transcript(orchestrator, "s1", "hmm")

    assert not ok
    orchestrator.submit_intent.assert_not_awaited()


@pytest.mark.asyncio
async def test_screenshot_is_saved(tmp_path: Path) -> None:
    orchestrator = _orchestrator()
    png = b"\x89PNG\r\n\x1a\n"
    uri = "data:image/png;base64," + base64.b64encode(png).decode()
    orchestrator.parse_intent.return_value = envelope({"action": "screenshot", "confidence": 0.9})
    orchestrator.submit_intent.return_value = envelope(
        {"action": {"id": "action_7", "status": "success", "result": {"screenshot": uri}}, "summary": "Done"}
    )

    ok = await handle_transcript(orchestrator, "s1", "take a screenshot", artifacts_dir=tmp_path)

    assert ok
    assert (tmp_path / "action_7.png").read_bytes() == png


@pytest.mark.asyncio
async def test_plain_command_runs_through_a_real_orchestrator() -> None:
    factory = PageFactory()
    model = AsyncMock()
    model.parse_intent.return_value = {"action": "navigate", "value": "https://example.com", "confidence": 0.9}
    orchestrator = Orchestrator(
        registry=SessionRegistry(factory),
        gate=ConfirmationGate(),
        parser=IntentParser(model, factory.memory),
    )

    ok = await handle_transcript(orchestrator, "s1", "go to example.com")

    assert ok
    assert factory.pages["s1"][0].calls[-1] == ("goto", "https://example.com")
