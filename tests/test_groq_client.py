import json

import httpx
import pytest

from voicepilot.agent.memory import ActionRecord, ConversationTurn, SessionContext
from voicepilot.browser.actions import BrowserAction, Intent
from voicepilot.llm.groq_client import GroqClient


def _completion(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


def _client(handler) -> GroqClient:
    return GroqClient("gsk-test", "llama-test", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_parse_intent_sends_json_mode_and_context() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        assert request.headers["Authorization"] == "Bearer gsk-test"
        return _completion('{"action": "navigate", "value": "https://example.com", "confidence": 0.9}')

    context = SessionContext(
        session_id="s1",
        current_url="https://example.com",
        conversation_history=[ConversationTurn(role="user", content="open example", timestamp=1)],
        last_action=ActionRecord(action="navigate", succeeded=True, timestamp=2),
    )
    result = await _client(handler).parse_intent("go to example.com", context)

    assert result["action"] == "navigate"
    body = bodies[0]
    assert body["model"] == "llama-test"
    assert body["response_format"] == {"type": "json_object"}
    system = body["messages"][0]["content"]
    assert "Current URL: https://example.com" in system
    assert "user: open example" in system
    assert '"go to example.com"' in body["messages"][1]["content"]


@pytest.mark.asyncio
async def test_bad_request_retries_without_response_format() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        if "response_format" in body:
            return httpx.Response(400, json={"error": {"message": "json mode unsupported"}})
        return _completion('Sure! ```json\n{"prompt": "Submit the form?"}\n```')

    intent = Intent(action="click", target="Submit", confidence=0.9, requires_confirmation=True)
    prompt = await _client(handler).confirmation_prompt(intent)

    assert prompt == "Submit the form?"
    assert len(bodies) == 2
    assert "response_format" not in bodies[1]


@pytest.mark.asyncio
async def test_action_summary() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        user = json.loads(request.content)["messages"][1]["content"]
        assert "Status: success" in user
        return _completion('{"summary": "Opened example.com."}')

    intent = Intent(action="navigate", value="https://example.com", confidence=0.9)
    action = BrowserAction(intent=intent)
    action.start()
    action.succeed({"url": "https://example.com"})

    assert await _client(handler).action_summary(intent, action) == "Opened example.com."


@pytest.mark.asyncio
async def test_observe_snapshot_filters_items() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return _completion('{"observations": [{"description": "Login form", "uid": "1_4"}, "noise"]}')

    observations = await _client(handler).observe_snapshot("find the login form", "uid=1_4 textbox")

    assert observations == [{"description": "Login form", "uid": "1_4"}]


def test_parse_json_content() -> None:
    assert GroqClient._parse_json_content('{"a": 1}') == {"a": 1}
    assert GroqClient._parse_json_content('text before {"a": {"b": 2}} after') == {"a": {"b": 2}}
    with pytest.raises(ValueError):
        GroqClient._parse_json_content("no json here")
    with pytest.raises(ValueError):
        GroqClient._parse_json_content("[1, 2]")


def test_summarize_dom_drops_blank_lines() -> None:
    snapshot = "\n".join(["", "  uid=1_1 heading  ", "", *[f"uid=1_{i} text" for i in range(2, 300)]])
    summary = GroqClient._summarize_dom(snapshot, max_lines=3)
    assert summary.splitlines() == ["uid=1_1 heading", "uid=1_2 text", "uid=1_3 text"]


def test_context_prompt_without_context() -> None:
    assert GroqClient._context_prompt(None) == ""
    prompt = GroqClient._context_prompt(SessionContext.empty("s1"))
    assert "Current URL: Unknown" in prompt
    assert "Recent actions: None" in prompt
