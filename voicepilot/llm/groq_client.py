from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential

if TYPE_CHECKING:
    from voicepilot.agent.memory import SessionContext
    from voicepilot.browser.actions import BrowserAction, Intent

logger = logging.getLogger(__name__)

INTENT_SYSTEM_PROMPT = (
    "You are an AI assistant that parses voice commands into structured browser automation intents. "
    "Return strict JSON only with keys: action (string), target (string|null), value (string|null), "
    "parameters (object|null), confidence (number between 0 and 1), requiresConfirmation (boolean).\n\n"
    "Available actions:\n"
    "- navigate: Go to a URL (put the URL in value)\n"
    "- click: Click on an element (button, link, etc.), described in target\n"
    "- type: Type text (value) into an input field (target)\n"
    "- scroll: Scroll up or down (value) or to a specific element (target)\n"
    "- search: Perform a search on the current page, query in value\n"
    "- extract: Extract data from the current page, instruction in value\n"
    "- observe: Get information about the current page\n"
    "- wait: Wait for something to happen, milliseconds in value, optional element in target\n"
    "- screenshot: Take a screenshot\n"
    "- unknown: When the intent is unclear\n\n"
    "Guidelines:\n"
    "- Be specific about the target element when possible\n"
    "- Set requiresConfirmation=true for sensitive actions (login, checkout, payment, data entry)\n"
    "- Provide confidence score based on clarity of the command\n"
    "- Extract search queries, URLs, and text content accurately"
)

PAGE_ACTION_SYSTEM_PROMPT = (
    "You operate a web browser through an accessibility snapshot of the current page. "
    "Each element line carries a uid like uid=1_23. Given an instruction, choose ONE operation and "
    "return strict JSON with: tool (click|fill|navigate|scroll|wait|none), uid (string|null), "
    "value (string|null, text for fill or direction up/down for scroll or milliseconds for wait), "
    "url (string|null, for navigate), reasoning (string). "
    "ONLY use uids that appear in the snapshot. Use tool none if the instruction cannot be carried out."
)

EXTRACT_SYSTEM_PROMPT = (
    "You extract data from a web page snapshot. Return strict JSON that conforms to the JSON schema "
    "given by the user. Use only information present in the snapshot; use empty strings or empty "
    "arrays for missing data."
)

OBSERVE_SYSTEM_PROMPT = (
    "You describe web pages from accessibility snapshots. Return strict JSON with key observations: "
    "an array of objects with description (string) and uid (string|null) for the elements or regions "
    "relevant to the instruction, most relevant first, at most 10."
)


class GroqClient:
    """OpenAI-compatible chat client used for parsing, summaries and page reasoning."""

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout_seconds: float = 30,
        base_url: str = "https://api.groq.com/openai/v1",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    async def parse_intent(self, transcript: str, context: SessionContext | None = None) -> dict[str, Any]:
        system_prompt = INTENT_SYSTEM_PROMPT + self._context_prompt(context)
        return await self._chat_json(
            system_prompt,
            f'Parse this voice command into a structured intent: "{transcript}"',
            temperature=0.1,
        )

    async def confirmation_prompt(self, intent: Intent) -> str:
        data = await self._chat_json(
            "You are an AI assistant that generates user-friendly confirmation prompts for browser "
            "automation actions. Return strict JSON with key prompt (string): one short question.",
            f"Generate a clear, concise confirmation prompt for this browser action: {json.dumps(intent.to_wire())}",
            temperature=0.3,
        )
        return str(data.get("prompt") or "").strip()

    async def action_summary(self, intent: Intent, action: BrowserAction) -> str:
        outcome = action.result if action.succeeded else {"error": action.error}
        data = await self._chat_json(
            "You are an AI assistant that generates brief summaries of browser automation actions and "
            "their results. Return strict JSON with key summary (string): one sentence.",
            "Generate a brief summary of this action and its result: "
            f"Action: {json.dumps(intent.to_wire())}, Status: {action.status.value}, "
            f"Result: {self._clip(json.dumps(outcome, default=str), 2000)}",
            temperature=0.3,
        )
        return str(data.get("summary") or "").strip()

    async def plan_page_action(self, instruction: str, snapshot: str) -> dict[str, Any]:
        return await self._chat_json(
            PAGE_ACTION_SYSTEM_PROMPT,
            f"Instruction: {instruction}\n\nPage snapshot:\n{self._summarize_dom(snapshot)}",
            temperature=0.1,
        )

    async def extract_from_snapshot(self, instruction: str, schema: dict[str, Any], snapshot: str) -> dict[str, Any]:
        return await self._chat_json(
            EXTRACT_SYSTEM_PROMPT,
            f"Instruction: {instruction}\n\nJSON schema:\n{json.dumps(schema)}\n\n"
            f"Page snapshot:\n{self._summarize_dom(snapshot, max_lines=400)}",
            temperature=0.0,
        )

    async def observe_snapshot(self, instruction: str, snapshot: str) -> list[dict[str, Any]]:
        data = await self._chat_json(
            OBSERVE_SYSTEM_PROMPT,
            f"Instruction: {instruction}\n\nPage snapshot:\n{self._summarize_dom(snapshot)}",
            temperature=0.2,
        )
        observations = data.get("observations")
        if not isinstance(observations, list):
            raise ValueError("LLM did not return an observations array")
        return [item for item in observations if isinstance(item, dict)]

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=8), reraise=True)
    async def _chat_json(self, system_prompt: str, user_message: str, temperature: float) -> dict[str, Any]:
        payload = {
            "model": self.model,
            "temperature": temperature,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "response_format": {"type": "json_object"},
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            response = await client.post(f"{self.base_url}/chat/completions", headers=headers, json=payload)
            logger.debug("LLM response status: %s", response.status_code)
            if response.status_code == 400:
                logger.warning("LLM 400 error: %s", response.text[:500])
                fallback_payload = dict(payload)
                fallback_payload.pop("response_format", None)
                logger.info("Retrying LLM call without response_format field")
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers=headers,
                    json=fallback_payload,
                )
            response.raise_for_status()
            data = response.json()

        content = data["choices"][0]["message"]["content"]
        return self._parse_json_content(content)

    @staticmethod
    def _context_prompt(context: SessionContext | None) -> str:
        if context is None:
            return ""
        last_action = "None"
        if context.last_action is not None:
            last_action = json.dumps(
                {"action": context.last_action.action, "success": context.last_action.succeeded}
            )
        turns = "\n".join(f"{turn.role}: {turn.content}" for turn in context.conversation_history[-3:])
        return (
            "\n\nSession Context:\n"
            f"- Current URL: {context.current_url or 'Unknown'}\n"
            f"- Recent actions: {last_action}\n"
            f"- Conversation history: {turns or 'None'}"
        )

    @staticmethod
    def _summarize_dom(snapshot: str, max_lines: int = 150) -> str:
        lines = [line.strip() for line in str(snapshot).splitlines() if line.strip()]
        return "\n".join(lines[:max_lines])

    @staticmethod
    def _clip(text: str, limit: int) -> str:
        return text if len(text) <= limit else text[:limit] + "..."

    @staticmethod
    def _parse_json_content(content: str) -> dict[str, Any]:
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError:
            match = re.search(r"\{.*\}", content, flags=re.DOTALL)
            if not match:
                raise ValueError("LLM did not return JSON content")
            parsed = json.loads(match.group(0))
        if not isinstance(parsed, dict):
            raise ValueError("LLM did not return a JSON object")
        return parsed
