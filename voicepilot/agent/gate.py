from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from voicepilot.browser.actions import Intent

logger = logging.getLogger(__name__)


class PromptWriter(Protocol):
    async def confirmation_prompt(self, intent: Intent) -> str: ...


@dataclass(slots=True, frozen=True)
class GateDecision:
    must_confirm: bool
    prompt: str | None = None


def template_prompt(intent: Intent) -> str:
    return f"Are you sure you want to {intent.label()}?"


class ConfirmationGate:
    """Holds back intents flagged as sensitive until the user approves them."""

    def __init__(self, writer: PromptWriter | None = None) -> None:
        self.writer = writer

    async def evaluate(self, intent: Intent) -> GateDecision:
        if not intent.requires_confirmation:
            return GateDecision(must_confirm=False)
        return GateDecision(must_confirm=True, prompt=await self._prompt(intent))

    async def _prompt(self, intent: Intent) -> str:
        if self.writer is None:
            return template_prompt(intent)
        try:
            prompt = await self.writer.confirmation_prompt(intent)
        except Exception as exc:
            logger.warning("Failed to generate confirmation prompt: %s", exc)
            return template_prompt(intent)
        prompt = (prompt or "").strip()
        return prompt or template_prompt(intent)
