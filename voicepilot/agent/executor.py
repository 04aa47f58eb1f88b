from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from voicepilot.agent.memory import MemorySink
from voicepilot.agent.policy import (
    DEFAULT_EXTRACT_INSTRUCTION,
    DEFAULT_OBSERVE_INSTRUCTION,
    SCROLL_STEP_PX,
    SEARCH_INPUT_SELECTOR,
    SEARCH_SUBMIT_SELECTOR,
    check_contract,
    extraction_schema,
    navigation_url,
    scroll_direction,
    scroll_offset,
    wait_duration_ms,
)
from voicepilot.browser.actions import BrowserAction, Intent, IntentAction
from voicepilot.browser.page import BrowserPage
from voicepilot.errors import (
    AutomationFailed,
    ExtractionFailed,
    ObservationFailed,
    ScreenshotFailed,
    UnknownAction,
    VoicePilotError,
)

logger = logging.getLogger(__name__)

DETERMINISTIC = "deterministic"
NATURAL_LANGUAGE = "natural_language"

Handler = Callable[[Intent], Awaitable[dict[str, Any]]]


@dataclass(slots=True)
class StepOutcome:
    ok: bool
    value: Any = None
    error: str | None = None


def describe_exception(exc: BaseException) -> str:
    if isinstance(exc, VoicePilotError):
        return exc.describe()
    return f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__


class ActionExecutor:
    """Runs intents against one browser session.

    Each intent is tried with a precise selector/URL operation first and,
    where one exists, a natural-language fallback second. Executions on the
    same executor are serialized in arrival order.
    """

    def __init__(
        self,
        session_id: str,
        page: BrowserPage,
        memory: MemorySink,
        scroll_step: int = SCROLL_STEP_PX,
    ) -> None:
        self.session_id = session_id
        self.page = page
        self.memory = memory
        self.scroll_step = scroll_step
        self._lock = asyncio.Lock()
        self._closed = False
        self._handlers: dict[IntentAction, Handler] = {
            IntentAction.NAVIGATE: self._navigate,
            IntentAction.CLICK: self._click,
            IntentAction.TYPE: self._type,
            IntentAction.SCROLL: self._scroll,
            IntentAction.SEARCH: self._search,
            IntentAction.EXTRACT: self._extract,
            IntentAction.OBSERVE: self._observe,
            IntentAction.WAIT: self._wait,
            IntentAction.SCREENSHOT: self._screenshot,
        }

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        await self.page.start()

    async def close(self) -> None:
        # Waits for the in-flight action, if any, to settle first.
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            await self.page.close()

    async def execute(self, intent: Intent) -> BrowserAction:
        action = BrowserAction(intent=intent)
        async with self._lock:
            action.start()
            try:
                result = await self._run(intent)
            except VoicePilotError as exc:
                action.fail(exc.describe())
            except Exception as exc:
                action.fail(AutomationFailed(describe_exception(exc)).describe())
            else:
                action.succeed(result)

            if action.succeeded:
                logger.info("[%s] %s succeeded", self.session_id, intent.label())
            else:
                logger.warning("[%s] %s failed: %s", self.session_id, intent.label(), action.error)
        # Outside the lock: memory writes never delay the next queued action.
        await self._remember(action)
        return action

    async def _run(self, intent: Intent) -> dict[str, Any]:
        if self._closed:
            raise AutomationFailed("Session is closed")
        check_contract(intent)
        handler = self._handlers.get(intent.action)
        if handler is None:
            raise UnknownAction(f"Unknown action: {intent.action.value}")
        return await handler(intent)

    async def _remember(self, action: BrowserAction) -> None:
        outcome = action.result if action.succeeded else {"error": action.error}
        try:
            await self.memory.record_action(
                self.session_id,
                action.intent.action.value,
                outcome,
                action.succeeded,
            )
        except Exception as exc:
            logger.warning("[%s] could not record action %s: %s", self.session_id, action.id, exc)

    @staticmethod
    async def _attempt(step: Callable[[], Awaitable[Any]]) -> StepOutcome:
        try:
            value = await step()
        except Exception as exc:
            return StepOutcome(ok=False, error=describe_exception(exc))
        return StepOutcome(ok=True, value=value)

    async def _two_tier(self, name: str, precise: Callable[[], Awaitable[Any]], instruction: str) -> str:
        first = await self._attempt(precise)
        if first.ok:
            return DETERMINISTIC

        logger.info("[%s] %s: precise step failed (%s); trying '%s'", self.session_id, name, first.error, instruction)
        second = await self._attempt(lambda: self.page.act_natural_language(instruction))
        if second.ok:
            return NATURAL_LANGUAGE
        raise AutomationFailed(f"{name} failed: {first.error}; fallback failed: {second.error}")

    async def _navigate(self, intent: Intent) -> dict[str, Any]:
        url = navigation_url(intent)
        strategy = await self._two_tier("navigate", lambda: self.page.goto(url), f"Navigate to {url}")
        return {"url": url, "strategy": strategy}

    async def _click(self, intent: Intent) -> dict[str, Any]:
        target = intent.target or ""
        strategy = await self._two_tier("click", lambda: self.page.locate_and_click(target), f"Click on {target}")
        return {"target": target, "strategy": strategy}

    async def _type(self, intent: Intent) -> dict[str, Any]:
        target, value = intent.target or "", intent.value or ""
        strategy = await self._two_tier(
            "type",
            lambda: self.page.locate_and_fill(target, value),
            f'Type "{value}" into {target}',
        )
        return {"target": target, "value": value, "strategy": strategy}

    async def _scroll(self, intent: Intent) -> dict[str, Any]:
        direction = scroll_direction(intent)
        target = intent.target

        async def precise() -> Any:
            if target:
                return await self.page.scroll_into_view(target)
            return await self.page.evaluate_scroll(scroll_offset(direction, self.scroll_step))

        instruction = f"Scroll {direction}" + (f" to {target}" if target else "")
        strategy = await self._two_tier("scroll", precise, instruction)
        return {"direction": direction, "target": target, "strategy": strategy}

    async def _search(self, intent: Intent) -> dict[str, Any]:
        query = intent.value or ""

        async def fill_and_submit() -> None:
            await self.page.locate_and_fill(SEARCH_INPUT_SELECTOR, query)
            await self.page.locate_and_click(SEARCH_SUBMIT_SELECTOR)

        strategy = await self._two_tier("search", fill_and_submit, f'Search for "{query}"')
        return {"query": query, "strategy": strategy}

    async def _extract(self, intent: Intent) -> dict[str, Any]:
        instruction = intent.value or DEFAULT_EXTRACT_INSTRUCTION
        schema = extraction_schema(intent)
        outcome = await self._attempt(lambda: self.page.extract_structured(instruction, schema))
        if not outcome.ok:
            raise ExtractionFailed(f"Failed to extract data: {outcome.error}")
        return {"instruction": instruction, "data": outcome.value}

    async def _observe(self, intent: Intent) -> dict[str, Any]:
        instruction = intent.value or DEFAULT_OBSERVE_INSTRUCTION
        outcome = await self._attempt(lambda: self.page.observe(instruction))
        if not outcome.ok:
            raise ObservationFailed(f"Failed to observe page: {outcome.error}")
        return {"instruction": instruction, "observations": outcome.value}

    async def _wait(self, intent: Intent) -> dict[str, Any]:
        duration = wait_duration_ms(intent.value)
        target = intent.target

        async def precise() -> Any:
            if target:
                return await self.page.wait_for_selector(target, duration)
            return await self.page.wait_for_timeout(duration)

        instruction = f"Wait for {target}" if target else f"Wait for {duration}ms"
        strategy = await self._two_tier("wait", precise, instruction)
        return {"duration": duration, "target": target, "strategy": strategy}

    async def _screenshot(self, intent: Intent) -> dict[str, Any]:
        outcome = await self._attempt(lambda: self.page.screenshot(full_page=True))
        if not outcome.ok:
            raise ScreenshotFailed(f"Failed to take screenshot: {outcome.error}")
        if not outcome.value:
            raise ScreenshotFailed("Failed to take screenshot: no image data")
        encoded = base64.b64encode(outcome.value).decode("ascii")
        return {"screenshot": f"data:image/png;base64,{encoded}"}
