from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
import time
from typing import TYPE_CHECKING, Any, Protocol

from voicepilot.browser.launcher import resolve_command, server_args
from voicepilot.errors import CollaboratorUnavailable
from voicepilot.mcp_client.jsonrpc import raise_for_tool_error, tool_image, tool_text
from voicepilot.mcp_client.session import McpSession
from voicepilot.mcp_client.transport import StdioTransport

if TYPE_CHECKING:
    from voicepilot.config import Settings

logger = logging.getLogger(__name__)

# Resolves a selector list to the first matching element. Understands the
# ``tag:has-text("...")`` pseudo-class on top of plain CSS.
_LOCATE_JS = (
    "const locate = (selectorList) => {"
    "const raw = String(selectorList || '').trim();"
    "if (!raw) return null;"
    "if (!raw.includes(':has-text(')) {"
    "try { const direct = document.querySelector(raw); if (direct) return direct; } catch (_) {}"
    "}"
    "const parts = raw.split(',').map((p) => p.trim()).filter(Boolean);"
    "for (const part of parts) {"
    "const hasText = /^(.*):has-text\\((['\"])(.*)\\2\\)$/.exec(part);"
    "let nodes = [];"
    "try {"
    "if (hasText) {"
    "const needle = hasText[3].toLowerCase();"
    "nodes = Array.from(document.querySelectorAll(hasText[1] || '*')).filter((n) => "
    "(n.innerText || n.textContent || n.value || '').toLowerCase().includes(needle));"
    "} else { nodes = Array.from(document.querySelectorAll(part)); }"
    "} catch (_) { nodes = []; }"
    "if (nodes.length) return nodes[0];"
    "}"
    "return null;"
    "};"
)


class PageActionError(RuntimeError):
    pass


class PageAssistant(Protocol):
    async def plan_page_action(self, instruction: str, snapshot: str) -> dict[str, Any]: ...

    async def extract_from_snapshot(self, instruction: str, schema: dict[str, Any], snapshot: str) -> dict[str, Any]: ...

    async def observe_snapshot(self, instruction: str, snapshot: str) -> list[dict[str, Any]]: ...


class DevToolsAdapter:
    """BrowserPage backed by a chrome-devtools-mcp server over stdio."""

    def __init__(
        self,
        session: McpSession,
        assistant: PageAssistant | None = None,
        ready_timeout_ms: int = 6000,
    ) -> None:
        self.session = session
        self.assistant = assistant
        self.ready_timeout_ms = ready_timeout_ms

    @classmethod
    def launch(cls, settings: Settings, assistant: PageAssistant | None = None) -> DevToolsAdapter:
        transport = StdioTransport(
            resolve_command(settings.mcp_server_command),
            server_args(settings.mcp_server_args, settings.chrome_path, settings.browser_headless),
        )
        return cls(McpSession(transport, timeout_seconds=settings.step_timeout_seconds), assistant)

    async def start(self) -> None:
        await self.session.start()
        try:
            await self.session.initialize()
        except BaseException:
            await self.session.stop()
            raise
        logger.info("Browser session ready (%s)", self.session.server_info.get("name", "mcp"))

    async def close(self) -> None:
        await self.session.stop()

    async def goto(self, url: str) -> dict[str, Any]:
        await self._call("navigate_page", {"url": url})
        readiness = await self.wait_until_page_ready(self.ready_timeout_ms)
        if not readiness.get("ok"):
            raise PageActionError(str(readiness.get("reason") or "Page did not become ready"))
        return {"url": readiness.get("href") or url}

    async def locate_and_click(self, selector: str) -> dict[str, Any]:
        script = (
            "() => {"
            f"{_LOCATE_JS}"
            f"const el = locate({json.dumps(selector)});"
            "if (!el) return {ok:false, reason:'no element matches selector'};"
            "el.scrollIntoView({block:'center', inline:'center'});"
            "el.click();"
            "return {ok:true, tag: String(el.tagName || '').toLowerCase(), text: (el.innerText || el.textContent || '').trim().slice(0, 120)};"
            "}"
        )
        return self._require_ok(await self._evaluate(script), selector)

    async def locate_and_fill(self, selector: str, value: str) -> dict[str, Any]:
        script = (
            "() => {"
            f"{_LOCATE_JS}"
            f"const el = locate({json.dumps(selector)});"
            f"const value = {json.dumps(value)};"
            "if (!el) return {ok:false, reason:'no element matches selector'};"
            "if (el.disabled || el.readOnly) return {ok:false, reason:'element is not editable'};"
            "el.focus();"
            "if ('value' in el) {"
            "el.value = value;"
            "el.dispatchEvent(new Event('input', {bubbles:true}));"
            "el.dispatchEvent(new Event('change', {bubbles:true}));"
            "} else if (el.isContentEditable) { el.textContent = value; el.dispatchEvent(new Event('input', {bubbles:true})); }"
            "else return {ok:false, reason:'element is not editable'};"
            "return {ok:true, tag: String(el.tagName || '').toLowerCase()};"
            "}"
        )
        return self._require_ok(await self._evaluate(script), selector)

    async def scroll_into_view(self, selector: str) -> dict[str, Any]:
        script = (
            "() => {"
            f"{_LOCATE_JS}"
            f"const el = locate({json.dumps(selector)});"
            "if (!el) return {ok:false, reason:'no element matches selector'};"
            "el.scrollIntoView({block:'center', inline:'nearest'});"
            "return {ok:true, scrollY: window.scrollY};"
            "}"
        )
        return self._require_ok(await self._evaluate(script), selector)

    async def evaluate_scroll(self, delta_y: int) -> dict[str, Any]:
        script = (
            "() => {"
            f"window.scrollBy(0, {int(delta_y)});"
            "return {ok:true, scrollY: window.scrollY};"
            "}"
        )
        return self._require_ok(await self._evaluate(script), "window")

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> dict[str, Any]:
        script = (
            "() => {"
            f"{_LOCATE_JS}"
            f"return {{ok: Boolean(locate({json.dumps(selector)}))}};"
            "}"
        )
        deadline = time.monotonic() + max(timeout_ms, 0) / 1000
        while True:
            payload = await self._evaluate(script)
            if isinstance(payload, dict) and payload.get("ok") is True:
                return {"ok": True}
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Timed out after {timeout_ms}ms waiting for {selector}")
            await asyncio.sleep(0.2)

    async def wait_for_timeout(self, duration_ms: int) -> None:
        await asyncio.sleep(max(duration_ms, 0) / 1000)

    async def wait_until_page_ready(self, timeout_ms: int = 6000, poll_ms: int = 200) -> dict[str, Any]:
        script = (
            "() => {"
            "const readyState = document.readyState || 'loading';"
            "const hasBody = Boolean(document.body);"
            "const href = String(window.location && window.location.href || '');"
            "return {readyState, hasBody, href};"
            "}"
        )

        deadline = time.monotonic() + max(timeout_ms, 0) / 1000
        last_state: dict[str, Any] = {"readyState": "loading", "hasBody": False, "href": ""}

        while time.monotonic() <= deadline:
            state = await self._evaluate(script)
            if isinstance(state, dict):
                last_state = {
                    "readyState": str(state.get("readyState", "loading")),
                    "hasBody": bool(state.get("hasBody", False)),
                    "href": str(state.get("href", "")),
                }
                if last_state["hasBody"] and last_state["readyState"] in {"interactive", "complete"}:
                    return {"ok": True, **last_state}
            await asyncio.sleep(max(poll_ms, 50) / 1000)

        if last_state["hasBody"]:
            return {"ok": True, **last_state, "reason": "body detected before full readyState"}
        return {"ok": False, "reason": "Timeout waiting for page to be ready", **last_state}

    async def screenshot(self, full_page: bool = True) -> bytes:
        raw = await self._call("take_screenshot", {"format": "png", "fullPage": full_page})
        image = tool_image(raw)
        if image is None:
            raise PageActionError("take_screenshot returned no image data")
        return base64.b64decode(image[1])

    async def snapshot(self) -> str:
        return tool_text(await self._call("take_snapshot", {}))

    async def extract_structured(self, instruction: str, schema: dict[str, Any]) -> Any:
        assistant = self._require_assistant()
        return await assistant.extract_from_snapshot(instruction, schema, await self.snapshot())

    async def observe(self, instruction: str) -> list[dict[str, Any]]:
        assistant = self._require_assistant()
        return await assistant.observe_snapshot(instruction, await self.snapshot())

    async def act_natural_language(self, instruction: str) -> dict[str, Any]:
        assistant = self._require_assistant()
        snapshot = await self.snapshot()
        plan = await assistant.plan_page_action(instruction, snapshot)
        tool = str(plan.get("tool") or "none").strip().lower()
        uid = str(plan.get("uid") or "").strip() or None
        value = plan.get("value")
        logger.debug("Natural-language plan for %r: %s", instruction, plan)

        if tool in {"click", "fill"}:
            if uid is None or uid not in self._snapshot_uids(snapshot):
                raise PageActionError(f"No element on the page matches: {instruction}")
            if tool == "click":
                await self._call("click", {"uid": uid})
            else:
                await self._call("fill", {"uid": uid, "value": "" if value is None else str(value)})
        elif tool == "navigate":
            url = str(plan.get("url") or value or "").strip()
            if not url:
                raise PageActionError(f"No URL could be derived from: {instruction}")
            await self.goto(url)
        elif tool == "scroll":
            await self.evaluate_scroll(-500 if str(value).strip().lower() == "up" else 500)
        elif tool == "wait":
            try:
                duration_ms = int(str(value).strip())
            except ValueError:
                duration_ms = 1000
            await self.wait_for_timeout(duration_ms)
        else:
            reason = str(plan.get("reasoning") or "no matching operation")
            raise PageActionError(f"Could not carry out '{instruction}': {reason}")

        return {"tool": tool, "uid": uid, "reasoning": plan.get("reasoning")}

    async def _call(self, tool_name: str, params: dict[str, Any]) -> Any:
        result = await self.session.call_tool(tool_name, params)
        return raise_for_tool_error(tool_name, result)

    async def _evaluate(self, script: str) -> dict[str, Any] | None:
        raw = await self._call("evaluate_script", {"function": script})
        return self._extract_script_result_payload(raw) if isinstance(raw, dict) else None

    def _require_assistant(self) -> PageAssistant:
        if self.assistant is None:
            raise CollaboratorUnavailable("Natural-language automation needs an LLM (set GROQ_API_KEY)")
        return self.assistant

    @staticmethod
    def _require_ok(payload: dict[str, Any] | None, selector: str) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise PageActionError(f"Unreadable script result for {selector}")
        if payload.get("ok") is not True:
            raise PageActionError(f"{payload.get('reason') or 'script failed'}: {selector}")
        return payload

    @staticmethod
    def _snapshot_uids(snapshot: str) -> set[str]:
        return set(re.findall(r"uid=(\d+_\d+)", snapshot))

    @classmethod
    def _extract_script_result_payload(cls, raw: dict[str, Any]) -> dict[str, Any] | None:
        result = raw.get("result")
        if isinstance(result, dict):
            return result
        return cls._extract_json_object(tool_text(raw))

    @staticmethod
    def _extract_json_object(text: str) -> dict[str, Any] | None:
        if not text:
            return None

        candidates: list[str] = []
        fenced = re.search(r"```json\s*(\{.*?\})\s*```", text, flags=re.DOTALL | re.IGNORECASE)
        if fenced:
            candidates.append(fenced.group(1))
        loose = re.search(r"(\{.*\})", text, flags=re.DOTALL)
        if loose:
            candidates.append(loose.group(1))

        for candidate in candidates:
            try:
                parsed = json.loads(candidate)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                return parsed
        return None
