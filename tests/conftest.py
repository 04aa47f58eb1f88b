from __future__ import annotations

import asyncio
from typing import Any

import pytest

from voicepilot.agent.executor import ActionExecutor
from voicepilot.agent.memory import MemorySink


class FakePage:
    """In-memory BrowserPage; names listed in ``fail`` raise when called."""

    def __init__(self, fail: set[str] | None = None) -> None:
        self.fail = set(fail or ())
        self.calls: list[tuple[Any, ...]] = []
        self.image = b"\x89PNG\r\n\x1a\nfake"
        self.extracted: Any = {"content": "Example Domain", "links": [], "images": []}
        self.observations: list[dict[str, Any]] = [{"description": "A search box", "uid": "1_2"}]
        self.started = False
        self.close_count = 0

    async def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        await asyncio.sleep(0)
        if name in self.fail:
            raise RuntimeError(f"{name} broke")

    async def start(self) -> None:
        await self._record("start")
        self.started = True

    async def close(self) -> None:
        self.close_count += 1

    async def goto(self, url: str) -> dict[str, Any]:
        await self._record("goto", url)
        return {"url": url}

    async def locate_and_click(self, selector: str) -> dict[str, Any]:
        await self._record("locate_and_click", selector)
        return {"ok": True}

    async def locate_and_fill(self, selector: str, value: str) -> dict[str, Any]:
        await self._record("locate_and_fill", selector, value)
        return {"ok": True}

    async def scroll_into_view(self, selector: str) -> dict[str, Any]:
        await self._record("scroll_into_view", selector)
        return {"ok": True}

    async def evaluate_scroll(self, delta_y: int) -> dict[str, Any]:
        await self._record("evaluate_scroll", delta_y)
        return {"ok": True}

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> dict[str, Any]:
        await self._record("wait_for_selector", selector, timeout_ms)
        return {"ok": True}

    async def wait_for_timeout(self, duration_ms: int) -> None:
        await self._record("wait_for_timeout", duration_ms)

    async def screenshot(self, full_page: bool = True) -> bytes:
        await self._record("screenshot", full_page)
        return self.image

    async def extract_structured(self, instruction: str, schema: dict[str, Any]) -> Any:
        await self._record("extract_structured", instruction, schema)
        return self.extracted

    async def observe(self, instruction: str) -> list[dict[str, Any]]:
        await self._record("observe", instruction)
        return self.observations

    async def act_natural_language(self, instruction: str) -> dict[str, Any]:
        await self._record("act", instruction)
        return {"tool": "click", "uid": "1_2"}


class RecordingStore:
    """MemoryStore that keeps memories in a list, shaped like Mem0 list results."""

    def __init__(self, broken: bool = False) -> None:
        self.broken = broken
        self.memories: list[dict[str, Any]] = []

    async def add_memory(
        self,
        session_id: str,
        content: str,
        metadata: dict[str, Any] | None = None,
        role: str = "user",
    ) -> Any:
        if self.broken:
            raise ConnectionError("memory service down")
        self.memories.append({"user_id": session_id, "memory": content, "metadata": metadata or {}})
        return {"id": str(len(self.memories))}

    async def get_memories(self, session_id: str, limit: int = 50) -> list[dict[str, Any]]:
        if self.broken:
            raise ConnectionError("memory service down")
        return [memory for memory in self.memories if memory["user_id"] == session_id][:limit]


class PageFactory:
    """Executor factory that remembers every page it handed out."""

    def __init__(self, memory: MemorySink | None = None, fail: set[str] | None = None) -> None:
        self.memory = memory or MemorySink()
        self.fail = fail
        self.pages: dict[str, list[FakePage]] = {}

    @property
    def created(self) -> int:
        return sum(len(pages) for pages in self.pages.values())

    def __call__(self, session_id: str) -> ActionExecutor:
        page = FakePage(self.fail)
        self.pages.setdefault(session_id, []).append(page)
        return ActionExecutor(session_id, page, self.memory)


@pytest.fixture
def page() -> FakePage:
    return FakePage()


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()
