from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class BrowserPage(Protocol):
    """Operations the executor needs from one browser automation session.

    Deterministic operations take CSS selectors and raise on any failure.
    ``extract_structured``, ``observe`` and ``act_natural_language`` are the
    AI-driven operations and take plain-language instructions.
    """

    async def start(self) -> None: ...

    async def close(self) -> None: ...

    async def goto(self, url: str) -> Any: ...

    async def locate_and_click(self, selector: str) -> Any: ...

    async def locate_and_fill(self, selector: str, value: str) -> Any: ...

    async def scroll_into_view(self, selector: str) -> Any: ...

    async def evaluate_scroll(self, delta_y: int) -> Any: ...

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> Any: ...

    async def wait_for_timeout(self, duration_ms: int) -> None: ...

    async def screenshot(self, full_page: bool = True) -> bytes: ...

    async def extract_structured(self, instruction: str, schema: dict[str, Any]) -> Any: ...

    async def observe(self, instruction: str) -> list[dict[str, Any]]: ...

    async def act_natural_language(self, instruction: str) -> Any: ...
