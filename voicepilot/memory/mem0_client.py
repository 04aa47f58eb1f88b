from __future__ import annotations

import logging
from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

# Memory is best effort: one quick retry on connection problems, none on HTTP errors.
_memory_retry = retry(
    retry=retry_if_exception_type(httpx.TransportError),
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=0.2, max=1),
    reraise=True,
)


class Mem0Client:
    """Minimal client for the hosted Mem0 memories API, one user per session."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.mem0.ai",
        timeout_seconds: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @_memory_retry
    async def add_memory(
        self,
        session_id: str,
        content: str,
        metadata: dict[str, Any] | None = None,
        role: str = "user",
    ) -> Any:
        payload = {
            "messages": [{"role": role, "content": content}],
            "user_id": session_id,
            "metadata": {"sessionId": session_id, **(metadata or {})},
            # Store verbatim; the history is replayed as-is into the parser.
            "infer": False,
        }
        async with self._client() as client:
            response = await client.post("/v1/memories/", json=payload)
            response.raise_for_status()
            return response.json()

    @_memory_retry
    async def get_memories(self, session_id: str, limit: int = 50) -> list[dict[str, Any]]:
        async with self._client() as client:
            response = await client.get(
                "/v1/memories/",
                params={"user_id": session_id, "page": 1, "page_size": limit},
            )
            response.raise_for_status()
            data = response.json()

        if isinstance(data, dict):
            data = data.get("results") or data.get("memories") or []
        if not isinstance(data, list):
            logger.warning("Unexpected Mem0 list payload: %s", type(data).__name__)
            return []
        return [item for item in data if isinstance(item, dict)][:limit]

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            headers={"Authorization": f"Token {self.api_key}"},
            transport=self._transport,
        )
