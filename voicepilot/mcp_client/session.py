from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Protocol

from .jsonrpc import build_notification, build_request, extract_result, is_notification, is_response

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2025-06-18"
CLIENT_INFO = {"name": "voicepilot", "version": "0.1.0"}


class Transport(Protocol):
    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def send(self, payload: dict) -> None: ...

    async def recv(self) -> dict: ...


class McpSession:
    def __init__(self, transport: Transport, timeout_seconds: float = 20.0) -> None:
        self.transport = transport
        self.timeout_seconds = timeout_seconds
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._reader_task: asyncio.Task[None] | None = None
        self.server_info: dict[str, Any] = {}

    async def start(self) -> None:
        await self.transport.start()
        self._reader_task = asyncio.create_task(self._reader_loop())

    async def stop(self) -> None:
        if self._reader_task is not None:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError, TimeoutError):
                await asyncio.wait_for(self._reader_task, timeout=2)
            self._reader_task = None
        self._fail_pending(ConnectionError("MCP session stopped"))
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self.transport.stop(), timeout=8)

    async def initialize(self) -> Any:
        result = await self.request(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "clientInfo": CLIENT_INFO,
                "capabilities": {},
            },
        )
        if isinstance(result, dict):
            self.server_info = result.get("serverInfo") or {}
        await self.transport.send(build_notification("notifications/initialized").to_dict())
        return result

    async def call_tool(self, name: str, arguments: dict[str, Any], timeout_seconds: float | None = None) -> Any:
        return await self.request(
            "tools/call",
            {"name": name, "arguments": arguments},
            timeout_seconds=timeout_seconds,
        )

    async def request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout_seconds: float | None = None,
    ) -> Any:
        if self._reader_task is None or self._reader_task.done():
            raise ConnectionError("MCP session is not running")
        req = build_request(method, params)
        loop = asyncio.get_running_loop()
        fut: asyncio.Future[Any] = loop.create_future()
        self._pending[req.id] = fut
        try:
            await self.transport.send(req.to_dict())
            return await asyncio.wait_for(fut, timeout=timeout_seconds or self.timeout_seconds)
        finally:
            self._pending.pop(req.id, None)

    async def _reader_loop(self) -> None:
        try:
            while True:
                message = await self.transport.recv()
                if is_response(message):
                    future = self._pending.pop(int(message["id"]), None)
                    if future is not None and not future.done():
                        try:
                            future.set_result(extract_result(message))
                        except Exception as exc:
                            future.set_exception(exc)
                elif is_notification(message):
                    logger.debug("MCP notification %s: %s", message.get("method", ""), message.get("params", {}))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("MCP reader stopped: %s", exc)
            self._fail_pending(exc)

    def _fail_pending(self, exc: BaseException) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(exc)
