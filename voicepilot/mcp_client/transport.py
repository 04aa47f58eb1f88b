from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
from collections.abc import AsyncIterator
from pathlib import Path

logger = logging.getLogger(__name__)


class StdioTransport:
    """Newline-delimited JSON over a child process's stdin/stdout."""

    def __init__(self, command: str, args: list[str], cwd: str | None = None) -> None:
        self.command = command
        self.args = args
        self.cwd = cwd
        self._process: asyncio.subprocess.Process | None = None
        self._stderr_task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        logger.debug("Starting MCP server: %s %s", self.command, " ".join(self.args))
        self._process = await asyncio.create_subprocess_exec(
            self.command,
            *self.args,
            cwd=self.cwd or str(Path.cwd()),
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            # MCP responses can carry whole page snapshots and screenshots.
            limit=16 * 1024 * 1024,
        )
        self._stderr_task = asyncio.create_task(self._drain_stderr())

    async def stop(self) -> None:
        if self._process is None:
            return
        process = self._process
        self._process = None
        if process.stdin is not None:
            process.stdin.close()
            with contextlib.suppress(Exception):
                await process.stdin.wait_closed()
        if process.returncode is None and os.name == "nt":
            with contextlib.suppress(Exception):
                killer = await asyncio.create_subprocess_exec(
                    "taskkill",
                    "/T",
                    "/F",
                    "/PID",
                    str(process.pid),
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.DEVNULL,
                )
                await asyncio.wait_for(killer.wait(), timeout=5)
        if process.returncode is None:
            process.terminate()
            with contextlib.suppress(asyncio.CancelledError, TimeoutError):
                await asyncio.wait_for(process.wait(), timeout=5)
            if process.returncode is None:
                process.kill()
                with contextlib.suppress(asyncio.CancelledError, TimeoutError):
                    await asyncio.wait_for(process.wait(), timeout=5)
        if self._stderr_task is not None:
            self._stderr_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._stderr_task
            self._stderr_task = None

    async def send(self, payload: dict) -> None:
        if self._process is None or self._process.stdin is None:
            raise RuntimeError("Transport is not started")
        data = (json.dumps(payload, ensure_ascii=False) + "\n").encode("utf-8")
        self._process.stdin.write(data)
        await self._process.stdin.drain()

    async def recv(self) -> dict:
        if self._process is None or self._process.stdout is None:
            raise RuntimeError("Transport is not started")
        while True:
            line = await self._process.stdout.readline()
            if not line:
                raise ConnectionError("MCP transport closed")
            text = line.decode("utf-8", errors="replace").strip()
            if not text:
                continue
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON line from MCP server: %s", text[:200])

    async def iter_stderr(self) -> AsyncIterator[str]:
        if self._process is None or self._process.stderr is None:
            return
        while True:
            line = await self._process.stderr.readline()
            if not line:
                break
            yield line.decode("utf-8", errors="replace").rstrip()

    async def _drain_stderr(self) -> None:
        # An unread stderr pipe eventually blocks the child process.
        async for line in self.iter_stderr():
            logger.debug("[mcp stderr] %s", line)
