from __future__ import annotations

import argparse
import asyncio
import base64
import json
import logging
import mimetypes
import uuid
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Confirm, Prompt

from voicepilot.agent.executor import ActionExecutor
from voicepilot.agent.gate import ConfirmationGate
from voicepilot.agent.memory import MemorySink
from voicepilot.agent.orchestrator import Orchestrator
from voicepilot.agent.planner import IntentParser
from voicepilot.agent.registry import SessionRegistry
from voicepilot.browser.devtools_adapter import DevToolsAdapter
from voicepilot.config import Settings
from voicepilot.llm.groq_client import GroqClient
from voicepilot.memory.mem0_client import Mem0Client
from voicepilot.speech.deepgram_client import DeepgramClient

console = Console()
logger = logging.getLogger("voicepilot")

EXIT_WORDS = {"exit", "quit", "bye"}


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Drive a browser with spoken or typed commands")
    parser.add_argument("--session", default=None, help="Session id (default: a new random id)")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--text", help="Run one command given as text")
    source.add_argument("--audio", type=Path, help="Run one command from an audio file")
    source.add_argument("--interactive", action="store_true", help="Read commands from the terminal")
    parser.add_argument("--yes", action="store_true", help="Approve confirmation prompts automatically")
    parser.add_argument("--json", action="store_true", help="Print raw response envelopes")
    parser.add_argument("--artifacts", type=Path, default=Path("artifacts"), help="Where screenshots are saved")
    parser.add_argument("--check-config", action="store_true", help="Show which credentials are configured")
    return parser.parse_args()


def build_orchestrator(settings: Settings) -> Orchestrator:
    llm = None
    if settings.groq_api_key:
        llm = GroqClient(
            api_key=settings.groq_api_key,
            model=settings.groq_model,
            timeout_seconds=settings.llm_timeout_seconds,
            base_url=settings.groq_base_url,
        )
    else:
        logger.warning("GROQ_API_KEY not set: commands cannot be parsed and AI fallbacks are disabled")

    store = None
    if settings.mem0_api_key:
        store = Mem0Client(settings.mem0_api_key)
    memory = MemorySink(store)

    transcriber = None
    if settings.deepgram_api_key:
        transcriber = DeepgramClient(
            settings.deepgram_api_key,
            model=settings.deepgram_model,
            timeout_seconds=settings.llm_timeout_seconds,
        )

    def make_executor(session_id: str) -> ActionExecutor:
        return ActionExecutor(session_id, DevToolsAdapter.launch(settings, assistant=llm), memory)

    return Orchestrator(
        registry=SessionRegistry(make_executor),
        gate=ConfirmationGate(llm),
        parser=IntentParser(llm, memory),
        summarizer=llm,
        transcriber=transcriber,
    )


async def handle_transcript(
    orchestrator: Orchestrator,
    session_id: str,
    transcript: str,
    auto_confirm: bool = False,
    as_json: bool = False,
    artifacts_dir: Path | None = None,
) -> bool:
    parsed = await orchestrator.parse_intent({"transcript": transcript, "sessionId": session_id})
    _show(parsed, as_json)
    if not parsed["success"]:
        return False
    intent = parsed["data"]
    if intent.get("action") == "unknown":
        console.print("[yellow]Sorry, I did not understand that command.[/]")
        return False

    response = await orchestrator.submit_intent({"intent": intent, "sessionId": session_id})
    data = response.get("data") or {}
    if response["success"] and data.get("requiresConfirmation"):
        _show(response, as_json)
        confirmed = auto_confirm or await asyncio.to_thread(Confirm.ask, data["confirmationPrompt"])
        response = await orchestrator.resolve_confirmation(
            {"intent": data["intent"], "sessionId": session_id, "confirmed": confirmed}
        )
        data = response.get("data") or {}
        if data.get("cancelled"):
            console.print("[yellow]Cancelled.[/]")
            return True

    _show(response, as_json)
    if not response["success"]:
        return False
    action = data.get("action") or {}
    if artifacts_dir is not None:
        _save_screenshot(action, artifacts_dir)
    return action.get("status") == "success"


def _show(response: dict[str, Any], as_json: bool) -> None:
    if as_json:
        console.print_json(json.dumps(response, default=str))
        return
    if not response["success"]:
        console.print(f"[red]✗ {response.get('error')}[/]")
        return
    data = response.get("data") or {}
    if "confirmationPrompt" in data:
        console.print(f"[bold yellow]? {data['confirmationPrompt']}[/]")
    elif "action" in data and "summary" in data:
        action = data["action"]
        mark = "[green]✓[/]" if action.get("status") == "success" else "[red]✗[/]"
        console.print(f"{mark} {data['summary']}")
        if action.get("error"):
            console.print(f"   [dim]{action['error']}[/]")
    elif "transcript" in data:
        console.print(f"[cyan]🎙  {data['transcript']}[/] [dim]({data.get('confidence', 0):.2f})[/]")
    elif "action" in data:
        target = f" → {data['target']}" if data.get("target") else ""
        value = f" ({data['value']})" if data.get("value") else ""
        console.print(f"[dim]Intent: {data['action']}{target}{value}[/]")


def _save_screenshot(action: dict[str, Any], artifacts_dir: Path) -> None:
    uri = (action.get("result") or {}).get("screenshot")
    if not isinstance(uri, str) or "," not in uri:
        return
    artifacts_dir.mkdir(parents=True, exist_ok=True)
    path = artifacts_dir / f"{action.get('id', 'screenshot')}.png"
    path.write_bytes(base64.b64decode(uri.split(",", 1)[1]))
    console.print(f"   [dim]Screenshot saved to {path}[/]")


async def _run(args: argparse.Namespace, settings: Settings) -> bool:
    orchestrator = build_orchestrator(settings)
    session_id = args.session or f"cli-{uuid.uuid4().hex[:8]}"
    options = {"auto_confirm": args.yes, "as_json": args.json, "artifacts_dir": args.artifacts}
    ok = True
    try:
        if args.audio is not None:
            mimetype = mimetypes.guess_type(args.audio.name)[0] or "audio/wav"
            stt = await orchestrator.transcribe(args.audio.read_bytes(), mimetype)
            _show(stt, args.json)
            if not stt["success"]:
                return False
            ok = await handle_transcript(orchestrator, session_id, stt["data"]["transcript"], **options)
        elif args.text:
            ok = await handle_transcript(orchestrator, session_id, args.text, **options)
        else:
            console.print(f"[bold]Session {session_id}[/] - type a command, or 'exit' to quit")
            while True:
                try:
                    line = await asyncio.to_thread(Prompt.ask, "[bold cyan]>[/]")
                except EOFError:
                    break
                line = line.strip()
                if not line:
                    continue
                if line.lower() in EXIT_WORDS:
                    break
                ok = await handle_transcript(orchestrator, session_id, line, **options)
    finally:
        await orchestrator.close_session({"sessionId": session_id})
        await orchestrator.shutdown()
    return ok


def main() -> None:
    args = _parse_args()
    settings = Settings.from_env()
    logging.basicConfig(
        level=logging.DEBUG if settings.verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    if args.check_config:
        for name, state in settings.status().items():
            colour = "green" if state == "SET" else "red"
            console.print(f"{name}: [{colour}]{state}[/]")
        return

    ok = asyncio.run(_run(args, settings))
    raise SystemExit(0 if ok else 1)


if __name__ == "__main__":
    main()
