from __future__ import annotations

import re
from typing import Any

from voicepilot.browser.actions import Intent, IntentAction
from voicepilot.errors import MissingParameter, UnknownAction

DEFAULT_WAIT_MS = 1000
DEFAULT_SCROLL_DIRECTION = "down"
SCROLL_STEP_PX = 500
DEFAULT_EXTRACT_INSTRUCTION = "Extract all visible text and data from the page"
DEFAULT_OBSERVE_INSTRUCTION = "Observe the current page and describe what you see"
DEFAULT_EXTRACT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "content": {"type": "string"},
        "links": {"type": "array", "items": {"type": "string"}},
        "images": {"type": "array", "items": {"type": "string"}},
    },
}

SEARCH_INPUT_SELECTOR = 'input[type="search"], input[name*="search"], input[placeholder*="search"]'
SEARCH_SUBMIT_SELECTOR = 'button[type="submit"], button:has-text("Search"), input[type="submit"]'

_OPAQUE_SCHEMES = ("about:", "data:", "file:", "javascript:", "chrome:")


def to_intent(step: dict[str, Any]) -> Intent:
    """Build an Intent from loosely shaped model output.

    Keys the parser model sometimes invents (``url``, ``selector``, ``query``,
    ``text``) are folded into ``target``/``value``. Anything that still does not
    validate becomes the low-confidence unknown intent.
    """
    action = str(step.get("action", "")).strip().lower() or IntentAction.UNKNOWN.value
    target = step.get("target") or step.get("selector") or step.get("element")
    value = step.get("value") or step.get("url") or step.get("query") or step.get("text")

    parameters = step.get("parameters")
    if not isinstance(parameters, dict) or not parameters:
        parameters = None

    requires_confirmation = step.get("requiresConfirmation", step.get("requires_confirmation", False))
    if isinstance(requires_confirmation, str):
        requires_confirmation = requires_confirmation.strip().lower() in {"1", "true", "yes", "on"}

    try:
        return Intent(
            action=action,
            target=target,
            value=value,
            parameters=parameters,
            confidence=_clamp_confidence(step.get("confidence")),
            requires_confirmation=bool(requires_confirmation),
        )
    except ValueError:
        return Intent.unknown()


def _clamp_confidence(raw: Any, default: float = 0.5) -> float:
    try:
        confidence = float(raw)
    except (TypeError, ValueError):
        return default
    if confidence != confidence:  # NaN
        return default
    return min(max(confidence, 0.0), 1.0)


def check_contract(intent: Intent) -> None:
    """Raise MissingParameter/UnknownAction if the intent cannot be executed."""
    action = intent.action
    if action is IntentAction.UNKNOWN:
        raise UnknownAction("The command was not understood as a browser action")
    if action is IntentAction.NAVIGATE and not (intent.value or intent.target):
        raise MissingParameter("No URL provided for navigation")
    if action is IntentAction.CLICK and not intent.target:
        raise MissingParameter("No target provided for click action")
    if action is IntentAction.TYPE and not (intent.target and intent.value):
        raise MissingParameter("Target and value required for type action")
    if action is IntentAction.SEARCH and not intent.value:
        raise MissingParameter("No search query provided")


def navigation_url(intent: Intent) -> str:
    raw = (intent.value or intent.target or "").strip()
    if re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", raw) or raw.lower().startswith(_OPAQUE_SCHEMES):
        return raw
    # Bare hosts like "example.com/docs" or "localhost:3000" get a scheme;
    # anything else is left for the natural-language tier to interpret.
    if " " not in raw and re.match(r"^([\w-]+(\.[\w-]+)+|localhost)(:\d+)?(/.*)?$", raw):
        return f"https://{raw}"
    return raw


def wait_duration_ms(value: str | None) -> int:
    # Leading integer, as in "2000" or "2000ms".
    match = re.match(r"\s*(\d+)", value or "")
    if match is None:
        return DEFAULT_WAIT_MS
    return int(match.group(1))


def scroll_direction(intent: Intent) -> str:
    return (intent.value or DEFAULT_SCROLL_DIRECTION).strip().lower()


def scroll_offset(direction: str, step: int = SCROLL_STEP_PX) -> int:
    return -step if direction == "up" else step


def extraction_schema(intent: Intent) -> dict[str, Any]:
    schema = (intent.parameters or {}).get("schema")
    if isinstance(schema, dict) and schema:
        return schema
    return DEFAULT_EXTRACT_SCHEMA
