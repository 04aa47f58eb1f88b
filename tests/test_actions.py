import pytest
from pydantic import ValidationError

from voicepilot.browser.actions import ActionStatus, BrowserAction, Intent, IntentAction


def test_intent_accepts_wire_aliases() -> None:
    intent = Intent.model_validate(
        {"action": "click", "target": "Buy now", "confidence": 0.8, "requiresConfirmation": True}
    )
    assert intent.action is IntentAction.CLICK
    assert intent.requires_confirmation is True
    assert intent.to_wire() == {
        "action": "click",
        "target": "Buy now",
        "confidence": 0.8,
        "requiresConfirmation": True,
    }


def test_intent_normalizes_action_aliases() -> None:
    assert Intent(action="Open", value="example.com", confidence=1).action is IntentAction.NAVIGATE
    assert Intent(action="fill", target="q", value="x", confidence=1).action is IntentAction.TYPE


def test_intent_rejects_unknown_action_name() -> None:
    with pytest.raises(ValidationError):
        Intent(action="teleport", confidence=0.5)


@pytest.mark.parametrize("confidence", [-0.1, 1.5])
def test_intent_rejects_confidence_out_of_range(confidence: float) -> None:
    with pytest.raises(ValidationError):
        Intent(action="observe", confidence=confidence)


def test_intent_blank_fields_become_none() -> None:
    intent = Intent(action="wait", target="  ", value=2000, confidence=0.5)
    assert intent.target is None
    assert intent.value == "2000"


def test_unknown_intent_defaults() -> None:
    intent = Intent.unknown()
    assert intent.action is IntentAction.UNKNOWN
    assert intent.confidence == 0.1
    assert intent.requires_confirmation is False


def test_label_includes_target_when_present() -> None:
    assert Intent(action="click", target="Login", confidence=1).label() == "click on Login"
    assert Intent(action="screenshot", confidence=1).label() == "screenshot"


def _observe() -> Intent:
    return Intent(action="observe", confidence=0.9)


def test_action_lifecycle_success() -> None:
    action = BrowserAction(intent=_observe())
    assert action.status is ActionStatus.PENDING
    assert action.id.startswith("action_")
    action.start()
    action.succeed({"observations": []})
    assert action.succeeded and action.is_terminal
    assert action.error is None


def test_action_lifecycle_failure() -> None:
    action = BrowserAction(intent=_observe())
    action.start()
    action.fail("AutomationFailed: boom")
    assert action.status is ActionStatus.FAILED
    assert action.result is None
    assert action.to_wire()["error"] == "AutomationFailed: boom"


def test_action_cannot_finish_before_running() -> None:
    action = BrowserAction(intent=_observe())
    with pytest.raises(ValueError):
        action.succeed({"ok": True})


def test_action_transitions_are_one_way() -> None:
    action = BrowserAction(intent=_observe())
    action.start()
    action.fail("nope")
    with pytest.raises(ValueError):
        action.start()
    with pytest.raises(ValueError):
        action.succeed({"ok": True})


def test_action_success_requires_result() -> None:
    action = BrowserAction(intent=_observe())
    action.start()
    with pytest.raises(ValueError):
        action.succeed(None)


def test_terminal_action_must_carry_exactly_one_outcome() -> None:
    with pytest.raises(ValidationError):
        BrowserAction(intent=_observe(), status="success")
    with pytest.raises(ValidationError):
        BrowserAction(intent=_observe(), status="failed", error="x", result={"y": 1})
    with pytest.raises(ValidationError):
        BrowserAction(intent=_observe(), status="running", result={"y": 1})
