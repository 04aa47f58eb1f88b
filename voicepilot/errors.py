from __future__ import annotations


class VoicePilotError(Exception):
    """Base error. ``kind`` is the name reported to callers."""

    kind = "VoicePilotError"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def describe(self) -> str:
        return f"{self.kind}: {self.message}"


class InputValidationError(VoicePilotError):
    kind = "InputValidationError"


class CollaboratorUnavailable(VoicePilotError):
    kind = "CollaboratorUnavailable"


class IntentContractError(VoicePilotError):
    kind = "IntentContractError"


class MissingParameter(IntentContractError):
    kind = "MissingParameter"


class UnknownAction(IntentContractError):
    kind = "UnknownAction"


class AutomationError(VoicePilotError):
    kind = "AutomationError"


class AutomationFailed(AutomationError):
    kind = "AutomationFailed"


class ExtractionFailed(AutomationError):
    kind = "ExtractionFailed"


class ObservationFailed(AutomationError):
    kind = "ObservationFailed"


class ScreenshotFailed(AutomationError):
    kind = "ScreenshotFailed"
