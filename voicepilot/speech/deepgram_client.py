from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from voicepilot.browser.actions import now_ms

logger = logging.getLogger(__name__)


class STTResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transcript: str
    confidence: float = Field(ge=0.0, le=1.0)
    is_final: bool = Field(alias="isFinal")
    timestamp: int

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class DeepgramClient:
    """Pre-recorded transcription through Deepgram's /v1/listen endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "nova-2",
        language: str = "en",
        timeout_seconds: float = 30,
        base_url: str = "https://api.deepgram.com",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.language = language
        self.timeout_seconds = timeout_seconds
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    # Only transport failures are retried; a 4xx means the audio itself was rejected.
    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def transcribe(self, audio: bytes, mimetype: str = "audio/wav") -> STTResult:
        if not audio:
            raise ValueError("No audio provided")

        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            response = await client.post(
                f"{self.base_url}/v1/listen",
                params={"model": self.model, "language": self.language, "smart_format": "true"},
                headers={"Authorization": f"Token {self.api_key}", "Content-Type": mimetype},
                content=audio,
            )
            response.raise_for_status()
            data = response.json()

        alternative = self._first_alternative(data)
        transcript = str(alternative.get("transcript") or "")
        confidence = alternative.get("confidence") or 0.0
        logger.debug("Transcribed %d bytes: %r (%.2f)", len(audio), transcript, confidence)
        return STTResult(
            transcript=transcript,
            confidence=min(max(float(confidence), 0.0), 1.0),
            is_final=True,
            timestamp=now_ms(),
        )

    @staticmethod
    def _first_alternative(data: Any) -> dict[str, Any]:
        try:
            alternative = data["results"]["channels"][0]["alternatives"][0]
        except (KeyError, IndexError, TypeError):
            return {}
        return alternative if isinstance(alternative, dict) else {}
