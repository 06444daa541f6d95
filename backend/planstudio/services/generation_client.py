"""Generation oracle: Gemini image model over the REST ``generateContent`` API.

The orchestrator depends only on the ``GenerationOracle`` protocol, so tests
and alternative backends can stand in for Gemini.
"""

import logging
from typing import List, Optional, Protocol, Sequence

import httpx

from ..core.config import Settings
from ..exceptions import UpstreamFailureError
from ..schemas.session import Part, Turn

logger = logging.getLogger(__name__)


class GenerationOracle(Protocol):
    model_name: str

    def generate(
        self,
        turns: Sequence[Turn],
        system_instruction: Optional[Turn] = None,
        aspect_ratio: Optional[str] = None,
    ) -> List[Part]:
        """Return the content parts of the model's reply (possibly empty)."""
        ...


class GeminiImageClient:
    """Calls a Gemini image model with the full conversation every time.

    No retries: transport errors and non-2xx responses surface as
    ``UpstreamFailureError``.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        api_base: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 180.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.model_name = model
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiImageClient":
        return cls(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            api_base=settings.gemini_api_base,
            timeout=settings.gemini_timeout_seconds,
        )

    def build_payload(
        self,
        turns: Sequence[Turn],
        system_instruction: Optional[Turn] = None,
        aspect_ratio: Optional[str] = None,
    ) -> dict:
        generation_config: dict = {"responseModalities": ["TEXT", "IMAGE"]}
        if aspect_ratio:
            generation_config["imageConfig"] = {"aspectRatio": aspect_ratio}

        payload: dict = {
            "contents": [turn.to_wire() for turn in turns],
            "generationConfig": generation_config,
        }
        if system_instruction is not None:
            payload["systemInstruction"] = {
                "parts": [{"text": part.text or ""} for part in system_instruction.parts]
            }
        return payload

    def generate(
        self,
        turns: Sequence[Turn],
        system_instruction: Optional[Turn] = None,
        aspect_ratio: Optional[str] = None,
    ) -> List[Part]:
        url = f"{self.api_base}/models/{self.model_name}:generateContent"
        payload = self.build_payload(turns, system_instruction, aspect_ratio)

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    url,
                    json=payload,
                    headers={"x-goog-api-key": self.api_key, "Content-Type": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Generation request failed: {e}", extra={"model": self.model_name})
            raise UpstreamFailureError("generation", f"Generation request failed: {e}") from e

        if response.status_code != 200:
            logger.error(
                f"Generation API error {response.status_code}",
                extra={"model": self.model_name, "body": response.text[:500]},
            )
            raise UpstreamFailureError(
                "generation",
                f"Generation API returned {response.status_code}",
                upstream_status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamFailureError("generation", "Generation API returned invalid JSON") from e

        candidates = data.get("candidates") or []
        if not candidates:
            logger.warning("Generation response had no candidates", extra={"model": self.model_name})
            return []
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return [Part.model_validate(part) for part in parts if isinstance(part, dict)]
