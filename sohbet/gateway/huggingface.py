"""Hugging Face Inference API gateway."""

import time
from typing import Any, Dict, Optional
import httpx
import structlog

from .base import InferenceGateway, AudioPayload
from ..errors import GatewayError


logger = structlog.get_logger()


class HuggingFaceGateway(InferenceGateway):
    """
    Gateway backed by the hosted Hugging Face Inference API.

    Only ``generated_text`` (generation) and ``text`` (transcription) are
    read from responses; every other field is ignored.
    """

    def __init__(
        self,
        api_token: Optional[str] = None,
        base_url: str = "https://api-inference.huggingface.co/models",
        text_model: str = "facebook/blenderbot-400M-distill",
        speech_model: str = "openai/whisper-base",
        tts_model: str = "espnet/kan-bayashi_ljspeech_vits",
        max_new_tokens: int = 100,
        temperature: float = 0.7,
        top_p: float = 0.95,
        repetition_penalty: float = 1.2,
        request_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.text_model = text_model
        self.speech_model = speech_model
        self.tts_model = tts_model
        self.parameters = {
            "max_new_tokens": max_new_tokens,
            "temperature": temperature,
            "top_p": top_p,
            "repetition_penalty": repetition_penalty,
        }
        self.request_timeout = request_timeout
        self.transport = transport

        self.client: Optional[httpx.AsyncClient] = None
        self.request_count = 0
        self.error_count = 0
        self.last_latency_ms: Optional[float] = None

    async def initialize(self) -> None:
        """Create the HTTP client."""
        if self.client is not None:
            return

        logger.info(
            "Initializing Hugging Face gateway",
            text_model=self.text_model,
            speech_model=self.speech_model,
            has_token=self.api_token is not None,
        )

        headers = {}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(self.request_timeout),
            transport=self.transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self.client is not None:
            await self.client.aclose()
            self.client = None
            logger.info("Hugging Face gateway closed")

    async def _post(self, model: str, **request: Any) -> httpx.Response:
        if self.client is None:
            await self.initialize()

        self.request_count += 1
        start_time = time.time()
        try:
            response = await self.client.post(f"/{model}", **request)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self.error_count += 1
            detail = _error_detail(e.response)
            logger.error(
                "Inference request rejected",
                model=model,
                status_code=e.response.status_code,
                detail=detail,
            )
            raise GatewayError(
                f"{model} returned HTTP {e.response.status_code}: {detail}",
                status_code=e.response.status_code,
                model=model,
            ) from e
        except httpx.HTTPError as e:
            self.error_count += 1
            logger.error("Inference request failed", model=model, error=str(e))
            raise GatewayError(f"Request to {model} failed: {e}", model=model) from e
        finally:
            self.last_latency_ms = (time.time() - start_time) * 1000

        logger.debug(
            "Inference request completed",
            model=model,
            latency_ms=round(self.last_latency_ms, 1),
        )
        return response

    def _read_field(self, response: httpx.Response, field: str, model: str) -> str:
        try:
            payload = response.json()
        except ValueError as e:
            self.error_count += 1
            raise GatewayError(f"{model} returned a non-JSON body", model=model) from e

        # Text generation answers with a one-element list
        if isinstance(payload, list) and payload:
            payload = payload[0]

        if not isinstance(payload, dict) or not isinstance(payload.get(field), str):
            self.error_count += 1
            raise GatewayError(f"{model} response has no '{field}' field", model=model)

        return payload[field]

    async def generate_response(self, prompt: str) -> str:
        """Generate a reply with the text model."""
        response = await self._post(
            self.text_model,
            json={"inputs": prompt, "parameters": self.parameters},
        )
        return self._read_field(response, "generated_text", self.text_model)

    async def speech_to_text(self, audio: AudioPayload) -> str:
        """Transcribe audio with the speech model."""
        response = await self._post(
            self.speech_model,
            content=audio.data,
            headers={"Content-Type": audio.content_type},
        )
        return self._read_field(response, "text", self.speech_model)

    async def text_to_speech(self, text: str) -> AudioPayload:
        """Synthesize speech with the TTS model."""
        response = await self._post(self.tts_model, json={"inputs": text})
        content_type = response.headers.get("Content-Type", "audio/flac")
        return AudioPayload(data=response.content, content_type=content_type)

    def get_status(self) -> dict:
        """Get gateway status."""
        return {
            "gateway": "huggingface",
            "base_url": self.base_url,
            "text_model": self.text_model,
            "speech_model": self.speech_model,
            "tts_model": self.tts_model,
            "initialized": self.client is not None,
            "has_token": bool(self.api_token),
            "request_count": self.request_count,
            "error_count": self.error_count,
            "last_latency_ms": self.last_latency_ms,
        }


def _error_detail(response: httpx.Response) -> str:
    """Best-effort error message from an API error body."""
    try:
        body: Dict[str, Any] = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and "error" in body:
        return str(body["error"])
    return str(body)[:200]
