"""Base interface for inference gateways."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class AudioPayload:
    """A complete, encoded audio clip."""
    data: bytes
    content_type: str = "audio/wav"
    sample_rate: Optional[int] = None
    duration_ms: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return not self.data


class InferenceGateway(ABC):
    """
    Abstract base class for the remote text-generation / speech service.

    Every call is a single request with a single response. Failures raise
    ``GatewayError``; callers decide how to surface them.
    """

    async def initialize(self) -> None:
        """Prepare clients or connections."""

    async def close(self) -> None:
        """Release clients or connections."""

    @abstractmethod
    async def generate_response(self, prompt: str) -> str:
        """
        Generate a continuation for the prompt.

        Args:
            prompt: Text sent to the language model

        Returns:
            The generated text
        """

    @abstractmethod
    async def speech_to_text(self, audio: AudioPayload) -> str:
        """
        Transcribe an audio clip.

        Returns:
            The recognized text, possibly empty
        """

    @abstractmethod
    async def text_to_speech(self, text: str) -> AudioPayload:
        """Synthesize speech for the given text."""

    @abstractmethod
    def get_status(self) -> dict:
        """Get current status of the gateway."""

    async def __aenter__(self) -> "InferenceGateway":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
