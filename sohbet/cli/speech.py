"""One-shot speech utilities: synthesize to a file or the speakers, transcribe a file."""

import io
import mimetypes
import time
from pathlib import Path
from typing import Any, Dict, Optional
import structlog

from ..errors import EmptyInputError
from ..gateway.base import AudioPayload, InferenceGateway

logger = structlog.get_logger()


class SpeechUtility:
    """Runs single gateway speech calls outside a chat session."""

    def __init__(self, gateway: InferenceGateway):
        self.gateway = gateway
        self.metrics: Dict[str, Any] = {}

    async def synthesize(self, text: str, output_file: Optional[Path] = None) -> AudioPayload:
        """Convert text to speech; write it to ``output_file`` when given."""
        start_time = time.time()
        async with self.gateway:
            payload = await self.gateway.text_to_speech(text)
        self.metrics["synthesis_ms"] = (time.time() - start_time) * 1000
        self.metrics["audio_bytes"] = len(payload.data)

        if output_file is not None:
            output_file = Path(output_file)
            output_file.parent.mkdir(parents=True, exist_ok=True)
            output_file.write_bytes(payload.data)
            logger.info("Audio written", file=str(output_file), size_bytes=len(payload.data))

        return payload

    async def transcribe(self, audio_file: Path) -> str:
        """Transcribe an audio file."""
        audio_file = Path(audio_file)
        content_type = mimetypes.guess_type(audio_file.name)[0] or "application/octet-stream"
        payload = AudioPayload(data=audio_file.read_bytes(), content_type=content_type)
        if payload.is_empty:
            raise EmptyInputError(f"Audio file is empty: {audio_file}")

        start_time = time.time()
        async with self.gateway:
            text = await self.gateway.speech_to_text(payload)
        self.metrics["transcription_ms"] = (time.time() - start_time) * 1000
        return text

    @staticmethod
    def play(payload: AudioPayload) -> None:
        """Play an encoded clip through the default output device."""
        import pygame

        pygame.mixer.init()
        try:
            pygame.mixer.music.load(io.BytesIO(payload.data))
            pygame.mixer.music.play()
            while pygame.mixer.music.get_busy():
                time.sleep(0.05)
        finally:
            pygame.mixer.quit()
