"""Offline gateway with canned replies, for --mock runs and tests."""

import asyncio
import io
from typing import List, Optional, Sequence
import numpy as np
import soundfile as sf

from .base import InferenceGateway, AudioPayload
from ..errors import GatewayError


class MockGateway(InferenceGateway):
    """Gateway that never leaves the process."""

    def __init__(
        self,
        responses: Optional[Sequence[str]] = None,
        transcripts: Optional[Sequence[str]] = None,
        latency: float = 0.0,
        fail_generation: bool = False,
        fail_transcription: bool = False,
    ):
        self.responses = list(responses or [
            "Merhaba! Size nasıl yardımcı olabilirim?",
            "I'm doing well, thanks for asking.",
            "That sounds interesting, tell me more.",
        ])
        self.transcripts = list(transcripts or ["Hello, how are you today?"])
        self.latency = latency
        self.fail_generation = fail_generation
        self.fail_transcription = fail_transcription

        self.prompts: List[str] = []
        self.audio_received: List[AudioPayload] = []
        self.response_index = 0
        self.transcript_index = 0

    async def generate_response(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.fail_generation:
            raise GatewayError("Mock generation failure", model="mock")

        response = self.responses[self.response_index % len(self.responses)]
        self.response_index += 1
        return response

    async def speech_to_text(self, audio: AudioPayload) -> str:
        self.audio_received.append(audio)
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.fail_transcription:
            raise GatewayError("Mock transcription failure", model="mock")

        text = self.transcripts[self.transcript_index % len(self.transcripts)]
        self.transcript_index += 1
        return text

    async def text_to_speech(self, text: str) -> AudioPayload:
        # Silent 16-bit mono WAV, 100 ms per word
        samples = 1600 * max(1, len(text.split()))
        buffer = io.BytesIO()
        sf.write(buffer, np.zeros(samples, dtype=np.float32), 16000, format="WAV", subtype="PCM_16")
        return AudioPayload(
            data=buffer.getvalue(),
            content_type="audio/wav",
            sample_rate=16000,
            duration_ms=samples // 16,
        )

    def get_status(self) -> dict:
        return {
            "gateway": "mock",
            "responses_generated": self.response_index,
            "transcripts_generated": self.transcript_index,
            "prompts_received": len(self.prompts),
        }
