"""Microphone capture with sounddevice, finalized into a single WAV payload."""

import io
import threading
from typing import List, Optional
import numpy as np
import soundfile as sf
import structlog

from ..errors import MicrophoneAccessError
from ..gateway.base import AudioPayload


logger = structlog.get_logger()


def _load_sounddevice():
    """Import sounddevice on first use; the import itself needs PortAudio."""
    import sounddevice

    return sounddevice


class AudioRecorder:
    """
    Records from the default input device until stopped.

    The stream is held exclusively between ``start`` and ``stop``. It is
    stopped and closed by ``stop`` and on every failed ``start``.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        dtype: str = "float32",
        block_duration: float = 0.1,
        device: Optional[int] = None,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.dtype = dtype
        self.block_size = int(sample_rate * block_duration)
        self.device = device

        self.stream = None
        self._frames: List[np.ndarray] = []
        self._lock = threading.Lock()
        self.overflow_count = 0

    @property
    def is_recording(self) -> bool:
        return self.stream is not None

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        """Runs on the PortAudio thread; only buffers."""
        if status:
            self.overflow_count += 1
            logger.warning("Audio callback status", status=str(status))
        with self._lock:
            self._frames.append(indata.copy())

    def start(self) -> None:
        """Acquire the microphone and begin buffering audio."""
        if self.stream is not None:
            raise RuntimeError("Recorder is already running")

        with self._lock:
            self._frames = []

        stream = None
        try:
            sd = _load_sounddevice()
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype=self.dtype,
                blocksize=self.block_size,
                device=self.device,
                callback=self._audio_callback,
            )
            stream.start()
        except Exception as e:
            if stream is not None:
                self._release(stream)
            logger.error("Failed to open microphone", error=str(e))
            raise MicrophoneAccessError(f"Microphone unavailable: {e}") from e

        self.stream = stream
        logger.info(
            "Recording started",
            sample_rate=self.sample_rate,
            channels=self.channels,
            blocksize=self.block_size,
        )

    def stop(self) -> AudioPayload:
        """Release the microphone and return everything recorded so far."""
        if self.stream is None:
            raise RuntimeError("Recorder is not running")

        stream, self.stream = self.stream, None
        self._release(stream)

        with self._lock:
            frames, self._frames = self._frames, []

        payload = self.encode(frames)
        logger.info(
            "Recording stopped",
            duration_ms=payload.duration_ms,
            size_bytes=len(payload.data),
        )
        return payload

    def _release(self, stream) -> None:
        try:
            stream.stop()
        except Exception as e:
            logger.warning("Error stopping audio stream", error=str(e))
        finally:
            try:
                stream.close()
            except Exception as e:
                logger.warning("Error closing audio stream", error=str(e))

    def encode(self, frames: List[np.ndarray]) -> AudioPayload:
        """Concatenate captured blocks into a 16-bit PCM WAV clip."""
        if frames:
            audio = np.concatenate(frames, axis=0)
        else:
            audio = np.zeros((0, self.channels), dtype=np.float32)

        buffer = io.BytesIO()
        sf.write(buffer, audio, self.sample_rate, format="WAV", subtype="PCM_16")

        return AudioPayload(
            data=buffer.getvalue(),
            content_type="audio/wav",
            sample_rate=self.sample_rate,
            duration_ms=int(len(audio) * 1000 / self.sample_rate),
        )

    def get_status(self) -> dict:
        with self._lock:
            buffered_blocks = len(self._frames)
        return {
            "is_recording": self.is_recording,
            "sample_rate": self.sample_rate,
            "channels": self.channels,
            "buffered_blocks": buffered_blocks,
            "overflow_count": self.overflow_count,
        }
