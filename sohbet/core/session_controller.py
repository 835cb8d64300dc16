"""
Conversation session controller.

Owns the transcript and the draft input, serializes requests to the
inference gateway and drives the typing indicator. Everything runs on a
single asyncio event loop; the only suspension points are the gateway calls
and the minimum typing delay.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Set
import structlog

from ..audio.recorder import AudioRecorder
from ..config.settings import Settings, settings
from ..errors import EmptyInputError, EmptyTranscriptionError, MicrophoneAccessError
from ..gateway import registry
from ..gateway.base import AudioPayload, InferenceGateway
from ..metrics.collector import MetricsCollector
from ..state.session_manager import Session, SessionManager
from ..state.transcript import Message, Sender, Transcript


logger = structlog.get_logger()

APOLOGY_MESSAGE = "Üzgünüm, bir hata oluştu. Lütfen tekrar deneyin."
CORRECTION_PROMPT = (
    "Please correct any grammatical errors in this sentence "
    "and explain the corrections: "
)


class SessionStatus(str, Enum):
    """Derived controller status."""

    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    RECORDING = "recording"


@dataclass
class ConversationConfig:
    """Configuration for a chat session."""

    gateway: str = "huggingface"
    typing_delay: float = 1.0  # seconds the typing indicator stays up after a reply
    allow_overlap: bool = False  # recording while a response is pending
    apology_message: str = APOLOGY_MESSAGE
    correction_prompt: str = CORRECTION_PROMPT
    enable_metrics: bool = True
    save_transcript: bool = False
    mock_mode: bool = False

    @classmethod
    def from_settings(cls, source: Settings, **overrides: Any) -> "ConversationConfig":
        config = cls(
            gateway=source.gateway_name,
            typing_delay=source.conversation.typing_delay,
            allow_overlap=source.conversation.allow_overlap,
            apology_message=source.conversation.apology_message,
            correction_prompt=source.conversation.correction_prompt,
            enable_metrics=source.metrics.enabled,
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(config, key, value)
        return config


Listener = Callable[[str, Any], None]


class SessionController:
    """
    Mediates typed text, recorded speech and correction requests.

    At most one generation request is outstanding at a time; further
    submissions or corrections are rejected until it completes. Gateway
    failures never propagate out of the public operations: a failed
    submission adds an apology message, every other failure is only logged.
    """

    def __init__(
        self,
        config: Optional[ConversationConfig] = None,
        gateway: Optional[InferenceGateway] = None,
        recorder: Optional[AudioRecorder] = None,
        metrics_collector: Optional[MetricsCollector] = None,
        session_manager: Optional[SessionManager] = None,
    ):
        self.config = config or ConversationConfig()

        self.gateway = gateway or self._initialize_gateway()
        self.recorder = recorder or self._initialize_recorder()
        if metrics_collector is None and self.config.enable_metrics:
            metrics_collector = MetricsCollector()
        self.metrics_collector = metrics_collector
        self.session_manager = session_manager

        self._transcript = Transcript()
        self._draft = ""
        self._awaiting_response = False
        self._typing = False
        self._recording = False
        self._pending_transcriptions: Set[asyncio.Task] = set()
        self._listeners: List[Listener] = []
        self.session: Optional[Session] = None

    def _initialize_gateway(self) -> InferenceGateway:
        if self.config.mock_mode:
            from ..gateway.mock import MockGateway

            return MockGateway()
        return registry.get_gateway(self.config.gateway)

    def _initialize_recorder(self) -> AudioRecorder:
        return AudioRecorder(
            sample_rate=settings.audio.sample_rate,
            channels=settings.audio.channels,
            dtype=settings.audio.dtype,
            block_duration=settings.audio.block_duration,
        )

    # Lifecycle

    async def start(self) -> None:
        """Initialize the gateway and open a session."""
        logger.info(
            "Starting chat session",
            gateway=self.config.gateway if not self.config.mock_mode else "mock",
            allow_overlap=self.config.allow_overlap,
        )
        await self.gateway.initialize()

        if self.session_manager is None and self.config.save_transcript:
            self.session_manager = SessionManager()
        if self.session_manager is not None:
            self.session = self.session_manager.create_session(self._transcript)

        if self.metrics_collector:
            session_id = self.session.id if self.session else f"session_{int(time.time())}"
            self.metrics_collector.start_session(session_id)

    async def close(self) -> None:
        """Release the microphone, finish transcriptions and close the gateway."""
        try:
            if self._recording:
                await self.stop_voice_capture()
            await self.wait_for_transcriptions()

            await self.gateway.close()
        finally:
            if self.metrics_collector:
                self.metrics_collector.end_session()

            if self.session_manager is not None and self.session and len(self._transcript):
                self.session_manager.save_session(self.session)

            logger.info("Chat session closed", messages=len(self._transcript))

    async def __aenter__(self) -> "SessionController":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Observable state

    @property
    def transcript(self) -> List[Message]:
        return self._transcript.snapshot()

    @property
    def draft(self) -> str:
        return self._draft

    @property
    def is_typing(self) -> bool:
        return self._typing

    @property
    def is_awaiting_response(self) -> bool:
        return self._awaiting_response

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def status(self) -> SessionStatus:
        # With overlap allowed both flags can be set; the microphone wins
        if self._recording:
            return SessionStatus.RECORDING
        if self._awaiting_response:
            return SessionStatus.AWAITING_RESPONSE
        return SessionStatus.IDLE

    def add_listener(self, listener: Listener) -> None:
        """Subscribe to ``message``, ``typing``, ``status`` and ``draft`` events."""
        self._listeners.append(listener)

    def _notify(self, event: str, value: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, value)
            except Exception:
                logger.exception("Listener failed", event_name=event)

    def _append(self, text: str, sender: Sender) -> Message:
        message = self._transcript.append(Message(text=text, sender=sender))
        logger.debug("Message appended", id=message.id, sender=sender.value)
        self._notify("message", message)
        return message

    def _set_draft(self, text: str) -> None:
        self._draft = text
        self._notify("draft", text)

    def _set_awaiting(self, awaiting: bool) -> None:
        self._awaiting_response = awaiting
        self._typing = awaiting
        self._notify("typing", awaiting)
        self._notify("status", self.status)

    def _set_recording(self, recording: bool) -> None:
        self._recording = recording
        self._notify("status", self.status)

    # Draft input

    def set_draft(self, text: str) -> None:
        """Replace the staged input."""
        self._set_draft(text)

    def insert_emoji(self, glyph: str) -> None:
        """Append a glyph to the staged input."""
        self._set_draft(self._draft + glyph)

    # Request gating

    @staticmethod
    def _require_text(text: str) -> None:
        if not text or not text.strip():
            raise EmptyInputError("Input is empty")

    def _can_send(self, operation: str) -> bool:
        if self._awaiting_response:
            logger.warning("Request rejected, a response is still pending", operation=operation)
            return False
        if self._recording and not self.config.allow_overlap:
            logger.warning("Request rejected while recording", operation=operation)
            return False
        return True

    async def _generate(self, prompt: str) -> str:
        start_time = time.time()
        reply = await self.gateway.generate_response(prompt)
        if self.metrics_collector:
            self.metrics_collector.record_generation_latency((time.time() - start_time) * 1000)
        return reply

    def _record_error(self, component: str, error: Exception) -> None:
        if self.metrics_collector:
            self.metrics_collector.record_error(component, str(error))

    # Operations

    async def submit(self, text: Optional[str] = None) -> bool:
        """
        Send text (the draft by default) and append the reply.

        The user message is appended before the gateway is called. A reply is
        shown only after the typing delay; a failure shows the apology message.

        Returns:
            True if the text was sent, False if it was empty or rejected.
        """
        if text is None:
            text = self._draft

        try:
            self._require_text(text)
        except EmptyInputError:
            logger.debug("Ignoring empty submission")
            return False
        if not self._can_send("submit"):
            return False

        self._append(text, Sender.USER)
        self._set_draft("")
        self._set_awaiting(True)
        if self.metrics_collector:
            self.metrics_collector.record_submission()

        try:
            reply = await self._generate(text)
            await asyncio.sleep(self.config.typing_delay)
            self._append(reply, Sender.BOT)
        except Exception as e:
            logger.error("Failed to generate response", error=str(e), error_type=type(e).__name__)
            self._record_error("generation", e)
            self._append(self.config.apology_message, Sender.BOT)
        finally:
            self._set_awaiting(False)

        return True

    async def request_correction(self, text: Optional[str] = None) -> bool:
        """
        Ask the model to correct the grammar of text (the draft by default).

        The correction is appended as a bot message quoting the original text
        verbatim. Failures are logged and leave the transcript untouched.
        The draft is not cleared.
        """
        if text is None:
            text = self._draft

        try:
            self._require_text(text)
        except EmptyInputError:
            logger.debug("Ignoring empty correction request")
            return False
        if not self._can_send("correction"):
            return False

        prompt = f'{self.config.correction_prompt}"{text}"'
        self._set_awaiting(True)
        if self.metrics_collector:
            self.metrics_collector.record_correction()

        try:
            reply = await self._generate(prompt)
            self._append(f'Correction for "{text}": {reply}', Sender.BOT)
        except Exception as e:
            logger.error("Failed to generate correction", error=str(e), error_type=type(e).__name__)
            self._record_error("correction", e)
        finally:
            self._set_awaiting(False)

        return True

    async def start_voice_capture(self) -> bool:
        """Open the microphone and start buffering audio."""
        if self._recording:
            logger.warning("Voice capture already running")
            return False
        if self._awaiting_response and not self.config.allow_overlap:
            logger.warning("Voice capture rejected, a response is still pending")
            return False

        try:
            self.recorder.start()
        except MicrophoneAccessError as e:
            logger.error("Microphone access failed", error=str(e))
            self._record_error("microphone", e)
            return False

        self._set_recording(True)
        return True

    async def stop_voice_capture(self) -> Optional[asyncio.Task]:
        """
        Release the microphone and transcribe the recording in the background.

        Returns:
            The transcription task, or None if nothing was being recorded.
        """
        if not self._recording:
            logger.warning("Voice capture is not running")
            return None

        try:
            payload = self.recorder.stop()
        except Exception as e:
            logger.error("Failed to finalize recording", error=str(e))
            self._record_error("microphone", e)
            return None
        finally:
            self._set_recording(False)

        task = asyncio.create_task(self._transcribe(payload))
        self._pending_transcriptions.add(task)
        task.add_done_callback(self._pending_transcriptions.discard)
        return task

    async def toggle_recording(self) -> bool:
        """Start recording when idle, stop it when recording. Returns the new state."""
        if self._recording:
            await self.stop_voice_capture()
        else:
            await self.start_voice_capture()
        return self._recording

    async def _transcribe(self, payload: AudioPayload) -> None:
        start_time = time.time()
        try:
            text = await self.gateway.speech_to_text(payload)
            if not text or not text.strip():
                raise EmptyTranscriptionError("No speech recognized")
        except EmptyTranscriptionError:
            logger.info("Transcription was empty", duration_ms=payload.duration_ms)
            return
        except Exception as e:
            logger.error("Speech to text failed", error=str(e), error_type=type(e).__name__)
            self._record_error("transcription", e)
            return

        if self.metrics_collector:
            self.metrics_collector.record_transcription_latency((time.time() - start_time) * 1000)
            self.metrics_collector.record_voice_input()

        await self.on_transcription_ready(text)

    async def on_transcription_ready(self, text: str) -> bool:
        """Stage the transcribed text as the draft and send it immediately."""
        if not text or not text.strip():
            logger.debug("Ignoring empty transcription")
            return False

        logger.debug("Transcription ready", text=text[:50])
        self._set_draft(text)
        return await self.submit(text)

    async def wait_for_transcriptions(self) -> None:
        """Wait until every scheduled transcription has been handled."""
        while self._pending_transcriptions:
            await asyncio.gather(*list(self._pending_transcriptions))

    def reset(self) -> None:
        """Clear the transcript and draft. Only valid while idle."""
        if self.status is not SessionStatus.IDLE:
            raise RuntimeError("Cannot reset while a request or recording is active")
        self._transcript.clear()
        self._set_draft("")

    def get_status(self) -> dict:
        """Get current session status."""
        return {
            "status": self.status.value,
            "is_typing": self._typing,
            "message_count": len(self._transcript),
            "draft_length": len(self._draft),
            "pending_transcriptions": len(self._pending_transcriptions),
            "allow_overlap": self.config.allow_overlap,
            "session_id": self.session.id if self.session else None,
            "gateway": self.gateway.get_status(),
            "recorder": self.recorder.get_status(),
        }
