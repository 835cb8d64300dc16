"""Shared fixtures for sohbet tests."""

import pytest

from sohbet.core.session_controller import ConversationConfig, SessionController
from sohbet.errors import MicrophoneAccessError
from sohbet.gateway.base import AudioPayload
from sohbet.gateway.mock import MockGateway


class FakeRecorder:
    """Stands in for AudioRecorder without touching audio hardware."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.start_calls = 0
        self.stop_calls = 0
        self.is_recording = False

    def start(self) -> None:
        self.start_calls += 1
        if self.fail:
            raise MicrophoneAccessError("Permission denied")
        self.is_recording = True

    def stop(self) -> AudioPayload:
        self.stop_calls += 1
        self.is_recording = False
        return AudioPayload(data=b"RIFF-fake-wav", sample_rate=16000, duration_ms=500)

    def get_status(self) -> dict:
        return {"is_recording": self.is_recording}


@pytest.fixture
def gateway():
    return MockGateway(responses=["Hi there!"], transcripts=["Merhaba dünya"])


@pytest.fixture
def recorder():
    return FakeRecorder()


@pytest.fixture
def config():
    return ConversationConfig(typing_delay=0, enable_metrics=False)


@pytest.fixture
def controller(config, gateway, recorder):
    return SessionController(config, gateway=gateway, recorder=recorder)


@pytest.fixture
def failing_recorder():
    return FakeRecorder(fail=True)
