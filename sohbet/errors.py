"""Error taxonomy shared by the controller, gateways and audio capture."""


class SohbetError(Exception):
    """Base class for all sohbet errors."""


class GatewayError(SohbetError):
    """A remote inference call failed (network, HTTP status or model error)."""

    def __init__(self, message: str, status_code: int = None, model: str = None):
        super().__init__(message)
        self.status_code = status_code
        self.model = model


class MicrophoneAccessError(SohbetError, PermissionError):
    """The microphone could not be opened (permission denied or no device)."""


class EmptyTranscriptionError(SohbetError):
    """Speech was recognized as empty or unintelligible."""


class EmptyInputError(SohbetError, ValueError):
    """Blank input was submitted."""
