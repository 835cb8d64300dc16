"""Configuration settings for sohbet."""

import os
from pathlib import Path
from typing import Optional, Dict, Any, Union
from dataclasses import dataclass
import json
import structlog
from dotenv import load_dotenv
import threading


logger = structlog.get_logger()


@dataclass
class GatewaySettings:
    """Inference gateway settings."""
    base_url: str = "https://api-inference.huggingface.co/models"
    text_model: str = "facebook/blenderbot-400M-distill"
    speech_model: str = "openai/whisper-base"
    tts_model: str = "espnet/kan-bayashi_ljspeech_vits"

    # Text generation parameters
    max_new_tokens: int = 100
    temperature: float = 0.7
    top_p: float = 0.95
    repetition_penalty: float = 1.2

    # None disables the request timeout entirely
    request_timeout: Optional[float] = None


@dataclass
class AudioSettings:
    """Microphone capture settings."""
    sample_rate: int = 16000
    channels: int = 1
    dtype: str = "float32"
    block_duration: float = 0.1  # seconds


@dataclass
class ConversationSettings:
    """Session controller behaviour."""
    typing_delay: float = 1.0  # seconds
    allow_overlap: bool = False
    apology_message: str = "Üzgünüm, bir hata oluştu. Lütfen tekrar deneyin."
    correction_prompt: str = (
        "Please correct any grammatical errors in this sentence "
        "and explain the corrections: "
    )


@dataclass
class MetricsSettings:
    """Metrics collection settings."""
    enabled: bool = True
    cleanup_interval_days: int = 30


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = "INFO"
    format: str = "json"
    file_enabled: bool = True
    file_rotation_mb: int = 10
    file_backup_count: int = 7


class Settings:
    """Main settings class for sohbet."""

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        self.config_file = Path(config_file) if config_file else None
        self._lock = threading.RLock()
        self._env_loaded = False

        self.gateway = GatewaySettings()
        self.audio = AudioSettings()
        self.conversation = ConversationSettings()
        self.metrics = MetricsSettings()
        self.logging = LoggingSettings()

        # .env first so that it feeds load_from_env
        self._load_env_file()

        if self.config_file and self.config_file.exists():
            self.load_from_file()

        self.load_from_env()

    def _load_env_file(self) -> None:
        """Load environment variables from .env file."""
        if not self._env_loaded:
            # Look for .env in current directory and parent directories
            current_dir = Path.cwd()
            for parent in [current_dir] + list(current_dir.parents):
                env_file = parent / ".env"
                if env_file.exists():
                    load_dotenv(env_file)
                    logger.debug("Loaded .env file", path=str(env_file))
                    break
            self._env_loaded = True

    @staticmethod
    def _apply_section(target: Any, values: Dict[str, Any]) -> None:
        for key, value in values.items():
            if hasattr(target, key):
                setattr(target, key, value)

    def load_from_file(self) -> None:
        """Load settings from configuration file."""
        if not self.config_file or not self.config_file.exists():
            return

        try:
            with self._lock:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    config = json.load(f)

                if "gateway_name" in config:
                    self.gateway_name = config["gateway_name"]

                for section in ("gateway", "audio", "conversation", "metrics", "logging"):
                    if section in config:
                        self._apply_section(getattr(self, section), config[section])

                logger.info("Loaded settings from file", file=str(self.config_file))

        except Exception as e:
            logger.error("Failed to load settings from file",
                         file=str(self.config_file),
                         error=str(e))

    def load_from_env(self) -> None:
        """Load settings from environment variables."""
        with self._lock:
            self.gateway_name = os.getenv("SOHBET_GATEWAY", getattr(self, "gateway_name", "huggingface"))

            # Credential; absence only shows up as gateway call failures
            self.api_token = os.getenv("HUGGING_FACE_API_TOKEN") or os.getenv("HF_TOKEN")

            if os.getenv("HF_BASE_URL"):
                self.gateway.base_url = os.getenv("HF_BASE_URL")
            if os.getenv("HF_TEXT_MODEL"):
                self.gateway.text_model = os.getenv("HF_TEXT_MODEL")
            if os.getenv("HF_SPEECH_MODEL"):
                self.gateway.speech_model = os.getenv("HF_SPEECH_MODEL")
            if os.getenv("HF_TTS_MODEL"):
                self.gateway.tts_model = os.getenv("HF_TTS_MODEL")
            if os.getenv("HF_MAX_NEW_TOKENS"):
                self.gateway.max_new_tokens = int(os.getenv("HF_MAX_NEW_TOKENS"))
            if os.getenv("HF_TEMPERATURE"):
                self.gateway.temperature = float(os.getenv("HF_TEMPERATURE"))
            if os.getenv("HF_TOP_P"):
                self.gateway.top_p = float(os.getenv("HF_TOP_P"))
            if os.getenv("HF_REPETITION_PENALTY"):
                self.gateway.repetition_penalty = float(os.getenv("HF_REPETITION_PENALTY"))
            if os.getenv("HF_REQUEST_TIMEOUT"):
                self.gateway.request_timeout = float(os.getenv("HF_REQUEST_TIMEOUT"))

            if os.getenv("AUDIO_SAMPLE_RATE"):
                self.audio.sample_rate = int(os.getenv("AUDIO_SAMPLE_RATE"))
            if os.getenv("AUDIO_CHANNELS"):
                self.audio.channels = int(os.getenv("AUDIO_CHANNELS"))

            if os.getenv("TYPING_DELAY"):
                self.conversation.typing_delay = float(os.getenv("TYPING_DELAY"))
            if os.getenv("ALLOW_OVERLAP"):
                self.conversation.allow_overlap = os.getenv("ALLOW_OVERLAP").lower() == "true"
            if os.getenv("APOLOGY_MESSAGE"):
                self.conversation.apology_message = os.getenv("APOLOGY_MESSAGE")

            if os.getenv("METRICS_ENABLED"):
                self.metrics.enabled = os.getenv("METRICS_ENABLED").lower() == "true"

            if os.getenv("LOG_LEVEL"):
                self.logging.level = os.getenv("LOG_LEVEL")
            if os.getenv("LOG_FORMAT"):
                self.logging.format = os.getenv("LOG_FORMAT")
            if os.getenv("LOG_FILE_ENABLED"):
                self.logging.file_enabled = os.getenv("LOG_FILE_ENABLED").lower() == "true"

    def save_to_file(self, file_path: Optional[Union[str, Path]] = None) -> None:
        """Save current settings to file. The API token is never written."""
        save_path = Path(file_path) if file_path else self.config_file
        if not save_path:
            raise ValueError("No file path provided")

        try:
            with self._lock:
                config = self.to_dict()

                save_path.parent.mkdir(parents=True, exist_ok=True)

                with open(save_path, "w", encoding="utf-8") as f:
                    json.dump(config, f, indent=2, ensure_ascii=False)

                logger.info("Saved settings to file", file=str(save_path))

        except Exception as e:
            logger.error("Failed to save settings to file",
                         file=str(save_path), error=str(e))
            raise

    def get_gateway_config(self, gateway_name: str) -> Dict[str, Any]:
        """Get constructor arguments for a specific gateway."""
        if gateway_name == "huggingface":
            return {
                "api_token": self.api_token,
                "base_url": self.gateway.base_url,
                "text_model": self.gateway.text_model,
                "speech_model": self.gateway.speech_model,
                "tts_model": self.gateway.tts_model,
                "max_new_tokens": self.gateway.max_new_tokens,
                "temperature": self.gateway.temperature,
                "top_p": self.gateway.top_p,
                "repetition_penalty": self.gateway.repetition_penalty,
                "request_timeout": self.gateway.request_timeout,
            }
        elif gateway_name == "mock":
            return {}
        else:
            raise ValueError(f"Unknown gateway: {gateway_name}")

    def reload(self) -> None:
        """Reload settings from file and environment."""
        with self._lock:
            if self.config_file and self.config_file.exists():
                self.load_from_file()
            self.load_from_env()
            logger.info("Settings reloaded")

    def validate(self) -> list[str]:
        """Validate current settings and return list of issues."""
        issues = []

        if self.audio.sample_rate not in [8000, 16000, 44100, 48000]:
            issues.append(f"Invalid sample rate: {self.audio.sample_rate}")
        if self.audio.channels not in [1, 2]:
            issues.append(f"Invalid channels: {self.audio.channels}")

        if self.gateway.max_new_tokens <= 0:
            issues.append(f"Invalid max_new_tokens: {self.gateway.max_new_tokens}")
        if not 0 < self.gateway.top_p <= 1:
            issues.append(f"Invalid top_p: {self.gateway.top_p}")
        if self.gateway.temperature < 0:
            issues.append(f"Invalid temperature: {self.gateway.temperature}")
        if self.gateway.request_timeout is not None and self.gateway.request_timeout <= 0:
            issues.append(f"Invalid request timeout: {self.gateway.request_timeout}")

        if self.conversation.typing_delay < 0:
            issues.append(f"Invalid typing delay: {self.conversation.typing_delay}")

        if self.gateway_name not in ["huggingface", "mock"]:
            issues.append(f"Unknown gateway: {self.gateway_name}")

        return issues

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary for serialization."""
        return {
            "gateway_name": self.gateway_name,
            "gateway": {
                "base_url": self.gateway.base_url,
                "text_model": self.gateway.text_model,
                "speech_model": self.gateway.speech_model,
                "tts_model": self.gateway.tts_model,
                "max_new_tokens": self.gateway.max_new_tokens,
                "temperature": self.gateway.temperature,
                "top_p": self.gateway.top_p,
                "repetition_penalty": self.gateway.repetition_penalty,
                "request_timeout": self.gateway.request_timeout,
            },
            "audio": {
                "sample_rate": self.audio.sample_rate,
                "channels": self.audio.channels,
                "dtype": self.audio.dtype,
                "block_duration": self.audio.block_duration,
            },
            "conversation": {
                "typing_delay": self.conversation.typing_delay,
                "allow_overlap": self.conversation.allow_overlap,
                "apology_message": self.conversation.apology_message,
                "correction_prompt": self.conversation.correction_prompt,
            },
            "metrics": {
                "enabled": self.metrics.enabled,
                "cleanup_interval_days": self.metrics.cleanup_interval_days,
            },
            "logging": {
                "level": self.logging.level,
                "format": self.logging.format,
                "file_enabled": self.logging.file_enabled,
                "file_rotation_mb": self.logging.file_rotation_mb,
                "file_backup_count": self.logging.file_backup_count,
            },
        }


# Global settings instance
settings = Settings()
