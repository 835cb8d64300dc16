"""Inference gateways: text generation, speech-to-text and text-to-speech."""

from .registry import registry


def register_gateways():
    """Register all gateways."""
    # Import at function level to avoid circular imports
    from ..config.settings import settings
    from .huggingface import HuggingFaceGateway
    from .mock import MockGateway

    registry.register_gateway(
        "huggingface",
        HuggingFaceGateway,
        lambda: settings.get_gateway_config("huggingface"),
    )
    registry.register_gateway(
        "mock", MockGateway, lambda: settings.get_gateway_config("mock")
    )


register_gateways()

__all__ = ["registry", "register_gateways"]
