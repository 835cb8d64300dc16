"""Gateway registry for loading gateways by name."""

from typing import Dict, Type, Callable, Any, Optional
import structlog

from .base import InferenceGateway


logger = structlog.get_logger()


class GatewayRegistry:
    """Registry for managing gateway implementations."""

    def __init__(self):
        self._gateways: Dict[str, Type[InferenceGateway]] = {}
        self._gateway_configs: Dict[str, Callable[[], Dict[str, Any]]] = {}

    def register_gateway(
        self,
        name: str,
        gateway_class: Type[InferenceGateway],
        config_getter: Optional[Callable[[], Dict[str, Any]]] = None,
    ) -> None:
        """Register a gateway."""
        self._gateways[name] = gateway_class
        if config_getter:
            self._gateway_configs[name] = config_getter
        logger.debug(
            "Registered gateway", name=name, class_name=gateway_class.__name__
        )

    def get_gateway(self, name: str, **kwargs) -> InferenceGateway:
        """Get a gateway instance; explicit kwargs win over configured ones."""
        if name not in self._gateways:
            raise ValueError(f"Unknown gateway: {name}")

        config: Dict[str, Any] = {}
        if name in self._gateway_configs:
            config = self._gateway_configs[name]()
        config.update(kwargs)

        return self._gateways[name](**config)

    def list_gateways(self) -> list[str]:
        """List available gateways."""
        return list(self._gateways.keys())

    def clear(self) -> None:
        """Clear all registered gateways."""
        self._gateways.clear()
        self._gateway_configs.clear()


# Global registry instance
registry = GatewayRegistry()
