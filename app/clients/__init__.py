# Provider clients for outbound delivery
from .base_gateway_client import (
    BaseGatewayClient,
    GatewayConfigurationError,
    GatewayOutcome,
    UnknownProviderError,
)
from .gateway_client_factory import get_gateway_client, send_via_gateway

__all__ = [
    "BaseGatewayClient",
    "GatewayConfigurationError",
    "GatewayOutcome",
    "UnknownProviderError",
    "get_gateway_client",
    "send_via_gateway",
]
