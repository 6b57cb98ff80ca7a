from typing import Dict, Optional, Type

from app.clients.base_gateway_client import (
    BaseGatewayClient,
    GatewayOutcome,
    UnknownProviderError,
)
from app.clients.messagebird_client import MessageBirdClient
from app.clients.twilio_client import TwilioClient
from app.clients.whatsapp_client import WhatsAppClient
from app.models.api.gateways import GatewayConfig, GatewayProvider

PROVIDER_CLIENTS: Dict[GatewayProvider, Type[BaseGatewayClient]] = {
    GatewayProvider.TWILIO: TwilioClient,
    GatewayProvider.WHATSAPP_TWILIO: WhatsAppClient,
    GatewayProvider.WHATSAPP: WhatsAppClient,
    GatewayProvider.MESSAGEBIRD: MessageBirdClient,
}


def get_gateway_client(
    gateway: GatewayConfig, timeout: float = 10.0
) -> BaseGatewayClient:
    """Build the client for a gateway's provider.

    Raises:
        UnknownProviderError: provider is not one of GatewayProvider
    """
    try:
        provider = GatewayProvider((gateway.provider or "").lower())
    except ValueError:
        raise UnknownProviderError(f"Unsupported gateway provider: {gateway.provider}")

    return PROVIDER_CLIENTS[provider](gateway, timeout=timeout)


async def send_via_gateway(
    gateway: GatewayConfig,
    recipient: str,
    body: str,
    sender_id: Optional[str],
    timeout: float = 10.0,
) -> GatewayOutcome:
    """Send one message through the provider configured on ``gateway``."""
    client = get_gateway_client(gateway, timeout=timeout)
    return await client.send_message(recipient, body, sender_id)
