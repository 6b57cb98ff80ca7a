from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel

from app.models.api.gateways import GatewayConfig


class GatewayConfigurationError(Exception):
    """Gateway record cannot be used to send (missing credentials, bad URL)."""


class UnknownProviderError(GatewayConfigurationError):
    """Gateway names a provider outside the supported set."""


class GatewayOutcome(BaseModel):
    """Normalized result of one send attempt: accepted or rejected."""

    accepted: bool
    provider_message_id: Optional[str] = None
    reason: Optional[str] = None
    status_code: Optional[int] = None

    @classmethod
    def accept(cls, provider_message_id: Optional[str] = None) -> "GatewayOutcome":
        return cls(accepted=True, provider_message_id=provider_message_id or None)

    @classmethod
    def reject(cls, reason: str, status_code: Optional[int] = None) -> "GatewayOutcome":
        return cls(accepted=False, reason=reason, status_code=status_code)


class BaseGatewayClient(ABC):
    """Abstract base class for SMS/WhatsApp provider clients.

    Provider-level failures (4xx/5xx answers) come back as a rejected
    GatewayOutcome. Transport failures such as timeouts or refused
    connections raise httpx.TransportError to the caller.
    """

    def __init__(self, gateway: GatewayConfig, timeout: float = 10.0):
        self.gateway = gateway
        self.timeout = timeout

    @abstractmethod
    async def send_message(
        self, recipient: str, body: str, sender_id: Optional[str]
    ) -> GatewayOutcome:
        """Send one message through the provider API."""

    @abstractmethod
    def extract_message_id(self, response_data: Dict[str, Any]) -> str:
        """Extract the provider message ID from a success response body."""

    @abstractmethod
    def extract_error(self, response_data: Dict[str, Any]) -> Optional[str]:
        """Extract a human readable reason from an error response body."""

    def _require_credential(self, key: str) -> str:
        value = self.gateway.credentials.get(key)
        if not value:
            raise GatewayConfigurationError(
                f"Gateway {self.gateway.name} is missing credential '{key}'"
            )
        return str(value)

    def _parse_body(self, response: httpx.Response) -> Dict[str, Any]:
        """Decode a JSON response body; error pages are often HTML or empty."""
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def _to_outcome(self, response: httpx.Response) -> GatewayOutcome:
        data = self._parse_body(response)
        if response.is_success:
            return GatewayOutcome.accept(self.extract_message_id(data))

        reason = self.extract_error(data) or f"HTTP {response.status_code}"
        return GatewayOutcome.reject(reason, status_code=response.status_code)
