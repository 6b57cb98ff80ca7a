from typing import Any, Dict, Optional

import httpx

from app.clients.base_gateway_client import (
    BaseGatewayClient,
    GatewayConfigurationError,
    GatewayOutcome,
)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class TwilioClient(BaseGatewayClient):
    """Twilio Programmable Messaging client using httpx."""

    def format_address(self, address: str) -> str:
        return address

    async def send_message(
        self, recipient: str, body: str, sender_id: Optional[str]
    ) -> GatewayOutcome:
        """Send an SMS via the Twilio Messages resource."""
        account_sid = self._require_credential("account_sid")
        auth_token = self._require_credential("auth_token")

        sender = sender_id or self.gateway.credentials.get("from_number")
        if not sender:
            raise GatewayConfigurationError(
                f"Gateway {self.gateway.name} has no sender for this message"
            )

        # Twilio expects a form-encoded body and HTTP Basic auth
        payload = {
            "To": self.format_address(recipient),
            "From": self.format_address(str(sender)),
            "Body": body,
        }
        base_url = (self.gateway.api_url or TWILIO_API_BASE).rstrip("/")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{base_url}/Accounts/{account_sid}/Messages.json",
                data=payload,
                auth=(account_sid, auth_token),
            )

        return self._to_outcome(response)

    def extract_message_id(self, response_data: Dict[str, Any]) -> str:
        """Extract message SID from Twilio response."""
        return str(response_data.get("sid", ""))

    def extract_error(self, response_data: Dict[str, Any]) -> Optional[str]:
        """Twilio errors look like {"code": 21211, "message": "...", "status": 400}."""
        message = response_data.get("message")
        return str(message) if message else None
