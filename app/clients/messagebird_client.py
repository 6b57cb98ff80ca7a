from typing import Any, Dict, Optional

import httpx

from app.clients.base_gateway_client import BaseGatewayClient, GatewayOutcome

MESSAGEBIRD_API_BASE = "https://rest.messagebird.com"


class MessageBirdClient(BaseGatewayClient):
    """MessageBird SMS client using httpx."""

    async def send_message(
        self, recipient: str, body: str, sender_id: Optional[str]
    ) -> GatewayOutcome:
        """Send an SMS via the MessageBird messages API."""
        api_key = self._require_credential("api_key")

        payload = {
            "recipients": [recipient],
            "originator": sender_id or self.gateway.credentials.get("originator", ""),
            "body": body,
        }

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"AccessKey {api_key}",
        }
        base_url = (self.gateway.api_url or MESSAGEBIRD_API_BASE).rstrip("/")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{base_url}/messages", json=payload, headers=headers
            )

        return self._to_outcome(response)

    def extract_message_id(self, response_data: Dict[str, Any]) -> str:
        """Extract message ID from MessageBird response."""
        return str(response_data.get("id", ""))

    def extract_error(self, response_data: Dict[str, Any]) -> Optional[str]:
        errors = response_data.get("errors") or []
        if errors and isinstance(errors[0], dict):
            description = errors[0].get("description")
            return str(description) if description else None
        return None
