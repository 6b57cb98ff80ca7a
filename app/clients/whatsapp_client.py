from app.clients.twilio_client import TwilioClient

WHATSAPP_PREFIX = "whatsapp:"


class WhatsAppClient(TwilioClient):
    """WhatsApp messages sent through a Twilio WhatsApp sender."""

    def format_address(self, address: str) -> str:
        if address.startswith(WHATSAPP_PREFIX):
            return address
        return f"{WHATSAPP_PREFIX}{address}"
