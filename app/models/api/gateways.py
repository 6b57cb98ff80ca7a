from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class GatewayProvider(str, Enum):
    """Closed set of providers the gateway clients know how to talk to."""

    TWILIO = "twilio"
    WHATSAPP_TWILIO = "whatsapp_twilio"
    WHATSAPP = "whatsapp"
    MESSAGEBIRD = "messagebird"


class GatewayConfig(BaseModel):
    """Provider account configuration, read-only for the delivery pipeline."""

    id: UUID
    name: str
    provider: str  # validated against GatewayProvider when a client is built
    api_url: Optional[str] = None
    credentials: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)
