# Export all models
from .api import (
    GatewayConfig,
    GatewayProvider,
    MessageRecord,
    MessageStatus,
    ProcessResponse,
    ReclaimResponse,
    UserAccount,
)
from .db import (
    GatewayModel,
    MessageModel,
    UserModel,
)

__all__ = [
    # API models
    "GatewayConfig",
    "GatewayProvider",
    "MessageRecord",
    "MessageStatus",
    "ProcessResponse",
    "ReclaimResponse",
    "UserAccount",
    # DB models
    "GatewayModel",
    "MessageModel",
    "UserModel",
]
