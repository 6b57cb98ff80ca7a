# API models for request/response contracts
from .gateways import GatewayConfig, GatewayProvider
from .messages import (
    CLAIMABLE_STATUSES,
    TERMINAL_STATUSES,
    MessageRecord,
    MessageStatus,
)
from .processing import ErrorResponse, ProcessResponse, ReclaimResponse
from .users import UserAccount

__all__ = [
    "GatewayConfig",
    "GatewayProvider",
    "MessageRecord",
    "MessageStatus",
    "CLAIMABLE_STATUSES",
    "TERMINAL_STATUSES",
    "ProcessResponse",
    "ReclaimResponse",
    "ErrorResponse",
    "UserAccount",
]
