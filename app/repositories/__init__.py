# Repository classes for database operations
from .base_repository import BaseRepository
from .gateway_repository import GatewayRepository
from .message_repository import MessageRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "GatewayRepository",
    "MessageRepository",
    "UserRepository",
]
