# SQLAlchemy database models
from .gateway_model import GatewayModel
from .message_model import MESSAGE_STATUSES, MessageModel
from .user_model import UserModel

__all__ = ["GatewayModel", "MessageModel", "UserModel", "MESSAGE_STATUSES"]
