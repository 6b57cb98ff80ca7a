from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.api.gateways import GatewayConfig
from app.models.db.gateway_model import GatewayModel
from app.repositories.base_repository import BaseRepository


class GatewayRepository(BaseRepository[GatewayModel, GatewayConfig]):
    """Repository for gateway configuration records."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, GatewayModel)

    def _to_pydantic(self, db_model: Any) -> GatewayConfig:
        """Convert SQLAlchemy GatewayModel to Pydantic GatewayConfig."""
        return GatewayConfig(
            id=db_model.id,
            name=db_model.name,
            provider=db_model.provider,
            api_url=db_model.api_url,
            credentials=db_model.credentials or {},
            is_active=bool(db_model.is_active),
        )

    def _from_pydantic(self, pydantic_model: GatewayConfig) -> GatewayModel:
        """Convert Pydantic GatewayConfig to SQLAlchemy GatewayModel."""
        return GatewayModel(
            id=pydantic_model.id,
            name=pydantic_model.name,
            provider=pydantic_model.provider,
            api_url=pydantic_model.api_url,
            credentials=pydantic_model.credentials,
            is_active=pydantic_model.is_active,
        )
