from typing import Any, AsyncGenerator, Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.config import DeliverySettings, get_settings
from app.database import get_db
from app.main import app
from app.models.api.processing import ProcessResponse

TOKEN = "processing-token"


async def override_get_db() -> AsyncGenerator[MagicMock, None]:
    yield MagicMock()


@pytest.fixture
def router_settings() -> DeliverySettings:
    return DeliverySettings(processing_api_token=TOKEN, time_budget_seconds=2.5)


@pytest.fixture
def api_client(router_settings: DeliverySettings) -> Generator[TestClient, Any, None]:
    """Test client with the database and settings dependencies replaced."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: router_settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(token: str = TOKEN) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestProcessingRouter:
    """Unit tests for the on-demand processing endpoint."""

    def test_process_returns_count(self, api_client: TestClient) -> None:
        with patch("app.routers.processing.MessageScheduler") as mock_scheduler_class:
            mock_scheduler = mock_scheduler_class.return_value
            mock_scheduler.run_once = AsyncMock(return_value=ProcessResponse(processed=4))

            response = api_client.post("/api/messages/process", headers=auth())

        assert response.status_code == 200
        assert response.json() == {"processed": 4}
        mock_scheduler.run_once.assert_awaited_once_with(time_budget=2.5)

    def test_process_with_nothing_due(self, api_client: TestClient) -> None:
        with patch("app.routers.processing.MessageScheduler") as mock_scheduler_class:
            mock_scheduler_class.return_value.run_once = AsyncMock(
                return_value=ProcessResponse(processed=0)
            )

            response = api_client.post("/api/messages/process", headers=auth())

        assert response.status_code == 200
        assert response.json() == {"processed": 0}

    def test_process_failure_returns_500(self, api_client: TestClient) -> None:
        with patch("app.routers.processing.MessageScheduler") as mock_scheduler_class:
            mock_scheduler_class.return_value.run_once = AsyncMock(
                side_effect=RuntimeError("connection refused")
            )

            response = api_client.post("/api/messages/process", headers=auth())

        assert response.status_code == 500
        assert response.json() == {"error": "connection refused"}

    def test_missing_token(self, api_client: TestClient) -> None:
        with patch("app.routers.processing.MessageScheduler") as mock_scheduler_class:
            response = api_client.post("/api/messages/process")

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
        mock_scheduler_class.assert_not_called()

    def test_wrong_token(self, api_client: TestClient) -> None:
        response = api_client.post("/api/messages/process", headers=auth("nope"))

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_any_bearer_accepted_without_configured_token(
        self, api_client: TestClient, router_settings: DeliverySettings
    ) -> None:
        router_settings.processing_api_token = None

        with patch("app.routers.processing.MessageScheduler") as mock_scheduler_class:
            mock_scheduler_class.return_value.run_once = AsyncMock(
                return_value=ProcessResponse(processed=1)
            )

            response = api_client.post("/api/messages/process", headers=auth("user-jwt"))

        assert response.status_code == 200

    def test_get_not_allowed(self, api_client: TestClient) -> None:
        response = api_client.get("/api/messages/process", headers=auth())
        assert response.status_code == 405
