import hmac
from typing import Awaitable, Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import DeliverySettings, get_settings

bearer_scheme = HTTPBearer(auto_error=False)


class UnauthorizedError(Exception):
    """Missing or wrong bearer credential on a trigger endpoint."""


def require_bearer_token(
    setting_name: str,
) -> Callable[..., Awaitable[None]]:
    """Dependency checking the bearer token against ``settings.<setting_name>``.

    When the setting is empty any non-empty bearer credential is accepted;
    validating user tokens is left to the identity provider in front of us.
    """

    async def verify(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        settings: DeliverySettings = Depends(get_settings),
    ) -> None:
        if credentials is None or not credentials.credentials:
            raise UnauthorizedError()

        expected = getattr(settings, setting_name)
        if expected and not hmac.compare_digest(credentials.credentials, expected):
            raise UnauthorizedError()

    return verify


require_processing_token = require_bearer_token("processing_api_token")
require_cron_secret = require_bearer_token("cron_secret")
