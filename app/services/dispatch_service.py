import logging
from datetime import timedelta
from enum import Enum
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.base_gateway_client import (
    BaseGatewayClient,
    GatewayConfigurationError,
    GatewayOutcome,
)
from app.clients.gateway_client_factory import get_gateway_client
from app.clock import Clock, utcnow
from app.config import DeliverySettings, get_settings
from app.models.api.gateways import GatewayConfig
from app.models.api.messages import CLAIMABLE_STATUSES, MessageRecord
from app.repositories.gateway_repository import GatewayRepository
from app.repositories.message_repository import MessageRepository
from app.repositories.user_repository import UserRepository
from app.services.credit_ledger import CreditCheck, CreditLedger

GATEWAY_NOT_FOUND_ERROR = "Gateway not found"
GATEWAY_INACTIVE_ERROR = "Gateway is inactive"
USER_NOT_FOUND_ERROR = "User not found"
SENDER_NOT_ALLOWED_ERROR = "Sender ID not allowed for this user"
INSUFFICIENT_CREDITS_ERROR = "Insufficient credits"


class FailureKind(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


FailureClassifier = Callable[[GatewayOutcome], FailureKind]
ClientFactory = Callable[[GatewayConfig, float], BaseGatewayClient]


def treat_all_as_transient(outcome: GatewayOutcome) -> FailureKind:
    """Default classification: every provider rejection may be retried."""
    return FailureKind.TRANSIENT


class DispatchService:
    """Drives a single message through one delivery attempt.

    The only observable effect is on the messages row (and the owner's
    credits). Failures are recorded on the row and never raised.
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Optional[DeliverySettings] = None,
        client_factory: ClientFactory = get_gateway_client,
        classify_failure: FailureClassifier = treat_all_as_transient,
        clock: Clock = utcnow,
        logger: Optional[logging.Logger] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.client_factory = client_factory
        self.classify_failure = classify_failure
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self.message_repo = MessageRepository(db)
        self.gateway_repo = GatewayRepository(db)
        self.user_repo = UserRepository(db)
        self.credit_ledger = CreditLedger(db, logger=self.logger)

    async def attempt(self, message: MessageRecord) -> bool:
        """
        One dispatch attempt:
        1. Re-read the row; fail it outright if retries are used up
        2. Claim it (status -> processing, retry_count + 1, last_attempt)
        3. Resolve the gateway and its client
        4. Check the owner and reserve a credit
        5. Send and record sent / retry / failed

        Returns:
            True when this call took the row (claimed it or failed it as
            exhausted), False when the row was ineligible, claimed elsewhere,
            or an unexpected error interrupted the attempt.
        """
        try:
            return await self._attempt(message)
        except Exception:
            # Row stays in processing; the stuck-message sweep returns it
            self.logger.exception(
                "Unexpected error dispatching message",
                extra={"message_id": str(message.id)},
            )
            # A failed statement leaves the session unusable for the next message
            await self.db.rollback()
            return False

    async def _attempt(self, message: MessageRecord) -> bool:
        log_extra = {"message_id": str(message.id)}
        max_retries = self.settings.max_retries

        # Step 1: Work from the stored row, not the caller's snapshot
        current = await self.message_repo.get_by_id(message.id)
        if current is None or current.status not in CLAIMABLE_STATUSES:
            self.logger.debug("Message no longer eligible for dispatch", extra=log_extra)
            return False

        if current.retry_count >= max_retries:
            if not await self.message_repo.mark_exhausted(current.id, max_retries):
                return False
            self.logger.warning(
                "Message has exceeded maximum retries",
                extra={**log_extra, "retry_count": current.retry_count},
            )
            return True

        # Step 2: Claim
        if not await self.message_repo.claim(current.id, self.clock(), max_retries):
            self.logger.warning("Message claimed by another run", extra=log_extra)
            return False

        attempt_number = current.retry_count + 1
        self.logger.info(
            f"Processing message {current.id} (Attempt {attempt_number}/{max_retries})",
            extra={**log_extra, "retry_count": attempt_number},
        )

        # Step 3: Gateway
        gateway = (
            await self.gateway_repo.get_by_id(current.gateway_id)
            if current.gateway_id
            else None
        )
        if gateway is None:
            await self._fail_terminally(current, GATEWAY_NOT_FOUND_ERROR)
            return True
        if not gateway.is_active:
            await self._fail_terminally(current, GATEWAY_INACTIVE_ERROR)
            return True

        try:
            client = self.client_factory(gateway, self.settings.gateway_timeout_seconds)
        except GatewayConfigurationError as e:
            await self._fail_terminally(current, str(e))
            return True

        # Step 4: Owner and credits
        user = await self.user_repo.get_by_id(current.user_id)
        if user is None:
            await self._fail_terminally(current, USER_NOT_FOUND_ERROR)
            return True
        if current.sender_id and current.sender_id not in user.sender_names:
            await self._fail_terminally(current, SENDER_NOT_ALLOWED_ERROR)
            return True

        credit = await self.credit_ledger.check_and_reserve(current.user_id)
        if credit is CreditCheck.USER_NOT_FOUND:
            await self._fail_terminally(current, USER_NOT_FOUND_ERROR)
            return True
        if credit is CreditCheck.INSUFFICIENT:
            await self._fail_terminally(current, INSUFFICIENT_CREDITS_ERROR)
            return True

        # Step 5: Send
        try:
            outcome = await client.send_message(
                current.recipient, current.message, current.sender_id
            )
        except GatewayConfigurationError as e:
            await self.credit_ledger.release(current.user_id)
            await self._fail_terminally(current, str(e))
            return True
        except Exception as e:
            await self.credit_ledger.release(current.user_id)
            reason = str(e) or type(e).__name__
            self.logger.error(
                f"Failed to send message {current.id}: {reason}", extra=log_extra
            )
            await self._record_rejection(
                current, attempt_number, GatewayOutcome.reject(reason)
            )
            return True

        if outcome.accepted:
            await self.credit_ledger.commit(current.user_id)
            if not await self.message_repo.mark_sent(
                current.id, self.clock(), outcome.provider_message_id
            ):
                self.logger.warning(
                    "Message accepted but the row left processing", extra=log_extra
                )
                return True
            self.logger.info(
                f"Successfully sent message {current.id}",
                extra={**log_extra, "gateway_id": str(gateway.id), "status": "sent"},
            )
            return True

        await self.credit_ledger.release(current.user_id)
        self.logger.error(
            f"Gateway rejected message {current.id}: {outcome.reason}",
            extra={**log_extra, "gateway_id": str(gateway.id)},
        )
        await self._record_rejection(current, attempt_number, outcome)
        return True

    async def _record_rejection(
        self, message: MessageRecord, attempt_number: int, outcome: GatewayOutcome
    ) -> None:
        reason = outcome.reason or "Unknown error"
        kind = self.classify_failure(outcome)

        if kind is FailureKind.TRANSIENT and attempt_number < self.settings.max_retries:
            next_retry = self.clock() + timedelta(
                seconds=self.settings.retry_delay_seconds
            )
            if await self.message_repo.mark_retry(message.id, reason, next_retry):
                self.logger.info(
                    f"Scheduled retry for message {message.id}",
                    extra={
                        "message_id": str(message.id),
                        "retry_count": attempt_number,
                        "status": "retry",
                    },
                )
            return

        await self._fail_terminally(message, reason)

    async def _fail_terminally(self, message: MessageRecord, reason: str) -> None:
        if await self.message_repo.mark_failed(message.id, reason):
            self.logger.warning(
                f"Message {message.id} failed: {reason}",
                extra={"message_id": str(message.id), "status": "failed"},
            )
