"""
Webhook Service - reconciles PayPal billing events into local subscription state
"""

import enum
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.utils.errors import MalformedInput, StoreFailure
from config.settings import settings
from crud.account import AccountRepository
from crud.subscription import SubscriptionRepository
from database_models import (
    Account,
    SubscriptionPlan,
    SubscriptionStatus,
    is_valid_account_id,
    utcnow,
)

logger = logging.getLogger(__name__)

SUBSCRIPTION_ACTIVATED = "BILLING.SUBSCRIPTION.ACTIVATED"
PAYMENT_CAPTURE_COMPLETED = "PAYMENT.CAPTURE.COMPLETED"


# Payload subset we read; PayPal sends far more, which is ignored
class PayPalSubscriber(BaseModel):
    model_config = ConfigDict(extra="ignore")

    payer_id: Optional[str] = None


class PayPalResource(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    custom_id: Optional[str] = None
    subscriber: Optional[PayPalSubscriber] = None


class PayPalWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event_type: str
    # Shape is only checked for actionable events
    resource: Optional[Any] = None


class WebhookEventKind(str, enum.Enum):
    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    PAYMENT_COMPLETED = "payment_completed"
    IGNORED = "ignored"


_KIND_BY_EVENT_TYPE = {
    SUBSCRIPTION_ACTIVATED: WebhookEventKind.SUBSCRIPTION_ACTIVATED,
    PAYMENT_CAPTURE_COMPLETED: WebhookEventKind.PAYMENT_COMPLETED,
}


@dataclass(frozen=True)
class WebhookEvent:
    """Parsed provider event. Only the actionable kinds carry an external_id."""
    kind: WebhookEventKind
    event_type: str
    external_id: Optional[str] = None
    custom_id: Optional[str] = None
    payer_id: Optional[str] = None

    @property
    def is_actionable(self) -> bool:
        return self.kind is not WebhookEventKind.IGNORED

    @classmethod
    def parse(cls, raw: bytes) -> "WebhookEvent":
        """
        Parse a raw webhook body.

        Raises:
            MalformedInput: empty/unparseable body, missing event_type, or an
                actionable event without a readable resource.id
        """
        if not raw:
            raise MalformedInput("Webhook body is empty")
        try:
            payload = PayPalWebhookPayload.model_validate_json(raw)
        except ValidationError as e:
            raise MalformedInput("Webhook body could not be parsed", detail={"errors": e.error_count()}) from e

        kind = _KIND_BY_EVENT_TYPE.get(payload.event_type, WebhookEventKind.IGNORED)
        if kind is WebhookEventKind.IGNORED:
            return cls(kind=kind, event_type=payload.event_type)

        try:
            resource = PayPalResource.model_validate(payload.resource or {})
        except ValidationError as e:
            raise MalformedInput(
                f"{payload.event_type} event has an unreadable resource", detail={"errors": e.error_count()}
            ) from e
        if not resource.id:
            raise MalformedInput(f"{payload.event_type} event is missing resource.id")
        return cls(
            kind=kind,
            event_type=payload.event_type,
            external_id=resource.id,
            custom_id=resource.custom_id or None,
            payer_id=(resource.subscriber.payer_id if resource.subscriber else None) or None,
        )


class ReconcileResult(str, enum.Enum):
    OK = "ok"
    IGNORED = "ignored"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class ReconcileOutcome:
    result: ReconcileResult
    account_id: Optional[str] = None
    subscription_id: Optional[int] = None


class WebhookReconciler:
    """
    Brings local Subscription/Account state in line with a webhook event.

    The subscription upsert is the only step whose failure is reported to the
    provider (as a server error). Failing to resolve or link an account is
    logged and acknowledged, so the provider does not keep retrying.
    """

    def __init__(
        self,
        db: AsyncSession,
        account_repo: AccountRepository,
        subscription_repo: SubscriptionRepository,
        subscription_days: int = settings.subscription_days,
    ):
        self.db = db
        self.account_repo = account_repo
        self.subscription_repo = subscription_repo
        self.subscription_days = subscription_days

    async def _resolve_account(self, event: WebhookEvent) -> Optional[Account]:
        """
        Native account ID from custom_id first, then payer ID lookups.

        A custom_id that is not a native ID is also tried as a payer ID.
        """
        if is_valid_account_id(event.custom_id):
            account = await self.account_repo.get_account_by_id(event.custom_id)
            if account is not None:
                return account

        candidates = [event.payer_id]
        if event.custom_id and not is_valid_account_id(event.custom_id):
            candidates.append(event.custom_id)
        for payer_id in candidates:
            if not payer_id:
                continue
            account = await self.account_repo.find_by_external_payer_id(payer_id)
            if account is not None:
                return account
        return None

    async def reconcile(self, event: WebhookEvent) -> ReconcileOutcome:
        """
        Apply one parsed webhook event.

        Returns:
            ReconcileOutcome (ok, ignored, or unresolved)

        Raises:
            StoreFailure: if the subscription upsert itself fails
        """
        logger.info(f"Processing PayPal webhook event: {event.event_type}")
        if not event.is_actionable:
            return ReconcileOutcome(result=ReconcileResult.IGNORED)

        try:
            account = await self._resolve_account(event)
        except SQLAlchemyError as e:
            logger.error(f"Account lookup failed for {event.external_id}: {e}", exc_info=True)
            await self.db.rollback()
            account = None

        expires_at = utcnow() + timedelta(days=self.subscription_days)
        try:
            subscription = await self.subscription_repo.upsert_by_external_id(
                event.external_id,
                account.id if account is not None else None,
                plan=SubscriptionPlan.MONTHLY,
                status=SubscriptionStatus.ACTIVE,
                expires_at=expires_at,
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Subscription upsert failed for {event.external_id}: {e}", exc_info=True)
            await self.db.rollback()
            raise StoreFailure("Subscription upsert failed") from e

        subscription_id = subscription.id
        logger.info(f"Subscription {event.external_id} active until {expires_at.isoformat()}")

        if account is None:
            logger.warning(
                f"Unresolved account for {event.event_type} {event.external_id} "
                f"(custom_id={event.custom_id!r}, payer_id={event.payer_id!r})"
            )
            return ReconcileOutcome(result=ReconcileResult.UNRESOLVED, subscription_id=subscription_id)

        # Rollback expires loaded rows, so keep plain values around
        account_id = account.id
        try:
            linked = await self.account_repo.link_subscription_and_reset_trials(
                account_id, subscription_id, event.payer_id
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Linking subscription {subscription_id} to account {account_id} failed: {e}", exc_info=True)
            await self.db.rollback()
            return ReconcileOutcome(result=ReconcileResult.UNRESOLVED, subscription_id=subscription_id)

        if not linked:
            logger.warning(f"Account {account_id} disappeared before subscription {subscription_id} was linked")
            return ReconcileOutcome(result=ReconcileResult.UNRESOLVED, subscription_id=subscription_id)

        logger.info(f"Subscription {subscription_id} linked to account {account_id}, trials reset")
        return ReconcileOutcome(
            result=ReconcileResult.OK,
            account_id=account_id,
            subscription_id=subscription_id,
        )
