"""
Access Service - trial/subscription gate applied before serving tasks
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.utils.errors import AccessDenied, StoreFailure, Unauthenticated
from config.settings import settings
from crud.account import AccountRepository
from crud.subscription import SubscriptionRepository
from database_models import Account, Subscription, as_utc, utcnow

logger = logging.getLogger(__name__)

MAX_TRIALS = settings.max_trials


class AccessReason(str, enum.Enum):
    SUBSCRIPTION = "subscription"
    TRIAL = "trial"
    UNAUTHENTICATED = "unauthenticated"
    TRIALS_EXHAUSTED = "trials_exhausted"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: AccessReason
    trials_used: Optional[int] = None
    max_trials: int = MAX_TRIALS
    expires_at: Optional[datetime] = None

    def raise_for_denial(self) -> None:
        """Raise the matching AppError when access was denied."""
        if self.allowed:
            return
        if self.reason == AccessReason.UNAUTHENTICATED:
            raise Unauthenticated()
        raise AccessDenied(detail={"trials_used": self.trials_used, "max_trials": self.max_trials})

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "reason": self.reason.value,
            "trials_used": self.trials_used,
            "max_trials": self.max_trials,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


class AccessService:
    """
    Decides whether an account may read gated resources.

    Priority order, first match wins:
    1. Linked subscription that is active and strictly unexpired -> allow, no write
    2. trials_used below the ceiling -> consume one trial atomically, allow
    3. Otherwise -> deny with "trials_exhausted"
    """

    def __init__(
        self,
        db: AsyncSession,
        account_repo: AccountRepository,
        subscription_repo: SubscriptionRepository,
        max_trials: int = MAX_TRIALS,
    ):
        self.db = db
        self.account_repo = account_repo
        self.subscription_repo = subscription_repo
        self.max_trials = max_trials

    async def _usable_subscription(self, account: Account) -> Optional[Subscription]:
        subscription = await self.subscription_repo.get_subscription_by_id(account.subscription_id)
        if subscription is None or subscription.account_id != account.id:
            return None
        return subscription if subscription.is_usable(utcnow()) else None

    async def authorize(self, account: Optional[Account]) -> AccessDecision:
        """
        Gate one access for the given account.

        The trial-consuming path commits its single conditional UPDATE
        before returning, so the counter is persisted before anything is
        served. Allowed subscription access and denials write nothing.

        Args:
            account: Authenticated account, or None when no identity was presented

        Returns:
            AccessDecision

        Raises:
            StoreFailure: if the store cannot be read or written
        """
        if account is None:
            return AccessDecision(
                allowed=False,
                reason=AccessReason.UNAUTHENTICATED,
                max_trials=self.max_trials,
            )

        try:
            subscription = await self._usable_subscription(account)
            if subscription is not None:
                return AccessDecision(
                    allowed=True,
                    reason=AccessReason.SUBSCRIPTION,
                    trials_used=account.trials_used,
                    max_trials=self.max_trials,
                    expires_at=as_utc(subscription.expires_at),
                )

            updated = await self.account_repo.increment_trial_if_below(account.id, self.max_trials)
            if updated is not None:
                await self.db.commit()
                return AccessDecision(
                    allowed=True,
                    reason=AccessReason.TRIAL,
                    trials_used=updated.trials_used,
                    max_trials=self.max_trials,
                )
        except SQLAlchemyError as e:
            logger.error(f"Access check failed for account {account.id}: {e}", exc_info=True)
            raise StoreFailure() from e

        logger.info(f"Access denied for account {account.id}: trials exhausted")
        return AccessDecision(
            allowed=False,
            reason=AccessReason.TRIALS_EXHAUSTED,
            trials_used=account.trials_used,
            max_trials=self.max_trials,
        )

    async def get_status(self, account: Account) -> dict:
        """
        Report subscription/trial state for the UI without consuming a trial.
        """
        subscription = await self._usable_subscription(account)
        if subscription is not None:
            return {"active": True, "expires_at": as_utc(subscription.expires_at).isoformat()}
        return {
            "active": False,
            "trials_used": account.trials_used,
            "trials_remaining": max(self.max_trials - account.trials_used, 0),
        }
