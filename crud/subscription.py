"""
SubscriptionRepository for database operations on Subscription model
"""

from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from database_models import Subscription, SubscriptionPlan, SubscriptionStatus, utcnow


class SubscriptionRepository:
    """
    Repository class for Subscription database operations.
    Subscriptions are only ever written through upsert_by_external_id.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_subscription_by_id(self, subscription_id: Optional[int]) -> Optional[Subscription]:
        """
        Retrieve a subscription by its local ID.

        Args:
            subscription_id: Subscription ID (None returns None)

        Returns:
            Subscription object if found, None otherwise
        """
        if subscription_id is None:
            return None
        result = await self.db.execute(
            select(Subscription).where(Subscription.id == subscription_id)
        )
        return result.scalar_one_or_none()

    async def get_subscription_by_external_id(self, external_id: str) -> Optional[Subscription]:
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.external_id == external_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def _insert(self):
        dialect = self.db.bind.dialect.name
        if dialect == "postgresql":
            return pg_insert(Subscription)
        if dialect == "sqlite":
            return sqlite_insert(Subscription)
        raise NotImplementedError(f"Subscription upsert is not supported on '{dialect}'")

    async def upsert_by_external_id(
        self,
        external_id: str,
        account_id: Optional[str],
        *,
        plan: SubscriptionPlan,
        status: SubscriptionStatus,
        expires_at: Optional[datetime],
    ) -> Subscription:
        """
        Insert or update the subscription keyed by the provider's subscription ID.

        The write is a single INSERT ... ON CONFLICT (external_id) DO UPDATE,
        so duplicate or concurrent deliveries converge on one row. When the
        account already owns a record under a different external ID, that
        record is released first to keep one subscription per account.

        Args:
            external_id: Payment provider's subscription/resource ID
            account_id: Resolved owner, or None when unresolved (an existing
                owner is then left untouched)
            plan: Billing plan
            status: New status
            expires_at: New expiry timestamp

        Returns:
            The stored Subscription
        """
        now = utcnow()

        if account_id is not None:
            await self.db.execute(
                update(Subscription)
                .where(
                    Subscription.account_id == account_id,
                    Subscription.external_id != external_id,
                )
                .values(account_id=None, status=SubscriptionStatus.CANCELED, updated_at=now)
                .execution_options(synchronize_session=False)
            )

        stmt = self._insert().values(
            external_id=external_id,
            account_id=account_id,
            plan=plan,
            status=status,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        changes = {
            "plan": stmt.excluded.plan,
            "status": stmt.excluded.status,
            "expires_at": stmt.excluded.expires_at,
            "updated_at": stmt.excluded.updated_at,
        }
        if account_id is not None:
            changes["account_id"] = stmt.excluded.account_id

        await self.db.execute(
            stmt.on_conflict_do_update(
                index_elements=[Subscription.external_id],
                set_=changes,
            )
        )
        return await self.get_subscription_by_external_id(external_id)
