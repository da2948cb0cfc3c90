"""
AccountRepository for database operations on Account model
"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, or_
from database_models import Account


class AccountRepository:
    """
    Repository class for Account database operations.
    Encapsulates all database logic for the Account model.

    Trial consumption and subscription linking are single conditional
    UPDATE statements so concurrent requests cannot overrun the trial
    ceiling.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    async def get_account_by_id(self, account_id: str) -> Optional[Account]:
        """
        Retrieve an account by ID.

        Args:
            account_id: Account's ID

        Returns:
            Account object if found, None otherwise
        """
        result = await self.db.execute(
            select(Account).where(Account.id == account_id)
        )
        return result.scalar_one_or_none()

    async def get_account_by_email(self, email: str) -> Optional[Account]:
        """
        Retrieve an account by email address.

        Args:
            email: Account email address (case-insensitive search)

        Returns:
            Account object if found, None otherwise
        """
        result = await self.db.execute(
            select(Account).where(Account.email == email.lower())
        )
        return result.scalar_one_or_none()

    async def get_account_by_username(self, username: str) -> Optional[Account]:
        result = await self.db.execute(
            select(Account).where(Account.username == username)
        )
        return result.scalar_one_or_none()

    async def get_account_by_login(self, identifier: str) -> Optional[Account]:
        """Look an account up by username or email, whichever matches."""
        result = await self.db.execute(
            select(Account).where(
                or_(Account.username == identifier, Account.email == identifier.lower())
            )
        )
        return result.scalars().first()

    async def find_by_external_payer_id(self, payer_id: str) -> Optional[Account]:
        """
        Retrieve the account linked to a PayPal payer ID.

        Args:
            payer_id: External payer identifier from the payment provider

        Returns:
            Account object if found, None otherwise
        """
        if not payer_id:
            return None
        result = await self.db.execute(
            select(Account).where(Account.paypal_payer_id == payer_id)
        )
        return result.scalar_one_or_none()

    async def create_account(self, account_data: dict) -> Account:
        """
        Create a new account in the database.

        Args:
            account_data: Dictionary containing account data. Must include:
                - full_name: str
                - username: str
                - email: str
                - hashed_password: str
                Optional:
                - verification_code: str
                - verification_code_expires_at: datetime

        Returns:
            Created Account object (unverified, no trials used)
        """
        account = Account(
            full_name=account_data["full_name"],
            username=account_data["username"],
            email=account_data["email"].lower(),
            hashed_password=account_data["hashed_password"],
            is_verified=False,
            trials_used=0,
            verification_code=account_data.get("verification_code"),
            verification_code_expires_at=account_data.get("verification_code_expires_at"),
        )
        self.db.add(account)
        await self.db.flush()  # Flush to get defaults without committing
        await self.db.refresh(account)
        return account

    async def update_account(self, account: Account, updates: dict) -> Account:
        """
        Update account fields.

        Args:
            account: Account object to update
            updates: Dictionary of fields to update (e.g., {"is_verified": True})

        Returns:
            Updated Account object
        """
        for key, value in updates.items():
            if hasattr(account, key):
                setattr(account, key, value)

        await self.db.flush()
        await self.db.refresh(account)
        return account

    async def increment_trial_if_below(self, account_id: str, max_trials: int) -> Optional[Account]:
        """
        Atomically consume one trial if the account is below the ceiling.

        Args:
            account_id: Account's ID
            max_trials: Trial ceiling; the counter never goes above it

        Returns:
            The refreshed Account if a trial was consumed, None if the
            ceiling was already reached (or the account does not exist)
        """
        result = await self.db.execute(
            update(Account)
            .where(Account.id == account_id, Account.trials_used < max_trials)
            .values(trials_used=Account.trials_used + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return await self.db.get(Account, account_id, populate_existing=True)

    async def link_subscription_and_reset_trials(
        self,
        account_id: str,
        subscription_id: int,
        payer_id: Optional[str] = None,
    ) -> bool:
        """
        Point the account at its subscription and reset its trial counter.

        The payer ID is recorded only when the account has none yet and no
        other account already claims it, so later events that carry only a
        payer ID resolve to this account.

        Returns:
            True if the account row was updated
        """
        values = {"subscription_id": subscription_id, "trials_used": 0}
        if payer_id:
            owner = await self.find_by_external_payer_id(payer_id)
            if owner is None:
                values["paypal_payer_id"] = payer_id

        stmt = update(Account).where(Account.id == account_id)
        if "paypal_payer_id" in values:
            # Never overwrite a payer ID recorded earlier
            result = await self.db.execute(
                stmt.where(Account.paypal_payer_id.is_(None))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return True
            values.pop("paypal_payer_id")

        result = await self.db.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
