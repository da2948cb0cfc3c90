import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, Text, Enum, ForeignKey

from config.settings import PLAN_MONTHLY
from database import Base


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_account_id() -> str:
    return str(uuid.uuid4())


def is_valid_account_id(value) -> bool:
    """True if value parses as a native account reference (a UUID)."""
    if not isinstance(value, str) or not value:
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


class SubscriptionPlan(str, enum.Enum):
    MONTHLY = PLAN_MONTHLY


class SubscriptionStatus(str, enum.Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    CANCELED = "canceled"


class Account(Base):
    """
    Registered marketplace account.

    subscription_id is a weak reference: it is not a foreign key, and the
    subscription row is always resolved with an explicit lookup.
    """
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=new_account_id)
    full_name = Column(String, nullable=False)
    username = Column(String, unique=True, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    hashed_password = Column(String, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    verification_code = Column(String, nullable=True)
    verification_code_expires_at = Column(DateTime(timezone=True), nullable=True)
    trials_used = Column(Integer, default=0, nullable=False)
    subscription_id = Column(Integer, nullable=True)
    paypal_payer_id = Column(String, unique=True, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class Subscription(Base):
    """
    Billing record, one per account. Only the webhook reconciler writes it.
    """
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String, unique=True, nullable=False, index=True)
    # Nullable only so an event with an unresolvable account can still be recorded
    account_id = Column(String(36), ForeignKey("accounts.id"), unique=True, nullable=True)
    plan = Column(
        Enum(SubscriptionPlan, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=SubscriptionPlan.MONTHLY,
        nullable=False,
    )
    status = Column(
        Enum(SubscriptionStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=SubscriptionStatus.INACTIVE,
        nullable=False,
    )
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def is_usable(self, now: Optional[datetime] = None) -> bool:
        """Active and strictly unexpired. Expired-but-active records are not usable."""
        if self.status != SubscriptionStatus.ACTIVE or self.expires_at is None:
            return False
        return as_utc(self.expires_at) > (now or utcnow())


class Task(Base):
    """Task posting created by an account."""
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    budget = Column(Float, nullable=False)
    payment_link = Column(String, nullable=True)
    task_link = Column(String, nullable=True)
    submission_link = Column(String, nullable=True)
    deadline = Column(DateTime(timezone=True), nullable=True)
    posted_by = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
