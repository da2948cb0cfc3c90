"""
Unit tests for the trial/subscription access gate
"""
import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from auth_utils import create_jwt
from backend.utils.errors import AccessDenied, StoreFailure, Unauthenticated
from crud.account import AccountRepository
from crud.subscription import SubscriptionRepository
from database import Base
from database_models import Account, SubscriptionStatus
from services.access_service import AccessReason, AccessService, MAX_TRIALS


def build_service(session):
    return AccessService(session, AccountRepository(session), SubscriptionRepository(session))


def test_max_trials_is_seven():
    assert MAX_TRIALS == 7


@pytest.mark.asyncio
async def test_active_subscription_allows_without_consuming_trial(test_db, make_account, make_subscription):
    account = await make_account(trials_used=0)
    await make_subscription(account, expires_in=timedelta(days=10))

    decision = await build_service(test_db).authorize(account)

    assert decision.allowed is True
    assert decision.reason == AccessReason.SUBSCRIPTION
    await test_db.refresh(account)
    assert account.trials_used == 0


@pytest.mark.asyncio
async def test_active_subscription_takes_precedence_over_remaining_trials(test_db, make_account, make_subscription):
    account = await make_account(trials_used=3)
    await make_subscription(account)

    for _ in range(5):
        decision = await build_service(test_db).authorize(account)
        assert decision.reason == AccessReason.SUBSCRIPTION

    await test_db.refresh(account)
    assert account.trials_used == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("trials_used", [0, 3, 6])
async def test_trial_access_increments_by_exactly_one(test_db, make_account, trials_used):
    account = await make_account(trials_used=trials_used)

    decision = await build_service(test_db).authorize(account)

    assert decision.allowed is True
    assert decision.reason == AccessReason.TRIAL
    assert decision.trials_used == trials_used + 1
    await test_db.refresh(account)
    assert account.trials_used == trials_used + 1


@pytest.mark.asyncio
async def test_exhausted_trials_deny_without_mutation(test_db, make_account):
    account = await make_account(trials_used=7)

    decision = await build_service(test_db).authorize(account)

    assert decision.allowed is False
    assert decision.reason == AccessReason.TRIALS_EXHAUSTED
    await test_db.refresh(account)
    assert account.trials_used == 7


@pytest.mark.asyncio
async def test_inactive_subscription_with_exhausted_trials_is_denied(test_db, make_account, make_subscription):
    account = await make_account(trials_used=7)
    await make_subscription(account, status=SubscriptionStatus.INACTIVE)

    decision = await build_service(test_db).authorize(account)

    assert decision.allowed is False
    assert decision.reason == AccessReason.TRIALS_EXHAUSTED


@pytest.mark.asyncio
async def test_expired_active_subscription_falls_back_to_trials(test_db, make_account, make_subscription):
    account = await make_account(trials_used=2)
    subscription = await make_subscription(account, expires_in=timedelta(seconds=-1))

    decision = await build_service(test_db).authorize(account)

    assert decision.reason == AccessReason.TRIAL
    await test_db.refresh(account)
    assert account.trials_used == 3
    # No sweep: the record keeps its active status
    await test_db.refresh(subscription)
    assert subscription.status == SubscriptionStatus.ACTIVE


@pytest.mark.asyncio
async def test_subscription_owned_by_another_account_is_not_usable(test_db, make_account, make_subscription):
    owner = await make_account()
    subscription = await make_subscription(owner)
    other = await make_account(trials_used=7)
    other.subscription_id = subscription.id
    await test_db.commit()

    decision = await build_service(test_db).authorize(other)

    assert decision.reason == AccessReason.TRIALS_EXHAUSTED


@pytest.mark.asyncio
async def test_unauthenticated_is_distinct_from_exhausted(test_db):
    decision = await build_service(test_db).authorize(None)

    assert decision.allowed is False
    assert decision.reason == AccessReason.UNAUTHENTICATED
    with pytest.raises(Unauthenticated):
        decision.raise_for_denial()


@pytest.mark.asyncio
async def test_eighth_access_is_denied(test_db, make_account):
    account = await make_account(trials_used=0)
    service = build_service(test_db)

    results = []
    for _ in range(8):
        results.append(await service.authorize(account))

    assert [d.allowed for d in results] == [True] * 7 + [False]
    with pytest.raises(AccessDenied) as exc_info:
        results[-1].raise_for_denial()
    assert exc_info.value.status_code == 402
    assert exc_info.value.error_code == "trials_exhausted"


@pytest.mark.asyncio
async def test_get_status_does_not_consume_trials(test_db, make_account):
    account = await make_account(trials_used=4)

    status = await build_service(test_db).get_status(account)

    assert status == {"active": False, "trials_used": 4, "trials_remaining": 3}
    await test_db.refresh(account)
    assert account.trials_used == 4


@pytest.mark.asyncio
async def test_concurrent_trial_consumption_never_exceeds_ceiling(tmp_path):
    """
    Two simultaneous accesses at trials_used == 6 on separate connections:
    exactly one succeeds and the counter ends at 7.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with factory() as session:
        account = Account(
            full_name="Racer One",
            username="racer",
            email="racer@example.com",
            hashed_password="x",
            is_verified=True,
            trials_used=6,
        )
        session.add(account)
        await session.commit()
        account_id = account.id

    async def attempt():
        async with factory() as session:
            loaded = await AccountRepository(session).get_account_by_id(account_id)
            return await build_service(session).authorize(loaded)

    try:
        decisions = await asyncio.gather(attempt(), attempt())

        assert sum(1 for d in decisions if d.allowed) == 1
        assert sum(1 for d in decisions if d.reason == AccessReason.TRIALS_EXHAUSTED) == 1

        async with factory() as session:
            stored = await AccountRepository(session).get_account_by_id(account_id)
            assert stored.trials_used == 7
    finally:
        await engine.dispose()


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["increment_trial_if_below", "get_subscription_by_id"])
async def test_store_errors_during_gating_raise_store_failure(test_db, make_account, monkeypatch, method):
    account = await make_account(trials_used=2)
    repo_class = AccountRepository if method == "increment_trial_if_below" else SubscriptionRepository

    async def broken(self, *args, **kwargs):
        raise SQLAlchemyError("connection lost")

    monkeypatch.setattr(repo_class, method, broken)

    with pytest.raises(StoreFailure):
        await build_service(test_db).authorize(account)


@pytest.mark.asyncio
async def test_store_errors_during_gating_return_server_error(async_client, make_account, monkeypatch):
    account = await make_account(trials_used=2)

    async def broken(self, *args, **kwargs):
        raise SQLAlchemyError("connection lost")

    monkeypatch.setattr(AccountRepository, "increment_trial_if_below", broken)

    response = await async_client.get("/api/tasks", headers={"Authorization": f"Bearer {create_jwt(account.id)}"})
    assert response.status_code == 500
    assert response.json()["error"] == "store_failure"
