"""
Billing Router - PayPal webhook and subscription status endpoints
Webhook reads the raw body itself, so it never goes through JSON body parsing
"""

import logging
from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_account
from backend.utils.errors import MalformedInput, StoreFailure
from backend.utils.responses import app_error_response
from crud.account import AccountRepository
from crud.subscription import SubscriptionRepository
from database import get_db
from database_models import Account
from services.access_service import AccessService
from services.webhook_service import WebhookEvent, WebhookReconciler

logger = logging.getLogger(__name__)

billing_router = APIRouter(tags=["billing"])


@billing_router.post("/api/paypal/webhook")
async def paypal_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Handle PayPal webhook events.

    Returns 200 for actionable, ignored and unresolved-account events so
    PayPal does not retry them; 400 for a body that cannot be parsed; 500
    only when the subscription upsert itself fails.

    Args:
        request: FastAPI Request object (for raw body)
        db: Database session dependency

    Returns:
        JSON response
    """
    payload = await request.body()

    try:
        event = WebhookEvent.parse(payload)
    except MalformedInput as e:
        logger.warning(f"Rejected PayPal webhook: {e.message}")
        return app_error_response(e)

    reconciler = WebhookReconciler(db, AccountRepository(db), SubscriptionRepository(db))
    try:
        outcome = await reconciler.reconcile(event)
    except StoreFailure as e:
        return app_error_response(e)

    return JSONResponse(
        status_code=200,
        content={
            "ok": True,
            "received": True,
            "event_type": event.event_type,
            "result": outcome.result.value,
        }
    )


@billing_router.get("/api/subscriptions/status")
async def subscription_status(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db)
):
    """
    Subscription/trial state for the UI. Never consumes a trial.
    """
    access = AccessService(db, AccountRepository(db), SubscriptionRepository(db))
    return await access.get_status(account)
