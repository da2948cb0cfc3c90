"""
Integration tests for the gated task listing and the PayPal webhook endpoint
"""
import json

import pytest
from sqlalchemy.exc import SQLAlchemyError

from auth_utils import create_jwt
from crud.subscription import SubscriptionRepository


def auth_headers(account):
    return {"Authorization": f"Bearer {create_jwt(account.id)}"}


def webhook_payload(event_type="BILLING.SUBSCRIPTION.ACTIVATED", resource_id="I-ABC", custom_id=None, payer_id=None):
    resource = {"id": resource_id, "status": "ACTIVE"}
    if custom_id:
        resource["custom_id"] = custom_id
    if payer_id:
        resource["subscriber"] = {"payer_id": payer_id}
    return json.dumps({"event_type": event_type, "resource": resource})


@pytest.mark.asyncio
async def test_health(async_client):
    response = await async_client.get("/")
    assert response.status_code == 200
    assert "running" in response.text


@pytest.mark.asyncio
async def test_create_and_list_tasks(async_client, make_account, test_db):
    poster = await make_account(full_name="Client Person")

    response = await async_client.post(
        "/api/tasks",
        json={
            "title": "Essay review",
            "description": "Proofread a 2000-word essay",
            "budget": 25,
            "task_link": "https://example.com/task",
            "deadline": "2030-01-01T12:00:00Z",
        },
        headers=auth_headers(poster),
    )
    assert response.status_code == 201
    task = response.json()["task"]
    assert task["title"] == "Essay review"
    assert task["posted_by"] == "Client Person"

    # Posting does not consume a trial
    await test_db.refresh(poster)
    assert poster.trials_used == 0

    response = await async_client.get("/api/tasks", headers=auth_headers(poster))
    assert response.status_code == 200
    body = response.json()
    assert [t["title"] for t in body["tasks"]] == ["Essay review"]
    assert body["tasks"][0]["budget"] == 25
    assert body["tasks"][0]["deadline"].startswith("2030-01-01T12:00:00")
    assert body["access"]["reason"] == "trial"
    assert body["access"]["trials_used"] == 1


@pytest.mark.asyncio
async def test_create_task_validation(async_client, make_account):
    poster = await make_account()

    response = await async_client.post(
        "/api/tasks",
        json={"title": "Free work", "description": "No budget", "budget": 0},
        headers=auth_headers(poster),
    )
    assert response.status_code == 422

    response = await async_client.post("/api/tasks", json={"title": "x", "description": "y", "budget": 5})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_list_tasks_requires_authentication(async_client):
    response = await async_client.get("/api/tasks")
    assert response.status_code == 401
    assert response.json()["error"] == "unauthenticated"

    response = await async_client.get("/api/tasks", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_trials_run_out_with_payment_required(async_client, make_account, test_db):
    account = await make_account(trials_used=6)

    response = await async_client.get("/api/tasks", headers=auth_headers(account))
    assert response.status_code == 200
    assert response.json()["access"]["trials_used"] == 7

    response = await async_client.get("/api/tasks", headers=auth_headers(account))
    assert response.status_code == 402
    body = response.json()
    assert body["ok"] is False
    assert body["error"] == "trials_exhausted"

    await test_db.refresh(account)
    assert account.trials_used == 7


@pytest.mark.asyncio
async def test_webhook_activation_unlocks_tasks(async_client, make_account, test_db):
    account = await make_account(trials_used=7)

    response = await async_client.post("/api/paypal/webhook", content=webhook_payload(custom_id=account.id))
    assert response.status_code == 200
    assert response.json()["result"] == "ok"

    await test_db.refresh(account)
    assert account.trials_used == 0
    assert account.subscription_id is not None

    for _ in range(3):
        response = await async_client.get("/api/tasks", headers=auth_headers(account))
        assert response.status_code == 200
        assert response.json()["access"]["reason"] == "subscription"

    await test_db.refresh(account)
    assert account.trials_used == 0

    response = await async_client.get("/api/subscriptions/status", headers=auth_headers(account))
    assert response.status_code == 200
    assert response.json()["active"] is True
    assert response.json()["expires_at"]


@pytest.mark.asyncio
async def test_subscription_status_without_subscription(async_client, make_account):
    account = await make_account(trials_used=5)

    response = await async_client.get("/api/subscriptions/status", headers=auth_headers(account))
    assert response.status_code == 200
    assert response.json() == {"active": False, "trials_used": 5, "trials_remaining": 2}


@pytest.mark.asyncio
async def test_webhook_ignores_other_events(async_client, test_db):
    response = await async_client.post(
        "/api/paypal/webhook", content=webhook_payload(event_type="SOMETHING.ELSE")
    )
    assert response.status_code == 200
    assert response.json()["result"] == "ignored"
    assert await SubscriptionRepository(test_db).get_subscription_by_external_id("I-ABC") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("resource", [None, "opaque", {"id": 7}])
async def test_webhook_acknowledges_other_events_with_any_resource(async_client, resource):
    response = await async_client.post(
        "/api/paypal/webhook", content=json.dumps({"event_type": "SOMETHING.ELSE", "resource": resource})
    )
    assert response.status_code == 200
    assert response.json()["result"] == "ignored"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b"", b"{broken", b'"just a string"'])
async def test_webhook_rejects_unparseable_body(async_client, body):
    response = await async_client.post("/api/paypal/webhook", content=body)
    assert response.status_code == 400
    assert response.json()["error"] == "malformed_payload"


@pytest.mark.asyncio
async def test_webhook_acknowledges_unresolved_account(async_client):
    response = await async_client.post("/api/paypal/webhook", content=webhook_payload(payer_id="UNKNOWN"))
    assert response.status_code == 200
    assert response.json()["result"] == "unresolved"


@pytest.mark.asyncio
async def test_webhook_reports_upsert_failure(async_client, make_account, monkeypatch):
    account = await make_account()

    async def broken_upsert(self, *args, **kwargs):
        raise SQLAlchemyError("connection lost")

    monkeypatch.setattr(SubscriptionRepository, "upsert_by_external_id", broken_upsert)

    response = await async_client.post("/api/paypal/webhook", content=webhook_payload(custom_id=account.id))
    assert response.status_code == 500
    assert response.json()["error"] == "store_failure"
