from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_account, get_optional_account
from crud.account import AccountRepository
from crud.subscription import SubscriptionRepository
from crud.task import TaskRepository
from database import get_db
from database_models import Account, Task, as_utc
from services.access_service import AccessService

task_router = APIRouter(prefix="/api/tasks", tags=["tasks"])


class TaskCreateRequest(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    budget: float = Field(gt=0)
    payment_link: Optional[str] = None
    task_link: Optional[str] = None
    submission_link: Optional[str] = None
    deadline: Optional[datetime] = None


def serialize_task(task: Task, poster: Optional[Account] = None) -> dict:
    deadline = as_utc(task.deadline)
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "budget": task.budget,
        "deadline": deadline.isoformat() if deadline else None,
        "payment_link": task.payment_link,
        "task_link": task.task_link,
        "submission_link": task.submission_link,
        "posted_by": (poster.full_name or poster.username) if poster else "Unknown",
    }


@task_router.post("")
async def create_task(
    request: TaskCreateRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """Post a new task. Requires authentication only, no trial is consumed."""
    task = await TaskRepository(db).create_task(request.model_dump(), posted_by=account.id)
    await db.commit()
    return JSONResponse(
        status_code=201,
        content={"ok": True, "message": "Task created successfully!", "task": serialize_task(task, account)},
    )


@task_router.get("")
async def list_tasks(
    account: Optional[Account] = Depends(get_optional_account),
    db: AsyncSession = Depends(get_db),
):
    """
    List tasks behind the trial/subscription gate.

    401 when unauthenticated, 402 once trials are exhausted without an
    active subscription. A trial is consumed (and committed) before the
    tasks are read.
    """
    access = AccessService(db, AccountRepository(db), SubscriptionRepository(db))
    decision = await access.authorize(account)
    decision.raise_for_denial()

    rows = await TaskRepository(db).list_tasks()
    return {
        "ok": True,
        "tasks": [serialize_task(task, poster) for task, poster in rows],
        "access": decision.to_dict(),
    }
