"""
TaskRepository for database operations on Task model
"""

from typing import List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from database_models import Account, Task


class TaskRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_task(self, task_data: dict, posted_by: str) -> Task:
        """
        Create a task posted by the given account.

        Args:
            task_data: title, description, budget and optional
                payment_link, task_link, submission_link, deadline
            posted_by: ID of the creating account

        Returns:
            Created Task object
        """
        task = Task(
            title=task_data["title"],
            description=task_data["description"],
            budget=task_data["budget"],
            payment_link=task_data.get("payment_link"),
            task_link=task_data.get("task_link"),
            submission_link=task_data.get("submission_link"),
            deadline=task_data.get("deadline"),
            posted_by=posted_by,
        )
        self.db.add(task)
        await self.db.flush()
        await self.db.refresh(task)
        return task

    async def list_tasks(self) -> List[Tuple[Task, Account]]:
        """Return all tasks, newest first, each paired with its poster."""
        result = await self.db.execute(
            select(Task, Account)
            .join(Account, Task.posted_by == Account.id)
            .order_by(Task.created_at.desc(), Task.id.desc())
        )
        return [(task, account) for task, account in result.all()]
