"""SQL implementation of the volo repository (SQLite via aiosqlite, PostgreSQL via asyncpg)."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Optional, TypeVar

from pydantic import BaseModel
from sqlalchemy import JSON, Column, UniqueConstraint, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel import Field, SQLModel

from ..errors import PersistenceError
from .models import (
    Contact,
    ContentItem,
    Goal,
    GoalProgress,
    GoalWorkflowLink,
    SyncCursor,
    WorkflowRun,
    WorkflowStep,
    WorkflowTemplate,
)
from .repository import VoloRepository

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


# ---------------------------------------------------------------------------
# Tables: each row keeps the full record as JSON plus the columns it is
# queried by.


class RunRow(SQLModel, table=True):
    __tablename__ = "workflow_runs"

    id: str = Field(primary_key=True)
    workflow_type: str = Field(index=True)
    status: str = Field(index=True)
    template_id: Optional[str] = Field(default=None, index=True)
    created_at: datetime
    data: dict = Field(sa_column=Column(JSON, nullable=False))


class StepRow(SQLModel, table=True):
    __tablename__ = "workflow_steps"
    __table_args__ = (UniqueConstraint("workflow_run_id", "step_index"),)

    id: str = Field(primary_key=True)
    workflow_run_id: str = Field(index=True)
    step_index: int
    data: dict = Field(sa_column=Column(JSON, nullable=False))


class CursorRow(SQLModel, table=True):
    __tablename__ = "sync_cursors"
    __table_args__ = (UniqueConstraint("platform_account_id", "data_type"),)

    id: str = Field(primary_key=True)
    platform_account_id: str = Field(index=True)
    data_type: str
    data: dict = Field(sa_column=Column(JSON, nullable=False))


class GoalRow(SQLModel, table=True):
    __tablename__ = "goals"

    id: str = Field(primary_key=True)
    data: dict = Field(sa_column=Column(JSON, nullable=False))


class GoalLinkRow(SQLModel, table=True):
    __tablename__ = "goal_workflow_links"

    id: str = Field(primary_key=True)
    goal_id: str = Field(index=True)
    template_id: str = Field(index=True)
    data: dict = Field(sa_column=Column(JSON, nullable=False))


class GoalProgressRow(SQLModel, table=True):
    __tablename__ = "goal_progress"

    id: str = Field(primary_key=True)
    goal_id: str = Field(index=True)
    snapshot_at: datetime
    data: dict = Field(sa_column=Column(JSON, nullable=False))


class TemplateRow(SQLModel, table=True):
    __tablename__ = "workflow_templates"

    id: str = Field(primary_key=True)
    data: dict = Field(sa_column=Column(JSON, nullable=False))


class ContactRow(SQLModel, table=True):
    __tablename__ = "contacts"

    id: str = Field(primary_key=True)
    email: Optional[str] = Field(default=None, index=True)
    name_key: str = Field(index=True)
    archived: bool = False
    created_at: datetime
    data: dict = Field(sa_column=Column(JSON, nullable=False))


class ContentRow(SQLModel, table=True):
    __tablename__ = "content_items"

    id: str = Field(primary_key=True)
    data: dict = Field(sa_column=Column(JSON, nullable=False))


def _dump(record: BaseModel) -> dict[str, Any]:
    return record.model_dump(mode="json")


def _load(model: type[M], row: Any) -> M:
    return model.model_validate(row.data)


def normalize_database_url(database_url: str) -> str:
    """Map plain ``sqlite://`` / ``postgres://`` URLs onto their async drivers."""
    if database_url.startswith("sqlite+") or database_url.startswith("postgresql+"):
        return database_url
    if database_url.startswith("sqlite:///"):
        return database_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        return f"sqlite+aiosqlite:///{path}"
    for prefix in ("postgresql://", "postgres://"):
        if database_url.startswith(prefix):
            return database_url.replace(prefix, "postgresql+asyncpg://", 1)
    raise ValueError(f"Unsupported database backend: {database_url}")


class SQLRepository(VoloRepository):
    """Persist volo state through SQLModel's async engine."""

    def __init__(self, database_url: str) -> None:
        self.database_url = normalize_database_url(database_url)
        connect_args = (
            {"check_same_thread": False} if self.database_url.startswith("sqlite") else {}
        )
        self.engine = create_async_engine(
            self.database_url, echo=False, future=True, connect_args=connect_args
        )
        self._initialized = False
        self._init_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Schema management
    async def init_db(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return
            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
            self._initialized = True
            logger.debug(f"Initialized schema at {self.database_url}")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if not self._initialized:
            await self.init_db()
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            yield session

    async def _merge(self, row: SQLModel) -> None:
        async with self.session() as session:
            await session.merge(row)
            await session.commit()

    async def _get(self, row_type: type[SQLModel], key: str) -> Any:
        async with self.session() as session:
            return await session.get(row_type, key)

    async def _all(self, statement: Any) -> list[Any]:
        async with self.session() as session:
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def dispose(self) -> None:
        await self.engine.dispose()

    # ------------------------------------------------------------------
    # Runs and steps
    async def save_run(self, run: WorkflowRun) -> None:
        await self._merge(
            RunRow(
                id=run.id,
                workflow_type=run.workflow_type,
                status=run.status,
                template_id=run.template_id,
                created_at=run.created_at,
                data=_dump(run),
            )
        )

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        row = await self._get(RunRow, run_id)
        return _load(WorkflowRun, row) if row else None

    async def list_runs(
        self,
        status: Optional[str] = None,
        workflow_type: Optional[str] = None,
        template_id: Optional[str] = None,
    ) -> list[WorkflowRun]:
        statement = select(RunRow)
        if status is not None:
            statement = statement.where(RunRow.status == status)
        if workflow_type is not None:
            statement = statement.where(RunRow.workflow_type == workflow_type)
        if template_id is not None:
            statement = statement.where(RunRow.template_id == template_id)
        statement = statement.order_by(RunRow.created_at.desc())
        return [_load(WorkflowRun, row) for row in await self._all(statement)]

    async def save_step(self, step: WorkflowStep) -> None:
        await self._merge(
            StepRow(
                id=step.id,
                workflow_run_id=step.workflow_run_id,
                step_index=step.step_index,
                data=_dump(step),
            )
        )

    async def get_step(self, step_id: str) -> WorkflowStep | None:
        row = await self._get(StepRow, step_id)
        return _load(WorkflowStep, row) if row else None

    async def list_steps(self, run_id: str) -> list[WorkflowStep]:
        statement = (
            select(StepRow)
            .where(StepRow.workflow_run_id == run_id)
            .order_by(StepRow.step_index)
        )
        return [_load(WorkflowStep, row) for row in await self._all(statement)]

    async def max_step_index(self, run_id: str) -> int | None:
        async with self.session() as session:
            result = await session.execute(
                select(func.max(StepRow.step_index)).where(
                    StepRow.workflow_run_id == run_id
                )
            )
            return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Sync cursors
    async def get_cursor(
        self, platform_account_id: str, data_type: str
    ) -> SyncCursor | None:
        rows = await self._all(
            select(CursorRow).where(
                CursorRow.platform_account_id == platform_account_id,
                CursorRow.data_type == data_type,
            )
        )
        return _load(SyncCursor, rows[0]) if rows else None

    async def insert_cursor(self, cursor: SyncCursor) -> SyncCursor:
        row = CursorRow(
            id=cursor.id,
            platform_account_id=cursor.platform_account_id,
            data_type=cursor.data_type,
            data=_dump(cursor),
        )
        try:
            async with self.session() as session:
                session.add(row)
                await session.commit()
        except IntegrityError:
            logger.debug(
                f"Cursor for {cursor.platform_account_id}/{cursor.data_type} "
                "created concurrently, loading existing row"
            )
        existing = await self.get_cursor(cursor.platform_account_id, cursor.data_type)
        if existing is None:
            raise PersistenceError(
                f"Cursor for {cursor.platform_account_id}/{cursor.data_type} was neither "
                "inserted nor found"
            )
        return existing

    async def save_cursor(self, cursor: SyncCursor) -> None:
        await self._merge(
            CursorRow(
                id=cursor.id,
                platform_account_id=cursor.platform_account_id,
                data_type=cursor.data_type,
                data=_dump(cursor),
            )
        )

    async def list_cursors(self, platform_account_id: str) -> list[SyncCursor]:
        rows = await self._all(
            select(CursorRow).where(CursorRow.platform_account_id == platform_account_id)
        )
        return [_load(SyncCursor, row) for row in rows]

    # ------------------------------------------------------------------
    # Goals
    async def save_goal(self, goal: Goal) -> None:
        await self._merge(GoalRow(id=goal.id, data=_dump(goal)))

    async def get_goal(self, goal_id: str) -> Goal | None:
        row = await self._get(GoalRow, goal_id)
        return _load(Goal, row) if row else None

    async def list_goals_for_template(self, template_id: str) -> list[Goal]:
        links = await self._all(
            select(GoalLinkRow).where(GoalLinkRow.template_id == template_id)
        )
        goals = []
        for goal_id in dict.fromkeys(link.goal_id for link in links):
            goal = await self.get_goal(goal_id)
            if goal is not None:
                goals.append(goal)
        return goals

    async def save_goal_link(self, link: GoalWorkflowLink) -> None:
        await self._merge(
            GoalLinkRow(
                id=link.id,
                goal_id=link.goal_id,
                template_id=link.template_id,
                data=_dump(link),
            )
        )

    async def add_goal_progress(self, progress: GoalProgress) -> None:
        await self._merge(
            GoalProgressRow(
                id=progress.id,
                goal_id=progress.goal_id,
                snapshot_at=progress.snapshot_at,
                data=_dump(progress),
            )
        )

    async def list_goal_progress(self, goal_id: str) -> list[GoalProgress]:
        rows = await self._all(
            select(GoalProgressRow)
            .where(GoalProgressRow.goal_id == goal_id)
            .order_by(GoalProgressRow.snapshot_at)
        )
        return [_load(GoalProgress, row) for row in rows]

    # ------------------------------------------------------------------
    # Templates, contacts and content
    async def save_template(self, template: WorkflowTemplate) -> None:
        await self._merge(TemplateRow(id=template.id, data=_dump(template)))

    async def get_template(self, template_id: str) -> WorkflowTemplate | None:
        row = await self._get(TemplateRow, template_id)
        return _load(WorkflowTemplate, row) if row else None

    async def save_contact(self, contact: Contact) -> None:
        await self._merge(
            ContactRow(
                id=contact.id,
                email=contact.email,
                name_key=contact.name.strip().lower(),
                archived=contact.archived_at is not None,
                created_at=contact.created_at,
                data=_dump(contact),
            )
        )

    async def get_contact(self, contact_id: str) -> Contact | None:
        row = await self._get(ContactRow, contact_id)
        return _load(Contact, row) if row else None

    async def find_contact(
        self, email: Optional[str] = None, name: Optional[str] = None
    ) -> tuple[Contact, str] | None:
        if email:
            rows = await self._all(select(ContactRow).where(ContactRow.email == email))
            if rows:
                return _load(Contact, rows[0]), "email"
        if name:
            rows = await self._all(
                select(ContactRow).where(ContactRow.name_key == name.strip().lower())
            )
            if rows:
                return _load(Contact, rows[0]), "name"
        return None

    async def list_contacts(self, include_archived: bool = False) -> list[Contact]:
        statement = select(ContactRow).order_by(ContactRow.created_at)
        if not include_archived:
            statement = statement.where(ContactRow.archived.is_(False))
        return [_load(Contact, row) for row in await self._all(statement)]

    async def save_content(self, item: ContentItem) -> None:
        await self._merge(ContentRow(id=item.id, data=_dump(item)))

    async def get_content(self, content_id: str) -> ContentItem | None:
        row = await self._get(ContentRow, content_id)
        return _load(ContentItem, row) if row else None
