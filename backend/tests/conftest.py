import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DEBUG", "false")

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from perfeval.models import Base, Employee, EvaluationPeriod, PeriodStatus, Project, WbsItem
from perfeval.models.base import enable_sqlite_savepoints


class Seeder:
    """Writes directory rows the assignment services read but never create."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    async def _save(self, row):
        self.db.add(row)
        await self.db.commit()
        return row

    async def employee(self, name: str, manager: Employee = None, external_id: str = None) -> Employee:
        seq = self._next()
        return await self._save(
            Employee(
                external_id=external_id or f"HR-{seq:04d}",
                employee_number=f"E{seq:04d}",
                name=name,
                manager_id=manager.external_id if manager is not None else None,
            )
        )

    async def project(self, name: str = "Apollo", manager: Employee = None, resolved: bool = False) -> Project:
        return await self._save(
            Project(
                name=name,
                project_code=f"P-{self._next():03d}",
                manager_id=manager.external_id if manager is not None else None,
                manager_employee_id=manager.id if (manager is not None and resolved) else None,
            )
        )

    async def period(self, name: str = "2026 H1", status: PeriodStatus = PeriodStatus.in_progress) -> EvaluationPeriod:
        return await self._save(EvaluationPeriod(name=name, status=status))

    async def wbs_item(self, project: Project, title: str) -> WbsItem:
        return await self._save(
            WbsItem(project_id=project.id, wbs_code=f"T-{self._next():03d}", title=title)
        )


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def seed(db):
    return Seeder(db)
