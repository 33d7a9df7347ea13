"""
Paymaster HR - Test Configuration

Pytest fixtures and configuration.

Every test gets its own SQLite database file so the batch runner, which
opens one session per employee, sees the same data as the fixtures.
"""

from decimal import Decimal
from typing import AsyncGenerator, Awaitable, Callable, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

import app.models  # noqa: F401
from app.config import PayrollRunConfig
from app.database import Base, get_async_session, get_session_factory
from app.models.employee import Department, Employee
from app.models.payroll_enums import CalculationMethod
from app.models.salary import SalaryGrade
from app.services.deduction_service import DeductionService
from app.services.employee_service import EmployeeService
from app.services.salary_structure_service import SalaryStructureService
from main import app


GRADE_LEVEL = "GL-08"


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a fresh database for each test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'paymaster_test.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database overrides."""

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def run_config() -> PayrollRunConfig:
    """Sequential runs keep SQLite writers from contending."""
    return PayrollRunConfig(max_workers=1)


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest_asyncio.fixture
async def department(db_session: AsyncSession) -> Department:
    return await EmployeeService(db_session).create_department("Finance", "FIN")


@pytest_asyncio.fixture
async def salary_grade(db_session: AsyncSession) -> SalaryGrade:
    """Basic 250,000 with a 20% housing allowance (gross 300,000 monthly)."""
    return await SalaryStructureService(db_session).create_salary_grade(
        {"level": GRADE_LEVEL, "name": "Officer II", "basic_salary": Decimal("250000")},
        components=[
            {
                "name": "Housing",
                "calculation_method": CalculationMethod.PERCENTAGE,
                "value": Decimal("20"),
            },
        ],
    )


@pytest_asyncio.fixture
async def statutory_deductions(db_session: AsyncSession):
    return await DeductionService(db_session).seed_statutory_deductions()


EmployeeFactory = Callable[..., Awaitable[Employee]]


@pytest_asyncio.fixture
async def make_employee(db_session: AsyncSession, department: Department) -> EmployeeFactory:
    """Factory for onboarded, active employees on GL-08 in the Finance department."""
    counter = {"n": 0}

    async def factory(
        employee_code: Optional[str] = None,
        department_id=department.id,
        grade_level: Optional[str] = GRADE_LEVEL,
        **overrides,
    ) -> Employee:
        counter["n"] += 1
        data = {
            "employee_code": employee_code or f"EMP-{counter['n']:03d}",
            "first_name": "Ada",
            "last_name": f"Okafor{counter['n']}",
            "department_id": department_id,
            "grade_level": grade_level,
            "onboarding_completed": True,
            "is_active": True,
        }
        data.update(overrides)
        return await EmployeeService(db_session).create_employee(data)

    return factory


@pytest_asyncio.fixture
async def employee(make_employee, salary_grade, statutory_deductions) -> Employee:
    return await make_employee()
