"""
Paymaster HR - FastAPI Dependencies

Shared dependencies for database sessions and payroll run configuration.
Authentication is handled outside this service.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import PayrollRunConfig, Settings, get_settings
from app.database import get_async_session, get_session_factory
from app.services.payroll_batch_service import PayrollBatchRunner
from app.services.payroll_service import PayrollService


def get_run_config(settings: Settings = Depends(get_settings)) -> PayrollRunConfig:
    """Payroll run configuration for request handlers."""
    return PayrollRunConfig.from_settings(settings)


async def get_payroll_service(
    db: AsyncSession = Depends(get_async_session),
    config: PayrollRunConfig = Depends(get_run_config),
) -> PayrollService:
    return PayrollService(db, config)


async def get_batch_runner(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    config: PayrollRunConfig = Depends(get_run_config),
) -> PayrollBatchRunner:
    return PayrollBatchRunner(session_factory, config)
