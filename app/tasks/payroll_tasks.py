"""
Paymaster HR - Payroll Tasks

Background payroll runs: the daily scheduled check and on-demand batches.
"""

import asyncio
import logging
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from celery import shared_task

from app.config import PayrollRunConfig, settings
from app.database import async_session_factory
from app.services.payroll_batch_service import PayrollBatchRunner, run_scheduled_payroll

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async functions in Celery tasks."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _summary_result(summary) -> Dict[str, Any]:
    return {
        "batch_id": summary.batch_id,
        "processed": summary.processed,
        "skipped": summary.skipped,
        "failed": summary.failed,
        "total_net_pay": str(summary.total_net_pay),
        "cancelled": summary.cancelled,
    }


# ===========================================
# SCHEDULED PAYROLL
# ===========================================

@shared_task(name='app.tasks.payroll_tasks.run_scheduled_payroll_task')
def run_scheduled_payroll_task(run_date: Optional[str] = None) -> Dict[str, Any]:
    """Run payroll for all active employees on the configured processing day."""
    today = date.fromisoformat(run_date) if run_date else date.today()
    return run_async(_run_scheduled_payroll(today))


async def _run_scheduled_payroll(today: date) -> Dict[str, Any]:
    summary = await run_scheduled_payroll(
        async_session_factory,
        PayrollRunConfig.from_settings(settings),
        today=today,
        processing_day=settings.payroll_processing_day,
        frequency=settings.payroll_default_frequency,
    )
    if summary is None:
        return {"status": "skipped", "date": today.isoformat()}

    logger.info(f"Scheduled payroll batch {summary.batch_id} complete")
    status = "rejected" if summary.errors and not summary.total_attempted else "completed"
    return {"status": status, **_summary_result(summary)}


# ===========================================
# ON-DEMAND BATCH
# ===========================================

@shared_task(name='app.tasks.payroll_tasks.run_payroll_batch_task')
def run_payroll_batch_task(
    employee_ids: List[str],
    month: int,
    year: int,
    frequency: str = "monthly",
    created_by_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Run a payroll batch for the given employees."""
    return run_async(_run_payroll_batch(
        [uuid.UUID(e) for e in employee_ids],
        month,
        year,
        frequency,
        uuid.UUID(created_by_id) if created_by_id else None,
    ))


async def _run_payroll_batch(
    employee_ids: List[uuid.UUID],
    month: int,
    year: int,
    frequency: str,
    created_by_id: Optional[uuid.UUID],
) -> Dict[str, Any]:
    runner = PayrollBatchRunner(async_session_factory, PayrollRunConfig.from_settings(settings))
    summary = await runner.run(
        employee_ids, month, year, frequency, created_by_id=created_by_id,
    )
    return {"status": "completed", **_summary_result(summary)}
