"""
Paymaster HR - Payroll Batch Service

Runs PayrollService.calculate_payroll over a cohort of employees.

- Each employee runs in its own session/transaction, so one failure never
  touches another employee's record.
- Employees are processed concurrently up to config.max_workers.
- Outcomes: processed, skipped (precondition errors such as a missing
  department or an existing payroll) or failed (anything else).
- The caller always gets a PayrollBatchSummary back. It is also stored as
  a PayrollSummary row unless the pay period itself was rejected.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import PayrollRunConfig
from app.models.payroll import PayrollSummary
from app.models.payroll_enums import PayrollFrequency
from app.services.employee_service import EmployeeService
from app.services.payroll_calculations import pay_period
from app.services.payroll_service import PayrollService
from app.utils.error_handling import (
    AppException,
    ErrorCategory,
    NotFoundException,
    error_category,
)

logger = logging.getLogger(__name__)

PROCESSED = "processed"
SKIPPED = "skipped"
FAILED = "failed"

UNASSIGNED_DEPARTMENT = "unassigned"


@dataclass
class EmployeeOutcome:
    """Result of one employee within a batch."""
    employee_id: uuid.UUID
    status: str
    employee_name: Optional[str] = None
    department_id: Optional[uuid.UUID] = None
    department_name: Optional[str] = None
    payroll_id: Optional[uuid.UUID] = None
    gross_pay: Decimal = Decimal("0.00")
    total_deductions: Decimal = Decimal("0.00")
    net_pay: Decimal = Decimal("0.00")
    reason: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "employee_id": str(self.employee_id),
            "employee_name": self.employee_name,
            "status": self.status,
            "department_id": str(self.department_id) if self.department_id else None,
            "department_name": self.department_name,
            "payroll_id": str(self.payroll_id) if self.payroll_id else None,
            "gross_pay": str(self.gross_pay),
            "total_deductions": str(self.total_deductions),
            "net_pay": str(self.net_pay),
            "reason": self.reason,
            "error_code": self.error_code,
        }


@dataclass
class PayrollBatchSummary:
    """In-memory result of a batch run."""
    batch_id: str
    month: int
    year: int
    frequency: PayrollFrequency
    employee_details: List[EmployeeOutcome] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    processing_time: float = 0.0
    cancelled: bool = False
    persisted: bool = False

    def _count(self, status: str) -> int:
        return sum(1 for outcome in self.employee_details if outcome.status == status)

    @property
    def total_attempted(self) -> int:
        return len(self.employee_details)

    @property
    def processed(self) -> int:
        return self._count(PROCESSED)

    @property
    def skipped(self) -> int:
        return self._count(SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(FAILED)

    def _total(self, attr: str) -> Decimal:
        return sum(
            (getattr(o, attr) for o in self.employee_details if o.status == PROCESSED),
            Decimal("0.00"),
        )

    @property
    def total_net_pay(self) -> Decimal:
        return self._total("net_pay")

    @property
    def total_gross_pay(self) -> Decimal:
        return self._total("gross_pay")

    @property
    def total_deductions(self) -> Decimal:
        return self._total("total_deductions")

    def department_breakdown(self) -> Dict[str, Dict[str, Any]]:
        breakdown: Dict[str, Dict[str, Any]] = {}
        for outcome in self.employee_details:
            key = str(outcome.department_id) if outcome.department_id else UNASSIGNED_DEPARTMENT
            entry = breakdown.setdefault(key, {
                "department_id": str(outcome.department_id) if outcome.department_id else None,
                "department_name": outcome.department_name,
                "employee_count": 0,
                PROCESSED: 0,
                SKIPPED: 0,
                FAILED: 0,
                "total_net_pay": Decimal("0.00"),
                "total_gross_pay": Decimal("0.00"),
                "total_deductions": Decimal("0.00"),
            })
            entry["employee_count"] += 1
            entry[outcome.status] += 1
            if outcome.status == PROCESSED:
                entry["total_net_pay"] += outcome.net_pay
                entry["total_gross_pay"] += outcome.gross_pay
                entry["total_deductions"] += outcome.total_deductions

        # JSON-safe amounts
        for entry in breakdown.values():
            for key in ("total_net_pay", "total_gross_pay", "total_deductions"):
                entry[key] = str(entry[key])
        return breakdown

    def to_model(self, processed_by_id: Optional[uuid.UUID] = None) -> PayrollSummary:
        return PayrollSummary(
            batch_id=self.batch_id,
            processed_by_id=processed_by_id,
            month=self.month,
            year=self.year,
            frequency=self.frequency,
            total_attempted=self.total_attempted,
            processed=self.processed,
            skipped=self.skipped,
            failed=self.failed,
            total_net_pay=self.total_net_pay,
            total_gross_pay=self.total_gross_pay,
            total_deductions=self.total_deductions,
            processing_time=self.processing_time,
            cancelled=self.cancelled,
            department_breakdown=self.department_breakdown(),
            employee_details=[o.to_dict() for o in self.employee_details],
            errors=list(self.errors),
            warnings=list(self.warnings),
        )


def new_batch_id(month: int, year: int) -> str:
    return f"PAY-{year}{month:02d}-{uuid.uuid4().hex[:10].upper()}"


class PayrollBatchRunner:
    """
    Batch payroll runner.

    Usage:
        runner = PayrollBatchRunner(async_session_maker, PayrollRunConfig.from_settings(settings))
        summary = await runner.run(employee_ids, month=6, year=2025)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        config: Optional[PayrollRunConfig] = None,
    ):
        self.session_factory = session_factory
        self.config = config or PayrollRunConfig()
        self._cancel_event = asyncio.Event()

    def cancel(self) -> None:
        """Stop starting new employees; in-flight employees finish normally."""
        logger.info("Payroll batch cancellation requested")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    async def run(
        self,
        employee_ids: Iterable[uuid.UUID],
        month: int,
        year: int,
        frequency: Union[PayrollFrequency, str] = PayrollFrequency.MONTHLY,
        created_by_id: Optional[uuid.UUID] = None,
        batch_id: Optional[str] = None,
    ) -> PayrollBatchSummary:
        """
        Process payroll for every employee and return the batch summary.

        A malformed period is reported as a validation error on a summary
        with no employees attempted; per-employee errors never propagate.
        """
        try:
            period = pay_period(month, year, frequency)
        except AppException as e:
            return self._rejected_summary(e, month, year, frequency, batch_id)

        # Keep order, drop duplicates
        employee_ids = list(dict.fromkeys(employee_ids))
        summary = PayrollBatchSummary(
            batch_id=batch_id or new_batch_id(month, year),
            month=month,
            year=year,
            frequency=period.frequency,
        )

        logger.info(
            f"Payroll batch {summary.batch_id} started: {len(employee_ids)} employees, "
            f"{month}/{year} {period.frequency.value}, workers={self.config.max_workers}"
        )
        started = time.perf_counter()

        semaphore = asyncio.Semaphore(max(1, self.config.max_workers))
        not_started: List[uuid.UUID] = []

        async def worker(employee_id: uuid.UUID) -> Optional[EmployeeOutcome]:
            async with semaphore:
                if self._cancel_event.is_set():
                    not_started.append(employee_id)
                    return None
                return await self._process_employee(
                    employee_id, summary, period.frequency, created_by_id,
                )

        outcomes = await asyncio.gather(*(worker(employee_id) for employee_id in employee_ids))
        summary.employee_details = [outcome for outcome in outcomes if outcome is not None]

        if not_started:
            summary.cancelled = True
            summary.warnings.append({
                "employee_id": None,
                "code": "BATCH_CANCELLED",
                "message": f"Batch cancelled; {len(not_started)} employee(s) not processed",
                "details": {"employee_ids": [str(e) for e in not_started]},
            })

        summary.processing_time = round(time.perf_counter() - started, 3)
        await self._persist_summary(summary, created_by_id)

        logger.info(
            f"Payroll batch {summary.batch_id} finished in {summary.processing_time}s: "
            f"processed={summary.processed}, skipped={summary.skipped}, failed={summary.failed}, "
            f"net={summary.total_net_pay}"
        )
        return summary

    def _rejected_summary(
        self,
        error: AppException,
        month: int,
        year: int,
        frequency: Union[PayrollFrequency, str],
        batch_id: Optional[str],
    ) -> PayrollBatchSummary:
        """Summary for a batch whose pay period failed validation; not stored."""
        try:
            frequency = PayrollFrequency(frequency)
        except ValueError:
            frequency = PayrollFrequency.MONTHLY
        summary = PayrollBatchSummary(
            batch_id=batch_id or new_batch_id(month, year),
            month=month,
            year=year,
            frequency=frequency,
        )
        summary.errors.append({
            "employee_id": None,
            "category": error.category.value,
            "code": error.code.value,
            "message": error.message,
            "details": error.details,
        })
        logger.warning(f"Payroll batch {summary.batch_id} rejected: {error.message}")
        return summary

    async def _process_employee(
        self,
        employee_id: uuid.UUID,
        summary: PayrollBatchSummary,
        frequency: PayrollFrequency,
        created_by_id: Optional[uuid.UUID],
    ) -> EmployeeOutcome:
        outcome = EmployeeOutcome(employee_id=employee_id, status=FAILED)

        async with self.session_factory() as session:
            try:
                employee = await EmployeeService(session).get_employee(employee_id)
                outcome.employee_name = employee.full_name
                outcome.department_id = employee.department_id
                outcome.department_name = employee.department.name if employee.department else None

                record = await PayrollService(session, self.config).calculate_payroll(
                    employee_id,
                    summary.month,
                    summary.year,
                    frequency,
                    created_by_id=created_by_id,
                    batch_id=summary.batch_id,
                )
            except Exception as e:
                self._record_failure(summary, outcome, e)
                return outcome

        outcome.status = PROCESSED
        outcome.payroll_id = record.id
        outcome.gross_pay = record.gross_earnings
        outcome.total_deductions = record.total_deductions
        outcome.net_pay = record.net_pay
        return outcome

    def _record_failure(
        self,
        summary: PayrollBatchSummary,
        outcome: EmployeeOutcome,
        error: Exception,
    ) -> None:
        category = error_category(error)
        entry = {
            "employee_id": str(outcome.employee_id),
            "employee_name": outcome.employee_name,
            "category": category.value,
        }
        if isinstance(error, AppException):
            entry.update(code=error.code.value, message=error.message, details=error.details)
        else:
            entry.update(code="UNEXPECTED_ERROR", message=f"{type(error).__name__}: {error}")

        outcome.reason = entry["message"]
        outcome.error_code = entry["code"]

        if category == ErrorCategory.PRECONDITION:
            outcome.status = SKIPPED
            summary.warnings.append(entry)
            logger.warning(
                f"Batch {summary.batch_id}: skipped employee {outcome.employee_id} "
                f"({outcome.employee_name}): {entry['message']}"
            )
        else:
            outcome.status = FAILED
            summary.errors.append(entry)
            logger.error(
                f"Batch {summary.batch_id}: payroll failed for employee {outcome.employee_id} "
                f"({outcome.employee_name}): {entry['message']}",
                exc_info=error,
            )

    async def _persist_summary(
        self,
        summary: PayrollBatchSummary,
        processed_by_id: Optional[uuid.UUID],
    ) -> None:
        try:
            async with self.session_factory() as session:
                session.add(summary.to_model(self.config.processed_by_id or processed_by_id))
                await session.commit()
            summary.persisted = True
        except SQLAlchemyError as e:
            logger.error(f"Could not store summary for batch {summary.batch_id}: {e}", exc_info=True)
            summary.errors.append({
                "employee_id": None,
                "category": ErrorCategory.UNEXPECTED.value,
                "code": "SUMMARY_NOT_SAVED",
                "message": f"Batch summary could not be saved: {type(e).__name__}",
            })


class PayrollSummaryService:
    """Read access to stored batch summaries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_summary(self, batch_id: str) -> PayrollSummary:
        result = await self.db.execute(
            select(PayrollSummary).where(PayrollSummary.batch_id == batch_id)
        )
        summary = result.scalar_one_or_none()
        if summary is None:
            raise NotFoundException("PayrollSummary", batch_id)
        return summary

    async def list_summaries(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> List[PayrollSummary]:
        query = select(PayrollSummary)
        if month:
            query = query.where(PayrollSummary.month == month)
        if year:
            query = query.where(PayrollSummary.year == year)
        result = await self.db.execute(query.order_by(PayrollSummary.created_at.desc()))
        return list(result.scalars().all())


async def run_scheduled_payroll(
    session_factory: async_sessionmaker,
    config: PayrollRunConfig,
    today: date,
    processing_day: int,
    frequency: Union[PayrollFrequency, str] = PayrollFrequency.MONTHLY,
) -> Optional[PayrollBatchSummary]:
    """
    Automated monthly run.

    Only runs on the processing day; pays every active employee for the
    current month using the active grade of their grade level.
    """
    if today.day != processing_day:
        logger.debug(f"Scheduled payroll: {today} is not processing day {processing_day}")
        return None

    async with session_factory() as session:
        employee_ids = await EmployeeService(session).list_active_employee_ids()

    logger.info(f"Scheduled payroll for {today.month}/{today.year}: {len(employee_ids)} active employees")
    runner = PayrollBatchRunner(session_factory, config)
    return await runner.run(employee_ids, today.month, today.year, frequency)
