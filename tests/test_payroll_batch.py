"""
Paymaster HR - Payroll Batch Tests

Batch runs over a cohort: per-employee isolation, skipped vs failed
outcomes, cancellation, the persisted summary and the scheduled run.
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest

from app.models.payroll_enums import PayrollFrequency
from app.services.payroll_batch_service import (
    FAILED,
    PROCESSED,
    SKIPPED,
    PayrollBatchRunner,
    PayrollSummaryService,
    run_scheduled_payroll,
)
from app.services.payroll_service import PayrollService


async def _cohort(make_employee, count=5, without_department=()):
    employees = []
    for n in range(1, count + 1):
        if n in without_department:
            employees.append(await make_employee(department_id=None))
        else:
            employees.append(await make_employee())
    return [e.id for e in employees]


class CancellingRunner(PayrollBatchRunner):
    """Cancels itself after the first employee."""

    async def _process_employee(self, *args, **kwargs):
        outcome = await super()._process_employee(*args, **kwargs)
        self.cancel()
        return outcome


class TestBatchRun:
    """Test batch outcomes and totals."""

    @pytest.mark.asyncio
    async def test_missing_department_is_skipped(
        self, db_session, session_factory, run_config, employee, make_employee,
    ):
        employee_ids = [employee.id] + await _cohort(make_employee, 4, without_department=(2,))
        runner = PayrollBatchRunner(session_factory, run_config)

        summary = await runner.run(employee_ids, 6, 2025)

        assert summary.total_attempted == 5
        assert summary.processed == 4
        assert summary.skipped == 1
        assert summary.failed == 0
        assert summary.errors == []
        assert len(summary.warnings) == 1
        assert summary.warnings[0]["employee_id"] == str(employee_ids[2])
        assert summary.warnings[0]["code"] == "MISSING_DEPARTMENT"
        assert summary.total_net_pay == Decimal("219083.33") * 4
        assert summary.total_gross_pay == Decimal("1200000.00")
        assert summary.persisted is True

    @pytest.mark.asyncio
    async def test_outcomes_keep_input_order(
        self, db_session, session_factory, run_config, employee, make_employee,
    ):
        employee_ids = [employee.id] + await _cohort(make_employee, 2)

        summary = await PayrollBatchRunner(session_factory, run_config).run(employee_ids, 6, 2025)

        assert [o.employee_id for o in summary.employee_details] == employee_ids
        assert all(o.status == PROCESSED for o in summary.employee_details)
        assert all(o.payroll_id is not None for o in summary.employee_details)

    @pytest.mark.asyncio
    async def test_records_carry_batch_id(self, db_session, session_factory, run_config, employee):
        employee_id = employee.id

        summary = await PayrollBatchRunner(session_factory, run_config).run(
            [employee_id], 6, 2025, batch_id="PAY-TEST-0001",
        )

        record = await PayrollService(db_session).find_payroll(employee_id, 6, 2025)
        assert summary.batch_id == "PAY-TEST-0001"
        assert record.batch_id == "PAY-TEST-0001"

    @pytest.mark.asyncio
    async def test_all_failures_still_return_summary(
        self, db_session, session_factory, run_config, make_employee,
    ):
        """No grade exists for GL-99, so every employee fails."""
        employee_ids = [
            (await make_employee(grade_level="GL-99")).id,
            (await make_employee(grade_level="GL-99")).id,
        ]

        summary = await PayrollBatchRunner(session_factory, run_config).run(employee_ids, 6, 2025)

        assert summary.processed == 0
        assert summary.failed == 2
        assert {e["code"] for e in summary.errors} == {"SALARY_GRADE_NOT_FOUND"}
        assert summary.total_net_pay == Decimal("0.00")
        assert summary.persisted is True

    @pytest.mark.asyncio
    async def test_unknown_employee_fails(self, db_session, session_factory, run_config, employee):
        employee_id = employee.id
        ghost = uuid.uuid4()

        summary = await PayrollBatchRunner(session_factory, run_config).run(
            [employee_id, ghost], 6, 2025,
        )

        assert summary.processed == 1
        assert summary.failed == 1
        assert summary.errors[0]["employee_id"] == str(ghost)

    @pytest.mark.asyncio
    async def test_rerun_skips_existing_payroll(self, db_session, session_factory, run_config, employee):
        employee_id = employee.id
        runner = PayrollBatchRunner(session_factory, run_config)
        await runner.run([employee_id], 6, 2025)

        again = await PayrollBatchRunner(session_factory, run_config).run([employee_id], 6, 2025)

        assert again.processed == 0
        assert again.skipped == 1
        assert again.warnings[0]["code"] == "DUPLICATE_PAYROLL"

    @pytest.mark.asyncio
    async def test_duplicate_ids_processed_once(self, db_session, session_factory, run_config, employee):
        employee_id = employee.id

        summary = await PayrollBatchRunner(session_factory, run_config).run(
            [employee_id, employee_id], 6, 2025,
        )

        assert summary.total_attempted == 1
        assert summary.processed == 1

    @pytest.mark.asyncio
    async def test_invalid_period_returns_rejected_summary(self, session_factory, run_config, employee):
        employee_id = employee.id

        summary = await PayrollBatchRunner(session_factory, run_config).run([employee_id], 13, 2025)

        assert summary.total_attempted == 0
        assert summary.persisted is False
        assert summary.frequency == PayrollFrequency.MONTHLY
        assert len(summary.errors) == 1
        assert summary.errors[0]["code"] == "INVALID_PAY_PERIOD"
        assert summary.errors[0]["category"] == "validation"
        assert summary.errors[0]["employee_id"] is None

        async with session_factory() as session:
            assert await PayrollSummaryService(session).list_summaries() == []
            assert await PayrollService(session, run_config).list_payrolls() == []

    @pytest.mark.asyncio
    async def test_unknown_frequency_returns_rejected_summary(self, session_factory, run_config, employee):
        summary = await PayrollBatchRunner(session_factory, run_config).run(
            [employee.id], 6, 2025, frequency="fortnightly",
        )

        assert summary.total_attempted == 0
        assert summary.errors[0]["code"] == "INVALID_PAY_PERIOD"

    @pytest.mark.asyncio
    async def test_department_breakdown(
        self, db_session, session_factory, run_config, employee, make_employee, department,
    ):
        employee_ids = [employee.id] + await _cohort(make_employee, 1, without_department=(1,))
        department_key = str(department.id)

        summary = await PayrollBatchRunner(session_factory, run_config).run(employee_ids, 6, 2025)
        breakdown = summary.department_breakdown()

        assert breakdown[department_key]["processed"] == 1
        assert breakdown[department_key]["department_name"] == "Finance"
        assert breakdown[department_key]["total_net_pay"] == "219083.33"
        assert breakdown["unassigned"]["skipped"] == 1


class TestBatchCancellation:
    """Cancelled batches stop starting new employees."""

    @pytest.mark.asyncio
    async def test_cancel_before_run(self, db_session, session_factory, run_config, employee, make_employee):
        employee_ids = [employee.id] + await _cohort(make_employee, 2)
        runner = PayrollBatchRunner(session_factory, run_config)
        runner.cancel()

        summary = await runner.run(employee_ids, 6, 2025)

        assert summary.cancelled is True
        assert summary.total_attempted == 0
        assert summary.warnings[-1]["code"] == "BATCH_CANCELLED"
        assert summary.persisted is True

    @pytest.mark.asyncio
    async def test_cancel_mid_run(self, db_session, session_factory, run_config, employee, make_employee):
        employee_ids = [employee.id] + await _cohort(make_employee, 3)
        runner = CancellingRunner(session_factory, run_config)

        summary = await runner.run(employee_ids, 6, 2025)

        assert summary.cancelled is True
        assert summary.processed == 1
        assert summary.employee_details[0].employee_id == employee_ids[0]
        cancelled = summary.warnings[-1]
        assert cancelled["code"] == "BATCH_CANCELLED"
        assert cancelled["details"]["employee_ids"] == [str(e) for e in employee_ids[1:]]


class TestBatchSummaryPersistence:
    """The summary is stored, and a storage failure is reported, not raised."""

    @pytest.mark.asyncio
    async def test_summary_is_stored(self, db_session, session_factory, run_config, employee, make_employee):
        employee_ids = [employee.id] + await _cohort(make_employee, 2, without_department=(1,))

        summary = await PayrollBatchRunner(session_factory, run_config).run(employee_ids, 6, 2025)

        async with session_factory() as session:
            stored = await PayrollSummaryService(session).get_summary(summary.batch_id)

        assert stored.total_attempted == 3
        assert stored.processed == 2
        assert stored.skipped == 1
        assert stored.frequency == PayrollFrequency.MONTHLY
        assert stored.total_net_pay == summary.total_net_pay
        assert len(stored.employee_details) == 3
        assert len(stored.warnings) == 1

    @pytest.mark.asyncio
    async def test_summary_storage_failure_reported(self, db_session, session_factory, run_config, employee):
        employee_id = employee.id
        runner = PayrollBatchRunner(session_factory, run_config)
        await runner.run([employee_id], 6, 2025, batch_id="PAY-202506-FIXED")

        # Same batch id violates the unique summary key
        again = await PayrollBatchRunner(session_factory, run_config).run(
            [employee_id], 7, 2025, batch_id="PAY-202506-FIXED",
        )

        assert again.processed == 1
        assert again.persisted is False
        assert again.errors[-1]["code"] == "SUMMARY_NOT_SAVED"

    @pytest.mark.asyncio
    async def test_list_summaries_by_period(self, db_session, session_factory, run_config, employee):
        employee_id = employee.id
        runner = PayrollBatchRunner(session_factory, run_config)
        await runner.run([employee_id], 6, 2025)
        await runner.run([employee_id], 7, 2025)

        async with session_factory() as session:
            june = await PayrollSummaryService(session).list_summaries(month=6, year=2025)
            everything = await PayrollSummaryService(session).list_summaries(year=2025)

        assert [s.month for s in june] == [6]
        assert len(everything) == 2


class TestScheduledPayroll:
    """The automated run only fires on the processing day."""

    @pytest.mark.asyncio
    async def test_not_processing_day(self, session_factory, run_config, employee):
        summary = await run_scheduled_payroll(
            session_factory, run_config, today=date(2025, 6, 24), processing_day=25,
        )

        assert summary is None

    @pytest.mark.asyncio
    async def test_processing_day_pays_active_employees(
        self, session_factory, run_config, employee, make_employee,
    ):
        from app.models.employee import EmploymentStatus

        await make_employee(employment_status=EmploymentStatus.ON_LEAVE)

        summary = await run_scheduled_payroll(
            session_factory, run_config, today=date(2025, 6, 25), processing_day=25,
        )

        assert (summary.month, summary.year) == (6, 2025)
        assert summary.total_attempted == 1
        assert summary.processed == 1
        assert summary.frequency == PayrollFrequency.MONTHLY


def test_outcome_constants():
    assert (PROCESSED, SKIPPED, FAILED) == ("processed", "skipped", "failed")
