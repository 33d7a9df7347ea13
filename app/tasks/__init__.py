"""
Paymaster HR - Background Tasks Package

Celery background tasks.
"""

from app.tasks.payroll_tasks import (
    run_scheduled_payroll_task,
    run_payroll_batch_task,
)

__all__ = [
    "run_scheduled_payroll_task",
    "run_payroll_batch_task",
]
