"""
Paymaster HR - Employee Directory Service

Read access to employees and departments for the payroll engine, plus the
minimal create calls used by seeding scripts.
"""

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.employee import Department, Employee, EmploymentStatus
from app.utils.error_handling import (
    DuplicateEntryException,
    EmployeeNotFoundError,
    NotFoundException,
)


class EmployeeService:
    """Employee and department lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_employee(self, employee_id: uuid.UUID) -> Employee:
        """Get employee with department loaded, or raise EmployeeNotFoundError."""
        result = await self.db.execute(
            select(Employee)
            .options(selectinload(Employee.department))
            .where(Employee.id == employee_id)
        )
        employee = result.scalar_one_or_none()
        if employee is None:
            raise EmployeeNotFoundError(employee_id)
        return employee

    async def get_department(self, department_id: uuid.UUID) -> Department:
        department = await self.db.get(Department, department_id)
        if department is None:
            raise NotFoundException("Department", department_id)
        return department

    async def list_active_employee_ids(
        self,
        department_id: Optional[uuid.UUID] = None,
    ) -> List[uuid.UUID]:
        """IDs of active employees, optionally within one department."""
        query = select(Employee.id).where(
            and_(
                Employee.is_active == True,
                Employee.employment_status == EmploymentStatus.ACTIVE,
            )
        )
        if department_id:
            query = query.where(Employee.department_id == department_id)
        result = await self.db.execute(query.order_by(Employee.employee_code))
        return list(result.scalars().all())

    async def create_department(
        self,
        name: str,
        code: str,
        created_by_id: Optional[uuid.UUID] = None,
    ) -> Department:
        existing = await self.db.execute(select(Department).where(Department.code == code))
        if existing.scalar_one_or_none():
            raise DuplicateEntryException("Department", "code", code)

        department = Department(name=name, code=code, created_by_id=created_by_id)
        self.db.add(department)
        await self.db.commit()
        await self.db.refresh(department)
        return department

    async def create_employee(
        self,
        data: Dict[str, Any],
        created_by_id: Optional[uuid.UUID] = None,
    ) -> Employee:
        """Create an employee record (seeding and tests)."""
        existing = await self.db.execute(
            select(Employee).where(Employee.employee_code == data["employee_code"])
        )
        if existing.scalar_one_or_none():
            raise DuplicateEntryException("Employee", "employee_code", data["employee_code"])

        employee = Employee(created_by_id=created_by_id, **data)
        self.db.add(employee)
        await self.db.commit()
        await self.db.refresh(employee)
        return employee
