"""
Paymaster HR - Routers Package

FastAPI route handlers.

Routers:
- payroll: Payroll calculation, batch runs, approval workflow
"""

from app.routers import payroll

__all__ = ["payroll"]
