"""Payroll ledger: active payroll imports, pay-period closure and payrun history."""

__version__ = "0.1.0"
