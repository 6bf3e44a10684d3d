"""HTTP API for the payroll ledger."""
