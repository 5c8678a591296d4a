"""Weekly pay period lifecycle, payroll consolidation and bulk-import reconciliation."""

__version__ = "0.1.0"
