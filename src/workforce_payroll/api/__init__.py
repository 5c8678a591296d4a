"""HTTP API for the workforce payroll core."""
