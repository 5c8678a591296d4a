"""Spreadsheet reconciliation: matching, change-sets and the apply workflow."""

from workforce_payroll.reconciliation.change_set import (
    ChangeSetBuilder,
    FieldChange,
    ImportKind,
    ImportPolicy,
    ImportRow,
    PendingChangeSet,
    RowAction,
)
from workforce_payroll.reconciliation.matcher import ExternalIdentity, IdentityMatcher, MatchResult
from workforce_payroll.reconciliation.orchestrator import ApplyResult, ReconciliationService
from workforce_payroll.reconciliation.tabular import CsvReader, TabularReader, XlsxReader

__all__ = [
    "ApplyResult",
    "ChangeSetBuilder",
    "CsvReader",
    "ExternalIdentity",
    "FieldChange",
    "IdentityMatcher",
    "ImportKind",
    "ImportPolicy",
    "ImportRow",
    "MatchResult",
    "PendingChangeSet",
    "ReconciliationService",
    "RowAction",
    "TabularReader",
    "XlsxReader",
]
