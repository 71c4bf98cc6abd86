# hubrota/audit - Offline integrity checks for stored rotas
from .auditor import (
    AuditIssue,
    AuditReport,
    AuditSnapshot,
    IssueType,
    RotaAudit,
    apply_repairs,
    audit_integrity,
)

__all__ = [
    "audit_integrity", "apply_repairs",
    "AuditSnapshot", "AuditReport", "RotaAudit", "AuditIssue", "IssueType",
]
