"""Decision audit logging and retention."""

from .recorder import DecisionAuditLog, build_payload, write_entry, escalate_audit_failure
from .retention import AuditRetentionPolicy, purge_expired

__all__ = [
    "DecisionAuditLog",
    "build_payload",
    "write_entry",
    "escalate_audit_failure",
    "AuditRetentionPolicy",
    "purge_expired",
]
