"""Celery workers for AccessGraph."""

from accessgraph.workers.tasks import (
    celery_app,
    retry_audit_write,
    sweep_expired_relationships,
    purge_audit_entries,
)

__all__ = [
    "celery_app",
    "retry_audit_write",
    "sweep_expired_relationships",
    "purge_audit_entries",
]
