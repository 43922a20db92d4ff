"""Celery tasks for AccessGraph.

Provides async task processing for:
- Retrying failed audit writes
- Periodic expiry sweeps of relationships
- Periodic audit retention purges
"""

from typing import Dict, Any
import logging

from celery import Celery, shared_task

from accessgraph.core.audit.recorder import write_entry, escalate_audit_failure
from accessgraph.core.audit.retention import AuditRetentionPolicy, purge_expired
from accessgraph.core.config import get_settings
from accessgraph.core.exceptions import AuditWriteFailed
from accessgraph.core.rbac.roles import load_role_defaults
from accessgraph.core.relationships.store import RelationshipStore
from accessgraph.db.session import SessionLocal

logger = logging.getLogger(__name__)
settings = get_settings()

# Initialize Celery
celery_app = Celery(
    'accessgraph',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_routes={
        'accessgraph.workers.tasks.retry_audit_write': {'queue': 'audit'},
        'accessgraph.workers.tasks.purge_audit_entries': {'queue': 'audit'},
    },
    task_default_queue='default',
    beat_schedule={
        'sweep-expired-relationships': {
            'task': 'accessgraph.workers.tasks.sweep_expired_relationships',
            'schedule': float(settings.expiry_sweep_interval),
        },
        'purge-audit-entries': {
            'task': 'accessgraph.workers.tasks.purge_audit_entries',
            'schedule': float(settings.audit_purge_interval),
        },
    },
)


@shared_task(
    bind=True,
    max_retries=settings.audit_max_retries,
    default_retry_delay=settings.audit_retry_delay,
)
def retry_audit_write(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Retry persisting an audit entry whose synchronous write failed.

    Args:
        payload: Audit payload as built by ``build_payload``

    Returns:
        Status dictionary
    """
    try:
        write_entry(SessionLocal, payload)
    except Exception as e:
        if self.request.retries >= self.max_retries:
            # One synchronous attempt plus every task attempt
            attempts = self.request.retries + 2
            escalate_audit_failure(payload, AuditWriteFailed(str(e), attempts=attempts))
            return {"status": "escalated", "attempts": attempts}
        logger.warning(
            "Audit retry %d/%d failed: %s", self.request.retries + 1, self.max_retries, e
        )
        raise self.retry(exc=e)

    logger.info("Audit entry written on retry %d", self.request.retries)
    return {"status": "written", "retries": self.request.retries}


@shared_task
def sweep_expired_relationships() -> Dict[str, Any]:
    """
    Periodic task moving relationships past ``expires_at`` to expired.

    Evaluation already ignores such rows; the sweep makes status match.
    """
    store = RelationshipStore(
        SessionLocal,
        load_role_defaults(settings.role_defaults_path),
        page_size=settings.store_page_size,
    )
    expired = store.expire_due()
    logger.info(f"Expiry sweep moved {expired} relationship(s) to expired")
    return {"expired": expired}


@shared_task
def purge_audit_entries() -> Dict[str, Any]:
    """Periodic task applying the audit retention policy."""
    policy = AuditRetentionPolicy.from_settings(settings)
    deleted = purge_expired(SessionLocal, policy)
    return {"deleted": deleted, "retention_days": policy.retention_days}
