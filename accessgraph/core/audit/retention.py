"""Audit retention policy.

Entries older than the retention window are purged unless flagged for
compliance, which are kept indefinitely. A window of None keeps
everything.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from accessgraph.core.clock import utcnow
from accessgraph.core.config import Settings
from accessgraph.db.models.audit import AuditEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditRetentionPolicy:
    retention_days: Optional[int] = 365

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuditRetentionPolicy":
        return cls(retention_days=settings.audit_retention_days)

    @property
    def indefinite(self) -> bool:
        return self.retention_days is None

    def cutoff(self, now: Optional[datetime] = None) -> Optional[datetime]:
        if self.indefinite:
            return None
        return (now or utcnow()) - timedelta(days=self.retention_days)


def purge_expired(
    session_factory: Callable[[], Session],
    policy: AuditRetentionPolicy,
    now: Optional[datetime] = None,
) -> int:
    """
    Delete non-compliance entries older than the policy's cutoff.

    Returns:
        Number of entries deleted
    """
    cutoff = policy.cutoff(now)
    if cutoff is None:
        return 0

    db = session_factory()
    try:
        deleted = db.query(AuditEntry).filter(
            and_(
                AuditEntry.compliance.is_(False),
                AuditEntry.created_at < cutoff,
            )
        ).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    if deleted:
        logger.info("Purged %d audit entries older than %s", deleted, cutoff.isoformat())
    return deleted
