"""Decision audit log.

``record`` is fire-and-forget: it tries one synchronous write, hands a
failed write to the retry worker, and escalates if even that hand-off
fails. It never raises into the caller and never changes a decision.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from accessgraph.core.exceptions import AuditWriteFailed
from accessgraph.core.logger import ESCALATION_LOGGER
from accessgraph.core.authz.decision import Decision
from accessgraph.db.models.audit import AuditEntry

logger = logging.getLogger(__name__)
escalation_logger = logging.getLogger(ESCALATION_LOGGER)

# Call-site keys lifted out of the free-form context into their own columns
REQUEST_ID_KEY = "request_id"
COMPLIANCE_KEY = "compliance"

# Context fields that must never be persisted
SENSITIVE_FIELDS = {
    "password",
    "token",
    "access_token",
    "refresh_token",
    "api_key",
    "secret",
    "authorization",
}


def redact_sensitive(data: Any) -> Any:
    """Redact sensitive fields from call-site metadata."""
    if isinstance(data, dict):
        return {
            k: "[REDACTED]" if str(k).lower() in SENSITIVE_FIELDS else redact_sensitive(v)
            for k, v in data.items()
        }
    elif isinstance(data, list):
        return [redact_sensitive(item) for item in data]
    return data


def build_payload(decision: Decision, call_site: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """JSON-safe audit payload for a decision (also the retry task's argument)."""
    context = dict(call_site or {})
    request_id = context.pop(REQUEST_ID_KEY, None)
    compliance = bool(context.pop(COMPLIANCE_KEY, False))
    payload = decision.to_dict()
    payload.update({
        "context": redact_sensitive(context) or None,
        "request_id": str(request_id) if request_id is not None else None,
        "compliance": compliance,
    })
    return payload


def write_entry(session_factory: Callable[[], Session], payload: Dict[str, Any]) -> None:
    """Persist one audit payload. Raises on any failure."""
    relationship_id = payload.get("granting_relationship_id")
    entry = AuditEntry.create_entry(
        actor_id=UUID(payload["principal_id"]),
        resource_type=payload["resource_type"],
        resource_id=UUID(payload["resource_id"]),
        capability=payload["capability"],
        allowed=payload["allowed"],
        evaluated_at=datetime.fromisoformat(payload["evaluated_at"]),
        grant_source=payload.get("grant_source"),
        granting_relationship_id=UUID(relationship_id) if relationship_id else None,
        context=payload.get("context"),
        request_id=payload.get("request_id"),
        compliance=payload.get("compliance", False),
    )
    db = session_factory()
    try:
        db.add(entry)
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def escalate_audit_failure(payload: Dict[str, Any], error: AuditWriteFailed) -> None:
    """Surface a lost audit entry as an observability event."""
    escalation_logger.critical(
        "Audit entry lost after %d attempt(s): %s (%s %s on %s:%s)",
        error.attempts,
        error,
        "allow" if payload.get("allowed") else "deny",
        payload.get("capability"),
        payload.get("resource_type"),
        payload.get("resource_id"),
        extra={"audit_payload": payload},
    )


def _enqueue_retry(payload: Dict[str, Any]) -> None:
    # Imported here to avoid a hard dependency on the worker at import time
    from accessgraph.workers.tasks import retry_audit_write
    from accessgraph.core.config import get_settings

    retry_audit_write.apply_async(
        kwargs={"payload": payload},
        countdown=get_settings().audit_retry_delay,
    )


class DecisionAuditLog:
    """
    Append-only record of access decisions.

    Usage:
        audit_log = DecisionAuditLog(SessionLocal)
        aggregator = PermissionAggregator(store, audit_log=audit_log)
        aggregator.evaluate(user_id, ref, Capability.VIEW, audit=True,
                            call_site={"request_id": "abc123", "route": "/documents"})
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        enabled: bool = True,
        retry_dispatcher: Optional[Callable[[Dict[str, Any]], None]] = None,
        escalate: Callable[[Dict[str, Any], AuditWriteFailed], None] = escalate_audit_failure,
    ):
        self.session_factory = session_factory
        self.enabled = enabled
        self.retry_dispatcher = retry_dispatcher or _enqueue_retry
        self.escalate = escalate

    def record(self, decision: Decision, call_site: Optional[Dict[str, Any]] = None) -> None:
        """Record a decision. Never raises."""
        if not self.enabled:
            return
        try:
            payload = build_payload(decision, call_site)
        except Exception:
            logger.exception("Could not build audit payload for %s", decision.resource)
            return

        try:
            write_entry(self.session_factory, payload)
            return
        except Exception as e:
            logger.warning("Audit write failed, scheduling retry: %s", e)
            write_error = e

        try:
            self.retry_dispatcher(payload)
        except Exception as dispatch_error:
            logger.error("Could not schedule audit retry: %s", dispatch_error)
            try:
                self.escalate(payload, AuditWriteFailed(
                    f"write failed ({write_error}); retry dispatch failed ({dispatch_error})"
                ))
            except Exception:
                logger.exception("Audit escalation failed")
