"""Tests for Celery tasks."""

from unittest.mock import MagicMock, patch

import pytest
from celery.exceptions import Retry

from accessgraph.core.audit import build_payload
from accessgraph.workers import tasks
from accessgraph.workers.tasks import (
    celery_app,
    retry_audit_write,
    sweep_expired_relationships,
    purge_audit_entries,
)
from tests.factories import make_decision


@pytest.fixture
def payload():
    return build_payload(make_decision(), {"route": "/documents"})


class TestCeleryApp:

    def test_beat_schedule(self):
        schedule = celery_app.conf.beat_schedule
        assert schedule["sweep-expired-relationships"]["task"] == (
            "accessgraph.workers.tasks.sweep_expired_relationships"
        )
        assert schedule["purge-audit-entries"]["task"] == (
            "accessgraph.workers.tasks.purge_audit_entries"
        )

    def test_json_serialization(self):
        assert celery_app.conf.task_serializer == "json"


class TestRetryAuditWrite:

    def test_successful_retry(self, payload):
        with patch.object(tasks, "write_entry") as write:
            result = retry_audit_write.run(payload)
        write.assert_called_once_with(tasks.SessionLocal, payload)
        assert result["status"] == "written"

    def test_failure_schedules_another_retry(self, payload):
        with patch.object(tasks, "write_entry", side_effect=ConnectionError("db down")), \
                patch.object(retry_audit_write, "retry", side_effect=Retry()) as retry:
            with pytest.raises(Retry):
                retry_audit_write.run(payload)
        assert isinstance(retry.call_args.kwargs["exc"], ConnectionError)

    def test_exhausted_retries_escalate(self, payload):
        retry_audit_write.push_request(retries=retry_audit_write.max_retries)
        try:
            with patch.object(tasks, "write_entry", side_effect=ConnectionError("db down")), \
                    patch.object(tasks, "escalate_audit_failure") as escalate:
                result = retry_audit_write.run(payload)
        finally:
            retry_audit_write.pop_request()

        assert result["status"] == "escalated"
        escalate.assert_called_once()
        sent_payload, error = escalate.call_args[0]
        assert sent_payload == payload
        assert error.attempts == retry_audit_write.max_retries + 2


class TestPeriodicTasks:

    def test_sweep_expired_relationships(self):
        store = MagicMock()
        store.expire_due.return_value = 3
        with patch.object(tasks, "RelationshipStore", return_value=store):
            result = sweep_expired_relationships.run()
        assert result == {"expired": 3}

    def test_purge_audit_entries(self):
        with patch.object(tasks, "purge_expired", return_value=12) as purge:
            result = purge_audit_entries.run()
        assert result["deleted"] == 12
        policy = purge.call_args[0][1]
        assert policy.retention_days == tasks.settings.audit_retention_days
