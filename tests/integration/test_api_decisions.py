"""API tests for the decision endpoints and the route-level capability guard."""

from unittest.mock import MagicMock
from uuid import UUID, uuid4

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from accessgraph.api import deps
from accessgraph.api.deps import RequireCapability
from accessgraph.api.main import app
from accessgraph.core.authz import Decision
from accessgraph.core.exceptions import InvalidCapability, StoreUnavailable
from accessgraph.core.rbac.permissions import Capability, ResourceType
from accessgraph.db.models import AuditEntry
from tests.factories import create_ownership, create_review_grant


def as_principal(principal_id):
    return {"X-Principal-ID": str(principal_id)}


def document_request(doc_id, capability, **extra):
    return {
        "resource": {"resource_type": "document", "resource_id": str(doc_id)},
        "capability": capability,
        **extra,
    }


@pytest.fixture
def reviewed_document(db_session):
    owner, reviewer, doc_id = uuid4(), uuid4(), uuid4()
    create_ownership(db_session, owner, "document", doc_id)
    create_review_grant(db_session, reviewer, doc_id, role="comment")
    return owner, reviewer, doc_id


class TestEvaluate:

    def test_owner_allowed(self, client, reviewed_document):
        owner, _, doc_id = reviewed_document
        response = client.post(
            "/api/decisions", json=document_request(doc_id, "delete"), headers=as_principal(owner)
        )
        assert response.status_code == 200
        data = response.json()
        assert data["allowed"] is True
        assert data["grant_source"] == "ownership"

    def test_deny_is_not_an_error(self, client, reviewed_document):
        _, reviewer, doc_id = reviewed_document
        response = client.post(
            "/api/decisions", json=document_request(doc_id, "approve"), headers=as_principal(reviewer)
        )
        assert response.status_code == 200
        assert response.json()["allowed"] is False
        assert response.json()["grant_source"] is None

    def test_request_cannot_claim_ownership(self, client, reviewed_document):
        _, _, doc_id = reviewed_document
        attacker = uuid4()
        request = document_request(doc_id, "delete")
        request["resource"]["owner_id"] = str(attacker)

        response = client.post("/api/decisions", json=request, headers=as_principal(attacker))
        assert response.status_code == 200
        assert response.json()["allowed"] is False

        job = {"resource_type": "job", "resource_id": str(uuid4()), "owner_id": str(attacker)}
        response = client.post(
            "/api/decisions",
            json={"resource": job, "capability": "delete"},
            headers=as_principal(attacker),
        )
        assert response.json()["allowed"] is False

    def test_reviewer_cannot_complete_another_review(self, client, reviewed_document, db_session):
        _, reviewer, doc_id = reviewed_document
        other = create_review_grant(db_session, uuid4(), doc_id, role="comment")
        review = {"resource_type": "review", "resource_id": str(other.id)}

        response = client.post(
            "/api/decisions",
            json={"resource": review, "capability": "complete"},
            headers=as_principal(reviewer),
        )
        assert response.status_code == 200
        assert response.json()["allowed"] is False

        response = client.post(
            "/api/decisions",
            json={"resource": review, "capability": "complete"},
            headers=as_principal(other.subject_id),
        )
        assert response.json()["allowed"] is True

    def test_capability_outside_family(self, client, reviewed_document):
        owner, _, doc_id = reviewed_document
        response = client.post(
            "/api/decisions",
            json=document_request(doc_id, "manage_settings"),
            headers=as_principal(owner),
        )
        assert response.status_code == 422
        assert response.json()["error"] == "InvalidCapability"

    def test_audited_decision_persisted(self, client, reviewed_document, db_session):
        _, reviewer, doc_id = reviewed_document
        response = client.post(
            "/api/decisions",
            json=document_request(doc_id, "comment", audit=True, context={"request_id": "req-7"}),
            headers=as_principal(reviewer),
        )
        assert response.status_code == 200

        entry = db_session.query(AuditEntry).one()
        assert entry.actor_id == reviewer
        assert entry.allowed is True
        assert entry.request_id == "req-7"

    def test_store_unavailable(self, client):
        failing = MagicMock()
        failing.evaluate.side_effect = StoreUnavailable("connection refused")
        app.dependency_overrides[deps.get_aggregator] = lambda: failing

        response = client.post(
            "/api/decisions", json=document_request(uuid4(), "view"), headers=as_principal(uuid4())
        )
        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"


class TestExplainAndCapabilities:

    def test_explain_lists_resolvers(self, client, reviewed_document):
        _, reviewer, doc_id = reviewed_document
        response = client.post(
            "/api/decisions/explain",
            json=document_request(doc_id, "view"),
            headers=as_principal(reviewer),
        )
        assert response.status_code == 200
        trace = {item["resolver"]: item for item in response.json()["trace"]}
        assert trace["ownership"]["verdict"] == "abstain"
        assert trace["document_review"]["verdict"] == "grant"

    def test_capabilities_for_reviewer(self, client, reviewed_document):
        _, reviewer, doc_id = reviewed_document
        response = client.post(
            "/api/decisions/capabilities",
            json={"resource": {"resource_type": "document", "resource_id": str(doc_id)}},
            headers=as_principal(reviewer),
        )
        assert response.status_code == 200
        assert response.json()["capabilities"] == ["comment", "view"]

    def test_capabilities_subset(self, client, reviewed_document):
        owner, _, doc_id = reviewed_document
        response = client.post(
            "/api/decisions/capabilities",
            json={
                "resource": {"resource_type": "document", "resource_id": str(doc_id)},
                "capabilities": ["edit", "approve"],
            },
            headers=as_principal(owner),
        )
        assert response.json()["capabilities"] == ["approve", "edit"]


class TestRequireCapability:

    @pytest.fixture
    def guarded_client(self, aggregator):
        guarded = FastAPI()
        require_view = RequireCapability(ResourceType.DOCUMENT, Capability.VIEW)
        require_edit = RequireCapability(
            ResourceType.DOCUMENT, Capability.EDIT, path_param="doc_id", deny_status=403,
        )

        @guarded.get("/documents/{resource_id}")
        async def read_document(resource_id: UUID, decision: Decision = Depends(require_view)):
            return {"id": str(resource_id), "via": decision.grant_source}

        @guarded.put("/documents/{doc_id}")
        async def edit_document(doc_id: UUID, decision: Decision = Depends(require_edit)):
            return {"id": str(doc_id)}

        guarded.dependency_overrides[deps.get_aggregator] = lambda: aggregator
        return TestClient(guarded)

    def test_allowed(self, guarded_client, reviewed_document):
        _, reviewer, doc_id = reviewed_document
        response = guarded_client.get(f"/documents/{doc_id}", headers=as_principal(reviewer))
        assert response.status_code == 200
        assert response.json()["via"] == "document_review"

    def test_deny_hides_resource(self, guarded_client, reviewed_document):
        _, _, doc_id = reviewed_document
        response = guarded_client.get(f"/documents/{doc_id}", headers=as_principal(uuid4()))
        assert response.status_code == 404

    def test_deny_as_forbidden(self, guarded_client, reviewed_document):
        _, reviewer, doc_id = reviewed_document
        response = guarded_client.put(f"/documents/{doc_id}", headers=as_principal(reviewer))
        assert response.status_code == 403

    def test_requires_principal(self, guarded_client, reviewed_document):
        _, _, doc_id = reviewed_document
        response = guarded_client.get(f"/documents/{doc_id}")
        assert response.status_code == 401

    def test_rejects_invalid_pair_at_definition(self):
        with pytest.raises(InvalidCapability):
            RequireCapability(ResourceType.DOCUMENT, Capability.MODERATE)
