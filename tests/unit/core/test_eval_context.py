"""Tests for the cycle-safe evaluation context."""

from uuid import uuid4

import pytest

from accessgraph.core.authz import PermissionAggregator, ResourceRef
from accessgraph.core.authz.context import (
    EvalContext,
    OwnerOf,
    LiveRelationship,
    LiveRelationshipsTo,
    RelationshipRecord,
    MAX_NESTING,
)
from accessgraph.core.authz.decision import Verdict, ABSTAIN
from accessgraph.core.authz.resolvers import GrantResolver, default_resolvers
from accessgraph.core.exceptions import CrossResourceEvaluation
from accessgraph.core.rbac.permissions import Capability, ResourceType
from accessgraph.core.relationships.states import RelationshipKind
from tests.factories import create_ownership, create_review_grant


C = Capability
K = RelationshipKind


class CountingResolver(GrantResolver):
    """Wraps resolve logic and counts invocations."""

    kind = K.DOCUMENT_REVIEW
    resource_types = frozenset([ResourceType.DOCUMENT, ResourceType.REVIEW])

    def __init__(self, logic):
        self.logic = logic
        self.calls = 0

    def resolve(self, principal_id, resource, capability, ctx):
        self.calls += 1
        return self.logic(principal_id, resource, capability, ctx)


def aggregator_with(store, clock, resolver):
    resolvers = default_resolvers()
    resolvers[resolver.kind] = resolver
    return PermissionAggregator(store, clock=clock, resolvers=resolvers)


class TestPrivilegedLookup:

    def test_lookups_are_memoized(self, aggregator, db_session, clock):
        owner, doc_id = uuid4(), uuid4()
        create_ownership(db_session, owner, "document", doc_id)
        root = ResourceRef(ResourceType.DOCUMENT, doc_id)
        ctx = EvalContext(aggregator, uuid4(), root, clock.now)

        first = ctx.privileged_lookup(OwnerOf("document", doc_id))
        second = ctx.privileged_lookup(OwnerOf("document", doc_id))
        assert first == second
        assert first[0] == owner
        assert ctx.lookup_count == 1

    def test_live_relationship_queries(self, aggregator, db_session, clock):
        reviewer, doc_id = uuid4(), uuid4()
        rel = create_review_grant(db_session, reviewer, doc_id, role="view")
        ctx = EvalContext(aggregator, reviewer, ResourceRef(ResourceType.DOCUMENT, doc_id), clock.now)

        found = ctx.privileged_lookup(LiveRelationship(K.DOCUMENT_REVIEW, reviewer, "document", doc_id))
        assert found.id == rel.id
        listed = ctx.privileged_lookup(LiveRelationshipsTo(K.DOCUMENT_REVIEW, "document", doc_id))
        assert [r.id for r in listed] == [rel.id]

    def test_unsupported_query(self, aggregator, clock):
        ctx = EvalContext(aggregator, uuid4(), ResourceRef(ResourceType.JOB, uuid4()), clock.now)
        with pytest.raises(TypeError):
            ctx.privileged_lookup(("owner", "job"))

    def test_stored_owner_outranks_supplied_owner(self, aggregator, db_session, clock):
        owner, claimed, job_id = uuid4(), uuid4(), uuid4()
        create_ownership(db_session, owner, "job", job_id)
        ref = ResourceRef(ResourceType.JOB, job_id, owner_id=claimed)
        ctx = EvalContext(aggregator, claimed, ref, clock.now)
        assert ctx.owner_of(ref) == owner

    def test_supplied_owner_used_when_none_stored(self, aggregator, clock):
        owner = uuid4()
        ref = ResourceRef(ResourceType.JOB, uuid4(), owner_id=owner)
        ctx = EvalContext(aggregator, uuid4(), ref, clock.now)
        assert ctx.owner_of(ref) == owner
        assert ctx.lookup_count == 1

    def test_review_record_lookup(self, aggregator, db_session, clock):
        owner, reviewer, doc_id = uuid4(), uuid4(), uuid4()
        create_ownership(db_session, owner, "document", doc_id)
        grant = create_review_grant(db_session, reviewer, doc_id)
        review = ResourceRef(ResourceType.REVIEW, grant.id)
        ctx = EvalContext(aggregator, reviewer, review, clock.now)

        assert ctx.privileged_lookup(RelationshipRecord(grant.id)).id == grant.id
        assert ctx.review_record(review).id == grant.id
        assert ctx.owner_of(review) == owner

    def test_review_record_ignores_other_kinds(self, aggregator, db_session, clock):
        ownership = create_ownership(db_session, uuid4(), "document", uuid4())
        review = ResourceRef(ResourceType.REVIEW, ownership.id)
        ctx = EvalContext(aggregator, uuid4(), review, clock.now)
        assert ctx.review_record(review) is None
        assert ctx.owner_of(review) is None


class TestSameResourceEvaluation:

    def test_cross_resource_evaluation_rejected(self, aggregator, clock):
        root = ResourceRef(ResourceType.REVIEW, uuid4())
        ctx = EvalContext(aggregator, uuid4(), root, clock.now)
        with pytest.raises(CrossResourceEvaluation):
            ctx.evaluate(ResourceRef(ResourceType.DOCUMENT, uuid4()), C.VIEW)

    def test_cross_resource_attempt_abstains(self, store, clock):
        """A resolver reaching for another resource is contained, not fatal."""
        def logic(principal_id, resource, capability, ctx):
            ctx.evaluate(ResourceRef(ResourceType.REVIEW, uuid4()), C.VIEW)
            return Verdict.grant("document_review")

        aggregator = aggregator_with(store, clock, CountingResolver(logic))
        decision = aggregator.evaluate(uuid4(), ResourceRef(ResourceType.DOCUMENT, uuid4()), C.VIEW)
        assert not decision.allowed

    def test_mutual_capability_dependency_terminates(self, store, clock):
        """view needs comment and comment needs view: both deny, in bounded calls."""
        def logic(principal_id, resource, capability, ctx):
            other = C.COMMENT if capability == C.VIEW else C.VIEW
            if ctx.evaluate(resource, other):
                return Verdict.grant("document_review")
            return ABSTAIN

        resolver = CountingResolver(logic)
        aggregator = aggregator_with(store, clock, resolver)
        ref = ResourceRef(ResourceType.DOCUMENT, uuid4())

        assert not aggregator.evaluate(uuid4(), ref, C.VIEW).allowed
        assert not aggregator.evaluate(uuid4(), ref, C.COMMENT).allowed
        # Each top-level call: the root check plus one nested check
        assert resolver.calls == 4

    def test_self_dependency_denies(self, store, clock):
        def logic(principal_id, resource, capability, ctx):
            return Verdict.grant("document_review") if ctx.evaluate(resource, capability) else ABSTAIN

        resolver = CountingResolver(logic)
        aggregator = aggregator_with(store, clock, resolver)

        assert not aggregator.evaluate(uuid4(), ResourceRef(ResourceType.DOCUMENT, uuid4()), C.VIEW).allowed
        assert resolver.calls == 1

    def test_nesting_is_bounded(self, store, clock):
        """A chain through every capability stops at the nesting limit."""
        chain = [C.VIEW, C.COMMENT, C.SUGGEST, C.APPROVE, C.EDIT, C.DELETE]

        def logic(principal_id, resource, capability, ctx):
            position = chain.index(capability)
            if position + 1 < len(chain):
                ctx.evaluate(resource, chain[position + 1])
            return ABSTAIN

        resolver = CountingResolver(logic)
        aggregator = aggregator_with(store, clock, resolver)
        aggregator.evaluate(uuid4(), ResourceRef(ResourceType.DOCUMENT, uuid4()), C.VIEW)
        assert resolver.calls <= MAX_NESTING
        assert resolver.calls == len(chain)


class TestReviewDocumentCycle:
    """Document visibility consults reviews; review visibility consults documents."""

    def test_both_directions_decide(self, aggregator, db_session, clock):
        owner, reviewer, doc_id = uuid4(), uuid4(), uuid4()
        create_ownership(db_session, owner, "document", doc_id)
        grant = create_review_grant(db_session, reviewer, doc_id, role="comment")
        document = ResourceRef(ResourceType.DOCUMENT, doc_id)
        review = ResourceRef(ResourceType.REVIEW, grant.id)

        assert aggregator.evaluate(reviewer, document, C.VIEW).allowed
        assert aggregator.evaluate(reviewer, review, C.COMPLETE).allowed
        assert aggregator.evaluate(owner, review, C.VIEW).allowed
        assert aggregator.evaluate(owner, document, C.VIEW).allowed

    def test_review_evaluation_uses_bounded_lookups(self, aggregator, db_session, clock):
        owner, reviewer, doc_id = uuid4(), uuid4(), uuid4()
        create_ownership(db_session, owner, "document", doc_id)
        grant = create_review_grant(db_session, reviewer, doc_id, role="comment")
        review = ResourceRef(ResourceType.REVIEW, grant.id)
        ctx = EvalContext(aggregator, reviewer, review, clock.now)

        assert aggregator._resolve(ctx, review, C.COMPLETE).allowed
        # review owner, review record, document owner; the nested view check reuses them
        assert ctx.lookup_count == 3
