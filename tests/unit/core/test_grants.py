"""Tests for who may create and transition relationships."""

from uuid import uuid4

from accessgraph.core.relationships.states import (
    RelationshipKind,
    RelationshipStatus,
    PRINCIPAL_OBJECT,
)
from tests.factories import (
    create_ownership,
    create_team_membership,
    create_group_membership,
    create_principal_grant,
    create_review_grant,
)


K = RelationshipKind
S = RelationshipStatus


class TestMayCreate:

    def test_ownership_never_created_here(self, grant_policy):
        actor = uuid4()
        assert not grant_policy.may_create(actor, K.OWNERSHIP, actor, "document", uuid4())

    def test_team_invite_requires_invite_capability(self, grant_policy, db_session):
        admin, mentor, team = uuid4(), uuid4(), uuid4()
        create_team_membership(db_session, admin, team, role="admin")
        create_team_membership(db_session, mentor, team, role="mentor")

        assert grant_policy.may_create(admin, K.TEAM_MEMBERSHIP, uuid4(), "team", team)
        assert not grant_policy.may_create(mentor, K.TEAM_MEMBERSHIP, uuid4(), "team", team)

    def test_group_self_join(self, grant_policy):
        actor = uuid4()
        assert grant_policy.may_create(actor, K.GROUP_MEMBERSHIP, actor, "peer_group", uuid4())

    def test_group_invite(self, grant_policy, db_session):
        moderator, member, group = uuid4(), uuid4(), uuid4()
        create_group_membership(db_session, moderator, group, role="moderator")
        create_group_membership(db_session, member, group, role="member")

        assert grant_policy.may_create(moderator, K.GROUP_MEMBERSHIP, uuid4(), "peer_group", group)
        assert not grant_policy.may_create(member, K.GROUP_MEMBERSHIP, uuid4(), "peer_group", group)

    def test_review_request_requires_document_owner(self, grant_policy, db_session):
        owner, reviewer, doc_id = uuid4(), uuid4(), uuid4()
        create_ownership(db_session, owner, "document", doc_id)
        create_review_grant(db_session, reviewer, doc_id, role="approve")

        assert grant_policy.may_create(owner, K.DOCUMENT_REVIEW, uuid4(), "document", doc_id)
        # Even an approving reviewer cannot invite further reviewers
        assert not grant_policy.may_create(reviewer, K.DOCUMENT_REVIEW, uuid4(), "document", doc_id)

    def test_owner_cannot_name_self_as_reviewer(self, grant_policy, db_session):
        owner, doc_id = uuid4(), uuid4()
        create_ownership(db_session, owner, "document", doc_id)
        assert not grant_policy.may_create(owner, K.DOCUMENT_REVIEW, owner, "document", doc_id)

    def test_candidate_grants_own_access(self, grant_policy):
        candidate = uuid4()
        assert grant_policy.may_create(
            candidate, K.FAMILY_SUPPORT, uuid4(), PRINCIPAL_OBJECT, candidate,
        )
        assert not grant_policy.may_create(
            uuid4(), K.FAMILY_SUPPORT, uuid4(), PRINCIPAL_OBJECT, candidate,
        )

    def test_team_assigns_mentor(self, grant_policy, db_session):
        admin, team, candidate = uuid4(), uuid4(), uuid4()
        create_team_membership(db_session, admin, team, role="admin")

        assert grant_policy.may_create(
            admin, K.MENTOR_ASSIGNMENT, uuid4(), PRINCIPAL_OBJECT, candidate, context_id=team,
        )
        assert not grant_policy.may_create(
            admin, K.ADVISOR_GRANT, uuid4(), PRINCIPAL_OBJECT, candidate, context_id=team,
        )


class TestMayTransition:

    def test_only_subject_accepts(self, grant_policy, store):
        inviter, invitee = uuid4(), uuid4()
        rel = store.create_relationship(
            K.TEAM_MEMBERSHIP, invitee, uuid4(), role="candidate", created_by=inviter,
        )
        assert grant_policy.may_transition(invitee, rel, S.ACTIVE)
        assert grant_policy.may_transition(invitee, rel, S.DECLINED)
        assert not grant_policy.may_transition(inviter, rel, S.ACTIVE)

    def test_inviter_cancels(self, grant_policy, store):
        inviter, invitee = uuid4(), uuid4()
        rel = store.create_relationship(
            K.TEAM_MEMBERSHIP, invitee, uuid4(), role="candidate", created_by=inviter,
        )
        assert grant_policy.may_transition(inviter, rel, S.CANCELLED)
        assert not grant_policy.may_transition(uuid4(), rel, S.CANCELLED)

    def test_candidate_ends_delegated_grant(self, grant_policy, db_session):
        supporter, candidate = uuid4(), uuid4()
        rel = create_principal_grant(db_session, K.FAMILY_SUPPORT, supporter, candidate, role="supporter")
        assert grant_policy.may_transition(candidate, rel, S.ENDED)
        assert grant_policy.may_transition(supporter, rel, S.ENDED)

    def test_team_manager_removes_member(self, grant_policy, db_session):
        admin, member, team = uuid4(), uuid4(), uuid4()
        create_team_membership(db_session, admin, team, role="admin")
        rel = create_team_membership(db_session, member, team, role="candidate")

        assert grant_policy.may_transition(admin, rel, S.ENDED)
        assert not grant_policy.may_transition(uuid4(), rel, S.ENDED)

    def test_document_owner_cancels_review(self, grant_policy, db_session):
        owner, reviewer, doc_id = uuid4(), uuid4(), uuid4()
        create_ownership(db_session, owner, "document", doc_id)
        rel = create_review_grant(db_session, reviewer, doc_id)
        assert grant_policy.may_transition(owner, rel, S.CANCELLED)


class TestMayViewAndOverrides:

    def test_parties_may_view(self, grant_policy, db_session):
        advisor, candidate = uuid4(), uuid4()
        rel = create_principal_grant(db_session, K.ADVISOR_GRANT, advisor, candidate, role="advisor")
        assert grant_policy.may_view(advisor, rel)
        assert grant_policy.may_view(candidate, rel)
        assert not grant_policy.may_view(uuid4(), rel)

    def test_team_overrides_need_change_role(self, grant_policy, db_session):
        admin, mentor, team = uuid4(), uuid4(), uuid4()
        create_team_membership(db_session, admin, team, role="admin")
        rel = create_team_membership(db_session, mentor, team, role="mentor")

        assert grant_policy.may_set_overrides(admin, rel)
        assert not grant_policy.may_set_overrides(mentor, rel)

    def test_candidate_controls_delegated_overrides(self, grant_policy, db_session):
        supporter, candidate = uuid4(), uuid4()
        rel = create_principal_grant(db_session, K.FAMILY_SUPPORT, supporter, candidate, role="supporter")
        assert grant_policy.may_set_overrides(candidate, rel)
        assert not grant_policy.may_set_overrides(supporter, rel)
