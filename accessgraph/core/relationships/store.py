"""Relationship store.

Durable facts about who is related to whom. Provides creation with
duplicate detection, compare-and-swap status transitions, the expiry
sweep, and the narrow fact reads used by privileged lookups.

Every public method opens its own short session from the factory, so a
single store instance can serve concurrent evaluations.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Optional, Dict, Any, List, Iterator, Mapping, Callable, Tuple
from uuid import UUID
import uuid

from sqlalchemy import and_, or_, update
from sqlalchemy.exc import IntegrityError, OperationalError, DisconnectionError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from accessgraph.core.clock import Clock, utcnow, to_naive_utc
from accessgraph.core.exceptions import (
    DuplicateRelationship,
    InvalidTransition,
    TransitionConflict,
    RelationshipNotFound,
    StoreUnavailable,
)
from accessgraph.core.rbac.checker import parse_overrides
from accessgraph.core.rbac.roles import Role, RoleDefaults, CONTEXT_RESOURCE
from accessgraph.db.models.relationship import Relationship, RelationshipHistory
from .states import (
    RelationshipKind,
    RelationshipStatus,
    RelationshipAction,
    KIND_CONTEXT,
    KIND_OBJECT_TYPES,
    LIVE_STATES,
    EXPIRABLE_STATES,
    TERMINAL_STATES,
    can_transition,
    get_transition_rule,
)

logger = logging.getLogger(__name__)


def _live_filter(now: datetime):
    """SQL form of Relationship.is_live()."""
    return and_(
        Relationship.status == RelationshipStatus.ACTIVE.value,
        or_(Relationship.valid_from.is_(None), Relationship.valid_from <= now),
        or_(Relationship.expires_at.is_(None), Relationship.expires_at > now),
    )


class ActiveRelationships:
    """
    Lazy, finite, restartable sequence of a principal's live relationships.

    Rows are fetched in keyset-paginated pages; each iteration starts a
    fresh scan with its own notion of "now".
    """

    def __init__(
        self,
        store: "RelationshipStore",
        principal_id: UUID,
        kind: Optional[RelationshipKind] = None,
        page_size: int = 500,
    ):
        self.store = store
        self.principal_id = principal_id
        self.kind = kind
        self.page_size = page_size

    def __iter__(self) -> Iterator[Relationship]:
        now = self.store.clock()
        last_id: Optional[UUID] = None
        while True:
            page = self.store._fetch_active_page(
                self.principal_id, self.kind, now, last_id, self.page_size
            )
            yield from page
            if len(page) < self.page_size:
                return
            last_id = page[-1].id


class RelationshipStore:
    """
    Persistence and lifecycle for relationships.

    Handles:
    - Creating relationships with duplicate detection
    - Compare-and-swap status transitions with history
    - Expiry sweeps
    - Fact reads for privileged lookups
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        role_defaults: Optional[RoleDefaults] = None,
        *,
        page_size: int = 500,
        clock: Clock = utcnow,
    ):
        """
        Initialize the store.

        Args:
            session_factory: Callable returning a new Session
                (sessions must not expire objects on commit)
            role_defaults: Table used to validate roles on creation
            page_size: Page size for lazy relationship listings
            clock: Source of the current naive-UTC time
        """
        self.session_factory = session_factory
        self.role_defaults = role_defaults or RoleDefaults.builtin()
        self.page_size = page_size
        self.clock = clock

    @contextmanager
    def _session(self, *, write: bool = False) -> Iterator[Session]:
        """Open a session, translating I/O failures to StoreUnavailable."""
        session = self.session_factory()
        try:
            yield session
            if write:
                session.commit()
        except (OperationalError, DisconnectionError, PoolTimeoutError) as e:
            session.rollback()
            logger.warning("Relationship store unavailable: %s", e)
            raise StoreUnavailable("Relationship store unavailable", original=e) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_relationship(
        self,
        kind: RelationshipKind,
        subject_id: UUID,
        object_id: UUID,
        *,
        object_type: Optional[str] = None,
        role: Optional[Role] = None,
        overrides: Optional[Mapping[str, bool]] = None,
        requires_acceptance: bool = True,
        expires_at: Optional[datetime] = None,
        valid_from: Optional[datetime] = None,
        context_id: Optional[UUID] = None,
        created_by: Optional[UUID] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Relationship:
        """
        Create a relationship.

        Invitations (``requires_acceptance=True``) start PENDING; grants made
        directly by an authorized grantor start ACTIVE. Ownership is always
        ACTIVE.

        Raises:
            DuplicateRelationship: If a pending/active/paused relationship of
                the same kind already links the subject and object
            UnknownRole: If the role is not configured for the kind's context
            InvalidCapability: If an override key is outside the context's family
            ValueError: If the object type does not fit the kind, or a
                document owner names themselves as its reviewer
        """
        kind = RelationshipKind(kind)
        object_type = self.resolve_object_type(kind, object_type)
        role_value, override_values = self._validate_grant(kind, role, overrides)
        now = self.clock()

        if kind == RelationshipKind.DOCUMENT_REVIEW:
            owner = self.owner_of(object_type, object_id, now=now)
            if owner is not None and owner[0] == subject_id:
                raise ValueError("A document owner cannot review their own document")

        if kind == RelationshipKind.OWNERSHIP or not requires_acceptance:
            status = RelationshipStatus.ACTIVE
        else:
            status = RelationshipStatus.PENDING

        relationship = Relationship(
            id=uuid.uuid4(),
            kind=kind.value,
            subject_id=subject_id,
            object_type=object_type,
            object_id=object_id,
            context_id=context_id,
            role=role_value,
            capability_overrides=override_values,
            status=status.value,
            valid_from=to_naive_utc(valid_from) if valid_from else None,
            expires_at=to_naive_utc(expires_at) if expires_at else None,
            created_by=created_by,
            extra_data=metadata or {},
        )

        with self._session(write=True) as db:
            # Rows past expires_at no longer hold the slot, swept or not
            self._expire_rows(db, self._stale_slot_rows(
                db, kind, subject_id, object_type, object_id, now
            ), now)
            if self._find_live_slot(db, kind, subject_id, object_type, object_id):
                raise DuplicateRelationship(kind.value, subject_id, object_id)
            db.add(relationship)
            db.add(RelationshipHistory(
                id=uuid.uuid4(),
                relationship_id=relationship.id,
                from_status=None,
                to_status=status.value,
                action=RelationshipAction.CREATE.value,
                actor_id=created_by,
            ))
            try:
                db.flush()
            except IntegrityError:
                # Lost a race with a concurrent creator
                raise DuplicateRelationship(kind.value, subject_id, object_id) from None

        logger.info(
            "Created %s relationship %s (%s -> %s:%s) as %s",
            kind.value, relationship.id, subject_id, object_type, object_id, status.value,
        )
        return relationship

    def transition(
        self,
        relationship_id: UUID,
        new_status: RelationshipStatus,
        *,
        expected_status: Optional[RelationshipStatus] = None,
        actor_id: Optional[UUID] = None,
        reason: Optional[str] = None,
    ) -> Relationship:
        """
        Move a relationship to a new status.

        The write is a compare-and-swap on the current status, so an accept
        racing a revoke resolves to exactly one outcome.

        Args:
            relationship_id: Relationship to update
            new_status: Target status
            expected_status: Status the caller believes is current
            actor_id: Principal performing the transition
            reason: Optional reason (recorded in history)

        Returns:
            The updated relationship

        Raises:
            RelationshipNotFound: If the relationship does not exist
            InvalidTransition: If the target is unreachable from the current status
            TransitionConflict: If the status changed underneath the caller
        """
        new_status = RelationshipStatus(new_status)
        now = self.clock()

        with self._session(write=True) as db:
            relationship = db.get(Relationship, relationship_id)
            if relationship is None:
                raise RelationshipNotFound(relationship_id)

            current = RelationshipStatus(relationship.status)
            if expected_status is not None and current != RelationshipStatus(expected_status):
                raise TransitionConflict(
                    relationship_id, RelationshipStatus(expected_status).value,
                    current.value, new_status.value,
                )

            if not can_transition(current, new_status):
                if current in TERMINAL_STATES:
                    message = f"Relationship is {current.value}; terminal states never transition"
                else:
                    message = f"Cannot move relationship from {current.value} to {new_status.value}"
                raise InvalidTransition(message, current.value, new_status.value)

            if (
                new_status == RelationshipStatus.ACTIVE
                and relationship.expires_at is not None
                and relationship.expires_at <= now
            ):
                raise InvalidTransition(
                    "Relationship has expired and cannot be activated",
                    current.value, new_status.value,
                )

            result = db.execute(
                update(Relationship)
                .where(and_(
                    Relationship.id == relationship_id,
                    Relationship.status == current.value,
                ))
                .values(status=new_status.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                observed = db.get(Relationship, relationship_id, populate_existing=True)
                raise TransitionConflict(
                    relationship_id, current.value,
                    observed.status if observed else "missing", new_status.value,
                )

            rule = get_transition_rule(current, new_status)
            db.add(RelationshipHistory(
                id=uuid.uuid4(),
                relationship_id=relationship_id,
                from_status=current.value,
                to_status=new_status.value,
                action=rule.action.value,
                actor_id=actor_id,
                reason=reason,
            ))
            db.flush()
            db.refresh(relationship)

        logger.info(
            "Relationship %s: %s -> %s", relationship_id, current.value, new_status.value
        )
        return relationship

    def set_overrides(
        self,
        relationship_id: UUID,
        overrides: Optional[Mapping[str, bool]],
        *,
        actor_id: Optional[UUID] = None,
    ) -> Relationship:
        """
        Replace a relationship's capability overrides.

        Raises:
            RelationshipNotFound: If the relationship does not exist
            InvalidTransition: If the relationship is terminal
            InvalidCapability: If an override key is invalid
        """
        with self._session(write=True) as db:
            relationship = db.get(Relationship, relationship_id)
            if relationship is None:
                raise RelationshipNotFound(relationship_id)
            if RelationshipStatus(relationship.status) in TERMINAL_STATES:
                raise InvalidTransition(
                    "Terminal relationships cannot be modified",
                    relationship.status, relationship.status,
                )
            kind = RelationshipKind(relationship.kind)
            _, relationship.capability_overrides = self._validate_grant(
                kind, relationship.role, overrides
            )
            relationship.updated_at = self.clock()
            db.flush()

        logger.info("Updated overrides on relationship %s by %s", relationship_id, actor_id)
        return relationship

    def expire_due(self, now: Optional[datetime] = None) -> int:
        """
        Expire relationships whose ``expires_at`` has passed.

        Each row moves with its own CAS, so a row changed concurrently is
        skipped rather than overwritten.

        Returns:
            Number of relationships expired
        """
        now = now or self.clock()
        with self._session(write=True) as db:
            due = db.query(Relationship.id, Relationship.status).filter(
                and_(
                    Relationship.status.in_([s.value for s in EXPIRABLE_STATES]),
                    Relationship.expires_at.isnot(None),
                    Relationship.expires_at <= now,
                )
            ).all()
            count = self._expire_rows(db, due, now)
            db.flush()

        if count:
            logger.info("Expired %d relationships", count)
        return count

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find(self, relationship_id: UUID) -> Optional[Relationship]:
        """A relationship by id, or None."""
        with self._session() as db:
            return db.get(Relationship, relationship_id)

    def get(self, relationship_id: UUID) -> Relationship:
        """Get a relationship by id."""
        relationship = self.find(relationship_id)
        if relationship is None:
            raise RelationshipNotFound(relationship_id)
        return relationship

    def history(self, relationship_id: UUID) -> List[Dict[str, Any]]:
        """Transition history, oldest first."""
        with self._session() as db:
            rows = db.query(RelationshipHistory).filter(
                RelationshipHistory.relationship_id == relationship_id
            ).order_by(RelationshipHistory.created_at.asc()).all()
            return [self._history_to_dict(row) for row in rows]

    def list_active_relationships(
        self, principal_id: UUID, kind: Optional[RelationshipKind] = None
    ) -> ActiveRelationships:
        """Live relationships where the principal is the subject (lazy)."""
        return ActiveRelationships(
            self, principal_id, RelationshipKind(kind) if kind else None, self.page_size
        )

    def find_live(
        self,
        kind: RelationshipKind,
        subject_id: UUID,
        object_type: str,
        object_id: UUID,
        *,
        now: Optional[datetime] = None,
    ) -> Optional[Relationship]:
        """The live relationship linking subject to object, if any."""
        now = now or self.clock()
        with self._session() as db:
            return db.query(Relationship).filter(
                and_(
                    Relationship.kind == RelationshipKind(kind).value,
                    Relationship.subject_id == subject_id,
                    Relationship.object_type == object_type,
                    Relationship.object_id == object_id,
                    _live_filter(now),
                )
            ).first()

    def find_live_for_object(
        self,
        kind: RelationshipKind,
        object_type: str,
        object_id: UUID,
        *,
        now: Optional[datetime] = None,
    ) -> List[Relationship]:
        """All live relationships of a kind pointing at an object."""
        now = now or self.clock()
        with self._session() as db:
            return db.query(Relationship).filter(
                and_(
                    Relationship.kind == RelationshipKind(kind).value,
                    Relationship.object_type == object_type,
                    Relationship.object_id == object_id,
                    _live_filter(now),
                )
            ).order_by(Relationship.created_at.asc()).all()

    def owner_of(
        self, resource_type: str, resource_id: UUID, *, now: Optional[datetime] = None
    ) -> Optional[Tuple[UUID, UUID]]:
        """(owner principal id, ownership relationship id) for a resource."""
        rows = self.find_live_for_object(
            RelationshipKind.OWNERSHIP, resource_type, resource_id, now=now
        )
        if not rows:
            return None
        return rows[0].subject_id, rows[0].id

    def _fetch_active_page(
        self,
        principal_id: UUID,
        kind: Optional[RelationshipKind],
        now: datetime,
        after_id: Optional[UUID],
        limit: int,
    ) -> List[Relationship]:
        with self._session() as db:
            query = db.query(Relationship).filter(
                and_(Relationship.subject_id == principal_id, _live_filter(now))
            )
            if kind is not None:
                query = query.filter(Relationship.kind == kind.value)
            if after_id is not None:
                query = query.filter(Relationship.id > after_id)
            return query.order_by(Relationship.id.asc()).limit(limit).all()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _expire_rows(
        self, db: Session, rows: List[Tuple[UUID, str]], now: datetime
    ) -> int:
        """CAS each (id, status) row to EXPIRED with a history row."""
        count = 0
        for relationship_id, status in rows:
            result = db.execute(
                update(Relationship)
                .where(and_(Relationship.id == relationship_id, Relationship.status == status))
                .values(status=RelationshipStatus.EXPIRED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                continue
            db.add(RelationshipHistory(
                id=uuid.uuid4(),
                relationship_id=relationship_id,
                from_status=status,
                to_status=RelationshipStatus.EXPIRED.value,
                action=RelationshipAction.EXPIRE.value,
                reason="expires_at passed",
            ))
            count += 1
        return count

    def _stale_slot_rows(
        self,
        db: Session,
        kind: RelationshipKind,
        subject_id: UUID,
        object_type: str,
        object_id: UUID,
        now: datetime,
    ) -> List[Tuple[UUID, str]]:
        return db.query(Relationship.id, Relationship.status).filter(
            and_(
                Relationship.kind == kind.value,
                Relationship.subject_id == subject_id,
                Relationship.object_type == object_type,
                Relationship.object_id == object_id,
                Relationship.status.in_([s.value for s in EXPIRABLE_STATES]),
                Relationship.expires_at.isnot(None),
                Relationship.expires_at <= now,
            )
        ).all()

    def _find_live_slot(
        self, db: Session, kind: RelationshipKind, subject_id: UUID, object_type: str, object_id: UUID
    ) -> Optional[Relationship]:
        return db.query(Relationship).filter(
            and_(
                Relationship.kind == kind.value,
                Relationship.subject_id == subject_id,
                Relationship.object_type == object_type,
                Relationship.object_id == object_id,
                Relationship.status.in_([s.value for s in LIVE_STATES]),
            )
        ).first()

    @staticmethod
    def resolve_object_type(kind: RelationshipKind, object_type: Optional[str]) -> str:
        allowed = KIND_OBJECT_TYPES[kind]
        if object_type is None:
            if len(allowed) != 1:
                raise ValueError(f"object_type is required for {kind.value} relationships")
            return next(iter(allowed))
        object_type = getattr(object_type, "value", object_type)
        if object_type not in allowed:
            raise ValueError(
                f"{kind.value} relationships cannot target {object_type!r}"
            )
        return object_type

    def _validate_grant(
        self,
        kind: RelationshipKind,
        role: Optional[Role],
        overrides: Optional[Mapping[str, bool]],
    ) -> Tuple[Optional[str], Dict[str, bool]]:
        context = KIND_CONTEXT.get(kind)
        if context is None:
            if role is not None or overrides:
                raise ValueError(f"{kind.value} relationships carry no role or overrides")
            return None, {}
        if role is None:
            raise ValueError(f"{kind.value} relationships require a role")
        # Raises UnknownRole for unconfigured pairs
        self.role_defaults.default_capabilities(context, role)
        parsed = parse_overrides(CONTEXT_RESOURCE[context], overrides)
        return Role(role).value, {c.value: v for c, v in parsed.items()}

    @staticmethod
    def _history_to_dict(row: RelationshipHistory) -> Dict[str, Any]:
        return {
            "id": str(row.id),
            "relationship_id": str(row.relationship_id),
            "from_status": row.from_status,
            "to_status": row.to_status,
            "action": row.action,
            "actor_id": str(row.actor_id) if row.actor_id else None,
            "reason": row.reason,
            "created_at": row.created_at.isoformat() if row.created_at else None,
        }
