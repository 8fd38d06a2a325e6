"""Authorization entity and the grant/revoke state machine. Pure domain; callers persist results."""

import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional, Sequence

from medcross.domain.exceptions import InvalidTransitionError
from medcross.domain.models.record import RECORD_NAMESPACE


class AuthorizationStatus(str, Enum):
    ACTIVE = "active"
    REVOKED = "revoked"


class GrantState(str, Enum):
    """State of a (record, grantee) pair, derived from its authorization history."""

    NO_GRANT = "no_grant"
    ACTIVE = "active"
    REVOKED = "revoked"


class AuthorizationAction(str, Enum):
    GRANT = "grant"
    REVOKE = "revoke"


# Allowed transitions: action -> states it may be applied from.
# Grant from ACTIVE is handled separately as an audited no-op.
_ALLOWED_FROM: Dict[AuthorizationAction, FrozenSet[GrantState]] = {
    AuthorizationAction.GRANT: frozenset({GrantState.NO_GRANT, GrantState.REVOKED}),
    AuthorizationAction.REVOKE: frozenset({GrantState.ACTIVE}),
}


def derive_authorization_id(record_id: str, grant_tx_ref: str) -> str:
    return str(uuid.uuid5(RECORD_NAMESPACE, f"authorization:{record_id}:{grant_tx_ref}"))


@dataclass(frozen=True)
class Authorization:
    """
    Directed grant from a record's owner to a grantee. Never deleted: a revoke
    produces a revoked copy, a re-grant produces a fresh entity.
    """

    authorization_id: str
    record_id: str
    grantee_id: str
    granted_at: datetime
    status: AuthorizationStatus
    origin_tx_ref: str
    granted_block_height: int
    revoked_at: Optional[datetime] = None
    revoke_tx_ref: Optional[str] = None
    revoked_block_height: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.status == AuthorizationStatus.ACTIVE

    @property
    def last_block_height(self) -> int:
        if self.revoked_block_height is not None:
            return self.revoked_block_height
        return self.granted_block_height

    def revoke(self, revoked_at: datetime, tx_ref: str, block_height: int) -> "Authorization":
        return replace(
            self,
            status=AuthorizationStatus.REVOKED,
            revoked_at=revoked_at,
            revoke_tx_ref=tx_ref,
            revoked_block_height=block_height,
        )


def current_state(history: Sequence[Authorization]) -> GrantState:
    """NO_GRANT for an empty history, otherwise the status of the newest authorization."""
    if not history:
        return GrantState.NO_GRANT
    if any(a.is_active for a in history):
        return GrantState.ACTIVE
    return GrantState.REVOKED


def active_authorization(history: Sequence[Authorization]) -> Optional[Authorization]:
    for authorization in history:
        if authorization.is_active:
            return authorization
    return None


def _knows_tx(history: Sequence[Authorization], tx_ref: str) -> bool:
    return any(a.origin_tx_ref == tx_ref or a.revoke_tx_ref == tx_ref for a in history)


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a transition. `authorization` is the entity to persist when `applied`."""

    previous: GrantState
    state: GrantState
    applied: bool
    duplicate: bool = False
    authorization: Optional[Authorization] = None


class AuthorizationStateMachine:
    """
    NO_GRANT -> ACTIVE -> REVOKED -> ACTIVE -> ...
    Driven only by confirmed ledger events. History for one (record, grantee)
    pair is passed in; nothing is stored here.
    """

    def _check_order(self, history: Sequence[Authorization], block_height: int, tx_ref: str) -> None:
        if not history:
            return
        latest = max(a.last_block_height for a in history)
        if block_height < latest:
            raise InvalidTransitionError(
                f"Transaction {tx_ref} at block {block_height} is older than the last applied transition at block {latest}"
            )

    def grant(
        self,
        history: Sequence[Authorization],
        *,
        record_id: str,
        grantee_id: str,
        granted_at: datetime,
        tx_ref: str,
        block_height: int,
    ) -> TransitionResult:
        """
        Grant access. From ACTIVE this is a no-op (applied=False) that callers still audit.
        A replay of an already-applied transaction is reported as duplicate.
        """
        previous = current_state(history)
        if _knows_tx(history, tx_ref):
            return TransitionResult(previous=previous, state=previous, applied=False, duplicate=True)
        self._check_order(history, block_height, tx_ref)
        if previous not in _ALLOWED_FROM[AuthorizationAction.GRANT]:
            return TransitionResult(previous=previous, state=previous, applied=False)
        authorization = Authorization(
            authorization_id=derive_authorization_id(record_id, tx_ref),
            record_id=record_id,
            grantee_id=grantee_id,
            granted_at=granted_at,
            status=AuthorizationStatus.ACTIVE,
            origin_tx_ref=tx_ref,
            granted_block_height=block_height,
        )
        return TransitionResult(
            previous=previous,
            state=GrantState.ACTIVE,
            applied=True,
            authorization=authorization,
        )

    def revoke(
        self,
        history: Sequence[Authorization],
        *,
        revoked_at: datetime,
        tx_ref: str,
        block_height: int,
    ) -> TransitionResult:
        """Revoke the active grant. Raises InvalidTransitionError from NO_GRANT or REVOKED."""
        previous = current_state(history)
        if _knows_tx(history, tx_ref):
            return TransitionResult(previous=previous, state=previous, applied=False, duplicate=True)
        if previous not in _ALLOWED_FROM[AuthorizationAction.REVOKE]:
            raise InvalidTransitionError(
                f"Cannot revoke from state {previous.value} (transaction {tx_ref})"
            )
        self._check_order(history, block_height, tx_ref)
        active = active_authorization(history)
        return TransitionResult(
            previous=previous,
            state=GrantState.REVOKED,
            applied=True,
            authorization=active.revoke(revoked_at, tx_ref, block_height),
        )
