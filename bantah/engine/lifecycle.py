"""
bantah.engine.lifecycle — Challenge Status Transitions
=======================================================

Explicit transition table over :class:`ChallengeStatus`.  Services call
:func:`ensure_transition` before writing a new status.
"""

from __future__ import annotations

from bantah.database.models import ChallengeStatus
from bantah.errors import InvalidTransition

__all__ = [
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "can_transition",
    "ensure_transition",
    "is_terminal",
]

S = ChallengeStatus

ALLOWED_TRANSITIONS: dict[ChallengeStatus, frozenset[ChallengeStatus]] = {
    S.PENDING: frozenset({S.ACTIVE, S.CANCELLED}),
    S.OPEN: frozenset({S.ACTIVE, S.CANCELLED, S.PENDING_ADMIN, S.COMPLETED}),
    S.ACTIVE: frozenset({S.COMPLETED, S.DISPUTED}),
    S.PENDING_ADMIN: frozenset({S.COMPLETED}),
    S.DISPUTED: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

TERMINAL_STATUSES: frozenset[ChallengeStatus] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def _coerce(status: str | ChallengeStatus) -> ChallengeStatus:
    try:
        return ChallengeStatus(status)
    except ValueError:
        raise InvalidTransition(f"Unknown challenge status: {status!r}") from None


def is_terminal(status: str | ChallengeStatus) -> bool:
    return _coerce(status) in TERMINAL_STATUSES


def can_transition(current: str | ChallengeStatus, target: str | ChallengeStatus) -> bool:
    return _coerce(target) in ALLOWED_TRANSITIONS[_coerce(current)]


def ensure_transition(
    current: str | ChallengeStatus, target: str | ChallengeStatus
) -> ChallengeStatus:
    """Return *target* as a :class:`ChallengeStatus` or raise
    :class:`InvalidTransition` when the move is not allowed."""
    src, dst = _coerce(current), _coerce(target)
    if dst not in ALLOWED_TRANSITIONS[src]:
        raise InvalidTransition(f"Cannot move challenge from {src} to {dst}")
    return dst
