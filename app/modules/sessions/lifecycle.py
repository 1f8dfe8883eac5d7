"""Session lifecycle state machine."""

from __future__ import annotations

from app.core.enums import SessionStatusEnum
from app.shared.exceptions import InvalidStateTransition

ALLOWED_TRANSITIONS: dict[SessionStatusEnum, frozenset[SessionStatusEnum]] = {
    SessionStatusEnum.PENDING: frozenset(
        {SessionStatusEnum.CONFIRMED, SessionStatusEnum.CANCELLED},
    ),
    SessionStatusEnum.CONFIRMED: frozenset(
        {
            SessionStatusEnum.IN_PROGRESS,
            SessionStatusEnum.COMPLETED,
            SessionStatusEnum.CANCELLED,
            SessionStatusEnum.PENDING_RESCHEDULE,
            SessionStatusEnum.NO_SHOW,
        },
    ),
    SessionStatusEnum.PENDING_RESCHEDULE: frozenset({SessionStatusEnum.CONFIRMED}),
    SessionStatusEnum.IN_PROGRESS: frozenset({SessionStatusEnum.COMPLETED}),
    SessionStatusEnum.COMPLETED: frozenset(),
    SessionStatusEnum.CANCELLED: frozenset(),
    SessionStatusEnum.NO_SHOW: frozenset(),
}

TERMINAL_STATES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)

# Sessions in these states hold their slot and block overlapping bookings.
LIVE_STATES = frozenset(
    {
        SessionStatusEnum.PENDING,
        SessionStatusEnum.CONFIRMED,
        SessionStatusEnum.PENDING_RESCHEDULE,
        SessionStatusEnum.IN_PROGRESS,
    },
)


def can_transition(current: SessionStatusEnum, target: SessionStatusEnum) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: SessionStatusEnum, target: SessionStatusEnum, action: str) -> None:
    """Raise InvalidStateTransition unless ``current -> target`` is allowed."""
    if not can_transition(current, target):
        raise InvalidStateTransition(f"Cannot {action} a session in status '{current}'")
