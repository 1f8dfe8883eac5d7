"""Outbox publishing for session domain events."""

from __future__ import annotations

from typing import Any

from app.modules.audit.repository import AuditRepository
from app.modules.sessions.models import MentorshipSession


async def publish_session_event(
    audit_repository: AuditRepository,
    mentorship_session: MentorshipSession,
    event_type: str,
    **extra: Any,
) -> None:
    """Write a session event to the outbox with both participants attached."""
    payload = {
        "session_id": str(mentorship_session.id),
        "mentee_id": str(mentorship_session.mentee_id),
        "mentor_id": str(mentorship_session.mentor_id),
        "scheduled_start_at": mentorship_session.scheduled_start_at.isoformat(),
        "status": str(mentorship_session.status),
    }
    payload.update({key: _jsonable(value) for key, value in extra.items()})
    await audit_repository.create_outbox_event(
        aggregate_type="session",
        aggregate_id=str(mentorship_session.id),
        event_type=event_type,
        payload=payload,
    )


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
