from datetime import datetime
from typing import Any

from ..models import MatchEvent


def log_match_event(
    db,
    event_type: str,
    *,
    match_id: str | None = None,
    user_id: str | None = None,
    payload: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> MatchEvent:
    """Stage an append-only audit row; the caller's transaction commits it."""
    event = MatchEvent(
        match_id=match_id,
        user_id=user_id,
        event_type=event_type,
        payload=payload or {},
    )
    if now is not None:
        event.created_at = now
    db.add(event)
    return event
