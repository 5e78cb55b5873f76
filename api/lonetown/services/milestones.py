from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select, update

from ..config import VIDEO_UNLOCK_MESSAGE_COUNT, VIDEO_UNLOCK_REWARD, VIDEO_UNLOCK_WINDOW_HOURS
from ..database import atomic
from ..errors import NotFound, PersistenceError
from ..models import Match, Message, User
from .events import log_match_event

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def video_unlock_due(message_count: int, first_message_at: datetime | None, now: datetime) -> bool:
    if first_message_at is None or message_count < VIDEO_UNLOCK_MESSAGE_COUNT:
        return False
    return now - first_message_at <= timedelta(hours=VIDEO_UNLOCK_WINDOW_HOURS)


def _check_message_milestones(db, match_id: str, now: datetime) -> dict[str, bool]:
    match = db.get(Match, match_id, populate_existing=True)
    if match is None:
        raise NotFound(f"match {match_id} not found")

    message_count, earliest = db.execute(
        select(func.count(Message.id), func.min(Message.created_at)).where(Message.match_id == match_id)
    ).one()
    message_count = int(message_count or 0)
    changes = {"first_message": False, "video_unlocked": False, "message_count": False}

    first_message_at = match.first_message_at
    if first_message_at is None and earliest is not None:
        first_message_at = earliest
        res = db.execute(
            update(Match)
            .where(Match.id == match_id, Match.first_message_at.is_(None))
            .values(first_message_at=first_message_at)
            .execution_options(synchronize_session=False)
        )
        changes["first_message"] = res.rowcount == 1

    if not match.video_call_unlocked and video_unlock_due(message_count, first_message_at, now):
        # The flag only flips once, so the reward is applied exactly once.
        res = db.execute(
            update(Match)
            .where(Match.id == match_id, Match.video_call_unlocked.is_(False))
            .values(video_call_unlocked=True, video_call_unlocked_at=now)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 1:
            db.execute(
                update(User)
                .where(User.id.in_(match.participants()))
                .values(intentionality_score=User.intentionality_score + VIDEO_UNLOCK_REWARD)
                .execution_options(synchronize_session=False)
            )
            log_match_event(
                db,
                "video_call_unlocked",
                match_id=match_id,
                payload={"message_count": message_count},
                now=now,
            )
            changes["video_unlocked"] = True

    if match.message_count != message_count:
        db.execute(
            update(Match)
            .where(Match.id == match_id)
            .values(message_count=message_count)
            .execution_options(synchronize_session=False)
        )
        changes["message_count"] = True

    return changes


def check_message_milestones(db, match_id: str, now: datetime | None = None) -> dict[str, bool]:
    """Refresh the cached message count, first-message time and video unlock for a match.

    Safe to call after every message; with unchanged history it writes nothing.
    """
    now = now or _now_utc()
    try:
        with atomic(db, "check_message_milestones"):
            changes = _check_message_milestones(db, match_id, now)
    except NotFound as exc:
        logger.info("[MILESTONE] %s", exc)
        return {}
    except PersistenceError:
        logger.exception("[MILESTONE] store failure for match %s", match_id)
        return {}
    if changes.get("video_unlocked"):
        logger.info("[MILESTONE] video call unlocked for match %s", match_id)
    return changes
