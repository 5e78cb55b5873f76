import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import or_, select, update

from .database import atomic
from .errors import NotFound, PersistenceError, StateConflict
from .models import Match, MatchFeedback, MatchStatus, Message, User
from .services.milestones import check_message_milestones

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def get_user_state(db, user_id: str) -> dict[str, Any] | None:
    user = db.get(User, user_id, populate_existing=True)
    if user is None:
        return None
    return {
        "state": user.state.value,
        "frozen_until": user.frozen_until,
        "can_receive_match_at": user.can_receive_match_at,
        "intentionality_score": user.intentionality_score,
        "total_matches": user.total_matches,
        "successful_connections": user.successful_connections,
        "last_active_at": user.last_active_at,
    }


def get_active_match(db, user_id: str) -> Match | None:
    return db.scalars(
        select(Match)
        .where(
            or_(Match.user1_id == user_id, Match.user2_id == user_id),
            Match.status == MatchStatus.ACTIVE,
        )
        .order_by(Match.created_at.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    ).first()


def get_current_match(db, user_id: str) -> dict[str, Any] | None:
    match = get_active_match(db, user_id)
    if match is None:
        return None
    other = db.get(User, match.other_participant(user_id))
    last = db.scalars(
        select(Message).where(Message.match_id == match.id).order_by(Message.created_at.desc()).limit(1)
    ).first()
    return {
        "id": match.id,
        "user": {
            "id": other.id if other else match.other_participant(user_id),
            "first_name": other.first_name if other else None,
        },
        "compatibility_score": match.compatibility_score,
        "compatibility": {
            "emotional": match.emotional_match,
            "communication": match.communication_match,
            "values": match.values_match,
            "personality": match.personality_match,
            "goals": match.goals_match,
            "attachment": match.attachment_match,
        },
        "message_count": match.message_count,
        "video_call_unlocked": match.video_call_unlocked,
        "expires_at": match.expires_at,
        "created_at": match.created_at,
        "last_message": (
            {"content": last.content, "created_at": last.created_at, "sender_id": last.sender_id} if last else None
        ),
    }


def _message_dict(m: Message) -> dict[str, Any]:
    return {
        "id": m.id,
        "match_id": m.match_id,
        "sender_id": m.sender_id,
        "receiver_id": m.receiver_id,
        "content": m.content,
        "is_read": m.is_read,
        "created_at": m.created_at,
    }


def post_message(db, match_id: str, sender_id: str, content: str, now: datetime | None = None) -> dict[str, Any] | None:
    """Store a message in an active match, then refresh the match milestones."""
    now = now or _now_utc()
    body = (content or "").strip()
    if not body:
        return None
    try:
        with atomic(db, "post_message"):
            match = db.get(Match, match_id, populate_existing=True)
            if match is None or sender_id not in match.participants():
                raise NotFound(f"match {match_id} not found for user {sender_id}")
            if match.status != MatchStatus.ACTIVE:
                raise StateConflict(f"match {match_id} is {match.status.value}")
            message = Message(
                match_id=match_id,
                sender_id=sender_id,
                receiver_id=match.other_participant(sender_id),
                content=body,
                created_at=now,
            )
            db.add(message)
            db.execute(
                update(User)
                .where(User.id == sender_id)
                .values(last_active_at=now)
                .execution_options(synchronize_session=False)
            )
            db.flush()
            out = _message_dict(message)
    except (StateConflict, NotFound) as exc:
        logger.info("[CHAT] message rejected: %s", exc)
        return None
    except PersistenceError:
        logger.exception("[CHAT] store failure posting to match %s", match_id)
        return None

    check_message_milestones(db, match_id, now=now)
    return out


def list_messages(db, match_id: str, reader_id: str) -> list[dict[str, Any]] | None:
    match = db.get(Match, match_id)
    if match is None or reader_id not in match.participants():
        return None
    rows = db.scalars(
        select(Message).where(Message.match_id == match_id).order_by(Message.created_at, Message.id)
    ).all()
    out = [_message_dict(m) for m in rows]
    try:
        with atomic(db, "mark_messages_read"):
            db.execute(
                update(Message)
                .where(Message.match_id == match_id, Message.receiver_id == reader_id, Message.is_read.is_(False))
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
    except PersistenceError:
        logger.exception("[CHAT] could not mark messages read in match %s", match_id)
    return out


def list_feedback(db, user_id: str, limit: int = 20) -> list[dict[str, Any]]:
    rows = db.scalars(
        select(MatchFeedback)
        .where(MatchFeedback.recipient_id == user_id)
        .order_by(MatchFeedback.created_at.desc())
        .limit(limit)
    ).all()
    return [
        {
            "id": r.id,
            "match_id": r.match_id,
            "feedback_type": r.feedback_type,
            "feedback": r.feedback,
            "insights": r.insights,
            "created_at": r.created_at,
        }
        for r in rows
    ]
