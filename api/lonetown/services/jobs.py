from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from ..database import atomic
from ..errors import PersistenceError
from ..models import Match, MatchStatus, User, UserState
from .events import log_match_event
from .matching import generate_match_for_user
from .state_machine import next_match_status, next_user_state

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def fetch_eligible_user_ids(db, now: datetime) -> list[str]:
    rows = db.scalars(
        select(User.id)
        .where(
            User.state == UserState.AVAILABLE,
            User.emotional_intelligence > 0,
            or_(User.can_receive_match_at.is_(None), User.can_receive_match_at <= now),
        )
        .order_by(User.created_at, User.id)
    ).all()
    return list(rows)


def process_daily_matches(db, now: datetime | None = None) -> dict[str, int]:
    """Try to match every eligible user, strictly one after another.

    Each successful match takes both users out of the AVAILABLE pool before the
    next user is processed, so no candidate can be handed out twice in one run.
    """
    now = now or _now_utc()
    try:
        user_ids = fetch_eligible_user_ids(db, now)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[DAILY] could not load eligible users")
        return {"eligible": 0, "matched": 0, "failed": 0}

    logger.info("[DAILY] processing daily matches for %s eligible users", len(user_ids))
    matched = 0
    failed = 0
    for user_id in user_ids:
        try:
            if generate_match_for_user(db, user_id, now=now):
                matched += 1
        except Exception:
            db.rollback()
            failed += 1
            logger.exception("[DAILY] matching failed for user %s", user_id)

    summary = {"eligible": len(user_ids), "matched": matched, "failed": failed}
    logger.info("[DAILY] done: %s", summary)
    return summary


def _unfreeze_users(db, now: datetime) -> int:
    res = db.execute(
        update(User)
        .where(User.state == UserState.FROZEN, User.frozen_until <= now)
        .values(state=next_user_state(UserState.FROZEN, "unfreeze"), frozen_until=None)
        .execution_options(synchronize_session=False)
    )
    return int(res.rowcount or 0)


def _expire_match(db, match_id: str, now: datetime) -> bool:
    match = db.get(Match, match_id, populate_existing=True)
    if match is None:
        return False
    status = next_match_status(match.status, "expire", None, now, match.expires_at)
    if status == match.status:
        return False
    res = db.execute(
        update(Match)
        .where(Match.id == match_id, Match.status == MatchStatus.ACTIVE)
        .values(status=status)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        return False

    participants = db.scalars(
        select(User).where(User.id.in_(match.participants())).execution_options(populate_existing=True)
    ).all()
    for user in participants:
        state = next_user_state(user.state, "match_expired")
        values = {"state": state}
        if state != UserState.FROZEN:
            values["frozen_until"] = None
        db.execute(
            update(User)
            .where(User.id == user.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
    log_match_event(db, "match_expired", match_id=match_id, payload={"expires_at": match.expires_at.isoformat()}, now=now)
    return True


def cleanup_expired_states(db, now: datetime | None = None) -> dict[str, Any]:
    """Unfreeze users whose freeze ran out and expire overdue active matches.

    Each expired match is its own unit of work; a failing one is logged and the
    rest still run. Re-running is safe.
    """
    now = now or _now_utc()
    summary: dict[str, Any] = {"unfrozen": 0, "expired": 0, "failed": []}

    try:
        with atomic(db, "unfreeze_users"):
            summary["unfrozen"] = _unfreeze_users(db, now)
    except PersistenceError:
        logger.exception("[CLEANUP] unfreezing users failed")

    try:
        match_ids = list(
            db.scalars(
                select(Match.id)
                .where(Match.status == MatchStatus.ACTIVE, Match.expires_at <= now)
                .order_by(Match.expires_at, Match.id)
            ).all()
        )
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[CLEANUP] could not load expired matches")
        match_ids = []

    for match_id in match_ids:
        try:
            with atomic(db, "expire_match"):
                if _expire_match(db, match_id, now):
                    summary["expired"] += 1
        except Exception:
            summary["failed"].append(match_id)
            logger.exception("[CLEANUP] expiring match %s failed", match_id)

    logger.info(
        "[CLEANUP] unfrozen=%s expired=%s failed=%s",
        summary["unfrozen"],
        summary["expired"],
        len(summary["failed"]),
    )
    return summary
