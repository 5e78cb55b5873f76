from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from ..config import (
    MATCH_EXPIRY_DAYS,
    MIN_MATCH_SCORE,
    REMATCH_COOLDOWN_HOURS,
    UNPIN_FREEZE_HOURS,
    UNPIN_INTENTIONALITY_PENALTY,
)
from ..database import atomic
from ..errors import NotFound, PersistenceError, StateConflict
from ..models import Match, MatchStatus, User, UserState
from .compatibility import CompatibilityScores, compute_compatibility
from .events import log_match_event
from .feedback import generate_match_feedback
from .state_machine import next_match_status, next_user_state

logger = logging.getLogger(__name__)


@dataclass
class MatchCandidate:
    user_id: str
    matched_user_id: str
    score_total: int
    scores: CompatibilityScores


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_gender(value: Any) -> str | None:
    if value is None:
        return None
    v = str(value).strip().lower()
    return v or None


def _mutual_interest(u: User, v: User) -> bool:
    u_gender = _normalize_gender(u.gender)
    v_gender = _normalize_gender(v.gender)
    u_seeking = _normalize_gender(u.interested_in)
    v_seeking = _normalize_gender(v.interested_in)
    if not u_gender or not v_gender or not u_seeking or not v_seeking:
        return False
    return v_gender == u_seeking and u_gender == v_seeking


def _cas_user(db, user_id: str, expected: UserState, **values: Any) -> None:
    res = db.execute(
        update(User)
        .where(User.id == user_id, User.state == expected)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise StateConflict(f"user {user_id} is no longer {expected.value}")


def _cas_match(db, match_id: str, expected: MatchStatus, **values: Any) -> None:
    res = db.execute(
        update(Match)
        .where(Match.id == match_id, Match.status == expected)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise StateConflict(f"match {match_id} is no longer {expected.value}")


def _load_users(db, user_ids: list[str]) -> dict[str, User]:
    rows = db.scalars(
        select(User).where(User.id.in_(user_ids)).execution_options(populate_existing=True)
    ).all()
    found = {u.id: u for u in rows}
    missing = [uid for uid in user_ids if uid not in found]
    if missing:
        raise NotFound(f"users not found: {missing}")
    return found


def fetch_prior_partner_ids(db, user_id: str) -> set[str]:
    rows = db.execute(
        select(Match.user1_id, Match.user2_id).where(or_(Match.user1_id == user_id, Match.user2_id == user_id))
    ).all()
    return {r.user2_id if r.user1_id == user_id else r.user1_id for r in rows}


def fetch_candidate_pool(db, user: User) -> list[User]:
    """Available, assessed, mutually interested users never matched with ``user``.

    Ordered by signup time then id; ranking keeps this order for ties.
    """
    excluded = fetch_prior_partner_ids(db, user.id) | {user.id}
    rows = db.scalars(
        select(User)
        .where(
            User.state == UserState.AVAILABLE,
            User.emotional_intelligence > 0,
            User.id.not_in(sorted(excluded)),
        )
        .order_by(User.created_at, User.id)
        .execution_options(populate_existing=True)
    ).all()
    return [c for c in rows if _mutual_interest(user, c)]


def rank_candidates(user: User, pool: list[User]) -> list[MatchCandidate]:
    out: list[MatchCandidate] = []
    for candidate in pool:
        scores = compute_compatibility(user, candidate)
        out.append(
            MatchCandidate(
                user_id=user.id,
                matched_user_id=candidate.id,
                score_total=scores.overall,
                scores=scores,
            )
        )
    return out


def select_best_candidate(candidates: list[MatchCandidate]) -> MatchCandidate | None:
    # Only a strictly higher score replaces the current best, so the earliest of
    # equally scored candidates wins.
    best: MatchCandidate | None = None
    for candidate in candidates:
        if best is None or candidate.score_total > best.score_total:
            best = candidate
    return best


def _create_match(db, user_a_id: str, user_b_id: str, now: datetime) -> str:
    if user_a_id == user_b_id:
        raise StateConflict("a user cannot be matched with themselves")

    users = _load_users(db, [user_a_id, user_b_id])
    user_a, user_b = users[user_a_id], users[user_b_id]
    for u in (user_a, user_b):
        if next_user_state(u.state, "match") == u.state:
            raise StateConflict(f"user {u.id} is {u.state.value}, expected AVAILABLE")

    scores = compute_compatibility(user_a, user_b)

    res = db.execute(
        update(User)
        .where(User.id.in_([user_a_id, user_b_id]), User.state == UserState.AVAILABLE)
        .values(
            state=UserState.MATCHED,
            last_match_at=now,
            total_matches=User.total_matches + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 2:
        raise StateConflict(f"users {user_a_id}/{user_b_id} changed state before the match was written")

    match = Match(
        user1_id=user_a_id,
        user2_id=user_b_id,
        compatibility_score=scores.overall,
        emotional_match=scores.emotional,
        communication_match=scores.communication,
        values_match=scores.values,
        personality_match=scores.personality,
        goals_match=scores.goals,
        attachment_match=scores.attachment,
        status=MatchStatus.ACTIVE,
        expires_at=now + timedelta(days=MATCH_EXPIRY_DAYS),
        created_at=now,
    )
    db.add(match)
    db.flush()
    log_match_event(
        db,
        "match_created",
        match_id=match.id,
        payload={"user1_id": user_a_id, "user2_id": user_b_id, "scores": scores.as_dict()},
        now=now,
    )
    return match.id


def create_match(db, user_a_id: str, user_b_id: str, now: datetime | None = None) -> str | None:
    """Match two AVAILABLE users atomically. Returns the match id, or None on conflict."""
    now = now or _now_utc()
    try:
        with atomic(db, "create_match"):
            match_id = _create_match(db, user_a_id, user_b_id, now)
    except (StateConflict, NotFound) as exc:
        logger.info("[MATCH] not created for %s/%s: %s", user_a_id, user_b_id, exc)
        return None
    except PersistenceError:
        logger.exception("[MATCH] store failure creating match for %s/%s", user_a_id, user_b_id)
        return None
    logger.info("[MATCH] created match %s between %s and %s", match_id, user_a_id, user_b_id)
    return match_id


def generate_match_for_user(db, user_id: str, now: datetime | None = None) -> bool:
    now = now or _now_utc()
    try:
        user = db.get(User, user_id, populate_existing=True)
        if user is None:
            logger.info("[MATCH] user %s not found", user_id)
            return False
        if user.state != UserState.AVAILABLE or not user.has_completed_assessment:
            logger.info(
                "[MATCH] user %s is not available for matching (state=%s, assessed=%s)",
                user_id,
                user.state.value,
                user.has_completed_assessment,
            )
            return False

        pool = fetch_candidate_pool(db, user)
        logger.info("[MATCH] found %s potential matches for user %s", len(pool), user_id)
        best = select_best_candidate(rank_candidates(user, pool))
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[MATCH] store failure building candidates for user %s", user_id)
        return False

    if best is None:
        return False
    if best.score_total <= MIN_MATCH_SCORE:
        logger.info(
            "[MATCH] best candidate for user %s scored %s, not above %s",
            user_id,
            best.score_total,
            MIN_MATCH_SCORE,
        )
        return False

    return create_match(db, user_id, best.matched_user_id, now=now) is not None


def _unpin_match(db, match_id: str, acting_user_id: str, now: datetime) -> None:
    match = db.get(Match, match_id, populate_existing=True)
    if match is None:
        raise NotFound(f"match {match_id} not found")
    if acting_user_id not in match.participants():
        raise StateConflict(f"user {acting_user_id} is not part of match {match_id}")

    slot = 1 if acting_user_id == match.user1_id else 2
    status = next_match_status(match.status, "unpin", slot, now, match.expires_at)
    if status == match.status:
        raise StateConflict(f"match {match_id} is {match.status.value}, expected ACTIVE")

    other_user_id = match.other_participant(acting_user_id)
    users = _load_users(db, [acting_user_id, other_user_id])
    acting, other = users[acting_user_id], users[other_user_id]

    _cas_match(db, match_id, MatchStatus.ACTIVE, status=status, unpinned_by=acting_user_id, unpinned_at=now)
    _cas_user(
        db,
        acting_user_id,
        UserState.MATCHED,
        state=next_user_state(UserState.MATCHED, "unpin"),
        frozen_until=now + timedelta(hours=UNPIN_FREEZE_HOURS),
        intentionality_score=User.intentionality_score - UNPIN_INTENTIONALITY_PENALTY,
    )
    _cas_user(
        db,
        other_user_id,
        UserState.MATCHED,
        state=next_user_state(UserState.MATCHED, "partner_unpinned"),
        can_receive_match_at=now + timedelta(hours=REMATCH_COOLDOWN_HOURS),
    )
    generate_match_feedback(db, match_id, other_user_id, acting, other, now=now)
    log_match_event(
        db,
        "match_unpinned",
        match_id=match_id,
        user_id=acting_user_id,
        payload={"status": status.value, "recipient_id": other_user_id},
        now=now,
    )


def unpin_match(db, match_id: str, acting_user_id: str, now: datetime | None = None) -> bool:
    now = now or _now_utc()
    try:
        with atomic(db, "unpin_match"):
            _unpin_match(db, match_id, acting_user_id, now)
    except (StateConflict, NotFound) as exc:
        logger.info("[UNPIN] rejected for match %s by %s: %s", match_id, acting_user_id, exc)
        return False
    except PersistenceError:
        logger.exception("[UNPIN] store failure for match %s", match_id)
        return False
    logger.info("[UNPIN] match %s unpinned by %s", match_id, acting_user_id)
    return True


ASSESSMENT_FIELDS = (
    "emotional_intelligence",
    "communication_style",
    "conflict_resolution",
    "relationship_goals",
    "life_values",
    "personality_type",
    "love_language",
    "attachment_style",
)


def complete_assessment(db, user_id: str, assessment: dict[str, Any]) -> User | None:
    """Store assessment answers; an unmatched user becomes AVAILABLE."""
    try:
        with atomic(db, "complete_assessment"):
            user = db.get(User, user_id, populate_existing=True)
            if user is None:
                raise NotFound(f"user {user_id} not found")
            for field in ASSESSMENT_FIELDS:
                if field in assessment:
                    setattr(user, field, assessment[field])
            target = next_user_state(user.state, "complete_assessment")
            if target != user.state:
                _cas_user(db, user_id, user.state, state=target)
    except (StateConflict, NotFound) as exc:
        logger.info("[ASSESSMENT] not stored for user %s: %s", user_id, exc)
        return None
    except PersistenceError:
        logger.exception("[ASSESSMENT] store failure for user %s", user_id)
        return None
    return user
