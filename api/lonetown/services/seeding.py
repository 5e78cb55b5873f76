import random
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, or_, select, update

from ..models import Match, MatchEvent, MatchFeedback, MatchStatus, Message, User, UserState
from .compatibility import ATTACHMENT_MATRIX, PERSONALITY_COMPLEMENTS

SEED_EMAIL_DOMAIN = "seed.lonetown.test"

CLUSTERS = {
    "steady": {
        "weight": 0.35,
        "means": {"emotional_intelligence": 74, "communication_style": 55, "conflict_resolution": 72, "relationship_goals": 80, "life_values": 70},
        "attachment": {"secure": 3.0, "anxious": 1.0, "avoidant": 0.8},
    },
    "expressive": {
        "weight": 0.35,
        "means": {"emotional_intelligence": 66, "communication_style": 78, "conflict_resolution": 60, "relationship_goals": 65, "life_values": 58},
        "attachment": {"secure": 1.6, "anxious": 2.0, "avoidant": 0.8},
    },
    "guarded": {
        "weight": 0.30,
        "means": {"emotional_intelligence": 52, "communication_style": 40, "conflict_resolution": 48, "relationship_goals": 55, "life_values": 62},
        "attachment": {"secure": 1.2, "anxious": 1.0, "avoidant": 2.2},
    },
}

LOVE_LANGUAGES = ["words", "acts", "gifts", "time", "touch"]
FIRST_NAMES = ["Alex", "Sam", "Jordan", "Riley", "Casey", "Morgan", "Taylor", "Jamie", "Avery", "Quinn"]


def _pick_cluster(rng: random.Random) -> str:
    names = list(CLUSTERS.keys())
    weights = [CLUSTERS[n]["weight"] for n in names]
    return rng.choices(names, weights=weights, k=1)[0]


def _bounded_score(v: float) -> int:
    # 0 means "not assessed", so seeded profiles start at 1
    return max(1, min(100, int(round(v))))


def _seed_gender_preferences(index: int) -> tuple[str, str]:
    """Mostly reciprocal man/woman rows, with every fifth user seeking the same gender."""
    gender = "man" if index % 2 == 0 else "woman"
    if index % 5 == 0:
        return gender, gender
    return gender, "woman" if gender == "man" else "man"


def _seed_profile(rng: random.Random, clustered: bool) -> dict[str, Any]:
    cluster = _pick_cluster(rng) if clustered else None
    spread = 12 if clustered else 25
    profile: dict[str, Any] = {}
    for field in ("emotional_intelligence", "communication_style", "conflict_resolution", "relationship_goals", "life_values"):
        mean = CLUSTERS[cluster]["means"][field] if cluster else 60
        profile[field] = _bounded_score(rng.gauss(mean, spread))

    if cluster:
        weights = CLUSTERS[cluster]["attachment"]
        styles = list(weights.keys())
        profile["attachment_style"] = rng.choices(styles, weights=[weights[s] for s in styles], k=1)[0]
    else:
        profile["attachment_style"] = rng.choice(sorted({a for a, _ in ATTACHMENT_MATRIX}))
    types = sorted(set(PERSONALITY_COMPLEMENTS).union(*PERSONALITY_COMPLEMENTS.values()))
    profile["personality_type"] = rng.choice(types) if rng.random() < 0.7 else None
    profile["love_language"] = rng.choice(LOVE_LANGUAGES)
    return profile


def _reset_seed_users(db) -> int:
    seed_ids = list(db.scalars(select(User.id).where(User.email.like(f"%@{SEED_EMAIL_DOMAIN}"))).all())
    if not seed_ids:
        return 0
    match_ids = list(
        db.scalars(select(Match.id).where(or_(Match.user1_id.in_(seed_ids), Match.user2_id.in_(seed_ids)))).all()
    )
    if match_ids:
        partners = set(
            db.scalars(
                select(User.id).where(
                    User.state == UserState.MATCHED,
                    User.id.not_in(seed_ids),
                    or_(
                        User.id.in_(select(Match.user1_id).where(Match.id.in_(match_ids), Match.status == MatchStatus.ACTIVE)),
                        User.id.in_(select(Match.user2_id).where(Match.id.in_(match_ids), Match.status == MatchStatus.ACTIVE)),
                    ),
                )
            ).all()
        )
        if partners:
            # real accounts left without a partner go back to the pool
            db.execute(update(User).where(User.id.in_(partners)).values(state=UserState.AVAILABLE))
        db.execute(delete(Message).where(Message.match_id.in_(match_ids)))
        db.execute(delete(MatchFeedback).where(MatchFeedback.match_id.in_(match_ids)))
        db.execute(delete(MatchEvent).where(MatchEvent.match_id.in_(match_ids)))
        db.execute(delete(Match).where(Match.id.in_(match_ids)))
    db.execute(delete(MatchEvent).where(MatchEvent.user_id.in_(seed_ids)))
    db.execute(delete(User).where(User.id.in_(seed_ids)))
    return len(seed_ids)


def seed_dummy_data(
    db,
    n_users: int = 100,
    reset: bool = False,
    seed: int = 42,
    clustered: bool = False,
    unassessed_ratio: float = 0.0,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Create ``n_users`` AVAILABLE users with random assessments for local runs.

    Seeded users share an email domain so ``reset`` can remove them and
    everything that references them without touching real accounts.
    """
    rng = random.Random(seed)
    now = now or datetime.now(timezone.utc)

    removed = _reset_seed_users(db) if reset else 0
    existing = set(db.scalars(select(User.email).where(User.email.like(f"%@{SEED_EMAIL_DOMAIN}"))).all())

    created = 0
    skipped = 0
    genders: Counter = Counter()
    attachments: Counter = Counter()
    for idx in range(n_users):
        email = f"seed_{idx:05d}@{SEED_EMAIL_DOMAIN}"
        if email in existing:
            skipped += 1
            continue
        gender, interested_in = _seed_gender_preferences(idx)
        profile = _seed_profile(rng, clustered)
        if rng.random() < unassessed_ratio:
            profile.update(
                emotional_intelligence=0,
                communication_style=0,
                conflict_resolution=0,
                relationship_goals=0,
                life_values=0,
            )
        db.add(
            User(
                email=email,
                first_name=f"{rng.choice(FIRST_NAMES)} {idx}",
                gender=gender,
                interested_in=interested_in,
                state=UserState.AVAILABLE,
                created_at=now - timedelta(minutes=n_users - idx),
                **profile,
            )
        )
        created += 1
        genders[gender] += 1
        attachments[profile["attachment_style"]] += 1

    db.commit()
    return {
        "created": created,
        "skipped_existing": skipped,
        "removed": removed,
        "genders": dict(genders),
        "attachment_styles": dict(attachments),
        "clustered": clustered,
    }
