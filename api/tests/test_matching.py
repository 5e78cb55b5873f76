from datetime import timedelta

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import OperationalError

from lonetown.models import Match, MatchFeedback, MatchStatus, User, UserState
from lonetown.services import matching
from lonetown.services.matching import (
    complete_assessment,
    create_match,
    generate_match_for_user,
    select_best_candidate,
    unpin_match,
)


def _pair_72(make_user):
    """Two mutually interested users whose overall compatibility is 72."""
    a = make_user(gender="man", interested_in="woman", emotional_intelligence=80, communication_style=70,
                  conflict_resolution=50, relationship_goals=70, life_values=70)
    b = make_user(gender="woman", interested_in="man", emotional_intelligence=60, communication_style=30,
                  conflict_resolution=50, relationship_goals=70, life_values=33)
    return a, b


def _active_matches_for(db, user_id):
    return db.scalar(
        select(func.count(Match.id)).where(
            or_(Match.user1_id == user_id, Match.user2_id == user_id),
            Match.status == MatchStatus.ACTIVE,
        )
    )


def test_create_match_sets_both_users_matched(db, make_user, load, now):
    a, b = _pair_72(make_user)

    match_id = create_match(db, a, b, now=now)

    assert match_id is not None
    match = load(Match, match_id)
    assert match.status == MatchStatus.ACTIVE
    assert match.compatibility_score == 72
    assert (match.emotional_match, match.communication_match, match.values_match) == (95, 72, 56)
    assert match.expires_at == now + timedelta(days=7)
    for uid in (a, b):
        user = load(User, uid)
        assert user.state == UserState.MATCHED
        assert user.total_matches == 1
        assert user.last_match_at == now
        assert _active_matches_for(db, uid) == 1


def test_create_match_refuses_users_already_matched(db, make_user, load, now):
    a, b = _pair_72(make_user)
    c = make_user(gender="woman", interested_in="man")
    assert create_match(db, a, b, now=now)

    assert create_match(db, a, c, now=now) is None

    assert load(User, c).state == UserState.AVAILABLE
    assert _active_matches_for(db, a) == 1
    assert _active_matches_for(db, c) == 0


def test_create_match_loses_race_when_state_changes_after_read(db, make_user, load, session_factory, monkeypatch, now):
    a, b = _pair_72(make_user)
    real_compute = matching.compute_compatibility

    def compute_then_lose_race(u, v):
        # another worker matches b between our read and our write
        with session_factory() as other:
            other.execute(update(User).where(User.id == b).values(state=UserState.MATCHED))
            other.commit()
        return real_compute(u, v)

    monkeypatch.setattr(matching, "compute_compatibility", compute_then_lose_race)

    assert create_match(db, a, b, now=now) is None

    assert load(User, a).state == UserState.AVAILABLE
    assert load(User, a).total_matches == 0
    assert db.scalar(select(func.count(Match.id))) == 0


def test_create_match_unknown_user_or_self(db, make_user, now):
    a = make_user()
    assert create_match(db, a, "00000000-0000-0000-0000-000000000000", now=now) is None
    assert create_match(db, a, a, now=now) is None


def test_generate_match_end_to_end(db, make_user, load, now):
    a, b = _pair_72(make_user)

    assert generate_match_for_user(db, a, now=now) is True

    match = db.scalars(select(Match)).one()
    assert match.compatibility_score == 72
    assert {match.user1_id, match.user2_id} == {a, b}
    assert load(User, a).state == UserState.MATCHED
    assert load(User, b).state == UserState.MATCHED
    assert generate_match_for_user(db, a, now=now) is False
    assert generate_match_for_user(db, b, now=now) is False


def test_generate_requires_available_and_assessed_requester(db, make_user, now):
    unassessed = make_user(emotional_intelligence=0)
    frozen = make_user(state=UserState.FROZEN, frozen_until=now + timedelta(hours=3))
    make_user(gender="woman", interested_in="man")

    assert generate_match_for_user(db, unassessed, now=now) is False
    assert generate_match_for_user(db, frozen, now=now) is False
    assert generate_match_for_user(db, "00000000-0000-0000-0000-000000000000", now=now) is False
    assert db.scalar(select(func.count(Match.id))) == 0


def test_generate_skips_unassessed_and_uninterested_candidates(db, make_user, now):
    a = make_user(gender="man", interested_in="woman")
    make_user(gender="woman", interested_in="man", emotional_intelligence=0)
    make_user(gender="woman", interested_in="woman")
    make_user(gender="man", interested_in="man")

    assert generate_match_for_user(db, a, now=now) is False


def test_generate_never_repeats_a_prior_pair(db, make_user, now):
    a, b = _pair_72(make_user)
    db.add(
        Match(
            user1_id=a,
            user2_id=b,
            compatibility_score=72,
            emotional_match=95,
            communication_match=72,
            values_match=56,
            personality_match=50,
            goals_match=100,
            attachment_match=50,
            status=MatchStatus.EXPIRED,
            expires_at=now - timedelta(days=1),
            created_at=now - timedelta(days=8),
        )
    )
    db.commit()

    assert generate_match_for_user(db, a, now=now) is False
    assert generate_match_for_user(db, b, now=now) is False


def test_generate_requires_score_above_threshold(db, make_user, now):
    a = make_user(gender="man", interested_in="woman", emotional_intelligence=10, communication_style=10,
                  conflict_resolution=10, relationship_goals=10, life_values=10)
    make_user(gender="woman", interested_in="man", emotional_intelligence=90, communication_style=90,
              conflict_resolution=90, relationship_goals=90, life_values=90)

    assert generate_match_for_user(db, a, now=now) is False
    assert db.scalar(select(func.count(Match.id))) == 0


def test_generate_picks_highest_score_and_earliest_on_ties(db, make_user, now):
    a = make_user(gender="man", interested_in="woman", emotional_intelligence=80)
    weaker = make_user(gender="woman", interested_in="man", emotional_intelligence=60, life_values=40)
    first_tied = make_user(gender="woman", interested_in="man", emotional_intelligence=80)
    make_user(gender="woman", interested_in="man", emotional_intelligence=80)

    assert generate_match_for_user(db, a, now=now) is True

    match = db.scalars(select(Match)).one()
    assert match.user2_id == first_tied
    assert match.user2_id != weaker


def test_select_best_candidate_keeps_first_of_equal_scores():
    class C:
        def __init__(self, uid, score):
            self.matched_user_id = uid
            self.score_total = score

    picked = select_best_candidate([C("x", 60), C("y", 80), C("z", 80), C("w", 79)])
    assert picked.matched_user_id == "y"
    assert select_best_candidate([]) is None


def test_unpin_freezes_actor_and_releases_partner(db, make_user, load, now):
    a, b = _pair_72(make_user)
    match_id = create_match(db, a, b, now=now)
    later = now + timedelta(hours=5)

    assert unpin_match(db, match_id, b, now=later) is True

    match = load(Match, match_id)
    assert match.status == MatchStatus.UNPINNED_BY_USER2
    assert match.unpinned_by == b
    assert match.unpinned_at == later

    actor = load(User, b)
    assert actor.state == UserState.FROZEN
    assert actor.frozen_until == later + timedelta(hours=24)
    assert actor.intentionality_score == -5

    partner = load(User, a)
    assert partner.state == UserState.AVAILABLE
    assert partner.can_receive_match_at == later + timedelta(hours=2)
    assert partner.intentionality_score == 0

    feedback = db.scalars(select(MatchFeedback)).all()
    assert len(feedback) == 1
    assert feedback[0].recipient_id == a
    assert feedback[0].match_id == match_id
    assert feedback[0].insights["compatibilityScore"] == 72


def test_unpin_by_user1_sets_user1_status(db, make_user, load, now):
    a, b = _pair_72(make_user)
    match_id = create_match(db, a, b, now=now)
    assert unpin_match(db, match_id, a, now=now) is True
    assert load(Match, match_id).status == MatchStatus.UNPINNED_BY_USER1


def test_unpin_rejects_outsiders_and_inactive_matches(db, make_user, load, now):
    a, b = _pair_72(make_user)
    outsider = make_user()
    match_id = create_match(db, a, b, now=now)

    assert unpin_match(db, match_id, outsider, now=now) is False
    assert unpin_match(db, "missing-match", a, now=now) is False
    assert load(Match, match_id).status == MatchStatus.ACTIVE
    assert load(User, a).state == UserState.MATCHED
    assert load(User, b).state == UserState.MATCHED

    assert unpin_match(db, match_id, a, now=now) is True
    assert unpin_match(db, match_id, b, now=now) is False
    assert load(User, b).state == UserState.AVAILABLE
    assert load(User, a).intentionality_score == -5
    assert db.scalar(select(func.count(MatchFeedback.id))) == 1


def test_complete_assessment_makes_user_available(db, make_user, load):
    uid = make_user(emotional_intelligence=0)

    user = complete_assessment(
        db,
        uid,
        {
            "emotional_intelligence": 65,
            "communication_style": 55,
            "conflict_resolution": 60,
            "relationship_goals": 80,
            "life_values": 75,
            "attachment_style": "secure",
        },
    )

    assert user is not None
    stored = load(User, uid)
    assert stored.state == UserState.AVAILABLE
    assert stored.emotional_intelligence == 65
    assert stored.attachment_style == "secure"
    assert complete_assessment(db, "00000000-0000-0000-0000-000000000000", {"life_values": 1}) is None


def test_complete_assessment_keeps_matched_user_matched(db, make_user, load, now):
    a, b = _pair_72(make_user)
    create_match(db, a, b, now=now)

    complete_assessment(db, a, {"life_values": 10})

    stored = load(User, a)
    assert stored.state == UserState.MATCHED
    assert stored.life_values == 10


def _store_down(*args, **kwargs):
    raise OperationalError("INSERT INTO match_event", {}, Exception("database unavailable"))


def test_create_match_store_failure_writes_nothing(db, make_user, load, monkeypatch, now):
    a, b = _pair_72(make_user)
    monkeypatch.setattr(matching, "log_match_event", _store_down)

    assert create_match(db, a, b, now=now) is None

    assert db.scalar(select(func.count(Match.id))) == 0
    for uid in (a, b):
        user = load(User, uid)
        assert user.state == UserState.AVAILABLE
        assert user.total_matches == 0
        assert user.last_match_at is None


def test_unpin_store_failure_leaves_match_untouched(db, make_user, load, monkeypatch, now):
    a, b = _pair_72(make_user)
    match_id = create_match(db, a, b, now=now)
    monkeypatch.setattr(matching, "log_match_event", _store_down)

    assert unpin_match(db, match_id, b, now=now) is False

    match = load(Match, match_id)
    assert match.status == MatchStatus.ACTIVE
    assert match.unpinned_by is None
    assert load(User, a).state == UserState.MATCHED
    actor = load(User, b)
    assert actor.state == UserState.MATCHED
    assert actor.frozen_until is None
    assert actor.intentionality_score == 0
    assert db.scalar(select(func.count(MatchFeedback.id))) == 0


def test_unpin_loses_race_when_partner_unpins_first(db, make_user, load, session_factory, monkeypatch, now):
    a, b = _pair_72(make_user)
    match_id = create_match(db, a, b, now=now)
    real_next_status = matching.next_match_status
    raced = []

    def partner_unpins_first(*args, **kwargs):
        if not raced:
            raced.append(True)
            # a unpins from another worker between our read and our write
            with session_factory() as other:
                assert unpin_match(other, match_id, a, now=now) is True
        return real_next_status(*args, **kwargs)

    monkeypatch.setattr(matching, "next_match_status", partner_unpins_first)

    assert unpin_match(db, match_id, b, now=now) is False

    match = load(Match, match_id)
    assert match.status == MatchStatus.UNPINNED_BY_USER1
    assert match.unpinned_by == a
    assert load(User, a).state == UserState.FROZEN
    assert load(User, a).intentionality_score == -5
    partner = load(User, b)
    assert partner.state == UserState.AVAILABLE
    assert partner.intentionality_score == 0
    assert partner.frozen_until is None
    assert db.scalar(select(func.count(MatchFeedback.id))) == 1
