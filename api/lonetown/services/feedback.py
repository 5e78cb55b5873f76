from __future__ import annotations

from datetime import datetime
from typing import Any

from ..models import MatchFeedback
from .compatibility import compute_compatibility

MISMATCH_THRESHOLD = 60
STRENGTH_THRESHOLD = 70

_BRANCHES = (
    (
        "emotional",
        "emotional_mismatch",
        "It seems like there might have been differences in emotional connection styles. "
        "Your next match will be selected with even better emotional compatibility in mind.",
        "Emotional communication styles differed",
    ),
    (
        "communication",
        "communication_style",
        "Communication styles can make a big difference in connection. "
        "We'll focus on finding someone whose communication approach aligns better with yours.",
        "Communication approaches varied",
    ),
    (
        "values",
        "values_mismatch",
        "Shared values are crucial for deep connections. Your next match will prioritize stronger values alignment.",
        "Different life values or priorities",
    ),
)

GENERAL_FEEDBACK_TYPE = "general_mismatch"
GENERAL_FEEDBACK = (
    "Sometimes great compatibility on paper doesn't translate to immediate chemistry, "
    "and that's completely normal. We'll keep refining to find your perfect match."
)
GENERAL_STRENGTH = "Strong compatibility indicators"

_STRENGTHS = (
    ("emotional", "Good emotional intelligence match"),
    ("values", "Aligned life values"),
    ("communication", "Compatible communication styles"),
)


def build_match_feedback(unpinning_user: Any, recipient: Any) -> dict[str, Any]:
    """Explain an unpin to the participant who was left.

    Scores are recomputed from the current profiles. The first dimension under
    the mismatch threshold picks the message and the single challenge entry.
    """
    scores = compute_compatibility(unpinning_user, recipient).as_dict()

    feedback_type = GENERAL_FEEDBACK_TYPE
    feedback = GENERAL_FEEDBACK
    strengths: list[str] = []
    challenges: list[str] = []

    for dimension, branch_type, message, challenge in _BRANCHES:
        if scores[dimension] < MISMATCH_THRESHOLD:
            feedback_type = branch_type
            feedback = message
            challenges.append(challenge)
            break
    else:
        strengths.append(GENERAL_STRENGTH)

    for dimension, label in _STRENGTHS:
        if scores[dimension] > STRENGTH_THRESHOLD:
            strengths.append(label)

    return {
        "feedback_type": feedback_type,
        "feedback": feedback,
        "insights": {
            "compatibilityScore": scores["overall"],
            "strengths": strengths,
            "challenges": challenges,
        },
    }


def generate_match_feedback(
    db,
    match_id: str,
    recipient_id: str,
    unpinning_user: Any,
    recipient: Any,
    now: datetime | None = None,
) -> MatchFeedback:
    built = build_match_feedback(unpinning_user, recipient)
    row = MatchFeedback(
        match_id=match_id,
        recipient_id=recipient_id,
        feedback_type=built["feedback_type"],
        feedback=built["feedback"],
        insights=built["insights"],
    )
    if now is not None:
        row.created_at = now
    db.add(row)
    return row
