from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from types import MappingProxyType
from typing import Any, Mapping

from ..config import COMPATIBILITY_WEIGHTS

DIMENSIONS = ("emotional", "communication", "values", "personality", "goals", "attachment")


def validate_weights(weights: Mapping[str, float]) -> dict[str, float]:
    if set(weights) != set(DIMENSIONS):
        missing = sorted(set(DIMENSIONS) - set(weights))
        extra = sorted(set(weights) - set(DIMENSIONS))
        raise ValueError(f"Compatibility weights must cover {DIMENSIONS}; missing={missing} extra={extra}")
    total = sum(float(w) for w in weights.values())
    if not math.isclose(total, 1.0, rel_tol=0.0, abs_tol=1e-9):
        raise ValueError(f"Compatibility weights must sum to 1.0, got {total!r}")
    return {k: float(weights[k]) for k in DIMENSIONS}


WEIGHTS = MappingProxyType(validate_weights(COMPATIBILITY_WEIGHTS))

# Partial chart: only these types list complementary partners. Lookup is keyed on
# the first user's type, so the result is directional.
PERSONALITY_COMPLEMENTS: Mapping[str, frozenset[str]] = MappingProxyType(
    {
        "INTJ": frozenset({"ENFP", "ENTP", "INFJ"}),
        "INFP": frozenset({"ENFJ", "ENTJ", "INFJ"}),
        "ENFP": frozenset({"INTJ", "INFJ", "ISFJ"}),
        "ENFJ": frozenset({"INFP", "ISFP", "INTJ"}),
    }
)

ATTACHMENT_MATRIX: Mapping[tuple[str, str], int] = MappingProxyType(
    {
        ("secure", "secure"): 95,
        ("secure", "anxious"): 80,
        ("secure", "avoidant"): 75,
        ("secure", "disorganized"): 60,
        ("anxious", "secure"): 80,
        ("anxious", "anxious"): 40,
        ("anxious", "avoidant"): 30,
        ("anxious", "disorganized"): 45,
        ("avoidant", "secure"): 75,
        ("avoidant", "anxious"): 30,
        ("avoidant", "avoidant"): 60,
        ("avoidant", "disorganized"): 50,
        ("disorganized", "secure"): 60,
        ("disorganized", "anxious"): 45,
        ("disorganized", "avoidant"): 50,
        ("disorganized", "disorganized"): 35,
    }
)

NEUTRAL_SCORE = 50


@dataclass(frozen=True)
class CompatibilityScores:
    overall: int
    emotional: int
    communication: int
    values: int
    personality: int
    goals: int
    attachment: int

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _field(profile: Any, key: str) -> Any:
    if isinstance(profile, Mapping):
        return profile.get(key)
    return getattr(profile, key, None)


def _level(profile: Any, key: str) -> float:
    value = _field(profile, key)
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _category(profile: Any, key: str) -> str | None:
    value = _field(profile, key)
    if value is None:
        return None
    v = str(value).strip()
    return v or None


def complementary_score(x: float, y: float) -> float:
    difference = abs(x - y)
    average = (x + y) / 2.0
    if 20 <= difference <= 40 and average >= 60:
        return 90 + (average - 60) * 0.2
    if difference < 10:
        return 85 + average * 0.15
    return max(30.0, 80 - difference * 0.8 - max(0.0, 60 - average) * 0.5)


def emotional_compatibility(u: Any, v: Any) -> float:
    ei_u = _level(u, "emotional_intelligence")
    ei_v = _level(v, "emotional_intelligence")
    similarity_bonus = max(0.0, 100 - abs(ei_u - ei_v) * 2)
    level_bonus = (ei_u + ei_v) / 2.0 * 0.5
    return min(100.0, similarity_bonus + level_bonus)


def communication_compatibility(u: Any, v: Any) -> float:
    style = complementary_score(_level(u, "communication_style"), _level(v, "communication_style"))
    conflict = max(0.0, 100 - abs(_level(u, "conflict_resolution") - _level(v, "conflict_resolution")) * 1.5)
    return (style + conflict) / 2.0


def values_compatibility(u: Any, v: Any) -> float:
    return max(0.0, 100 - abs(_level(u, "life_values") - _level(v, "life_values")) * 1.2)


def goals_compatibility(u: Any, v: Any) -> float:
    return max(0.0, 100 - abs(_level(u, "relationship_goals") - _level(v, "relationship_goals")) * 1.5)


def personality_compatibility(u: Any, v: Any) -> float:
    type_u = _category(u, "personality_type")
    type_v = _category(v, "personality_type")
    if not type_u or not type_v:
        return float(NEUTRAL_SCORE)
    type_u, type_v = type_u.upper(), type_v.upper()
    if type_v in PERSONALITY_COMPLEMENTS.get(type_u, frozenset()):
        return 85.0
    if type_u == type_v:
        return 75.0
    return 55.0


def attachment_compatibility(u: Any, v: Any) -> float:
    style_u = _category(u, "attachment_style")
    style_v = _category(v, "attachment_style")
    if not style_u or not style_v:
        return float(NEUTRAL_SCORE)
    return float(ATTACHMENT_MATRIX.get((style_u.lower(), style_v.lower()), NEUTRAL_SCORE))


def compute_compatibility(u: Any, v: Any) -> CompatibilityScores:
    """Score user ``u`` against user ``v``.

    Profiles may be mappings or objects exposing the assessment fields. Every
    dimension except personality is symmetric; personality looks up ``u``'s type.
    Rounding (half up) is applied per field, after the weighted sum for overall.
    """
    raw = {
        "emotional": emotional_compatibility(u, v),
        "communication": communication_compatibility(u, v),
        "values": values_compatibility(u, v),
        "personality": personality_compatibility(u, v),
        "goals": goals_compatibility(u, v),
        "attachment": attachment_compatibility(u, v),
    }
    overall = sum(WEIGHTS[k] * raw[k] for k in DIMENSIONS)
    overall = max(0.0, min(100.0, overall))
    return CompatibilityScores(overall=round_half_up(overall), **{k: round_half_up(raw[k]) for k in DIMENSIONS})
