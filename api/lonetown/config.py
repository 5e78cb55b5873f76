import json
import os
from typing import Any

MATCH_EXPIRY_DAYS = int(os.getenv("MATCH_EXPIRY_DAYS", "7"))
UNPIN_FREEZE_HOURS = int(os.getenv("UNPIN_FREEZE_HOURS", "24"))
REMATCH_COOLDOWN_HOURS = int(os.getenv("REMATCH_COOLDOWN_HOURS", "2"))
UNPIN_INTENTIONALITY_PENALTY = int(os.getenv("UNPIN_INTENTIONALITY_PENALTY", "5"))

VIDEO_UNLOCK_MESSAGE_COUNT = int(os.getenv("VIDEO_UNLOCK_MESSAGE_COUNT", "100"))
VIDEO_UNLOCK_WINDOW_HOURS = int(os.getenv("VIDEO_UNLOCK_WINDOW_HOURS", "48"))
VIDEO_UNLOCK_REWARD = int(os.getenv("VIDEO_UNLOCK_REWARD", "10"))

# A candidate must score strictly above this to be matched.
MIN_MATCH_SCORE = int(os.getenv("MIN_MATCH_SCORE", "50"))

COMPATIBILITY_WEIGHTS: dict[str, float] = {
    "emotional": float(os.getenv("EMOTIONAL_W", "0.25")),
    "communication": float(os.getenv("COMMUNICATION_W", "0.20")),
    "values": float(os.getenv("VALUES_W", "0.25")),
    "personality": float(os.getenv("PERSONALITY_W", "0.15")),
    "goals": float(os.getenv("GOALS_W", "0.10")),
    "attachment": float(os.getenv("ATTACHMENT_W", "0.05")),
}

if os.getenv("COMPATIBILITY_WEIGHTS_JSON"):
    try:
        _override: Any = json.loads(os.getenv("COMPATIBILITY_WEIGHTS_JSON", "{}"))
    except json.JSONDecodeError:
        _override = {}
    if isinstance(_override, dict):
        COMPATIBILITY_WEIGHTS.update({str(k): float(v) for k, v in _override.items()})

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
