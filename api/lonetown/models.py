import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator

from .database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes, also on drivers that hand back naive values (SQLite)."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


JSONType = JSON().with_variant(JSONB(), "postgresql")


class UserState(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    MATCHED = "MATCHED"
    # Declared for clients; no transition in the engine produces it.
    PINNED = "PINNED"
    FROZEN = "FROZEN"


class MatchStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    UNPINNED_BY_USER1 = "UNPINNED_BY_USER1"
    UNPINNED_BY_USER2 = "UNPINNED_BY_USER2"
    EXPIRED = "EXPIRED"


class User(Base):
    __tablename__ = "app_user"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String, nullable=True, unique=True)
    first_name = Column(String, nullable=True)
    gender = Column(String, nullable=True)
    interested_in = Column(String, nullable=True)
    state = Column(Enum(UserState, native_enum=False, length=16), nullable=False, default=UserState.AVAILABLE)

    emotional_intelligence = Column(Integer, nullable=False, default=0)
    communication_style = Column(Integer, nullable=False, default=0)
    conflict_resolution = Column(Integer, nullable=False, default=0)
    relationship_goals = Column(Integer, nullable=False, default=0)
    life_values = Column(Integer, nullable=False, default=0)
    personality_type = Column(String(8), nullable=True)
    love_language = Column(String, nullable=True)
    attachment_style = Column(String(16), nullable=True)

    intentionality_score = Column(Integer, nullable=False, default=0)
    total_matches = Column(Integer, nullable=False, default=0)
    successful_connections = Column(Integer, nullable=False, default=0)

    frozen_until = Column(UTCDateTime, nullable=True)
    can_receive_match_at = Column(UTCDateTime, nullable=True)
    last_match_at = Column(UTCDateTime, nullable=True)
    last_active_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=_now_utc)

    __table_args__ = (Index("idx_app_user_state", "state"),)

    def assessment(self) -> dict:
        return {
            "emotional_intelligence": self.emotional_intelligence or 0,
            "communication_style": self.communication_style or 0,
            "conflict_resolution": self.conflict_resolution or 0,
            "relationship_goals": self.relationship_goals or 0,
            "life_values": self.life_values or 0,
            "personality_type": self.personality_type,
            "love_language": self.love_language,
            "attachment_style": self.attachment_style,
        }

    @property
    def has_completed_assessment(self) -> bool:
        return (self.emotional_intelligence or 0) > 0


class Match(Base):
    __tablename__ = "match"

    id = Column(String(36), primary_key=True, default=_uuid)
    user1_id = Column(String(36), ForeignKey("app_user.id"), nullable=False)
    user2_id = Column(String(36), ForeignKey("app_user.id"), nullable=False)

    compatibility_score = Column(Integer, nullable=False)
    emotional_match = Column(Integer, nullable=False)
    communication_match = Column(Integer, nullable=False)
    values_match = Column(Integer, nullable=False)
    personality_match = Column(Integer, nullable=False)
    goals_match = Column(Integer, nullable=False)
    attachment_match = Column(Integer, nullable=False)

    status = Column(Enum(MatchStatus, native_enum=False, length=24), nullable=False, default=MatchStatus.ACTIVE)
    message_count = Column(Integer, nullable=False, default=0)
    first_message_at = Column(UTCDateTime, nullable=True)
    video_call_unlocked = Column(Boolean, nullable=False, default=False)
    video_call_unlocked_at = Column(UTCDateTime, nullable=True)
    unpinned_by = Column(String(36), nullable=True)
    unpinned_at = Column(UTCDateTime, nullable=True)
    expires_at = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=_now_utc)

    __table_args__ = (
        Index("idx_match_user1_id", "user1_id"),
        Index("idx_match_user2_id", "user2_id"),
        Index("idx_match_status_expires_at", "status", "expires_at"),
    )

    def participants(self) -> tuple[str, str]:
        return self.user1_id, self.user2_id

    def other_participant(self, user_id: str) -> str:
        return self.user2_id if user_id == self.user1_id else self.user1_id


class Message(Base):
    __tablename__ = "message"

    id = Column(String(36), primary_key=True, default=_uuid)
    match_id = Column(String(36), ForeignKey("match.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(String(36), ForeignKey("app_user.id"), nullable=False)
    receiver_id = Column(String(36), ForeignKey("app_user.id"), nullable=False)
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False, default=_now_utc)

    __table_args__ = (Index("idx_message_match_id_created_at", "match_id", "created_at"),)


class MatchFeedback(Base):
    __tablename__ = "match_feedback"

    id = Column(String(36), primary_key=True, default=_uuid)
    match_id = Column(String(36), ForeignKey("match.id", ondelete="CASCADE"), nullable=False)
    recipient_id = Column(String(36), ForeignKey("app_user.id"), nullable=False)
    feedback_type = Column(String(32), nullable=False)
    feedback = Column(Text, nullable=False)
    insights = Column(JSONType, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=_now_utc)

    __table_args__ = (Index("idx_match_feedback_recipient_id", "recipient_id"),)


class MatchEvent(Base):
    __tablename__ = "match_event"

    id = Column(String(36), primary_key=True, default=_uuid)
    match_id = Column(String(36), nullable=True)
    user_id = Column(String(36), nullable=True)
    event_type = Column(String(48), nullable=False)
    payload = Column(JSONType, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=_now_utc)

    __table_args__ = (Index("idx_match_event_match_id", "match_id"),)
