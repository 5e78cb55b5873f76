from datetime import datetime
from typing import Any, Literal
from pydantic import BaseModel, Field


class AssessmentRequest(BaseModel):
    emotional_intelligence: int = Field(ge=0, le=100)
    communication_style: int = Field(ge=0, le=100)
    conflict_resolution: int = Field(ge=0, le=100)
    relationship_goals: int = Field(ge=0, le=100)
    life_values: int = Field(ge=0, le=100)
    personality_type: str | None = Field(default=None, max_length=8)
    love_language: str | None = None
    attachment_style: Literal["secure", "anxious", "avoidant", "disorganized"] | None = None


class AssessmentResponse(BaseModel):
    message: str
    user: dict[str, Any]


class UserStateResponse(BaseModel):
    state: str
    frozen_until: datetime | None = None
    can_receive_match_at: datetime | None = None
    intentionality_score: int
    total_matches: int
    successful_connections: int
    last_active_at: datetime | None = None


class UnpinRequest(BaseModel):
    match_id: str = Field(min_length=1)


class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=4000)


class StatusResponse(BaseModel):
    message: str
