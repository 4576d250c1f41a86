"""Pydantic schemas for the JSON API."""
from typing import Optional
from pydantic import BaseModel, Field, field_validator


class ChatRequest(BaseModel):
    """Request schema for the chat endpoint."""
    message: str = Field(..., min_length=1, max_length=8000, description="User message")
    model: str = Field("gpt-4o", description="gpt-4o, claude-3 or gemini; anything else uses gpt-4o")

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("message must not be blank")
        return v


class ChatResponse(BaseModel):
    """Response schema for a successful chat turn."""
    response: str
    model: str
    tokens: int


class UsageResponse(BaseModel):
    """Today's quota usage."""
    used: int
    limit: int
    remaining: int
    tokens_used: int = 0


class ErrorResponse(BaseModel):
    """Standard error response schema."""
    error: str


class HealthResponse(BaseModel):
    """Health check response schema."""
    status: str = "ok"
    version: str
    database: str = "unknown"


class UserResponse(BaseModel):
    """Current user profile with today's usage."""
    id: int
    email: str
    name: str
    picture: Optional[str] = None
    plan: str
    daily_limit: int
    today_usage: int
