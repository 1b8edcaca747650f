"""
Pydantic v2 schemas for per-request logging.
"""

from __future__ import annotations

import uuid
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

RequestStatus = Literal["pending", "success", "error"]


class RequestLogCreate(BaseModel):
    """Payload for POST /requests, sent when a request starts."""

    model_config = ConfigDict(extra="forbid")

    user_id: uuid.UUID
    conversation_id: uuid.UUID | None = None
    message_id: uuid.UUID | None = None
    request_type: str = Field(..., min_length=1, max_length=50, examples=["chat_completion"])
    method: str = Field(..., min_length=1, max_length=10, examples=["POST"])
    endpoint: str = Field(..., min_length=1, max_length=255, examples=["/api/chat"])
    status: RequestStatus = "pending"
    timestamp: int = Field(..., ge=0, description="Epoch milliseconds (UTC).")
    user_agent: str | None = None
    ip_address: str | None = Field(default=None, max_length=45)
    metadata: dict[str, Any] | None = None


class RequestLogUpdate(BaseModel):
    """Payload for PATCH /requests/{id}, sent when a request finishes."""

    model_config = ConfigDict(extra="forbid")

    status: RequestStatus
    processing_time_ms: int = Field(..., ge=0)
    status_code: int | None = Field(default=None, ge=100, le=599)
    error_message: str | None = None
    request_size: int | None = Field(default=None, ge=0)
    response_size: int | None = Field(default=None, ge=0)


class RequestLogCreated(BaseModel):
    id: uuid.UUID


class RequestUser(BaseModel):
    name: str
    email: str


class RequestLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    conversation_id: uuid.UUID | None
    message_id: uuid.UUID | None
    request_type: str
    method: str
    endpoint: str
    status: RequestStatus
    status_code: int | None
    error_message: str | None
    request_size: int | None
    response_size: int | None
    processing_time_ms: int
    timestamp: int
    user_agent: str | None
    ip_address: str | None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="metadata_")
    user: RequestUser | None = None


class RequestStats(BaseModel):
    total_requests: int
    successful_requests: int
    failed_requests: int
    pending_requests: int
    avg_processing_time: float
    request_types: dict[str, int]
    error_breakdown: dict[str, int]
