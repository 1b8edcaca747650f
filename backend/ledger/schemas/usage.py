"""
Pydantic v2 schemas for the record path and per-user usage reads.

Separation:
  • UsageRecordCreate  — what the chat backend sends after a completion.
  • UsageRecordCreated — what the ledger returns (the record id).
  • UserUsageStats     — read-time aggregation over a user's raw records.

extra="forbid" on every request schema: unknown fields are rejected with
422, never silently ignored.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ledger.models.usage import COST_PRECISION, COST_SCALE
from ledger.services.events import UsageEvent


# ── Request schemas ─────────────────────────────────────────
class UsageRecordCreate(BaseModel):
    """
    Payload accepted by POST /usage/records.

    Token counts and costs are taken verbatim from the gateway response.
    cost_in_usd is already USD — it is never rescaled. Costs finer than 12
    decimal places are rejected rather than rounded.
    """

    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    user_id: uuid.UUID
    conversation_id: uuid.UUID
    message_id: uuid.UUID
    generation_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        examples=["gen-1712345678-abcdef"],
        description="Upstream generation id (idempotency key).",
    )
    model_slug: str = Field(
        ...,
        min_length=1,
        max_length=255,
        examples=["openai/gpt-4o-mini"],
    )
    prompt_tokens: int = Field(..., ge=0, examples=[500])
    completion_tokens: int = Field(..., ge=0, examples=[150])
    total_tokens: int = Field(..., ge=0, examples=[650])
    cached_tokens: int | None = Field(default=None, ge=0)
    reasoning_tokens: int | None = Field(default=None, ge=0)
    cost_in_credits: Decimal = Field(
        ..., ge=0, max_digits=COST_PRECISION, decimal_places=COST_SCALE, examples=["0.00042"],
    )
    cost_in_usd: Decimal = Field(
        ..., ge=0, max_digits=COST_PRECISION, decimal_places=COST_SCALE, examples=["0.000000125"],
    )
    timestamp: int = Field(
        ...,
        ge=0,
        examples=[1735689599999],
        description="Completion instant, epoch milliseconds (UTC).",
    )
    processing_time_ms: int | None = Field(default=None, ge=0, examples=[1200])

    @model_validator(mode="after")
    def _check_token_sum(self) -> UsageRecordCreate:
        if self.total_tokens != self.prompt_tokens + self.completion_tokens:
            raise ValueError("total_tokens must equal prompt_tokens + completion_tokens")
        return self

    def to_event(self) -> UsageEvent:
        return UsageEvent(**self.model_dump())


class ActivityEventCreate(BaseModel):
    """Payload for failure / conversation-started / file-uploaded counters."""

    model_config = ConfigDict(extra="forbid")

    user_id: uuid.UUID
    timestamp: int = Field(..., ge=0, description="Epoch milliseconds (UTC).")


# ── Response schemas ────────────────────────────────────────
class UsageRecordCreated(BaseModel):
    id: uuid.UUID


class ModelUsage(BaseModel):
    """Per-model slice of a user's usage."""

    count: int
    tokens: int
    cost: Decimal


class DailyUsage(BaseModel):
    date: str
    tokens: int
    cost: Decimal
    requests: int


class UserUsageStats(BaseModel):
    """Read-time aggregation over one user's raw usage records."""

    model_config = ConfigDict(protected_namespaces=())

    user_id: uuid.UUID
    period: str | None = None
    start_date: int | None = None
    end_date: int | None = None
    total_requests: int
    total_tokens: int
    prompt_tokens: int
    completion_tokens: int
    cached_tokens: int
    total_cost: Decimal
    avg_processing_time: float
    model_breakdown: dict[str, ModelUsage]
    daily_usage: list[DailyUsage]


class PeriodTotals(BaseModel):
    """Cumulative totals of one user's current bucket."""

    user_id: uuid.UUID
    period: str
    period_key: str
    total_requests: int = 0
    total_tokens: int = 0
    total_cost: Decimal = Decimal("0")


class RecentUsageUser(BaseModel):
    name: str
    email: str


class RecentUsage(BaseModel):
    """One usage record enriched for the activity feed."""

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

    id: uuid.UUID
    user_id: uuid.UUID
    conversation_id: uuid.UUID
    message_id: uuid.UUID
    generation_id: str
    model_slug: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    cost_in_usd: Decimal
    timestamp: int
    processing_time_ms: int | None
    user: RecentUsageUser | None = None
    conversation_title: str = "Unknown"
