"""
Pydantic v2 response schemas for dashboard analytics.

All monetary fields use Decimal — serialized as strings in JSON.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class SystemUsageOut(BaseModel):
    """One system-wide bucket with its derived success rate."""

    period: str
    period_key: str
    total_requests: int
    successful_requests: int
    failed_requests: int
    total_tokens: int
    prompt_tokens: int
    completion_tokens: int
    total_cost: Decimal
    avg_processing_time: float
    success_rate: float
    unique_models_used: int
    conversations_started: int
    files_uploaded: int


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str
    avatar_url: str | None


class TopUserStats(BaseModel):
    total_requests: int
    total_tokens: int
    total_cost: Decimal
    avg_processing_time: float
    conversations_started: int
    files_uploaded: int


class TopUserOut(BaseModel):
    user: UserSummary
    stats: TopUserStats


class ModelUsageStatsOut(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_slug: str
    count: int
    total_tokens: int
    total_cost: Decimal
    avg_processing_time: float


class FundingModelUsage(BaseModel):
    tokens: int = 0
    cost: Decimal = Decimal("0")
    count: int = 0


class FundingUsage(BaseModel):
    """Usage paid for by one funding source (BYOK or system)."""

    total_tokens: int = 0
    total_cost: Decimal = Decimal("0")
    request_count: int = 0
    models: dict[str, FundingModelUsage] = {}


class UsageTotals(BaseModel):
    total_tokens: int
    total_cost: Decimal
    request_count: int


class BreakdownDay(BaseModel):
    date: str
    byok_cost: Decimal
    system_cost: Decimal
    byok_tokens: int
    system_tokens: int
    total_cost: Decimal
    total_tokens: int


class UserUsageBreakdown(BaseModel):
    """BYOK vs system-funded split of one user's recent usage."""

    user_id: uuid.UUID
    period: str
    start_date: int
    end_date: int
    byok_usage: FundingUsage
    system_usage: FundingUsage
    total_usage: UsageTotals
    daily_usage: list[BreakdownDay]


class DailyMetricsOut(BaseModel):
    """Stored app-wide snapshot of one UTC date."""

    model_config = ConfigDict(from_attributes=True)

    date: str
    total_users: int
    active_users: int
    total_conversations: int
    total_messages: int
    total_tokens_used: int
    total_cost: Decimal
    model_usage: dict[str, int]
    created_at: int


class UserActivityDay(BaseModel):
    date: str
    active_users: int
    requests: int
    messages: int


class StoreMetricsRequest(BaseModel):
    """Payload for POST /analytics/metrics/daily."""

    model_config = ConfigDict(extra="forbid")

    date: str | None = Field(
        default=None, pattern=r"^\d{4}-\d{2}-\d{2}$", examples=["2025-01-15"],
    )
