"""
Pydantic v2 schemas for quotas and threshold alerts.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["low", "medium", "high", "critical"]


class QuotaUpdate(BaseModel):
    """Payload for PUT /alerts/quotas."""

    model_config = ConfigDict(extra="forbid")

    admin_id: uuid.UUID
    user_id: uuid.UUID
    quota_type: str = Field(
        ...,
        pattern=r"^(daily|weekly|monthly)_(tokens|cost)$",
        examples=["monthly_tokens", "daily_cost"],
    )
    limit: Decimal = Field(..., gt=0)


class QuotaOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    quota_type: str
    limit_value: Decimal
    is_active: bool


class AlertAction(BaseModel):
    """Payload for alert state changes made by an admin."""

    model_config = ConfigDict(extra="forbid")

    admin_id: uuid.UUID


class AlertOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    alert_type: str
    severity: Severity
    title: str
    message: str
    user_id: uuid.UUID | None
    metadata: dict[str, Any] | None = Field(
        default=None,
        # Maps to the ORM attribute `metadata_` (column name is `metadata`)
        validation_alias="metadata_",
    )
    is_read: bool
    is_resolved: bool
    created_at: int
    resolved_at: int | None


class AlertStats(BaseModel):
    total_alerts: int
    unread_alerts: int
    unresolved_alerts: int
    severity_breakdown: dict[str, int]
    type_breakdown: dict[str, int]
