"""
Admin audit log schemas.

`details` is a closed tagged union keyed on `action`: every admin action
has exactly one shape, validated on write and on read. Adding an action
means adding a variant here.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class AggregatesRebuilt(BaseModel):
    action: Literal["aggregates_rebuilt"] = "aggregates_rebuilt"
    period: str
    period_key: str
    rows_written: int


class QuotaUpdated(BaseModel):
    action: Literal["quota_updated"] = "quota_updated"
    user_id: uuid.UUID
    quota_type: str
    limit: Decimal
    previous_limit: Decimal | None = None


class AlertResolved(BaseModel):
    action: Literal["alert_resolved"] = "alert_resolved"
    alert_id: uuid.UUID
    alert_type: str


class ModelToggled(BaseModel):
    action: Literal["model_toggled"] = "model_toggled"
    slug: str
    is_enabled: bool


AdminActionDetails = Annotated[
    Union[AggregatesRebuilt, QuotaUpdated, AlertResolved, ModelToggled],
    Field(discriminator="action"),
]

details_adapter: TypeAdapter[AdminActionDetails] = TypeAdapter(AdminActionDetails)


class AdminLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    admin_id: uuid.UUID
    action: str
    target_type: str | None
    target_id: str | None
    details: AdminActionDetails
    timestamp: int


class RebuildRequest(BaseModel):
    """Payload for POST /admin/aggregates/rebuild."""

    model_config = ConfigDict(extra="forbid")

    admin_id: uuid.UUID
    period: Literal["daily", "weekly", "monthly"]
    period_key: str = Field(..., min_length=7, max_length=10, examples=["2025-01-01", "2025-W01", "2025-01"])


class RebuildResult(BaseModel):
    period: str
    period_key: str
    rows_written: int


class ModelToggle(BaseModel):
    """Payload for PATCH /admin/models/{slug}."""

    model_config = ConfigDict(extra="forbid")

    admin_id: uuid.UUID
    is_enabled: bool


class AdminActivitySummary(BaseModel):
    total_actions: int
    action_counts: dict[str, int]
    admin_activity: dict[str, int]
    time_range: str
