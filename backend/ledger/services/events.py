"""
Usage event — the input of the record path.

A frozen dataclass rather than the HTTP schema so the ledger can be driven
from anywhere (router, worker, replay) and validated the same way.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal

from ledger.core.errors import ValidationError
from ledger.models.usage import COST_PRECISION, COST_SCALE, UsageRecord

_MAX_COST = Decimal(10) ** (COST_PRECISION - COST_SCALE)


@dataclass(frozen=True, slots=True)
class UsageEvent:
    """One completed LLM call as reported by the gateway.

    cost_in_usd is taken verbatim: the gateway already reports USD, so no
    scaling is applied anywhere downstream.
    """

    user_id: uuid.UUID
    conversation_id: uuid.UUID
    message_id: uuid.UUID
    generation_id: str
    model_slug: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    cost_in_credits: Decimal
    cost_in_usd: Decimal
    timestamp: int
    cached_tokens: int | None = None
    reasoning_tokens: int | None = None
    processing_time_ms: int | None = None

    @classmethod
    def from_record(cls, record: UsageRecord) -> UsageEvent:
        return cls(
            user_id=record.user_id,
            conversation_id=record.conversation_id,
            message_id=record.message_id,
            generation_id=record.generation_id,
            model_slug=record.model_slug,
            prompt_tokens=record.prompt_tokens,
            completion_tokens=record.completion_tokens,
            total_tokens=record.total_tokens,
            cost_in_credits=Decimal(record.cost_in_credits),
            cost_in_usd=Decimal(record.cost_in_usd),
            timestamp=record.timestamp,
            cached_tokens=record.cached_tokens,
            reasoning_tokens=record.reasoning_tokens,
            processing_time_ms=record.processing_time_ms,
        )

    def to_record(self) -> UsageRecord:
        return UsageRecord(
            user_id=self.user_id,
            conversation_id=self.conversation_id,
            message_id=self.message_id,
            generation_id=self.generation_id,
            model_slug=self.model_slug,
            prompt_tokens=self.prompt_tokens,
            completion_tokens=self.completion_tokens,
            total_tokens=self.total_tokens,
            cached_tokens=self.cached_tokens,
            reasoning_tokens=self.reasoning_tokens,
            cost_in_credits=self.cost_in_credits,
            cost_in_usd=self.cost_in_usd,
            timestamp=self.timestamp,
            processing_time_ms=self.processing_time_ms,
        )


def validate_usage_event(event: UsageEvent) -> None:
    """
    Reject malformed events before anything is written.

    Raises:
        ValidationError: missing identifiers, negative numbers, costs the
                         store cannot hold exactly, or
                         total_tokens != prompt_tokens + completion_tokens.
    """
    for name in ("user_id", "conversation_id", "message_id"):
        if getattr(event, name) is None:
            raise ValidationError(f"{name} is required")
    for name in ("generation_id", "model_slug"):
        value = getattr(event, name)
        if not value or not value.strip():
            raise ValidationError(f"{name} is required")

    for name in ("prompt_tokens", "completion_tokens", "total_tokens", "timestamp"):
        value = getattr(event, name)
        if value is None:
            raise ValidationError(f"{name} is required")
        if value < 0:
            raise ValidationError(f"{name} must be non-negative, got {value}")
    for name in ("cached_tokens", "reasoning_tokens", "processing_time_ms"):
        value = getattr(event, name)
        if value is not None and value < 0:
            raise ValidationError(f"{name} must be non-negative, got {value}")
    for name in ("cost_in_credits", "cost_in_usd"):
        value = getattr(event, name)
        if value is None:
            raise ValidationError(f"{name} is required")
        if not value.is_finite():
            raise ValidationError(f"{name} must be a finite number, got {value}")
        if value < 0:
            raise ValidationError(f"{name} must be non-negative, got {value}")
        if value >= _MAX_COST:
            raise ValidationError(f"{name} is out of range, got {value}")
        if value.normalize().as_tuple().exponent < -COST_SCALE:
            raise ValidationError(f"{name} has more than {COST_SCALE} decimal places, got {value}")

    expected = event.prompt_tokens + event.completion_tokens
    if event.total_tokens != expected:
        raise ValidationError(
            f"total_tokens ({event.total_tokens}) must equal prompt_tokens + "
            f"completion_tokens ({expected})"
        )
