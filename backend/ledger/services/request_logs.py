"""
Per-request logging: the failure side of metering.

The chat backend logs a request as "pending" when it starts and updates it
with the outcome when it finishes. usage_records only ever holds successful
completions; this log keeps errors, their messages and timings too.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from collections import Counter
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.core.database import commit_or_raise
from ledger.core.errors import NotFoundError, ValidationError
from ledger.models.request_log import (
    REQUEST_STATUSES,
    STATUS_ERROR,
    STATUS_PENDING,
    STATUS_SUCCESS,
    RequestLog,
)
from ledger.models.user import User
from ledger.schemas.request_log import RequestLogOut, RequestStats, RequestUser
from ledger.services.ledger import require_user
from ledger.services.periods import trailing_window_start

logger = logging.getLogger(__name__)

UNKNOWN_ERROR = "Unknown error"


def _validate_status(status: str) -> None:
    if status not in REQUEST_STATUSES:
        raise ValidationError(f"Unknown request status '{status}'")


async def log_request(
    session: AsyncSession,
    user_id: uuid.UUID,
    request_type: str,
    method: str,
    endpoint: str,
    timestamp: int,
    status: str = STATUS_PENDING,
    conversation_id: uuid.UUID | None = None,
    message_id: uuid.UUID | None = None,
    user_agent: str | None = None,
    ip_address: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> RequestLog:
    """Insert a request; processing_time_ms stays 0 until update_request."""
    _validate_status(status)
    if timestamp < 0:
        raise ValidationError(f"timestamp must be non-negative, got {timestamp}")
    await require_user(session, user_id)

    entry = RequestLog(
        user_id=user_id,
        conversation_id=conversation_id,
        message_id=message_id,
        request_type=request_type,
        method=method,
        endpoint=endpoint,
        status=status,
        timestamp=timestamp,
        user_agent=user_agent,
        ip_address=ip_address,
        metadata_=metadata,
        processing_time_ms=0,
    )
    session.add(entry)
    await commit_or_raise(session, "logging request")
    logger.debug("Logged %s request %s for user %s", request_type, entry.id, user_id)
    return entry


async def update_request(
    session: AsyncSession,
    request_id: uuid.UUID,
    status: str,
    processing_time_ms: int,
    status_code: int | None = None,
    error_message: str | None = None,
    request_size: int | None = None,
    response_size: int | None = None,
) -> RequestLog:
    """Record the outcome of a logged request."""
    _validate_status(status)
    if processing_time_ms < 0:
        raise ValidationError(f"processing_time_ms must be non-negative, got {processing_time_ms}")

    entry = await session.get(RequestLog, request_id)
    if entry is None:
        raise NotFoundError(f"Request {request_id} does not exist")

    entry.status = status
    entry.processing_time_ms = processing_time_ms
    entry.status_code = status_code
    entry.error_message = error_message
    entry.request_size = request_size
    entry.response_size = response_size
    await commit_or_raise(session, "updating request")

    if status == STATUS_ERROR:
        logger.warning("Request %s failed: %s", request_id, error_message or UNKNOWN_ERROR)
    return entry


async def get_recent_requests(
    session: AsyncSession,
    limit: int = 100,
    user_id: uuid.UUID | None = None,
    status: str | None = None,
) -> list[RequestLogOut]:
    """Newest requests first, with the user's name and email."""
    if limit < 1:
        raise ValidationError("limit must be positive")
    stmt = select(RequestLog, User).outerjoin(User, User.id == RequestLog.user_id)
    if user_id is not None:
        stmt = stmt.where(RequestLog.user_id == user_id)
    if status is not None:
        _validate_status(status)
        stmt = stmt.where(RequestLog.status == status)
    stmt = stmt.order_by(RequestLog.timestamp.desc(), RequestLog.id).limit(limit)

    requests = []
    for entry, user in (await session.execute(stmt)).all():
        item = RequestLogOut.model_validate(entry)
        if user is not None:
            item.user = RequestUser(name=user.name, email=user.email)
        requests.append(item)
    return requests


async def get_request_stats(
    session: AsyncSession,
    period: str | None = None,
    user_id: uuid.UUID | None = None,
    now: datetime.datetime | None = None,
) -> RequestStats:
    """
    Request counts by status and type over a trailing window (all time when
    no period), with failures grouped by error message.
    """
    stmt = select(RequestLog)
    if period is not None:
        stmt = stmt.where(RequestLog.timestamp >= trailing_window_start(period, now))
    if user_id is not None:
        stmt = stmt.where(RequestLog.user_id == user_id)
    requests = (await session.execute(stmt)).scalars().all()

    statuses = Counter(r.status for r in requests)
    count = len(requests)
    return RequestStats(
        total_requests=count,
        successful_requests=statuses[STATUS_SUCCESS],
        failed_requests=statuses[STATUS_ERROR],
        pending_requests=statuses[STATUS_PENDING],
        avg_processing_time=sum(r.processing_time_ms for r in requests) / count if count else 0.0,
        request_types=dict(Counter(r.request_type for r in requests)),
        error_breakdown=dict(
            Counter(r.error_message or UNKNOWN_ERROR for r in requests if r.status == STATUS_ERROR)
        ),
    )
