from __future__ import annotations

from datetime import UTC, datetime
import hashlib

from postflow.domain.models import ContentStatus

# Stands in for a missing schedule so unscheduled publishes still hash stably.
UNSCHEDULED_SENTINEL = "none"


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def format_instant(value: datetime) -> str:
    """Render an instant as ISO-8601 UTC with millisecond precision, e.g. 2030-01-01T00:00:00.000Z."""
    instant = to_utc(value)
    return instant.strftime("%Y-%m-%dT%H:%M:%S.") + f"{instant.microsecond // 1000:03d}Z"


def build_idempotency_key(content_id: str, channel_id: str, scheduled_at: datetime | None = None) -> str:
    scheduled = format_instant(scheduled_at) if scheduled_at is not None else UNSCHEDULED_SENTINEL
    raw = f"{content_id}:{channel_id}:{scheduled}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def can_schedule(status: str, scheduled_at: datetime | None, now: datetime | None = None) -> bool:
    if status != ContentStatus.APPROVED:
        return False
    if scheduled_at is None:
        return False
    reference = to_utc(now) if now is not None else datetime.now(tz=UTC)
    return to_utc(scheduled_at) > reference
