"""Dataclasses for the Inbox Tasker domain model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class RawMessage:
    """One inbound email as returned by the mail provider."""

    message_id: str
    from_address: str
    sender_email: str
    sender_name: str
    subject: str
    received_at: datetime
    body_text: str
    recipient_address: str = ""
    sender_organization: str | None = None
    thread_id: str = ""
    snippet: str = ""
    # Set when the provider fetched the message but could not parse it
    parse_error: str | None = None

    @classmethod
    def unparsed(cls, message_id: str, error: str) -> RawMessage:
        """Stand-in for a fetched message whose content could not be parsed."""
        return cls(
            message_id=message_id,
            from_address="",
            sender_email="",
            sender_name="",
            subject=f"(unparseable message {message_id})",
            received_at=datetime.fromtimestamp(0, UTC),
            body_text="",
            parse_error=error,
        )


@dataclass(frozen=True)
class TaskRequest:
    """Fields submitted to the task store to create one task."""

    title: str
    description: str
    board_title: str
    group_title: str
    sender_email: str
    sender_name: str
    sender_company: str
    gmail_message_id: str
    email_received_at: datetime
    inquiry_id: str
    subject: str = ""
    status: str = "New"


@dataclass(frozen=True)
class TaskRecord:
    """A task as persisted by the task store."""

    task_id: int
    title: str
    description: str
    status: str
    board_id: int
    group_id: int
    sender_email: str
    sender_name: str
    sender_company: str
    gmail_message_id: str
    inquiry_id: str
    email_received_at: datetime
    created_at: datetime


class MonitorState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    ACTIVE = "active"


@dataclass
class MonitorSession:
    """Mutable state of one monitoring session."""

    state: MonitorState = MonitorState.STOPPED
    started_at: datetime = field(default_factory=_utcnow)
    last_poll_at: datetime | None = None
    error_count: int = 0
    cycles: int = 0
    tasks_created: int = 0
    conversions_failed: int = 0
    # Failed conversions per message ID, for the bounded retry policy
    failed_attempts: dict[str, int] = field(default_factory=dict)
    fetch_failing: bool = False


@dataclass(frozen=True)
class Notification:
    """User-facing event emitted by the monitor."""

    title: str
    detail: str
    is_error: bool = False
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class CycleResult:
    """Counts for a single poll cycle."""

    fetched: int = 0
    new: int = 0
    converted: int = 0
    failed: int = 0
    skipped: int = 0
    fetch_error: str | None = None
    signed_out: bool = False
