"""Protocols for the two external collaborators of the monitor.

The monitor only talks to a mail provider and a task store through these
interfaces, so tests can hand in in-memory fakes.
"""

from __future__ import annotations

from typing import Any, Protocol

from inbox_tasker.core.models import RawMessage, TaskRecord, TaskRequest


class MailProvider(Protocol):
    """Blocking mail provider client (readiness, credentials, listing)."""

    def is_ready(self) -> bool: ...

    def is_signed_in(self) -> bool: ...

    def sign_in(self) -> None: ...

    def sign_out(self) -> None: ...

    def list_recent_messages(self, limit: int) -> list[RawMessage]: ...

    def debug_status(self) -> dict[str, Any]: ...


class TaskStore(Protocol):
    """Blocking persistent store of created tasks."""

    def create_task(self, request: TaskRequest) -> TaskRecord: ...

    def list_processed_message_ids(self) -> list[str]: ...
