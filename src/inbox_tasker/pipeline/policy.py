"""Rules for marking a message processed after its conversion failed."""

from __future__ import annotations

from typing import Protocol

from inbox_tasker.config.settings import InboxTaskerSettings


class FailurePolicy(Protocol):
    def should_mark_processed(self, attempts: int) -> bool:
        """Return True if a message that has failed ``attempts`` times goes into the ledger."""
        ...


class MarkProcessedPolicy:
    """Never retry: a failed message is marked processed right away."""

    def should_mark_processed(self, attempts: int) -> bool:
        return True

    def __repr__(self) -> str:
        return "MarkProcessedPolicy()"


class BoundedRetryPolicy:
    """Retry a failed message on later cycles, giving up after ``max_attempts`` failures."""

    def __init__(self, max_attempts: int = 3) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts

    def should_mark_processed(self, attempts: int) -> bool:
        return attempts >= self.max_attempts

    def __repr__(self) -> str:
        return f"BoundedRetryPolicy(max_attempts={self.max_attempts})"


def policy_from_settings(settings: InboxTaskerSettings) -> FailurePolicy:
    if settings.failure_policy == "retry":
        return BoundedRetryPolicy(settings.max_conversion_attempts)
    return MarkProcessedPolicy()
