"""Inbox Tasker - Poll a Gmail inbox and turn new emails into tasks."""

from inbox_tasker.core.models import (
    CycleResult,
    MonitorSession,
    MonitorState,
    Notification,
    RawMessage,
    TaskRecord,
    TaskRequest,
)
from inbox_tasker.pipeline.monitor import MonitorController

__all__ = [
    "CycleResult",
    "MonitorController",
    "MonitorSession",
    "MonitorState",
    "Notification",
    "RawMessage",
    "TaskRecord",
    "TaskRequest",
]
