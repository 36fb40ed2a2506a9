"""SQLite-backed task store for tasks created from inbound email."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from inbox_tasker.core.exceptions import TaskStoreError
from inbox_tasker.core.models import TaskRecord, TaskRequest

logger = logging.getLogger(__name__)

DEFAULT_BOARD_COLOR = "#10B981"


class SqliteTaskStore:
    """Implements the TaskStore protocol in SQLite.

    Tables:
    - boards / task_groups: containers a task is filed under (found or created by title)
    - tasks: one row per created task, keyed back to its Gmail message ID
    - activity_log: audit trail of EMAIL_RECEIVED events
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Open database connection and ensure schema exists."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._create_tables()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> SqliteTaskStore:
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    def _create_tables(self) -> None:
        """Create tables if they don't exist."""
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS boards (
                board_id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL UNIQUE,
                background_color TEXT DEFAULT '',
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS task_groups (
                group_id INTEGER PRIMARY KEY AUTOINCREMENT,
                board_id INTEGER NOT NULL,
                title TEXT NOT NULL,
                color TEXT DEFAULT '',
                position INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                UNIQUE (board_id, title),
                FOREIGN KEY (board_id) REFERENCES boards(board_id)
            );

            CREATE TABLE IF NOT EXISTS tasks (
                task_id INTEGER PRIMARY KEY AUTOINCREMENT,
                board_id INTEGER NOT NULL,
                group_id INTEGER NOT NULL,
                title TEXT NOT NULL,
                description TEXT DEFAULT '',
                status TEXT NOT NULL DEFAULT 'New',
                position INTEGER NOT NULL DEFAULT 0,
                sender_email TEXT DEFAULT '',
                sender_name TEXT DEFAULT '',
                sender_company TEXT DEFAULT '',
                gmail_message_id TEXT,
                email_received_at TEXT DEFAULT '',
                custom_fields TEXT DEFAULT '{}',
                created_at TEXT NOT NULL,
                FOREIGN KEY (board_id) REFERENCES boards(board_id),
                FOREIGN KEY (group_id) REFERENCES task_groups(group_id)
            );

            CREATE INDEX IF NOT EXISTS idx_tasks_gmail_message_id ON tasks(gmail_message_id);

            CREATE TABLE IF NOT EXISTS activity_log (
                activity_id INTEGER PRIMARY KEY AUTOINCREMENT,
                task_id INTEGER NOT NULL,
                action TEXT NOT NULL,
                details TEXT DEFAULT '{}',
                created_at TEXT NOT NULL,
                FOREIGN KEY (task_id) REFERENCES tasks(task_id)
            );
        """)

    def ensure_board(self, title: str) -> int:
        """Return the ID of the board with ``title``, creating it if missing."""
        row = self.conn.execute(
            "SELECT board_id FROM boards WHERE title = ?", (title,)
        ).fetchone()
        if row:
            return row["board_id"]

        cursor = self.conn.execute(
            "INSERT INTO boards (title, background_color, created_at) VALUES (?, ?, ?)",
            (title, DEFAULT_BOARD_COLOR, datetime.now(UTC).isoformat()),
        )
        logger.info("Created board %r", title)
        return cursor.lastrowid

    def ensure_group(self, board_id: int, title: str) -> int:
        """Return the ID of group ``title`` on a board, creating it at position 0."""
        row = self.conn.execute(
            "SELECT group_id FROM task_groups WHERE board_id = ? AND title = ?",
            (board_id, title),
        ).fetchone()
        if row:
            return row["group_id"]

        cursor = self.conn.execute(
            """INSERT INTO task_groups (board_id, title, color, position, created_at)
               VALUES (?, ?, ?, 0, ?)""",
            (board_id, title, DEFAULT_BOARD_COLOR, datetime.now(UTC).isoformat()),
        )
        logger.info("Created group %r on board %d", title, board_id)
        return cursor.lastrowid

    def create_task(self, request: TaskRequest) -> TaskRecord:
        """Insert a task for an inbound email and log an EMAIL_RECEIVED activity.

        Raises:
            TaskStoreError: If the task row could not be written.
        """
        now = datetime.now(UTC)
        try:
            with self.conn:
                board_id = self.ensure_board(request.board_title)
                group_id = self.ensure_group(board_id, request.group_title)
                cursor = self.conn.execute(
                    """INSERT INTO tasks
                       (board_id, group_id, title, description, status, position,
                        sender_email, sender_name, sender_company, gmail_message_id,
                        email_received_at, custom_fields, created_at)
                       VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        board_id,
                        group_id,
                        request.title,
                        request.description,
                        request.status,
                        request.sender_email,
                        request.sender_name,
                        request.sender_company,
                        request.gmail_message_id,
                        request.email_received_at.isoformat(),
                        json.dumps({"inquiry_id": request.inquiry_id}),
                        now.isoformat(),
                    ),
                )
        except sqlite3.Error as e:
            raise TaskStoreError(
                f"Failed to create task for message {request.gmail_message_id}: {e}"
            ) from e

        task_id = cursor.lastrowid
        self._log_email_received(task_id, request)
        logger.debug("Created task %d for message %s", task_id, request.gmail_message_id)

        return TaskRecord(
            task_id=task_id,
            title=request.title,
            description=request.description,
            status=request.status,
            board_id=board_id,
            group_id=group_id,
            sender_email=request.sender_email,
            sender_name=request.sender_name,
            sender_company=request.sender_company,
            gmail_message_id=request.gmail_message_id,
            inquiry_id=request.inquiry_id,
            email_received_at=request.email_received_at,
            created_at=now,
        )

    def _log_email_received(self, task_id: int, request: TaskRequest) -> None:
        details = {
            "from": request.sender_email,
            "sender_name": request.sender_name,
            "subject": request.subject,
            "company": request.sender_company,
            "gmail_message_id": request.gmail_message_id,
            "inquiry_id": request.inquiry_id,
        }
        try:
            with self.conn:
                self.conn.execute(
                    """INSERT INTO activity_log (task_id, action, details, created_at)
                       VALUES (?, 'EMAIL_RECEIVED', ?, ?)""",
                    (task_id, json.dumps(details), datetime.now(UTC).isoformat()),
                )
        except sqlite3.Error as e:
            # Task row is already committed
            logger.error("Failed to log activity for task %d: %s", task_id, e)

    def list_processed_message_ids(self) -> list[str]:
        """Gmail message IDs of every task created so far."""
        try:
            rows = self.conn.execute(
                "SELECT DISTINCT gmail_message_id FROM tasks "
                "WHERE gmail_message_id IS NOT NULL AND gmail_message_id != ''"
            ).fetchall()
        except sqlite3.Error as e:
            raise TaskStoreError(f"Failed to list processed message IDs: {e}") from e
        return [row["gmail_message_id"] for row in rows]

    def get_task(self, task_id: int) -> dict[str, Any] | None:
        """Get full task record by ID, with custom_fields decoded."""
        row = self.conn.execute(
            "SELECT * FROM tasks WHERE task_id = ?", (task_id,)
        ).fetchone()
        if not row:
            return None
        task = dict(row)
        task["custom_fields"] = json.loads(task.get("custom_fields") or "{}")
        return task

    def get_activity(self, task_id: int) -> list[dict[str, Any]]:
        """Activity rows for a task, oldest first."""
        rows = self.conn.execute(
            "SELECT action, details, created_at FROM activity_log "
            "WHERE task_id = ? ORDER BY activity_id",
            (task_id,),
        ).fetchall()
        return [
            {
                "action": row["action"],
                "details": json.loads(row["details"] or "{}"),
                "created_at": row["created_at"],
            }
            for row in rows
        ]

    def count_tasks(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) AS cnt FROM tasks").fetchone()
        return row["cnt"]
