"""Turn an inbound email into a task creation request and submit it."""

from __future__ import annotations

import asyncio
import logging
import re

from inbox_tasker.core.exceptions import ConversionError
from inbox_tasker.core.models import RawMessage, TaskRecord, TaskRequest
from inbox_tasker.core.parser import extract_email
from inbox_tasker.core.ports import TaskStore

logger = logging.getLogger(__name__)

COMMON_PROVIDERS = ("gmail", "yahoo", "hotmail", "outlook", "aol")

_TLD_SUFFIX = re.compile(r"\.(com|org|net|edu|gov|io|co)(\.[a-z]{2})?$", re.IGNORECASE)

_SIGNATURE_PATTERNS = (
    re.compile(r"Best regards,?\s*\n(.+?)\n", re.IGNORECASE),
    re.compile(r"Thanks,?\s*\n(.+?)\n", re.IGNORECASE),
    re.compile(r"Sincerely,?\s*\n(.+?)\n", re.IGNORECASE),
    re.compile(r"\n(.+?)\s+(?:Inc|Corp|LLC|Ltd|Company|Co\.)\s*$", re.IGNORECASE | re.MULTILINE),
)


def derive_sender_name(sender_name: str, sender_email: str) -> str:
    """Display name if present, otherwise a name built from the address local part.

    ``john.doe@acme.com`` becomes ``John Doe``.
    """
    if sender_name.strip():
        return sender_name.strip()
    local, sep, _ = sender_email.partition("@")
    if sep and local:
        parts = [p for p in re.split(r"[._-]", local) if p]
        if parts:
            return " ".join(p.capitalize() for p in parts)
    return "Unknown Sender"


def derive_company(sender_email: str, body: str) -> str:
    """Infer the sender's organization from the address domain or the body signature."""
    _, _, domain = sender_email.partition("@")
    domain = domain.strip().lower()

    if domain and not any(provider in domain for provider in COMMON_PROVIDERS):
        stem = _TLD_SUFFIX.sub("", domain)
        return " ".join(part.capitalize() for part in stem.split(".") if part)

    for pattern in _SIGNATURE_PATTERNS:
        match = pattern.search(body)
        if match and match.group(1).strip():
            return match.group(1).strip()

    return domain.split(".")[0] if domain else "Unknown Company"


class ConversionPipeline:
    """Builds a task request from a message and submits it once to the task store."""

    def __init__(
        self,
        task_store: TaskStore,
        *,
        board_title: str = "Sales Tracker Board",
        group_title: str = "New Inquiry",
        body_excerpt_chars: int = 4000,
    ) -> None:
        self._task_store = task_store
        self._board_title = board_title
        self._group_title = group_title
        self._body_excerpt_chars = body_excerpt_chars

    def build_request(self, message: RawMessage) -> TaskRequest:
        """Derive every task field from the message. Same input, same request."""
        sender_email = message.sender_email or extract_email(message.from_address)
        sender_name = derive_sender_name(message.sender_name, sender_email)
        company = message.sender_organization or derive_company(sender_email, message.body_text)
        subject = message.subject.strip() or "(no subject)"

        received_ms = int(message.received_at.timestamp() * 1000)
        company_code = re.sub(r"\s", "", company[:8].upper())
        inquiry_id = f"INQ-{received_ms}-{company_code}"

        return TaskRequest(
            title=f"New Inquiry - {subject}",
            description=self._build_description(
                message, subject, sender_email, sender_name, company, inquiry_id
            ),
            board_title=self._board_title,
            group_title=self._group_title,
            sender_email=sender_email,
            sender_name=sender_name,
            sender_company=company,
            gmail_message_id=message.message_id,
            email_received_at=message.received_at,
            inquiry_id=inquiry_id,
            subject=subject,
        )

    def _build_description(
        self,
        message: RawMessage,
        subject: str,
        sender_email: str,
        sender_name: str,
        company: str,
        inquiry_id: str,
    ) -> str:
        received = message.received_at.strftime("%Y-%m-%d %H:%M:%S")
        lines = [
            "**Original Email:**",
            f"From: {sender_name} <{sender_email}>",
            f"Date: {received}",
            f"Subject: {subject}",
            "",
            "**Sender Information:**",
            f"Name: {sender_name}",
            f"Email: {sender_email}",
            f"Company: {company}",
            "",
            "**Inquiry Details:**",
            f"Inquiry ID: {inquiry_id}",
            f"Received: {received}",
            "",
            "**Message:**",
            self._excerpt(message.body_text),
        ]
        return "\n".join(lines).strip()

    def _excerpt(self, body: str) -> str:
        body = body.strip()
        if len(body) <= self._body_excerpt_chars:
            return body
        return body[: self._body_excerpt_chars].rstrip() + "…"

    async def convert(self, message: RawMessage) -> TaskRecord:
        """Create one task for ``message``.

        Raises:
            ConversionError: If the request could not be built or the store
                rejected it. Not retried here.
        """
        if message.parse_error is not None:
            raise ConversionError(
                f"Could not parse message {message.message_id}: {message.parse_error}"
            )

        try:
            request = self.build_request(message)
        except Exception as e:
            raise ConversionError(
                f"Could not build task for message {message.message_id}: {e}"
            ) from e

        try:
            task = await asyncio.to_thread(self._task_store.create_task, request)
        except Exception as e:
            raise ConversionError(
                f"Failed to create task from email {message.subject!r}: {e}"
            ) from e

        logger.info("Created task %r from email %r", task.title, message.subject)
        return task
