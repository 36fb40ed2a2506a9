"""Gmail message parser: MIME tree walking, base64url decoding, header extraction."""

from __future__ import annotations

import base64
import logging
import re
from datetime import UTC, datetime
from email.utils import parseaddr, parsedate_to_datetime
from typing import Any

import trafilatura

from inbox_tasker.core.exceptions import ParseError
from inbox_tasker.core.models import RawMessage

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_BARE_ADDRESS = re.compile(r"([^\s<>\"]+@[^\s<>\"]+)")


def extract_email(from_header: str) -> str:
    """Return the address part of a From header (``"A <a@x.com>"`` -> ``a@x.com``)."""
    _, address = parseaddr(from_header)
    if address and "@" in address:
        return address.strip()
    match = _BARE_ADDRESS.search(from_header)
    return match.group(1).strip() if match else from_header.strip()


def extract_name(from_header: str) -> str:
    """Return the display name of a From header, or an empty string."""
    name, _ = parseaddr(from_header)
    return name.strip().strip("'\"")


class GmailParser:
    """Parses raw Gmail API message dicts into RawMessage objects."""

    def parse(self, raw_message: dict[str, Any]) -> RawMessage:
        """Parse a raw Gmail API message dict (format=full).

        Raises:
            ParseError: If the message structure is invalid.
        """
        try:
            message_id = raw_message["id"]
            payload = raw_message.get("payload", {})
            headers = self._extract_headers(payload)
            from_header = headers.get("from", "")

            return RawMessage(
                message_id=message_id,
                from_address=from_header,
                sender_email=extract_email(from_header),
                sender_name=extract_name(from_header),
                subject=headers.get("subject", "(no subject)"),
                received_at=self._received_at(raw_message, headers.get("date", "")),
                body_text=self._extract_body_text(payload),
                recipient_address=headers.get("to", ""),
                thread_id=raw_message.get("threadId", ""),
                snippet=raw_message.get("snippet", ""),
            )
        except ParseError:
            raise
        except Exception as e:
            raise ParseError(f"Failed to parse message {raw_message.get('id', '?')}: {e}") from e

    @staticmethod
    def _extract_headers(payload: dict[str, Any]) -> dict[str, str]:
        headers: dict[str, str] = {}
        for h in payload.get("headers", []):
            name = h.get("name", "").lower()
            if name in ("subject", "from", "to", "date"):
                headers[name] = h.get("value", "")
        return headers

    def _extract_body_text(self, payload: dict[str, Any]) -> str:
        """Return the plain-text body, converting HTML when that is all there is."""
        plain_text, html = self._walk_parts(payload)

        if plain_text is None and html is None:
            # Try the top-level body directly
            body_data = payload.get("body", {}).get("data")
            if body_data:
                decoded = self._decode_body(body_data)
                if "html" in payload.get("mimeType", ""):
                    html = decoded
                else:
                    plain_text = decoded

        if plain_text:
            return plain_text
        if html:
            return self._html_to_text(html)
        return ""

    def _walk_parts(self, part: dict[str, Any]) -> tuple[str | None, str | None]:
        """Recursively walk MIME parts to find text/plain and text/html."""
        plain_text: str | None = None
        html: str | None = None
        mime_type = part.get("mimeType", "")

        if mime_type == "text/plain":
            data = part.get("body", {}).get("data")
            if data:
                plain_text = self._decode_body(data)
        elif mime_type == "text/html":
            data = part.get("body", {}).get("data")
            if data:
                html = self._decode_body(data)
        elif mime_type.startswith("multipart/"):
            for sub_part in part.get("parts", []):
                # Skip attachments
                if sub_part.get("filename"):
                    continue

                sub_plain, sub_html = self._walk_parts(sub_part)
                if sub_plain and not plain_text:
                    plain_text = sub_plain
                if sub_html and not html:
                    html = sub_html

        return plain_text, html

    @staticmethod
    def _html_to_text(html: str) -> str:
        try:
            text = trafilatura.extract(
                html,
                output_format="txt",
                favor_recall=True,
                include_links=True,
                include_tables=True,
            )
        except Exception as e:
            logger.warning("Trafilatura extraction failed: %s", e)
            text = None
        return text or ""

    @staticmethod
    def _decode_body(data: str) -> str:
        """Decode base64url-encoded body data."""
        # Gmail uses base64url encoding (RFC 4648 §5)
        padded = data + "=" * (4 - len(data) % 4) if len(data) % 4 else data
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")

    @staticmethod
    def _received_at(raw_message: dict[str, Any], date_str: str) -> datetime:
        """Prefer Gmail's internalDate (epoch millis), then the Date header."""
        internal_date = raw_message.get("internalDate")
        if internal_date:
            try:
                return datetime.fromtimestamp(int(internal_date) / 1000, tz=UTC)
            except (TypeError, ValueError):
                logger.warning("Invalid internalDate: %s", internal_date)
        if not date_str:
            return _EPOCH
        try:
            return parsedate_to_datetime(date_str)
        except Exception:
            logger.warning("Failed to parse date: %s", date_str)
            return _EPOCH
