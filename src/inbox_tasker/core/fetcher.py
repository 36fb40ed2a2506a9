"""Retrieve the most recent messages from the mail provider."""

from __future__ import annotations

import asyncio
import logging

from inbox_tasker.core.exceptions import FetchError
from inbox_tasker.core.models import RawMessage
from inbox_tasker.core.ports import MailProvider

logger = logging.getLogger(__name__)


class MessageFetcher:
    """Stateless wrapper over ``MailProvider.list_recent_messages``."""

    def __init__(self, provider: MailProvider) -> None:
        self._provider = provider

    async def fetch(self, limit: int) -> list[RawMessage]:
        """Return up to ``limit`` messages in provider order (most recent first).

        Raises:
            ValueError: If ``limit`` is not a positive integer.
            FetchError: On any provider failure, including lost credentials.
        """
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValueError(f"limit must be a positive integer, got {limit!r}")

        try:
            messages = await asyncio.to_thread(self._provider.list_recent_messages, limit)
        except FetchError:
            raise
        except Exception as e:
            raise FetchError(f"Failed to fetch recent messages: {e}") from e

        logger.debug("Fetched %d recent messages", len(messages))
        return list(messages)
