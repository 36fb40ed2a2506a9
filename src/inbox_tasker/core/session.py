"""Async gate around the mail provider's readiness and credential state."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from inbox_tasker.core.exceptions import AuthenticationError
from inbox_tasker.core.ports import MailProvider

logger = logging.getLogger(__name__)


class SessionGate:
    """Answers "can we poll right now?" and performs sign-in.

    No retries happen here; the monitor decides what to do with a failure.
    """

    def __init__(self, provider: MailProvider) -> None:
        self._provider = provider

    async def is_ready(self) -> bool:
        return await asyncio.to_thread(self._provider.is_ready)

    async def is_signed_in(self) -> bool:
        return await asyncio.to_thread(self._provider.is_signed_in)

    async def sign_in(self) -> None:
        """Sign in through the provider.

        Raises:
            AuthenticationError: The provider rejected the credentials, or
                ``AuthCancelledError`` when the flow was aborted.
        """
        try:
            await asyncio.to_thread(self._provider.sign_in)
        except AuthenticationError:
            raise
        except Exception as e:
            raise AuthenticationError(f"Sign-in failed: {e}") from e
        logger.info("Signed in to mail provider")

    async def sign_out(self) -> None:
        await asyncio.to_thread(self._provider.sign_out)

    async def force_reauth(self) -> None:
        """Drop current credentials and sign in again."""
        logger.info("Forcing re-authentication")
        await self.sign_out()
        await self.sign_in()

    async def debug_status(self) -> dict[str, Any]:
        status = await asyncio.to_thread(self._provider.debug_status)
        logger.debug("Mail provider status: %s", status)
        return status
