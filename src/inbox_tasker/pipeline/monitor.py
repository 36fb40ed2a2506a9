"""Monitor orchestrator: session check → fetch → dedup → convert → mark, on a fixed cadence."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from inbox_tasker.config.settings import InboxTaskerSettings
from inbox_tasker.core.converter import ConversionPipeline
from inbox_tasker.core.exceptions import (
    ConversionError,
    FetchError,
    NotReadyError,
    TaskStoreError,
)
from inbox_tasker.core.fetcher import MessageFetcher
from inbox_tasker.core.models import (
    CycleResult,
    MonitorSession,
    MonitorState,
    Notification,
    RawMessage,
)
from inbox_tasker.core.ports import TaskStore
from inbox_tasker.core.provider import GmailProvider
from inbox_tasker.core.session import SessionGate
from inbox_tasker.pipeline.policy import FailurePolicy, MarkProcessedPolicy, policy_from_settings
from inbox_tasker.storage.ledger import DeduplicationLedger
from inbox_tasker.storage.task_store import SqliteTaskStore

logger = logging.getLogger(__name__)


class MonitorController:
    """Owns the monitoring state machine and the polling timer.

    States: STOPPED → STARTING → ACTIVE → STOPPED.

    start():  check provider readiness, sign in if needed, wait out a cycle
              still running from a stopped session, seed a fresh ledger from
              the task store, run one cycle right away, then arm the timer.
    tick:     re-check sign-in (auto-stop if lost), fetch the newest messages,
              convert the ones not in the ledger, mark them processed.
    stop():   disarm the timer. A cycle already running is allowed to finish.

    Only one timer task exists per session and it awaits each cycle before
    sleeping again, so cycles never overlap.
    """

    def __init__(
        self,
        gate: SessionGate,
        fetcher: MessageFetcher,
        pipeline: ConversionPipeline,
        task_store: TaskStore,
        *,
        poll_interval_seconds: float = 30.0,
        fetch_limit: int = 10,
        failure_policy: FailurePolicy | None = None,
        on_notify: Callable[[Notification], None] | None = None,
    ) -> None:
        if poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        if fetch_limit <= 0:
            raise ValueError("fetch_limit must be positive")

        self._gate = gate
        self._fetcher = fetcher
        self._pipeline = pipeline
        self._task_store = task_store
        self._poll_interval = poll_interval_seconds
        self._fetch_limit = fetch_limit
        self._failure_policy = failure_policy or MarkProcessedPolicy()
        self._on_notify = on_notify

        self._session: MonitorSession | None = None
        self._ledger: DeduplicationLedger | None = None
        self._timer: asyncio.Task[None] | None = None
        self._cycle_task: asyncio.Task[object] | None = None
        self._cycle_idle = asyncio.Event()
        self._cycle_idle.set()
        self._stopped = asyncio.Event()
        self._owned_store: SqliteTaskStore | None = None

    @classmethod
    def from_settings(
        cls,
        settings: InboxTaskerSettings | None = None,
        on_notify: Callable[[Notification], None] | None = None,
    ) -> MonitorController:
        """Wire up the Gmail provider and SQLite task store from configuration."""
        settings = settings or InboxTaskerSettings()
        settings.ensure_directories()

        provider = GmailProvider.from_settings(settings)
        store = SqliteTaskStore(settings.database_path)
        store.connect()

        controller = cls(
            SessionGate(provider),
            MessageFetcher(provider),
            ConversionPipeline(
                store,
                board_title=settings.board_title,
                group_title=settings.group_title,
                body_excerpt_chars=settings.body_excerpt_chars,
            ),
            store,
            poll_interval_seconds=settings.poll_interval_seconds,
            fetch_limit=settings.fetch_limit,
            failure_policy=policy_from_settings(settings),
            on_notify=on_notify,
        )
        controller._owned_store = store
        return controller

    @property
    def on_notify(self) -> Callable[[Notification], None] | None:
        return self._on_notify

    @on_notify.setter
    def on_notify(self, callback: Callable[[Notification], None] | None) -> None:
        self._on_notify = callback

    @property
    def state(self) -> MonitorState:
        return self._session.state if self._session else MonitorState.STOPPED

    @property
    def session(self) -> MonitorSession | None:
        return self._session

    @property
    def ledger(self) -> DeduplicationLedger | None:
        """Ledger of the current (or most recent) session."""
        return self._ledger

    @property
    def gate(self) -> SessionGate:
        return self._gate

    @property
    def task_store(self) -> TaskStore:
        return self._task_store

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_task is not None

    async def start(self) -> MonitorSession:
        """Start monitoring.

        Returns the active session. Calling start() while a session exists
        returns that session unchanged.

        Raises:
            NotReadyError: The mail provider is not initialized.
            AuthenticationError: Sign-in was rejected or cancelled.
            TaskStoreError: Existing processed IDs could not be loaded.
        """
        if self._session is not None:
            logger.debug("Monitoring already %s", self._session.state.value)
            return self._session

        session = MonitorSession(state=MonitorState.STARTING)
        self._session = session
        self._stopped.clear()

        try:
            await self._log_provider_status()

            if not await self._gate.is_ready():
                raise NotReadyError(
                    "Mail provider is not ready. Check your API credentials."
                )
            if not await self._gate.is_signed_in():
                await self._gate.sign_in()

            await self._wait_cycle_idle()
            ledger = DeduplicationLedger()
            ledger.seed(await self._load_processed_ids())
        except Exception as e:
            logger.error("Failed to start monitoring: %s", e)
            if self._session is session:
                self._end_session(session)
            self._notify(
                Notification(
                    title="Error",
                    detail=str(e) or "Failed to start email monitoring",
                    is_error=True,
                )
            )
            raise

        if self._session is not session:
            logger.info("Monitoring was stopped while starting")
            return session

        self._ledger = ledger
        session.state = MonitorState.ACTIVE
        self._notify(
            Notification(
                title="Automated Email Processing Started",
                detail=(
                    "New emails will be turned into tasks every "
                    f"{self._poll_interval:g} seconds"
                ),
            )
        )

        await self.poll_once()

        if self._session is session:
            self._timer = asyncio.create_task(
                self._tick_loop(session), name="inbox-tasker-poll"
            )
        return session

    async def resume(self) -> MonitorSession | None:
        """Start monitoring only if the provider already holds valid credentials.

        Never opens an interactive sign-in. Returns None when not connected.
        """
        if self._session is not None:
            return self._session
        if not await self._gate.is_ready() or not await self._gate.is_signed_in():
            logger.info("Not connected to mail provider; monitoring not resumed")
            return None
        return await self.start()

    def stop(self) -> None:
        """Stop monitoring. No-op when already stopped."""
        session = self._session
        if session is None:
            return
        self._end_session(session)
        logger.info("Monitoring stopped")
        self._notify(
            Notification(
                title="Automated Email Processing Stopped",
                detail="No longer automatically processing emails",
            )
        )

    async def wait_stopped(self) -> None:
        """Block until the current session ends."""
        if self._session is None:
            return
        await self._stopped.wait()

    def close(self) -> None:
        """Stop monitoring and release the task store created by from_settings()."""
        self.stop()
        if self._owned_store is not None:
            self._owned_store.close()
            self._owned_store = None

    async def poll_once(self) -> CycleResult | None:
        """Run one poll cycle now.

        Returns None when the monitor is not active or a cycle is already running.
        """
        session = self._session
        ledger = self._ledger
        if session is None or session.state is not MonitorState.ACTIVE or ledger is None:
            logger.debug("Monitor is not active; skipping poll")
            return None
        if self._cycle_task is not None:
            logger.debug("Poll cycle already in progress; skipping")
            return None

        self._cycle_task = asyncio.current_task()
        self._cycle_idle.clear()
        try:
            return await self._run_cycle(session, ledger)
        finally:
            self._cycle_task = None
            self._cycle_idle.set()

    async def _tick_loop(self, session: MonitorSession) -> None:
        while self._session is session:
            await asyncio.sleep(self._poll_interval)
            if self._session is not session:
                break
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Automated processing error")
                session.error_count += 1

    async def _run_cycle(self, session: MonitorSession, ledger: DeduplicationLedger) -> CycleResult:
        result = CycleResult()
        session.cycles += 1
        session.last_poll_at = datetime.now(UTC)

        if not await self._gate.is_signed_in():
            logger.warning("User not signed in, stopping automated processing")
            result.signed_out = True
            if self._session is session:
                self._end_session(session)
                self._notify(
                    Notification(
                        title="Email Monitoring Stopped",
                        detail="The mail account is no longer signed in. Sign in again to resume.",
                        is_error=True,
                    )
                )
            return result

        logger.debug("Checking for new emails to process")
        try:
            messages = await self._fetcher.fetch(self._fetch_limit)
        except FetchError as e:
            session.error_count += 1
            result.fetch_error = str(e)
            logger.error("Error checking for new emails: %s", e)
            if not session.fetch_failing:
                self._notify(Notification(title="Email Fetch Failed", detail=str(e), is_error=True))
            session.fetch_failing = True
            return result
        session.fetch_failing = False

        result.fetched = len(messages)
        new_messages = [m for m in messages if not ledger.has(m.message_id)]
        result.new = len(new_messages)
        result.skipped = result.fetched - result.new

        if not new_messages:
            logger.debug("No new emails to process")
            return result

        logger.info("Found %d new emails to process", len(new_messages))
        for message in new_messages:
            # Same ID twice in one batch
            if ledger.has(message.message_id):
                result.skipped += 1
                continue
            await self._process_message(message, session, ledger, result)

        return result

    async def _process_message(
        self,
        message: RawMessage,
        session: MonitorSession,
        ledger: DeduplicationLedger,
        result: CycleResult,
    ) -> None:
        logger.info("Auto-processing email: %s", message.subject)
        try:
            task = await self._pipeline.convert(message)
        except ConversionError as e:
            logger.error("Error auto-processing email %r: %s", message.subject, e)
            self._record_failure(message, session, ledger, result)
            return
        except Exception:
            logger.exception("Unexpected error auto-processing email %r", message.subject)
            self._record_failure(message, session, ledger, result)
            return

        ledger.add(message.message_id)
        session.failed_attempts.pop(message.message_id, None)
        result.converted += 1
        session.tasks_created += 1
        self._notify(
            Notification(
                title="New Task Created Automatically!",
                detail=f'Created task: "{task.title}" from email: "{message.subject}"',
            )
        )

    def _record_failure(
        self,
        message: RawMessage,
        session: MonitorSession,
        ledger: DeduplicationLedger,
        result: CycleResult,
    ) -> None:
        attempts = session.failed_attempts.get(message.message_id, 0) + 1
        if self._failure_policy.should_mark_processed(attempts):
            ledger.add(message.message_id)
            session.failed_attempts.pop(message.message_id, None)
        else:
            session.failed_attempts[message.message_id] = attempts
            logger.info(
                "Will retry email %r on a later cycle (failed %d times)",
                message.subject, attempts,
            )

        result.failed += 1
        session.conversions_failed += 1
        self._notify(
            Notification(
                title="Auto-Processing Error",
                detail=f'Failed to create task from email: "{message.subject}"',
                is_error=True,
            )
        )

    async def _wait_cycle_idle(self) -> None:
        """Let a cycle left over from a stopped session write its tasks first."""
        if self._cycle_task is None or self._cycle_task is asyncio.current_task():
            return
        logger.info("Waiting for the previous poll cycle to finish")
        await self._cycle_idle.wait()

    async def _load_processed_ids(self) -> list[str]:
        try:
            return await asyncio.to_thread(self._task_store.list_processed_message_ids)
        except TaskStoreError:
            raise
        except Exception as e:
            raise TaskStoreError(f"Failed to load processed message IDs: {e}") from e

    async def _log_provider_status(self) -> None:
        try:
            await self._gate.debug_status()
        except Exception as e:
            logger.warning("Could not read mail provider status: %s", e)

    def _end_session(self, session: MonitorSession) -> None:
        session.state = MonitorState.STOPPED
        self._session = None
        timer, self._timer = self._timer, None
        # A timer running the current cycle exits on its own once the cycle ends
        if timer is not None and not timer.done() and timer is not self._cycle_task:
            timer.cancel()
        self._stopped.set()

    def _notify(self, notification: Notification) -> None:
        """Log the notification and send it to the callback if registered."""
        if notification.is_error:
            logger.warning("%s: %s", notification.title, notification.detail)
        else:
            logger.info("%s: %s", notification.title, notification.detail)
        if self._on_notify:
            self._on_notify(notification)
