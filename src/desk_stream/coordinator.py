from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from typing import Any
from uuid import uuid4

from loguru import logger
from tenacity import AsyncRetrying, stop_after_attempt, wait_fixed

from desk_stream.app_config import StreamConfig
from desk_stream.backend import JobBackend
from desk_stream.completion import CompletionWatcher
from desk_stream.converter import messages_to_items
from desk_stream.errors import SubmitTurnError, SubscriptionError, TurnInProgressError
from desk_stream.logging_config import session_logger
from desk_stream.models import ConversationItem, EventType, JobStatus, MessageItem, StreamEvent
from desk_stream.polling import PollingFallbackSupervisor, PollingState
from desk_stream.reconciler import Reconciler
from desk_stream.streaming import EventDeduplicator, StreamState, apply_event, error_message
from desk_stream.view import ConversationView


def _log_status_retry(session, retry_state) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    session.log.warning(f"Status watch failed ({reason}); reconnecting (attempt {retry_state.attempt_number})")


class SessionMode:
    STREAMING = "streaming"
    POLLING = "polling"
    FINISHED = "finished"


class Session:
    """Runtime binding of one job to the conversation that owns it."""

    def __init__(
        self,
        *,
        conversation_id: str,
        job_id: str,
        state: StreamState,
        active_conversation: Callable[[], str | None],
    ):
        self.id = uuid4().hex
        self.conversation_id = conversation_id
        self.job_id = job_id
        self.state = state
        self.dedup = EventDeduplicator()
        self.mode = SessionMode.STREAMING
        self.stopped = False
        self.terminal_status: str | None = None
        self.status_lost = False
        self.polling: PollingFallbackSupervisor | None = None
        self.log = session_logger(conversation_id, job_id)
        self._active_conversation = active_conversation
        self.event_task: asyncio.Task | None = None
        self.status_task: asyncio.Task | None = None
        self.poll_task: asyncio.Task | None = None
        self.reconcile_task: asyncio.Task | None = None

    @property
    def finished(self) -> bool:
        return self.mode == SessionMode.FINISHED

    def is_current(self) -> bool:
        return not self.stopped and self._active_conversation() == self.conversation_id

    def tasks(self) -> list[asyncio.Task]:
        return [
            t
            for t in (self.event_task, self.status_task, self.poll_task, self.reconcile_task)
            if t is not None
        ]


class StreamSessionCoordinator:
    """Owns every job-stream session and the visible state they may touch.

    Submitting a turn and reopening a conversation with a running job both
    end in :meth:`start_session`. Only the session bound to the active
    conversation may write to the view; events reaching any other session
    are dropped.
    """

    def __init__(
        self,
        *,
        backend: JobBackend,
        view: ConversationView,
        active_conversation: Callable[[], str | None],
        config: StreamConfig | None = None,
    ):
        self._backend = backend
        self._view = view
        self._active_conversation = active_conversation
        self._config = config or StreamConfig()
        self._reconciler = Reconciler(
            backend,
            page_size=self._config.page_size,
            max_pages=self._config.max_pages,
            delay_seconds=self._config.reconcile_delay_seconds,
            max_attempts=self._config.reconcile_max_attempts,
        )
        self._sessions: dict[str, Session] = {}
        self._items: dict[str, list[ConversationItem]] = {}
        self._submitting: set[str] = set()

    # -- queries ---------------------------------------------------------

    def is_current(self, session: Session) -> bool:
        return session.is_current() and self._sessions.get(session.conversation_id) is session

    def session_for(self, conversation_id: str) -> Session | None:
        return self._sessions.get(conversation_id)

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def items_for(self, conversation_id: str) -> list[ConversationItem]:
        return list(self._items.get(conversation_id, []))

    # -- entry points ----------------------------------------------------

    async def submit_turn(self, conversation_id: str, text: str, **extra: Any) -> Session:
        existing = self._sessions.get(conversation_id)
        if conversation_id in self._submitting or (existing is not None and not existing.finished):
            raise TurnInProgressError(conversation_id)

        self._submitting.add(conversation_id)
        try:
            await self._await_reconciliation(conversation_id)
            items = self.items_for(conversation_id)
            items.append(MessageItem(id=f"local-{uuid4().hex}", role="user", text=text))
            self._items[conversation_id] = items
            if self._active_conversation() == conversation_id:
                self._view.on_items_changed(list(items))
                self._view.on_responding_changed(True)

            payload = {"message": text, **extra}
            try:
                job_id = await self._backend.submit_turn(conversation_id, payload)
            except Exception as ex:
                logger.error(f"Could not submit turn for conversation {conversation_id}: {ex}")
                if self._active_conversation() == conversation_id:
                    self._view.on_responding_changed(False)
                    self._view.on_error(f"Could not submit turn: {ex}")
                raise SubmitTurnError(str(ex)) from ex

            logger.info(f"Submitted turn for conversation {conversation_id}: job {job_id}")
            return await self.start_session(conversation_id, job_id)
        finally:
            self._submitting.discard(conversation_id)

    async def open_conversation(self, conversation_id: str) -> Session | None:
        """Load a conversation and reconnect to its running job, if it has one."""
        cached = self._items.get(conversation_id)
        if cached is not None and self._active_conversation() == conversation_id:
            self._view.on_items_changed(list(cached))

        try:
            messages = await self._reconciler.fetch_messages(conversation_id)
        except Exception as ex:
            logger.warning(f"Could not load messages for conversation {conversation_id}: {ex}")
        else:
            items = messages_to_items(messages)
            self._items[conversation_id] = items
            if self._active_conversation() == conversation_id:
                self._view.on_items_changed(list(items))

        try:
            job_id = await self._backend.fetch_active_job(conversation_id)
        except Exception as ex:
            logger.warning(f"Could not check for an active job in conversation {conversation_id}: {ex}")
            job_id = None

        if job_id is None:
            stale = self._sessions.get(conversation_id)
            if stale is not None and not stale.finished:
                await self.stop(stale)
            if self._active_conversation() == conversation_id:
                self._view.on_responding_changed(False)
            return None

        logger.info(f"Conversation {conversation_id} has running job {job_id}; reconnecting")
        return await self.start_session(conversation_id, job_id)

    async def start_session(self, conversation_id: str, job_id: str) -> Session:
        await self._await_reconciliation(conversation_id)
        prior = self._sessions.get(conversation_id)
        if prior is not None:
            await self.stop(prior)

        state = StreamState(
            items=tuple(self._items.get(conversation_id, [])),
            message_prefix=f"streaming-{job_id}-{uuid4().hex[:8]}",
        )
        session = Session(
            conversation_id=conversation_id,
            job_id=job_id,
            state=state,
            active_conversation=self._active_conversation,
        )
        self._sessions[conversation_id] = session
        if self.is_current(session):
            self._view.on_responding_changed(True)

        session.event_task = asyncio.create_task(self._consume_events(session))
        session.status_task = asyncio.create_task(self._watch_status(session))
        session.log.debug("Session started")
        return session

    async def stop(self, session: Session) -> None:
        """Unsubscribe the event log and status watch and discard the session."""
        session.stopped = True
        session.mode = SessionMode.FINISHED
        if self._sessions.get(session.conversation_id) is session:
            del self._sessions[session.conversation_id]

        current = asyncio.current_task()
        pending = [t for t in session.tasks() if t is not current and not t.done()]
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        session.log.debug("Session stopped")

    async def cancel_conversation(self, conversation_id: str) -> None:
        """Tear down everything held for a conversation (e.g. it was deleted)."""
        session = self._sessions.get(conversation_id)
        if session is not None:
            await self.stop(session)
        self._items.pop(conversation_id, None)

    async def shutdown(self) -> None:
        for session in list(self._sessions.values()):
            await self.stop(session)

    # -- event log -------------------------------------------------------

    async def _consume_events(self, session: Session) -> None:
        events = self._backend.subscribe_events(session.job_id)
        try:
            async for event in events:
                self._handle_event(session, event)
                if session.mode != SessionMode.STREAMING:
                    break
        except asyncio.CancelledError:
            raise
        except Exception as ex:
            session.log.warning(f"Event stream failed ({ex}); falling back to polling")
            self._start_polling(session)
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                with contextlib.suppress(Exception):
                    await aclose()

    def _handle_event(self, session: Session, event: StreamEvent) -> None:
        if not self.is_current(session):
            session.log.debug(f"Dropping event {event.id}: session is not current")
            return
        if not session.dedup.accept(event):
            session.log.debug(f"Ignoring duplicate event {event.id}")
            return

        session.state = apply_event(session.state, event)
        self._publish(session, list(session.state.items))

        if event.type == EventType.ERROR:
            session.log.warning(f"Job reported an error: {session.state.error}")
            self._finish(session, JobStatus.FAILED, error=error_message(event))

    # -- status ----------------------------------------------------------

    async def _watch_status(self, session: Session) -> None:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._config.status_watch_max_attempts),
                wait=wait_fixed(self._config.status_watch_retry_delay_seconds),
                before_sleep=lambda retry_state: _log_status_retry(session, retry_state),
                reraise=True,
            ):
                with attempt:
                    watcher = CompletionWatcher(
                        self._backend,
                        session.job_id,
                        on_terminal=lambda status: self._finish(session, status),
                    )
                    if await watcher.run() is None:
                        raise SubscriptionError(f"Status watch for job {session.job_id} ended early")
        except asyncio.CancelledError:
            raise
        except Exception as ex:
            session.log.warning(f"Status watch lost ({ex}); relying on polling")
            self._on_status_lost(session)

    def _on_status_lost(self, session: Session) -> None:
        session.status_lost = True
        if session.finished or session.stopped:
            return
        if session.mode == SessionMode.STREAMING:
            self._start_polling(session)
        elif session.polling is not None and session.polling.is_stopped:
            self._end_without_status(session)

    # -- polling fallback ------------------------------------------------

    def _start_polling(self, session: Session) -> None:
        if session.mode != SessionMode.STREAMING:
            return
        session.mode = SessionMode.POLLING
        current = asyncio.current_task()
        if session.event_task is not None and session.event_task is not current:
            session.event_task.cancel()
        session.polling = PollingFallbackSupervisor(
            fetch_messages=lambda: self._reconciler.fetch_messages(session.conversation_id),
            on_refresh=lambda messages: self._on_poll_refresh(session, messages),
            interval_seconds=self._config.poll_interval_seconds,
            max_attempts=self._config.poll_max_attempts,
            min_attempts_before_complete=self._config.poll_min_attempts_before_complete,
        )
        session.poll_task = asyncio.create_task(self._run_polling(session, session.polling))

    def _on_poll_refresh(self, session: Session, messages: list[dict[str, Any]]) -> None:
        items = messages_to_items(messages)
        self._items[session.conversation_id] = items
        if self.is_current(session):
            self._view.on_items_changed(list(items))

    async def _run_polling(self, session: Session, supervisor: PollingFallbackSupervisor) -> None:
        outcome = await supervisor.run()
        if session.mode != SessionMode.POLLING:
            return

        if self.is_current(session):
            self._view.on_responding_changed(False)

        if session.status_lost:
            self._end_without_status(session)
        elif outcome == PollingState.STOPPED_BY_COMPLETION:
            # The reply may be an intermediate message; the terminal status reconciles.
            session.log.info("Polling saw an assistant reply; waiting on the status record to reconcile")
        else:
            session.log.warning("Polling gave up; waiting on the status record alone")

    def _end_without_status(self, session: Session) -> None:
        # Event log and status record are both gone; the last poll stands.
        session.mode = SessionMode.FINISHED
        if session.polling is not None and session.polling.state == PollingState.STOPPED_BY_COMPLETION:
            session.terminal_status = JobStatus.COMPLETED
        session.log.warning("Ending session without a terminal status")
        self._release(session)

    # -- completion and reconciliation -----------------------------------

    def _finish(self, session: Session, status: str, *, error: str | None = None) -> None:
        if session.finished or session.stopped:
            return
        session.mode = SessionMode.FINISHED
        session.terminal_status = status
        session.log.info(f"Job reached terminal status {status}")

        current = asyncio.current_task()
        for task in (session.event_task, session.status_task, session.poll_task):
            if task is not None and task is not current and not task.done():
                task.cancel()

        if self.is_current(session):
            self._view.on_responding_changed(False)
            if status == JobStatus.FAILED:
                self._view.on_error(error or f"The assistant could not finish job {session.job_id}")

        session.reconcile_task = asyncio.create_task(self._reconcile(session))

    async def _reconcile(self, session: Session) -> None:
        items = await self._reconciler.reconcile(session.conversation_id)
        if session.stopped:
            return
        if items is None:
            session.log.warning("Keeping streamed state; the message store could not be read")
        else:
            self._items[session.conversation_id] = items
            if self.is_current(session):
                self._view.on_items_changed(list(items))
        self._release(session)

    def _release(self, session: Session) -> None:
        if self._sessions.get(session.conversation_id) is session:
            del self._sessions[session.conversation_id]
        session.stopped = True

    def _publish(self, session: Session, items: list[ConversationItem]) -> None:
        self._items[session.conversation_id] = items
        self._view.on_items_changed(list(items))

    async def _await_reconciliation(self, conversation_id: str) -> None:
        """Let a finished session's reconciliation land before the next turn reads the cache."""
        prior = self._sessions.get(conversation_id)
        if prior is None or not prior.finished or prior.reconcile_task is None:
            return
        if prior.reconcile_task is not asyncio.current_task():
            await asyncio.shield(prior.reconcile_task)
