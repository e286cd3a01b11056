# ==============================================================================
# Tracking Agent
# ==============================================================================
"""
Per-page-load tracking agent.

The agent captures interaction and lifecycle events from its Page, queues
them and delivers them in batches through a Transport. Everything runs on
the host's asyncio event loop:

- Capture callbacks, the idle timer (loop.call_later) and flush dispatch
  interleave cooperatively, so the queue needs no lock.
- Transport I/O runs in a worker thread (asyncio.to_thread) and never
  blocks the loop.
- A flush-in-progress flag keeps at most one send in flight. Triggers that
  arrive meanwhile are coalesced and re-evaluated once the send completes.
- A failed batch is put back at the front of the queue in its original
  order and retried on the next trigger (at-least-once delivery).

Failures are logged and never propagate into the host page.
"""

import asyncio
import functools
import logging
import time
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable

from clickpulse.agent.config import resolve_embed_config
from clickpulse.agent.page import DomEvent, Page
from clickpulse.agent.session import SessionIdentity
from clickpulse.agent.transport import HttpTransport
from clickpulse.base.transport import Transport
from clickpulse.core.models import EventType, TrackingEvent
from clickpulse.utils.config import AgentSettings

logger = logging.getLogger(__name__)

# Upper bound for a forced (unload) flush; matches the ingestion batch limit
MAX_FORCED_BATCH = 500


def _never_raise(method):
    """Log and swallow any failure of a page-facing callback."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except Exception as e:
            logger.warning("Tracking callback %s failed: %s", method.__name__, e)
            logger.debug("Callback failure details", exc_info=True)
            return None

    return wrapper


class TrackingAgent:
    """
    Tracking agent bound to one page load.

    Args:
        page: Host page to instrument
        transport: Batch transport
        site_credential: Credential of the tracked site
        settings: Batching and session settings
        debug: Raise the agent loggers to DEBUG
        clock: Returns epoch seconds (timestamps, throttling, session expiry)
    """

    def __init__(
        self,
        page: Page,
        transport: Transport,
        site_credential: str,
        settings: AgentSettings | None = None,
        debug: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.page = page
        self.transport = transport
        self.site_credential = site_credential
        self.settings = settings or AgentSettings()
        self.identity = SessionIdentity(page.storage, self.settings.session_timeout_minutes, clock)
        self._clock = clock

        self._queue: deque[TrackingEvent] = deque()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._send_task: asyncio.Task | None = None
        self._flushing = False
        self._flush_pending = False
        self._force_pending = False
        self._last_scroll: float | None = None
        self._ended = False
        self._running = False

        self._listeners = [
            ("click", self._on_click),
            ("submit", self._on_submit),
            ("scroll", self._on_scroll),
            ("navigate", self._on_navigate),
            ("visibilitychange", self._on_visibility_change),
            ("beforeunload", self._on_before_unload),
        ]

        if debug:
            logging.getLogger("clickpulse.agent").setLevel(logging.DEBUG)

    @classmethod
    def from_page(
        cls,
        page: Page,
        settings: AgentSettings | None = None,
        transport: Transport | None = None,
        **kwargs,
    ) -> "TrackingAgent":
        """
        Build an agent from the page's embed configuration.

        Raises:
            MissingCredentialError: If the page configures no site credential
        """
        settings = settings or AgentSettings()
        config = resolve_embed_config(page.globals, page.script_src, settings)
        transport = transport or HttpTransport(config.endpoint, settings.request_timeout_seconds)
        return cls(page, transport, config.site_credential, settings, debug=config.debug, **kwargs)

    # ==========================================================================
    # State
    # ==========================================================================

    @property
    def queue(self) -> list[TrackingEvent]:
        """Snapshot of the unflushed events, oldest first."""
        return list(self._queue)

    @property
    def session_id(self) -> str | None:
        return self.identity.session_id

    @property
    def flushing(self) -> bool:
        return self._flushing

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    def start(self) -> None:
        """
        Attach to the page and emit session_start and page_view.

        Must be called from a running event loop.
        """
        self._loop = asyncio.get_running_loop()
        for event_type, listener in self._listeners:
            self.page.add_listener(event_type, listener)
        self._running = True

        self._capture(EventType.SESSION_START, self._session_metadata())
        self._capture(
            EventType.PAGE_VIEW, {"title": self.page.title, "referrer": self.page.referrer}
        )
        logger.debug("Tracking agent started for session %s", self.session_id)

    def stop(self) -> None:
        """Detach from the page and cancel the idle timer. Queued events stay queued."""
        self._cancel_timer()
        for event_type, listener in self._listeners:
            self.page.remove_listener(event_type, listener)
        self._running = False

    async def drain(self) -> None:
        """Wait until no send is in flight."""
        while self._send_task is not None and not self._send_task.done():
            await self._send_task

    def close(self) -> None:
        self.stop()
        self.transport.close()

    # ==========================================================================
    # Public API
    # ==========================================================================

    @_never_raise
    def track(
        self,
        event_type: EventType | str,
        metadata: dict[str, Any] | None = None,
        element_id: str | None = None,
    ) -> None:
        """Manually record an event of any known type."""
        self._capture(EventType(event_type), dict(metadata or {}), element_id)

    @_never_raise
    def flush(self, force: bool = False) -> None:
        """Trigger a flush now (a forced flush sends the whole queue)."""
        self._request_flush(force)

    # ==========================================================================
    # Capture
    # ==========================================================================

    def _session_metadata(self) -> dict[str, Any]:
        screen_w, screen_h = self.page.screen
        view_w, view_h = self.page.viewport
        return {
            "user_agent": self.page.user_agent,
            "screen_resolution": f"{screen_w}x{screen_h}",
            "viewport": f"{view_w}x{view_h}",
            "referrer": self.page.referrer,
        }

    def _build(
        self,
        event_type: EventType,
        session_id: str,
        metadata: dict[str, Any],
        element_id: str | None = None,
    ) -> TrackingEvent:
        return TrackingEvent(
            event_type=event_type,
            session_id=session_id,
            page_url=self.page.url,
            timestamp=datetime.fromtimestamp(self._clock(), tz=timezone.utc),
            site_credential=self.site_credential,
            element_id=element_id,
            event_id=uuid.uuid4().hex,
            metadata=metadata,
        )

    def _capture(
        self,
        event_type: EventType,
        metadata: dict[str, Any],
        element_id: str | None = None,
    ) -> None:
        session_id, renewed = self.identity.resolve()
        if renewed and event_type != EventType.SESSION_START:
            logger.debug("Session expired; started %s", session_id)
            self._enqueue(self._build(EventType.SESSION_START, session_id, self._session_metadata()))
        self.identity.touch()
        self._enqueue(self._build(event_type, session_id, metadata, element_id))

    @_never_raise
    def _on_click(self, event: DomEvent) -> None:
        target = event.target
        if target is None:
            return
        self._capture(
            EventType.CLICK,
            {
                "tag_name": target.tag_name.upper(),
                "classes": target.classes,
                "text": target.text.strip()[:50],
                "x": event.client_x,
                "y": event.client_y,
            },
            element_id=target.id or target.class_name or target.tag_name,
        )

    @_never_raise
    def _on_submit(self, event: DomEvent) -> None:
        form = event.target
        if form is None:
            return
        self._capture(
            EventType.FORM_SUBMIT,
            {
                "form_action": form.action or self.page.url,
                "form_method": (form.method or "get").upper(),
                "form_fields": [{"name": name, "type": kind} for name, kind in form.fields],
            },
            element_id=form.id or form.class_name or None,
        )

    @_never_raise
    def _on_scroll(self, event: DomEvent) -> None:
        now = self._clock()
        if (
            self._last_scroll is not None
            and now - self._last_scroll < self.settings.scroll_throttle_seconds
        ):
            return
        self._last_scroll = now

        max_scroll = self.page.max_scroll
        percentage = round(self.page.scroll_y / max_scroll * 100) if max_scroll > 0 else 0
        self._capture(
            EventType.SCROLL, {"scroll_percentage": percentage, "scroll_y": self.page.scroll_y}
        )

    @_never_raise
    def _on_navigate(self, event: DomEvent) -> None:
        self._capture(
            EventType.PAGE_VIEW, {"title": self.page.title, "referrer": self.page.referrer}
        )

    @_never_raise
    def _on_visibility_change(self, event: DomEvent) -> None:
        if self.page.visibility_state == "hidden":
            self._end_session()
        else:
            self._ended = False

    @_never_raise
    def _on_before_unload(self, event: DomEvent) -> None:
        self._end_session()

    def _end_session(self) -> None:
        if self._ended:
            return
        self._ended = True

        started_at = self.identity.started_at
        duration_ms = int((self._clock() - started_at) * 1000) if started_at else 0
        self._capture(EventType.SESSION_END, {"session_duration_ms": duration_ms})
        self._request_flush(force=True)

    # ==========================================================================
    # Queue and flush
    # ==========================================================================

    def _enqueue(self, event: TrackingEvent) -> None:
        if len(self._queue) >= self.settings.max_queue_size:
            dropped = self._queue.popleft()
            logger.warning(
                "Event queue full (%d); dropped oldest %s event",
                self.settings.max_queue_size,
                dropped.event_type.value,
            )
        self._queue.append(event)
        logger.debug("Queued %s event (%d pending)", event.event_type.value, len(self._queue))

        if len(self._queue) >= self.settings.batch_size:
            self._request_flush()
        else:
            self._arm_timer()

    def _arm_timer(self) -> None:
        if self._timer is None and self._loop is not None:
            self._timer = self._loop.call_later(
                self.settings.batch_timeout_seconds, self._on_timer
            )

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @_never_raise
    def _on_timer(self) -> None:
        self._timer = None
        self._request_flush()

    def _request_flush(self, force: bool = False) -> None:
        if self._loop is None:
            return
        if self._flushing:
            self._flush_pending = True
            self._force_pending = self._force_pending or force
            return
        if not self._queue:
            return

        self._cancel_timer()
        limit = MAX_FORCED_BATCH if force else self.settings.batch_size
        batch = [self._queue.popleft() for _ in range(min(limit, len(self._queue)))]
        self._flushing = True
        self._send_task = self._loop.create_task(self._send(batch))

        if self._queue:
            self._arm_timer()

    async def _send(self, batch: list[TrackingEvent]) -> None:
        failed = False
        try:
            await asyncio.to_thread(self.transport.send, [e.to_wire() for e in batch])
        except asyncio.CancelledError:
            self._requeue(batch)
            raise
        except Exception as e:
            failed = True
            logger.warning("Failed to deliver %d events, requeued: %s", len(batch), e)
            self._requeue(batch)
        else:
            logger.debug("Flushed %d events", len(batch))
        finally:
            self._flushing = False
            self._send_task = None

        self._after_flush(failed)

    def _requeue(self, batch: list[TrackingEvent]) -> None:
        self._queue.extendleft(reversed(batch))
        overflow = len(self._queue) - self.settings.max_queue_size
        if overflow > 0:
            for _ in range(overflow):
                self._queue.popleft()
            logger.warning("Event queue full after requeue; dropped %d oldest events", overflow)

    def _after_flush(self, failed: bool) -> None:
        pending, force = self._flush_pending, self._force_pending
        self._flush_pending = self._force_pending = False
        if not self._queue:
            return

        # A failed batch waits for the next trigger instead of retrying in a loop
        if failed:
            self._arm_timer()
        elif force or pending or len(self._queue) >= self.settings.batch_size:
            self._request_flush(force)
        else:
            self._arm_timer()
