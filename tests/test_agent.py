# ==============================================================================
# Tests for the Tracking Agent
# ==============================================================================
"""
Unit tests for the tracking agent, its session identity and embed config.

Tests cover:
- Lifecycle events on start, stop and page hide/unload
- Size and idle-timeout flush triggers
- Requeue of failed batches ahead of newer events
- At most one send in flight
- Scroll throttling and session expiry with an injected clock
- Queue bound and never-raising callbacks
- Session id format and persistence
- Embed configuration precedence
"""

import asyncio
import re

import pytest

from clickpulse.agent import (
    DomEvent,
    Element,
    Page,
    RecordingTransport,
    SessionIdentity,
    SessionStorage,
    TrackingAgent,
    generate_session_id,
    resolve_embed_config,
)
from clickpulse.errors import MissingCredentialError
from clickpulse.utils.config import AgentSettings

START_EPOCH = 1714564800.0
CREDENTIAL = "site-key-123"


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now=START_EPOCH):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_agent(page=None, clock=None, **settings):
    settings.setdefault("batch_timeout_seconds", 0.05)
    page = page or Page("https://shop.example.com/home", title="Home")
    transport = RecordingTransport()
    agent = TrackingAgent(
        page,
        transport,
        CREDENTIAL,
        AgentSettings(**settings),
        clock=clock or FakeClock(),
    )
    return agent, page, transport


def event_types(events):
    return [e["event_type"] if isinstance(e, dict) else e.event_type.value for e in events]


# ==============================================================================
# Lifecycle
# ==============================================================================


class TestLifecycle:
    """Tests for start, stop and end-of-session handling."""

    def test_start_emits_session_start_and_page_view(self):
        async def scenario():
            agent, page, _ = make_agent(page=Page("https://x.example/", referrer="https://ref.example/"))
            agent.start()
            queue = agent.queue
            agent.stop()
            return queue

        queue = asyncio.run(scenario())

        assert event_types(queue) == ["session_start", "page_view"]
        assert queue[0].metadata["screen_resolution"] == "1920x1080"
        assert queue[0].metadata["viewport"] == "1280x720"
        assert queue[1].metadata["referrer"] == "https://ref.example/"
        assert queue[0].session_id == queue[1].session_id

    def test_start_requires_running_loop(self):
        agent, _, _ = make_agent()
        with pytest.raises(RuntimeError):
            agent.start()

    def test_stop_detaches_listeners(self):
        async def scenario():
            agent, page, _ = make_agent()
            agent.start()
            assert page.listener_count("click") == 1
            agent.stop()
            page.click(Element("button", id="late"))
            return agent, page

        agent, page = asyncio.run(scenario())
        assert page.listener_count("click") == 0
        assert "click" not in event_types(agent.queue)

    def test_hide_emits_single_session_end_and_forces_flush(self):
        async def scenario():
            clock = FakeClock()
            agent, page, transport = make_agent(clock=clock, batch_timeout_seconds=60)
            agent.start()
            clock.advance(12)
            page.hide()
            page.hide()
            page.unload()
            await agent.drain()
            agent.stop()
            return transport

        transport = asyncio.run(scenario())

        assert event_types(transport.events) == ["session_start", "page_view", "session_end"]
        assert transport.events[-1]["session_duration_ms"] == 12000

    def test_visible_again_rearms_session_end(self):
        async def scenario():
            agent, page, transport = make_agent(batch_timeout_seconds=60)
            agent.start()
            page.hide()
            await agent.drain()
            page.show()
            page.hide()
            await agent.drain()
            agent.stop()
            return transport

        transport = asyncio.run(scenario())
        assert event_types(transport.events).count("session_end") == 2


# ==============================================================================
# Capture
# ==============================================================================


class TestCapture:
    """Tests for DOM event capture."""

    def test_click_metadata(self):
        async def scenario():
            agent, page, _ = make_agent()
            agent.start()
            page.click(Element("button", class_name="btn primary", text="  Add to cart  "), 40, 80)
            agent.stop()
            return agent.queue[-1]

        click = asyncio.run(scenario())

        assert click.event_type.value == "click"
        assert click.element_id == "btn primary"
        assert click.metadata == {
            "tag_name": "BUTTON",
            "classes": ["btn", "primary"],
            "text": "Add to cart",
            "x": 40,
            "y": 80,
        }

    def test_click_text_truncated(self):
        async def scenario():
            agent, page, _ = make_agent()
            agent.start()
            page.click(Element("a", id="long", text="x" * 80))
            agent.stop()
            return agent.queue[-1]

        assert len(asyncio.run(scenario()).metadata["text"]) == 50

    def test_submit_metadata(self):
        async def scenario():
            agent, page, _ = make_agent()
            agent.start()
            page.submit(
                Element("form", id="signup", method="post", fields=[("email", "email"), ("pw", "password")])
            )
            agent.stop()
            return agent.queue[-1]

        submit = asyncio.run(scenario())

        assert submit.element_id == "signup"
        assert submit.metadata["form_action"] == "https://shop.example.com/home"
        assert submit.metadata["form_method"] == "POST"
        assert submit.metadata["form_fields"] == [
            {"name": "email", "type": "email"},
            {"name": "pw", "type": "password"},
        ]

    def test_navigation_emits_page_view(self):
        async def scenario():
            agent, page, _ = make_agent()
            agent.start()
            page.navigate("https://shop.example.com/cart", title="Cart")
            agent.stop()
            return agent.queue[-1]

        view = asyncio.run(scenario())
        assert view.event_type.value == "page_view"
        assert view.page_url == "https://shop.example.com/cart"
        assert view.metadata["title"] == "Cart"

    def test_scroll_is_throttled(self):
        async def scenario():
            clock = FakeClock()
            page = Page("https://x.example/", scroll_height=2720)
            agent, page, _ = make_agent(page=page, clock=clock)
            agent.start()
            page.scroll_to(1000)
            clock.advance(0.5)
            page.scroll_to(1500)
            clock.advance(0.5)
            page.scroll_to(5000)
            agent.stop()
            return [e for e in agent.queue if e.event_type.value == "scroll"]

        scrolls = asyncio.run(scenario())

        assert [s.metadata["scroll_percentage"] for s in scrolls] == [50, 100]
        assert [s.metadata["scroll_y"] for s in scrolls] == [1000, 2000]

    def test_expired_session_starts_new_one(self):
        async def scenario():
            clock = FakeClock()
            agent, page, _ = make_agent(clock=clock, batch_size=50)
            agent.start()
            first_id = agent.session_id
            clock.advance(31 * 60)
            agent.track("click", element_id="after-break")
            agent.stop()
            return first_id, agent

        first_id, agent = asyncio.run(scenario())
        queue = agent.queue

        assert event_types(queue) == ["session_start", "page_view", "session_start", "click"]
        assert agent.session_id != first_id
        assert [e.session_id for e in queue[2:]] == [agent.session_id] * 2

    def test_session_shared_across_page_loads(self):
        async def scenario():
            storage = SessionStorage()
            first, _, _ = make_agent(page=Page("https://x.example/a", storage=storage))
            second, _, _ = make_agent(page=Page("https://x.example/b", storage=storage))
            first.start()
            second.start()
            first.stop()
            second.stop()
            return first, second

        first, second = asyncio.run(scenario())
        assert first.session_id == second.session_id
        assert event_types(second.queue) == ["session_start", "page_view"]

    def test_events_carry_identity_and_time(self):
        async def scenario():
            agent, _, _ = make_agent()
            agent.start()
            agent.stop()
            return agent.queue[0]

        event = asyncio.run(scenario())
        assert event.site_credential == CREDENTIAL
        assert event.event_id
        assert event.timestamp.timestamp() == START_EPOCH


# ==============================================================================
# Batching and Flush
# ==============================================================================


class TestBatching:
    """Tests for flush triggers, requeue and the in-flight guard."""

    def test_size_then_timeout_flush(self):
        async def scenario():
            agent, _, transport = make_agent(batch_size=10)
            agent.start()
            for n in range(8):
                agent.track("click", element_id=f"c{n}")
            await agent.drain()
            sizes_after_size_trigger = [len(b) for b in transport.batches]

            agent.track("click", element_id="late-1")
            agent.track("click", element_id="late-2")
            await asyncio.sleep(0.15)
            await agent.drain()
            agent.stop()
            return sizes_after_size_trigger, transport

        first_sizes, transport = asyncio.run(scenario())

        assert first_sizes == [10]
        assert [len(b) for b in transport.batches] == [10, 2]
        assert [e.get("element_id") for e in transport.batches[1]] == ["late-1", "late-2"]

    def test_failed_batch_requeued_ahead_of_newer_events(self):
        async def scenario():
            agent, _, transport = make_agent(batch_size=5)
            transport.fail_next()
            agent.start()
            for n in range(3):
                agent.track("click", element_id=f"c{n}")
            agent.track("click", element_id="newer")
            await agent.drain()
            state_after_failure = (transport.attempts, len(agent.queue))

            await asyncio.sleep(0.15)
            await agent.drain()
            await asyncio.sleep(0.15)
            await agent.drain()
            agent.stop()
            return state_after_failure, transport

        state_after_failure, transport = asyncio.run(scenario())

        # no retry until the next trigger
        assert state_after_failure == (1, 6)
        assert [e.get("element_id") for e in transport.events] == [
            None,
            None,
            "c0",
            "c1",
            "c2",
            "newer",
        ]
        assert event_types(transport.events)[:2] == ["session_start", "page_view"]

    def test_single_send_in_flight(self):
        async def scenario():
            agent, _, transport = make_agent(batch_size=2)
            agent.start()
            assert agent.flushing
            task = agent._send_task

            agent.track("click", element_id="a")
            agent.track("click", element_id="b")
            agent.flush(force=True)
            assert agent._send_task is task

            await agent.drain()
            agent.stop()
            return transport

        transport = asyncio.run(scenario())
        assert [len(b) for b in transport.batches] == [2, 2]

    def test_manual_flush_sends_queue(self):
        async def scenario():
            agent, _, transport = make_agent(batch_timeout_seconds=60)
            agent.start()
            agent.flush()
            await agent.drain()
            agent.stop()
            return agent, transport

        agent, transport = asyncio.run(scenario())
        assert [len(b) for b in transport.batches] == [2]
        assert agent.queue == []

    def test_queue_overflow_drops_oldest(self):
        async def scenario():
            agent, _, _ = make_agent(batch_size=10, max_queue_size=3)
            agent.start()
            agent.track("click", element_id="c0")
            agent.track("click", element_id="c1")
            agent.stop()
            return agent.queue

        queue = asyncio.run(scenario())
        assert event_types(queue) == ["page_view", "click", "click"]

    def test_wire_format(self):
        async def scenario():
            agent, page, transport = make_agent(batch_timeout_seconds=60)
            agent.start()
            page.click(Element("button", id="buy"))
            agent.flush()
            await agent.drain()
            agent.stop()
            return transport.events[-1]

        click = asyncio.run(scenario())

        assert click["event_type"] == "click"
        assert click["element_id"] == "buy"
        assert click["site_credential"] == CREDENTIAL
        assert click["tag_name"] == "BUTTON"
        assert click["timestamp"].startswith("2024-05-01T12:00:00")


# ==============================================================================
# Failure Isolation
# ==============================================================================


class TestNeverRaise:
    """Agent failures must never reach the host page."""

    def test_broken_click_target(self):
        async def scenario():
            agent, page, _ = make_agent()
            agent.start()
            page.dispatch("click", DomEvent("click", target=object()))
            agent.stop()
            return agent.queue

        assert event_types(asyncio.run(scenario())) == ["session_start", "page_view"]

    def test_unknown_event_type(self):
        agent, _, _ = make_agent()
        assert agent.track("hover") is None
        assert agent.queue == []

    def test_unexpected_transport_error_requeues(self):
        class ExplodingTransport(RecordingTransport):
            def send(self, events):
                raise RuntimeError("socket closed")

        async def scenario():
            page = Page("https://x.example/")
            agent = TrackingAgent(
                page,
                ExplodingTransport(),
                CREDENTIAL,
                AgentSettings(batch_timeout_seconds=60),
                clock=FakeClock(),
            )
            agent.start()
            agent.flush()
            await agent.drain()
            agent.stop()
            return agent.queue

        assert event_types(asyncio.run(scenario())) == ["session_start", "page_view"]


class TestFromPage:
    """Tests for TrackingAgent.from_page()."""

    def test_uses_page_globals(self):
        page = Page("https://x.example/", globals={"siteCredential": "from-global"})
        agent = TrackingAgent.from_page(page, transport=RecordingTransport())
        assert agent.site_credential == "from-global"

    def test_missing_credential(self):
        with pytest.raises(MissingCredentialError):
            TrackingAgent.from_page(Page("https://x.example/"), transport=RecordingTransport())


# ==============================================================================
# Session Identity
# ==============================================================================


class TestSessionIdentity:
    """Tests for SessionIdentity and generate_session_id()."""

    def test_id_format(self):
        session_id = generate_session_id(START_EPOCH)
        assert re.fullmatch(r"sess_1714564800000_[0-9a-z]{9}", session_id)

    def test_ids_are_unique(self):
        assert generate_session_id(START_EPOCH) != generate_session_id(START_EPOCH)

    def test_resolve_mints_once(self):
        identity = SessionIdentity(SessionStorage(), clock=FakeClock())
        first, renewed = identity.resolve()
        second, renewed_again = identity.resolve()

        assert renewed is True
        assert renewed_again is False
        assert first == second
        assert identity.started_at == START_EPOCH

    def test_expiry_after_inactivity(self):
        clock = FakeClock()
        identity = SessionIdentity(SessionStorage(), timeout_minutes=30, clock=clock)
        first, _ = identity.resolve()

        clock.advance(30 * 60)
        assert not identity.is_expired()
        clock.advance(1)
        assert identity.is_expired()

        second, renewed = identity.resolve()
        assert renewed is True
        assert second != first

    def test_touch_extends_session(self):
        clock = FakeClock()
        identity = SessionIdentity(SessionStorage(), timeout_minutes=30, clock=clock)
        identity.resolve()
        clock.advance(20 * 60)
        identity.touch()
        clock.advance(20 * 60)
        assert not identity.is_expired()


# ==============================================================================
# Embed Configuration
# ==============================================================================


class TestEmbedConfig:
    """Tests for resolve_embed_config()."""

    def test_globals_take_precedence(self):
        config = resolve_embed_config(
            {"siteCredential": "global-key", "endpoint": "https://global.example/api/track"},
            "https://cdn.example/tracker.js?key=query-key&api=https://query.example/api/track",
        )
        assert config.site_credential == "global-key"
        assert config.endpoint == "https://global.example/api/track"

    def test_query_parameters(self):
        config = resolve_embed_config(
            {}, "https://cdn.example/tracker.js?key=query-key&api=https://query.example/api/track&debug=1"
        )
        assert config.site_credential == "query-key"
        assert config.endpoint == "https://query.example/api/track"
        assert config.debug is True

    def test_alternate_global_names(self):
        config = resolve_embed_config({"site_credential": "k1", "apiUrl": "https://alt.example/t"})
        assert config.site_credential == "k1"
        assert config.endpoint == "https://alt.example/t"

    def test_default_endpoint(self):
        config = resolve_embed_config(
            {"siteCredential": "k"}, defaults=AgentSettings(endpoint="https://default.example/t")
        )
        assert config.endpoint == "https://default.example/t"

    @pytest.mark.parametrize(
        "value, expected",
        [("true", True), ("1", True), ("yes", True), (True, True), ("0", False), ("no", False)],
    )
    def test_debug_values(self, value, expected):
        config = resolve_embed_config({"siteCredential": "k", "debug": value})
        assert config.debug is expected

    def test_global_debug_overrides_query(self):
        config = resolve_embed_config(
            {"siteCredential": "k", "debug": False}, "https://cdn.example/t.js?debug=true"
        )
        assert config.debug is False

    def test_missing_credential(self):
        with pytest.raises(MissingCredentialError):
            resolve_embed_config({"endpoint": "https://x.example/t"}, "https://cdn.example/t.js")
