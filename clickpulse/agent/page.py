# ==============================================================================
# Host Page Model
# ==============================================================================
"""
A minimal model of the instrumented host page.

The tracking agent only needs a small slice of the browser environment:
the current location, document geometry, visibility state, a session-scoped
storage area and an event-target style listener registry. Simulations and
tests drive the page through the helper methods (click, submit, scroll_to,
navigate, hide, show, unload), which dispatch DOM-like events.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable

from clickpulse.agent.session import SessionStorage


@dataclass
class Element:
    """A DOM element as seen by delegated listeners."""

    tag_name: str
    id: str = ""
    class_name: str = ""
    text: str = ""
    # Form elements only
    action: str = ""
    method: str = "get"
    fields: list[tuple[str, str]] = field(default_factory=list)

    @property
    def classes(self) -> list[str]:
        return self.class_name.split()


@dataclass
class DomEvent:
    """A dispatched DOM event."""

    type: str
    target: Element | None = None
    client_x: int = 0
    client_y: int = 0


Listener = Callable[[DomEvent], Any]


class Page:
    """
    The host page an agent instance is attached to.

    Args:
        url: Current absolute page URL
        title: Document title
        referrer: Document referrer
        user_agent: Browser user agent string
        screen: Screen resolution (width, height)
        viewport: Viewport size (width, height)
        scroll_height: Total document height in pixels
        storage: Session storage of the browser context (shared across
            page loads of the same tab)
        globals: Page-level configuration globals set before the agent loads
        script_src: URL the tracker script was loaded from
    """

    def __init__(
        self,
        url: str,
        title: str = "",
        referrer: str = "",
        user_agent: str = "",
        screen: tuple[int, int] = (1920, 1080),
        viewport: tuple[int, int] = (1280, 720),
        scroll_height: int = 720,
        storage: SessionStorage | None = None,
        globals: dict | None = None,
        script_src: str = "",
    ):
        self.url = url
        self.title = title
        self.referrer = referrer
        self.user_agent = user_agent
        self.screen = screen
        self.viewport = viewport
        self.scroll_height = scroll_height
        self.scroll_y = 0
        self.visibility_state = "visible"
        self.storage = storage if storage is not None else SessionStorage()
        self.globals = globals or {}
        self.script_src = script_src
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    # ==========================================================================
    # Listener registry
    # ==========================================================================

    def add_listener(self, event_type: str, listener: Listener) -> None:
        self._listeners[event_type].append(listener)

    def remove_listener(self, event_type: str, listener: Listener) -> None:
        if listener in self._listeners[event_type]:
            self._listeners[event_type].remove(listener)

    def listener_count(self, event_type: str) -> int:
        return len(self._listeners[event_type])

    def dispatch(self, event_type: str, event: DomEvent | None = None) -> None:
        """Call every listener registered for event_type, in registration order."""
        event = event or DomEvent(type=event_type)
        for listener in list(self._listeners[event_type]):
            listener(event)

    # ==========================================================================
    # Geometry
    # ==========================================================================

    @property
    def max_scroll(self) -> int:
        """Largest reachable scrollY (0 when the page cannot scroll)."""
        return max(0, self.scroll_height - self.viewport[1])

    # ==========================================================================
    # Interaction helpers
    # ==========================================================================

    def click(self, target: Element, x: int = 0, y: int = 0) -> None:
        self.dispatch("click", DomEvent("click", target, x, y))

    def submit(self, form: Element) -> None:
        self.dispatch("submit", DomEvent("submit", form))

    def scroll_to(self, y: int) -> None:
        self.scroll_y = max(0, min(y, self.max_scroll))
        self.dispatch("scroll")

    def navigate(self, url: str, title: str = "") -> None:
        """In-page navigation (history push or popstate)."""
        self.url = url
        self.title = title or self.title
        self.scroll_y = 0
        self.dispatch("navigate")

    def hide(self) -> None:
        self.visibility_state = "hidden"
        self.dispatch("visibilitychange")

    def show(self) -> None:
        self.visibility_state = "visible"
        self.dispatch("visibilitychange")

    def unload(self) -> None:
        self.dispatch("beforeunload")
