# ==============================================================================
# Session Identity
# ==============================================================================
"""
Client-side session identity.

A session id is minted once per browser context and kept in the context's
session storage, so every page load of the same tab shares it. The id is
renewed after a period of inactivity.

Id format: sess_<epoch_ms>_<9 base36 chars>
"""

import secrets
import string
import time
from typing import Callable

SESSION_ID_KEY = "clickpulse_session_id"
SESSION_STARTED_KEY = "clickpulse_session_started"
LAST_ACTIVITY_KEY = "clickpulse_last_activity"

_BASE36 = string.digits + string.ascii_lowercase


class SessionStorage(dict):
    """Key/value storage scoped to one browser context."""


def generate_session_id(now: float | None = None) -> str:
    """
    Mint a new session id.

    Args:
        now: Epoch seconds (defaults to the current time)
    """
    now = time.time() if now is None else now
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"sess_{int(now * 1000)}_{suffix}"


class SessionIdentity:
    """
    Session id persisted in session storage with inactivity expiry.

    Args:
        storage: Session storage of the browser context
        timeout_minutes: Inactivity threshold after which a new id is minted
        clock: Returns epoch seconds
    """

    def __init__(
        self,
        storage: SessionStorage,
        timeout_minutes: int = 30,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.timeout_seconds = timeout_minutes * 60
        self._clock = clock

    @property
    def session_id(self) -> str | None:
        return self.storage.get(SESSION_ID_KEY)

    @property
    def started_at(self) -> float | None:
        """Epoch seconds at which the current session id was minted."""
        return self.storage.get(SESSION_STARTED_KEY)

    def is_expired(self) -> bool:
        last_activity = self.storage.get(LAST_ACTIVITY_KEY)
        if last_activity is None:
            return False
        return self._clock() - last_activity > self.timeout_seconds

    def resolve(self) -> tuple[str, bool]:
        """
        Return the current session id, minting one if missing or expired.

        Returns:
            (session_id, renewed) where renewed is True if a new id was minted
        """
        if self.session_id is not None and not self.is_expired():
            return self.session_id, False

        now = self._clock()
        self.storage[SESSION_ID_KEY] = generate_session_id(now)
        self.storage[SESSION_STARTED_KEY] = now
        self.storage[LAST_ACTIVITY_KEY] = now
        return self.storage[SESSION_ID_KEY], True

    def touch(self) -> None:
        """Record activity, pushing the expiry forward."""
        self.storage[LAST_ACTIVITY_KEY] = self._clock()
