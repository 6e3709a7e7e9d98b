"""Session identities and the in-process identity provider.

An identity is either an anonymous session token or an authenticated user id.
Cart components receive identities explicitly; SessionProvider is the source
of login/logout transitions that CartSession listens to.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from uuid import uuid4

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SessionIdentity:
    token: str
    authenticated: bool = False

    @classmethod
    def anonymous(cls, token: str | None = None) -> "SessionIdentity":
        return cls(token=token or f"anon-{uuid4().hex}", authenticated=False)

    @classmethod
    def user(cls, user_id: str) -> "SessionIdentity":
        if not user_id:
            raise ValueError("An authenticated identity needs a user id")
        return cls(token=str(user_id), authenticated=True)

    @property
    def user_id(self) -> str | None:
        return self.token if self.authenticated else None


IdentityListener = Callable[[SessionIdentity, SessionIdentity], None]


class SessionProvider:
    """Tracks the current identity and notifies listeners on every transition."""

    def __init__(self, identity: SessionIdentity | None = None) -> None:
        self._current = identity or SessionIdentity.anonymous()
        self._listeners: list[IdentityListener] = []
        self._lock = threading.Lock()

    @property
    def current(self) -> SessionIdentity:
        return self._current

    def add_listener(self, listener: IdentityListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def login(self, user_id: str) -> SessionIdentity:
        return self._switch(SessionIdentity.user(user_id))

    def logout(self) -> SessionIdentity:
        return self._switch(SessionIdentity.anonymous())

    def _switch(self, identity: SessionIdentity) -> SessionIdentity:
        with self._lock:
            previous, self._current = self._current, identity
            listeners = list(self._listeners)

        logger.info(
            "Session identity changed",
            authenticated=identity.authenticated,
            user_id=identity.user_id,
        )
        for listener in listeners:
            listener(previous, identity)
        return identity
