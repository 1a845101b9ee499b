"""
Per-request session context and the navigation state it drives.

The signed Flask cookie stores the backend session; each request rebuilds a
SessionContext from it, refreshes an expired access token, and hands the
context to handlers explicitly. Anything that must follow login/logout
(writing the cookie back, logging) subscribes instead of polling.
"""

import logging
import time
from enum import Enum
from typing import Callable, Optional

from errors import BackendError

logger = logging.getLogger(__name__)

# Refresh this many seconds before the access token actually expires
EXPIRY_MARGIN_SEC = 60

PROTECTED_PREFIXES = (
    "/dashboard", "/profile", "/logout", "/portfolio", "/position-calculator",
    "/daily-compounding", "/converter", "/todo", "/api/",
)


class ViewState(Enum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class SessionContext:
    def __init__(self, session: Optional[dict] = None, is_loading: bool = False):
        self.session = session
        self.is_loading = is_loading
        self._listeners = []

    @property
    def state(self) -> ViewState:
        if self.is_loading:
            return ViewState.LOADING
        if self.session and self.session.get("access_token"):
            return ViewState.AUTHENTICATED
        return ViewState.UNAUTHENTICATED

    @property
    def user(self) -> dict:
        return (self.session or {}).get("user") or {}

    @property
    def user_id(self) -> Optional[str]:
        return self.user.get("id")

    @property
    def email(self) -> str:
        return self.user.get("email", "")

    @property
    def access_token(self) -> Optional[str]:
        return (self.session or {}).get("access_token")

    def subscribe(self, callback: Callable[["SessionContext"], None]) -> Callable[[], None]:
        """Call `callback(ctx)` after every session change. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)
        return unsubscribe

    def _notify(self):
        for cb in list(self._listeners):
            cb(self)

    def begin_loading(self):
        self.is_loading = True
        self._notify()

    def set_session(self, session: dict):
        self.session = normalize_session(session)
        self.is_loading = False
        self._notify()

    def clear(self):
        self.session = None
        self.is_loading = False
        self._notify()

    def to_cookie(self) -> Optional[dict]:
        return self.session

    @classmethod
    def from_cookie(cls, data) -> "SessionContext":
        if not isinstance(data, dict) or not data.get("access_token"):
            return cls()
        return cls(session=data)


def normalize_session(raw: dict, now: Optional[float] = None) -> dict:
    """Keep only what the cookie needs from a GoTrue token response."""
    now = time.time() if now is None else now
    expires_at = raw.get("expires_at")
    if not expires_at and raw.get("expires_in"):
        expires_at = int(now) + int(raw["expires_in"])
    user = raw.get("user") or {}
    return {
        "access_token": raw.get("access_token"),
        "refresh_token": raw.get("refresh_token"),
        "expires_at": expires_at,
        "user": {"id": user.get("id"), "email": user.get("email", "")},
    }


def needs_refresh(session: Optional[dict], now: Optional[float] = None) -> bool:
    if not session or not session.get("expires_at"):
        return False
    now = time.time() if now is None else now
    return now >= float(session["expires_at"]) - EXPIRY_MARGIN_SEC


def restore_session(ctx: SessionContext, auth, now: Optional[float] = None) -> SessionContext:
    """
    Refresh an expiring session in place. A rejected refresh token signs the user
    out; an unreachable backend leaves the context LOADING so the caller can show
    a wait page instead of bouncing a valid user to the login screen.
    """
    if ctx.state is not ViewState.AUTHENTICATED or not needs_refresh(ctx.session, now):
        return ctx
    refresh_token = ctx.session.get("refresh_token")
    if not refresh_token:
        ctx.clear()
        return ctx
    ctx.begin_loading()
    try:
        ctx.set_session(auth.refresh_session(refresh_token))
    except BackendError as e:
        if e.status is not None and e.status < 500:
            logger.info("Session refresh rejected (%s); signing out", e.status)
            ctx.clear()
        else:
            logger.warning("Session refresh failed: %s", e.message)
    return ctx


def is_protected(path: str) -> bool:
    return any(path.startswith(p) for p in PROTECTED_PREFIXES)


def navigation_for(state: ViewState, path: str) -> Optional[str]:
    """
    Where the user should be sent for `path`, or None to render it.
    "wait" means the session is still resolving.
    """
    if path == "/":
        if state is ViewState.AUTHENTICATED:
            return "/dashboard"
        return "wait" if state is ViewState.LOADING else "/auth"
    if path == "/auth":
        if state is ViewState.AUTHENTICATED:
            return "/dashboard"
        return None
    if is_protected(path):
        if state is ViewState.LOADING:
            return "wait"
        if state is ViewState.UNAUTHENTICATED:
            return "/auth"
    return None
