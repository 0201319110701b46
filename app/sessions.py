"""
Admin session authority.

Sessions are server-side records keyed by an opaque random token. The
backing store is injectable: InMemorySessionStore for tests,
DatabaseSessionStore (admin_sessions table) for the running service.
Every admin-only route goes through SessionAuthority.require_authenticated().
"""

import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from app.errors import AuthError, StorageError, ValidationError
from app.storage import Store
from app.utils import format_ts, parse_ts, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdminSession:
    """An authenticated admin session."""
    token: str
    username: str
    login_time: str
    expires_at: str


@dataclass(frozen=True)
class SessionStatus:
    authenticated: bool
    username: Optional[str] = None
    login_time: Optional[str] = None


# =============================================================================
# Session Stores
# =============================================================================

class SessionStore:
    """Backing store for active sessions."""

    def save(self, session: AdminSession) -> None:
        raise NotImplementedError

    def get(self, token: str) -> Optional[AdminSession]:
        """Return the active session for `token`, or None."""
        raise NotImplementedError

    def deactivate(self, token: str) -> bool:
        """Mark a session inactive. Returns False if no active session matched."""
        raise NotImplementedError


class InMemorySessionStore(SessionStore):

    def __init__(self):
        self._sessions: Dict[str, AdminSession] = {}

    def save(self, session: AdminSession) -> None:
        self._sessions[session.token] = session

    def get(self, token: str) -> Optional[AdminSession]:
        return self._sessions.get(token)

    def deactivate(self, token: str) -> bool:
        return self._sessions.pop(token, None) is not None


class DatabaseSessionStore(SessionStore):
    """Sessions persisted in the admin_sessions table."""

    def __init__(self, store: Store):
        self.store = store

    def save(self, session: AdminSession) -> None:
        self.store.execute(
            "INSERT INTO admin_sessions (session_id, user_id, created_at, expires_at, is_active) "
            "VALUES (:session_id, :user_id, :created_at, :expires_at, :active)",
            {
                "session_id": session.token,
                "user_id": session.username,
                "created_at": session.login_time,
                "expires_at": session.expires_at,
                "active": True,
            },
        )

    def get(self, token: str) -> Optional[AdminSession]:
        row = self.store.query_one(
            "SELECT session_id, user_id, created_at, expires_at FROM admin_sessions "
            "WHERE session_id = :session_id AND is_active = :active",
            {"session_id": token, "active": True},
        )
        if row is None:
            return None
        return AdminSession(
            token=row["session_id"],
            username=row["user_id"],
            login_time=row["created_at"],
            expires_at=row["expires_at"],
        )

    def deactivate(self, token: str) -> bool:
        result = self.store.execute(
            "UPDATE admin_sessions SET is_active = :inactive "
            "WHERE session_id = :session_id AND is_active = :active",
            {"session_id": token, "active": True, "inactive": False},
        )
        return result.rows_affected > 0


# =============================================================================
# Credentials
# =============================================================================

class AdminCredentials:
    """
    The configured admin identity.

    Comparison is constant-time and always checks both fields, so a failed
    login reveals nothing about which one was wrong.
    """

    def __init__(self, username: str, password: str):
        self._username = username.encode("utf-8")
        self._password = password.encode("utf-8")

    @classmethod
    def from_settings(cls, settings) -> "AdminCredentials":
        return cls(settings.ADMIN_USERNAME, settings.ADMIN_PASSWORD)

    def verify(self, username: str, password: str) -> bool:
        username_ok = hmac.compare_digest(username.encode("utf-8"), self._username)
        password_ok = hmac.compare_digest(password.encode("utf-8"), self._password)
        return username_ok and password_ok


# =============================================================================
# Session Authority
# =============================================================================

class SessionAuthority:
    """
    Gate for admin-only operations.

    States: anonymous (no valid token) and authenticated. There is no
    lockout: every failed login is answered the same way.
    """

    def __init__(
        self,
        sessions: SessionStore,
        credentials: AdminCredentials,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.sessions = sessions
        self.credentials = credentials
        self.ttl = ttl
        self.clock = clock

    def login(self, username: Optional[str], password: Optional[str]) -> AdminSession:
        """
        Check credentials and open a new session.

        Raises:
            ValidationError: username or password missing
            AuthError: credentials do not match
        """
        if not username or not password:
            raise ValidationError("Username and password are required")

        if not self.credentials.verify(username, password):
            logger.warning("Invalid admin credentials", extra={"admin": username})
            raise AuthError("Invalid username or password")

        now = self.clock()
        session = AdminSession(
            token=secrets.token_urlsafe(32),
            username=username,
            login_time=format_ts(now),
            expires_at=format_ts(now + self.ttl),
        )
        self.sessions.save(session)
        logger.info("Admin login successful", extra={"admin": username})
        return session

    def _active_session(self, token: Optional[str]) -> Optional[AdminSession]:
        if not token:
            return None
        session = self.sessions.get(token)
        if session is None:
            return None
        if parse_ts(session.expires_at) <= self.clock():
            logger.info("Admin session expired", extra={"admin": session.username})
            self.sessions.deactivate(token)
            return None
        return session

    def check_status(self, token: Optional[str]) -> SessionStatus:
        """Report whether `token` belongs to a live session. Never raises."""
        try:
            session = self._active_session(token)
        except StorageError as e:
            logger.error(f"Session lookup failed: {e}")
            return SessionStatus(authenticated=False)

        if session is None:
            return SessionStatus(authenticated=False)
        return SessionStatus(
            authenticated=True,
            username=session.username,
            login_time=session.login_time,
        )

    def require_authenticated(self, token: Optional[str]) -> AdminSession:
        """
        Admit the caller only with a live session.

        Raises:
            AuthError: no valid session
        """
        session = self._active_session(token)
        if session is None:
            raise AuthError("Unauthorized")
        return session

    def logout(self, token: str) -> None:
        """
        Destroy the session.

        Raises:
            StorageError: the session could not be destroyed
        """
        self.sessions.deactivate(token)
        logger.info("Admin session closed")
