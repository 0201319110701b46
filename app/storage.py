import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import declarative_base

from app.config import settings
from app.errors import StorageBusyError, StorageError
from app.utils import format_ts, make_preview, utc_now

logger = logging.getLogger(__name__)

# Base class for SQLAlchemy models
Base = declarative_base()

Row = Dict[str, Any]

SITE_STATS_SEED = (
    "INSERT INTO site_stats "
    "(id, page_views, unique_visitors, total_contacts, total_downloads, last_updated) "
    "SELECT 1, 0, 0, 0, 0, :now "
    "WHERE NOT EXISTS (SELECT 1 FROM site_stats WHERE id = 1)"
)


@dataclass(frozen=True)
class ExecuteResult:
    """Outcome of a mutating statement."""
    last_insert_id: Optional[int]
    rows_affected: int


class Store:
    """
    Persistence store over a single relational database.

    One engine is shared by every request; SQLite serializes conflicting
    writes itself. Each execute() runs in its own transaction.
    """

    def __init__(self, database_url: str, busy_timeout: float = 30.0):
        self.database_url = database_url
        self.busy_timeout = busy_timeout
        self.engine: Optional[Engine] = None

    def connect(self) -> Engine:
        """Create the engine if it does not exist yet."""
        if self.engine is None:
            logger.debug(f"Connecting to database: {self.database_url}")
            connect_args = {}
            if self.database_url.startswith("sqlite"):
                # Required for SQLite to be shared across FastAPI worker threads
                connect_args["check_same_thread"] = False
                # Seconds a writer waits for a competing lock before failing
                connect_args["timeout"] = self.busy_timeout
            try:
                self.engine = create_engine(
                    self.database_url,
                    connect_args=connect_args,
                    echo=False,
                )
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to open database: {e}") from e
        return self.engine

    def _require_engine(self, statement: Optional[str] = None, params=None) -> Engine:
        if self.engine is None:
            raise StorageError("Database is not connected", statement, params)
        return self.engine

    def init_schema(self) -> None:
        """
        Create all tables and indexes if absent and seed the site_stats row.
        Safe to call on every startup.
        """
        # Import models to register them with Base.metadata
        from app import models  # noqa: F401

        engine = self.connect()
        logger.debug("Creating database tables...")
        try:
            with engine.begin() as conn:
                Base.metadata.create_all(bind=conn)
                conn.execute(text(SITE_STATS_SEED), {"now": format_ts(utc_now())})
        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize database: {e}")
            raise StorageError(f"Schema initialization failed: {e}") from e
        logger.info("Database initialized successfully")

    def execute(self, statement: str, params: Optional[Mapping[str, Any]] = None) -> ExecuteResult:
        """
        Run a single mutating statement in its own transaction.

        Raises:
            StorageError: carrying the statement and parameters
        """
        params = dict(params or {})
        engine = self._require_engine(statement, params)
        try:
            with engine.begin() as conn:
                result = conn.execute(text(statement), params)
                return ExecuteResult(
                    last_insert_id=result.lastrowid,
                    rows_affected=result.rowcount,
                )
        except SQLAlchemyError as e:
            logger.error(
                "Database execute failed",
                extra={"error": str(e), "statement": statement, "params": params},
            )
            if isinstance(e, OperationalError) and "locked" in str(e):
                raise StorageBusyError(str(e), statement, params) from e
            raise StorageError(str(e), statement, params) from e

    def query_one(self, statement: str, params: Optional[Mapping[str, Any]] = None) -> Optional[Row]:
        """Return the first matching row, or None."""
        params = dict(params or {})
        engine = self._require_engine(statement, params)
        try:
            with engine.connect() as conn:
                row = conn.execute(text(statement), params).first()
        except SQLAlchemyError as e:
            logger.error(
                "Database query failed",
                extra={"error": str(e), "statement": statement, "params": params},
            )
            raise StorageError(str(e), statement, params) from e
        return dict(row._mapping) if row is not None else None

    def query_all(self, statement: str, params: Optional[Mapping[str, Any]] = None) -> List[Row]:
        """Return all matching rows in query order; empty list when none match."""
        params = dict(params or {})
        engine = self._require_engine(statement, params)
        try:
            with engine.connect() as conn:
                rows = conn.execute(text(statement), params).all()
        except SQLAlchemyError as e:
            logger.error(
                "Database query failed",
                extra={"error": str(e), "statement": statement, "params": params},
            )
            raise StorageError(str(e), statement, params) from e
        return [dict(row._mapping) for row in rows]

    def health_check(self) -> dict:
        """
        Check connectivity and count tables.

        Never raises: failures are reported in the returned status object.
        """
        logger.debug("Checking database health...")
        timestamp = format_ts(utc_now())
        try:
            engine = self._require_engine()
            with engine.connect() as conn:
                database_time = conn.execute(text("SELECT CURRENT_TIMESTAMP")).scalar()
            table_count = len(inspect(engine).get_table_names())
        except (SQLAlchemyError, StorageError) as e:
            logger.error(f"Database health check failed: {e}")
            return {"status": "error", "timestamp": timestamp, "error": str(e)}

        logger.debug("Database health check passed")
        return {
            "status": "connected",
            "timestamp": timestamp,
            "database_time": str(database_time),
            "table_count": table_count,
        }

    def close(self) -> None:
        """Release the connection pool. Safe to call more than once."""
        if self.engine is None:
            return
        self.engine.dispose()
        self.engine = None
        logger.info("Database connection closed")


# Process-wide store; connected by the application lifespan
store = Store(settings.DATABASE_URL)


def get_store() -> Store:
    """Dependency returning the process-wide store."""
    return store


# =============================================================================
# Contact Repository Functions
# =============================================================================

def create_contact(
    store: Store,
    name: str,
    email: str,
    message: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> int:
    """
    Insert a contact message with status 'unread'.

    Returns:
        The new contact id
    """
    logger.info(f"Creating contact message from {email}")
    result = store.execute(
        "INSERT INTO contacts (name, email, message, created_at, status, ip_address, user_agent) "
        "VALUES (:name, :email, :message, :created_at, 'unread', :ip_address, :user_agent)",
        {
            "name": name,
            "email": email,
            "message": message,
            "created_at": format_ts(utc_now()),
            "ip_address": ip_address,
            "user_agent": user_agent,
        },
    )
    logger.info(f"Contact message created: id={result.last_insert_id}")
    return result.last_insert_id


def get_recent_contacts(store: Store, limit: int = 10) -> List[Row]:
    """
    Newest contact messages first, at most `limit` of them.

    Each row carries a `preview` truncated to 100 characters alongside the
    full `message`.
    """
    rows = store.query_all(
        "SELECT id, name, email, message, created_at, status, ip_address "
        "FROM contacts ORDER BY created_at DESC, id DESC LIMIT :limit",
        {"limit": limit},
    )
    for row in rows:
        row["preview"] = make_preview(row["message"])
    logger.debug(f"Retrieved {len(rows)} recent contacts (limit={limit})")
    return rows


def count_contacts(store: Store, status: Optional[str] = None) -> int:
    if status is None:
        row = store.query_one("SELECT COUNT(*) AS count FROM contacts")
    else:
        row = store.query_one(
            "SELECT COUNT(*) AS count FROM contacts WHERE status = :status",
            {"status": status},
        )
    return row["count"] if row else 0


def mark_contact_read(store: Store, contact_id: int) -> bool:
    """Returns False when no contact has this id."""
    result = store.execute(
        "UPDATE contacts SET status = 'read' WHERE id = :id",
        {"id": contact_id},
    )
    return result.rows_affected > 0


def delete_contact(store: Store, contact_id: int) -> bool:
    """Returns False when no contact has this id."""
    result = store.execute("DELETE FROM contacts WHERE id = :id", {"id": contact_id})
    return result.rows_affected > 0


# =============================================================================
# Download Log Repository Functions
# =============================================================================

def log_download(
    store: Store,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    file_name: str = "resume.pdf",
) -> int:
    result = store.execute(
        "INSERT INTO download_logs (ip_address, user_agent, downloaded_at, file_name) "
        "VALUES (:ip_address, :user_agent, :downloaded_at, :file_name)",
        {
            "ip_address": ip_address,
            "user_agent": user_agent,
            "downloaded_at": format_ts(utc_now()),
            "file_name": file_name,
        },
    )
    logger.info(f"Download logged: {file_name}")
    return result.last_insert_id


def count_downloads(store: Store) -> int:
    row = store.query_one("SELECT COUNT(*) AS count FROM download_logs")
    return row["count"] if row else 0


def get_downloads_by_date(store: Store, days: int = 30) -> List[Row]:
    """
    Downloads grouped by calendar day (UTC) over the last `days` days,
    newest day first.
    """
    since = format_ts(utc_now() - timedelta(days=days))
    return store.query_all(
        "SELECT substr(downloaded_at, 1, 10) AS date, COUNT(*) AS count "
        "FROM download_logs WHERE downloaded_at >= :since "
        "GROUP BY substr(downloaded_at, 1, 10) "
        "ORDER BY date DESC LIMIT :limit",
        {"since": since, "limit": days},
    )
