import logging
import os
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.errors import AuthError, NotFoundError, PortfolioError, StorageError, ValidationError
from app.logging_utils import RequestLoggingMiddleware, log_request_data, setup_logging
from app.metrics import (
    get_metrics,
    get_metrics_content_type,
    record_contact_submission,
    record_login_attempt,
    record_resume_download,
)
from app.schemas import (
    AdminStats,
    AdminStatsResponse,
    ContactRequest,
    ContactResponse,
    DatabaseHealthResponse,
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    SessionCheckResponse,
    SuccessResponse,
)
from app.sessions import AdminCredentials, AdminSession, DatabaseSessionStore, SessionAuthority
from app.stats import StatsAggregator
from app.storage import (
    Store,
    count_contacts,
    count_downloads,
    create_contact,
    delete_contact,
    get_downloads_by_date,
    get_recent_contacts,
    get_store,
    log_download,
    mark_contact_read,
    store,
)
from app.utils import format_ts, get_client_ip, sign_token, unsign_token, utc_now


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

SESSION_COOKIE = "admin_session"
VISITOR_COOKIE = "visitor_id"
VISITOR_COOKIE_MAX_AGE = 365 * 24 * 60 * 60


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Connect and create tables; a StorageError here aborts startup
    - Shutdown: Close the store connection
    """
    logger.info("Starting portfolio backend")
    store.connect()
    store.init_schema()
    yield
    logger.info("Shutting down, closing database")
    store.close()


app = FastAPI(
    title="Portfolio API",
    description="Portfolio backend: contact form, downloads, site stats and admin panel",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(PortfolioError)
async def portfolio_error_handler(request: Request, exc: PortfolioError) -> JSONResponse:
    if isinstance(exc, StorageError):
        logger.error(
            f"Storage error: {exc.message}",
            extra={"statement": exc.statement, "params": exc.params},
        )
        message = exc.public_message
    else:
        message = exc.message
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": message},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    logger.warning(f"Request validation failed: {message}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": message},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": "Internal server error"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = "Endpoint not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": message},
        headers=getattr(exc, "headers", None),
    )


# =============================================================================
# Dependencies
# =============================================================================

def get_stats_aggregator(store: Store = Depends(get_store)) -> StatsAggregator:
    return StatsAggregator(store)


@lru_cache()
def get_session_authority() -> SessionAuthority:
    """Session authority backed by the admin_sessions table."""
    return SessionAuthority(
        sessions=DatabaseSessionStore(store),
        credentials=AdminCredentials.from_settings(settings),
        ttl=timedelta(minutes=settings.SESSION_TTL_MINUTES),
    )


def session_token(request: Request) -> Optional[str]:
    """Session token from the signed cookie, None if absent or tampered."""
    return unsign_token(request.cookies.get(SESSION_COOKIE), settings.SESSION_SECRET)


def require_admin(
    request: Request,
    authority: SessionAuthority = Depends(get_session_authority),
) -> AdminSession:
    """Admin gate shared by every admin-only route."""
    admin = authority.require_authenticated(session_token(request))
    log_request_data(request, admin=admin.username)
    return admin


def static_page(name: str) -> FileResponse:
    path = os.path.join(settings.STATIC_DIR, name)
    if not os.path.isfile(path):
        raise NotFoundError("Page not found")
    return FileResponse(path)


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response, store: Store = Depends(get_store)) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the database is reachable and the
    schema is applied, 503 otherwise.
    """
    health = store.health_check()
    if health["status"] != "connected" or health["table_count"] < 4:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )
    return HealthResponse(status="ready")


@app.get("/api/health", response_model=DatabaseHealthResponse, response_model_exclude_none=True)
async def database_health(response: Response, store: Store = Depends(get_store)) -> DatabaseHealthResponse:
    """Database diagnostics: connectivity, server time and table count."""
    health = store.health_check()
    if health["status"] != "connected":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return DatabaseHealthResponse(**health)


# =============================================================================
# Public Routes
# =============================================================================

@app.post(
    "/api/contact",
    response_model=ContactResponse,
    responses={400: {"model": ErrorResponse, "description": "Validation error"}},
)
async def submit_contact(
    payload: ContactRequest,
    request: Request,
    store: Store = Depends(get_store),
    stats: StatsAggregator = Depends(get_stats_aggregator),
) -> ContactResponse:
    """
    Store a contact form submission as an unread message.

    Records the client IP and user agent, and bumps total_contacts.
    """
    contact_id = create_contact(
        store,
        name=payload.name,
        email=payload.email,
        message=payload.message,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    stats.increment("total_contacts")
    record_contact_submission()
    log_request_data(request, action="contact", contact_id=contact_id)

    return ContactResponse(message="Message sent successfully", id=contact_id)


@app.get(
    "/api/download/resume",
    responses={404: {"model": ErrorResponse, "description": "Resume not available"}},
)
async def download_resume(
    request: Request,
    store: Store = Depends(get_store),
    stats: StatsAggregator = Depends(get_stats_aggregator),
) -> FileResponse:
    """Serve the resume file and log the download."""
    path = settings.RESUME_PATH
    if not os.path.isfile(path):
        logger.error(f"Resume file missing: {path}")
        raise NotFoundError("Resume not available")

    file_name = os.path.basename(path)
    log_download(
        store,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        file_name=file_name,
    )
    stats.increment("total_downloads")
    record_resume_download()
    log_request_data(request, action="download")

    return FileResponse(path, filename=file_name, media_type="application/pdf")


@app.post("/api/track/visit", response_model=SuccessResponse)
async def track_visit(
    request: Request,
    response: Response,
    stats: StatsAggregator = Depends(get_stats_aggregator),
) -> SuccessResponse:
    """
    Count a page view. A browser without a visitor cookie also counts as a
    new unique visitor and receives one.
    """
    stats.increment("page_views")
    if not request.cookies.get(VISITOR_COOKIE):
        stats.increment("unique_visitors")
        response.set_cookie(
            VISITOR_COOKIE,
            uuid.uuid4().hex,
            max_age=VISITOR_COOKIE_MAX_AGE,
            httponly=True,
            samesite="lax",
        )
    return SuccessResponse(message="Visit recorded")


# =============================================================================
# Admin Routes
# =============================================================================

@app.post(
    "/api/admin/login",
    response_model=LoginResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing username or password"},
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
    },
)
async def admin_login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    authority: SessionAuthority = Depends(get_session_authority),
) -> LoginResponse:
    """Check admin credentials and open a session cookie."""
    try:
        session = authority.login(payload.username, payload.password)
    except ValidationError:
        record_login_attempt("missing_fields")
        raise
    except AuthError:
        record_login_attempt("invalid_credentials")
        log_request_data(request, action="login_failed", ip=get_client_ip(request))
        raise

    record_login_attempt("success")
    response.set_cookie(
        SESSION_COOKIE,
        sign_token(session.token, settings.SESSION_SECRET),
        max_age=int(authority.ttl.total_seconds()),
        httponly=True,
        samesite="lax",
    )
    log_request_data(request, action="login", admin=session.username)

    return LoginResponse(
        message="Login successful",
        user=session.username,
        login_time=session.login_time,
    )


@app.get("/api/admin/check", response_model=SessionCheckResponse, response_model_exclude_none=True)
async def admin_check(
    request: Request,
    authority: SessionAuthority = Depends(get_session_authority),
) -> SessionCheckResponse:
    """Report whether the caller holds an admin session. Never fails."""
    session_status = authority.check_status(session_token(request))
    return SessionCheckResponse(
        authenticated=session_status.authenticated,
        user=session_status.username,
        login_time=session_status.login_time,
    )


@app.post(
    "/api/admin/logout",
    response_model=SuccessResponse,
    responses={401: {"model": ErrorResponse, "description": "Not authenticated"}},
)
async def admin_logout(
    request: Request,
    response: Response,
    admin: AdminSession = Depends(require_admin),
    authority: SessionAuthority = Depends(get_session_authority),
) -> SuccessResponse:
    try:
        authority.logout(admin.token)
    except StorageError as e:
        logger.error(f"Session destruction failed: {e}")
        raise PortfolioError("Logout failed") from e

    response.delete_cookie(SESSION_COOKIE)
    log_request_data(request, action="logout")
    logger.info(f"Admin logout: {admin.username}")
    return SuccessResponse(message="Logged out successfully")


@app.get(
    "/api/admin/stats",
    response_model=AdminStatsResponse,
    responses={401: {"model": ErrorResponse, "description": "Not authenticated"}},
)
async def admin_stats(
    admin: AdminSession = Depends(require_admin),
    store: Store = Depends(get_store),
    stats: StatsAggregator = Depends(get_stats_aggregator),
) -> AdminStatsResponse:
    """
    Dashboard aggregate.

    Response data:
        - totalMessages / unreadMessages: contact counts
        - totalDownloads: download log size
        - recentMessages: 10 newest contacts with a 100-character preview
        - downloadsByDate: downloads per day over the last 30 days
        - siteStats: the site counters
        - lastUpdated: server time
    """
    logger.info(f"Admin stats requested by {admin.username}")

    data = AdminStats(
        total_messages=count_contacts(store),
        unread_messages=count_contacts(store, status="unread"),
        total_downloads=count_downloads(store),
        recent_messages=get_recent_contacts(store, limit=10),
        downloads_by_date=get_downloads_by_date(store, days=30),
        site_stats=stats.read(),
        last_updated=format_ts(utc_now()),
    )
    return AdminStatsResponse(data=data)


@app.post(
    "/api/admin/mark-read/{message_id}",
    response_model=SuccessResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Message not found"},
    },
)
async def admin_mark_read(
    message_id: int,
    request: Request,
    admin: AdminSession = Depends(require_admin),
    store: Store = Depends(get_store),
) -> SuccessResponse:
    log_request_data(request, action="mark_read", contact_id=message_id)
    if not mark_contact_read(store, message_id):
        raise NotFoundError("Message not found")

    logger.info(f"Message {message_id} marked as read by {admin.username}")
    return SuccessResponse(message="Message marked as read")


@app.delete(
    "/api/admin/message/{message_id}",
    response_model=SuccessResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Message not found"},
    },
)
async def admin_delete_message(
    message_id: int,
    request: Request,
    admin: AdminSession = Depends(require_admin),
    store: Store = Depends(get_store),
) -> SuccessResponse:
    log_request_data(request, action="delete", contact_id=message_id)
    if not delete_contact(store, message_id):
        raise NotFoundError("Message not found")

    logger.info(f"Message {message_id} deleted by {admin.username}")
    return SuccessResponse(message="Message deleted successfully")


# =============================================================================
# Pages
# =============================================================================

@app.get("/admin", include_in_schema=False)
async def admin_page(
    request: Request,
    authority: SessionAuthority = Depends(get_session_authority),
):
    if authority.check_status(session_token(request)).authenticated:
        return static_page("admin.html")
    return RedirectResponse("/admin-login", status_code=status.HTTP_302_FOUND)


@app.get("/admin-login", include_in_schema=False)
async def admin_login_page() -> FileResponse:
    return static_page("admin-login.html")


@app.get("/login", include_in_schema=False)
async def login_redirect() -> RedirectResponse:
    return RedirectResponse("/admin-login", status_code=status.HTTP_302_FOUND)


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )


# Static frontend; mounted last so API routes take precedence
if os.path.isdir(settings.STATIC_DIR):
    app.mount("/", StaticFiles(directory=settings.STATIC_DIR, html=True), name="static")
