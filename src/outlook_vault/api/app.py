"""HTTP surface of the vault (Starlette).

Routes:
    GET  /health              liveness
    GET  /check-login         session status, never errors
    POST /login               probe credentials, store record, set cookie
    POST /logout              delete record, clear cookie
    POST /emails              recent inbox messages (?top=N)
    POST /calendar            events of one calendar in a window
    POST /add-calendar        append a calendar to the user's list
    POST /delete-calendar     drop a calendar from the user's list
    POST /update-calendar-id  record the calendar the client selected

AIDEV-NOTE: Failure bodies
- Every session failure answers 401 ``{"error": "Not authenticated"}``,
  whatever the cause (see auth.gate)
- Calendar list routes answer ``{"success": false, "error": ...}``
- Remaining VaultErrors fall through to the app-level handlers below
"""

import contextlib
from typing import Any, AsyncIterator, Optional

from redis.asyncio import Redis
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from outlook_vault.auth.cipher import Cipher
from outlook_vault.auth.gate import AuthenticationGate, requires_login
from outlook_vault.auth.session import SessionBinder
from outlook_vault.lib.config import VaultSettings, load_config
from outlook_vault.lib.errors import (
    AuthRejected,
    RecordNotFound,
    StoreUnavailable,
    ValidationError,
    VaultError,
)
from outlook_vault.lib.logger import get_structured_logger
from outlook_vault.lib.utils import hash_email, safe_int
from outlook_vault.models.credential import MailboxCredential
from outlook_vault.services.mailbox_gateway import DEFAULT_INBOX_LIMIT, RemoteMailboxGateway
from outlook_vault.services.protocols import MailboxClientFactory
from outlook_vault.storage.calendar_registry import CalendarRegistry
from outlook_vault.storage.record_store import RecordStore, connect_redis

logger = get_structured_logger(__name__)


# ============================================================================
# Helpers
# ============================================================================


async def read_json_body(request: Request) -> dict[str, Any]:
    """Parse the request body as a JSON object; anything else reads as ``{}``."""
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _failure(error: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": error}, status_code=status_code)


def _success(message: str) -> JSONResponse:
    return JSONResponse({"success": True, "message": message})


def _credential(request: Request) -> MailboxCredential:
    return request.state.credential


# ============================================================================
# Public endpoints
# ============================================================================


async def health(request: Request) -> JSONResponse:
    """Liveness probe."""
    return JSONResponse({"status": "ok"})


async def check_login(request: Request) -> JSONResponse:
    """Report whether the caller has a session backed by a stored record."""
    binder: SessionBinder = request.app.state.binder
    store: RecordStore = request.app.state.store

    email = binder.resolve(request.cookies.get(binder.cookie_name))
    if email is None:
        return JSONResponse({"loggedIn": False})

    try:
        record = await store.get(email)
    except RecordNotFound:
        return JSONResponse({"loggedIn": False})
    except StoreUnavailable as e:
        logger.warning("Login status unavailable", user=hash_email(email), error=str(e))
        return JSONResponse({"loggedIn": False})

    return JSONResponse(record.to_status_dict())


async def login(request: Request) -> JSONResponse:
    """Probe credentials against the mailbox and open a session."""
    state = request.app.state
    body = await read_json_body(request)
    email = body.get("email")
    password = body.get("password")

    if not isinstance(email, str) or not email or not isinstance(password, str) or not password:
        raise ValidationError("Email and password are required")

    user = hash_email(email)
    logger.info("Login attempt", user=user)

    result = await state.gateway.login(email, password)

    ciphertext = state.cipher.encrypt(MailboxCredential(email, password).to_json())
    await state.store.put(
        email, credential_ciphertext=ciphertext, calendars=result.calendars
    )

    logger.info("Login succeeded", user=user, calendars=len(result.calendars))

    response = JSONResponse(
        {
            "loggedIn": True,
            "email": email,
            "calendars": [c.to_dict() for c in result.calendars],
        }
    )
    state.binder.set_cookie(response, email)
    return response


async def logout(request: Request) -> JSONResponse:
    """Delete the caller's record and drop the session cookie."""
    binder: SessionBinder = request.app.state.binder
    store: RecordStore = request.app.state.store

    email = binder.resolve(request.cookies.get(binder.cookie_name))
    if email is not None:
        await store.delete(email)
        logger.info("Logged out", user=hash_email(email))

    response = JSONResponse({"loggedIn": False})
    binder.clear_cookie(response)
    return response


# ============================================================================
# Authenticated endpoints
# ============================================================================


@requires_login
async def emails(request: Request) -> JSONResponse:
    """List the most recent inbox messages."""
    gateway: RemoteMailboxGateway = request.app.state.gateway
    credential = _credential(request)

    top = safe_int(request.query_params.get("top"), 0) or DEFAULT_INBOX_LIMIT

    try:
        messages = await gateway.list_inbox_messages(credential, top)
    except VaultError as e:
        logger.error("Inbox listing failed", user=hash_email(credential.email), error=str(e))
        return JSONResponse({"error": "Failed to fetch emails"}, status_code=500)

    return JSONResponse([m.to_dict() for m in messages])


@requires_login
async def calendar(request: Request) -> JSONResponse:
    """List events of one calendar folder."""
    gateway: RemoteMailboxGateway = request.app.state.gateway
    credential = _credential(request)
    body = await read_json_body(request)

    calendar_id = body.get("calendarId")
    if not isinstance(calendar_id, str) or not calendar_id:
        return JSONResponse({"error": "CalendarId is required"}, status_code=400)

    try:
        result = await gateway.list_calendar_events(
            credential,
            calendar_id,
            time_min=body.get("timeMin"),
            time_max=body.get("timeMax"),
        )
    except ValidationError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except VaultError as e:
        logger.error(
            "Calendar listing failed", user=hash_email(credential.email), error=str(e)
        )
        return JSONResponse({"error": "Failed to fetch calendar events"}, status_code=500)

    return JSONResponse(result.to_dict())


@requires_login
async def add_calendar(request: Request) -> JSONResponse:
    """Append a calendar reference to the caller's record."""
    registry: CalendarRegistry = request.app.state.registry
    email = _credential(request).email
    body = await read_json_body(request)

    try:
        await registry.add(email, body.get("calendarId"), body.get("calendarName"))
    except ValidationError:
        return _failure("Calendar ID and name are required", 400)
    except VaultError as e:
        logger.error("Add calendar failed", user=hash_email(email), error=str(e))
        return _failure("Failed to add calendar", 500)

    return _success("Calendar added successfully")


@requires_login
async def delete_calendar(request: Request) -> JSONResponse:
    """Remove a calendar reference from the caller's record."""
    registry: CalendarRegistry = request.app.state.registry
    email = _credential(request).email
    body = await read_json_body(request)

    try:
        await registry.remove(email, body.get("calendarId"))
    except ValidationError:
        return _failure("Calendar ID is required", 400)
    except VaultError as e:
        logger.error("Delete calendar failed", user=hash_email(email), error=str(e))
        return _failure("Failed to delete calendar", 500)

    return _success("Calendar deleted successfully")


@requires_login
async def update_calendar_id(request: Request) -> JSONResponse:
    """Record the calendar the client last selected."""
    registry: CalendarRegistry = request.app.state.registry
    email = _credential(request).email
    body = await read_json_body(request)

    try:
        await registry.replace_active(email, body.get("calendarId"))
    except ValidationError:
        return _failure("Calendar ID is required", 400)
    except VaultError as e:
        logger.error("Update calendar id failed", user=hash_email(email), error=str(e))
        return _failure("Failed to update calendar ID", 500)

    return _success("Calendar ID updated successfully")


# ============================================================================
# Exception handlers
# ============================================================================


async def handle_auth_rejected(request: Request, exc: AuthRejected) -> Response:
    logger.warning("Credentials rejected", path=request.url.path, details=exc.details)
    return JSONResponse(
        {"error": exc.public_message, "details": exc.details}, status_code=exc.status_code
    )


async def handle_validation_error(request: Request, exc: ValidationError) -> Response:
    return JSONResponse({"error": str(exc) or exc.public_message}, status_code=400)


async def handle_vault_error(request: Request, exc: VaultError) -> Response:
    logger.error(
        "Request failed", path=request.url.path, error=type(exc).__name__, details=str(exc)
    )
    return JSONResponse({"error": exc.public_message}, status_code=exc.status_code)


# ============================================================================
# Application factory
# ============================================================================


routes = [
    Route("/health", health, methods=["GET"]),
    Route("/check-login", check_login, methods=["GET"]),
    Route("/login", login, methods=["POST"]),
    Route("/logout", logout, methods=["POST"]),
    Route("/emails", emails, methods=["POST"]),
    Route("/calendar", calendar, methods=["POST"]),
    Route("/add-calendar", add_calendar, methods=["POST"]),
    Route("/delete-calendar", delete_calendar, methods=["POST"]),
    Route("/update-calendar-id", update_calendar_id, methods=["POST"]),
]


def create_app(
    settings: VaultSettings,
    redis: Optional[Redis] = None,
    client_factory: Optional[MailboxClientFactory] = None,
) -> Starlette:
    """
    Build the application and its collaborators.

    Args:
        settings: Validated settings
        redis: Async Redis client (default: built from settings, closed on shutdown)
        client_factory: Mailbox client factory (default: EWS via exchangelib)

    Returns:
        Starlette application
    """
    owns_redis = redis is None
    if redis is None:
        redis = connect_redis(settings.redis)

    if client_factory is None:
        from outlook_vault.services.exchange_client import ExchangeMailboxClient

        client_factory = ExchangeMailboxClient.factory(
            settings.exchange.ews_url, timeout=settings.exchange.remote_timeout
        )

    cipher = Cipher(settings.security.aes_key)
    binder = SessionBinder(
        settings.security.session_secret,
        max_age_seconds=settings.security.session_max_age_seconds,
        cookie_name=settings.security.cookie_name,
        cookie_secure=settings.security.cookie_secure,
    )
    store = RecordStore(redis, max_retries=settings.redis.max_retries)
    gateway = RemoteMailboxGateway(
        client_factory,
        owa_url=settings.exchange.owa_url,
        timeout=settings.exchange.remote_timeout,
        display_tz=settings.exchange.tzinfo(),
        max_page_size=settings.exchange.max_page_size,
    )

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        logger.info("Outlook vault ready", redis_host=settings.redis.host)
        yield
        if owns_redis:
            await redis.aclose()
        logger.info("Outlook vault shutdown")

    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=list(settings.app.cors_origins),
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )
    ]

    app = Starlette(
        routes=routes,
        middleware=middleware,
        exception_handlers={
            AuthRejected: handle_auth_rejected,
            ValidationError: handle_validation_error,
            VaultError: handle_vault_error,
        },
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.cipher = cipher
    app.state.binder = binder
    app.state.store = store
    app.state.registry = CalendarRegistry(store)
    app.state.gateway = gateway
    app.state.gate = AuthenticationGate(binder, store, cipher)

    return app


def create_app_from_env() -> Starlette:
    """Application factory for ``uvicorn --factory`` (settings from the environment)."""
    return create_app(load_config())
