"""Remote Mailbox Gateway.

Turns a resolved credential plus a requested operation into one live,
authenticated conversation with the remote mailbox service and maps the
results into the shapes the HTTP layer serves.

AIDEV-NOTE: Per-request sessions
- Every operation builds a fresh client from the credential; nothing is
  cached or pooled across requests
- Each blocking client call runs in a worker thread bounded by
  ``timeout`` seconds; expiry is a RemoteServiceError, never AuthRejected
- No retries here: a failed call fails the request
- The client is closed after the last call of every operation, success or
  failure, so no credential stays cached once the request is answered
"""

import asyncio
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, Optional, TypeVar

from outlook_vault.lib.errors import (
    AuthRejected,
    RemoteServiceError,
    ValidationError,
    VaultError,
)
from outlook_vault.lib.logger import get_structured_logger
from outlook_vault.lib.utils import (
    Timer,
    escape_item_id,
    format_iso_utc,
    format_received_date,
    hash_email,
    parse_iso_datetime,
)
from outlook_vault.models.credential import MailboxCredential
from outlook_vault.models.mailbox import (
    CalendarEvent,
    CalendarEventsResult,
    InboxMessage,
    LoginResult,
    RemoteAppointment,
    RemoteMessage,
)
from outlook_vault.models.user_record import CalendarEntry
from outlook_vault.services.protocols import MailboxClientFactory, MailboxClientProtocol

# ============================================================================
# Constants
# ============================================================================

DEFAULT_INBOX_LIMIT = 100
DEFAULT_MAX_PAGE_SIZE = 1000
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_WINDOW = timedelta(days=1)

OWA_READ_QUERY = "exvsurl=1&viewmodel=ReadMessageItem"

logger = get_structured_logger(__name__)

T = TypeVar("T")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RemoteMailboxGateway:
    """Stateless gateway to the remote mailbox and calendar service.

    Attributes:
        _client_factory: Builds a fresh MailboxClientProtocol per operation
        _owa_url: OWA base URL for message deep links
        _timeout: Bound on each remote call in seconds
        _display_tz: Zone for received-date strings (None: server local time)
        _max_page_size: Largest inbox page a caller may request
        _clock: Returns the current aware time (injectable for tests)
    """

    def __init__(
        self,
        client_factory: MailboxClientFactory,
        owa_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        display_tz: Optional[tzinfo] = None,
        max_page_size: int = DEFAULT_MAX_PAGE_SIZE,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._client_factory = client_factory
        self._owa_url = owa_url.rstrip("/")
        self._timeout = timeout
        self._display_tz = display_tz
        self._max_page_size = max_page_size
        self._clock = clock

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _run(self, operation: str, call: Callable[[], T]) -> T:
        """Run one blocking client call in a thread under the timeout.

        Raises:
            AuthRejected: The service reported an authentication failure
            RemoteServiceError: Timeout, network, protocol or any other failure
        """
        try:
            return await asyncio.wait_for(asyncio.to_thread(call), timeout=self._timeout)
        except VaultError:
            raise
        except asyncio.TimeoutError as e:
            raise RemoteServiceError(
                f"EWS {operation} timed out after {self._timeout:.0f}s"
            ) from e
        except OSError as e:
            raise RemoteServiceError(
                f"Network error during EWS {operation}: {type(e).__name__}"
            ) from e
        except Exception as e:
            raise RemoteServiceError(
                f"EWS {operation} failed: {type(e).__name__}"
            ) from e

    async def _connect(self, credential: MailboxCredential) -> MailboxClientProtocol:
        user = hash_email(credential.email)
        return await self._timed("connect", user, lambda: self._client_factory(credential))

    async def _timed(self, operation: str, user: str, call: Callable[[], T]) -> T:
        """Run a client call and log its outcome and duration."""
        timer = Timer(operation)
        with timer:
            try:
                result = await self._run(operation, call)
            except VaultError as e:
                logger.log_remote_call(operation, user, type(e).__name__)
                raise
        logger.log_remote_call(operation, user, "ok", timer.elapsed_ms)
        return result

    async def _release(self, client: MailboxClientProtocol, user: str) -> None:
        """Close a client; a failure here is logged and never fails the request."""
        try:
            await asyncio.wait_for(asyncio.to_thread(client.close), timeout=self._timeout)
        except Exception as e:
            logger.warning("Client close failed", user=user, error=type(e).__name__)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> LoginResult:
        """Validate credentials and list the user's calendar folders.

        Binds the inbox as the credential probe, then enumerates calendar
        folders. A failed enumeration after a good probe is logged and
        yields an empty calendar list.

        Raises:
            AuthRejected: The probe failed for any reason
        """
        try:
            credential = MailboxCredential(email=email, password=password)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        user = hash_email(email)
        logger.info("Login probe", user=user)

        try:
            client = await self._connect(credential)
        except AuthRejected:
            raise
        except VaultError as e:
            raise AuthRejected(str(e)) from e

        try:
            try:
                await self._timed("bind_inbox", user, client.bind_inbox)
            except AuthRejected:
                raise
            except VaultError as e:
                raise AuthRejected(str(e)) from e

            try:
                folders = await self._timed(
                    "find_calendar_folders", user, client.find_calendar_folders
                )
            except VaultError as e:
                logger.warning("Calendar enumeration failed", user=user, error=type(e).__name__)
                folders = []
        finally:
            await self._release(client, user)

        calendars = [
            CalendarEntry(id=f.id, name=f.name) for f in folders if f.is_calendar and f.id
        ]
        return LoginResult(calendars=calendars)

    async def list_inbox_messages(
        self, credential: MailboxCredential, limit: int = DEFAULT_INBOX_LIMIT
    ) -> list[InboxMessage]:
        """Return the most recent inbox messages.

        Args:
            credential: Resolved mailbox credential
            limit: Number of items, clamped to ``[1, max_page_size]``
        """
        limit = max(1, min(limit, self._max_page_size))
        user = hash_email(credential.email)

        client = await self._connect(credential)
        try:
            items = await self._timed(
                "find_inbox_items", user, lambda: client.find_inbox_items(limit)
            )
        finally:
            await self._release(client, user)
        return [self._to_inbox_message(item) for item in items]

    async def list_calendar_events(
        self,
        credential: MailboxCredential,
        calendar_id: str,
        time_min: Optional[str] = None,
        time_max: Optional[str] = None,
    ) -> CalendarEventsResult:
        """Return events of one calendar folder within a window.

        The window defaults to ``[now, now + 1 day)``; when only ``time_min``
        is given the end is one day after it.

        Raises:
            ValidationError: calendar_id missing, or bounds unparsable/inverted
        """
        if not isinstance(calendar_id, str) or not calendar_id:
            raise ValidationError("CalendarId is required")

        start, end = self._resolve_window(time_min, time_max)
        user = hash_email(credential.email)

        client = await self._connect(credential)
        try:
            folder = await self._timed(
                "bind_folder", user, lambda: client.bind_folder(calendar_id)
            )
            logger.info("Calendar bound", user=user, calendar=folder.name)

            appointments = await self._timed(
                "find_appointments",
                user,
                lambda: client.find_appointments(calendar_id, start, end),
            )
        finally:
            await self._release(client, user)
        return CalendarEventsResult(
            calendar_name=folder.name,
            events=[self._to_calendar_event(a) for a in appointments],
        )

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def _resolve_window(
        self, time_min: Optional[str], time_max: Optional[str]
    ) -> tuple[datetime, datetime]:
        try:
            start = parse_iso_datetime(time_min) if time_min else self._clock()
            end = parse_iso_datetime(time_max) if time_max else start + DEFAULT_WINDOW
        except (TypeError, ValueError, AttributeError) as e:
            raise ValidationError("timeMin/timeMax must be ISO-8601 timestamps") from e

        if end <= start:
            raise ValidationError("timeMax must be after timeMin")
        return start, end

    def build_message_link(self, item_id: str) -> str:
        """Deep link that opens a message in OWA."""
        return f"{self._owa_url}/?ItemID={escape_item_id(item_id)}&{OWA_READ_QUERY}"

    def _to_inbox_message(self, item: RemoteMessage) -> InboxMessage:
        return InboxMessage(
            subject=item.subject or "",
            received_date=(
                format_received_date(item.received, self._display_tz)
                if item.received
                else ""
            ),
            sender=item.sender_name or item.sender_address or "",
            link=self.build_message_link(item.id),
        )

    @staticmethod
    def _to_calendar_event(item: RemoteAppointment) -> CalendarEvent:
        return CalendarEvent(
            id=item.id,
            subject=item.subject or "",
            start=format_iso_utc(item.start),
            end=format_iso_utc(item.end),
            location=item.location or None,
            is_all_day=item.is_all_day,
            is_recurring=item.is_recurring,
        )
