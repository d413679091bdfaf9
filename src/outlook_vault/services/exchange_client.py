"""Exchange Web Services adapter built on exchangelib.

AIDEV-NOTE: Library choice
- exchangelib speaks EWS SOAP and takes username/password credentials on
  every request, which is exactly what the vault stores
- Autodiscover is disabled; the endpoint comes from configuration
- The server version is pinned to Exchange 2013 SP1 so binding an account
  does not cost an extra version-probing round trip

AIDEV-NOTE: Error translation
- UnauthorizedError (HTTP 401 from EWS) and ErrorAccessDenied are the only
  failures reported as AuthRejected
- Every other failure, including exchangelib's ValueError subclasses,
  becomes RemoteServiceError, so a flaky network never looks like a bad password

AIDEV-NOTE: Protocol cache
- exchangelib caches one Protocol per (endpoint, credentials) for the life of
  the process, plaintext password included
- close() evicts this client's entry; the gateway calls it after every
  operation so no credential outlives its request
- HTTP requests are bounded by the configured timeout and never retried
  (FailFast), so a worker thread cannot outlive the gateway's deadline by much
"""

import contextlib
import functools
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional, TypeVar

from exchangelib import (
    DELEGATE,
    Account,
    Configuration,
    Credentials,
    EWSDateTime,
    FolderCollection,
    Q,
)
from exchangelib.errors import (
    EWSError,
    ErrorAccessDenied,
    TransportError,
    UnauthorizedError,
)
from exchangelib.folders import DEEP
from exchangelib.items import CalendarItem, Message
from exchangelib.properties import FolderId
from exchangelib.protocol import FailFast, Protocol
from exchangelib.version import EXCHANGE_2013_SP1, Version

from outlook_vault.lib.errors import AuthRejected, RemoteServiceError, VaultError
from outlook_vault.lib.logger import get_logger
from outlook_vault.models.credential import MailboxCredential
from outlook_vault.models.mailbox import (
    CALENDAR_FOLDER_CLASS,
    RemoteAppointment,
    RemoteFolder,
    RemoteMessage,
)

logger = get_logger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0  # seconds
FOLDER_PAGE_SIZE = 100

T = TypeVar("T")


def translate_errors(func: Callable[..., T]) -> Callable[..., T]:
    """Map every exception raised under exchangelib onto a vault error.

    Only AuthRejected and RemoteServiceError ever leave a wrapped call.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return func(*args, **kwargs)
        except VaultError:
            raise
        except (UnauthorizedError, ErrorAccessDenied) as e:
            raise AuthRejected("The mailbox service rejected the credentials") from e
        except (EWSError, TransportError) as e:
            raise RemoteServiceError(
                f"EWS {func.__name__} failed: {type(e).__name__}"
            ) from e
        except OSError as e:
            raise RemoteServiceError(
                f"Network error during EWS {func.__name__}: {type(e).__name__}"
            ) from e
        except Exception as e:
            logger.warning(f"Unexpected exchangelib error in {func.__name__}: {type(e).__name__}")
            raise RemoteServiceError(
                f"EWS {func.__name__} failed: {type(e).__name__}"
            ) from e

    return wrapper


def to_utc_datetime(value: Any) -> Optional[datetime]:
    """Convert an EWSDateTime (or any aware datetime) to a stdlib UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(value.timestamp(), tz=timezone.utc)


def to_plain_temporal(value: Any) -> Any:
    """Convert EWS date/datetime values to stdlib types."""
    if isinstance(value, datetime):
        return to_utc_datetime(value)
    if isinstance(value, date):
        return date(value.year, value.month, value.day)
    return None


def evict_protocol(config: Configuration) -> None:
    """Drop the process-wide cached Protocol for one endpoint and credential."""
    with contextlib.suppress(KeyError):
        del Protocol[config]


def calendar_folder_restriction() -> Q:
    """FindFolder restriction matching calendar folders by folder class."""
    return Q(folder_class=CALENDAR_FOLDER_CLASS)


class ExchangeMailboxClient:
    """MailboxClientProtocol implementation for one EWS account.

    Attributes:
        _account: exchangelib Account bound to the credential
        _folders: Folders bound during this client's lifetime
    """

    @translate_errors
    def __init__(
        self,
        credential: MailboxCredential,
        ews_url: str,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        """Bind an EWS account without contacting the server.

        Args:
            credential: Mailbox email and password
            ews_url: EWS endpoint, e.g. https://mail.example.com/EWS/Exchange.asmx
            timeout: Bound on each HTTP request to the endpoint, in seconds
        """
        credentials = Credentials(username=credential.email, password=credential.password)
        config = Configuration(
            service_endpoint=ews_url,
            credentials=credentials,
            version=Version(build=EXCHANGE_2013_SP1),
            retry_policy=FailFast(),
        )
        try:
            self._account = Account(
                primary_smtp_address=credential.email,
                config=config,
                autodiscover=False,
                access_type=DELEGATE,
            )
        except Exception:
            evict_protocol(config)
            raise

        self._account.protocol.TIMEOUT = timeout
        self._folders: dict[str, Any] = {}

    @classmethod
    def factory(
        cls, ews_url: str, timeout: float = DEFAULT_REQUEST_TIMEOUT
    ) -> Callable[[MailboxCredential], "ExchangeMailboxClient"]:
        """Return a MailboxClientFactory bound to an endpoint."""
        return functools.partial(cls, ews_url=ews_url, timeout=timeout)

    def close(self) -> None:
        """Close pooled HTTP sessions and drop the cached protocol.

        After this the process holds no reference to the credential through
        exchangelib.
        """
        protocol = self._account.protocol
        protocol.close()
        evict_protocol(protocol.config)
        self._folders.clear()

    @staticmethod
    def _to_remote_folder(folder: Any) -> RemoteFolder:
        return RemoteFolder(
            id=folder.id,
            name=folder.name or "",
            folder_class=folder.folder_class,
        )

    @translate_errors
    def bind_inbox(self) -> RemoteFolder:
        inbox = self._account.inbox
        inbox.refresh()
        return self._to_remote_folder(inbox)

    @translate_errors
    def find_calendar_folders(self) -> list[RemoteFolder]:
        root = self._account.msg_folder_root
        matches = FolderCollection(account=self._account, folders=[root]).find_folders(
            q=calendar_folder_restriction(),
            depth=DEEP,
            page_size=FOLDER_PAGE_SIZE,
        )

        folders = []
        for folder in matches:
            if isinstance(folder, Exception):
                raise folder
            folders.append(self._to_remote_folder(folder))
        # The restriction is authoritative, but some servers ignore it
        return [f for f in folders if f.is_calendar]

    @translate_errors
    def find_inbox_items(self, limit: int) -> list[RemoteMessage]:
        query = (
            self._account.inbox.all()
            .order_by("-datetime_received")
            .only("subject", "datetime_received", "author")
        )

        messages = []
        for item in query[:limit]:
            if not isinstance(item, Message):
                continue
            author = item.author
            messages.append(
                RemoteMessage(
                    id=item.id,
                    subject=item.subject,
                    received=to_utc_datetime(item.datetime_received),
                    sender_name=author.name if author else None,
                    sender_address=author.email_address if author else None,
                )
            )
        return messages

    def _resolve_folder(self, folder_id: str) -> Any:
        if folder_id not in self._folders:
            resolved = list(
                FolderCollection(
                    account=self._account, folders=[FolderId(id=folder_id)]
                ).resolve()
            )
            if not resolved:
                raise RemoteServiceError("Folder not found")
            if isinstance(resolved[0], Exception):
                raise resolved[0]
            self._folders[folder_id] = resolved[0]
        return self._folders[folder_id]

    @translate_errors
    def bind_folder(self, folder_id: str) -> RemoteFolder:
        return self._to_remote_folder(self._resolve_folder(folder_id))

    @translate_errors
    def find_appointments(
        self, folder_id: str, start: datetime, end: datetime
    ) -> list[RemoteAppointment]:
        folder = self._resolve_folder(folder_id)
        view = FolderCollection(account=self._account, folders=[folder]).view(
            start=EWSDateTime.from_datetime(start.astimezone(timezone.utc)),
            end=EWSDateTime.from_datetime(end.astimezone(timezone.utc)),
        )

        appointments = []
        for item in view:
            if not isinstance(item, CalendarItem):
                continue
            appointments.append(
                RemoteAppointment(
                    id=item.id,
                    subject=item.subject,
                    start=to_plain_temporal(item.start),
                    end=to_plain_temporal(item.end),
                    location=item.location,
                    is_all_day=bool(item.is_all_day),
                    is_recurring=bool(item.is_recurring),
                )
            )
        return appointments
