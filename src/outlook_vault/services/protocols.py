"""Protocol definitions for the remote mailbox client.

The gateway depends on this interface rather than on exchangelib, so tests can
hand it an in-memory client and the EWS adapter stays swappable.

Protocols use structural subtyping (PEP 544), meaning any class implementing
the required methods satisfies the protocol without explicit inheritance.
"""

from datetime import datetime
from typing import Callable, Protocol, runtime_checkable

from outlook_vault.models.credential import MailboxCredential
from outlook_vault.models.mailbox import RemoteAppointment, RemoteFolder, RemoteMessage


@runtime_checkable
class MailboxClientProtocol(Protocol):
    """One authenticated connection to the remote mailbox service.

    A client is created per request and thrown away afterwards. Every method
    is blocking; the gateway runs them in worker threads.

    Methods:
        bind_inbox: Bind the default inbox folder (credential probe)
        find_calendar_folders: Deep search for calendar folders
        find_inbox_items: Most recent inbox items
        bind_folder: Bind a folder by id
        find_appointments: Calendar view of a folder over a time window
        close: Release connections and any cached credential

    Every method except close raises:
        AuthRejected: The service reported an authentication failure
        RemoteServiceError: Any other network or protocol failure

    Example:
        >>> class FakeClient:
        ...     def bind_inbox(self): ...
        ...     def find_calendar_folders(self): ...
        ...     def find_inbox_items(self, limit): ...
        ...     def bind_folder(self, folder_id): ...
        ...     def find_appointments(self, folder_id, start, end): ...
        ...     def close(self): ...
        >>> client: MailboxClientProtocol = FakeClient()
    """

    def bind_inbox(self) -> RemoteFolder:
        """Bind the default inbox folder.

        Any successful bind proves the credentials work.
        """
        ...

    def find_calendar_folders(self) -> list[RemoteFolder]:
        """Find folders whose class is ``IPF.Appointment``.

        Searches the whole hierarchy below the message folder root
        (deep traversal).
        """
        ...

    def find_inbox_items(self, limit: int) -> list[RemoteMessage]:
        """Return up to ``limit`` inbox items, newest first."""
        ...

    def bind_folder(self, folder_id: str) -> RemoteFolder:
        """Bind a folder by its EWS id."""
        ...

    def find_appointments(
        self, folder_id: str, start: datetime, end: datetime
    ) -> list[RemoteAppointment]:
        """Return calendar items of a folder overlapping ``[start, end)``.

        Args:
            folder_id: EWS folder id
            start: Aware window start
            end: Aware window end
        """
        ...

    def close(self) -> None:
        """Release pooled connections and drop any cached credential.

        The gateway calls this once per operation, after the last call.
        """
        ...


# Builds a fresh client for one credential. Called inside a worker thread.
MailboxClientFactory = Callable[[MailboxCredential], MailboxClientProtocol]
