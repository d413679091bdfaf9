"""Data models for records, credentials and mailbox results."""

from outlook_vault.models.credential import MailboxCredential
from outlook_vault.models.mailbox import (
    CalendarEvent,
    CalendarEventsResult,
    InboxMessage,
    LoginResult,
    RemoteAppointment,
    RemoteFolder,
    RemoteMessage,
)
from outlook_vault.models.user_record import CalendarEntry, UserRecord

__all__ = [
    "CalendarEntry",
    "UserRecord",
    "MailboxCredential",
    "LoginResult",
    "InboxMessage",
    "CalendarEvent",
    "CalendarEventsResult",
    "RemoteFolder",
    "RemoteMessage",
    "RemoteAppointment",
]
