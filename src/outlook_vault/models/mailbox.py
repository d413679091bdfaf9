"""Mailbox and calendar result models.

Two layers live here:

- ``Remote*`` classes are what the EWS adapter returns: plain values with
  stdlib datetimes, no exchangelib types.
- ``InboxMessage``, ``CalendarEvent`` and friends are what the gateway hands
  to the HTTP layer, already formatted for the client.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Union

from outlook_vault.models.user_record import CalendarEntry

# Folder class EWS assigns to calendar folders
CALENDAR_FOLDER_CLASS = "IPF.Appointment"


# ============================================================================
# Adapter-level values
# ============================================================================


@dataclass(frozen=True)
class RemoteFolder:
    """A folder as enumerated by the remote service."""

    id: str
    name: str
    folder_class: Optional[str] = None

    @property
    def is_calendar(self) -> bool:
        """Check if this folder holds appointments."""
        return self.folder_class == CALENDAR_FOLDER_CLASS


@dataclass(frozen=True)
class RemoteMessage:
    """An inbox item with the fields the inbox listing needs."""

    id: str
    subject: Optional[str]
    received: Optional[datetime]
    sender_name: Optional[str] = None
    sender_address: Optional[str] = None


@dataclass(frozen=True)
class RemoteAppointment:
    """A calendar item inside a calendar view window.

    All-day items may carry plain dates instead of datetimes.
    """

    id: str
    subject: Optional[str]
    start: Union[datetime, date, None]
    end: Union[datetime, date, None]
    location: Optional[str] = None
    is_all_day: bool = False
    is_recurring: bool = False


# ============================================================================
# Client-facing results
# ============================================================================


@dataclass(frozen=True)
class LoginResult:
    """Outcome of a successful credential probe."""

    calendars: list[CalendarEntry] = field(default_factory=list)


@dataclass(frozen=True)
class InboxMessage:
    """One row of the inbox listing."""

    subject: str
    received_date: str
    sender: str
    link: str

    def to_dict(self) -> dict:
        """Convert to the JSON shape served by ``/emails``."""
        return {
            "subject": self.subject,
            "receivedDate": self.received_date,
            "from": self.sender,
            "link": self.link,
        }


@dataclass(frozen=True)
class CalendarEvent:
    """One event inside a calendar window."""

    id: str
    subject: str
    start: str
    end: str
    location: Optional[str]
    is_all_day: bool
    is_recurring: bool

    def to_dict(self) -> dict:
        """Convert to the JSON shape served by ``/calendar``."""
        payload = {
            "id": self.id,
            "subject": self.subject,
            "start": self.start,
            "end": self.end,
            "isAllDay": self.is_all_day,
            "isRecurring": self.is_recurring,
        }
        if self.location:
            payload["location"] = self.location
        return payload


@dataclass(frozen=True)
class CalendarEventsResult:
    """Events of one calendar folder plus its display name."""

    calendar_name: str
    events: list[CalendarEvent] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to the JSON shape served by ``/calendar``."""
        return {
            "calendarName": self.calendar_name,
            "events": [e.to_dict() for e in self.events],
        }
