"""UserRecord and calendar entry models."""

import json
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class CalendarEntry:
    """
    A calendar folder reference kept in a user's record.

    Attributes:
        id: EWS folder id
        name: Display name shown to the user
    """

    id: str
    name: str

    def __post_init__(self) -> None:
        """Validate entry data after initialization."""
        if not isinstance(self.id, str) or not self.id:
            raise ValueError("Calendar id cannot be empty")
        if not isinstance(self.name, str):
            raise ValueError("Calendar name must be a string")

    def to_dict(self) -> dict:
        """Convert entry to its wire/storage dictionary."""
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_dict(cls, data: dict) -> "CalendarEntry":
        """Create an entry from a stored ``{"id", "name"}`` mapping."""
        return cls(id=data["id"], name=data.get("name", ""))


def dump_calendars(calendars: list[CalendarEntry]) -> str:
    """Serialize calendars to the JSON array stored in the record."""
    return json.dumps([c.to_dict() for c in calendars], ensure_ascii=False)


def load_calendars(raw: Optional[str]) -> list[CalendarEntry]:
    """
    Parse the stored JSON array of calendars.

    Args:
        raw: Stored JSON text, or None when the field is unset

    Returns:
        Calendars in stored order (empty when unset)

    Raises:
        ValueError: Stored text is not a JSON array of calendar objects
    """
    if not raw:
        return []

    data: Any = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("Stored calendar list is not a JSON array")

    return [CalendarEntry.from_dict(item) for item in data]


@dataclass
class UserRecord:
    """
    Server-side state for one mailbox identity.

    Attributes:
        email: Mailbox address, the record key (case-sensitive)
        credential_ciphertext: ``hex(iv):hex(ciphertext)`` of the credential pair
        calendars: Calendar references in display order
        active_calendar_id: Calendar last selected by the client, if any
    """

    email: str
    credential_ciphertext: str = field(repr=False)
    calendars: list[CalendarEntry] = field(default_factory=list)
    active_calendar_id: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate record data after initialization."""
        if not self.email:
            raise ValueError("Record email cannot be empty")
        if not self.credential_ciphertext:
            raise ValueError("Record ciphertext cannot be empty")

    @property
    def has_calendar(self) -> bool:
        """Whether the user has any calendar to show."""
        return bool(self.calendars) or bool(self.active_calendar_id)

    def to_status_dict(self) -> dict:
        """Login status payload for ``/check-login``."""
        payload = {
            "loggedIn": True,
            "email": self.email,
            "hasCalendarId": self.has_calendar,
            "calendars": [c.to_dict() for c in self.calendars],
        }
        if self.active_calendar_id:
            payload["calendarId"] = self.active_calendar_id
        return payload

    def __repr__(self) -> str:
        """Representation without the ciphertext."""
        return (
            f"UserRecord(email={self.email!r}, calendars={len(self.calendars)}, "
            f"active_calendar_id={self.active_calendar_id!r})"
        )
