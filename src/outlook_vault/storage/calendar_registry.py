"""Per-user registry of calendar folder references."""

from outlook_vault.lib.errors import StoreUnavailable, ValidationError
from outlook_vault.lib.logger import get_structured_logger
from outlook_vault.lib.utils import hash_email
from outlook_vault.models.user_record import CalendarEntry
from outlook_vault.storage.record_store import RecordStore

logger = get_structured_logger(__name__)


def _require_text(value: object, field_name: str) -> str:
    """Return value if it is a non-empty string, else raise ValidationError."""
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field_name} is required")
    return value


class CalendarRegistry:
    """Add, remove and select calendars in a user's record.

    Adding an id that is already present appends a second entry; removing an
    id that is absent succeeds without change.
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def list_calendars(self, email: str) -> list[CalendarEntry]:
        """Return the user's calendars in display order."""
        return await self._store.list_calendars(email)

    async def add(self, email: str, calendar_id: str, name: str) -> list[CalendarEntry]:
        """Append a calendar to the user's list.

        Raises:
            ValidationError: calendar_id or name missing
            RecordNotFound: User has no record
        """
        entry = CalendarEntry(
            id=_require_text(calendar_id, "Calendar ID"),
            name=_require_text(name, "Calendar name"),
        )

        updated = await self._store.update_calendars(
            email, lambda calendars: calendars + [entry]
        )
        logger.log_calendar_change("add", hash_email(email), len(updated))
        return updated

    async def remove(self, email: str, calendar_id: str) -> list[CalendarEntry]:
        """Drop every entry with the given id.

        Raises:
            ValidationError: calendar_id missing
            RecordNotFound: User has no record
        """
        calendar_id = _require_text(calendar_id, "Calendar ID")

        updated = await self._store.update_calendars(
            email, lambda calendars: [c for c in calendars if c.id != calendar_id]
        )
        logger.log_calendar_change("remove", hash_email(email), len(updated))
        return updated

    async def replace_active(self, email: str, calendar_id: str) -> None:
        """Record the calendar the client selected and verify the write.

        Raises:
            ValidationError: calendar_id missing
            StoreUnavailable: The value read back differs from the one written
        """
        calendar_id = _require_text(calendar_id, "Calendar ID")

        await self._store.put(email, active_calendar_id=calendar_id)
        stored = await self._store.get_active_calendar(email)
        if stored != calendar_id:
            raise StoreUnavailable("Failed to update calendar ID in record store")

        logger.info("Active calendar updated", user=hash_email(email))
