"""Record storage and the calendar registry."""

from outlook_vault.storage.calendar_registry import CalendarRegistry
from outlook_vault.storage.record_store import RecordStore, connect_redis

__all__ = ["RecordStore", "CalendarRegistry", "connect_redis"]
