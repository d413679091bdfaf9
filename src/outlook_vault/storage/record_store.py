"""Redis-backed storage of UserRecords.

Each UserRecord is one Redis hash keyed by the mailbox address:

- ``password``: credential ciphertext token
- ``calendarIds``: JSON array of ``{"id", "name"}``
- ``calendarId``: calendar last selected by the client (optional)

Writes are field-level upserts (HSET with a mapping), never whole-record
replaces. Calendar list changes go through :meth:`RecordStore.update_calendars`,
an optimistic WATCH/MULTI transaction, so concurrent add/remove calls for the
same user cannot lose each other's writes.

AIDEV-NOTE: Failure semantics
- Connection problems surface as StoreUnavailable, never as "not found", so
  the HTTP layer answers 500 rather than 401
- Records are never reaped; they live until logout or ``outlook-vault forget``
"""

from typing import Callable, Optional, Union

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from outlook_vault.lib.config import RedisConfig
from outlook_vault.lib.errors import RecordNotFound, StoreConflict, StoreUnavailable
from outlook_vault.lib.logger import get_logger
from outlook_vault.lib.utils import hash_email
from outlook_vault.models.user_record import (
    CalendarEntry,
    UserRecord,
    dump_calendars,
    load_calendars,
)

# ============================================================================
# Constants
# ============================================================================

FIELD_CIPHERTEXT = "password"
FIELD_CALENDARS = "calendarIds"
FIELD_ACTIVE_CALENDAR = "calendarId"

DEFAULT_MAX_RETRIES = 5

logger = get_logger(__name__)

CalendarMutation = Callable[[list[CalendarEntry]], list[CalendarEntry]]


def connect_redis(config: RedisConfig) -> Redis:
    """Build the async Redis client (lazy; no connection is made here)."""
    return Redis(
        host=config.host,
        port=config.port,
        db=config.db,
        password=config.password,
        decode_responses=True,
        socket_timeout=config.socket_timeout,
        socket_connect_timeout=config.socket_timeout,
    )


def _text(value: Union[str, bytes, None]) -> Optional[str]:
    """Normalize a Redis reply to str (clients may not decode responses)."""
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


def _parse_calendars(email: str, raw: Optional[str]) -> list[CalendarEntry]:
    """Decode the stored calendar list, treating corruption as a store failure."""
    try:
        return load_calendars(raw)
    except (ValueError, KeyError, TypeError) as e:
        logger.error(f"Corrupt calendar list for user {hash_email(email)}: {e}")
        raise StoreUnavailable("Stored calendar list is corrupt") from e


class RecordStore:
    """Key-value persistence of one record per mailbox identity.

    Attributes:
        _redis: Async Redis client (shared connection pool)
        _max_retries: Optimistic transaction attempts before StoreConflict
    """

    def __init__(self, redis: Redis, max_retries: int = DEFAULT_MAX_RETRIES) -> None:
        """Initialize record store.

        Args:
            redis: Async Redis client
            max_retries: Attempts for optimistic calendar updates (default: 5)
        """
        self._redis = redis
        self._max_retries = max_retries

    async def get(self, email: str) -> UserRecord:
        """Load the full record for an email.

        Raises:
            RecordNotFound: No record, or the record has no ciphertext
            StoreUnavailable: Redis unreachable or data corrupt
        """
        try:
            fields = await self._redis.hgetall(email)
        except RedisError as e:
            raise StoreUnavailable(f"Failed to read record: {type(e).__name__}") from e

        fields = {_text(k): _text(v) for k, v in (fields or {}).items()}
        ciphertext = fields.get(FIELD_CIPHERTEXT)
        if not ciphertext:
            raise RecordNotFound(f"No record for user {hash_email(email)}")

        return UserRecord(
            email=email,
            credential_ciphertext=ciphertext,
            calendars=_parse_calendars(email, fields.get(FIELD_CALENDARS)),
            active_calendar_id=fields.get(FIELD_ACTIVE_CALENDAR) or None,
        )

    async def exists(self, email: str) -> bool:
        """Check whether a record with a ciphertext exists."""
        try:
            return bool(await self._redis.hexists(email, FIELD_CIPHERTEXT))
        except RedisError as e:
            raise StoreUnavailable(f"Failed to check record: {type(e).__name__}") from e

    async def put(
        self,
        email: str,
        *,
        credential_ciphertext: Optional[str] = None,
        calendars: Optional[list[CalendarEntry]] = None,
        active_calendar_id: Optional[str] = None,
    ) -> None:
        """Upsert the named fields of a record, leaving the others untouched.

        Raises:
            ValueError: No field given
            StoreUnavailable: Redis unreachable
        """
        mapping: dict[str, str] = {}
        if credential_ciphertext is not None:
            mapping[FIELD_CIPHERTEXT] = credential_ciphertext
        if calendars is not None:
            mapping[FIELD_CALENDARS] = dump_calendars(calendars)
        if active_calendar_id is not None:
            mapping[FIELD_ACTIVE_CALENDAR] = active_calendar_id

        if not mapping:
            raise ValueError("put() needs at least one field")

        try:
            await self._redis.hset(email, mapping=mapping)
        except RedisError as e:
            raise StoreUnavailable(f"Failed to write record: {type(e).__name__}") from e

        logger.debug(f"Record fields {sorted(mapping)} written for user {hash_email(email)}")

    async def list_calendars(self, email: str) -> list[CalendarEntry]:
        """Return the stored calendars (empty when unset)."""
        try:
            raw = await self._redis.hget(email, FIELD_CALENDARS)
        except RedisError as e:
            raise StoreUnavailable(f"Failed to read calendars: {type(e).__name__}") from e
        return _parse_calendars(email, _text(raw))

    async def set_calendars(self, email: str, calendars: list[CalendarEntry]) -> None:
        """Overwrite the whole calendar list."""
        await self.put(email, calendars=calendars)

    async def get_active_calendar(self, email: str) -> Optional[str]:
        """Return the calendar last selected by the client, if any."""
        try:
            value = await self._redis.hget(email, FIELD_ACTIVE_CALENDAR)
        except RedisError as e:
            raise StoreUnavailable(f"Failed to read active calendar: {type(e).__name__}") from e
        return _text(value) or None

    async def update_calendars(
        self, email: str, mutate: CalendarMutation
    ) -> list[CalendarEntry]:
        """Apply a change to the calendar list atomically.

        Reads the list under WATCH, applies ``mutate`` and writes it back in a
        MULTI/EXEC block. A concurrent write to the same record aborts the
        transaction and the whole read-modify-write is retried.

        Args:
            email: Record key
            mutate: Function from the current list to the new list

        Returns:
            The list as written

        Raises:
            RecordNotFound: No record for this email
            StoreConflict: Still conflicting after max_retries attempts
            StoreUnavailable: Redis unreachable or data corrupt
        """
        for attempt in range(self._max_retries):
            try:
                async with self._redis.pipeline(transaction=True) as pipe:
                    await pipe.watch(email)

                    if not await pipe.hexists(email, FIELD_CIPHERTEXT):
                        raise RecordNotFound(f"No record for user {hash_email(email)}")

                    current = _parse_calendars(
                        email, _text(await pipe.hget(email, FIELD_CALENDARS))
                    )
                    updated = mutate(list(current))

                    pipe.multi()
                    pipe.hset(email, FIELD_CALENDARS, dump_calendars(updated))
                    await pipe.execute()
                    return updated

            except WatchError:
                logger.warning(
                    f"Concurrent calendar update for user {hash_email(email)}, "
                    f"retrying (attempt {attempt + 1}/{self._max_retries})"
                )
            except RedisError as e:
                raise StoreUnavailable(
                    f"Failed to update calendars: {type(e).__name__}"
                ) from e

        raise StoreConflict(
            f"Calendar update for user {hash_email(email)} kept conflicting "
            f"after {self._max_retries} attempts"
        )

    async def delete(self, email: str) -> bool:
        """Remove a record entirely.

        Returns:
            True if a record was deleted, False if none existed
        """
        try:
            removed = await self._redis.delete(email)
        except RedisError as e:
            raise StoreUnavailable(f"Failed to delete record: {type(e).__name__}") from e

        if removed:
            logger.info(f"Record deleted for user {hash_email(email)}")
        return bool(removed)

    async def ping(self) -> bool:
        """Check that Redis answers."""
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            raise StoreUnavailable(f"Redis ping failed: {type(e).__name__}") from e
