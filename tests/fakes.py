"""In-memory stand-ins for Redis and the remote mailbox used by tests.

FakeRedis:
  Implements the subset of ``redis.asyncio.Redis`` the record store calls
  (hash commands, delete, ping, and WATCH/MULTI/EXEC pipelines). Every write
  bumps a per-key version so a watched pipeline aborts with WatchError exactly
  when another writer touched the key, like the real server.

FakeMailboxClient:
  Satisfies MailboxClientProtocol with canned folders, messages and
  appointments, and records every call so tests can assert on arguments.
"""

from typing import Any, Callable, Optional

from redis.exceptions import WatchError

from outlook_vault.lib.errors import AuthRejected
from outlook_vault.models.credential import MailboxCredential
from outlook_vault.models.mailbox import (
    CALENDAR_FOLDER_CLASS,
    RemoteAppointment,
    RemoteFolder,
    RemoteMessage,
)


class FakeRedis:
    """Async in-memory Redis with decoded (str) responses."""

    def __init__(self) -> None:
        self.hashes: dict[str, dict[str, str]] = {}
        self.versions: dict[str, int] = {}
        self.fail_with: Optional[Exception] = None
        # Called once per pipeline.execute() before the watch check
        self.before_execute: Optional[Callable[["FakeRedis"], None]] = None
        self.closed = False

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def _bump(self, key: str) -> None:
        self.versions[key] = self.versions.get(key, 0) + 1

    def _hset_now(
        self, name: str, key: Optional[str] = None, value: Any = None, mapping: Optional[dict] = None
    ) -> int:
        fields = dict(mapping or {})
        if key is not None:
            fields[key] = value
        bucket = self.hashes.setdefault(name, {})
        added = sum(1 for k in fields if k not in bucket)
        bucket.update({k: str(v) for k, v in fields.items()})
        self._bump(name)
        return added

    async def hgetall(self, name: str) -> dict[str, str]:
        self._check()
        return dict(self.hashes.get(name, {}))

    async def hget(self, name: str, key: str) -> Optional[str]:
        self._check()
        return self.hashes.get(name, {}).get(key)

    async def hexists(self, name: str, key: str) -> bool:
        self._check()
        return key in self.hashes.get(name, {})

    async def hset(
        self, name: str, key: Optional[str] = None, value: Any = None, mapping: Optional[dict] = None
    ) -> int:
        self._check()
        return self._hset_now(name, key, value, mapping)

    async def delete(self, *names: str) -> int:
        self._check()
        removed = 0
        for name in names:
            if self.hashes.pop(name, None) is not None:
                removed += 1
                self._bump(name)
        return removed

    async def ping(self) -> bool:
        self._check()
        return True

    async def aclose(self) -> None:
        self.closed = True

    def pipeline(self, transaction: bool = True) -> "FakePipeline":
        return FakePipeline(self)


class FakePipeline:
    """WATCH/MULTI/EXEC pipeline over a FakeRedis."""

    def __init__(self, redis: FakeRedis) -> None:
        self._redis = redis
        self._watched: dict[str, int] = {}
        self._queue: list[tuple[str, Optional[str], Any, Optional[dict]]] = []
        self._buffering = False

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.reset()

    def reset(self) -> None:
        self._watched.clear()
        self._queue.clear()
        self._buffering = False

    async def watch(self, *names: str) -> None:
        self._redis._check()
        for name in names:
            self._watched[name] = self._redis.versions.get(name, 0)

    async def hexists(self, name: str, key: str) -> bool:
        return await self._redis.hexists(name, key)

    async def hget(self, name: str, key: str) -> Optional[str]:
        return await self._redis.hget(name, key)

    def multi(self) -> None:
        self._buffering = True

    def hset(
        self, name: str, key: Optional[str] = None, value: Any = None, mapping: Optional[dict] = None
    ) -> "FakePipeline":
        self._queue.append((name, key, value, mapping))
        return self

    async def execute(self) -> list[int]:
        self._redis._check()
        if self._redis.before_execute is not None:
            self._redis.before_execute(self._redis)

        for name, version in self._watched.items():
            if self._redis.versions.get(name, 0) != version:
                self.reset()
                raise WatchError("Watched variable changed.")

        results = [self._redis._hset_now(*queued) for queued in self._queue]
        self.reset()
        return results


class FakeMailboxClient:
    """Canned MailboxClientProtocol implementation.

    Set an entry in ``errors`` (method name -> exception) to make that method
    raise. ``closed`` counts close() calls.
    """

    def __init__(
        self,
        calendars: Optional[list[RemoteFolder]] = None,
        messages: Optional[list[RemoteMessage]] = None,
        appointments: Optional[list[RemoteAppointment]] = None,
        folder_names: Optional[dict[str, str]] = None,
    ) -> None:
        self.calendars = calendars or []
        self.messages = messages or []
        self.appointments = appointments or []
        self.folder_names = folder_names or {}
        self.errors: dict[str, Exception] = {}
        self.calls: list[tuple] = []
        # close() is counted here rather than recorded in calls
        self.closed = 0
        self.close_error: Optional[Exception] = None

    def close(self) -> None:
        self.closed += 1
        if self.close_error is not None:
            raise self.close_error

    def _enter(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.errors:
            raise self.errors[name]

    def bind_inbox(self) -> RemoteFolder:
        self._enter("bind_inbox")
        return RemoteFolder(id="inbox-id", name="Inbox", folder_class="IPF.Note")

    def find_calendar_folders(self) -> list[RemoteFolder]:
        self._enter("find_calendar_folders")
        return list(self.calendars)

    def find_inbox_items(self, limit: int) -> list[RemoteMessage]:
        self._enter("find_inbox_items", limit)
        return self.messages[:limit]

    def bind_folder(self, folder_id: str) -> RemoteFolder:
        self._enter("bind_folder", folder_id)
        return RemoteFolder(
            id=folder_id,
            name=self.folder_names.get(folder_id, "Calendar"),
            folder_class=CALENDAR_FOLDER_CLASS,
        )

    def find_appointments(self, folder_id: str, start: Any, end: Any) -> list[RemoteAppointment]:
        self._enter("find_appointments", folder_id, start, end)
        return list(self.appointments)


class FakeMailboxFactory:
    """MailboxClientFactory that hands out one shared FakeMailboxClient.

    ``passwords`` maps email -> accepted password; a credential not listed
    there (when the map is non-empty) is rejected the way EWS rejects a bad
    login.
    """

    def __init__(self, client: Optional[FakeMailboxClient] = None) -> None:
        self.client = client or FakeMailboxClient()
        self.passwords: dict[str, str] = {}
        self.credentials: list[MailboxCredential] = []
        self.error: Optional[Exception] = None

    def __call__(self, credential: MailboxCredential) -> FakeMailboxClient:
        self.credentials.append(credential)
        if self.error is not None:
            raise self.error
        if self.passwords and self.passwords.get(credential.email) != credential.password:
            raise AuthRejected("The mailbox service rejected the credentials")
        return self.client


def calendar_folder(folder_id: str, name: str) -> RemoteFolder:
    """Build a calendar-class RemoteFolder."""
    return RemoteFolder(id=folder_id, name=name, folder_class=CALENDAR_FOLDER_CLASS)
