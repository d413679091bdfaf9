"""Contract tests for the exchangelib adapter.

These tests verify that ExchangeMailboxClient drives exchangelib the way the
gateway expects and translates its exceptions. Account and FolderCollection are
mocked where a call would reach the server. Building a real Account and
rendering a restriction stay offline, so a few tests use the library as is.
"""

import uuid
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from exchangelib import DELEGATE, EWSDateTime
from exchangelib.errors import (
    ErrorAccessDenied,
    ErrorFolderNotFound,
    TransportError,
    UnauthorizedError,
)
from exchangelib.fields import InvalidField
from exchangelib.folders import DEEP, Folder
from exchangelib.items import CalendarItem, Message
from exchangelib.protocol import CachingProtocol, FailFast, Protocol
from exchangelib.restriction import Restriction
from exchangelib.version import EXCHANGE_2013_SP1, Version

from outlook_vault.lib.errors import AuthRejected, RemoteServiceError, ValidationError
from outlook_vault.models.credential import MailboxCredential
from outlook_vault.models.mailbox import RemoteFolder, RemoteMessage
from outlook_vault.services.exchange_client import (
    ExchangeMailboxClient,
    calendar_folder_restriction,
    to_plain_temporal,
    to_utc_datetime,
    translate_errors,
)
from outlook_vault.services.mailbox_gateway import RemoteMailboxGateway
from outlook_vault.services.protocols import MailboxClientProtocol

EWS_URL = "https://mail.example.com/EWS/Exchange.asmx"
CREDENTIAL = MailboxCredential("a@x.com", "secret")


def _folder(folder_id: str, name: str, folder_class: str) -> MagicMock:
    folder = MagicMock()
    folder.id = folder_id
    folder.name = name
    folder.folder_class = folder_class
    return folder


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def mock_account():
    """Patch exchangelib.Account and yield the account instance."""
    with patch("outlook_vault.services.exchange_client.Account") as account_cls:
        yield account_cls


@pytest.fixture
def client(mock_account) -> ExchangeMailboxClient:
    """Adapter bound to a mocked account."""
    return ExchangeMailboxClient(CREDENTIAL, EWS_URL)


# ============================================================================
# Account binding
# ============================================================================


@pytest.mark.contract
class TestAccountBinding:
    """Account configuration."""

    def test_account_uses_configured_endpoint_without_autodiscover(self, mock_account) -> None:
        """Test the account is bound to the EWS URL with delegate access."""
        ExchangeMailboxClient(CREDENTIAL, EWS_URL)

        kwargs = mock_account.call_args.kwargs
        assert kwargs["primary_smtp_address"] == "a@x.com"
        assert kwargs["autodiscover"] is False
        assert kwargs["access_type"] == DELEGATE
        assert kwargs["config"].service_endpoint == EWS_URL
        assert kwargs["config"].credentials.username == "a@x.com"

    def test_factory_binds_endpoint(self, mock_account) -> None:
        """Test the factory produces clients for the given endpoint."""
        factory = ExchangeMailboxClient.factory(EWS_URL)

        client = factory(CREDENTIAL)

        assert isinstance(client, ExchangeMailboxClient)
        assert isinstance(client, MailboxClientProtocol)

    def test_requests_fail_fast_with_bounded_timeout(self, mock_account) -> None:
        """Test HTTP requests are never retried and time out at the configured bound."""
        ExchangeMailboxClient.factory(EWS_URL, timeout=7.5)(CREDENTIAL)

        config = mock_account.call_args.kwargs["config"]
        assert isinstance(config.retry_policy, FailFast)
        assert mock_account.return_value.protocol.TIMEOUT == 7.5

    def test_malformed_address_becomes_remote_error(self) -> None:
        """Test exchangelib's address check surfaces as a vault error, not ValueError."""
        with pytest.raises(RemoteServiceError):
            ExchangeMailboxClient(MailboxCredential("bob", "secret"), EWS_URL)

    def test_failed_bind_evicts_config(self, mock_account) -> None:
        """Test a constructor failure drops whatever protocol was cached."""
        mock_account.side_effect = ValueError("bad address")

        with patch("outlook_vault.services.exchange_client.evict_protocol") as evict:
            with pytest.raises(RemoteServiceError):
                ExchangeMailboxClient(CREDENTIAL, EWS_URL)

        assert evict.call_args.args[0].service_endpoint == EWS_URL


# ============================================================================
# Protocol cache
# ============================================================================


@pytest.mark.contract
class TestClose:
    """Closing a client releases the credential held by exchangelib."""

    def test_close_closes_sessions_and_evicts(self, client, mock_account) -> None:
        """Test close() shuts the session pool and removes the cache entry."""
        protocol = mock_account.return_value.protocol

        with patch("outlook_vault.services.exchange_client.Protocol") as protocol_cls:
            client.close()

        protocol.close.assert_called_once_with()
        protocol_cls.__delitem__.assert_called_once_with(protocol.config)

    def test_close_removes_cached_credentials(self) -> None:
        """Test a real account's protocol leaves the process-wide cache on close."""
        url = f"https://{uuid.uuid4().hex}.example.com/EWS/Exchange.asmx"
        client = ExchangeMailboxClient(CREDENTIAL, url, timeout=5)
        config = client._account.protocol.config

        cached, _ = Protocol[config]
        assert cached is client._account.protocol
        assert cached.TIMEOUT == 5

        client.close()

        with pytest.raises(KeyError):
            Protocol[config]

    def test_close_twice_is_harmless(self) -> None:
        """Test closing an already evicted client does not raise."""
        url = f"https://{uuid.uuid4().hex}.example.com/EWS/Exchange.asmx"
        client = ExchangeMailboxClient(CREDENTIAL, url)

        client.close()
        client.close()


# ============================================================================
# Folder operations
# ============================================================================


@pytest.mark.contract
class TestFolders:
    """Inbox probe, calendar discovery, folder binding."""

    def test_bind_inbox_refreshes_from_server(self, client, mock_account) -> None:
        """Test the probe performs a GetFolder round trip."""
        inbox = _folder("inbox-id", "Inbox", "IPF.Note")
        mock_account.return_value.inbox = inbox

        result = client.bind_inbox()

        inbox.refresh.assert_called_once_with()
        assert result.id == "inbox-id"
        assert result.name == "Inbox"

    def test_find_calendar_folders_deep_search(self, client, mock_account) -> None:
        """Test calendar folders come from one deep FindFolder below the root."""
        root = mock_account.return_value.msg_folder_root

        with patch("outlook_vault.services.exchange_client.FolderCollection") as collection:
            collection.return_value.find_folders.return_value = iter(
                [
                    _folder("F1", "Calendar", "IPF.Appointment"),
                    _folder("F2", "Team", "IPF.Appointment"),
                    _folder("N1", "Notes", "IPF.StickyNote"),
                ]
            )

            folders = client.find_calendar_folders()

        assert collection.call_args.kwargs["folders"] == [root]
        kwargs = collection.return_value.find_folders.call_args.kwargs
        assert kwargs["depth"] == DEEP
        assert kwargs["page_size"] == 100
        assert kwargs["q"].field_path == "folder_class"
        assert kwargs["q"].value == "IPF.Appointment"
        assert [(f.id, f.name) for f in folders] == [("F1", "Calendar"), ("F2", "Team")]

    def test_find_calendar_folders_error_result(self, client) -> None:
        """Test an error element in the FindFolder response fails the call."""
        with patch("outlook_vault.services.exchange_client.FolderCollection") as collection:
            collection.return_value.find_folders.return_value = iter(
                [ErrorFolderNotFound("gone")]
            )

            with pytest.raises(RemoteServiceError):
                client.find_calendar_folders()

    def test_calendar_restriction_is_a_folder_restriction(self) -> None:
        """Test the folder-class restriction renders for FindFolder requests."""
        q = calendar_folder_restriction()

        xml = q.to_xml(
            folders=[Folder],
            version=Version(build=EXCHANGE_2013_SP1),
            applies_to=Restriction.FOLDERS,
        )

        assert xml is not None
        # folder_class is a folder property, not an item property
        with pytest.raises(InvalidField):
            Message.get_field_by_fieldname("folder_class")

    def test_bind_folder_resolves_by_id(self, client) -> None:
        """Test folders are resolved through a FolderCollection."""
        with patch("outlook_vault.services.exchange_client.FolderCollection") as collection:
            collection.return_value.resolve.return_value = [
                _folder("F2", "Team", "IPF.Appointment")
            ]

            folder = client.bind_folder("F2")

        assert folder.name == "Team"
        assert folder.is_calendar
        passed = collection.call_args.kwargs["folders"]
        assert passed[0].id == "F2"

    def test_bind_unknown_folder(self, client) -> None:
        """Test a folder error result surfaces as RemoteServiceError."""
        with patch("outlook_vault.services.exchange_client.FolderCollection") as collection:
            collection.return_value.resolve.return_value = [ErrorFolderNotFound("gone")]

            with pytest.raises(RemoteServiceError):
                client.bind_folder("missing")


# ============================================================================
# Item operations
# ============================================================================


@pytest.mark.contract
class TestItems:
    """Inbox items and calendar views."""

    def test_find_inbox_items_newest_first(self, client, mock_account) -> None:
        """Test the query orders by receive time and keeps only messages."""
        message = MagicMock(spec=Message)
        message.id = "AAMk+1"
        message.subject = "Hello"
        message.datetime_received = datetime(2025, 1, 6, 7, 5, tzinfo=timezone.utc)
        author = MagicMock()
        author.name = "Alice"
        author.email_address = "alice@x.com"
        message.author = author
        not_a_message = MagicMock()

        query = mock_account.return_value.inbox.all.return_value
        ordered = query.order_by.return_value.only.return_value
        ordered.__getitem__.return_value = [message, not_a_message]

        items = client.find_inbox_items(25)

        query.order_by.assert_called_once_with("-datetime_received")
        ordered.__getitem__.assert_called_once_with(slice(None, 25, None))
        assert len(items) == 1
        assert items[0].id == "AAMk+1"
        assert items[0].sender_name == "Alice"
        assert items[0].received == datetime(2025, 1, 6, 7, 5, tzinfo=timezone.utc)

    def test_find_appointments_uses_calendar_view(self, client) -> None:
        """Test a calendar view is requested over the UTC window."""
        start = datetime(2025, 1, 6, 16, 0, tzinfo=timezone(timedelta(hours=8)))
        end = start + timedelta(days=1)

        timed = MagicMock(spec=CalendarItem)
        timed.id = "E1"
        timed.subject = "Standup"
        timed.start = datetime(2025, 1, 6, 9, 30, tzinfo=timezone.utc)
        timed.end = datetime(2025, 1, 6, 9, 45, tzinfo=timezone.utc)
        timed.location = None
        timed.is_all_day = False
        timed.is_recurring = True

        with patch("outlook_vault.services.exchange_client.FolderCollection") as collection:
            collection.return_value.resolve.return_value = [
                _folder("F1", "Calendar", "IPF.Appointment")
            ]
            collection.return_value.view.return_value = [timed, MagicMock()]

            appointments = client.find_appointments("F1", start, end)

        view_kwargs = collection.return_value.view.call_args.kwargs
        assert isinstance(view_kwargs["start"], EWSDateTime)
        assert view_kwargs["start"] == start
        assert view_kwargs["end"] == end
        assert len(appointments) == 1
        assert appointments[0].is_recurring is True
        assert appointments[0].start == datetime(2025, 1, 6, 9, 30, tzinfo=timezone.utc)


# ============================================================================
# Error translation
# ============================================================================


@pytest.mark.contract
class TestErrorTranslation:
    """exchangelib exceptions map onto vault errors."""

    @pytest.mark.parametrize(
        "raised,expected",
        [
            (UnauthorizedError("401"), AuthRejected),
            (ErrorAccessDenied("denied"), AuthRejected),
            (TransportError("502 bad gateway"), RemoteServiceError),
            (ConnectionRefusedError("refused"), RemoteServiceError),
            (TimeoutError("socket timed out"), RemoteServiceError),
        ],
    )
    def test_translation(self, raised, expected) -> None:
        """Test each exception family."""

        @translate_errors
        def call():
            raise raised

        with pytest.raises(expected):
            call()

    @pytest.mark.parametrize(
        "raised",
        [
            KeyError("x"),
            ValueError("primary_smtp_address 'bob' is not an email address"),
            InvalidField("'folder_class' is not a valid field name on Message"),
        ],
    )
    def test_unexpected_exceptions_become_remote_errors(self, raised) -> None:
        """Test only vault errors leave a wrapped call."""

        @translate_errors
        def call():
            raise raised

        with pytest.raises(RemoteServiceError) as exc_info:
            call()

        assert exc_info.value.__cause__ is raised

    def test_vault_errors_pass_through(self) -> None:
        """Test an error already in vault terms is not rewrapped."""
        original = ValidationError("bad")

        @translate_errors
        def call():
            raise original

        with pytest.raises(ValidationError) as exc_info:
            call()

        assert exc_info.value is original

    def test_temporal_helpers(self) -> None:
        """Test EWS values become stdlib UTC datetimes and plain dates."""
        aware = datetime(2025, 1, 6, 17, 30, tzinfo=timezone(timedelta(hours=8)))

        assert to_utc_datetime(aware) == datetime(2025, 1, 6, 9, 30, tzinfo=timezone.utc)
        assert to_utc_datetime(None) is None
        assert to_plain_temporal(date(2025, 1, 6)) == date(2025, 1, 6)
        assert to_plain_temporal("nope") is None


# ============================================================================
# Gateway with the real adapter
# ============================================================================


def _cached_endpoints() -> set[str]:
    return {endpoint for endpoint, _ in CachingProtocol._protocol_cache}


@pytest.mark.contract
class TestGatewayReleasesCredentials:
    """No credential stays in exchangelib's cache once an operation returns."""

    @pytest.fixture
    def ews_url(self) -> str:
        """Endpoint unique to one test."""
        return f"https://{uuid.uuid4().hex}.example.com/EWS/Exchange.asmx"

    @pytest.fixture
    def gateway(self, ews_url) -> RemoteMailboxGateway:
        """Gateway driving the real adapter with server calls stubbed."""
        return RemoteMailboxGateway(
            ExchangeMailboxClient.factory(ews_url, timeout=5),
            "https://mail.example.com/owa",
            timeout=5.0,
        )

    @pytest.mark.asyncio()
    async def test_cache_empty_after_login(self, gateway, ews_url) -> None:
        """Test login leaves no protocol behind for its credential."""
        inbox = RemoteFolder(id="inbox-id", name="Inbox", folder_class="IPF.Note")
        with patch.object(ExchangeMailboxClient, "bind_inbox", lambda self: inbox), patch.object(
            ExchangeMailboxClient, "find_calendar_folders", lambda self: []
        ):
            await gateway.login("a@x.com", "secret")

        assert ews_url not in _cached_endpoints()

    @pytest.mark.asyncio()
    async def test_cache_empty_after_inbox_listing(self, gateway, ews_url) -> None:
        """Test an inbox listing leaves no protocol behind."""
        message = RemoteMessage(id="AAMk", subject="Hi", received=None)
        with patch.object(
            ExchangeMailboxClient, "find_inbox_items", lambda self, limit: [message]
        ):
            messages = await gateway.list_inbox_messages(CREDENTIAL)

        assert len(messages) == 1
        assert ews_url not in _cached_endpoints()

    @pytest.mark.asyncio()
    async def test_cache_empty_after_failed_calendar_listing(self, gateway, ews_url) -> None:
        """Test a failing calendar listing still releases the credential."""

        def fail(self, folder_id):
            raise RemoteServiceError("Folder not found")

        with patch.object(ExchangeMailboxClient, "bind_folder", fail):
            with pytest.raises(RemoteServiceError):
                await gateway.list_calendar_events(CREDENTIAL, "F1")

        assert ews_url not in _cached_endpoints()
