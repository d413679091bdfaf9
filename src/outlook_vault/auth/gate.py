"""Authentication gate for protected endpoints.

Turns an incoming session token into a plaintext mailbox credential scoped
to one request, or refuses the request. The credential lives only on
``request.state`` and is dropped with the request.
"""

from functools import wraps
from typing import Awaitable, Callable, Optional

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from outlook_vault.auth.cipher import Cipher
from outlook_vault.auth.session import SessionBinder
from outlook_vault.lib.errors import (
    AuthenticationFailure,
    CipherError,
    NotAuthenticated,
    RecordNotFound,
    SessionInvalid,
)
from outlook_vault.lib.logger import get_structured_logger
from outlook_vault.lib.utils import hash_email
from outlook_vault.models.credential import MailboxCredential
from outlook_vault.storage.record_store import RecordStore

logger = get_structured_logger(__name__)

Endpoint = Callable[[Request], Awaitable[Response]]


class AuthenticationGate:
    """Resolve session -> record -> decrypted credential.

    Failure mapping:
    - No session, bad signature, expired: NotAuthenticated
    - Record missing, ciphertext unusable: SessionInvalid
    - Record store down: StoreUnavailable propagates (500, not 401)
    """

    def __init__(self, binder: SessionBinder, store: RecordStore, cipher: Cipher) -> None:
        self._binder = binder
        self._store = store
        self._cipher = cipher

    @property
    def cookie_name(self) -> str:
        """Name of the cookie carrying the session token."""
        return self._binder.cookie_name

    async def authenticate(self, token: Optional[str]) -> MailboxCredential:
        """
        Produce the credential for the identity a session token names.

        Args:
            token: Raw session cookie value (None if absent)

        Returns:
            Credential for this request only

        Raises:
            NotAuthenticated: Session missing or not verifiable
            SessionInvalid: Session valid but its record is missing or undecryptable
            StoreUnavailable: Record store unreachable
        """
        email = self._binder.resolve(token)
        if email is None:
            raise NotAuthenticated("No valid session")

        user = hash_email(email)
        try:
            record = await self._store.get(email)
        except RecordNotFound as e:
            logger.debug("Session names a missing record", user=user)
            raise SessionInvalid("Record not found") from e

        try:
            plaintext = self._cipher.decrypt(record.credential_ciphertext)
            credential = MailboxCredential.from_json(plaintext)
        except (CipherError, ValueError) as e:
            logger.debug("Stored credential unusable", user=user, cause=type(e).__name__)
            raise SessionInvalid("Stored credential unusable") from e

        if credential.email != email:
            logger.debug("Stored credential names another identity", user=user)
            raise SessionInvalid("Credential identity mismatch")

        return credential


def unauthenticated_response() -> JSONResponse:
    """The single 401 body served for every session failure."""
    return JSONResponse({"error": AuthenticationFailure.public_message}, status_code=401)


def requires_login(func: Endpoint) -> Endpoint:
    """Decorator that admits a request only with a usable session.

    The gate is looked up on ``request.app.state.gate``. On success the
    credential is available to the endpoint as ``request.state.credential``.
    """

    @wraps(func)
    async def wrapper(request: Request) -> Response:
        gate: AuthenticationGate = request.app.state.gate
        token = request.cookies.get(gate.cookie_name)

        try:
            request.state.credential = await gate.authenticate(token)
        except AuthenticationFailure as e:
            logger.debug(
                "Request refused",
                path=request.url.path,
                cause=type(e).__name__,
            )
            return unauthenticated_response()

        return await func(request)

    return wrapper
