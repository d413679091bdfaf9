"""Exception hierarchy for the credential vault and session gateway.

Every failure a request can hit is one of these types. The HTTP layer maps
each family to a status code:

- AuthenticationFailure (NotAuthenticated, SessionInvalid) -> 401, generic body
- AuthRejected -> 401 with details
- ValidationError -> 400
- RemoteServiceError, StoreUnavailable -> 500

Cipher errors are deliberately outside VaultError: they never reach a client
directly, the authentication gate folds them into SessionInvalid.
"""


# ============================================================================
# Base
# ============================================================================


class VaultError(Exception):
    """Base class for request-level failures."""

    status_code = 500
    public_message = "Internal server error"


# ============================================================================
# Session / gate failures
# ============================================================================


class AuthenticationFailure(VaultError):
    """Request has no usable session.

    NotAuthenticated and SessionInvalid share one public message so clients
    cannot tell which check failed.
    """

    status_code = 401
    public_message = "Not authenticated"


class NotAuthenticated(AuthenticationFailure):
    """No session cookie, or the cookie signature did not verify."""

    pass


class SessionInvalid(AuthenticationFailure):
    """Session names an identity whose record is missing or undecryptable."""

    pass


# ============================================================================
# Remote service failures
# ============================================================================


class AuthRejected(VaultError):
    """Remote mailbox service rejected the credentials.

    Attributes:
        details: Human readable reason returned to the client
    """

    status_code = 401
    public_message = "Invalid credentials"

    def __init__(self, details: str = "Authentication failed") -> None:
        super().__init__(details)
        self.details = details


class RemoteServiceError(VaultError):
    """Network, protocol or timeout failure talking to the remote service."""

    status_code = 500
    public_message = "Remote mailbox service failure"


# ============================================================================
# Request validation
# ============================================================================


class ValidationError(VaultError):
    """A required request field is missing or malformed."""

    status_code = 400
    public_message = "Invalid request"


# ============================================================================
# Record store failures
# ============================================================================


class StoreUnavailable(VaultError):
    """Record store could not be reached or returned unusable data."""

    status_code = 500
    public_message = "Record store unavailable"


class StoreConflict(StoreUnavailable):
    """Optimistic update kept losing to concurrent writers."""

    pass


class RecordNotFound(VaultError):
    """No UserRecord exists for the requested email."""

    status_code = 404
    public_message = "Record not found"


# ============================================================================
# Cipher failures
# ============================================================================


class CipherError(Exception):
    """Base class for credential token failures."""

    pass


class MalformedToken(CipherError):
    """Token is not ``hex(iv):hex(ciphertext)``."""

    pass


class DecryptionFailed(CipherError):
    """Token is well formed but does not decrypt under this key."""

    pass
