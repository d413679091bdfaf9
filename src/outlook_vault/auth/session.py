"""Signed client-side sessions.

The session is a cookie holding ``{"userEmail": ...}`` signed with a server
secret (itsdangerous, the same signer Starlette's SessionMiddleware uses).
There is no server-side session table: the UserRecord is the only state, so
deleting it is how a session is revoked.
"""

from typing import Optional

from itsdangerous import BadData, URLSafeTimedSerializer
from starlette.responses import Response

from outlook_vault.lib.logger import get_logger

logger = get_logger(__name__)

SESSION_SALT = "outlook-vault-session"
SESSION_CLAIM = "userEmail"
ONE_YEAR_SECONDS = 365 * 24 * 60 * 60


class SessionBinder:
    """Issue and resolve signed session tokens naming a user identity.

    Attributes:
        cookie_name: Name of the session cookie
        max_age_seconds: Token lifetime, enforced on resolve and sent as cookie max-age
    """

    def __init__(
        self,
        secret_key: str,
        max_age_seconds: int = ONE_YEAR_SECONDS,
        cookie_name: str = "session",
        cookie_secure: bool = False,
    ) -> None:
        """Initialize session binder.

        Args:
            secret_key: Signing secret, distinct from the cipher key
            max_age_seconds: Token lifetime (default: one year)
            cookie_name: Cookie name (default: session)
            cookie_secure: Mark the cookie Secure (HTTPS only)
        """
        if not secret_key:
            raise ValueError("Session secret cannot be empty")

        self._serializer = URLSafeTimedSerializer(secret_key, salt=SESSION_SALT)
        self.max_age_seconds = max_age_seconds
        self.cookie_name = cookie_name
        self.cookie_secure = cookie_secure

    def issue(self, email: str) -> str:
        """Create a signed token for the given email."""
        if not email:
            raise ValueError("Cannot issue a session without an email")
        return self._serializer.dumps({SESSION_CLAIM: email})

    def resolve(self, token: Optional[str]) -> Optional[str]:
        """Return the email a token names, or None.

        Missing, tampered, expired and malformed tokens all resolve to None,
        never to a partial identity.
        """
        if not token:
            return None

        try:
            payload = self._serializer.loads(token, max_age=self.max_age_seconds)
        except BadData as e:
            logger.debug(f"Rejected session token: {type(e).__name__}")
            return None

        if not isinstance(payload, dict):
            return None

        email = payload.get(SESSION_CLAIM)
        if not isinstance(email, str) or not email:
            return None

        return email

    def set_cookie(self, response: Response, email: str) -> None:
        """Attach a freshly issued session cookie to a response."""
        response.set_cookie(
            self.cookie_name,
            self.issue(email),
            max_age=self.max_age_seconds,
            httponly=True,
            secure=self.cookie_secure,
            samesite="lax",
        )

    def clear_cookie(self, response: Response) -> None:
        """Tell the client to drop its session cookie."""
        response.delete_cookie(
            self.cookie_name,
            httponly=True,
            secure=self.cookie_secure,
            samesite="lax",
        )
