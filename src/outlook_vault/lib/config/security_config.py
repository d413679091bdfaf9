"""Cipher key and session signing configuration."""

import os
import string
from dataclasses import dataclass, field


@dataclass(frozen=True)
class SecurityConfig:
    """Configuration for credential encryption and session cookies."""

    # AES-256 key as 64 hex characters
    aes_key_hex: str = field(default="", repr=False)

    # itsdangerous signing secret, distinct from the AES key
    session_secret: str = field(default="", repr=False)

    # Cookie settings
    session_max_age_days: int = 365
    cookie_name: str = "session"
    cookie_secure: bool = False

    @classmethod
    def from_env(cls) -> "SecurityConfig":
        """Create config from environment variables."""
        return cls(
            aes_key_hex=os.getenv("OUTLOOK_AES_SECRET_KEY", ""),
            session_secret=os.getenv("OUTLOOK_SESSION_SECRET", ""),
            session_max_age_days=int(os.getenv("OUTLOOK_SESSION_MAX_AGE_DAYS", "365")),
            cookie_secure=os.getenv("OUTLOOK_COOKIE_SECURE", "false").strip().lower() == "true",
        )

    @property
    def aes_key(self) -> bytes:
        """Decoded AES key bytes."""
        return bytes.fromhex(self.aes_key_hex)

    @property
    def session_max_age_seconds(self) -> int:
        """Session lifetime in seconds."""
        return self.session_max_age_days * 24 * 60 * 60

    def validate(self) -> None:
        """Validate configuration."""
        if not self.aes_key_hex:
            raise ValueError("OUTLOOK_AES_SECRET_KEY is required")

        if len(self.aes_key_hex) != 64 or any(
            c not in string.hexdigits for c in self.aes_key_hex
        ):
            raise ValueError("AES secret key must be 64 hex characters (32 bytes)")

        if len(self.session_secret) < 16:
            raise ValueError("Session secret must be at least 16 characters")

        if self.session_secret == self.aes_key_hex:
            raise ValueError("Session secret must differ from the AES secret key")

        if self.session_max_age_days <= 0:
            raise ValueError("Session max age days must be positive")
