"""Remote mailbox (EWS) configuration."""

import os
from dataclasses import dataclass
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@dataclass(frozen=True)
class ExchangeConfig:
    """Configuration for the Exchange Web Services endpoint."""

    ews_url: str = "https://mail.example.com/EWS/Exchange.asmx"
    owa_url: str = "https://mail.example.com/owa"

    # Upper bound for one remote call, including login probe
    remote_timeout: float = 30.0  # seconds

    # Largest inbox page a client may ask for
    max_page_size: int = 1000

    # IANA zone for received-date strings; None means server local time
    display_timezone: Optional[str] = None

    @classmethod
    def from_env(cls) -> "ExchangeConfig":
        """Create config from environment variables."""
        return cls(
            ews_url=os.getenv("OUTLOOK_EWS_URL", "https://mail.example.com/EWS/Exchange.asmx"),
            owa_url=os.getenv("OUTLOOK_OWA_URL", "https://mail.example.com/owa"),
            remote_timeout=float(os.getenv("OUTLOOK_REMOTE_TIMEOUT", "30.0")),
            max_page_size=int(os.getenv("OUTLOOK_MAX_PAGE_SIZE", "1000")),
            display_timezone=os.getenv("OUTLOOK_DISPLAY_TIMEZONE") or None,
        )

    def tzinfo(self) -> Optional[ZoneInfo]:
        """Resolve the display timezone (None for server local time)."""
        if self.display_timezone is None:
            return None
        return ZoneInfo(self.display_timezone)

    def validate(self) -> None:
        """Validate configuration."""
        if not self.ews_url.startswith(("https://", "http://")):
            raise ValueError(f"EWS URL must be an http(s) URL, got {self.ews_url}")

        if not self.owa_url.startswith(("https://", "http://")):
            raise ValueError(f"OWA URL must be an http(s) URL, got {self.owa_url}")

        if self.remote_timeout <= 0:
            raise ValueError("Remote timeout must be positive")

        if self.max_page_size <= 0:
            raise ValueError("Max page size must be positive")

        if self.display_timezone is not None:
            try:
                ZoneInfo(self.display_timezone)
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ValueError(
                    f"Unknown display timezone: {self.display_timezone}"
                ) from e
