"""Record store (Redis) configuration."""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class RedisConfig:
    """Configuration for the Redis record store."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = field(default=None, repr=False)

    # Connection settings
    socket_timeout: float = 3.0  # seconds

    # Optimistic update retries for calendar list changes
    max_retries: int = 5

    @classmethod
    def from_env(cls) -> "RedisConfig":
        """Create config from environment variables."""
        return cls(
            host=os.getenv("OUTLOOK_REDIS_HOST", "localhost"),
            port=int(os.getenv("OUTLOOK_REDIS_PORT", "6379")),
            db=int(os.getenv("OUTLOOK_REDIS_DB", "0")),
            password=os.getenv("OUTLOOK_REDIS_PASSWORD") or None,
            socket_timeout=float(os.getenv("OUTLOOK_REDIS_SOCKET_TIMEOUT", "3.0")),
            max_retries=int(os.getenv("OUTLOOK_REDIS_MAX_RETRIES", "5")),
        )

    def validate(self) -> None:
        """Validate configuration."""
        if not self.host:
            raise ValueError("Redis host cannot be empty")

        if not 0 < self.port < 65536:
            raise ValueError(f"Redis port must be between 1 and 65535, got {self.port}")

        if self.db < 0:
            raise ValueError("Redis db index must be non-negative")

        if self.socket_timeout <= 0:
            raise ValueError("Redis socket timeout must be positive")

        if self.max_retries <= 0:
            raise ValueError("Redis max retries must be positive")
