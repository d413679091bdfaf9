"""Application-level configuration."""

import os
from dataclasses import dataclass, field


@dataclass(frozen=True)
class AppConfig:
    """Configuration for application settings."""

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 7007
    cors_origins: tuple[str, ...] = field(default_factory=tuple)

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_date_format: str = "%Y-%m-%d %H:%M:%S"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create config from environment variables."""
        origins = os.getenv("OUTLOOK_CORS_ORIGINS", "")
        return cls(
            host=os.getenv("OUTLOOK_HOST", "0.0.0.0"),
            port=int(os.getenv("OUTLOOK_PORT", "7007")),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """Validate configuration."""
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_log_levels:
            raise ValueError(
                f"Log level must be one of {valid_log_levels}, got {self.log_level}"
            )

        if not 0 < self.port < 65536:
            raise ValueError(f"Port must be between 1 and 65535, got {self.port}")
