"""Configuration management for Outlook Vault.

Settings are read once at startup and handed to each component's
constructor. Nothing here is evaluated at import time.
"""

from dataclasses import dataclass

from dotenv import load_dotenv

from outlook_vault.lib.config.app_config import AppConfig
from outlook_vault.lib.config.exchange_config import ExchangeConfig
from outlook_vault.lib.config.redis_config import RedisConfig
from outlook_vault.lib.config.security_config import SecurityConfig


@dataclass(frozen=True)
class VaultSettings:
    """All configuration sections for one process."""

    security: SecurityConfig
    redis: RedisConfig
    exchange: ExchangeConfig
    app: AppConfig

    def validate(self) -> None:
        """Validate every section."""
        self.security.validate()
        self.redis.validate()
        self.exchange.validate()
        self.app.validate()


def load_config(env_file: str | None = None) -> VaultSettings:
    """Load and validate settings from the environment.

    Args:
        env_file: Optional .env path (default: search from the working directory)

    Returns:
        Validated VaultSettings

    Raises:
        ValueError: A setting is missing or invalid
    """
    load_dotenv(env_file)

    settings = VaultSettings(
        security=SecurityConfig.from_env(),
        redis=RedisConfig.from_env(),
        exchange=ExchangeConfig.from_env(),
        app=AppConfig.from_env(),
    )
    settings.validate()
    return settings


__all__ = [
    "load_config",
    "VaultSettings",
    "AppConfig",
    "ExchangeConfig",
    "RedisConfig",
    "SecurityConfig",
]
