"""HTTP application."""

from outlook_vault.api.app import create_app

__all__ = ["create_app"]
