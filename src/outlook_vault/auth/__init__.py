"""Credential encryption, signed sessions and the authentication gate."""

from outlook_vault.auth.cipher import Cipher
from outlook_vault.auth.gate import AuthenticationGate, requires_login
from outlook_vault.auth.session import SessionBinder

__all__ = ["Cipher", "SessionBinder", "AuthenticationGate", "requires_login"]
