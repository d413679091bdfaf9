"""Outlook Vault - encrypted credential vault and session gateway for EWS mailboxes."""

__version__ = "0.1.0"
