"""Remote mailbox access: client protocol, EWS adapter and gateway."""

from outlook_vault.services.mailbox_gateway import RemoteMailboxGateway
from outlook_vault.services.protocols import MailboxClientFactory, MailboxClientProtocol

__all__ = ["RemoteMailboxGateway", "MailboxClientProtocol", "MailboxClientFactory"]
