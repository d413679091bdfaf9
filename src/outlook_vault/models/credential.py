"""Plaintext mailbox credential model."""

import json
from dataclasses import dataclass, field


@dataclass(frozen=True)
class MailboxCredential:
    """Mailbox login credentials resolved for a single request.

    Attributes:
        email: Mailbox address
        password: Mailbox password

    Security considerations:
    - Only the authentication gate and the login flow build these
    - Never persisted, cached or logged; ``repr`` hides the password
    - Serialized form is only ever passed to the Cipher
    """

    email: str
    password: str = field(repr=False)

    def __post_init__(self) -> None:
        """Validate that both fields are present."""
        if not self.email:
            raise ValueError("Credential email cannot be empty")
        if not self.password:
            raise ValueError("Credential password cannot be empty")

    def to_json(self) -> str:
        """Serialize to the ``{"email", "password"}`` text that gets encrypted."""
        return json.dumps({"email": self.email, "password": self.password})

    @classmethod
    def from_json(cls, text: str) -> "MailboxCredential":
        """
        Parse decrypted credential text.

        Raises:
            ValueError: Text is not a JSON object with string email and password
        """
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("Credential payload is not a JSON object")

        email = data.get("email")
        password = data.get("password")
        if not isinstance(email, str) or not isinstance(password, str):
            raise ValueError("Credential payload is missing email or password")

        return cls(email=email, password=password)

    def __repr__(self) -> str:
        """String representation with sanitized password."""
        return f"MailboxCredential(email='{self.email}')"
