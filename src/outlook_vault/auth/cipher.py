"""Symmetric encryption of stored mailbox credentials.

Tokens have the form ``hex(iv) + ":" + hex(ciphertext)``: AES-256 in CBC mode
with a fresh random 16-byte IV per call and PKCS7 padding.

The encrypted payload is the plaintext prefixed with the first 16 bytes of its
SHA-256 digest. CBC alone cannot tell a wrong key from a right one (a bad key
still yields valid padding about once in 256 tries), so decrypt checks the
digest and raises DecryptionFailed instead of returning garbage.

AIDEV-NOTE: Key handling
- One process-wide 32-byte key, loaded once at startup
- No key versioning: rotating the key invalidates every stored token and
  users simply log in again
"""

import hashlib
import hmac
import os
import string

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives import ciphers
from cryptography.hazmat.primitives.ciphers import algorithms, modes

from outlook_vault.lib.errors import DecryptionFailed, MalformedToken

# ============================================================================
# Constants
# ============================================================================

KEY_SIZE = 32  # AES-256
IV_SIZE = 16
BLOCK_SIZE_BITS = 128
DIGEST_SIZE = 16
TOKEN_DELIMITER = ":"

_HEX_DIGITS = frozenset(string.hexdigits)


def _decode_hex(segment: str, what: str) -> bytes:
    """Decode one token segment, rejecting anything but plain hex."""
    if not segment or not set(segment) <= _HEX_DIGITS:
        raise MalformedToken(f"Token {what} is not valid hex")
    try:
        return bytes.fromhex(segment)
    except ValueError as e:
        raise MalformedToken(f"Token {what} is not valid hex") from e


class Cipher:
    """AES-256-CBC encrypt/decrypt of small secrets under a server-wide key.

    Attributes:
        _key: 32-byte AES key

    Example:
        >>> cipher = Cipher(os.urandom(32))
        >>> token = cipher.encrypt("secret")
        >>> cipher.decrypt(token)
        'secret'
    """

    def __init__(self, key: bytes) -> None:
        """Initialize cipher.

        Args:
            key: 32-byte AES key

        Raises:
            ValueError: Key is not 32 bytes
        """
        if len(key) != KEY_SIZE:
            raise ValueError(f"Cipher key must be {KEY_SIZE} bytes, got {len(key)}")
        self._key = bytes(key)

    @classmethod
    def from_hex(cls, key_hex: str) -> "Cipher":
        """Build a cipher from the 64-character hex key in configuration."""
        return cls(bytes.fromhex(key_hex))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt text under a fresh IV.

        Args:
            plaintext: UTF-8 text to protect

        Returns:
            Token ``hex(iv):hex(ciphertext)``
        """
        data = plaintext.encode("utf-8")
        payload = hashlib.sha256(data).digest()[:DIGEST_SIZE] + data

        padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
        padded = padder.update(payload) + padder.finalize()

        iv = os.urandom(IV_SIZE)
        encryptor = ciphers.Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        encrypted = encryptor.update(padded) + encryptor.finalize()

        return iv.hex() + TOKEN_DELIMITER + encrypted.hex()

    def decrypt(self, token: str) -> str:
        """Decrypt a token produced by :meth:`encrypt`.

        Args:
            token: ``hex(iv):hex(ciphertext)``

        Returns:
            Original plaintext

        Raises:
            MalformedToken: Delimiter missing, bad hex, or wrong segment sizes
            DecryptionFailed: Wrong key, corrupted ciphertext or bad padding
        """
        if not isinstance(token, str) or TOKEN_DELIMITER not in token:
            raise MalformedToken("Token is missing the IV delimiter")

        iv_hex, encrypted_hex = token.split(TOKEN_DELIMITER, 1)
        iv = _decode_hex(iv_hex, "IV")
        encrypted = _decode_hex(encrypted_hex, "ciphertext")

        if len(iv) != IV_SIZE:
            raise MalformedToken(f"Token IV must be {IV_SIZE} bytes, got {len(iv)}")
        if len(encrypted) % (BLOCK_SIZE_BITS // 8) != 0:
            raise MalformedToken("Token ciphertext is not a whole number of blocks")

        decryptor = ciphers.Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(encrypted) + decryptor.finalize()

        try:
            unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
            payload = unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            raise DecryptionFailed("Ciphertext padding is invalid") from e

        digest, data = payload[:DIGEST_SIZE], payload[DIGEST_SIZE:]
        if len(digest) != DIGEST_SIZE or not hmac.compare_digest(
            digest, hashlib.sha256(data).digest()[:DIGEST_SIZE]
        ):
            raise DecryptionFailed("Ciphertext integrity check failed")

        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionFailed("Decrypted data is not UTF-8") from e

    def __repr__(self) -> str:
        """Representation without key material."""
        return "Cipher(algorithm='aes-256-cbc')"
