"""
Secret providers for connection-profile passwords.

A provider is handed to ConfigStore at construction time; nothing here keeps
key material in module state. FernetSecretProvider derives a Fernet key from
an arbitrary passphrase (SHA-256, urlsafe base64) so any configured string
works as CDCSYNC_ENCRYPTION_KEY.
"""
import base64
import hashlib
from typing import Protocol

from cryptography.fernet import Fernet, InvalidToken

from cdcsync.config import Settings
from cdcsync.errors import ConfigError


class SecretProvider(Protocol):
    def encrypt(self, plaintext: str) -> str: ...

    def decrypt(self, ciphertext: str) -> str: ...


class PlaintextSecretProvider:
    """Stores passwords as-is. Used when no encryption key is configured."""

    def encrypt(self, plaintext: str) -> str:
        return plaintext

    def decrypt(self, ciphertext: str) -> str:
        return ciphertext


class FernetSecretProvider:
    """Symmetric encryption of passwords with a key derived from a passphrase."""

    def __init__(self, passphrase: str):
        if not passphrase:
            raise ConfigError("Encryption passphrase must not be empty")
        digest = hashlib.sha256(passphrase.encode()).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            return ""
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        if not ciphertext:
            return ""
        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken as exc:
            raise ConfigError(
                "Stored password could not be decrypted with the configured key"
            ) from exc


def build_secret_provider(settings: Settings) -> SecretProvider:
    """Pick the provider matching the configured encryption key."""
    if settings.encryption_key:
        return FernetSecretProvider(settings.encryption_key)
    return PlaintextSecretProvider()
