"""Router API passwords at rest.

``routers.api_password`` holds ``enc:<fernet token>`` or ``plain:<password>``.
Rows written before the prefixes existed hold the bare password and are read
as-is. The Fernet key comes from ``Settings.credential_encryption_key``.
"""

from __future__ import annotations

from cryptography.fernet import Fernet, InvalidToken

from routersync.config import Settings, settings as default_settings

ENCRYPTED = "enc"
PLAIN = "plain"


class CredentialError(ValueError):
    """A stored password cannot be read with the configured key."""


class RouterCredentials:
    def __init__(self, key: str | None = None):
        self._fernet = Fernet(key.encode("ascii")) if key else None

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "RouterCredentials":
        return cls((config or default_settings).credential_encryption_key)

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("ascii")

    @property
    def can_encrypt(self) -> bool:
        return self._fernet is not None

    @staticmethod
    def scheme(stored: str | None) -> str | None:
        """``enc`` or ``plain`` for prefixed values, None otherwise."""
        prefix, sep, _ = (stored or "").partition(":")
        if sep and prefix in (ENCRYPTED, PLAIN):
            return prefix
        return None

    def seal(self, password: str | None) -> str | None:
        """Storage form of ``password``. Prefixed values pass through."""
        if not password or self.scheme(password) is not None:
            return password
        if self._fernet is None:
            return f"{PLAIN}:{password}"
        token = self._fernet.encrypt(password.encode("utf-8")).decode("ascii")
        return f"{ENCRYPTED}:{token}"

    def reveal(self, stored: str | None) -> str | None:
        scheme = self.scheme(stored)
        if scheme is None:
            return stored
        body = stored.split(":", 1)[1]
        if scheme == PLAIN:
            return body
        if self._fernet is None:
            raise CredentialError("password is encrypted but no CREDENTIAL_ENCRYPTION_KEY is set")
        try:
            return self._fernet.decrypt(body.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise CredentialError("password does not decrypt with the configured key") from exc
