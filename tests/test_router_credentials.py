"""Tests for stored router API passwords."""

import pytest
from cryptography.fernet import Fernet
from pydantic import ValidationError as SettingsError

from routersync.config import Settings
from routersync.services.router_credentials import CredentialError, RouterCredentials


@pytest.fixture()
def key():
    return Fernet.generate_key().decode("ascii")


class TestRouterCredentials:
    """Tests for RouterCredentials.seal and reveal."""

    def test_seal_encrypts_with_key(self, key):
        credentials = RouterCredentials(key)
        stored = credentials.seal("router-secret")
        assert stored.startswith("enc:")
        assert "router-secret" not in stored
        assert credentials.reveal(stored) == "router-secret"

    def test_seal_without_key_marks_plain(self):
        credentials = RouterCredentials()
        assert not credentials.can_encrypt
        assert credentials.seal("secret") == "plain:secret"

    def test_prefixed_values_pass_through(self, key):
        credentials = RouterCredentials(key)
        assert credentials.seal("plain:secret") == "plain:secret"
        assert credentials.seal("") == ""
        assert credentials.seal(None) is None

    def test_scheme(self):
        assert RouterCredentials.scheme("enc:abc") == "enc"
        assert RouterCredentials.scheme("plain:abc") == "plain"
        assert RouterCredentials.scheme("abc") is None
        assert RouterCredentials.scheme("admin:pass") is None
        assert RouterCredentials.scheme(None) is None

    def test_reveal_plain_and_bare(self):
        credentials = RouterCredentials()
        assert credentials.reveal("plain:secret") == "secret"
        assert credentials.reveal("legacy-secret") == "legacy-secret"
        assert credentials.reveal(None) is None

    def test_reveal_encrypted_without_key(self, key):
        stored = RouterCredentials(key).seal("secret")
        with pytest.raises(CredentialError, match="CREDENTIAL_ENCRYPTION_KEY"):
            RouterCredentials().reveal(stored)

    def test_reveal_with_wrong_key(self, key):
        stored = RouterCredentials(key).seal("secret")
        other = RouterCredentials(Fernet.generate_key().decode("ascii"))
        with pytest.raises(CredentialError, match="does not decrypt"):
            other.reveal(stored)

    def test_from_settings_uses_configured_key(self, key):
        stored = RouterCredentials(key).seal("secret")
        credentials = RouterCredentials.from_settings(Settings(credential_encryption_key=key))
        assert credentials.reveal(stored) == "secret"

    def test_generate_key_is_usable(self):
        assert RouterCredentials(RouterCredentials.generate_key()).can_encrypt


class TestCredentialKeySetting:
    """Tests for Settings.credential_encryption_key validation."""

    def test_blank_key_is_none(self):
        assert Settings(credential_encryption_key="  ").credential_encryption_key is None

    def test_malformed_key_rejected(self):
        with pytest.raises(SettingsError):
            Settings(credential_encryption_key="not-a-fernet-key")
