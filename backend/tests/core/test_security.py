"""Tests for security utilities (credential encryption, GitHub App JWT)."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt

from app.core.security import (
    GITHUB_APP_JWT_LIFETIME,
    CredentialEncryption,
    create_github_app_jwt,
    credential_encryption,
)


def _generate_key_pair() -> tuple[str, str]:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


class TestGitHubAppJWT:
    """Test the JWT a GitHub App signs to authenticate as itself."""

    def test_claims(self):
        """Issuer is the app id; issued-at is backdated; lifetime stays under 10 minutes."""
        private_pem, public_pem = _generate_key_pair()
        now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

        token = create_github_app_jwt("12345", private_pem, now=now)
        claims = jwt.decode(token, public_pem, algorithms=["RS256"], options={"verify_exp": False})

        assert claims["iss"] == "12345"
        assert claims["iat"] == int(now.timestamp()) - 60
        assert claims["exp"] - claims["iat"] == int(GITHUB_APP_JWT_LIFETIME.total_seconds())
        assert claims["exp"] - claims["iat"] < 600

    def test_signed_with_rs256(self):
        private_pem, _ = _generate_key_pair()

        token = create_github_app_jwt("1", private_pem)

        assert jwt.get_unverified_header(token)["alg"] == "RS256"


class TestCredentialEncryption:
    """Test Fernet encryption/decryption for connection credentials."""

    def test_encrypt_decrypt_roundtrip(self):
        """Test that encryption and decryption roundtrip works correctly."""
        original_data = '{"client_secret": "mock-secret"}'

        encrypted = credential_encryption.encrypt(original_data)
        assert isinstance(encrypted, bytes)
        assert encrypted != original_data.encode()

        assert credential_encryption.decrypt(encrypted) == original_data

    def test_explicit_key(self):
        key = Fernet.generate_key().decode()
        encryption = CredentialEncryption(key)

        assert encryption.decrypt(encryption.encrypt("secret")) == "secret"

    def test_decrypt_with_wrong_key(self):
        """Test that decrypting with wrong key raises InvalidToken."""
        encrypted = credential_encryption.encrypt("my-secret-key")

        wrong_encryption = CredentialEncryption()
        with patch.object(wrong_encryption, "cipher", Fernet(Fernet.generate_key())):
            with pytest.raises(InvalidToken):
                wrong_encryption.decrypt(encrypted)

    def test_decrypt_invalid_data(self):
        """Test that decrypting invalid data raises InvalidToken."""
        with pytest.raises(InvalidToken):
            credential_encryption.decrypt(b"not-a-valid-fernet-token")

    def test_credentials_document(self):
        credentials = {"tenant_id": "tenant", "client_secret": "secret"}

        encrypted = credential_encryption.encrypt_credentials(credentials)

        assert credential_encryption.decrypt_credentials(encrypted) == credentials

    def test_credentials_must_be_object(self):
        with pytest.raises(ValueError):
            credential_encryption.decrypt_credentials(credential_encryption.encrypt("[1, 2]"))
