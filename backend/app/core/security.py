"""Security utilities for credential encryption and GitHub App tokens."""

import json
from datetime import datetime, timedelta, timezone
from typing import Any

from cryptography.fernet import Fernet
from jose import jwt

from app.core.config import settings

# GitHub rejects app JWTs valid for more than 10 minutes
GITHUB_APP_JWT_LIFETIME = timedelta(minutes=9)
GITHUB_APP_JWT_BACKDATE = timedelta(seconds=60)


def create_github_app_jwt(app_id: str, private_key: str, now: datetime | None = None) -> str:
    """
    Create the RS256 JWT a GitHub App uses to authenticate as itself.

    Args:
        app_id: GitHub App identifier
        private_key: PEM encoded RSA private key of the app
        now: Issue time (defaults to current UTC time)

    Returns:
        Encoded JWT
    """
    issued_at = (now or datetime.now(timezone.utc)) - GITHUB_APP_JWT_BACKDATE
    claims = {
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + GITHUB_APP_JWT_LIFETIME).timestamp()),
        "iss": str(app_id),
    }
    return jwt.encode(claims, private_key, algorithm="RS256")


class CredentialEncryption:
    """Fernet cipher for the secrets stored on connections."""

    def __init__(self, key: str | None = None) -> None:
        self.cipher = Fernet((key or settings.ENCRYPTION_KEY).encode())

    def encrypt(self, data: str) -> bytes:
        return self.cipher.encrypt(data.encode())

    def decrypt(self, encrypted_data: bytes) -> str:
        """
        Raises:
            cryptography.fernet.InvalidToken: If the data was not encrypted with this key
        """
        return self.cipher.decrypt(encrypted_data).decode()

    def encrypt_credentials(self, credentials: dict[str, Any]) -> bytes:
        return self.encrypt(json.dumps(credentials, sort_keys=True))

    def decrypt_credentials(self, encrypted_data: bytes) -> dict[str, Any]:
        """
        Decrypt a credentials document.

        Raises:
            cryptography.fernet.InvalidToken: If the data was not encrypted with this key
            ValueError: If the document is not a JSON object
        """
        credentials = json.loads(self.decrypt(encrypted_data))
        if not isinstance(credentials, dict):
            raise ValueError("Connection credentials must be a JSON object")
        return credentials


credential_encryption = CredentialEncryption()
