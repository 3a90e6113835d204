"""Encryption of secrets kept in persisted provider configuration."""
import logging
import os
from pathlib import Path
from typing import Union

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

DEFAULT_KEY_FILE = Path.home() / ".stagecore" / "credentials.key"


class SecretCipher:
    """Symmetric encryption for API keys and other secrets at rest."""

    def __init__(self, key: bytes):
        self._fernet = Fernet(key)

    @classmethod
    def generate(cls) -> "SecretCipher":
        """Create a cipher with a fresh, unsaved key."""
        return cls(Fernet.generate_key())

    @classmethod
    def from_key_file(cls, key_file: Union[str, Path, None] = None) -> "SecretCipher":
        """Load the key from a file, creating the file with a new key if it does not exist."""
        path = Path(key_file).expanduser() if key_file else DEFAULT_KEY_FILE
        if path.exists():
            return cls(path.read_bytes().strip())

        logger.info(f"Creating new credentials key at {path}")
        path.parent.mkdir(parents=True, exist_ok=True)
        key = Fernet.generate_key()
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(key)
        return cls(key)

    def encrypt(self, value: str) -> str:
        return self._fernet.encrypt(value.encode()).decode()

    def decrypt(self, token: str) -> str:
        """Decrypt a value.

        Raises:
            ValueError: If the token was not produced with this key
        """
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except InvalidToken as e:
            raise ValueError("Secret could not be decrypted with the configured key") from e
