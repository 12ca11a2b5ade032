"""
Key-value storage backends for OAuth secrets.

Holds values that must survive the redirect boundary: the PKCE verifier and
nonce, and the callback payload written by the redirect target for the
storage fallback channel.
"""

import base64
import hashlib
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Retrieve a value.

        Args:
            key: Storage key

        Returns:
            Stored value or None if not found
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """
        Store a value, replacing any previous one.

        Args:
            key: Storage key
            value: Value to store
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Delete a value.

        Args:
            key: Storage key

        Returns:
            True if a value was deleted
        """
        pass

    async def pop(self, key: str) -> Optional[str]:
        """Read a value and delete it, so it is consumed at most once."""
        value = await self.get(key)
        if value is not None:
            await self.delete(key)
        return value


class MemoryStorage(StorageBackend):
    """In-process storage. Values are lost when the process exits."""

    def __init__(self):
        self._values: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    async def set(self, key: str, value: str) -> None:
        self._values[key] = value

    async def delete(self, key: str) -> bool:
        return self._values.pop(key, None) is not None


class EncryptedFileStorage(StorageBackend):
    """
    Encrypted file storage.

    One file per key, encrypted at rest using Fernet symmetric encryption.
    """

    def __init__(self, storage_path: Path, encryption_key: str = ""):
        """
        Initialize encrypted storage.

        Args:
            storage_path: Directory for encrypted value files
            encryption_key: Fernet key, or any passphrase to derive one from
        """
        self.storage_path = storage_path
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self._cipher = self._get_cipher(encryption_key)

    def _get_cipher(self, key: str) -> Fernet:
        """Get encryption cipher."""
        if not key:
            # Values written now cannot be read after a restart
            logger.warning(
                "EXPORTER_STORAGE_KEY not set. "
                "Using ephemeral key - stored OAuth state will be lost on restart."
            )
            return Fernet(Fernet.generate_key())

        if len(key) != 44:  # Fernet keys are 44 chars base64
            key = base64.urlsafe_b64encode(hashlib.sha256(key.encode()).digest()).decode()
        return Fernet(key.encode())

    def _get_path(self, key: str) -> Path:
        """Get path for a stored value."""
        safe_key = "".join(c for c in key.replace(":", "__") if c.isalnum() or c in "_-")
        return self.storage_path / f"{safe_key}.enc"

    async def get(self, key: str) -> Optional[str]:
        path = self._get_path(key)
        if not path.exists():
            return None

        try:
            return self._cipher.decrypt(path.read_bytes()).decode()
        except InvalidToken:
            logger.error(f"Failed to decrypt stored value for {key}")
            return None

    async def set(self, key: str, value: str) -> None:
        path = self._get_path(key)
        path.write_bytes(self._cipher.encrypt(value.encode()))
        path.chmod(0o600)
        logger.debug(f"Stored encrypted value for {key}")

    async def delete(self, key: str) -> bool:
        path = self._get_path(key)
        if path.exists():
            path.unlink()
            logger.debug(f"Deleted stored value for {key}")
            return True
        return False
