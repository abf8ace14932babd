"""API key storage backends."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import get_key, set_key, unset_key

logger = logging.getLogger(__name__)

API_KEY_VAR = "OPENAI_API_KEY"


def looks_like_api_key(key: Optional[str]) -> bool:
    """Cheap format check; the service is the real judge."""
    return isinstance(key, str) and key.strip().startswith("sk-")


class CredentialStore:
    """Holds a single bearer API key."""

    def get(self) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str) -> None:
        raise NotImplementedError

    def delete(self) -> None:
        raise NotImplementedError


class MemoryCredentialStore(CredentialStore):
    def __init__(self, key: Optional[str] = None) -> None:
        self._key = key

    def get(self) -> Optional[str]:
        return self._key

    def set(self, key: str) -> None:
        self._key = key

    def delete(self) -> None:
        self._key = None


class DotenvCredentialStore(CredentialStore):
    """
    Key persisted in a ``.env`` file.

    ``get`` falls back to the process environment so keys exported by the
    shell keep working; ``delete`` clears both.
    """

    def __init__(self, env_path: Path = Path(".env")) -> None:
        self.env_path = Path(env_path)

    def get(self) -> Optional[str]:
        value = None
        if self.env_path.exists():
            value = get_key(str(self.env_path), API_KEY_VAR)
        if not value:
            value = os.getenv(API_KEY_VAR)
        return value or None

    def set(self, key: str) -> None:
        self.env_path.parent.mkdir(parents=True, exist_ok=True)
        self.env_path.touch(exist_ok=True)
        set_key(str(self.env_path), API_KEY_VAR, key.strip())
        os.environ[API_KEY_VAR] = key.strip()
        logger.info("API key saved to %s", self.env_path)

    def delete(self) -> None:
        if self.env_path.exists():
            unset_key(str(self.env_path), API_KEY_VAR)
        os.environ.pop(API_KEY_VAR, None)
        logger.info("API key deleted")
