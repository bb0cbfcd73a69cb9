"""Key-value stores for cart snapshots.

The engine only needs get/set/delete on text values. RedisStore is the
production medium; MemoryStore and FileStore suit tests and local runs.
"""
import os
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol
from urllib.parse import quote

from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential
from upstash_redis import Redis

from saqtau.errors import StorageError, ERROR_STORAGE_UNAVAILABLE
from saqtau.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """Storage capability the cart engine depends on."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class StorageKeys:
    """Key layout for cart snapshots."""

    @staticmethod
    def cart_key(prefix: str, session_id: str) -> str:
        return f"{prefix}:{session_id}"


class TTL:
    """Time-to-live constants (in seconds)."""

    CART = 86400  # 24 hours


class MemoryStore:
    """In-process store; contents are lost with the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class FileStore:
    """Stores each key as a JSON file under a directory.

    Filenames are the percent-encoded key, so distinct keys never share a file.
    """

    def __init__(self, directory):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}") from e


def get_redis_sync(url: Optional[str] = None, token: Optional[str] = None) -> Redis:
    """
    Create a sync Upstash Redis client.

    Uses standard Upstash env var names when url/token are not given:
    - UPSTASH_REDIS_REST_URL
    - UPSTASH_REDIS_REST_TOKEN
    """
    url = url or os.environ.get("UPSTASH_REDIS_REST_URL", "")
    token = token or os.environ.get("UPSTASH_REDIS_REST_TOKEN", "")
    if not url or not token:
        raise ValueError("UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN must be set")
    return Redis(url=url, token=token)


# Configuration problems (StorageError from the client property) are not retried
_retry_transient = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, max=1),
    retry=retry_if_not_exception_type(StorageError),
    reraise=True,
)


class RedisStore:
    """
    Upstash Redis store.

    Features:
    - Lazy client creation from environment
    - Snapshots expire after TTL.CART (abandoned carts)
    - Transient failures retried before surfacing as StorageError
    """

    def __init__(self, client: Optional[Redis] = None, ttl: Optional[int] = TTL.CART):
        self._redis = client
        self.ttl = ttl

    @property
    def redis(self) -> Redis:
        """Get Redis client (lazy initialization)."""
        if self._redis is None:
            try:
                self._redis = get_redis_sync()
            except ValueError as e:
                raise StorageError(f"{ERROR_STORAGE_UNAVAILABLE}: {e}") from e
        return self._redis

    @_retry_transient
    def _get(self, key: str):
        return self.redis.get(key)

    @_retry_transient
    def _set(self, key: str, value: str) -> None:
        if self.ttl:
            self.redis.set(key, value, ex=self.ttl)
        else:
            self.redis.set(key, value)

    @_retry_transient
    def _delete(self, key: str) -> None:
        self.redis.delete(key)

    def get(self, key: str) -> Optional[str]:
        try:
            value = self._get(key)
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to get {key} from Redis: {e}")
            raise StorageError(f"{ERROR_STORAGE_UNAVAILABLE}: {e}") from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> None:
        try:
            self._set(key, value)
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to save {key} to Redis: {e}")
            raise StorageError(f"{ERROR_STORAGE_UNAVAILABLE}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._delete(key)
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Failed to delete {key} from Redis: {e}")
            raise StorageError(f"{ERROR_STORAGE_UNAVAILABLE}: {e}") from e
