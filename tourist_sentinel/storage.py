"""Key-value collaborators that persist per-tourist history and profile."""

from abc import ABC, abstractmethod
from typing import Dict, Optional

import redis.asyncio as redis
from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from .exceptions import StorageError
from .logging_config import get_logger
from .schemas import SessionSnapshot

logger = get_logger(__name__)


class KeyValueStore(ABC):
    """Get/put of session snapshots by tourist id.

    Implementations raise StorageError when the backend is unavailable.
    """

    @abstractmethod
    async def get(self, tourist_id: str) -> Optional[SessionSnapshot]:
        pass

    @abstractmethod
    async def put(self, snapshot: SessionSnapshot) -> None:
        pass

    async def close(self) -> None:
        return None


class InMemoryStore(KeyValueStore):
    """Process-local store; snapshots are kept serialized like a real backend."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    async def get(self, tourist_id: str) -> Optional[SessionSnapshot]:
        raw = self._data.get(tourist_id)
        if raw is None:
            return None
        return SessionSnapshot.model_validate_json(raw)

    async def put(self, snapshot: SessionSnapshot) -> None:
        self._data[snapshot.tourist_id] = snapshot.model_dump_json()

    def __contains__(self, tourist_id: str) -> bool:
        return tourist_id in self._data


class RedisStore(KeyValueStore):
    """Async Redis store. Snapshots are JSON strings under ``tourist:<id>``."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        client: Optional[Redis] = None,
        key_prefix: str = "tourist:",
        socket_timeout: Optional[float] = None,
    ):
        if redis_url is None and client is None:
            raise ValueError("RedisStore needs a redis_url or a client")
        self.redis_url = redis_url
        self.redis: Optional[Redis] = client
        self.key_prefix = key_prefix
        self.socket_timeout = socket_timeout

    def _key(self, tourist_id: str) -> str:
        return f"{self.key_prefix}{tourist_id}"

    async def connect(self) -> None:
        """Connect to Redis."""
        if self.redis is not None:
            return
        try:
            self.redis = redis.from_url(self.redis_url, decode_responses=True, socket_timeout=self.socket_timeout)
            await self.redis.ping()
            logger.info("redis_connected", url=self.redis_url)
        except (RedisError, OSError) as e:
            self.redis = None
            raise StorageError(f"Error connecting to Redis: {e}") from e

    async def close(self) -> None:
        """Disconnect from Redis."""
        if self.redis is not None:
            await self.redis.close()
            self.redis = None
            logger.info("redis_disconnected")

    async def get(self, tourist_id: str) -> Optional[SessionSnapshot]:
        await self.connect()
        try:
            raw = await self.redis.get(self._key(tourist_id))
        except (RedisError, OSError) as e:
            raise StorageError(f"Failed to read snapshot for {tourist_id}: {e}") from e
        if raw is None:
            return None
        try:
            return SessionSnapshot.model_validate_json(raw)
        except ValidationError as e:
            raise StorageError(f"Corrupt snapshot for {tourist_id}: {e.error_count()} error(s)") from e

    async def put(self, snapshot: SessionSnapshot) -> None:
        await self.connect()
        try:
            await self.redis.set(self._key(snapshot.tourist_id), snapshot.model_dump_json())
        except (RedisError, OSError) as e:
            raise StorageError(f"Failed to write snapshot for {snapshot.tourist_id}: {e}") from e
