import json
import logging
from dataclasses import asdict
from typing import Any, Dict, List, Protocol

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..models import Connection
from ..settings import get_settings

logger = logging.getLogger(__name__)

CONNECTION_KEY_PREFIX = "connection:"
CONNECTIONS_INDEX_KEY = "connections"


def _connection_to_dict(connection: Connection) -> Dict[str, Any]:
    return asdict(connection)


def _dict_to_connection(data: Dict[str, Any]) -> Connection:
    """Build Connection from a dict (e.g. from Redis)."""
    return Connection(
        provider=data["provider"],
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_at=data.get("expires_at"),
        created_at=data.get("created_at", ""),
    )


def _summary(connection: Connection) -> Dict[str, Any]:
    return {
        "id": connection.id,
        "provider": connection.provider,
        "created_at": connection.created_at,
    }


class ConnectionStore(Protocol):
    async def get_token(self, provider: str) -> str | None: ...

    async def save(self, connection: Connection) -> bool: ...

    async def list(self) -> List[Dict[str, Any]]: ...

    async def delete(self, provider: str) -> bool: ...


class MemoryConnectionStore:
    """Process-local connection store, used when Redis is not configured."""

    def __init__(self) -> None:
        self._connections: Dict[str, Connection] = {}

    async def get_token(self, provider: str) -> str | None:
        connection = self._connections.get(provider)
        return connection.access_token if connection else None

    async def save(self, connection: Connection) -> bool:
        self._connections[connection.provider] = connection
        return True

    async def list(self) -> List[Dict[str, Any]]:
        return [_summary(c) for c in self._connections.values()]

    async def delete(self, provider: str) -> bool:
        self._connections.pop(provider, None)
        return True

    async def close(self) -> None:
        return None


class RedisConnectionStore:
    """Per-provider OAuth tokens persisted in Redis.

    Each connection is a JSON value under ``connection:<provider>``; the set
    ``connections`` indexes the stored providers. Redis errors are logged and
    reported as a missing connection rather than raised.
    """

    def __init__(self, url: str) -> None:
        """Create a store for the given URL (e.g. redis://localhost:6379/0)."""
        self._url = url
        self._client: Redis | None = None

    async def connect(self) -> None:
        """Establish connection to Redis. Idempotent."""
        if self._client is not None:
            return
        self._client = Redis.from_url(self._url, decode_responses=True)
        try:
            await self._client.ping()
            logger.info("Redis connection established: %s", self._url.split("@")[-1])
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis ping failed: %s", e)
            await self._client.aclose()
            self._client = None
            raise

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("Redis connection closed")

    def _key(self, provider: str) -> str:
        return f"{CONNECTION_KEY_PREFIX}{provider}"

    async def get(self, provider: str) -> Connection | None:
        """Load the connection for provider. Returns None if missing or on error."""
        if self._client is None:
            return None
        try:
            raw = await self._client.get(self._key(provider))
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis get %s failed: %s", provider, e)
            return None
        if raw is None:
            return None
        try:
            return _dict_to_connection(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            logger.warning("Invalid connection data for %s: %s", provider, e)
            return None

    async def get_token(self, provider: str) -> str | None:
        connection = await self.get(provider)
        return connection.access_token if connection else None

    async def save(self, connection: Connection) -> bool:
        """Persist a connection, replacing any previous one. Returns True on success."""
        if self._client is None:
            return False
        payload = json.dumps(_connection_to_dict(connection))
        try:
            await self._client.set(self._key(connection.provider), payload)
            await self._client.sadd(CONNECTIONS_INDEX_KEY, connection.provider)
            return True
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis save %s failed: %s", connection.provider, e)
            return False

    async def list(self) -> List[Dict[str, Any]]:
        """Summaries (id, provider, created_at) of every stored connection."""
        if self._client is None:
            return []
        try:
            providers = await self._client.smembers(CONNECTIONS_INDEX_KEY)
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis list connections failed: %s", e)
            return []
        summaries = []
        for provider in sorted(providers):
            connection = await self.get(provider)
            if connection is not None:
                summaries.append(_summary(connection))
        return summaries

    async def delete(self, provider: str) -> bool:
        """Remove the connection for provider. True if removed or absent."""
        if self._client is None:
            return False
        try:
            await self._client.delete(self._key(provider))
            await self._client.srem(CONNECTIONS_INDEX_KEY, provider)
            return True
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis delete %s failed: %s", provider, e)
            return False


async def open_connection_store() -> ConnectionStore:
    """Return a connected Redis store if REDIS_URL is set and reachable, else memory."""
    settings = get_settings()
    if not settings.redis_url or not settings.redis_url.strip():
        logger.info("REDIS_URL not set; connections are kept in memory")
        return MemoryConnectionStore()

    store = RedisConnectionStore(settings.redis_url.strip())
    try:
        await store.connect()
    except (RedisConnectionError, RedisTimeoutError, ConnectionError, TimeoutError) as e:
        logger.warning("Connection store unavailable (Redis), using memory: %s", e)
        return MemoryConnectionStore()
    return store
