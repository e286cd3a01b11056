# ==============================================================================
# Valkey Site Registry
# ==============================================================================
"""
Valkey/Redis implementation of the SiteRegistry interface.

Credentials are stored in a single hash (credential -> site_id), so a
lookup is one HGET and registering or revoking a site is one HSET/HDEL.
"""

import logging

import redis
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry

from clickpulse.base.repositories import SiteRegistry
from clickpulse.utils.config import get_settings
from clickpulse.utils.retry import VALKEY_RETRIES

logger = logging.getLogger(__name__)


def get_valkey_client(url: str | None = None, socket_timeout: int = 10) -> redis.Redis:
    """
    Get a Valkey/Redis client connection.

    Configured with:
    - 10 second socket timeouts for fast failure detection
    - 10 automatic retries with exponential backoff for transient failures
    - Health check interval to keep connections alive

    Args:
        url: Connection URL. If None, uses settings.

    Returns:
        redis.Redis client instance
    """
    url = url or get_settings().valkey.url
    retry = Retry(ExponentialBackoff(cap=32, base=1), retries=VALKEY_RETRIES)

    return redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
        retry=retry,
        retry_on_error=[RedisTimeoutError, RedisConnectionError],
        health_check_interval=30,
    )


class ValkeySiteRegistry(SiteRegistry):
    """
    SiteRegistry backed by a Valkey hash.

    Args:
        client: Redis client instance. If None, creates a new connection.
        key: Hash key. If None, uses settings.valkey.registry_key.
    """

    def __init__(self, client: redis.Redis | None = None, key: str | None = None):
        self._client = client or get_valkey_client()
        self._key = key or get_settings().valkey.registry_key

    @property
    def client(self) -> redis.Redis:
        """Get the underlying Redis client."""
        return self._client

    def resolve(self, credential: str) -> str | None:
        return self._client.hget(self._key, credential)

    def register(self, credential: str, site_id: str) -> None:
        self._client.hset(self._key, credential, site_id)
        logger.info("Registered site '%s'", site_id)

    def revoke(self, credential: str) -> bool:
        """
        Remove a credential.

        Returns:
            True if the credential existed
        """
        return self._client.hdel(self._key, credential) > 0

    def close(self) -> None:
        self._client.close()
