import redis
import logging
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional
import os

from shared.config import get_config
from shared.errors import StoreUnavailable


class Client:
    store_name = "redis"

    def __init__(self, redis_url: str = None, connection: Optional[redis.Redis] = None):
        """
        Initialize Redis client for the friend graph stores

        Args:
            redis_url: Redis connection URL (from environment)
            connection: Already constructed redis connection, used instead of redis_url
        """
        self.logger = logging.getLogger(self.__class__.__name__)

        if connection is not None:
            self.client = connection
            return

        if not redis_url:
            redis_url = os.getenv('REDIS_URL', 'redis://localhost:6379')

        redis_config = get_config().get_redis_config()

        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_timeout=redis_config.get('socket_timeout', 2.0),
                socket_connect_timeout=redis_config.get('socket_connect_timeout', 2.0)
            )
            # Test connection
            self.client.ping()
            self.logger.info("Redis connection established")
        except redis.exceptions.RedisError as e:
            self.logger.error(f"Failed to connect to Redis: {e}")
            raise StoreUnavailable(self.store_name, str(e)) from e

    @contextmanager
    def _store_call(self, operation: str):
        """Translate redis failures (including timeouts) into StoreUnavailable"""
        try:
            yield
        except redis.exceptions.RedisError as e:
            self.logger.error(f"{self.store_name} {operation} failed: {e}")
            raise StoreUnavailable(self.store_name, f"{operation}: {e}") from e

    @staticmethod
    def _to_member_ids(values: Iterable) -> List[int]:
        return [int(value) for value in values]

    def get_stats(self) -> Dict:
        """Get cache statistics"""
        try:
            info = self.client.info()
            return {
                'connected_clients': info.get('connected_clients', 0),
                'used_memory_human': info.get('used_memory_human', '0B'),
                'total_commands_processed': info.get('total_commands_processed', 0),
                'keyspace_hits': info.get('keyspace_hits', 0),
                'keyspace_misses': info.get('keyspace_misses', 0)
            }
        except redis.exceptions.RedisError as e:
            self.logger.error(f"Failed to get Redis stats: {e}")
            return {}

    def is_healthy(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.exceptions.RedisError as e:
            self.logger.warning(f"Redis health check failed: {e}")
            return False
