from redis.asyncio import Redis, from_url
from violation_watch.core.config import settings
import structlog

logger = structlog.get_logger()

class RedisManager:
    """Holds the single Redis connection pool used for run leases."""

    def __init__(self, url: str = settings.REDIS_URL):
        self.url = url
        self.redis: Redis | None = None

    async def connect(self):
        try:
            self.redis = from_url(
                self.url,
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
            )
            await self.redis.ping()
            logger.info("redis_connected", url=self.url)
        except Exception as e:
            logger.error("redis_connection_failed", url=self.url, error=str(e))
            self.redis = None
            raise

    async def disconnect(self):
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.info("redis_disconnected")

redis_manager = RedisManager()

async def get_redis() -> Redis:
    if redis_manager.redis is None:
        await redis_manager.connect()
    return redis_manager.redis
