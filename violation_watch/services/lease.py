from typing import Optional
import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError
from violation_watch.core.config import settings
from violation_watch.core.redis import get_redis

logger = structlog.get_logger()

LEASE_KEY = "lease:violation_check"

# KEYS[1] - lease key
# ARGV[1] - run id that owns the lease
RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""

class RunLease:
    """Keeps two violation checks from running at the same time.

    Without Redis the lease is granted anyway: inserts skip duplicate ids, so
    overlapping runs only repeat work.
    """

    def __init__(self, redis: Optional[Redis], key: str = LEASE_KEY, ttl: int = settings.RUN_LEASE_TTL):
        self.redis = redis
        self.key = key
        self.ttl = ttl
        self._release_script = None

    async def acquire(self, run_id: str) -> bool:
        if self.redis is None:
            logger.warning("run_lease_unavailable", run_id=run_id)
            return True
        try:
            acquired = await self.redis.set(self.key, run_id, nx=True, ex=self.ttl)
        except (RedisError, OSError) as e:
            logger.warning("run_lease_unavailable", run_id=run_id, error=str(e))
            return True
        if not acquired:
            holder = await self._holder()
            logger.warning("run_lease_held", run_id=run_id, holder=holder)
            return False
        logger.info("run_lease_acquired", run_id=run_id, ttl=self.ttl)
        return True

    async def release(self, run_id: str):
        if self.redis is None:
            return
        try:
            if self._release_script is None:
                self._release_script = self.redis.register_script(RELEASE_LUA)
            released = await self._release_script(keys=[self.key], args=[run_id])
        except (RedisError, OSError) as e:
            logger.warning("run_lease_release_failed", run_id=run_id, error=str(e))
            return
        if released:
            logger.info("run_lease_released", run_id=run_id)

    async def _holder(self) -> Optional[str]:
        try:
            return await self.redis.get(self.key)
        except (RedisError, OSError):
            return None

async def get_run_lease() -> RunLease:
    try:
        redis = await get_redis()
    except (RedisError, OSError):
        redis = None
    return RunLease(redis)
