import asyncio
import uvicorn
import structlog
from redis.exceptions import RedisError
from violation_watch.core.config import settings
from violation_watch.core.logging import setup_logging
from violation_watch.core.redis import redis_manager
from violation_watch.core.db import db_manager
from violation_watch.core.auth import init_firebase
from violation_watch.apps.public import create_public_app
from violation_watch.apps.internal import create_internal_app

setup_logging()
logger = structlog.get_logger()

async def run_servers():
    """Run the Public and Internal API servers concurrently."""

    try:
        await redis_manager.connect()
    except (RedisError, OSError):
        # run leases fail open without Redis
        logger.warning("redis_unavailable_at_startup")
    init_firebase()

    public_app = create_public_app()
    internal_app = create_internal_app()

    public_config = uvicorn.Config(
        public_app,
        host=settings.HOST,
        port=settings.PUBLIC_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
    internal_config = uvicorn.Config(
        internal_app,
        host=settings.HOST,
        port=settings.INTERNAL_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )

    public_server = uvicorn.Server(public_config)
    internal_server = uvicorn.Server(internal_config)

    logger.info("servers_starting",
                public_port=settings.PUBLIC_PORT,
                internal_port=settings.INTERNAL_PORT)

    try:
        await asyncio.gather(
            public_server.serve(),
            internal_server.serve(),
        )
    finally:
        await redis_manager.disconnect()
        await db_manager.disconnect()
        logger.info("servers_stopped")

if __name__ == "__main__":
    try:
        asyncio.run(run_servers())
    except KeyboardInterrupt:
        pass
