import logging
import sys
from contextlib import contextmanager
import structlog
from violation_watch.core.config import settings

def setup_logging():
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper()),
    )
    # request lines carry the upstream SQL and device tokens
    logging.getLogger("httpx").setLevel(logging.WARNING)

    renderer = structlog.dev.ConsoleRenderer() if settings.DEBUG else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

@contextmanager
def run_context(run_id: str, cadence: str):
    """Tag every log line emitted during one violation check with its run."""
    with structlog.contextvars.bound_contextvars(run_id=run_id, cadence=cadence):
        yield

def mask_token(token: str, visible: int = 10) -> str:
    if len(token) <= visible:
        return token
    return f"{token[:visible]}..."
