"""Dispatch worker process: ``datapod-worker`` or ``python -m datapod.worker``."""

import asyncio
import signal

from datapod.core.config import get_settings
from datapod.core.logging import configure_structlog

_settings = get_settings()
configure_structlog(log_level="DEBUG" if _settings.debug else "INFO", json_logs=not _settings.debug)

import structlog  # noqa: E402

from datapod.db.base import close_db, get_session_factory, init_db  # noqa: E402
from datapod.db.redis import close_redis, get_redis, init_redis  # noqa: E402
from datapod.dispatch.worker import run_worker  # noqa: E402
from datapod.services.container import ServiceContainer  # noqa: E402

logger = structlog.get_logger(__name__)


async def main() -> None:
    await init_db()
    await init_redis(client_name="datapod-worker")
    redis = get_redis()
    container = ServiceContainer.build(get_session_factory(), redis=redis, settings=_settings)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    try:
        await run_worker(container.dispatcher, container.registry, redis, stop, _settings)
    finally:
        await close_redis()
        await close_db()
        logger.info("worker_shutdown_complete")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
