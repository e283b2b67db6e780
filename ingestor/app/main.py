import asyncio
import signal

from loguru import logger

from ingestor.app.composition import create_worker_dependencies
from ingestor.app.config.settings import Settings
from ingestor.app.core import SERVICE_NAME
from ingestor.app.core.logging import configure_logging
from ingestor.app.messaging.consumer import create_message_handler


def _log(event: str, **kwargs) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


async def run_worker(settings: Settings | None = None) -> None:
    deps = create_worker_dependencies(settings)
    shutdown = asyncio.Event()

    def request_shutdown() -> None:
        if not shutdown.is_set():
            _log("shutdown_signal")
            shutdown.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown)
        except NotImplementedError:
            pass

    try:
        await deps.connect()
        deps.pipeline.start()
        await deps.message_consumer.start_consuming(create_message_handler(deps.pipeline))
        _log("worker_started", queue=deps.config.queue, prefetch_count=deps.config.prefetch_count)
        await shutdown.wait()
    finally:
        await deps.close()
        _log("worker_stopped")


def main() -> None:
    settings = Settings()
    configure_logging(settings.log_level, json=settings.log_json)
    try:
        asyncio.run(run_worker(settings))
    except KeyboardInterrupt:
        _log("worker_interrupted")
    except Exception as e:
        logger.exception("worker failed: {}", e)
        raise


if __name__ == "__main__":
    main()
