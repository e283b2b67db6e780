"""Worker composition root: build and lifecycle-manage concrete dependencies.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from ingestor.app.application.failure_router import FailureRouter
from ingestor.app.application.persistence_applier import PersistenceApplier
from ingestor.app.application.pipeline import IngestionPipeline
from ingestor.app.config.settings import Settings
from ingestor.app.core import SERVICE_NAME
from ingestor.app.domain.pipeline_config import PipelineConfig
from ingestor.app.domain.retry_delay import create_retry_delay
from ingestor.app.infrastructure.messaging.factory import create_message_consumer, create_publisher
from ingestor.app.infrastructure.persistence.factory import create_challenge_repository
from ingestor.app.ports.challenge_repository import ChallengeRepository
from ingestor.app.ports.message_consumer import MessageConsumer
from ingestor.app.ports.message_publisher import MessagePublisher


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class WorkerDependencies:
    """Holds wired worker dependencies and their lifecycle."""

    def __init__(self, *, settings: Settings) -> None:
        self._settings = settings
        self._config: PipelineConfig = settings.pipeline_config()
        self._repository: ChallengeRepository | None = None
        self._publisher: MessagePublisher | None = None
        self._message_consumer: MessageConsumer | None = None
        self._pipeline: IngestionPipeline | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def repository(self) -> ChallengeRepository:
        if self._repository is None:
            raise RuntimeError("repository is not initialized")
        return self._repository

    @property
    def publisher(self) -> MessagePublisher:
        if self._publisher is None:
            raise RuntimeError("publisher is not initialized")
        return self._publisher

    @property
    def message_consumer(self) -> MessageConsumer:
        if self._message_consumer is None:
            raise RuntimeError("message_consumer is not initialized")
        return self._message_consumer

    @property
    def pipeline(self) -> IngestionPipeline:
        if self._pipeline is None:
            raise RuntimeError("pipeline is not initialized")
        return self._pipeline

    async def connect(self) -> None:
        try:
            self._repository = await create_challenge_repository(self._settings)

            self._publisher = create_publisher(self._settings, self._config)
            await self._publisher.connect()

            self._message_consumer = create_message_consumer(self._settings, self._config)
            await self._message_consumer.connect()
        except Exception:
            await self.close()
            raise

        retry_delay = create_retry_delay(
            self._settings.retry_delay_strategy,
            initial_delay=self._settings.retry_initial_delay_seconds,
            max_delay=self._settings.retry_max_delay_seconds,
            multiplier=self._settings.retry_delay_multiplier,
        )
        self._pipeline = IngestionPipeline(
            self._config,
            PersistenceApplier(self.repository),
            FailureRouter(self.publisher, self._config, retry_delay=retry_delay),
        )
        _log("worker_dependencies_ready", queue=self._config.queue, max_retries=self._config.max_retries)

    async def close(self) -> None:
        # Order matters: stop intake, drain the pipeline while channels can still ack
        # and the publisher can still re-publish, then tear the connections down.
        if self._message_consumer is not None:
            try:
                await self._message_consumer.cancel()
            except Exception as exc:
                logger.warning("message consumer cancel failed: {}", exc)

        if self._pipeline is not None:
            try:
                await self._pipeline.stop()
            except Exception as exc:
                logger.warning("pipeline stop failed: {}", exc)
            self._pipeline = None

        if self._message_consumer is not None:
            try:
                await self._message_consumer.close()
            except Exception as exc:
                logger.warning("message consumer close failed: {}", exc)
            self._message_consumer = None

        if self._publisher is not None:
            try:
                await self._publisher.close()
            except Exception as exc:
                logger.warning("publisher close failed: {}", exc)
            self._publisher = None

        if self._repository is not None:
            try:
                await self._repository.close()
            except Exception as exc:
                logger.warning("repository close failed: {}", exc)
            self._repository = None


def create_worker_dependencies(settings: Settings | None = None) -> WorkerDependencies:
    return WorkerDependencies(settings=settings or Settings())
