"""Messaging factories: select implementations from config. Only place that imports concrete adapters."""
from __future__ import annotations

from ingestor.app.config.settings import Settings
from ingestor.app.domain.pipeline_config import PipelineConfig
from ingestor.app.infrastructure.messaging.inmemory.in_memory_publisher import InMemoryPublisher
from ingestor.app.infrastructure.messaging.rabbitmq.rabbitmq_consumer import RabbitMQConsumer
from ingestor.app.infrastructure.messaging.rabbitmq.rabbitmq_publisher import RabbitMQPublisher
from ingestor.app.ports.message_consumer import MessageConsumer
from ingestor.app.ports.message_publisher import MessagePublisher


def create_message_consumer(settings: Settings, config: PipelineConfig) -> MessageConsumer:
    backend = settings.consumer_backend.strip().lower()

    if backend == "rabbitmq":
        return RabbitMQConsumer(settings, config)

    raise ValueError(f"Unsupported consumer backend: {backend}")


def create_publisher(settings: Settings, config: PipelineConfig) -> MessagePublisher:
    backend = settings.publisher_backend.strip().lower()

    if backend == "rabbitmq":
        return RabbitMQPublisher(settings, config)

    if backend == "inmemory":
        return InMemoryPublisher(default_exchange=config.exchange)

    raise ValueError(f"Unsupported publisher backend: {backend}")
