"""Immutable pipeline configuration injected into every stage."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PipelineConfig:
    exchange: str
    queue: str
    dead_letter_queue: str
    routing_key: str
    dead_letter_routing_key: str
    max_retries: int
    prefetch_count: int
    dead_letter_exchange: str = ""
    consumer_concurrency: int = 1
    processor_concurrency: int = 10
    batcher_concurrency: int = 2
    batch_size: int = 10
    batch_timeout_ms: int = 1000

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        for name in (
            "prefetch_count",
            "consumer_concurrency",
            "processor_concurrency",
            "batcher_concurrency",
            "batch_size",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        if self.batch_timeout_ms < 0:
            raise ValueError("batch_timeout_ms must be >= 0")

    @property
    def effective_dead_letter_exchange(self) -> str:
        return self.dead_letter_exchange or self.exchange

    @property
    def batch_timeout_seconds(self) -> float:
        return self.batch_timeout_ms / 1000.0
