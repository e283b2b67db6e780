from __future__ import annotations

import pytest

from ingestor.app.domain.pipeline_config import PipelineConfig
from tests.support import make_config


@pytest.fixture()
def pipeline_config() -> PipelineConfig:
    return make_config()
