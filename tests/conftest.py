import logging

import pytest

from cellatlas_chatbot.core.store import PlotStateStore
from tests.fakes import FakeAtlasClient

logging.getLogger("urllib3").setLevel(logging.WARNING)


@pytest.fixture
def fake_client() -> FakeAtlasClient:
    return FakeAtlasClient()


@pytest.fixture
def store() -> PlotStateStore:
    return PlotStateStore()
