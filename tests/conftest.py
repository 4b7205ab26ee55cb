from unittest.mock import AsyncMock, MagicMock

import pytest

from callai.flow import ConversationFlowEngine
from callai.memory import ConversationMemory
from tests.fakes import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory(clock):
    return ConversationMemory(call_id="CA123", clock=clock)


@pytest.fixture
def flow(memory):
    return ConversationFlowEngine(memory)


@pytest.fixture
def events():
    logger = MagicMock()
    logger.log_event = MagicMock()
    logger.send_call_summary = AsyncMock()
    return logger


@pytest.fixture
def transport():
    t = MagicMock()
    t.send = AsyncMock(return_value=True)
    return t
