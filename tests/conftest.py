import os
import tempfile

# Loggers attach their file handler on first use; keep test runs out of ./logs
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="iteration-logs-"))

import pytest

from core.iteration_store import IterationStore
from domain import IterationContext, IterationTiming
from iteration_service import IterationService
from settings import Settings


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return IterationStore(clock=clock, satisfaction_heuristics=Settings().section("satisfaction"))


@pytest.fixture
def service(store):
    return IterationService(Settings(), store=store)


@pytest.fixture
def timing():
    def make(request_time: float = 100.0, latency: float = 2.0) -> IterationTiming:
        return IterationTiming(request_time=request_time, response_time=request_time + latency)
    return make


@pytest.fixture
def add(service, timing):
    """Append an iteration to a session through the service."""
    def make(output: str, session_id: str = "s1", prompt: str = "write it", latency: float = 2.0):
        return service.create_iteration(IterationContext(session_id=session_id), prompt, output, timing(latency=latency))
    return make
