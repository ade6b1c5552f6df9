"""
Shared fixtures: isolated app instances with a scripted simulator.
"""

import pytest

from slowlab.app import create_app
from slowlab.config import Settings
from slowlab.metrics import MetricsRecorder
from slowlab.simulator import LatencySimulator

CONFIG_ENV_VARS = (
    'HOST', 'PORT', 'APP_ENV', 'SERVICE_NAME', 'LOG_LEVEL', 'LOG_FORMAT',
    'LOKI_URL', 'LOKI_TIMEOUT', 'LOG_QUEUE_SIZE', 'SLOW_MIN_DELAY_MS', 'SLOW_MAX_DELAY_MS',
    'SLOW_FAILURE_RATE', 'METRICS_DEFAULT_COLLECTORS',
)


class ScriptedRandom:
    """Random source that always draws the same delay and the same roll"""

    def __init__(self, delay_ms=700, roll=0.99):
        self.delay_ms = delay_ms
        self.roll = roll

    def randint(self, a, b):
        return self.delay_ms

    def random(self):
        return self.roll


def no_sleep(seconds):
    pass


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def recorder():
    return MetricsRecorder(default_collectors=False)


@pytest.fixture
def make_client(settings, recorder):
    """Factory for a test client whose simulator outcome is fixed"""
    def _make(delay_ms=700, fail=False, sleep=no_sleep, simulator=None):
        if simulator is None:
            simulator = LatencySimulator(
                rng=ScriptedRandom(delay_ms=delay_ms, roll=0.0 if fail else 0.99),
                sleep=sleep,
            )
        app = create_app(settings=settings, simulator=simulator, recorder=recorder)
        return app.test_client()
    return _make
