"""Shared test fixtures.

Provides a controllable clock, a recording sleep, a mock httpx response
builder and a stub provider adapter used across resilience, service, API
and client tests.
"""

from typing import Callable, List, Optional, Union
from unittest.mock import MagicMock

import httpx
import pytest

from raidbot.config.server import ServiceConfig, set_config
from raidbot.core.errors.classified import ClassifiedError
from raidbot.core.providers.base import CallContext, ProviderAdapter, ProviderReply

_PROVIDER_ENV_VARS = (
    "GEMINI_API_KEY",
    "GROQ_API_KEY",
    "GEMINI_MODEL",
    "GROQ_MODEL",
    "RAIDBOT_ENV",
    "RAIDBOT_CONFIG_FILE",
    "RAIDBOT_LOG_LEVEL",
    "RAIDBOT_STRUCTURED_LOGGING",
    "RAIDBOT_REQUEST_TIMEOUT",
    "RAIDBOT_MAX_ATTEMPTS",
    "RAIDBOT_BASE_DELAY_MS",
    "RAIDBOT_MAX_DELAY_MS",
    "RAIDBOT_CIRCUIT_BREAKER_ENABLED",
    "RAIDBOT_CIRCUIT_FAILURE_THRESHOLD",
    "RAIDBOT_CIRCUIT_RESET_TIMEOUT_MS",
    "RAIDBOT_RATE_LIMIT_RPM",
    "RAIDBOT_CORS_ORIGINS",
    "RAIDBOT_PROVIDER_ORDER",
)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path):
    """Keep real credentials and config files out of every test."""
    for name in _PROVIDER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.chdir(tmp_path)
    set_config(None)
    yield
    set_config(None)


# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested durations."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


# ---------------------------------------------------------------------------
# Mock response builder
# ---------------------------------------------------------------------------


def make_mock_response(
    *,
    status_code: int = 200,
    headers: Optional[dict] = None,
    json_data: Optional[dict] = None,
    text: str = "",
    raise_json: bool = False,
) -> MagicMock:
    """Build a mock httpx.Response for adapter tests.

    Args:
        status_code: HTTP status code.
        headers: Response headers dict.
        json_data: JSON body (returned by response.json()).
        text: Plain text body.
        raise_json: If True, response.json() raises ValueError.
    """
    response = MagicMock(spec=httpx.Response)
    response.status_code = status_code
    response.headers = headers or {}
    response.text = text
    response.content = text.encode() if text else b"{}"

    if raise_json:
        response.json.side_effect = ValueError("No JSON")
    elif json_data is not None:
        response.json.return_value = json_data
    else:
        response.json.return_value = {}

    return response


# ---------------------------------------------------------------------------
# Stub adapters
# ---------------------------------------------------------------------------

Outcome = Union[ProviderReply, BaseException, Callable[[], ProviderReply]]


class StubAdapter(ProviderAdapter):
    """Adapter replaying a scripted sequence of outcomes.

    The last outcome repeats once the script is exhausted.
    """

    def __init__(self, name: str, *outcomes: Outcome):
        super().__init__(model=f"{name}-model", base_url="http://stub.invalid")
        self.name = name
        self.outcomes = list(outcomes) or [ProviderReply(text="ok", model=f"{name}-model")]
        self.calls: List[tuple] = []

    async def call(self, credential: str, message: str, context: CallContext) -> ProviderReply:
        self.calls.append((credential, message, context))
        index = min(len(self.calls) - 1, len(self.outcomes) - 1)
        outcome = self.outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return outcome()
        return outcome

    @property
    def call_count(self) -> int:
        return len(self.calls)


def reply(text: str = "Hi there!", model: str = "stub-model", usage: Optional[dict] = None) -> ProviderReply:
    return ProviderReply(text=text, model=model, usage=usage)


def make_config(
    *,
    gemini_key: Optional[str] = "gemini-test-key",
    groq_key: Optional[str] = "groq-test-key",
    max_attempts: int = 3,
    breaker_enabled: bool = True,
    failure_threshold: int = 5,
) -> ServiceConfig:
    """ServiceConfig with test credentials and fast retry settings."""
    config = ServiceConfig()
    config.providers["gemini"].api_key = gemini_key
    config.providers["groq"].api_key = groq_key
    config.retry.max_attempts = max_attempts
    config.retry.base_delay_ms = 10
    config.retry.max_delay_ms = 100
    config.circuit_breaker.enabled = breaker_enabled
    config.circuit_breaker.failure_threshold = failure_threshold
    return config


@pytest.fixture
def service_config() -> ServiceConfig:
    return make_config()


def classified(kind, **kwargs) -> ClassifiedError:
    return ClassifiedError(kind, f"{kind.value} failure", **kwargs)
