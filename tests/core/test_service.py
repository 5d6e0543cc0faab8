"""Tests for AIService provider orchestration.

Tests cover:
1. Message and option validation (no provider call on bad input)
2. Primary success and fallback to the secondary provider
3. BAD_REQUEST short-circuiting the chain
4. Exhaustion reporting the last failure kind with a user-safe message
5. Circuit breaker interaction across requests
6. Health status and provider probes
"""

import asyncio

import httpx
import pytest

from conftest import StubAdapter, classified, make_config, reply
from raidbot.core.errors import ErrorKind, ProviderHTTPError, RateLimitWaitError
from raidbot.core.errors.messages import user_message
from raidbot.core.resilience.models import CircuitState
from raidbot.core.service import AIService


def _service(config=None, *, gemini=None, groq=None, fake_sleep=None, clock=None):
    adapters = {}
    if gemini is not None:
        adapters["gemini"] = gemini
    if groq is not None:
        adapters["groq"] = groq
    return AIService(
        config or make_config(),
        adapters=adapters,
        sleep_func=fake_sleep,
        clock=clock,
    )


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", ["", "   ", None, 42])
    async def test_invalid_message_rejected_without_calls(self, message, fake_sleep):
        gemini = StubAdapter("gemini", reply())
        service = _service(gemini=gemini, fake_sleep=fake_sleep)

        envelope = await service.generate_response(message)

        assert envelope.success is False
        assert envelope.type is ErrorKind.BAD_REQUEST
        assert envelope.error == user_message(ErrorKind.BAD_REQUEST)
        assert envelope.correlation_id.startswith("ai_")
        assert gemini.call_count == 0

    @pytest.mark.asyncio
    async def test_message_too_long(self, fake_sleep):
        config = make_config()
        config.max_message_length = 10
        gemini = StubAdapter("gemini", reply())
        service = _service(config, gemini=gemini, fake_sleep=fake_sleep)

        envelope = await service.generate_response("x" * 11)

        assert envelope.type is ErrorKind.BAD_REQUEST
        assert gemini.call_count == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "options",
        [
            {"temperature": 3},
            {"temperature": "hot"},
            {"temperature": True},
            {"max_tokens": 0},
            {"max_tokens": 100000},
            {"max_tokens": 1.5},
            ["not", "a", "mapping"],
        ],
    )
    async def test_invalid_options_rejected(self, options, fake_sleep):
        gemini = StubAdapter("gemini", reply())
        service = _service(gemini=gemini, fake_sleep=fake_sleep)

        envelope = await service.generate_response("Hello", options)

        assert envelope.type is ErrorKind.BAD_REQUEST
        assert gemini.call_count == 0

    @pytest.mark.asyncio
    async def test_options_reach_adapter(self, fake_sleep):
        gemini = StubAdapter("gemini", reply())
        service = _service(gemini=gemini, fake_sleep=fake_sleep)

        await service.generate_response("Hello", {"temperature": 0.1, "max_tokens": 50, "other": 1})

        _, _, context = gemini.calls[0]
        assert context.temperature == 0.1
        assert context.max_tokens == 50
        assert context.system_prompt == service.config.system_prompt

    @pytest.mark.asyncio
    async def test_no_credentials_is_configuration_error(self, fake_sleep):
        service = _service(make_config(gemini_key=None, groq_key=None), fake_sleep=fake_sleep)

        envelope = await service.generate_response("Hello")

        assert envelope.success is False
        assert envelope.type is ErrorKind.CONFIGURATION
        assert service.providers == []


class TestProviderChain:
    @pytest.mark.asyncio
    async def test_primary_success(self, fake_sleep):
        gemini = StubAdapter("gemini", reply("Hi there!", "gemini-1.5-flash", {"totalTokenCount": 5}))
        groq = StubAdapter("groq", reply())
        service = _service(gemini=gemini, groq=groq, fake_sleep=fake_sleep)

        envelope = await service.generate_response("Hello", correlation_id="ai_test123")

        assert envelope.to_dict() == {
            "success": True,
            "response": "Hi there!",
            "model": "gemini-1.5-flash",
            "provider": "gemini",
            "usage": {"totalTokenCount": 5},
            "correlationId": "ai_test123",
        }
        assert groq.call_count == 0

    @pytest.mark.asyncio
    async def test_credentials_passed_to_adapter(self, fake_sleep):
        gemini = StubAdapter("gemini", reply())
        service = _service(gemini=gemini, fake_sleep=fake_sleep)

        await service.generate_response("Hello")

        credential, message, _ = gemini.calls[0]
        assert credential == "gemini-test-key"
        assert message == "Hello"

    @pytest.mark.asyncio
    async def test_fallback_after_server_errors(self, fake_sleep):
        gemini = StubAdapter("gemini", ProviderHTTPError("gemini", 503, "overloaded"))
        groq = StubAdapter("groq", reply("From Groq", "groq:llama"))
        service = _service(gemini=gemini, groq=groq, fake_sleep=fake_sleep)

        envelope = await service.generate_response("Hello")

        assert envelope.success is True
        assert envelope.provider == "groq"
        assert envelope.response == "From Groq"
        assert gemini.call_count == 3  # retried up to max_attempts
        assert groq.call_count == 1

    @pytest.mark.asyncio
    async def test_auth_failure_falls_back_without_retry(self, fake_sleep):
        gemini = StubAdapter("gemini", ProviderHTTPError("gemini", 401, "bad key"))
        groq = StubAdapter("groq", reply())
        service = _service(gemini=gemini, groq=groq, fake_sleep=fake_sleep)

        envelope = await service.generate_response("Hello")

        assert envelope.provider == "groq"
        assert gemini.call_count == 1

    @pytest.mark.asyncio
    async def test_bad_request_short_circuits(self, fake_sleep):
        gemini = StubAdapter("gemini", ProviderHTTPError("gemini", 400, "invalid argument"))
        groq = StubAdapter("groq", reply())
        service = _service(gemini=gemini, groq=groq, fake_sleep=fake_sleep)

        envelope = await service.generate_response("Hello")

        assert envelope.success is False
        assert envelope.type is ErrorKind.BAD_REQUEST
        assert gemini.call_count == 1
        assert groq.call_count == 0

    @pytest.mark.asyncio
    async def test_exhaustion_reports_last_kind(self, fake_sleep):
        gemini = StubAdapter("gemini", httpx.ConnectError("refused"))
        groq = StubAdapter("groq", ProviderHTTPError("groq", 429, "slow down", retry_after=1.0))
        service = _service(gemini=gemini, groq=groq, fake_sleep=fake_sleep)

        envelope = await service.generate_response("Hello")

        data = envelope.to_dict()
        assert data["success"] is False
        assert data["type"] == "RATE_LIMIT"
        assert data["error"] == user_message(ErrorKind.RATE_LIMIT)
        assert "slow down" not in data["error"]
        assert groq.call_count == 3

    @pytest.mark.asyncio
    async def test_missing_credential_skips_provider(self, fake_sleep):
        gemini = StubAdapter("gemini", reply())
        groq = StubAdapter("groq", reply("groq answer"))
        service = _service(make_config(gemini_key=None), gemini=gemini, groq=groq, fake_sleep=fake_sleep)

        envelope = await service.generate_response("Hello")

        assert [p.name for p in service.providers] == ["groq"]
        assert envelope.provider == "groq"
        assert gemini.call_count == 0

    @pytest.mark.asyncio
    async def test_provider_order_respected(self, fake_sleep):
        config = make_config()
        config.provider_order = ["groq", "gemini"]
        gemini = StubAdapter("gemini", reply())
        groq = StubAdapter("groq", reply("first"))
        service = _service(config, gemini=gemini, groq=groq, fake_sleep=fake_sleep)

        envelope = await service.generate_response("Hello")

        assert envelope.provider == "groq"
        assert gemini.call_count == 0

    @pytest.mark.asyncio
    async def test_per_attempt_timeout(self, fake_sleep):
        config = make_config(max_attempts=2)
        config.request_timeout = 0.01

        async def _hang():
            await asyncio.sleep(10)

        class HangingAdapter(StubAdapter):
            async def call(self, credential, message, context):
                self.calls.append((credential, message, context))
                await _hang()

        gemini = HangingAdapter("gemini")
        groq = StubAdapter("groq", reply())
        service = _service(config, gemini=gemini, groq=groq, fake_sleep=fake_sleep)

        envelope = await service.generate_response("Hello")

        assert envelope.provider == "groq"
        assert gemini.call_count == 2


class TestBreakerIntegration:
    @pytest.mark.asyncio
    async def test_open_breaker_skips_provider(self, fake_sleep, clock):
        config = make_config(max_attempts=1, failure_threshold=2)
        gemini = StubAdapter("gemini", classified(ErrorKind.SERVER))
        groq = StubAdapter("groq", reply())
        service = _service(config, gemini=gemini, groq=groq, fake_sleep=fake_sleep, clock=clock)

        for _ in range(2):
            await service.generate_response("Hello")
        assert service.breakers["gemini"].state == CircuitState.OPEN

        envelope = await service.generate_response("Hello")

        assert envelope.provider == "groq"
        assert gemini.call_count == 2

    @pytest.mark.asyncio
    async def test_bad_request_does_not_trip_breaker(self, fake_sleep, clock):
        config = make_config(failure_threshold=1)
        gemini = StubAdapter("gemini", classified(ErrorKind.BAD_REQUEST))
        service = _service(config, gemini=gemini, fake_sleep=fake_sleep, clock=clock)

        await service.generate_response("Hello")

        assert service.breakers["gemini"].state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_passthrough_config_disables_resilience(self, fake_sleep):
        config = make_config().passthrough()
        gemini = StubAdapter("gemini", classified(ErrorKind.SERVER))
        groq = StubAdapter("groq", classified(ErrorKind.SERVER))
        service = _service(config, gemini=gemini, groq=groq, fake_sleep=fake_sleep)

        for _ in range(6):
            await service.generate_response("Hello")

        assert gemini.call_count == 6
        assert service.breakers["gemini"].state == CircuitState.CLOSED
        assert fake_sleep.calls == []


class TestRateLimit:
    def test_tokens_consumed_then_rejected(self, clock):
        config = make_config()
        config.rate_limit.burst_limit = 2
        config.rate_limit.requests_per_minute = 60
        service = _service(config, clock=clock)

        assert service.check_rate_limit("10.0.0.1").remaining == 1
        assert service.check_rate_limit("10.0.0.1").remaining == 0
        with pytest.raises(RateLimitWaitError) as exc_info:
            service.check_rate_limit("10.0.0.1")

        assert exc_info.value.wait_needed == pytest.approx(1.0)
        assert exc_info.value.headers["X-RateLimit-Limit"] == "2"
        assert service.check_rate_limit("10.0.0.2").allowed is True


class TestStatus:
    def test_all_healthy(self):
        status = _service().get_status()
        assert status["status"] == "healthy"
        assert status["providers"]["gemini"] == {
            "status": "healthy",
            "configured": True,
            "circuit": "closed",
            "failure_count": 0,
        }
        assert "timestamp" in status

    def test_unconfigured(self):
        status = _service(make_config(gemini_key=None, groq_key=None)).get_status()
        assert status["status"] == "unconfigured"
        assert status["providers"]["groq"]["status"] == "not_configured"

    def test_open_circuit_degrades(self, clock):
        service = _service(make_config(failure_threshold=1), clock=clock)
        service.breakers["gemini"].record_failure()

        status = service.get_status()

        assert status["status"] == "degraded"
        assert status["providers"]["gemini"]["status"] == "unavailable"
        assert status["providers"]["gemini"]["circuit"] == "open"

    def test_no_credentials_in_status(self):
        assert "gemini-test-key" not in repr(_service().get_status())

    def test_credential_hidden_from_descriptor_repr(self):
        service = _service(gemini=StubAdapter("gemini"))
        assert "gemini-test-key" not in repr(service.providers[0])


class TestProbe:
    @pytest.mark.asyncio
    async def test_probe_reports_each_provider(self):
        gemini = StubAdapter("gemini", reply("OK", "gemini-1.5-flash"))
        groq = StubAdapter("groq", ProviderHTTPError("groq", 401, "bad key"))
        service = _service(gemini=gemini, groq=groq)

        results = await service.probe_providers()

        assert results["gemini"]["ok"] is True
        assert results["gemini"]["model"] == "gemini-1.5-flash"
        assert results["groq"] == {"ok": False, "type": "API_KEY", "latency_ms": results["groq"]["latency_ms"]}
        assert groq.call_count == 1
        assert service.breakers["groq"].consecutive_failures == 0
