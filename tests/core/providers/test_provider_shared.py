"""Tests for shared provider HTTP helpers."""

import pytest

from conftest import make_mock_response
from raidbot.core.errors import ProviderHTTPError, ProviderParseError
from raidbot.core.providers import ADAPTERS, available_providers
from raidbot.core.providers.shared import (
    extract_error_message,
    parse_json,
    parse_retry_after,
    raise_for_status,
)


class TestParseRetryAfter:
    def test_numeric(self):
        assert parse_retry_after(make_mock_response(headers={"Retry-After": "30"})) == 30.0

    def test_missing(self):
        assert parse_retry_after(make_mock_response()) is None

    def test_http_date_ignored(self):
        response = make_mock_response(headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"})
        assert parse_retry_after(response) is None

    def test_negative_clamped(self):
        assert parse_retry_after(make_mock_response(headers={"Retry-After": "-5"})) == 0.0


class TestExtractErrorMessage:
    def test_nested_error_message(self):
        response = make_mock_response(json_data={"error": {"message": "quota exceeded"}})
        assert extract_error_message(response) == "quota exceeded"

    def test_string_error(self):
        response = make_mock_response(json_data={"error": "bad things"})
        assert extract_error_message(response) == "bad things"

    def test_top_level_message(self):
        response = make_mock_response(json_data={"message": "try later"})
        assert extract_error_message(response) == "try later"

    def test_plain_text_body(self):
        response = make_mock_response(text="Gateway Timeout", raise_json=True)
        assert extract_error_message(response) == "Gateway Timeout"

    def test_provider_format_preferred(self):
        response = make_mock_response(json_data={"detail": "custom", "error": "generic"})
        assert extract_error_message(response, provider_format=lambda d: d.get("detail")) == "custom"

    def test_secrets_redacted(self):
        response = make_mock_response(
            json_data={"error": {"message": "invalid api_key=AIzaSyD-1234567890abcdef"}}
        )
        message = extract_error_message(response)
        assert "AIzaSyD-1234567890abcdef" not in message


class TestRaiseForStatus:
    @pytest.mark.parametrize("status", [200, 201, 204])
    def test_success_is_silent(self, status):
        raise_for_status("gemini", make_mock_response(status_code=status))

    def test_error_carries_details(self):
        response = make_mock_response(
            status_code=503,
            headers={"Retry-After": "2"},
            json_data={"error": {"message": "overloaded"}},
        )
        with pytest.raises(ProviderHTTPError) as exc_info:
            raise_for_status("groq", response)

        error = exc_info.value
        assert error.provider == "groq"
        assert error.status_code == 503
        assert error.retry_after == 2.0
        assert error.message == "overloaded"


class TestParseJson:
    def test_object(self):
        assert parse_json("groq", make_mock_response(json_data={"a": 1})) == {"a": 1}

    def test_empty_body(self):
        response = make_mock_response()
        response.content = b""
        assert parse_json("groq", response) == {}

    def test_invalid_json(self):
        with pytest.raises(ProviderParseError) as exc_info:
            parse_json("gemini", make_mock_response(text="not json", raise_json=True))
        assert isinstance(exc_info.value.original_error, ValueError)


class TestRegistry:
    def test_registered_adapters(self):
        assert available_providers() == ["gemini", "groq"]
        assert ADAPTERS["gemini"]().name == "gemini"
        assert ADAPTERS["groq"]().name == "groq"
