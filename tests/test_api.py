"""Tests for the parse-task request handler."""

import json

import httpx
import pytest

from taskparse.api import handle_parse_task_request
from taskparse.exceptions import UpstreamAuthError, UpstreamError, UpstreamRateLimitError
from taskparse.services.llm_client import FunctionCallResponse, LLMProvider, OpenAIProvider
from taskparse.services.rate_limit import InMemoryRateLimitStore
from taskparse.services.task_extractor import TaskExtractor


class FakeProvider:
    def __init__(self, arguments: str | None = None, error: Exception | None = None):
        self.arguments = arguments
        self.error = error
        self.calls = 0

    def call_function(self, prompt, **kwargs):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return FunctionCallResponse(
            arguments=self.arguments,
            function_name=kwargs["function"]["name"],
            provider=LLMProvider.OPENAI,
            model="fake-model",
        )


def make_extractor(arguments=None, error=None, rate_limiter=None) -> TaskExtractor:
    return TaskExtractor(
        provider=FakeProvider(arguments, error),
        rate_limiter=rate_limiter,
        temperature=0.3,
        max_tokens=500,
    )


BODY = {
    "input": "Mike should book the room for Thursday",
    "memberNames": ["Sarah Johnson", "Mike Lee"],
    "timezone": "America/Chicago",
}


class TestSuccess:
    def test_returns_parsed_task(self):
        extractor = make_extractor(
            json.dumps(
                {"title": "Book the room", "assignee_names": ["Mike"], "due_date": "Thursday"}
            )
        )

        status, body = handle_parse_task_request(BODY, extractor=extractor)

        assert status == 200
        assert body["success"] is True
        assert body["original_input"] == BODY["input"]
        assert body["parsed"]["title"] == "Book the room"
        assert body["parsed"]["due_date"] == "Thursday"
        assert body["parsed"]["assignee_matches"] == [
            {"requestedName": "Mike", "matchedName": "Mike Lee", "confidence": "high"}
        ]

    def test_member_names_and_timezone_are_optional(self):
        extractor = make_extractor('{"title": "Book the room"}')

        status, body = handle_parse_task_request({"input": "Book the room"}, extractor=extractor)

        assert status == 200
        assert body["parsed"] == {"title": "Book the room", "assignee_matches": []}


class TestInvalidRequests:
    @pytest.mark.parametrize(
        "request_body",
        [
            None,
            ["input"],
            {},
            {"input": ""},
            {"input": "   "},
            {"input": 42},
            {"input": "x", "memberNames": "Sarah"},
            {"input": "x", "memberNames": ["Sarah", 7]},
            {"input": "x", "timezone": 5},
        ],
    )
    def test_bad_bodies_are_400(self, request_body):
        extractor = make_extractor('{"title": "x"}')

        status, body = handle_parse_task_request(request_body, extractor=extractor)

        assert status == 400
        assert body["success"] is False
        assert body["error_type"] == "invalid_input"
        assert body["error"]
        assert extractor.provider.calls == 0


class TestErrorMapping:
    @pytest.mark.parametrize("arguments", [None, "not json", '{"title": "x", "priority": "meh"}'])
    def test_malformed_model_output(self, arguments):
        status, body = handle_parse_task_request(BODY, extractor=make_extractor(arguments))

        assert status == 400
        assert body == {
            "success": False,
            "error": "Failed to parse task",
            "error_type": "parse_failed",
        }

    def test_local_rate_limit(self):
        limiter = InMemoryRateLimitStore(max_requests=1, window_seconds=60.0)
        extractor = make_extractor('{"title": "x"}', rate_limiter=limiter)

        first, _ = handle_parse_task_request(BODY, extractor=extractor, caller_id="user-1")
        status, body = handle_parse_task_request(BODY, extractor=extractor, caller_id="user-1")

        assert first == 200
        assert status == 429
        assert body["error_type"] == "rate_limited"
        assert body["error"] == "Too many requests. Please try again later."
        assert body["retry_after"] == 60

    @pytest.mark.parametrize(
        ("error", "expected_status", "expected_type"),
        [
            (UpstreamRateLimitError("Rate limit exceeded", status_code=429), 429, "rate_limited"),
            (UpstreamAuthError("Invalid API key", status_code=401), 500, "configuration"),
            (UpstreamError("openai API error in parse_task: HTTP 503"), 502, "upstream"),
        ],
    )
    def test_upstream_errors(self, error, expected_status, expected_type):
        status, body = handle_parse_task_request(BODY, extractor=make_extractor(error=error))

        assert status == expected_status
        assert body["success"] is False
        assert body["error_type"] == expected_type
        assert body["error"] == str(error)

    def test_unexpected_errors_never_escape(self):
        extractor = make_extractor(error=KeyError("choices"))

        status, body = handle_parse_task_request(BODY, extractor=extractor)

        assert status == 500
        assert body == {
            "success": False,
            "error": "Failed to parse task",
            "error_type": "internal",
        }


class FakeClient:
    """Answers every POST with a fixed 200 JSON body."""

    def __init__(self, payload):
        self.payload = payload

    def post(self, url, **kwargs):
        return httpx.Response(200, json=self.payload, request=httpx.Request("POST", url))


def provider_extractor(payload) -> TaskExtractor:
    return TaskExtractor(
        provider=OpenAIProvider(api_key="sk-test", client=FakeClient(payload)),
        temperature=0.3,
        max_tokens=500,
    )


def tool_call_body(arguments, usage=None) -> dict:
    body = {
        "choices": [
            {
                "message": {
                    "tool_calls": [{"function": {"name": "parse_task", "arguments": arguments}}]
                }
            }
        ]
    }
    if usage is not None:
        body["usage"] = usage
    return body


class TestProviderResponses:
    """Odd provider answers map onto the documented error kinds."""

    @pytest.mark.parametrize("arguments", [{"title": "x"}, 42, ["x"]])
    def test_non_string_arguments_are_parse_failures(self, arguments):
        status, body = handle_parse_task_request(
            BODY, extractor=provider_extractor(tool_call_body(arguments))
        )

        assert status == 400
        assert body["error_type"] == "parse_failed"
        assert body["error"] == "Failed to parse task"

    @pytest.mark.parametrize("payload", [[1, 2], "ok"])
    def test_non_object_body_is_upstream_failure(self, payload):
        status, body = handle_parse_task_request(BODY, extractor=provider_extractor(payload))

        assert status == 502
        assert body["error_type"] == "upstream"
        assert "parse_task" in body["error"]

    def test_null_usage_keeps_the_extraction(self):
        payload = tool_call_body(
            '{"title": "Book the room"}',
            usage={"prompt_tokens": None, "completion_tokens": None},
        )

        status, body = handle_parse_task_request(BODY, extractor=provider_extractor(payload))

        assert status == 200
        assert body["parsed"]["title"] == "Book the room"
