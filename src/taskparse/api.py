"""Request handling for the parse-task endpoint.

Framework-agnostic: the web layer hands over the decoded JSON body and sends
back the returned ``(status, body)`` pair.

Request:  {"input": str, "memberNames": [str], "timezone": str}
Success:  200 {"success": true, "parsed": {...}, "original_input": str}
Failure:  {"success": false, "error": str, "error_type": str}
          (429 from the local limiter adds "retry_after": seconds)
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any

from taskparse.exceptions import (
    ExtractionSchemaError,
    InvalidInputError,
    RateLimitExceededError,
    TaskParseError,
    UpstreamAuthError,
    UpstreamError,
    UpstreamRateLimitError,
)
from taskparse.sentry import capture_exception, set_context

if TYPE_CHECKING:
    from taskparse.services.task_extractor import TaskExtractor

logger = logging.getLogger(__name__)

# (exception type, HTTP status, error_type); first isinstance match wins
ERROR_RESPONSES: tuple[tuple[type[TaskParseError], int, str], ...] = (
    (InvalidInputError, 400, "invalid_input"),
    (ExtractionSchemaError, 400, "parse_failed"),
    (RateLimitExceededError, 429, "rate_limited"),
    (UpstreamRateLimitError, 429, "rate_limited"),
    (UpstreamAuthError, 500, "configuration"),
    (UpstreamError, 502, "upstream"),
)


def error_response(status: int, message: str, error_type: str) -> tuple[int, dict[str, Any]]:
    return status, {"success": False, "error": message, "error_type": error_type}


def _validate_body(body: Any) -> tuple[str, list[str], str | None]:
    if not isinstance(body, dict):
        raise InvalidInputError("Invalid request: body must be a JSON object")

    text = body.get("input")
    if not isinstance(text, str) or not text.strip():
        raise InvalidInputError("Invalid input: must be a non-empty string")

    member_names = body.get("memberNames") or []
    if not isinstance(member_names, list) or not all(
        isinstance(name, str) for name in member_names
    ):
        raise InvalidInputError("Invalid memberNames: must be a list of strings")

    timezone = body.get("timezone")
    if timezone is not None and not isinstance(timezone, str):
        raise InvalidInputError("Invalid timezone: must be a string")

    return text, member_names, timezone or None


def handle_parse_task_request(
    body: Any,
    *,
    extractor: TaskExtractor | None = None,
    caller_id: str | None = None,
) -> tuple[int, dict[str, Any]]:
    """Run one parse-task request; never raises.

    Args:
        body: Decoded JSON request body
        extractor: Extractor to use. Defaults to the configured singleton.
        caller_id: Caller identity used for rate limiting

    Returns:
        (HTTP status, response body)
    """
    try:
        text, member_names, timezone = _validate_body(body)
        if extractor is None:
            from taskparse.services.task_extractor import get_task_extractor

            extractor = get_task_extractor()
        result = extractor.extract(text, member_names, timezone, caller_id=caller_id)
        return 200, result.to_dict()
    except TaskParseError as exc:
        for error_class, status, error_type in ERROR_RESPONSES:
            if isinstance(exc, error_class):
                if status >= 500:
                    capture_exception(exc)
                logger.info("parse-task failed (%s): %s", error_type, exc)
                status, payload = error_response(
                    status, str(exc) or "Failed to parse task", error_type
                )
                if isinstance(exc, RateLimitExceededError) and exc.retry_after is not None:
                    payload["retry_after"] = math.ceil(exc.retry_after)
                return status, payload
        logger.error("Unclassified parse-task error: %s", exc)
        return error_response(500, str(exc) or "Failed to parse task", "internal")
    except Exception as exc:
        logger.exception("Unexpected error parsing task")
        set_context("parse_task", {"caller_id": caller_id})
        capture_exception(exc)
        return error_response(500, "Failed to parse task", "internal")
