"""Structured task extraction with an LLM function call.

A free-text task ("Ask Sarah to finish the slides by next Friday, it's
urgent") is sent to the model together with the organization roster. The model
answers by calling ``parse_task``; its arguments are validated strictly, names
are matched against the roster, and the due date is left as a phrase. Dates
are resolved afterwards with the caller's timezone (see ``resolve_due_date``)
because "today" depends on where the user is, not where this code runs.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from taskparse.config import settings
from taskparse.exceptions import (
    ExtractionSchemaError,
    InvalidInputError,
    RateLimitExceededError,
    TaskParseError,
)
from taskparse.schemas import GeneratedSubtask, ParsedTask, SubtaskItem, TaskDraft, TaskPriority
from taskparse.services.assignees import AssigneeMatch, match_assignees, matched_member_names
from taskparse.services.date_parser import DateParser, ParsedDate, get_date_parser
from taskparse.services.llm_client import OpenAIProvider, create_function_caller
from taskparse.services.rate_limit import RateLimitStore

logger = logging.getLogger(__name__)

PARSE_FAILED_MESSAGE = "Failed to parse task"

PARSE_TASK_FUNCTION: dict[str, Any] = {
    "name": "parse_task",
    "description": "Extract task details from natural language input",
    "parameters": {
        "type": "object",
        "properties": {
            "title": {
                "type": "string",
                "description": "The main task title (concise and action-oriented)",
            },
            "assignee_names": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Full names of people to assign (match to available members)",
            },
            "due_date": {
                "type": "string",
                "description": (
                    'Due date in natural language (e.g., "tomorrow", "next Friday", "March 15")'
                ),
            },
            "priority": {
                "type": "string",
                "enum": ["low", "medium", "high", "urgent"],
                "description": "Task priority level",
            },
            "subtasks": {
                "type": "array",
                "items": {"type": "string"},
                "description": "List of subtasks if mentioned",
            },
            "description": {
                "type": "string",
                "description": "Additional details or context",
            },
        },
        "required": ["title"],
    },
}

GENERATE_SUBTASKS_FUNCTION: dict[str, Any] = {
    "name": "generate_subtasks",
    "description": "Generate subtasks for a given task",
    "parameters": {
        "type": "object",
        "properties": {
            "subtasks": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "title": {"type": "string", "description": "Subtask title"},
                        "estimated_hours": {
                            "type": "number",
                            "description": "Estimated hours to complete",
                        },
                    },
                    "required": ["title"],
                },
            },
        },
        "required": ["subtasks"],
    },
}

SYSTEM_PROMPT_TEMPLATE = """\
You are a task parser for a project management system. Extract task details from natural language.

Current date: {current_date}
User timezone: {timezone}
Available team members: {members}

Guidelines:
- Match names flexibly (e.g., "Sarah" matches "Sarah Johnson")
- For dates, return the natural language as-is (e.g., "next Friday", "tomorrow", "end of month")
- Time-based deadlines: "by midnight" = "today", "by noon" = "today", "by EOD" = "today"
- Infer priority from keywords: urgent/asap/midnight = urgent, important = high, \
whenever/eventually = low
- If multiple tasks are mentioned, focus on the main one
- Extract subtasks if they're clearly listed
- Be concise in task titles"""

SUBTASK_SYSTEM_PROMPT = """\
You are a project planning assistant for student organizations.
Break the task into 3-7 concrete, actionable subtasks in the order they should be done.
Estimate hours for each subtask when you reasonably can."""


def build_system_prompt(
    member_names: Sequence[str] | None,
    timezone: str | None,
    now: datetime | None = None,
) -> str:
    """Build the extraction instructions for one request.

    Args:
        member_names: Roster display names the model may assign
        timezone: Caller's IANA timezone; the current date is shown in it
        now: Override for the current time (tests)
    """
    tz_label = timezone or "UTC"
    clock = (lambda: now) if now is not None else None
    current = DateParser(timezone=tz_label, clock=clock).now()
    current_date = f"{current:%A, %B} {current.day}, {current.year}"
    members = ", ".join(member_names) if member_names else "No members provided"
    return SYSTEM_PROMPT_TEMPLATE.format(
        current_date=current_date,
        timezone=tz_label,
        members=members,
    )


def _load_arguments(arguments: Any) -> dict[str, Any]:
    if not isinstance(arguments, str) or not arguments:
        raise ExtractionSchemaError(PARSE_FAILED_MESSAGE)
    try:
        data = json.loads(arguments)
    except json.JSONDecodeError as exc:
        logger.warning("Function arguments are not valid JSON: %s", exc)
        raise ExtractionSchemaError(PARSE_FAILED_MESSAGE) from exc
    if not isinstance(data, dict):
        raise ExtractionSchemaError(PARSE_FAILED_MESSAGE)
    return data


def parse_task_arguments(arguments: str | None, fallback_title: str) -> ParsedTask:
    """Validate ``parse_task`` arguments into a ParsedTask.

    Null fields count as absent and a missing or blank title falls back to
    ``fallback_title``. Any other mismatch with the schema (wrong types,
    unknown priority) raises ExtractionSchemaError; nothing is coerced.
    """
    data = _load_arguments(arguments)

    unknown = set(data) - set(ParsedTask.model_fields)
    if unknown:
        logger.debug("Ignoring unknown task fields: %s", sorted(unknown))

    fields = {
        key: value
        for key, value in data.items()
        if key in ParsedTask.model_fields and value is not None
    }
    title = fields.get("title")
    if title is None or (isinstance(title, str) and not title.strip()):
        fields["title"] = fallback_title
    elif isinstance(title, str):
        fields["title"] = title.strip()

    try:
        return ParsedTask.model_validate(fields)
    except ValidationError as exc:
        logger.warning("Task arguments failed validation: %s", exc)
        raise ExtractionSchemaError(PARSE_FAILED_MESSAGE) from exc


def parse_subtask_arguments(arguments: str | None) -> list[GeneratedSubtask]:
    """Validate ``generate_subtasks`` arguments."""
    data = _load_arguments(arguments)
    items = data.get("subtasks")
    if not isinstance(items, list):
        raise ExtractionSchemaError("Failed to generate subtasks")
    try:
        return [GeneratedSubtask.model_validate(item) for item in items]
    except ValidationError as exc:
        logger.warning("Subtask arguments failed validation: %s", exc)
        raise ExtractionSchemaError("Failed to generate subtasks") from exc


@dataclass
class ExtractionResult:
    """Outcome of a successful extraction."""

    task: ParsedTask
    original_input: str
    assignee_matches: list[AssigneeMatch] = field(default_factory=list)

    def to_dict(self, due_date_parsed: ParsedDate | None = None) -> dict[str, Any]:
        parsed = self.task.to_wire()
        parsed["assignee_matches"] = [match.to_dict() for match in self.assignee_matches]
        if due_date_parsed is not None:
            parsed["due_date_parsed"] = due_date_parsed.to_dict()
        return {
            "success": True,
            "parsed": parsed,
            "original_input": self.original_input,
        }


class _FunctionCallingService:
    def __init__(
        self,
        *,
        provider: OpenAIProvider | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self.provider = provider if provider is not None else create_function_caller()
        self.temperature = settings.llm_temperature if temperature is None else temperature
        self.max_tokens = settings.llm_max_tokens if max_tokens is None else max_tokens

    def _call(
        self,
        prompt: str,
        *,
        system_prompt: str,
        function: dict[str, Any],
        operation: str,
    ) -> str | None:
        try:
            response = self.provider.call_function(
                prompt,
                function=function,
                system_prompt=system_prompt,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                operation=operation,
            )
        except TaskParseError:
            raise
        except Exception:
            logger.exception("Unexpected error in %s", operation)
            raise
        return response.arguments


class TaskExtractor(_FunctionCallingService):
    """Extract a structured task from free text with one LLM call."""

    def __init__(
        self,
        *,
        provider: OpenAIProvider | None = None,
        rate_limiter: RateLimitStore | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__(provider=provider, temperature=temperature, max_tokens=max_tokens)
        self.rate_limiter = rate_limiter
        self._clock = clock

    def extract(
        self,
        text: Any,
        member_names: Sequence[str] | None = None,
        timezone: str | None = None,
        *,
        caller_id: str | None = None,
    ) -> ExtractionResult:
        """Extract task fields from ``text``.

        Args:
            text: Free-text task description
            member_names: Roster display names used for prompt context and matching
            timezone: Caller's IANA timezone (default UTC)
            caller_id: Identity used for rate limiting, if a limiter is set

        Raises:
            InvalidInputError: ``text`` is empty or not a string
            RateLimitExceededError: The caller is over its request budget
            ExtractionSchemaError: The model's arguments are missing or malformed
            UpstreamError: The provider failed (rate limit, auth or other)
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError("Invalid input: must be a non-empty string")

        if self.rate_limiter is not None and caller_id is not None:
            if not self.rate_limiter.hit(caller_id):
                retry_after = self.rate_limiter.wait_time_seconds(caller_id)
                logger.warning(
                    "Rate limit exceeded for caller %s (retry in %.0fs)", caller_id, retry_after
                )
                raise RateLimitExceededError(
                    "Too many requests. Please try again later.", retry_after=retry_after
                )

        roster = list(member_names or [])
        now = self._clock() if self._clock is not None else None
        system_prompt = build_system_prompt(roster, timezone, now=now)

        arguments = self._call(
            text.strip(),
            system_prompt=system_prompt,
            function=PARSE_TASK_FUNCTION,
            operation="parse_task",
        )
        task = parse_task_arguments(arguments, fallback_title=text.strip())

        matches: list[AssigneeMatch] = []
        if task.assignee_names and roster:
            matches = match_assignees(task.assignee_names, roster)

        logger.info(
            "Extracted task %r: %d assignee(s), due=%r, priority=%s",
            task.title,
            len(task.assignee_names),
            task.due_date,
            task.priority.value if task.priority else None,
        )
        return ExtractionResult(task=task, original_input=text, assignee_matches=matches)


class SubtaskGenerator(_FunctionCallingService):
    """Suggest subtasks for an existing task."""

    def generate(self, title: str, description: str | None = None) -> list[GeneratedSubtask]:
        if not isinstance(title, str) or not title.strip():
            raise InvalidInputError("Invalid input: task title must be a non-empty string")

        prompt = f"Task: {title.strip()}"
        if description:
            prompt += f"\nDetails: {description.strip()}"

        arguments = self._call(
            prompt,
            system_prompt=SUBTASK_SYSTEM_PROMPT,
            function=GENERATE_SUBTASKS_FUNCTION,
            operation="generate_subtasks",
        )
        return parse_subtask_arguments(arguments)


def resolve_due_date(task: ParsedTask, parser: DateParser | None = None) -> ParsedDate | None:
    """Resolve the task's due-date phrase in the parser's timezone."""
    if not task.due_date:
        return None
    resolved = (parser or get_date_parser()).parse(task.due_date)
    if resolved is None:
        logger.info("Could not resolve due date %r", task.due_date)
    return resolved


def build_task_draft(result: ExtractionResult, parser: DateParser | None = None) -> TaskDraft:
    """Combine an extraction with a locally resolved due date for storage."""
    task = result.task
    resolved = resolve_due_date(task, parser)
    return TaskDraft(
        title=task.title,
        description=task.description or "",
        priority=task.priority or TaskPriority.MEDIUM,
        due_date=resolved.iso_date if resolved else None,
        due_date_confidence=resolved.confidence.value if resolved else None,
        subtasks=[SubtaskItem(title=title) for title in task.subtasks],
        assignee_names=matched_member_names(result.assignee_matches),
    )


# Module-level singleton
_extractor: TaskExtractor | None = None


def get_task_extractor() -> TaskExtractor:
    """Get or create the singleton extractor with the configured provider and limiter."""
    global _extractor
    if _extractor is None:
        from taskparse.services.rate_limit import create_rate_limit_store

        _extractor = TaskExtractor(rate_limiter=create_rate_limit_store())
    return _extractor
