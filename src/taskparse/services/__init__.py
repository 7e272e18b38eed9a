"""taskparse services module.

Date parsing, assignee matching, rate limiting and LLM-backed task
extraction. Imports are lazy so that date parsing does not pull in the HTTP
client at import time.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS: dict[str, tuple[str, str]] = {
    # Date parsing
    "Confidence": ("taskparse.services.date_parser", "Confidence"),
    "DateParser": ("taskparse.services.date_parser", "DateParser"),
    "ParsedDate": ("taskparse.services.date_parser", "ParsedDate"),
    "format_due_date": ("taskparse.services.date_parser", "format_due_date"),
    "get_date_parser": ("taskparse.services.date_parser", "get_date_parser"),
    "parse_local_iso_date": ("taskparse.services.date_parser", "parse_local_iso_date"),
    "parse_natural_date": ("taskparse.services.date_parser", "parse_natural_date"),
    "to_iso_date_string": ("taskparse.services.date_parser", "to_iso_date_string"),
    # Assignees
    "AssigneeMatch": ("taskparse.services.assignees", "AssigneeMatch"),
    "match_assignee": ("taskparse.services.assignees", "match_assignee"),
    "match_assignees": ("taskparse.services.assignees", "match_assignees"),
    "matched_member_names": ("taskparse.services.assignees", "matched_member_names"),
    # Rate limiting
    "InMemoryRateLimitStore": ("taskparse.services.rate_limit", "InMemoryRateLimitStore"),
    "RateLimitStore": ("taskparse.services.rate_limit", "RateLimitStore"),
    # LLM client
    "FunctionCallResponse": ("taskparse.services.llm_client", "FunctionCallResponse"),
    "LLMProvider": ("taskparse.services.llm_client", "LLMProvider"),
    "OpenAIProvider": ("taskparse.services.llm_client", "OpenAIProvider"),
    "OpenRouterProvider": ("taskparse.services.llm_client", "OpenRouterProvider"),
    "create_function_caller": ("taskparse.services.llm_client", "create_function_caller"),
    # Task extraction
    "ExtractionResult": ("taskparse.services.task_extractor", "ExtractionResult"),
    "SubtaskGenerator": ("taskparse.services.task_extractor", "SubtaskGenerator"),
    "TaskExtractor": ("taskparse.services.task_extractor", "TaskExtractor"),
    "build_task_draft": ("taskparse.services.task_extractor", "build_task_draft"),
    "get_task_extractor": ("taskparse.services.task_extractor", "get_task_extractor"),
    "resolve_due_date": ("taskparse.services.task_extractor", "resolve_due_date"),
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    if name in _EXPORTS:
        module_name, attr = _EXPORTS[name]
        module = import_module(module_name)
        value = getattr(module, attr)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(list(globals().keys()) + list(_EXPORTS.keys()))
