import argparse
import json
import logging
import sys

from taskparse.config import settings
from taskparse.exceptions import TaskParseError
from taskparse.sentry import flush as sentry_flush
from taskparse.sentry import init_sentry
from taskparse.services.date_parser import DateParser


def setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def parse_date(phrase: str, timezone: str | None) -> int:
    parser = DateParser(timezone=timezone)
    result = parser.parse(phrase)
    if result is None:
        print(json.dumps({"matched": False, "input": phrase}))
        return 1

    print(
        json.dumps(
            {
                "matched": True,
                "date": result.date.isoformat(),
                "day": result.iso_date,
                "display": parser.format_due_date(result.date),
                "confidence": result.confidence.value,
                "original_input": result.original_input,
                "timezone": parser.timezone,
            },
            indent=2,
        )
    )
    return 0


def format_date(iso_date: str, timezone: str | None) -> int:
    parser = DateParser(timezone=timezone)
    try:
        value = parser.parse_local_iso_date(iso_date)
    except ValueError as exc:
        print(f"Error: {exc}")
        return 2
    print(parser.format_due_date(value))
    return 0


def parse_task(text: str, members: list[str], timezone: str | None, draft: bool) -> int:
    from taskparse.services.task_extractor import (
        TaskExtractor,
        build_task_draft,
        resolve_due_date,
    )

    if not settings.has_llm:
        print(f"Error: no API key configured for LLM provider {settings.llm_provider!r}")
        print("Set OPENAI_API_KEY (or OPENROUTER_API_KEY) in .env or the environment")
        return 1

    extractor = TaskExtractor()
    try:
        result = extractor.extract(text, members, timezone)
    except TaskParseError as exc:
        print(json.dumps({"success": False, "error": str(exc)}))
        return 1
    finally:
        extractor.provider.close()

    parser = DateParser(timezone=timezone)
    if draft:
        print(build_task_draft(result, parser).model_dump_json(indent=2))
    else:
        print(json.dumps(result.to_dict(resolve_due_date(result.task, parser)), indent=2))
    return 0


def generate_subtasks(title: str, description: str | None) -> int:
    from taskparse.services.task_extractor import SubtaskGenerator

    if not settings.has_llm:
        print(f"Error: no API key configured for LLM provider {settings.llm_provider!r}")
        return 1

    generator = SubtaskGenerator()
    try:
        subtasks = generator.generate(title, description)
    except TaskParseError as exc:
        print(json.dumps({"success": False, "error": str(exc)}))
        return 1
    finally:
        generator.provider.close()

    print(json.dumps([subtask.model_dump() for subtask in subtasks], indent=2))
    return 0


def check_config() -> int:
    print("taskparse Configuration Check\n")

    checks = [
        ("OpenAI API Key", settings.has_openai),
        ("OpenRouter API Key", settings.has_openrouter),
        (f"Selected provider ({settings.llm_provider})", settings.has_llm),
        ("Sentry DSN", settings.has_sentry),
    ]
    for name, configured in checks:
        status = "OK" if configured else "MISSING"
        symbol = "+" if configured else "-"
        print(f"  [{symbol}] {name}: {status}")

    print(f"\n  Timezone: {settings.user_timezone}")
    print(f"  Deadline hour: {settings.end_of_day_hour}:00")
    print(
        f"  Rate limit: {settings.rate_limit_max_requests} requests / "
        f"{settings.rate_limit_window_seconds:g}s"
    )

    print()
    if settings.has_llm:
        print("Required configuration present. Ready to parse tasks.")
        return 0
    print("Missing LLM API key; only date parsing is available. See .env.example.")
    return 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Natural-language deadline and task parser")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    date_cmd = subparsers.add_parser("date", help="Resolve a deadline phrase")
    date_cmd.add_argument("phrase", help='e.g. "next Friday", "in 3 days", "03/15/2024"')
    date_cmd.add_argument("--timezone", help="IANA timezone (default: USER_TIMEZONE)")

    format_cmd = subparsers.add_parser("format", help="Format a YYYY-MM-DD deadline")
    format_cmd.add_argument("date", help="Date as YYYY-MM-DD")
    format_cmd.add_argument("--timezone", help="IANA timezone (default: USER_TIMEZONE)")

    task_cmd = subparsers.add_parser("task", help="Extract a structured task with the LLM")
    task_cmd.add_argument("text", help="Free-text task description")
    task_cmd.add_argument(
        "--member",
        action="append",
        default=[],
        dest="members",
        help="Roster member display name (repeatable)",
    )
    task_cmd.add_argument("--timezone", help="IANA timezone (default: USER_TIMEZONE)")
    task_cmd.add_argument(
        "--draft", action="store_true", help="Print the storage-ready task draft"
    )

    subtasks_cmd = subparsers.add_parser("subtasks", help="Suggest subtasks for a task")
    subtasks_cmd.add_argument("title", help="Task title")
    subtasks_cmd.add_argument("--description", help="Extra task details")

    subparsers.add_parser("check-config", help="Check configuration")

    args = parser.parse_args(argv)

    setup_logging()

    # Disabled if no DSN configured
    init_sentry()

    try:
        if args.command == "date":
            return parse_date(args.phrase, args.timezone)
        if args.command == "format":
            return format_date(args.date, args.timezone)
        if args.command == "task":
            return parse_task(
                args.text, args.members, args.timezone or settings.user_timezone, args.draft
            )
        if args.command == "subtasks":
            return generate_subtasks(args.title, args.description)
        if args.command == "check-config":
            return check_config()
        parser.print_help()
        return 0
    finally:
        sentry_flush(timeout=2.0)


if __name__ == "__main__":
    sys.exit(main())
