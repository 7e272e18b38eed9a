"""Sentry error tracking integration for taskparse.

Usage:
    # Early in application startup
    from taskparse.sentry import init_sentry
    init_sentry()

    # Capture exceptions manually
    from taskparse.sentry import capture_exception
    try:
        risky_operation()
    except Exception as e:
        capture_exception(e)
        raise
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, cast

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

if TYPE_CHECKING:
    from sentry_sdk._types import Event, Hint

logger = logging.getLogger(__name__)

# Module state
_initialized = False

SENSITIVE_KEYS = frozenset(
    {
        "token",
        "api_key",
        "apikey",
        "secret",
        "password",
        "authorization",
        "bearer",
        "openai_api_key",
        "openrouter_api_key",
        "sentry_dsn",
    }
)


def init_sentry(
    dsn: str | None = None,
    environment: str | None = None,
    release: str | None = None,
    traces_sample_rate: float = 0.1,
    debug: bool = False,
) -> bool:
    """Initialize Sentry SDK for error tracking.

    Args:
        dsn: Sentry DSN. If None, reads settings.sentry_dsn.
             Empty DSN disables Sentry (safe for development).
        environment: Environment name. If None, reads settings.sentry_environment.
        release: Release version. If None, auto-detected from package version.
        traces_sample_rate: Sample rate for performance tracing (0.0-1.0).
        debug: Enable Sentry debug mode for troubleshooting.

    Returns:
        True if Sentry was initialized, False if skipped.
    """
    global _initialized

    if _initialized:
        logger.debug("Sentry already initialized")
        return True

    from taskparse.config import settings

    if dsn is None:
        dsn = settings.sentry_dsn
    if environment is None:
        environment = settings.sentry_environment

    if not dsn:
        logger.info("No SENTRY_DSN configured, error tracking disabled")
        return False

    if release is None:
        from importlib.metadata import PackageNotFoundError, version

        try:
            release = f"taskparse@{version('taskparse')}"
        except PackageNotFoundError:
            release = "taskparse@unknown"

    logging_integration = LoggingIntegration(
        level=logging.INFO,  # breadcrumbs
        event_level=logging.ERROR,  # events
    )

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        traces_sample_rate=traces_sample_rate,
        debug=debug,
        integrations=[logging_integration],
        send_default_pii=False,
        attach_stacktrace=True,
        before_send=_before_send,
    )

    _initialized = True
    logger.info("Sentry initialized: environment=%s, release=%s", environment, release)
    return True


def _before_send(event: Event, hint: Hint) -> Event | None:
    """Drop expected errors and scrub secrets before an event leaves the process."""
    if "exc_info" in hint:
        exc_type, _, _ = hint["exc_info"]
        # Caller mistakes and provider throttling are reported to the caller instead
        if exc_type.__name__ in (
            "InvalidInputError",
            "RateLimitExceededError",
            "UpstreamRateLimitError",
        ):
            return None

    if "request" in event:
        _scrub_dict(cast(dict[str, Any], event["request"]))

    if "breadcrumbs" in event:
        breadcrumbs = cast(dict[str, Any], event["breadcrumbs"])
        for breadcrumb in breadcrumbs.get("values", []):
            if "data" in breadcrumb:
                _scrub_dict(breadcrumb["data"])

    return event


def _scrub_dict(data: dict[str, Any]) -> None:
    """Scrub sensitive keys from a dictionary in-place."""
    for key in list(data.keys()):
        if key.lower() in SENSITIVE_KEYS:
            data[key] = "[REDACTED]"
        elif isinstance(data[key], dict):
            _scrub_dict(data[key])


def set_context(name: str, data: dict[str, Any]) -> None:
    """Set additional context data on the current Sentry scope."""
    if not _initialized:
        return

    sentry_sdk.set_context(name, data)


def capture_exception(exception: BaseException | None = None) -> str | None:
    """Capture an exception and send to Sentry.

    Returns:
        Event ID if captured, None otherwise.
    """
    if not _initialized:
        return None

    return sentry_sdk.capture_exception(exception)


def flush(timeout: float = 2.0) -> None:
    """Flush pending Sentry events before shutdown."""
    if not _initialized:
        return

    sentry_sdk.flush(timeout=timeout)


def is_enabled() -> bool:
    """Check if Sentry is initialized."""
    return _initialized
