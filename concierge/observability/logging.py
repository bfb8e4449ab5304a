"""Structured logging for routing decisions using structlog.

Every line logged while an utterance is routed carries the tenant, the
routing id and the call id through ``routing_context``, including lines
from the speculative Tier3 task, which copies the context when it starts.

Utterances are caller speech, so contact details read out loud end up in
log fields. The redactor masks them, including numbers spoken as words by
the speech recognizer, and clips speech fields to a fixed length.
"""

import re
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import Any, cast

import structlog
from structlog.types import EventDict, WrappedLogger

SENSITIVE_KEYS: frozenset[str] = frozenset({
    "api_key",
    "authorization",
    "token",
    "secret",
    "password",
    "caller_number",
    "phone",
    "phone_number",
    "email",
    "caller_name",
    "address",
    "card_number",
    "cvv",
    "pin",
})

# Free-text fields holding what the caller said, clipped to max_speech_chars
SPEECH_KEYS: frozenset[str] = frozenset({"utterance", "cleaned", "text", "phrase"})

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-\(\)]{8,}\d")
SSN_PATTERN = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
_DIGIT_WORD = r"(?:zero|oh|one|two|three|four|five|six|seven|eight|nine)"
SPOKEN_NUMBER_PATTERN = re.compile(
    rf"\b{_DIGIT_WORD}(?:[\s-]+{_DIGIT_WORD}){{6,}}\b", re.IGNORECASE
)

LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50}


class PIIRedactor:
    """Processor that masks caller PII in log events.

    Values under sensitive keys are replaced outright. Strings anywhere in
    the event are scanned for emails, SSNs, phone numbers and numbers
    spoken digit by digit.
    """

    def __init__(self, max_speech_chars: int | None = None) -> None:
        self.max_speech_chars = max_speech_chars

    def __call__(
        self,
        _logger: WrappedLogger,
        _method_name: str,
        event_dict: EventDict,
    ) -> EventDict:
        return cast(EventDict, self._redact_mapping(event_dict))

    def _redact_mapping(self, data: MutableMapping[str, Any]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key, value in data.items():
            name = str(key).lower()
            if name in SENSITIVE_KEYS:
                result[key] = "[REDACTED]"
            elif name in SPEECH_KEYS and isinstance(value, str):
                result[key] = self._clip(self._redact_string(value))
            else:
                result[key] = self._redact_value(value)
        return result

    def _redact_value(self, value: Any) -> Any:
        if isinstance(value, dict):
            return self._redact_mapping(value)
        if isinstance(value, str):
            return self._redact_string(value)
        if isinstance(value, list | tuple):
            return [self._redact_value(item) for item in value]
        return value

    @staticmethod
    def _redact_string(value: str) -> str:
        value = EMAIL_PATTERN.sub("[EMAIL]", value)
        value = SSN_PATTERN.sub("[SSN]", value)
        value = PHONE_PATTERN.sub("[PHONE]", value)
        return SPOKEN_NUMBER_PATTERN.sub("[NUMBER]", value)

    def _clip(self, value: str) -> str:
        if self.max_speech_chars is None or len(value) <= self.max_speech_chars:
            return value
        return value[: self.max_speech_chars] + "..."


def setup_logging(
    level: str = "INFO",
    format: str = "json",
    redact_pii: bool = True,
    max_speech_chars: int | None = None,
) -> None:
    """Configure structured logging.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR)
        format: "json" for production, "console" for development
        redact_pii: Whether to mask caller PII
        max_speech_chars: Clip caller speech fields to this length
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if redact_pii:
        processors.append(PIIRedactor(max_speech_chars))

    if format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(LEVELS.get(level.upper(), 20)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=True,
    )


@contextmanager
def routing_context(
    tenant_id: str,
    routing_id: str,
    call_id: str | None = None,
) -> Iterator[None]:
    """Bind the routing identifiers to every log line inside the block.

    Values bound by an enclosing block are restored on exit.
    """
    ids = {"tenant_id": tenant_id, "routing_id": routing_id}
    if call_id is not None:
        ids["call_id"] = call_id
    with structlog.contextvars.bound_contextvars(**ids):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound to the given module name."""
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
