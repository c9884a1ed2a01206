"""Structured trace/event logging.

We emit a single JSON object per line so logs are easy to grep and ship.
Events describe observable pipeline actions:
- stage transitions of a signing request
- external tool invocations and their outcome
- published and expired artifacts
- errors
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from ipa_signer.observability.redaction import sanitize
from ipa_signer.observability.trace_context import get_stage, get_suffix


_logger = logging.getLogger("ipa_signer.trace")
_error_logger = logging.getLogger("ipa_signer.errors")

_enabled = True
_max_chars = 2000


def configure_tracing(*, enabled: bool, max_chars: int = 2000) -> None:
    """Apply trace settings from config (called once at startup)."""
    global _enabled, _max_chars
    _enabled = enabled
    _max_chars = max_chars


def trace_event(
    event: str,
    *,
    max_chars: int | None = None,
    **fields: Any,
) -> None:
    """Emit a structured trace event.

    Args:
        event: Short event name, e.g. 'sign.stage'.
        max_chars: Max chars for any string field after sanitization.
        **fields: Event payload (will be sanitized).
    """
    is_error = ".error" in event or "error" in fields
    if not _enabled and not is_error:
        return

    limit = max_chars if max_chars is not None else _max_chars
    record: dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "event": event,
        "suffix": get_suffix(),
        "stage": get_stage(),
    }

    for k, v in fields.items():
        record[k] = sanitize(v, max_chars=limit)

    try:
        if _enabled:
            _logger.info(json.dumps(record, ensure_ascii=False, separators=(",", ":")))

        # Errors also go to the error logger so they land in the error log file
        if is_error:
            _error_logger.error(
                "[%s] %s: %s (stage=%s, suffix=%s)",
                event,
                record.get("error_type", "Error"),
                record.get("error", "Unknown error"),
                record.get("stage"),
                record.get("suffix"),
            )
    except (TypeError, ValueError):
        # Never break the request because of logging.
        _logger.info('{"event":"%s","error":"failed_to_serialize"}', event)
