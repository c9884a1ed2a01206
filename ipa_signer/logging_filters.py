"""Logging helpers and filters.

Applied from both entrypoints (`python -m ipa_signer.main` and
`uvicorn ipa_signer.asgi:app`).
"""

from __future__ import annotations

import logging
import sys
from typing import Any

from ipa_signer.observability.redaction import redact_text

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class SuppressAccessLogPaths(logging.Filter):
    """Drop Uvicorn access log records for noisy paths.

    By default only ``/health`` is dropped, which keeps probe traffic like
        INFO: 127.0.0.1:36130 - "GET /health HTTP/1.1" 200 OK
    out of the log while every signing and install request is still logged.
    """

    def __init__(self, paths: tuple[str, ...] = ("/health",)) -> None:
        super().__init__()
        self.paths = paths

    def _is_suppressed(self, path: str) -> bool:
        return any(path == p or path.startswith(p + "?") for p in self.paths)

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 (filter)
        # Uvicorn's access logger formats
        #   (client_addr, method, full_path, http_version, status_code)
        try:
            args: Any = record.args
            if isinstance(args, tuple) and len(args) >= 3:
                if self._is_suppressed(str(args[2])):
                    return False

            message = record.getMessage()
            for p in self.paths:
                if f'"GET {p} ' in message or f'"HEAD {p} ' in message:
                    return False
        except (TypeError, ValueError):
            return True

        return True


class RedactSecretsFilter(logging.Filter):
    """Rewrite records so certificate passwords never reach a handler."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 (filter)
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        redacted = redact_text(message, max_chars=0)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging to stdout with secret redaction."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)

    for handler in logging.root.handlers:
        if not any(isinstance(f, RedactSecretsFilter) for f in handler.filters):
            handler.addFilter(RedactSecretsFilter())


def install_uvicorn_access_log_filters(paths: tuple[str, ...] = ("/health",)) -> None:
    """Install filters for Uvicorn loggers.

    Safe to call multiple times.
    """

    access_logger = logging.getLogger("uvicorn.access")

    for existing in access_logger.filters:
        if isinstance(existing, SuppressAccessLogPaths):
            return

    access_logger.addFilter(SuppressAccessLogPaths(paths))
