"""Error log file handler for capturing errors and warnings to a file."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING

from ipa_signer.config import resolve_repo_path

if TYPE_CHECKING:
    from ipa_signer.config import SignerConfig


_error_file_handler: RotatingFileHandler | None = None


def setup_error_log_file(config: "SignerConfig") -> RotatingFileHandler | None:
    """Attach a rotating error log handler to the root logger.

    Safe to call more than once; the handler is only created the first time.

    Args:
        config: Service configuration with error log settings.

    Returns:
        The configured RotatingFileHandler, or None if disabled/unavailable.
    """
    global _error_file_handler

    if not config.error_log_file_enabled:
        return None
    if _error_file_handler is not None:
        return _error_file_handler

    log_level = getattr(logging, config.error_log_level.upper(), logging.WARNING)
    log_file = resolve_repo_path(config.error_log_file_path)

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"Warning: Cannot create error log directory {log_file.parent}: {e}", file=sys.stderr)
        return None

    try:
        handler = RotatingFileHandler(
            filename=str(log_file),
            maxBytes=config.error_log_max_bytes,
            backupCount=config.error_log_backup_count,
            encoding="utf-8",
        )
    except OSError as e:
        print(f"Warning: Cannot create error log file {log_file}: {e}", file=sys.stderr)
        return None

    handler.setLevel(log_level)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logging.getLogger().addHandler(handler)
    _error_file_handler = handler

    logging.getLogger(__name__).info(
        "Error log file handler initialized: %s (level=%s)",
        log_file,
        config.error_log_level.upper(),
    )
    return handler


def get_error_log_handler() -> RotatingFileHandler | None:
    """Get the current error log file handler."""
    return _error_file_handler


def log_stage_error(
    stage: str,
    error: Exception | str,
    *,
    suffix: str | None = None,
    extra: dict | None = None,
) -> None:
    """Log a pipeline failure with its stage and request suffix.

    Args:
        stage: Pipeline stage that failed.
        error: The exception or error message.
        suffix: Request suffix for correlation.
        extra: Additional context to include in the log.
    """
    logger = logging.getLogger(f"ipa_signer.pipeline.{stage}")

    error_type = type(error).__name__ if isinstance(error, Exception) else "Error"
    context_parts = [f"stage={stage}", f"error_type={error_type}"]
    if suffix:
        context_parts.append(f"suffix={suffix}")
    if extra:
        for k, v in extra.items():
            context_parts.append(f"{k}={v}")

    logger.error("[%s] %s", " ".join(context_parts), error)
