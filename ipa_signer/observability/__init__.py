"""Observability utilities (structured tracing, redaction, error logging, health)."""

from ipa_signer.observability.error_log_file import (
    log_stage_error,
    setup_error_log_file,
)
from ipa_signer.observability.trace_logging import configure_tracing, trace_event

__all__ = [
    "configure_tracing",
    "log_stage_error",
    "setup_error_log_file",
    "trace_event",
]
