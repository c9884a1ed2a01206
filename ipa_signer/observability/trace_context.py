"""Trace context (per-request correlation).

The request suffix doubles as the trace id: it already namespaces every
file a request touches, so using it in logs lets an operator go from a log
line straight to the working files.
"""

from __future__ import annotations

from contextvars import ContextVar


_suffix_var: ContextVar[str | None] = ContextVar("signing_suffix", default=None)
_stage_var: ContextVar[str | None] = ContextVar("signing_stage", default=None)


def set_trace(*, suffix: str | None, stage: str | None = None) -> None:
    """Set trace context for the current execution context."""

    _suffix_var.set(suffix)
    if stage is not None:
        _stage_var.set(stage)


def set_stage(stage: str) -> None:
    _stage_var.set(stage)


def get_suffix() -> str | None:
    return _suffix_var.get()


def get_stage() -> str | None:
    return _stage_var.get()
