"""Per-request health tracking for ``GET /health``.

Every signing request registers under its suffix for as long as it runs.
Stage transitions refresh its progress timestamp, so a hung signing tool
shows up as the suffix and stage that stopped moving.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass

from pydantic import Field

from ipa_signer.models.base import JsonModel
from ipa_signer.observability.trace_context import get_stage, get_suffix


class StalledSigning(JsonModel):
    suffix: str
    stage: str | None = None
    idle_seconds: float


class HealthSnapshot(JsonModel):
    status: str = "healthy"  # healthy | stalled
    inflight: int = 0
    stalled: list[StalledSigning] = Field(default_factory=list)


@dataclass(slots=True)
class _InflightSigning:
    stage: str | None
    last_progress: float


_lock = threading.Lock()
_inflight: dict[str, _InflightSigning] = {}


def inflight_inc(suffix: str) -> None:
    """Start tracking the signing request ``suffix``."""
    stage = get_stage()
    with _lock:
        _inflight[suffix] = _InflightSigning(
            stage=str(stage) if stage else None,
            last_progress=time.monotonic(),
        )


def inflight_dec(suffix: str) -> None:
    with _lock:
        _inflight.pop(suffix, None)


def mark_progress(stage: str | None = None, *, suffix: str | None = None) -> None:
    """Refresh the progress timestamp of a tracked request.

    ``suffix`` and ``stage`` default to the current trace context. Requests
    that are not tracked (no suffix yet, or already finished) are ignored.
    """
    suffix = suffix or get_suffix()
    if suffix is None:
        return
    stage = stage or get_stage()
    with _lock:
        entry = _inflight.get(suffix)
        if entry is None:
            return
        entry.last_progress = time.monotonic()
        if stage:
            entry.stage = str(stage)


def snapshot(*, stall_seconds: int) -> HealthSnapshot:
    now = time.monotonic()
    limit = float(max(1, stall_seconds))
    with _lock:
        entries = [(suffix, e.stage, now - e.last_progress) for suffix, e in _inflight.items()]

    stalled = sorted(
        (
            StalledSigning(suffix=suffix, stage=stage, idle_seconds=round(idle, 1))
            for suffix, stage, idle in entries
            if idle >= limit
        ),
        key=lambda s: s.idle_seconds,
        reverse=True,
    )
    return HealthSnapshot(
        status="stalled" if stalled else "healthy",
        inflight=len(entries),
        stalled=stalled,
    )
