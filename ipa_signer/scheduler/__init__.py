"""Scheduler module for background task execution.

This module provides the SystemScheduler for periodic maintenance and the
expiry sweep task that enforces the retention window across restarts.
"""

from ipa_signer.scheduler.expiry_sweep_task import expiry_sweep_task
from ipa_signer.scheduler.system_scheduler import SystemScheduler

__all__ = ["SystemScheduler", "expiry_sweep_task"]
