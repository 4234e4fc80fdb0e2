"""
Scheduler module - periodic tick loop and its jobs.
"""

from tradecast.scheduler.jobs import (
    PnlRefreshJob,
    ScheduledAutomationsJob,
    WalletRefreshJob,
    build_jobs,
)
from tradecast.scheduler.scheduler import ScheduledJob, Scheduler

__all__ = [
    "PnlRefreshJob",
    "ScheduledAutomationsJob",
    "ScheduledJob",
    "Scheduler",
    "WalletRefreshJob",
    "build_jobs",
]
