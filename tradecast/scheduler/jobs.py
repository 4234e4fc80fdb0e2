"""
Scheduler Jobs
==============

The periodic work driven by the tick scheduler:

* scheduled automations whose time and weekday match the tick
* follower wallet balance refresh
* mirrored position P&L refresh
"""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from tradecast.automation.matcher import AutomationMatcher
from tradecast.copytrading.service import CopyTradingService
from tradecast.core.config import Settings
from tradecast.core.exceptions import ConfigurationError
from tradecast.core.logging_config import LogMessages, Loggers
from tradecast.database.store import RecordStore
from tradecast.domain.models import TriggerType
from tradecast.scheduler.scheduler import ScheduledJob

logger = Loggers.scheduler()

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class ScheduledAutomationsJob:
    """
    Deliver ``scheduled`` automations due at the tick's minute.

    Time and weekday are evaluated in the configured timezone. An
    automation fires at most once per calendar minute even if two ticks
    land in the same minute.
    """

    name = "scheduled_automations"

    def __init__(self, store: RecordStore, matcher: AutomationMatcher, timezone: str = "Asia/Kolkata"):
        self.store = store
        self.matcher = matcher
        self.tz = ZoneInfo(timezone)
        self._last_fired: dict[str, str] = {}

    async def run(self, now: datetime) -> int:
        local = now.astimezone(self.tz)
        hhmm = local.strftime("%H:%M")
        weekday = WEEKDAYS[local.weekday()]
        minute_key = local.strftime("%Y-%m-%d %H:%M")

        automations = await self.store.list_automations(trigger_type=TriggerType.SCHEDULED)
        due = [
            a for a in automations
            if a.is_due(hhmm, weekday) and self._last_fired.get(a.id) != minute_key
        ]

        sent = 0
        for automation in due:
            self._last_fired[automation.id] = minute_key
            try:
                record = await self.matcher.run_scheduled(automation)
            except ConfigurationError as e:
                logger.warning(LogMessages.AUTOMATION_SKIPPED, automation_id=automation.id, reason=str(e))
                continue
            except Exception:
                logger.exception("Scheduled automation failed", automation_id=automation.id)
                continue
            if record is not None and record.is_sent:
                sent += 1

        if due:
            logger.info("Scheduled automations run", due=len(due), sent=sent, time=hhmm, weekday=weekday)
        return sent


class WalletRefreshJob:
    name = "wallet_refresh"

    def __init__(self, copy_trading: CopyTradingService):
        self.copy_trading = copy_trading

    async def run(self, now: datetime) -> int:
        return await self.copy_trading.refresh_wallet_balances()


class PnlRefreshJob:
    name = "pnl_refresh"

    def __init__(self, copy_trading: CopyTradingService):
        self.copy_trading = copy_trading

    async def run(self, now: datetime) -> int:
        return await self.copy_trading.refresh_pnl()


def build_jobs(
    settings: Settings,
    store: RecordStore,
    matcher: AutomationMatcher,
    copy_trading: Optional[CopyTradingService] = None,
) -> list[ScheduledJob]:
    """
    Assemble the scheduler's jobs.

    Without a copy-trading service the wallet and P&L jobs are left out.
    """
    scheduled = ScheduledAutomationsJob(store, matcher, settings.timezone)
    jobs = [ScheduledJob(scheduled.name, scheduled.run)]

    if copy_trading is None:
        logger.warning("Copy trading not configured, wallet and P&L refresh disabled")
        return jobs

    wallet = WalletRefreshJob(copy_trading)
    pnl = PnlRefreshJob(copy_trading)
    jobs.append(ScheduledJob(wallet.name, wallet.run, settings.wallet_refresh_every_ticks))
    jobs.append(ScheduledJob(pnl.name, pnl.run, settings.pnl_refresh_every_ticks))
    return jobs
