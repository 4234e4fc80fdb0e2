"""
Automation Matcher
==================

Resolves which automations fire for a trigger, renders their templates
against the trade and hands the result to the delivery pipeline.

Every automation is isolated: a missing channel, a disabled template or
an unexpected error is logged and the remaining automations still run.
"""

from typing import Optional

from tradecast.core.exceptions import ChannelUnavailableError, ConfigurationError, TemplateUnavailableError
from tradecast.core.logging_config import LogMessages, Loggers, TradeContextLogger
from tradecast.database.store import RecordStore
from tradecast.domain.models import Automation, Channel, DeliveryRecord, Trade, TriggerType
from tradecast.notifications.delivery import DeliveryPipeline, DeliveryRequest
from tradecast.notifications.renderer import TemplateRenderer

logger = Loggers.automation()


class AutomationMatcher:
    """
    Fan a trigger out to its automations.

    Usage:
        matcher = AutomationMatcher(store, renderer, pipeline)
        records = await matcher.dispatch(TriggerType.TARGET_1_HIT, trade)
    """

    def __init__(
        self,
        store: RecordStore,
        renderer: TemplateRenderer,
        pipeline: DeliveryPipeline,
    ):
        self.store = store
        self.renderer = renderer
        self.pipeline = pipeline

    async def dispatch(self, trigger: TriggerType, trade: Optional[Trade]) -> list[DeliveryRecord]:
        """
        Run every active automation bound to ``trigger``.

        Args:
            trigger: Event that happened
            trade: Trade snapshot the templates are rendered against

        Returns:
            Delivery records for the automations that attempted a send
        """
        automations = await self.store.list_automations(trigger_type=trigger, active_only=True)

        with TradeContextLogger(
            trade_id=trade.trade_id if trade else None,
            pair=trade.pair if trade else None,
            trigger=trigger.value,
        ):
            logger.info(LogMessages.AUTOMATIONS_MATCHED, count=len(automations))

            records = []
            for automation in automations:
                try:
                    record = await self.run_automation(automation, trade)
                except ConfigurationError as e:
                    logger.warning(
                        LogMessages.AUTOMATION_SKIPPED,
                        automation_id=automation.id,
                        reason=str(e),
                    )
                    continue
                except Exception:
                    logger.exception("Automation failed", automation_id=automation.id)
                    continue

                if record is not None:
                    records.append(record)

            return records

    async def run_automation(
        self,
        automation: Automation,
        trade: Optional[Trade],
    ) -> Optional[DeliveryRecord]:
        """
        Render and deliver a single automation.

        Raises:
            ConfigurationError: Channel or template missing or inactive

        Returns:
            The delivery record, or None when the rendered text was empty
        """
        channel = await self.store.get_channel(automation.channel_id)
        if channel is None or not channel.is_active:
            raise ChannelUnavailableError(automation.id, automation.channel_id)

        template = await self.store.get_template(automation.template_id)
        if template is None or not template.is_active:
            raise TemplateUnavailableError(automation.id, automation.template_id)

        message = self.renderer.render(template, trade)
        if not message.text.strip():
            logger.warning(
                LogMessages.AUTOMATION_SKIPPED,
                automation_id=automation.id,
                reason="rendered message is empty",
            )
            return None

        reply_to = None
        if trade is not None and automation.trigger_type.is_target_hit:
            reply_to = await self.select_reply_target(trade, channel)
            if reply_to is None:
                logger.info(LogMessages.REPLY_TARGET_MISSING, channel_id=channel.id)

        return await self.pipeline.deliver(
            DeliveryRequest(
                channel_id=channel.id,
                chat_id=channel.chat_id,
                message=message,
                automation_id=automation.id,
                trade_id=trade.id if trade else None,
                trigger_type=automation.trigger_type,
                reply_to=reply_to,
            )
        )

    async def run_scheduled(self, automation: Automation) -> Optional[DeliveryRecord]:
        """Deliver a scheduled automation; its template is rendered without a trade."""
        return await self.run_automation(automation, None)

    async def select_reply_target(self, trade: Trade, channel: Channel) -> Optional[str]:
        """
        Message id of the trade's announcement in this chat.

        Records from any channel sharing the chat id count. The earliest
        sent ``trade_registered`` record wins, otherwise the earliest sent
        record of any trigger.
        """
        channels = await self.store.list_channels()
        channel_ids = [c.id for c in channels if c.chat_id == channel.chat_id] or [channel.id]

        records = await self.store.list_delivery_records(trade_id=trade.id, channel_ids=channel_ids)
        sent = [r for r in records if r.is_sent and r.message_id]
        if not sent:
            return None

        for record in sent:
            if record.trigger_type == TriggerType.TRADE_REGISTERED:
                return record.message_id
        return sent[0].message_id
