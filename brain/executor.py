"""
Action Executor

This module turns a decided Action into a delivered WhatsApp message:
1. Generate the text (AI generator, deterministic template on failure)
2. Clean wrapping quotes and whitespace
3. Record the action as 'pending' before dispatch
4. Send it, then mark it 'sent' (and log it in the conversation) or 'failed'
5. Wait a fixed delay so outbound traffic stays rate limited
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Callable, Awaitable

from brain.config_loader import load_config
from brain.interfaces import ActionLedger, ConversationLog, MessageGenerator, Messenger
from brain.models import Action, ActionRecord, ClientProfile, ScoreSnapshot, TenantDescriptor
from brain.templates import fallback_message, clean_message
from utils import activity_logger

logger = logging.getLogger(__name__)


class ActionExecutor:
    """Executes one action per call with durable, idempotent bookkeeping."""

    def __init__(
        self,
        generator: Optional[MessageGenerator],
        messenger: Messenger,
        ledger: ActionLedger,
        conversation_log: ConversationLog,
        config: Optional[Dict[str, Any]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = None
    ):
        """
        Args:
            generator: Message generator, or None to always use templates
            messenger: WhatsApp channel
            ledger: brain_actions ledger
            conversation_log: Conversation history store
            config: Optional configuration override
            sleep: Awaitable used for the inter-action delay (injectable for tests)
            clock: Returns the current time (defaults to UTC now)
        """
        self.generator = generator
        self.messenger = messenger
        self.ledger = ledger
        self.conversation_log = conversation_log
        self.config = (config or load_config())["executor"]
        self.sleep = sleep
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def render_message(self, action: Action, profile: Optional[ClientProfile] = None) -> str:
        """
        Produce the final message text. Generator failures are never fatal.

        Returns:
            Non-empty cleaned message
        """
        text = None
        if self.generator is not None:
            try:
                text = await self.generator.generate(action.prompt_context)
            except Exception as e:
                logger.warning(f"Message generation failed for {action.action_type}: {e}")
                text = None

        if text:
            text = clean_message(text)
        if not text:
            logger.info(f"Using fallback template for {action.action_type}")
            text = clean_message(fallback_message(action.action_type, profile))
        return text

    async def execute(
        self,
        tenant: TenantDescriptor,
        snapshot: ScoreSnapshot,
        action: Action,
        profile: Optional[ClientProfile] = None
    ) -> bool:
        """
        Execute an action for one client.

        Args:
            tenant: Tenant owning the WhatsApp channel
            snapshot: Score snapshot that triggered the action
            action: Action decided by the decision engine
            profile: Optional client profile (name for the fallback greeting)

        Returns:
            True if the message was actually delivered
        """
        phone = snapshot.phone
        message_content = await self.render_message(action, profile)

        record = ActionRecord(
            tenant_id=tenant.id,
            phone=phone,
            action_key=action.action_key,
            action_type=action.action_type,
            reason=action.reason,
            trigger_conditions={
                "churn_risk": snapshot.churn_risk,
                "engagement": snapshot.engagement_score,
                "consistency": snapshot.consistency_score,
                "motivation": snapshot.motivation_level,
                "days_since_last_checkin": snapshot.days_since_last_checkin,
                "trend": snapshot.checkin_trend
            },
            message_content=message_content,
            status="pending",
            created_at=self.clock()
        )

        # Durability first: the attempt is on record before anything leaves the process
        claimed = await self.ledger.insert_pending(record)
        if not claimed:
            logger.info(f"Skipping {action.action_type} for {phone}: {action.action_key} already claimed")
            return False

        sent = False
        try:
            try:
                await self.messenger.send(tenant.whatsapp_instance_name, phone, message_content)
            except Exception as send_error:
                logger.error(f"WhatsApp send failed for {phone} ({action.action_type}): {send_error}")
                try:
                    await self.ledger.update_status(
                        tenant.id, action.action_key, "failed", {"skip_reason": str(send_error)}
                    )
                except Exception as e:
                    logger.error(f"Failed to mark {action.action_key} as failed: {e}")
                activity_logger.log_action_activity(
                    tenant_id=tenant.id,
                    phone=phone,
                    timestamp=record.created_at,
                    action_type=action.action_type,
                    action_key=action.action_key,
                    status="failed",
                    error=str(send_error)
                )
                return False

            sent = True
            try:
                await self.ledger.update_status(
                    tenant.id, action.action_key, "sent", {"sent_at": self.clock().isoformat()}
                )
                await self.conversation_log.append(
                    tenant.id,
                    phone,
                    "assistant",
                    message_content,
                    {"is_brain_action": True, "action_type": action.action_type}
                )
            except Exception as e:
                # Delivered but bookkeeping failed: the record may stay 'pending'
                logger.error(f"Post-send bookkeeping failed for {action.action_key}: {e}", exc_info=True)

            name = profile.name if profile and profile.name else "N/A"
            logger.info(f"✓ {action.action_type} → {phone} ({name})")
            activity_logger.log_action_activity(
                tenant_id=tenant.id,
                phone=phone,
                timestamp=record.created_at,
                action_type=action.action_type,
                action_key=action.action_key,
                status="sent",
                reason=action.reason
            )
            return True
        finally:
            await self.sleep(float(self.config["inter_action_delay_seconds"]))
            logger.debug(f"Action attempt finished for {phone} (sent={sent})")
