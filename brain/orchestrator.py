"""
Cycle Orchestrator for Brain Service

This module drives one brain cycle across every connected tenant:
1. List tenants with a connected WhatsApp channel
2. For each client, load activity history and compute a fresh score snapshot
3. Persist the snapshot
4. Ask the decision engine for at most one action
5. Hand the action to the executor

Only one cycle runs at a time per process: a trigger that arrives while a
cycle is in progress is a no-op returning 0. Tenants and clients are isolated,
so one failure is logged and the cycle moves on.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any, Callable, Tuple

from brain.config_loader import load_config
from brain.decision_engine import decide_action
from brain.executor import ActionExecutor
from brain.interfaces import ActivityStore, ScoreStore, ActionLedger, TenantDirectory
from brain.models import ClientProfile, ScoreSnapshot, TenantDescriptor
from brain.scoring import compute_score_snapshot
from utils import activity_logger
from utils.time_utils import get_current_time, get_local_timezone

logger = logging.getLogger(__name__)


class CycleOrchestrator:
    """Runs scoring, decision and execution for all tenants, one cycle at a time."""

    def __init__(
        self,
        tenant_directory: TenantDirectory,
        activity_store: ActivityStore,
        score_store: ScoreStore,
        ledger: ActionLedger,
        executor: ActionExecutor,
        config: Optional[Dict[str, Any]] = None,
        clock: Callable[[], datetime] = None
    ):
        self.tenant_directory = tenant_directory
        self.activity_store = activity_store
        self.score_store = score_store
        self.ledger = ledger
        self.executor = executor
        self.config = config or load_config()
        self.clock = clock or get_current_time
        self.tz = get_local_timezone(self.config.get("timezone"))

        # Run state
        self.is_running = False
        self.last_trigger: Optional[str] = None
        self.last_run_at: Optional[datetime] = None
        self.last_actions_executed: Optional[int] = None

    async def run_cycle(self, trigger: str = "scheduled") -> int:
        """
        Run one full brain cycle.

        Args:
            trigger: What started the cycle ("scheduled", "startup", "manual")

        Returns:
            Number of messages actually delivered (0 if a cycle was already running)
        """
        started_at = self.clock()

        if self.is_running:
            logger.info(f"Brain cycle ({trigger}) skipped: previous cycle still running")
            activity_logger.log_cycle_activity(
                timestamp=started_at,
                status="skipped",
                trigger=trigger
            )
            return 0

        self.is_running = True
        logger.info(f"====== Starting brain cycle ({trigger}) ======")

        actions_executed = 0
        clients_scored = 0
        tenants_processed = 0
        tenants_failed = 0
        status = "success"
        error = None

        try:
            tenants = await self.tenant_directory.list_connected()
            logger.info(f"Processing {len(tenants)} active tenants")

            for tenant in tenants:
                try:
                    scored, sent = await self.process_tenant(tenant)
                    clients_scored += scored
                    actions_executed += sent
                    tenants_processed += 1
                except Exception as e:
                    tenants_failed += 1
                    logger.error(f"Brain cycle failed for tenant {tenant.name or tenant.id}: {e}", exc_info=True)

        except Exception as e:
            status = "error"
            error = str(e)
            logger.error(f"Brain cycle aborted: {e}", exc_info=True)
        finally:
            self.is_running = False
            self.last_trigger = trigger
            self.last_run_at = started_at
            self.last_actions_executed = actions_executed

            duration = (self.clock() - started_at).total_seconds()
            logger.info(
                f"====== Brain cycle completed in {duration:.1f}s | "
                f"{clients_scored} clients scored | {actions_executed} actions ======"
            )
            activity_logger.log_cycle_activity(
                timestamp=started_at,
                status=status,
                trigger=trigger,
                tenants_processed=tenants_processed,
                tenants_failed=tenants_failed,
                clients_scored=clients_scored,
                actions_executed=actions_executed,
                error=error,
                duration_seconds=round(duration, 3)
            )

        return actions_executed

    async def process_tenant(self, tenant: TenantDescriptor) -> Tuple[int, int]:
        """
        Score every client of one tenant and execute their actions, sequentially.

        Returns:
            Tuple of (clients scored, messages delivered)
        """
        clients = await self.tenant_directory.list_clients(tenant.id)
        logger.info(f"{tenant.name or tenant.id}: {len(clients)} clients")

        scored = 0
        sent = 0
        for profile in clients:
            try:
                snapshot = await self.score_client(tenant, profile)
            except Exception as e:
                logger.error(f"Scoring failed for {profile.phone} ({tenant.id}): {e}", exc_info=True)
                continue
            scored += 1

            try:
                if await self.act_on_client(tenant, profile, snapshot):
                    sent += 1
            except Exception as e:
                logger.error(f"Action failed for {profile.phone} ({tenant.id}): {e}", exc_info=True)

        logger.info(f"{tenant.name or tenant.id}: scored {scored} clients, {sent} actions executed")
        return scored, sent

    async def score_client(self, tenant: TenantDescriptor, profile: ClientProfile) -> ScoreSnapshot:
        """Score one client and persist the snapshot."""
        scoring_config = self.config["scoring"]
        phone = profile.phone
        now = self.clock()

        checkins = await self.activity_store.checkins(tenant.id, phone, scoring_config["checkin_window_days"])
        messages = await self.activity_store.messages(tenant.id, phone, scoring_config["message_window_days"])
        previous_motivation = await self.score_store.previous_motivation(tenant.id, phone)

        snapshot = compute_score_snapshot(
            tenant_id=tenant.id,
            phone=phone,
            checkins=checkins,
            messages=messages,
            previous_motivation=previous_motivation,
            now=now,
            config=self.config,
            tz=self.tz
        )
        await self.score_store.upsert(tenant.id, phone, snapshot)
        return snapshot

    async def act_on_client(self, tenant: TenantDescriptor, profile: ClientProfile, snapshot: ScoreSnapshot) -> bool:
        """
        Decide the next action for a scored client and execute it.

        Returns:
            True if a message was delivered to the client
        """
        phone = profile.phone
        now = self.clock()

        action = await decide_action(
            snapshot,
            already_fired=lambda key: self.ledger.exists_sent(tenant.id, key),
            fired_within_days=self.ledger.exists_sent_within,
            today=now.astimezone(self.tz).date(),
            profile=profile,
            tenant_name=tenant.name,
            config=self.config
        )
        if action is None:
            return False

        logger.info(f"{phone}: {action.action_type} ({action.reason})")
        return await self.executor.execute(tenant, snapshot, action, profile)

    async def run_now(self) -> int:
        """Manual trigger (API or testing)."""
        logger.info("Manual brain run triggered")
        return await self.run_cycle("manual")

    def status(self) -> Dict[str, Any]:
        """Current run state for the status endpoint."""
        return {
            "is_running": self.is_running,
            "initialized": True,
            "last_trigger": self.last_trigger,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_actions_executed": self.last_actions_executed
        }
