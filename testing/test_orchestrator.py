"""
Unit Tests: CycleOrchestrator run flag, isolation and end-to-end cycle

Run with: pytest testing/test_orchestrator.py -v
"""

import asyncio
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from brain.executor import ActionExecutor
from brain.models import ClientProfile, TenantDescriptor
from brain.orchestrator import CycleOrchestrator
from fakes import (
    NOW,
    FakeActivityStore,
    FakeConversationLog,
    FakeGenerator,
    FakeLedger,
    FakeMessenger,
    FakeScoreStore,
    FakeTenantDirectory,
    checkins_days_ago,
    no_sleep
)

TENANT_A = TenantDescriptor(id="tenant-a", name="Palestra A", whatsapp_instance_name="palestra-a")
TENANT_B = TenantDescriptor(id="tenant-b", name="Palestra B", whatsapp_instance_name="palestra-b")

INACTIVE = "+390000000001"   # never checked in: comeback
ACTIVE = "+390000000002"     # trains every five days: no action


class Harness:
    """Orchestrator wired to in-memory fakes."""

    def __init__(self, tenants=(TENANT_A,), clients=None, failing_tenants=(), failing_phones=(), sleep=no_sleep):
        clients = clients if clients is not None else {
            TENANT_A.id: [ClientProfile(phone=INACTIVE, name="Luca"), ClientProfile(phone=ACTIVE, name="Sara")]
        }
        self.directory = FakeTenantDirectory(list(tenants), clients, failing_tenants)
        self.activity = FakeActivityStore(
            checkins={ACTIVE: checkins_days_ago(*range(1, 60, 5))},
            failing_phones=failing_phones
        )
        self.scores = FakeScoreStore()
        self.ledger = FakeLedger()
        self.messenger = FakeMessenger()
        self.log = FakeConversationLog()
        self.executor = ActionExecutor(
            generator=FakeGenerator(),
            messenger=self.messenger,
            ledger=self.ledger,
            conversation_log=self.log,
            sleep=sleep,
            clock=lambda: NOW
        )
        self.orchestrator = CycleOrchestrator(
            tenant_directory=self.directory,
            activity_store=self.activity,
            score_store=self.scores,
            ledger=self.ledger,
            executor=self.executor,
            clock=lambda: NOW
        )


# =============================================================================
# Test Suite: Cycle
# =============================================================================

class TestCycle:

    def test_cycle_scores_everyone_and_contacts_inactive_client(self):
        h = Harness()

        executed = asyncio.run(h.orchestrator.run_cycle("scheduled"))

        assert executed == 1
        assert set(h.scores.snapshots) == {(TENANT_A.id, INACTIVE), (TENANT_A.id, ACTIVE)}
        assert [s[1] for s in h.messenger.sent] == [INACTIVE]
        assert h.messenger.sent[0][0] == "palestra-a"
        record = h.ledger.records[(TENANT_A.id, f"comeback:{INACTIVE}:2025-03-14")]
        assert record.status == "sent"
        assert len(h.log.entries) == 1

    def test_history_windows(self):
        h = Harness()
        asyncio.run(h.orchestrator.run_cycle())
        assert ("checkins", TENANT_A.id, ACTIVE, 60) in h.activity.requests
        assert ("messages", TENANT_A.id, ACTIVE, 30) in h.activity.requests

    def test_rerun_same_day_does_not_repeat_comeback(self):
        h = Harness()

        first = asyncio.run(h.orchestrator.run_cycle())
        second = asyncio.run(h.orchestrator.run_cycle())

        assert first == 1
        assert second == 0
        assert len(h.messenger.sent) == 1

    def test_action_key_uses_local_date(self):
        """23:30 UTC on the 14th is already the 15th in Rome."""
        h = Harness()
        late = NOW.replace(hour=23, minute=30)
        h.orchestrator.clock = lambda: late

        asyncio.run(h.orchestrator.run_cycle())

        assert (TENANT_A.id, f"comeback:{INACTIVE}:2025-03-15") in h.ledger.records

    def test_no_tenants(self):
        h = Harness(tenants=())
        assert asyncio.run(h.orchestrator.run_cycle()) == 0


# =============================================================================
# Test Suite: Isolation
# =============================================================================

class TestIsolation:

    def test_tenant_failure_does_not_stop_later_tenants(self):
        clients = {TENANT_B.id: [ClientProfile(phone=INACTIVE)]}
        h = Harness(tenants=(TENANT_A, TENANT_B), clients=clients, failing_tenants={TENANT_A.id})

        executed = asyncio.run(h.orchestrator.run_cycle())

        assert executed == 1
        assert h.messenger.sent[0][0] == "palestra-b"

    def test_client_failure_does_not_stop_the_tenant(self):
        clients = {TENANT_A.id: [ClientProfile(phone=ACTIVE), ClientProfile(phone=INACTIVE)]}
        h = Harness(clients=clients, failing_phones={ACTIVE})

        executed = asyncio.run(h.orchestrator.run_cycle())

        assert executed == 1
        assert (TENANT_A.id, ACTIVE) not in h.scores.snapshots

    def test_executor_error_still_counts_client_as_scored(self):
        h = Harness()

        async def broken_execute(tenant, snapshot, action, profile=None):
            raise RuntimeError("generator crashed")

        h.orchestrator.executor.execute = broken_execute

        scored, sent = asyncio.run(h.orchestrator.process_tenant(TENANT_A))

        assert (scored, sent) == (2, 0)
        assert (TENANT_A.id, INACTIVE) in h.scores.snapshots

    def test_failed_send_is_not_counted(self):
        h = Harness()
        h.messenger.failing_phones.add(INACTIVE)

        assert asyncio.run(h.orchestrator.run_cycle()) == 0
        assert h.ledger.records[(TENANT_A.id, f"comeback:{INACTIVE}:2025-03-14")].status == "failed"

    def test_cycle_error_releases_run_flag(self):
        h = Harness()

        async def broken():
            raise RuntimeError("supabase down")

        h.directory.list_connected = broken

        assert asyncio.run(h.orchestrator.run_cycle()) == 0
        assert h.orchestrator.is_running is False


# =============================================================================
# Test Suite: Run flag and status
# =============================================================================

class TestRunFlag:

    def test_trigger_while_running_is_a_noop(self):
        async def scenario():
            release = asyncio.Event()
            entered = asyncio.Event()

            async def blocking_sleep(seconds):
                entered.set()
                await release.wait()

            h = Harness(sleep=blocking_sleep)
            first = asyncio.create_task(h.orchestrator.run_cycle("scheduled"))
            await entered.wait()

            assert h.orchestrator.is_running is True
            concurrent = await h.orchestrator.run_now()

            release.set()
            return await first, concurrent, h

        first, concurrent, h = asyncio.run(scenario())

        assert concurrent == 0
        assert first == 1
        assert h.directory.list_calls == 1
        assert h.orchestrator.is_running is False

    def test_status(self):
        h = Harness()
        assert h.orchestrator.status()["last_run_at"] is None

        asyncio.run(h.orchestrator.run_now())
        status = h.orchestrator.status()

        assert status["is_running"] is False
        assert status["initialized"] is True
        assert status["last_trigger"] == "manual"
        assert status["last_actions_executed"] == 1
        assert status["last_run_at"] == NOW.isoformat()
