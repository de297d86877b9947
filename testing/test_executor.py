"""
Unit Tests: ActionExecutor dispatch, fallback and ledger bookkeeping

Run with: pytest testing/test_executor.py -v
"""

import asyncio
import pytest
import sys
import os
from datetime import date

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from brain.decision_engine import decide_action
from brain.executor import ActionExecutor
from brain.models import (
    ClientProfile,
    ComebackAction,
    MotivationAction,
    SupportAction,
    ProgressAction,
    StreakAction,
    TenantDescriptor
)
from brain.templates import build_prompt_context, clean_message, fallback_message
from fakes import (
    NOW,
    FakeConversationLog,
    FakeGenerator,
    FakeLedger,
    FakeMessenger,
    RecordingSleep,
    make_snapshot
)

PHONE = "+393331234567"
TENANT = TenantDescriptor(id="tenant-1", name="Palestra Roma", whatsapp_instance_name="palestra-roma")

ACTION_CLASSES = {
    "comeback_message": (ComebackAction, "comeback"),
    "personalized_motivation": (MotivationAction, "motivation"),
    "scheda_adjust": (SupportAction, "support"),
    "check_progress": (ProgressAction, "progress"),
    "streak_recovery": (StreakAction, "streak"),
}


def make_action(action_type="comeback_message"):
    cls, prefix = ACTION_CLASSES[action_type]
    snapshot = make_snapshot()
    return cls(
        reason="test",
        action_key=f"{prefix}:{PHONE}:2025-03-14",
        prompt_context=build_prompt_context(prefix, snapshot)
    )


def make_executor(generator=None, messenger=None, ledger=None, log=None, sleep=None):
    return ActionExecutor(
        generator=generator if generator is not None else FakeGenerator(),
        messenger=messenger or FakeMessenger(),
        ledger=ledger or FakeLedger(),
        conversation_log=log or FakeConversationLog(),
        sleep=sleep or RecordingSleep(),
        clock=lambda: NOW
    )


# =============================================================================
# Test Suite: Message text
# =============================================================================

class TestMessageText:

    @pytest.mark.parametrize("action_type", list(ACTION_CLASSES))
    @pytest.mark.parametrize("generator", [
        FakeGenerator(error=RuntimeError("DeepSeek timeout")),
        FakeGenerator(text=None),
        FakeGenerator(text="   "),
    ])
    def test_fallback_for_every_action_type(self, action_type, generator):
        messenger = FakeMessenger()
        executor = make_executor(generator=generator, messenger=messenger)

        sent = asyncio.run(executor.execute(TENANT, make_snapshot(), make_action(action_type)))

        assert sent is True
        assert len(messenger.sent) == 1
        assert messenger.sent[0][2].strip() != ""

    def test_fallback_greets_client_by_name(self):
        messenger = FakeMessenger()
        executor = make_executor(generator=FakeGenerator(text=None), messenger=messenger)
        profile = ClientProfile(phone=PHONE, name="Giulia")

        asyncio.run(executor.execute(TENANT, make_snapshot(), make_action(), profile))

        assert messenger.sent[0][2].startswith("Ciao Giulia!")

    def test_wrapping_quotes_are_stripped(self):
        messenger = FakeMessenger()
        executor = make_executor(generator=FakeGenerator(text='  "Ciao Marco, ci manchi!"  '), messenger=messenger)

        asyncio.run(executor.execute(TENANT, make_snapshot(), make_action()))

        assert messenger.sent[0][2] == "Ciao Marco, ci manchi!"

    def test_clean_message(self):
        assert clean_message("'Ciao!'") == "Ciao!"
        assert clean_message('"Ciao!') == "Ciao!"
        assert clean_message("Ciao") == "Ciao"

    def test_fallback_message_is_never_empty(self):
        assert fallback_message("unknown_type").startswith("Ciao!")

    def test_no_generator_configured(self):
        messenger = FakeMessenger()
        executor = ActionExecutor(
            generator=None,
            messenger=messenger,
            ledger=FakeLedger(),
            conversation_log=FakeConversationLog(),
            sleep=RecordingSleep()
        )
        assert asyncio.run(executor.execute(TENANT, make_snapshot(), make_action())) is True
        assert messenger.sent[0][2] == fallback_message("comeback_message")


# =============================================================================
# Test Suite: Dispatch and bookkeeping
# =============================================================================

class TestDispatch:

    def test_successful_send(self):
        ledger, log, messenger, sleep = FakeLedger(), FakeConversationLog(), FakeMessenger(), RecordingSleep()
        executor = make_executor(messenger=messenger, ledger=ledger, log=log, sleep=sleep)
        action = make_action()

        sent = asyncio.run(executor.execute(TENANT, make_snapshot(), action))

        assert sent is True
        assert ledger.transitions == [(action.action_key, "pending"), (action.action_key, "sent")]
        record = ledger.records[("tenant-1", action.action_key)]
        assert record.status == "sent"
        assert record.sent_at is not None
        assert record.trigger_conditions["churn_risk"] == 0.1
        assert messenger.sent == [("palestra-roma", PHONE, "Ciao! Ti aspettiamo in palestra 💪")]
        assert log.entries == [(
            "tenant-1", PHONE, "assistant", "Ciao! Ti aspettiamo in palestra 💪",
            {"is_brain_action": True, "action_type": "comeback_message"}
        )]
        assert sleep.calls == [3.0]

    def test_failed_send(self):
        ledger, log, sleep = FakeLedger(), FakeConversationLog(), RecordingSleep()
        executor = make_executor(messenger=FakeMessenger(failing_phones={PHONE}), ledger=ledger, log=log, sleep=sleep)
        action = make_action()

        sent = asyncio.run(executor.execute(TENANT, make_snapshot(), action))

        assert sent is False
        record = ledger.records[("tenant-1", action.action_key)]
        assert record.status == "failed"
        assert "500" in record.skip_reason
        assert log.entries == []
        assert sleep.calls == [3.0]

    def test_bookkeeping_failure_after_send_still_counts_as_sent(self):
        class UnwritableLedger(FakeLedger):
            async def update_status(self, tenant_id, action_key, status, fields):
                raise ConnectionError("supabase unreachable")

        ledger, log, messenger, sleep = UnwritableLedger(), FakeConversationLog(), FakeMessenger(), RecordingSleep()
        executor = make_executor(messenger=messenger, ledger=ledger, log=log, sleep=sleep)
        action = make_action()

        sent = asyncio.run(executor.execute(TENANT, make_snapshot(), action))

        assert sent is True
        assert len(messenger.sent) == 1
        assert ledger.records[("tenant-1", action.action_key)].status == "pending"
        assert log.entries == []
        assert sleep.calls == [3.0]

    def test_already_claimed_key_is_not_dispatched(self):
        ledger, messenger, sleep = FakeLedger(), FakeMessenger(), RecordingSleep()
        action = make_action()
        ledger.add_sent("tenant-1", PHONE, action.action_key, action.action_type)
        executor = make_executor(messenger=messenger, ledger=ledger, sleep=sleep)

        sent = asyncio.run(executor.execute(TENANT, make_snapshot(), action))

        assert sent is False
        assert messenger.sent == []
        assert sleep.calls == []

    def test_failed_key_can_be_attempted_again(self):
        ledger = FakeLedger()
        action = make_action()
        asyncio.run(make_executor(messenger=FakeMessenger(failing_phones={PHONE}), ledger=ledger).execute(
            TENANT, make_snapshot(), action
        ))

        sent = asyncio.run(make_executor(ledger=ledger).execute(TENANT, make_snapshot(), action))

        assert sent is True
        assert ledger.records[("tenant-1", action.action_key)].status == "sent"


# =============================================================================
# Test Suite: Decision + execution
# =============================================================================

class TestEndToEnd:

    def test_comeback_for_inactive_high_risk_client(self):
        ledger, log, messenger = FakeLedger(), FakeConversationLog(), FakeMessenger()
        snapshot = make_snapshot(churn_risk=0.75, days_since_last_checkin=6)

        async def run():
            action = await decide_action(
                snapshot,
                already_fired=lambda key: ledger.exists_sent("tenant-1", key),
                fired_within_days=ledger.exists_sent_within,
                today=date(2025, 3, 14)
            )
            assert action.action_type == "comeback_message"
            sent = await make_executor(messenger=messenger, ledger=ledger, log=log).execute(TENANT, snapshot, action)
            again = await decide_action(
                snapshot,
                already_fired=lambda key: ledger.exists_sent("tenant-1", key),
                fired_within_days=ledger.exists_sent_within,
                today=date(2025, 3, 14)
            )
            return sent, again

        sent, again = asyncio.run(run())

        key = f"comeback:{PHONE}:2025-03-14"
        assert sent is True
        assert ledger.transitions == [(key, "pending"), (key, "sent")]
        assert len(log.entries) == 1
        assert again is None
