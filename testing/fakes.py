"""
In-memory fakes of the brain's collaborators, shared by the unit tests.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Any

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from brain.models import (
    ActionRecord,
    CheckinEvent,
    ClientProfile,
    MessageEvent,
    ScoreSnapshot,
    TenantDescriptor
)

NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)  # a Friday


def checkins_days_ago(*days: float, now: datetime = NOW) -> List[CheckinEvent]:
    return [CheckinEvent(timestamp=now - timedelta(days=d)) for d in days]


def messages_days_ago(*days: float, role: str = "user", now: datetime = NOW) -> List[MessageEvent]:
    return [MessageEvent(timestamp=now - timedelta(days=d), role=role) for d in days]


def make_snapshot(**overrides) -> ScoreSnapshot:
    """A healthy, active client; override only what the test is about."""
    values = dict(
        tenant_id="tenant-1",
        phone="+393331234567",
        churn_risk=0.1,
        engagement_score=0.5,
        consistency_score=0.4,
        motivation_level="medium",
        days_since_last_checkin=1,
        days_since_last_message=1,
        total_checkins_30d=4,
        checkin_trend="stable",
        scored_at=NOW
    )
    values.update(overrides)
    return ScoreSnapshot(**values)


async def no_sleep(seconds: float) -> None:
    return None


class RecordingSleep:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeActivityStore:
    def __init__(self, checkins: Dict[str, List[CheckinEvent]] = None, messages: Dict[str, List[MessageEvent]] = None, failing_phones=()):
        self._checkins = checkins or {}
        self._messages = messages or {}
        self.failing_phones = set(failing_phones)
        self.requests: List[tuple] = []

    async def checkins(self, tenant_id: str, phone: str, window_days: int) -> List[CheckinEvent]:
        self.requests.append(("checkins", tenant_id, phone, window_days))
        if phone in self.failing_phones:
            raise RuntimeError(f"activity store unavailable for {phone}")
        return list(self._checkins.get(phone, []))

    async def messages(self, tenant_id: str, phone: str, window_days: int) -> List[MessageEvent]:
        self.requests.append(("messages", tenant_id, phone, window_days))
        return list(self._messages.get(phone, []))


class FakeScoreStore:
    def __init__(self, motivations: Dict[tuple, str] = None):
        self.snapshots: Dict[tuple, ScoreSnapshot] = {}
        self.motivations: Dict[tuple, str] = dict(motivations or {})

    async def upsert(self, tenant_id: str, phone: str, snapshot: ScoreSnapshot) -> None:
        self.snapshots[(tenant_id, phone)] = snapshot
        self.motivations[(tenant_id, phone)] = snapshot.motivation_level

    async def previous_motivation(self, tenant_id: str, phone: str) -> Optional[str]:
        return self.motivations.get((tenant_id, phone))

    async def set_motivation(self, tenant_id: str, phone: str, level: str) -> None:
        self.motivations[(tenant_id, phone)] = level


class FakeLedger:
    """Ledger with the same insert-or-skip semantics as the Supabase one."""

    def __init__(self, now: datetime = NOW):
        self.now = now
        self.records: Dict[tuple, ActionRecord] = {}
        self.transitions: List[tuple] = []

    async def insert_pending(self, record: ActionRecord) -> bool:
        key = (record.tenant_id, record.action_key)
        existing = self.records.get(key)
        if existing is not None and existing.status != "failed":
            return False
        self.records[key] = record.model_copy(update={"status": "pending", "skip_reason": None})
        self.transitions.append((record.action_key, "pending"))
        return True

    async def update_status(self, tenant_id: str, action_key: str, status: str, fields: Dict[str, Any]) -> None:
        key = (tenant_id, action_key)
        self.records[key] = self.records[key].model_copy(update=dict(fields, status=status))
        self.transitions.append((action_key, status))

    async def exists_sent(self, tenant_id: str, action_key: str) -> bool:
        record = self.records.get((tenant_id, action_key))
        return record is not None and record.status == "sent"

    async def exists_sent_within(self, tenant_id: str, phone: str, action_type: str, days: int) -> bool:
        cutoff = self.now - timedelta(days=days)
        return any(
            r.tenant_id == tenant_id and r.phone == phone and r.action_type == action_type
            and r.status == "sent" and r.created_at is not None and r.created_at > cutoff
            for r in self.records.values()
        )

    def add_sent(self, tenant_id: str, phone: str, action_key: str, action_type: str, created_at: datetime = NOW):
        self.records[(tenant_id, action_key)] = ActionRecord(
            tenant_id=tenant_id,
            phone=phone,
            action_key=action_key,
            action_type=action_type,
            reason="earlier cycle",
            message_content="Ciao!",
            status="sent",
            created_at=created_at,
            sent_at=created_at
        )


class FakeGenerator:
    def __init__(self, text: Optional[str] = "Ciao! Ti aspettiamo in palestra 💪", error: Exception = None):
        self.text = text
        self.error = error
        self.prompts = []

    async def generate(self, prompt_context) -> Optional[str]:
        self.prompts.append(prompt_context)
        if self.error is not None:
            raise self.error
        return self.text


class FakeMessenger:
    def __init__(self, failing_phones=()):
        self.failing_phones = set(failing_phones)
        self.sent: List[tuple] = []

    async def send(self, channel_id: str, phone: str, text: str) -> None:
        if phone in self.failing_phones:
            raise ConnectionError("Evolution API returned 500")
        self.sent.append((channel_id, phone, text))


class FakeConversationLog:
    def __init__(self):
        self.entries: List[tuple] = []

    async def append(self, tenant_id: str, phone: str, role: str, text: str, metadata: Dict[str, Any]) -> None:
        self.entries.append((tenant_id, phone, role, text, metadata))


class FakeTenantDirectory:
    def __init__(self, tenants: List[TenantDescriptor] = None, clients: Dict[str, List[ClientProfile]] = None, failing_tenants=()):
        self.tenants = tenants or []
        self.clients = clients or {}
        self.failing_tenants = set(failing_tenants)
        self.list_calls = 0

    async def list_connected(self) -> List[TenantDescriptor]:
        self.list_calls += 1
        return list(self.tenants)

    async def list_clients(self, tenant_id: str) -> List[ClientProfile]:
        if tenant_id in self.failing_tenants:
            raise RuntimeError(f"tenant {tenant_id} unavailable")
        return list(self.clients.get(tenant_id, []))


class FakeSignalStore:
    def __init__(self, fail_insert: bool = False):
        self.rows: List[Dict[str, Any]] = []
        self.fail_insert = fail_insert

    async def insert_signals(self, tenant_id: str, phone: str, signals) -> None:
        if self.fail_insert:
            raise RuntimeError("insert failed")
        for signal in signals:
            # newest first, like the database query
            self.rows.insert(0, {
                "tenant_id": tenant_id,
                "phone": phone,
                "signal_type": signal.signal_type,
                "confidence": signal.confidence
            })

    async def recent_signals(self, tenant_id: str, phone: str, limit: int) -> List[Dict[str, Any]]:
        rows = [r for r in self.rows if r["tenant_id"] == tenant_id and r["phone"] == phone]
        return rows[:limit]
