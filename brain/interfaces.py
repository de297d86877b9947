"""
Collaborator Interfaces for Brain Service

The brain core talks to storage, the message generator and the WhatsApp
channel only through these protocols. Supabase/httpx implementations live in
``utils``; tests use the in-memory fakes in ``testing/fakes.py``.
"""

from typing import Protocol, List, Optional, Dict, Any, runtime_checkable

from brain.models import (
    CheckinEvent,
    MessageEvent,
    ScoreSnapshot,
    ActionRecord,
    TenantDescriptor,
    ClientProfile,
    ConversationSignal,
    PromptContext
)


@runtime_checkable
class ActivityStore(Protocol):
    async def checkins(self, tenant_id: str, phone: str, window_days: int) -> List[CheckinEvent]:
        """Check-ins in the last window_days, most recent first."""
        ...

    async def messages(self, tenant_id: str, phone: str, window_days: int) -> List[MessageEvent]:
        """Conversation messages in the last window_days, most recent first."""
        ...


@runtime_checkable
class ScoreStore(Protocol):
    async def upsert(self, tenant_id: str, phone: str, snapshot: ScoreSnapshot) -> None:
        ...

    async def previous_motivation(self, tenant_id: str, phone: str) -> Optional[str]:
        ...

    async def set_motivation(self, tenant_id: str, phone: str, level: str) -> None:
        ...


@runtime_checkable
class ActionLedger(Protocol):
    async def insert_pending(self, record: ActionRecord) -> bool:
        """Claim the record's action key. False when the key is already pending or sent."""
        ...

    async def update_status(self, tenant_id: str, action_key: str, status: str, fields: Dict[str, Any]) -> None:
        ...

    async def exists_sent(self, tenant_id: str, action_key: str) -> bool:
        ...

    async def exists_sent_within(self, tenant_id: str, phone: str, action_type: str, days: int) -> bool:
        ...


@runtime_checkable
class MessageGenerator(Protocol):
    async def generate(self, prompt_context: PromptContext) -> Optional[str]:
        ...


@runtime_checkable
class Messenger(Protocol):
    async def send(self, channel_id: str, phone: str, text: str) -> None:
        """Deliver text to the client. Raises on failure."""
        ...


@runtime_checkable
class ConversationLog(Protocol):
    async def append(self, tenant_id: str, phone: str, role: str, text: str, metadata: Dict[str, Any]) -> None:
        ...


@runtime_checkable
class TenantDirectory(Protocol):
    async def list_connected(self) -> List[TenantDescriptor]:
        ...

    async def list_clients(self, tenant_id: str) -> List[ClientProfile]:
        ...


@runtime_checkable
class SignalStore(Protocol):
    async def insert_signals(self, tenant_id: str, phone: str, signals: List[ConversationSignal]) -> None:
        ...

    async def recent_signals(self, tenant_id: str, phone: str, limit: int) -> List[Dict[str, Any]]:
        """Latest signals as {'signal_type', 'confidence', 'created_at'} rows, most recent first."""
        ...
