"""
Database Script

This script handles the Supabase connection and every read/write the brain
needs: tenants, clients and profiles, check-ins, messages, client_scoring,
the brain_actions ledger and conversation_signals.

The query functions are synchronous (supabase-py); SupabaseBrainStore wraps
them with asyncio.to_thread to implement the brain's async collaborator
interfaces.
"""

import os
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Any

from supabase import create_client, Client
from dotenv import load_dotenv

from brain.models import (
    ActionRecord,
    CheckinEvent,
    ClientProfile,
    ConversationSignal,
    MessageEvent,
    ScoreSnapshot,
    TenantDescriptor
)
from utils.time_utils import parse_database_timestamp

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ["fitness_goals", "fitness_level", "injuries", "preferred_activities", "key_facts"]


def get_supabase_config() -> Dict[str, str]:
    """
    Get Supabase configuration from environment variables.

    Returns:
        Dictionary with 'url' and 'service_role_key'

    Raises:
        ValueError: If required environment variables are missing
    """
    url = os.getenv("SUPABASE_URL")
    service_role_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

    if not url:
        raise ValueError("SUPABASE_URL environment variable is required")
    if not service_role_key:
        raise ValueError("SUPABASE_SERVICE_ROLE_KEY environment variable is required")

    return {
        "url": url,
        "service_role_key": service_role_key
    }


def get_supabase_client() -> Client:
    """
    Create and return a Supabase client instance using the service role key.

    Returns:
        Supabase Client instance
    """
    config = get_supabase_config()
    client = create_client(config["url"], config["service_role_key"])
    logger.info("Successfully connected to Supabase")
    return client


def _utc_cutoff(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


# =============================================================================
# Tenants and clients
# =============================================================================

def fetch_connected_tenants(client: Optional[Client] = None) -> List[TenantDescriptor]:
    """
    Fetch tenants with a connected WhatsApp instance.

    Returns:
        List of TenantDescriptor
    """
    client = client or get_supabase_client()

    response = client.table("tenants")\
        .select("id, name, whatsapp_instance_name")\
        .eq("whatsapp_connected", True)\
        .not_.is_("whatsapp_instance_name", "null")\
        .execute()

    tenants = [
        TenantDescriptor(
            id=str(row["id"]),
            name=row.get("name") or "",
            whatsapp_instance_name=row["whatsapp_instance_name"]
        )
        for row in response.data or []
    ]
    logger.info(f"Fetched {len(tenants)} connected tenants")
    return tenants


def fetch_clients(tenant_id: str, client: Optional[Client] = None) -> List[ClientProfile]:
    """
    Fetch all clients of a tenant, merged with their profile data.

    Args:
        tenant_id: Tenant UUID

    Returns:
        List of ClientProfile (profile fields None when the client has no profile)
    """
    client = client or get_supabase_client()

    clients_response = client.table("clients")\
        .select("phone, name")\
        .eq("tenant_id", tenant_id)\
        .execute()

    profiles_response = client.table("client_profiles")\
        .select("phone, name, " + ", ".join(PROFILE_FIELDS))\
        .eq("tenant_id", tenant_id)\
        .execute()

    profiles = {row["phone"]: row for row in profiles_response.data or []}

    result = []
    seen = set()
    for row in clients_response.data or []:
        phone = row["phone"]
        if phone in seen:
            continue
        seen.add(phone)
        profile = profiles.get(phone, {})
        result.append(ClientProfile(
            phone=phone,
            name=row.get("name") or profile.get("name"),
            **{field: _as_text(profile.get(field)) for field in PROFILE_FIELDS}
        ))

    logger.debug(f"Fetched {len(result)} clients for tenant {tenant_id}")
    return result


def _as_text(value) -> Optional[str]:
    """Profile columns may be text, arrays or JSON; the prompt wants text."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value) or None
    if isinstance(value, dict):
        return ", ".join(f"{k}: {v}" for k, v in value.items()) or None
    return str(value)


# =============================================================================
# Activity history
# =============================================================================

def fetch_checkins(tenant_id: str, phone: str, window_days: int, client: Optional[Client] = None) -> List[CheckinEvent]:
    """
    Fetch check-ins of one client in the last window_days, most recent first.
    """
    client = client or get_supabase_client()

    response = client.table("checkins")\
        .select("created_at, workout_day")\
        .eq("tenant_id", tenant_id)\
        .eq("phone", phone)\
        .gt("created_at", _utc_cutoff(window_days))\
        .order("created_at", desc=True)\
        .execute()

    return [
        CheckinEvent(
            timestamp=parse_database_timestamp(row["created_at"]),
            workout_day=row.get("workout_day")
        )
        for row in response.data or []
    ]


def fetch_messages(tenant_id: str, phone: str, window_days: int, client: Optional[Client] = None) -> List[MessageEvent]:
    """
    Fetch conversation messages of one client in the last window_days, most recent first.
    """
    client = client or get_supabase_client()

    response = client.table("messages")\
        .select("created_at, role")\
        .eq("tenant_id", tenant_id)\
        .eq("phone", phone)\
        .gt("created_at", _utc_cutoff(window_days))\
        .order("created_at", desc=True)\
        .execute()

    return [
        MessageEvent(timestamp=parse_database_timestamp(row["created_at"]), role=row["role"])
        for row in response.data or []
    ]


def insert_message(
    tenant_id: str,
    phone: str,
    role: str,
    content: str,
    metadata: Optional[Dict[str, Any]] = None,
    client: Optional[Client] = None
) -> Optional[Dict]:
    """
    Append a message to the client's conversation.

    Returns:
        The inserted row, or None if the insert returned nothing
    """
    client = client or get_supabase_client()

    data = {
        "tenant_id": tenant_id,
        "phone": phone,
        "role": role,
        "content": content
    }
    if metadata:
        data["metadata"] = metadata

    response = client.table("messages")\
        .insert(data)\
        .execute()

    if response.data:
        return response.data[0]
    logger.warning(f"Message insert returned no data for {phone} ({tenant_id})")
    return None


# =============================================================================
# client_scoring
# =============================================================================

def fetch_motivation_level(tenant_id: str, phone: str, client: Optional[Client] = None) -> Optional[str]:
    """motivation_level of the client's current snapshot, or None if never scored."""
    client = client or get_supabase_client()

    response = client.table("client_scoring")\
        .select("motivation_level")\
        .eq("tenant_id", tenant_id)\
        .eq("phone", phone)\
        .limit(1)\
        .execute()

    if response.data:
        return response.data[0].get("motivation_level")
    return None


def upsert_client_scoring(snapshot: ScoreSnapshot, client: Optional[Client] = None) -> bool:
    """
    Write or replace the client's snapshot (one row per tenant_id, phone).

    Returns:
        True if the row was written
    """
    client = client or get_supabase_client()

    payload = {
        "tenant_id": snapshot.tenant_id,
        "phone": snapshot.phone,
        "churn_risk": snapshot.churn_risk,
        "engagement_score": snapshot.engagement_score,
        "consistency_score": snapshot.consistency_score,
        "motivation_level": snapshot.motivation_level,
        "preferred_days": snapshot.preferred_days,
        "preferred_time": snapshot.preferred_time,
        "avg_checkins_per_week": snapshot.avg_checkins_per_week,
        "days_since_last_checkin": snapshot.days_since_last_checkin,
        "total_checkins_30d": snapshot.total_checkins_30d,
        "checkin_trend": snapshot.checkin_trend,
        "weekly_checkins_history": snapshot.weekly_history,
        "scoring_data": {
            "days_since_last_checkin": snapshot.days_since_last_checkin,
            "days_since_last_message": snapshot.days_since_last_message,
            "total_checkins_30d": snapshot.total_checkins_30d,
            "inbound_messages_30d": snapshot.inbound_messages_30d,
            "weekly_history": snapshot.weekly_history,
            "checkin_trend": snapshot.checkin_trend,
            "preferred_hour": snapshot.preferred_hour,
            "config_version": snapshot.config_version
        },
        "last_scored_at": snapshot.scored_at.isoformat()
    }

    response = client.table("client_scoring")\
        .upsert(payload, on_conflict="tenant_id,phone")\
        .execute()

    if response.data:
        return True
    logger.warning(f"No data returned for scoring upsert of {snapshot.phone} ({snapshot.tenant_id})")
    return False


def update_motivation_level(tenant_id: str, phone: str, level: str, client: Optional[Client] = None) -> bool:
    """
    Write only motivation_level, creating the row if the client was never scored.
    """
    client = client or get_supabase_client()

    response = client.table("client_scoring")\
        .upsert({"tenant_id": tenant_id, "phone": phone, "motivation_level": level}, on_conflict="tenant_id,phone")\
        .execute()
    return bool(response.data)


def fetch_client_scores(tenant_id: str, client: Optional[Client] = None) -> List[Dict]:
    """
    Fetch all snapshots of a tenant with the client's name, riskiest first (dashboard).
    """
    try:
        client = client or get_supabase_client()

        response = client.table("client_scoring")\
            .select("*")\
            .eq("tenant_id", tenant_id)\
            .order("churn_risk", desc=True)\
            .execute()
        scores = response.data or []

        names = {p.phone: p.name for p in fetch_clients(tenant_id, client=client)}
        for row in scores:
            row["name"] = names.get(row.get("phone"))

        logger.info(f"Fetched {len(scores)} client scores for tenant {tenant_id}")
        return scores
    except Exception as e:
        logger.error(f"Failed to fetch client scores for tenant {tenant_id}: {e}")
        return []


# =============================================================================
# brain_actions ledger
# =============================================================================

def insert_brain_action(record: ActionRecord, client: Optional[Client] = None) -> bool:
    """
    Claim an action key by inserting a 'pending' ledger row.

    The insert is skipped when (tenant_id, action_key) already exists. A row
    left 'failed' by an earlier cycle is reclaimed back to 'pending'; a row that
    is 'pending' or 'sent' is never touched.

    Returns:
        True if this call owns the key and may dispatch
    """
    client = client or get_supabase_client()

    payload = {
        "tenant_id": record.tenant_id,
        "phone": record.phone,
        "action_key": record.action_key,
        "action_type": record.action_type,
        "reason": record.reason,
        "trigger_conditions": record.trigger_conditions,
        "message_content": record.message_content,
        "status": "pending"
    }
    if record.created_at:
        payload["created_at"] = record.created_at.isoformat()

    response = client.table("brain_actions")\
        .upsert(payload, on_conflict="tenant_id,action_key", ignore_duplicates=True)\
        .execute()
    if response.data:
        return True

    reclaim = dict(payload, skip_reason=None, sent_at=None)
    response = client.table("brain_actions")\
        .update(reclaim)\
        .eq("tenant_id", record.tenant_id)\
        .eq("action_key", record.action_key)\
        .eq("status", "failed")\
        .execute()
    if response.data:
        logger.info(f"Reclaimed failed action {record.action_key}")
        return True
    return False


def update_brain_action(tenant_id: str, action_key: str, status: str, fields: Optional[Dict[str, Any]] = None, client: Optional[Client] = None) -> None:
    """Set the status (and extra columns such as sent_at or skip_reason) of a ledger row."""
    client = client or get_supabase_client()

    data = dict(fields or {}, status=status)
    client.table("brain_actions")\
        .update(data)\
        .eq("tenant_id", tenant_id)\
        .eq("action_key", action_key)\
        .execute()


def brain_action_sent(tenant_id: str, action_key: str, client: Optional[Client] = None) -> bool:
    """True if the action key was already delivered for this tenant."""
    client = client or get_supabase_client()

    response = client.table("brain_actions")\
        .select("id")\
        .eq("tenant_id", tenant_id)\
        .eq("action_key", action_key)\
        .eq("status", "sent")\
        .limit(1)\
        .execute()
    return bool(response.data)


def brain_action_sent_within(tenant_id: str, phone: str, action_type: str, days: int, client: Optional[Client] = None) -> bool:
    """True if an action of this type was delivered to the client in the last days."""
    client = client or get_supabase_client()

    response = client.table("brain_actions")\
        .select("id")\
        .eq("tenant_id", tenant_id)\
        .eq("phone", phone)\
        .eq("action_type", action_type)\
        .eq("status", "sent")\
        .gt("created_at", _utc_cutoff(days))\
        .limit(1)\
        .execute()
    return bool(response.data)


def fetch_brain_actions(tenant_id: str, days: int = 30, limit: Optional[int] = None, client: Optional[Client] = None) -> List[Dict]:
    """
    Fetch ledger rows of a tenant created in the last days, newest first (dashboard).
    """
    try:
        client = client or get_supabase_client()

        query = client.table("brain_actions")\
            .select("*")\
            .eq("tenant_id", tenant_id)\
            .gt("created_at", _utc_cutoff(days))\
            .order("created_at", desc=True)
        if limit:
            query = query.limit(limit)
        response = query.execute()

        return response.data or []
    except Exception as e:
        logger.error(f"Failed to fetch brain actions for tenant {tenant_id}: {e}")
        return []


# =============================================================================
# conversation_signals
# =============================================================================

def insert_conversation_signals(tenant_id: str, phone: str, signals: List[ConversationSignal], client: Optional[Client] = None) -> int:
    """
    Store the signals detected in one message.

    Returns:
        Number of rows inserted
    """
    if not signals:
        return 0
    client = client or get_supabase_client()

    rows = [
        {
            "tenant_id": tenant_id,
            "phone": phone,
            "signal_type": signal.signal_type,
            "signal_text": signal.text,
            "keywords_matched": signal.keywords,
            "confidence": signal.confidence
        }
        for signal in signals
    ]
    response = client.table("conversation_signals")\
        .insert(rows)\
        .execute()
    return len(response.data or [])


def fetch_recent_signals(tenant_id: str, phone: str, limit: int = 10, client: Optional[Client] = None) -> List[Dict]:
    """Latest signals of one client, most recent first."""
    client = client or get_supabase_client()

    response = client.table("conversation_signals")\
        .select("signal_type, signal_text, keywords_matched, confidence, created_at")\
        .eq("tenant_id", tenant_id)\
        .eq("phone", phone)\
        .order("created_at", desc=True)\
        .limit(limit)\
        .execute()
    return response.data or []


def fetch_tenant_signals(tenant_id: str, days: int = 30, client: Optional[Client] = None) -> List[Dict]:
    """All signals of a tenant in the last days (dashboard)."""
    try:
        client = client or get_supabase_client()

        response = client.table("conversation_signals")\
            .select("phone, signal_type, confidence, created_at")\
            .eq("tenant_id", tenant_id)\
            .gt("created_at", _utc_cutoff(days))\
            .execute()
        return response.data or []
    except Exception as e:
        logger.error(f"Failed to fetch conversation signals for tenant {tenant_id}: {e}")
        return []


# =============================================================================
# Async store
# =============================================================================

class SupabaseBrainStore:
    """
    Supabase implementation of the brain's storage interfaces (ActivityStore,
    ScoreStore, ActionLedger, ConversationLog, TenantDirectory, SignalStore).

    One client is created at construction and shared by every call.
    """

    def __init__(self, client: Optional[Client] = None):
        self.client = client or get_supabase_client()

    # TenantDirectory
    async def list_connected(self) -> List[TenantDescriptor]:
        return await asyncio.to_thread(fetch_connected_tenants, client=self.client)

    async def list_clients(self, tenant_id: str) -> List[ClientProfile]:
        return await asyncio.to_thread(fetch_clients, tenant_id, client=self.client)

    # ActivityStore
    async def checkins(self, tenant_id: str, phone: str, window_days: int) -> List[CheckinEvent]:
        return await asyncio.to_thread(fetch_checkins, tenant_id, phone, window_days, client=self.client)

    async def messages(self, tenant_id: str, phone: str, window_days: int) -> List[MessageEvent]:
        return await asyncio.to_thread(fetch_messages, tenant_id, phone, window_days, client=self.client)

    # ScoreStore
    async def upsert(self, tenant_id: str, phone: str, snapshot: ScoreSnapshot) -> None:
        await asyncio.to_thread(upsert_client_scoring, snapshot, client=self.client)

    async def previous_motivation(self, tenant_id: str, phone: str) -> Optional[str]:
        return await asyncio.to_thread(fetch_motivation_level, tenant_id, phone, client=self.client)

    async def set_motivation(self, tenant_id: str, phone: str, level: str) -> None:
        await asyncio.to_thread(update_motivation_level, tenant_id, phone, level, client=self.client)

    # ActionLedger
    async def insert_pending(self, record: ActionRecord) -> bool:
        return await asyncio.to_thread(insert_brain_action, record, client=self.client)

    async def update_status(self, tenant_id: str, action_key: str, status: str, fields: Dict[str, Any]) -> None:
        await asyncio.to_thread(update_brain_action, tenant_id, action_key, status, fields, client=self.client)

    async def exists_sent(self, tenant_id: str, action_key: str) -> bool:
        return await asyncio.to_thread(brain_action_sent, tenant_id, action_key, client=self.client)

    async def exists_sent_within(self, tenant_id: str, phone: str, action_type: str, days: int) -> bool:
        return await asyncio.to_thread(brain_action_sent_within, tenant_id, phone, action_type, days, client=self.client)

    # ConversationLog
    async def append(self, tenant_id: str, phone: str, role: str, text: str, metadata: Dict[str, Any]) -> None:
        await asyncio.to_thread(insert_message, tenant_id, phone, role, text, metadata, client=self.client)

    # SignalStore
    async def insert_signals(self, tenant_id: str, phone: str, signals: List[ConversationSignal]) -> None:
        await asyncio.to_thread(insert_conversation_signals, tenant_id, phone, signals, client=self.client)

    async def recent_signals(self, tenant_id: str, phone: str, limit: int) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(fetch_recent_signals, tenant_id, phone, limit, client=self.client)

    # Dashboard reads
    async def overview_rows(self, tenant_id: str, days: int = 30, recent_limit: int = 30) -> Dict[str, List[Dict]]:
        scores, actions, signals, recent = await asyncio.gather(
            asyncio.to_thread(fetch_client_scores, tenant_id, client=self.client),
            asyncio.to_thread(fetch_brain_actions, tenant_id, days, client=self.client),
            asyncio.to_thread(fetch_tenant_signals, tenant_id, days, client=self.client),
            asyncio.to_thread(fetch_brain_actions, tenant_id, days, recent_limit, client=self.client)
        )
        return {"scores": scores, "actions": actions, "signals": signals, "recent_actions": recent}
