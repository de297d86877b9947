"""
Pydantic Models for Brain Service

This module defines the activity inputs, the per-client score snapshot, the
action variants produced by the decision engine, the action ledger record and
the request/response models of the brain API.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Literal, Union, Annotated
from datetime import datetime


MotivationLevel = Literal["low", "medium", "high"]
CheckinTrend = Literal["up", "stable", "down"]
ActionStatus = Literal["pending", "sent", "failed"]


class CheckinEvent(BaseModel):
    """A client check-in at the gym."""
    timestamp: datetime
    workout_day: Optional[str] = None  # label of the workout plan day, if any


class MessageEvent(BaseModel):
    """A conversation message. role 'user' is inbound, 'assistant' outbound."""
    timestamp: datetime
    role: str


class TenantDescriptor(BaseModel):
    """A gym with a connected WhatsApp channel."""
    id: str
    name: str = ""
    whatsapp_instance_name: str


class ClientProfile(BaseModel):
    """Profile data used to personalise outreach. Only phone is required."""
    phone: str
    name: Optional[str] = None
    fitness_goals: Optional[str] = None
    fitness_level: Optional[str] = None
    injuries: Optional[str] = None
    preferred_activities: Optional[str] = None
    key_facts: Optional[str] = None


class ScoreSnapshot(BaseModel):
    """Behavioural metrics for one client, overwritten every cycle."""
    tenant_id: str
    phone: str
    churn_risk: float = Field(ge=0.0, le=1.0)
    engagement_score: float = Field(ge=0.0, le=1.0)
    consistency_score: float = Field(ge=0.0, le=1.0)
    motivation_level: MotivationLevel = "medium"
    preferred_days: List[str] = Field(default_factory=list)
    preferred_hour: Optional[int] = None
    preferred_time: Optional[str] = None  # "HH:00"
    avg_checkins_per_week: float = 0.0
    days_since_last_checkin: int
    days_since_last_message: int
    total_checkins_30d: int = 0
    inbound_messages_30d: int = 0
    checkin_trend: CheckinTrend = "stable"
    weekly_history: List[int] = Field(default_factory=list, description="Check-ins per week, oldest first")
    scored_at: datetime
    config_version: Optional[str] = None


# =============================================================================
# Actions (one variant per outreach kind)
# =============================================================================

class PromptContext(BaseModel):
    """Everything the message generator needs to write one outreach message."""
    kind: str
    system_prompt: str
    prompt: str
    client_info: Dict[str, Any] = Field(default_factory=dict)


class _BaseAction(BaseModel):
    reason: str
    action_key: str
    prompt_context: PromptContext


class ComebackAction(_BaseAction):
    """High churn risk and inactive for several days."""
    action_type: Literal["comeback_message"] = "comeback_message"


class MotivationAction(_BaseAction):
    """Medium churn risk with check-ins trending down."""
    action_type: Literal["personalized_motivation"] = "personalized_motivation"


class SupportAction(_BaseAction):
    """Low motivation while still active: offer to adjust the workout plan."""
    action_type: Literal["scheda_adjust"] = "scheda_adjust"


class ProgressAction(_BaseAction):
    """Engaged and consistent client: ask for feedback on the plan."""
    action_type: Literal["check_progress"] = "check_progress"


class StreakAction(_BaseAction):
    """Very consistent client who skipped a few days."""
    action_type: Literal["streak_recovery"] = "streak_recovery"


Action = Annotated[
    Union[ComebackAction, MotivationAction, SupportAction, ProgressAction, StreakAction],
    Field(discriminator="action_type")
]


class ActionRecord(BaseModel):
    """Row of the brain_actions ledger (audit trail and dedup source of truth)."""
    tenant_id: str
    phone: str
    action_key: str
    action_type: str
    reason: str
    trigger_conditions: Dict[str, Any] = Field(default_factory=dict)
    message_content: str
    status: ActionStatus = "pending"
    skip_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None


class ConversationSignal(BaseModel):
    """A behavioural signal detected in an inbound message."""
    signal_type: str
    keywords: List[str]
    confidence: float = Field(ge=0.0, le=1.0)
    motivation_impact: float
    text: str


# =============================================================================
# API request/response models
# =============================================================================

class RunResponse(BaseModel):
    """Response of a manual brain run."""
    actions_executed: int


class StatusResponse(BaseModel):
    """Current state of the cycle orchestrator."""
    is_running: bool
    initialized: bool
    last_trigger: Optional[str] = None
    last_run_at: Optional[str] = None
    last_actions_executed: Optional[int] = None


class AnalyzeMessageRequest(BaseModel):
    """Request model for the real-time conversation analyzer."""
    tenant_id: str
    phone: str
    text: str


class AnalyzeMessageResponse(BaseModel):
    """Signals found in the message and the motivation level written, if any."""
    signals: List[ConversationSignal] = Field(default_factory=list)
    motivation_level: Optional[MotivationLevel] = None
