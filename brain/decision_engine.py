"""
Decision Engine

This module implements the outreach decision ladder: given a fresh
ScoreSnapshot it picks at most one action for the client.

Rules are evaluated top to bottom and each one is its own suppression domain:
- comeback, motivation, support and streak are suppressed when their
  same-day action key was already sent
- check_progress is suppressed when any check_progress was sent in the last
  14 days

A suppressed rule yields nothing and evaluation moves on to the next rule.
The first rule that matches and is not suppressed wins.
"""

import inspect
import logging
from datetime import date
from typing import Optional, Callable, Dict, Any, Union, Awaitable

from brain.config_loader import load_config
from brain.models import (
    ScoreSnapshot,
    ClientProfile,
    Action,
    ComebackAction,
    MotivationAction,
    SupportAction,
    ProgressAction,
    StreakAction
)
from brain.templates import build_prompt_context

logger = logging.getLogger(__name__)

BoolLookup = Callable[..., Union[bool, Awaitable[bool]]]


def action_key(prefix: str, phone: str, today: Union[date, str]) -> str:
    """Deterministic key of one outreach instance, e.g. 'comeback:+39333...:2025-03-14'."""
    day = today.isoformat() if isinstance(today, date) else str(today)
    return f"{prefix}:{phone}:{day}"


async def _resolve(value):
    if inspect.isawaitable(value):
        return await value
    return value


async def decide_action(
    snapshot: ScoreSnapshot,
    already_fired: BoolLookup,
    fired_within_days: BoolLookup,
    today: Union[date, str],
    profile: Optional[ClientProfile] = None,
    tenant_name: str = "",
    config: Optional[Dict[str, Any]] = None
) -> Optional[Action]:
    """
    Decide which outreach, if any, the client should receive this cycle.

    Args:
        snapshot: Fresh score snapshot of the client
        already_fired: already_fired(action_key) -> bool, True when the key was sent
        fired_within_days: fired_within_days(tenant_id, phone, action_type, days) -> bool
        today: Local date used in the action keys
        profile: Optional client profile (used for the prompt context)
        tenant_name: Gym name (used for the prompt context)
        config: Optional configuration override

    Both lookups may be plain functions or coroutines.

    Returns:
        One Action variant, or None if no action is needed
    """
    rules = (config or load_config())["decision_engine"]

    phone = snapshot.phone
    churn = snapshot.churn_risk
    engagement = snapshot.engagement_score
    consistency = snapshot.consistency_score
    days_inactive = snapshot.days_since_last_checkin
    motivation = snapshot.motivation_level
    trend = snapshot.checkin_trend

    def context(kind: str):
        return build_prompt_context(kind, snapshot, profile, tenant_name)

    # Rule 1: high churn risk and inactive
    comeback = rules["comeback"]
    if churn >= comeback["min_churn_risk"] and days_inactive >= comeback["min_days_inactive"]:
        key = action_key("comeback", phone, today)
        if await _resolve(already_fired(key)):
            logger.debug(f"comeback suppressed for {phone}: {key} already sent")
        else:
            return ComebackAction(
                reason=f"churn_risk={churn}, inactive {days_inactive}d, motivation={motivation}",
                action_key=key,
                prompt_context=context("comeback")
            )

    # Rule 2: medium churn risk with a declining trend
    if churn >= rules["motivation"]["min_churn_risk"] and trend == "down":
        key = action_key("motivation", phone, today)
        if await _resolve(already_fired(key)):
            logger.debug(f"motivation suppressed for {phone}: {key} already sent")
        else:
            return MotivationAction(
                reason=f"churn_risk={churn}, trend=down, engagement={engagement}",
                action_key=key,
                prompt_context=context("motivation")
            )

    # Rule 3: low motivation while still active
    if motivation == "low" and days_inactive <= rules["support"]["max_days_inactive"]:
        key = action_key("support", phone, today)
        if await _resolve(already_fired(key)):
            logger.debug(f"support suppressed for {phone}: {key} already sent")
        else:
            return SupportAction(
                reason=f"motivation=low, still active ({days_inactive}d since last check-in)",
                action_key=key,
                prompt_context=context("support")
            )

    # Rule 4: engaged and consistent, ask for feedback (rolling cooldown, not a same-day key)
    progress = rules["progress"]
    if (
        engagement >= progress["min_engagement"]
        and consistency >= progress["min_consistency"]
        and snapshot.total_checkins_30d >= progress["min_checkins_30d"]
    ):
        cooldown = progress["cooldown_days"]
        if await _resolve(fired_within_days(snapshot.tenant_id, phone, "check_progress", cooldown)):
            logger.debug(f"check_progress suppressed for {phone}: sent within {cooldown} days")
        else:
            return ProgressAction(
                reason=f"engagement={engagement}, consistency={consistency}, {snapshot.total_checkins_30d} checkins/30d",
                action_key=action_key("progress", phone, today),
                prompt_context=context("progress")
            )

    # Rule 5: consistent client who skipped a few days
    streak = rules["streak"]
    if (
        streak["min_days_inactive"] <= days_inactive <= streak["max_days_inactive"]
        and consistency >= streak["min_consistency"]
    ):
        key = action_key("streak", phone, today)
        if await _resolve(already_fired(key)):
            logger.debug(f"streak suppressed for {phone}: {key} already sent")
        else:
            return StreakAction(
                reason=f"consistency={consistency} but {days_inactive}d without check-in, streak likely broken",
                action_key=key,
                prompt_context=context("streak")
            )

    return None
