"""
Client Scoring Engine

This module turns a client's raw activity history into a ScoreSnapshot:
- churn_risk: likelihood of dropping out (0.0 = safe, 1.0 = gone)
- engagement_score: intensity of recent interaction
- consistency_score: regularity of the check-in cadence
- preferred_days / preferred_hour: when the client usually trains
- checkin_trend: up / stable / down over the last four weeks

compute_score_snapshot() is a pure function: persistence is the caller's job.
"""

import math
import logging
from collections import Counter
from datetime import datetime, timedelta, tzinfo
from typing import List, Optional, Dict, Any, Tuple

from brain.config_loader import load_config
from brain.models import CheckinEvent, MessageEvent, ScoreSnapshot
from utils.time_utils import get_local_timezone

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']
SECONDS_PER_DAY = 24 * 60 * 60


def round_half_up(value: float, digits: int = 2) -> float:
    """Round halves away from zero (0.125 -> 0.13) instead of Python's banker's rounding."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def _days_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / SECONDS_PER_DAY


def days_since(now: datetime, moment: Optional[datetime], sentinel: int) -> int:
    """Whole days elapsed since moment, or sentinel when there is no moment."""
    if moment is None:
        return sentinel
    return math.floor(_days_between(now, moment))


def weekly_history(checkins: List[CheckinEvent], now: datetime, weeks: int = 4) -> List[int]:
    """
    Count check-ins in consecutive 7-day windows ending at now.

    Returns:
        List of counts, oldest week first
    """
    history = []
    for w in range(weeks):
        week_start = now - timedelta(days=(w + 1) * 7)
        week_end = now - timedelta(days=w * 7)
        count = sum(1 for c in checkins if week_start <= c.timestamp < week_end)
        history.insert(0, count)
    return history


def checkin_trend(history: List[int], config: Optional[Dict[str, Any]] = None) -> str:
    """
    Compare the two most recent weeks against the two before them.

    Multiplying instead of dividing keeps older == 0 well defined.
    """
    trend_config = (config or load_config())["scoring"]["trend"]
    if len(history) < 4:
        return "stable"

    recent = history[3] + history[2]
    older = history[1] + history[0]
    if recent > older * trend_config["up_ratio"]:
        return "up"
    if recent < older * trend_config["down_ratio"]:
        return "down"
    return "stable"


def consistency_score(
    checkins: List[CheckinEvent],
    config: Optional[Dict[str, Any]] = None,
    rounded: bool = True
) -> float:
    """
    Regularity of the check-in cadence: low spread between gaps = high consistency.

    Args:
        checkins: Check-ins in any order
        rounded: Round to 2 decimals; churn thresholds compare the raw value

    Returns:
        Score in [0, 1]
    """
    consistency_config = (config or load_config())["scoring"]["consistency"]

    if len(checkins) >= consistency_config["min_checkins"]:
        ordered = sorted((c.timestamp for c in checkins), reverse=True)
        intervals = [_days_between(ordered[i], ordered[i + 1]) for i in range(len(ordered) - 1)]
        avg_interval = sum(intervals) / len(intervals)
        variance = sum((gap - avg_interval) ** 2 for gap in intervals) / len(intervals)
        std_dev = math.sqrt(variance)
        score = max(0.0, min(1.0, 1 - (std_dev / (avg_interval + 1))))
    elif checkins:
        score = consistency_config["few_checkins"]
    else:
        score = consistency_config["no_checkins"]

    return round_half_up(score) if rounded else score


def recency_score(days_since_last_checkin: int, config: Optional[Dict[str, Any]] = None) -> float:
    engagement_config = (config or load_config())["scoring"]["engagement"]
    for max_days, score in engagement_config["recency_steps"]:
        if days_since_last_checkin <= max_days:
            return score
    return engagement_config["recency_floor"]


def engagement_score(
    inbound_messages_30d: int,
    checkins_30d: int,
    days_since_last_checkin: int,
    config: Optional[Dict[str, Any]] = None,
    rounded: bool = True
) -> float:
    """Weighted mix of message volume, check-in volume and recency."""
    config = config or load_config()
    engagement_config = config["scoring"]["engagement"]

    msg_score = min(1, inbound_messages_30d / engagement_config["message_cap"])
    checkin_score = min(1, checkins_30d / engagement_config["checkin_cap"])
    recency = recency_score(days_since_last_checkin, config)

    score = (
        msg_score * engagement_config["message_weight"]
        + checkin_score * engagement_config["checkin_weight"]
        + recency * engagement_config["recency_weight"]
    )
    return round_half_up(score) if rounded else score


def churn_risk(
    days_since_last_checkin: int,
    trend: str,
    avg_checkins_per_week: float,
    motivation_level: str,
    days_since_last_message: int,
    consistency: float,
    config: Optional[Dict[str, Any]] = None
) -> Tuple[float, Dict[str, float]]:
    """
    Additive churn model.

    Returns:
        Tuple of (churn_risk rounded to 2 decimals, contribution of each factor)
    """
    churn_config = (config or load_config())["scoring"]["churn"]
    factors = {}

    risk = churn_config["base"]

    # Inactivity
    inactivity = 0.0
    for min_days, penalty in churn_config["inactivity_penalties"]:
        if days_since_last_checkin > min_days:
            inactivity = penalty
            break
    risk += inactivity
    factors["inactivity"] = inactivity

    # Declining trend
    trend_penalty = 0.0
    if trend == "down":
        trend_penalty = churn_config["trend_down"]
    elif trend == "stable" and avg_checkins_per_week < churn_config["low_frequency_per_week"]:
        trend_penalty = churn_config["trend_stable_low_frequency"]
    risk += trend_penalty
    factors["trend"] = trend_penalty

    # Motivation
    motivation_penalty = churn_config["motivation"].get(motivation_level, 0.0)
    risk += motivation_penalty
    factors["motivation"] = motivation_penalty

    # Message silence
    silence = 0.0
    for min_days, penalty in churn_config["message_silence_penalties"]:
        if days_since_last_message > min_days:
            silence = penalty
            break
    risk += silence
    factors["message_silence"] = silence

    # Low consistency
    low_consistency = churn_config["low_consistency"] if consistency < churn_config["low_consistency_threshold"] else 0.0
    risk += low_consistency
    factors["consistency"] = low_consistency

    return round_half_up(max(0.0, min(1.0, risk))), factors


def preferred_schedule(checkins: List[CheckinEvent], tz: tzinfo, top_days: int = 3) -> Tuple[List[str], Optional[int]]:
    """
    Most frequent weekdays and hour of day across check-ins.

    Ties between days keep the order in which days are first seen (most recent
    check-in first); ties between hours go to the earlier hour.
    """
    day_count = Counter()
    hour_count = Counter()
    for c in sorted(checkins, key=lambda e: e.timestamp, reverse=True):
        local = c.timestamp.astimezone(tz)
        day_count[WEEKDAY_NAMES[local.weekday()]] += 1
        hour_count[local.hour] += 1

    preferred_days = [day for day, _ in sorted(day_count.items(), key=lambda item: -item[1])[:top_days]]

    preferred_hour = None
    if hour_count:
        preferred_hour = sorted(sorted(hour_count.items()), key=lambda item: -item[1])[0][0]

    return preferred_days, preferred_hour


def compute_score_snapshot(
    tenant_id: str,
    phone: str,
    checkins: List[CheckinEvent],
    messages: List[MessageEvent],
    previous_motivation: Optional[str],
    now: datetime,
    config: Optional[Dict[str, Any]] = None,
    tz: Optional[tzinfo] = None
) -> ScoreSnapshot:
    """
    Compute the behavioural snapshot of one client.

    Args:
        tenant_id: Tenant UUID
        phone: Client phone number
        checkins: Check-ins in the lookback window (60 days by default), any order
        messages: Conversation messages in the last 30 days, any order
        previous_motivation: motivation_level of the previous snapshot (None -> 'medium')
        now: Reference time (timezone-aware)
        config: Optional configuration override (defaults to load_config())
        tz: Timezone for weekday/hour preferences (defaults to the local timezone)

    Returns:
        ScoreSnapshot
    """
    config = config or load_config()
    scoring_config = config["scoring"]
    tz = tz or get_local_timezone(config.get("timezone"))
    sentinel = scoring_config["no_activity_days"]

    motivation_level = previous_motivation or "medium"

    # Recency
    last_checkin = max((c.timestamp for c in checkins), default=None)
    days_since_last_checkin = days_since(now, last_checkin, sentinel)

    # Volume over the last 30 days
    recent_cutoff = now - timedelta(days=scoring_config["recent_window_days"])
    total_checkins_30d = sum(1 for c in checkins if c.timestamp > recent_cutoff)
    avg_checkins_per_week = round_half_up(total_checkins_30d / scoring_config["weeks_per_month"], 1)

    # Weekly trend
    history = weekly_history(checkins, now)
    trend = checkin_trend(history, config)

    # Preferences
    preferred_days, preferred_hour = preferred_schedule(checkins, tz, scoring_config["preferred_days_count"])
    preferred_time = f"{preferred_hour:02d}:00" if preferred_hour is not None else None

    raw_consistency = consistency_score(checkins, config, rounded=False)
    consistency = round_half_up(raw_consistency)

    inbound = [m for m in messages if m.role == "user"]
    last_inbound = max((m.timestamp for m in inbound), default=None)
    days_since_last_message = days_since(now, last_inbound, sentinel)

    engagement = engagement_score(len(inbound), total_checkins_30d, days_since_last_checkin, config)

    risk, factors = churn_risk(
        days_since_last_checkin=days_since_last_checkin,
        trend=trend,
        avg_checkins_per_week=avg_checkins_per_week,
        motivation_level=motivation_level,
        days_since_last_message=days_since_last_message,
        consistency=raw_consistency,
        config=config
    )

    logger.debug(
        f"Scored {phone}: churn={risk} engagement={engagement} consistency={consistency} "
        f"trend={trend} history={history} factors={factors}"
    )

    return ScoreSnapshot(
        tenant_id=tenant_id,
        phone=phone,
        churn_risk=risk,
        engagement_score=engagement,
        consistency_score=consistency,
        motivation_level=motivation_level,
        preferred_days=preferred_days,
        preferred_hour=preferred_hour,
        preferred_time=preferred_time,
        avg_checkins_per_week=avg_checkins_per_week,
        days_since_last_checkin=days_since_last_checkin,
        days_since_last_message=days_since_last_message,
        total_checkins_30d=total_checkins_30d,
        inbound_messages_30d=len(inbound),
        checkin_trend=trend,
        weekly_history=history,
        scored_at=now,
        config_version=config.get("config_version")
    )
