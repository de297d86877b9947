"""
Brain Reporting

Read-side aggregations for the dashboard. Every function is pure and works on
rows already fetched by the data layer (client_scoring, brain_actions and
conversation_signals rows as dicts).
"""

from collections import Counter, defaultdict
from typing import List, Dict, Any, Optional

from brain.scoring import round_half_up


def _average(values: List[float], digits: int) -> Optional[float]:
    values = [float(v) for v in values if v is not None]
    if not values:
        return None
    return round_half_up(sum(values) / len(values), digits)


def scoring_overview(scores: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Risk, engagement, trend and motivation counters over a tenant's snapshots.

    Args:
        scores: client_scoring rows of one tenant

    Returns:
        Dictionary of counters and averages (averages are None without rows)
    """
    def count(predicate) -> int:
        return sum(1 for row in scores if predicate(row))

    def churn(row) -> float:
        return float(row.get("churn_risk") or 0)

    return {
        "total_clients": len(scores),
        "high_risk": count(lambda r: churn(r) >= 0.7),
        "medium_risk": count(lambda r: 0.5 <= churn(r) < 0.7),
        "low_risk": count(lambda r: churn(r) < 0.5),
        "highly_engaged": count(lambda r: float(r.get("engagement_score") or 0) >= 0.7),
        "trending_up": count(lambda r: r.get("checkin_trend") == "up"),
        "trending_down": count(lambda r: r.get("checkin_trend") == "down"),
        "motivation_high": count(lambda r: r.get("motivation_level") == "high"),
        "motivation_low": count(lambda r: r.get("motivation_level") == "low"),
        "avg_churn_risk": _average([r.get("churn_risk") for r in scores], 2),
        "avg_engagement": _average([r.get("engagement_score") for r in scores], 2),
        "avg_weekly_checkins": _average([r.get("avg_checkins_per_week") for r in scores], 1),
    }


def at_risk_clients(scores: List[Dict[str, Any]], min_churn_risk: float = 0.6) -> List[Dict[str, Any]]:
    """Snapshots with churn_risk >= min_churn_risk, riskiest first."""
    at_risk = [row for row in scores if float(row.get("churn_risk") or 0) >= min_churn_risk]
    return sorted(at_risk, key=lambda row: float(row.get("churn_risk") or 0), reverse=True)


def action_stats(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Count ledger rows per (action_type, status).

    Returns:
        [{'action_type', 'status', 'count'}], most frequent first
    """
    counts = Counter((row.get("action_type"), row.get("status")) for row in records)
    stats = [
        {"action_type": action_type, "status": status, "count": n}
        for (action_type, status), n in counts.items()
    ]
    return sorted(stats, key=lambda item: item["count"], reverse=True)


def signal_stats(signals: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Count conversation signals per type.

    Returns:
        [{'signal_type', 'count', 'unique_clients', 'avg_confidence'}], most frequent first
    """
    grouped = defaultdict(list)
    for row in signals:
        grouped[row.get("signal_type")].append(row)

    stats = []
    for signal_type, rows in grouped.items():
        stats.append({
            "signal_type": signal_type,
            "count": len(rows),
            "unique_clients": len({row.get("phone") for row in rows}),
            "avg_confidence": _average([row.get("confidence") for row in rows], 2),
        })
    return sorted(stats, key=lambda item: item["count"], reverse=True)


def build_overview(
    scores: List[Dict[str, Any]],
    actions: List[Dict[str, Any]],
    signals: List[Dict[str, Any]],
    recent_actions: Optional[List[Dict[str, Any]]] = None,
    min_churn_risk: float = 0.6
) -> Dict[str, Any]:
    """Everything the dashboard's brain page shows for one tenant."""
    ordered_scores = sorted(scores, key=lambda row: float(row.get("churn_risk") or 0), reverse=True)
    return {
        "scoring": scoring_overview(scores),
        "signals": signal_stats(signals),
        "actions": action_stats(actions),
        "at_risk_clients": at_risk_clients(scores, min_churn_risk),
        "all_scores": ordered_scores,
        "recent_actions": recent_actions or [],
    }
