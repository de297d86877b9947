"""
Activity Logger Utility

Provides centralized activity logging for brain cycles, executed actions and
conversation analysis. Logs are written to JSONL files for easy parsing and
dashboard display.
"""

import json
import os
import logging
import threading
from datetime import datetime
from typing import Dict, Optional, Any, List
from pathlib import Path

logger = logging.getLogger(__name__)

# Base directory for activity logs (BRAIN_ACTIVITY_LOG_DIR overrides it)
BASE_LOG_DIR = "data/activity_logs/brain"

# Log subdirectories for each activity kind
CYCLE_LOG_SUBDIR = "cycles"
ACTION_LOG_SUBDIR = "actions"
ANALYZER_LOG_SUBDIR = "analyzer"

# Locks for thread-safe file writing
_cycle_lock = threading.Lock()
_action_lock = threading.Lock()
_analyzer_lock = threading.Lock()


def get_log_dir(subdir: str) -> str:
    """Directory holding one kind of activity log."""
    base_dir = os.getenv("BRAIN_ACTIVITY_LOG_DIR", BASE_LOG_DIR)
    return os.path.join(base_dir, subdir)


def _ensure_log_dir(log_dir: str):
    """Ensure log directory exists."""
    os.makedirs(log_dir, exist_ok=True)


def _get_log_file(log_dir: str, prefix: str) -> str:
    """
    Get log file path for today's date.

    Args:
        log_dir: Log directory path
        prefix: File prefix (e.g., "cycle", "action")

    Returns:
        Path to log file
    """
    _ensure_log_dir(log_dir)
    today = datetime.now().strftime("%Y%m%d")
    return os.path.join(log_dir, f"{prefix}_activity_{today}.jsonl")


def _append_entry(subdir: str, prefix: str, lock: threading.Lock, log_entry: Dict[str, Any]):
    try:
        log_file = _get_log_file(get_log_dir(subdir), prefix)
        with lock:
            with open(log_file, 'a', encoding='utf-8') as f:
                f.write(json.dumps(log_entry, ensure_ascii=False, default=str) + '\n')
        logger.debug(f"Logged {prefix} activity to {log_file}")
    except Exception as e:
        logger.warning(f"Failed to log {prefix} activity: {e}", exc_info=True)


def log_cycle_activity(
    timestamp: datetime,
    status: str,  # "success", "skipped", "error"
    trigger: str,
    tenants_processed: int = 0,
    tenants_failed: int = 0,
    clients_scored: int = 0,
    actions_executed: int = 0,
    error: Optional[str] = None,
    duration_seconds: Optional[float] = None
):
    """
    Log one brain cycle.

    Args:
        timestamp: Cycle start time
        status: Cycle status ("success", "skipped", "error")
        trigger: What started the cycle ("scheduled", "startup", "manual")
        tenants_processed: Tenants that completed without error
        tenants_failed: Tenants that raised
        clients_scored: Snapshots written
        actions_executed: Messages actually delivered
        error: Error message (if failed)
        duration_seconds: Cycle duration in seconds
    """
    log_entry = {
        "timestamp": timestamp.isoformat(),
        "logged_at": datetime.now().isoformat(),
        "status": status,
        "trigger": trigger,
        "tenants": {
            "processed": tenants_processed,
            "failed": tenants_failed
        },
        "clients_scored": clients_scored,
        "actions_executed": actions_executed,
        "error": error,
        "duration_seconds": duration_seconds
    }
    _append_entry(CYCLE_LOG_SUBDIR, "cycle", _cycle_lock, log_entry)


def log_action_activity(
    tenant_id: str,
    phone: str,
    timestamp: datetime,
    action_type: str,
    action_key: str,
    status: str,  # "sent", "failed"
    reason: Optional[str] = None,
    error: Optional[str] = None
):
    """
    Log one outreach attempt.

    Args:
        tenant_id: Tenant UUID
        phone: Client phone number
        timestamp: Attempt time
        action_type: Action variant
        action_key: Dedup key of the action
        status: Outcome ("sent", "failed")
        reason: Decision reason
        error: Send error (if failed)
    """
    log_entry = {
        "timestamp": timestamp.isoformat(),
        "logged_at": datetime.now().isoformat(),
        "tenant_id": tenant_id,
        "phone": phone,
        "action_type": action_type,
        "action_key": action_key,
        "status": status,
        "reason": reason,
        "error": error
    }
    _append_entry(ACTION_LOG_SUBDIR, "action", _action_lock, log_entry)


def log_analyzer_activity(
    tenant_id: str,
    phone: str,
    timestamp: datetime,
    signal_types: List[str],
    motivation_level: Optional[str] = None,
    motivation_score: Optional[float] = None
):
    """Log the signals found in one inbound message."""
    log_entry = {
        "timestamp": timestamp.isoformat(),
        "logged_at": datetime.now().isoformat(),
        "tenant_id": tenant_id,
        "phone": phone,
        "signals": signal_types,
        "motivation_level": motivation_level,
        "motivation_score": motivation_score
    }
    _append_entry(ANALYZER_LOG_SUBDIR, "analyzer", _analyzer_lock, log_entry)


def _entry_time(entry: Dict[str, Any]) -> float:
    try:
        return datetime.fromisoformat(str(entry.get("timestamp", "")).replace('Z', '+00:00')).timestamp()
    except ValueError:
        return 0


def read_activity_logs(
    subdir: str,
    limit: int = 100,
    tenant_id: Optional[str] = None
) -> List[Dict[str, Any]]:
    """
    Read one kind of activity log, newest first.

    Args:
        subdir: CYCLE_LOG_SUBDIR, ACTION_LOG_SUBDIR or ANALYZER_LOG_SUBDIR
        limit: Maximum number of entries to return
        tenant_id: Optional filter; entries without a tenant_id are dropped when set

    Returns:
        List of log entries (newest first)
    """
    log_dir = Path(get_log_dir(subdir))
    if not log_dir.exists():
        return []

    entries = []
    for log_file in sorted(log_dir.glob("*.jsonl")):
        try:
            with open(log_file, 'r', encoding='utf-8') as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entry = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug(f"Skipping malformed line in {log_file}")
                        continue
                    if tenant_id and entry.get("tenant_id") != tenant_id:
                        continue
                    entries.append(entry)
        except OSError as e:
            logger.warning(f"Error reading log file {log_file}: {e}")

    entries.sort(key=_entry_time, reverse=True)
    return entries[:limit]
