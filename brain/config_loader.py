"""
Configuration Loader for Brain Service

This module loads the tuning configuration (scoring weights, decision thresholds,
executor pacing, schedule) from a JSON file and provides fallback defaults.

Every number that shapes a score or a decision lives here so it can be pinned
by tests and retuned by operators without a code change. Bump
``config_version`` whenever a value changes.
"""

import copy
import json
import os
import logging
from typing import Dict, Any

logger = logging.getLogger(__name__)

# Default configuration (used as fallback)
DEFAULT_CONFIG = {
    "config_version": "2025.1",
    "timezone": "Europe/Rome",
    "scoring": {
        "checkin_window_days": 60,
        "message_window_days": 30,
        "recent_window_days": 30,
        "weeks_per_month": 4.3,
        "no_activity_days": 999,
        "trend": {
            "up_ratio": 1.3,
            "down_ratio": 0.7
        },
        "consistency": {
            "min_checkins": 3,
            "few_checkins": 0.3,
            "no_checkins": 0.1
        },
        "engagement": {
            "message_weight": 0.2,
            "checkin_weight": 0.4,
            "recency_weight": 0.4,
            "message_cap": 20,
            "checkin_cap": 12,
            # (max days since last check-in, recency score), last entry applies beyond
            "recency_steps": [[3, 1.0], [7, 0.7], [14, 0.4], [30, 0.2]],
            "recency_floor": 0.05
        },
        "churn": {
            "base": 0.10,
            # (more than N days inactive, penalty), first match wins
            "inactivity_penalties": [[30, 0.35], [14, 0.25], [7, 0.15], [3, 0.05]],
            "trend_down": 0.25,
            "trend_stable_low_frequency": 0.10,
            "low_frequency_per_week": 1.0,
            "motivation": {
                "low": 0.20,
                "medium": 0.05,
                "high": 0.0
            },
            "message_silence_penalties": [[14, 0.10], [7, 0.05]],
            "low_consistency_threshold": 0.3,
            "low_consistency": 0.10
        },
        "preferred_days_count": 3
    },
    "decision_engine": {
        "comeback": {
            "min_churn_risk": 0.7,
            "min_days_inactive": 5
        },
        "motivation": {
            "min_churn_risk": 0.5
        },
        "support": {
            "max_days_inactive": 7
        },
        "progress": {
            "min_engagement": 0.6,
            "min_consistency": 0.5,
            "min_checkins_30d": 8,
            "cooldown_days": 14
        },
        "streak": {
            "min_days_inactive": 2,
            "max_days_inactive": 5,
            "min_consistency": 0.7
        }
    },
    "executor": {
        "inter_action_delay_seconds": 3.0,
        "max_tokens": 200,
        "temperature": 0.8
    },
    "scheduler": {
        "run_hours": [0, 6, 12, 18],
        "run_minute": 30,
        "startup_delay_seconds": 120
    },
    "analyzer": {
        "recent_signals_limit": 10,
        "high_threshold": 0.3,
        "low_threshold": -0.3,
        "text_preview_chars": 200
    }
}

# Cache for loaded config
_config_cache: Dict[str, Any] = None


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively overlay ``override`` on a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str = None) -> Dict[str, Any]:
    """
    Load configuration from JSON file.

    Values in the file are overlaid on DEFAULT_CONFIG, so a file only needs to
    carry the keys it changes.

    Args:
        config_path: Path to config file. If None, uses BRAIN_CONFIG_PATH or
                     config.json next to this module.

    Returns:
        Configuration dictionary. Returns default config if file not found or invalid.
    """
    global _config_cache

    # Return cached config if available
    if _config_cache is not None:
        return _config_cache

    # Determine config file path
    if config_path is None:
        config_path = os.getenv("BRAIN_CONFIG_PATH")
    if config_path is None:
        module_dir = os.path.dirname(os.path.abspath(__file__))
        config_path = os.path.join(module_dir, "config.json")

    # Try to load config file
    try:
        if os.path.exists(config_path):
            with open(config_path, 'r', encoding='utf-8') as f:
                file_config = json.load(f)
            config = _merge(DEFAULT_CONFIG, file_config)
            logger.info(f"Loaded configuration from {config_path} (version {config.get('config_version')})")
            _config_cache = config
            return config
        else:
            logger.warning(f"Config file not found at {config_path}, using default configuration")
            _config_cache = DEFAULT_CONFIG
            return DEFAULT_CONFIG
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in config file {config_path}: {e}. Using default configuration.")
        _config_cache = DEFAULT_CONFIG
        return DEFAULT_CONFIG
    except Exception as e:
        logger.error(f"Error loading config file {config_path}: {e}. Using default configuration.")
        _config_cache = DEFAULT_CONFIG
        return DEFAULT_CONFIG


def reset_config_cache() -> None:
    """Forget the cached configuration so the next load_config() re-reads the file."""
    global _config_cache
    _config_cache = None
