"""
Brain package for automated client retention outreach.

This package provides:
- Scoring: Churn risk, engagement and consistency per client
- Decision engine: Picks at most one outreach action per client
- Executor: Generates, sends and records the outreach message
- Orchestrator / scheduler: Runs the cycle across all tenants
- Analyzer: Real-time motivation signals from inbound messages
- API endpoints (brain.api): POST /api/brain/run, GET /api/brain/status, ...
"""

from . import models
from . import scoring
from . import decision_engine
from . import executor
from . import orchestrator
from . import scheduler
from . import analyzer
from . import reporting

__all__ = [
    'models',
    'scoring',
    'decision_engine',
    'executor',
    'orchestrator',
    'scheduler',
    'analyzer',
    'reporting'
]
