"""
Brain Runtime Wiring

Builds the process-wide collaborators (Supabase store, DeepSeek generator,
Evolution messenger) and the orchestrator/scheduler on first use. FastAPI
endpoints receive them through these getters, which tests override.
"""

import os
import logging
from typing import Optional

from brain.config_loader import load_config
from brain.executor import ActionExecutor
from brain.orchestrator import CycleOrchestrator
from brain.scheduler import BrainScheduler
from utils.database import SupabaseBrainStore
from utils.llm import get_message_generator
from utils.messenger import EvolutionMessenger

logger = logging.getLogger(__name__)

_store: Optional[SupabaseBrainStore] = None
_orchestrator: Optional[CycleOrchestrator] = None
_scheduler: Optional[BrainScheduler] = None


def scheduler_enabled() -> bool:
    """BRAIN_SCHEDULER_ENABLED (default true) turns the periodic cycles on or off."""
    return os.getenv("BRAIN_SCHEDULER_ENABLED", "true").lower() == "true"


def get_store() -> SupabaseBrainStore:
    """Shared Supabase store. Raises ValueError if Supabase is not configured."""
    global _store
    if _store is None:
        _store = SupabaseBrainStore()
    return _store


def get_orchestrator() -> CycleOrchestrator:
    """Shared cycle orchestrator (one run flag per process)."""
    global _orchestrator
    if _orchestrator is None:
        config = load_config()
        store = get_store()
        executor = ActionExecutor(
            generator=get_message_generator(
                max_tokens=config["executor"]["max_tokens"],
                temperature=config["executor"]["temperature"]
            ),
            messenger=EvolutionMessenger(),
            ledger=store,
            conversation_log=store,
            config=config
        )
        _orchestrator = CycleOrchestrator(
            tenant_directory=store,
            activity_store=store,
            score_store=store,
            ledger=store,
            executor=executor,
            config=config
        )
        logger.info("Brain orchestrator initialized")
    return _orchestrator


def get_scheduler() -> BrainScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = BrainScheduler(get_orchestrator(), load_config())
    return _scheduler
