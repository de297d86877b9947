"""
API Layer for Brain Service

This module provides FastAPI endpoints for the brain: manual run, run status,
the dashboard overview, the activity log feed and the real-time conversation
analyzer hook.
"""

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any
from fastapi import APIRouter, Depends, HTTPException

from brain import analyzer, reporting
from brain.models import (
    RunResponse,
    StatusResponse,
    AnalyzeMessageRequest,
    AnalyzeMessageResponse
)
from brain.orchestrator import CycleOrchestrator
from brain.runtime import get_orchestrator, get_store
from utils import activity_logger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/brain", tags=["brain"])


@router.post("/run", response_model=RunResponse)
async def run_brain(orchestrator: CycleOrchestrator = Depends(get_orchestrator)):
    """
    Run one brain cycle now and wait for it to finish.

    Returns 0 actions when a cycle is already in progress.
    """
    start_time = datetime.now()
    logger.info(f"POST /api/brain/run - Endpoint called at {start_time.strftime('%Y-%m-%d %H:%M:%S')}")

    try:
        actions_executed = await orchestrator.run_now()
        total_duration = (datetime.now() - start_time).total_seconds()
        logger.info(f"POST /api/brain/run - Completed in {total_duration:.2f}s ({actions_executed} actions)")
        return RunResponse(actions_executed=actions_executed)
    except ValueError as e:
        logger.error(f"POST /api/brain/run - Validation error: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"POST /api/brain/run - Exception: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@router.get("/status", response_model=StatusResponse)
async def brain_status(orchestrator: CycleOrchestrator = Depends(get_orchestrator)):
    """Current run state of the orchestrator."""
    return StatusResponse(**orchestrator.status())


@router.get("/overview/{tenant_id}")
async def brain_overview(tenant_id: str, store=Depends(get_store)):
    """
    Dashboard overview for one tenant: scoring counters, at-risk clients,
    action and signal statistics over the last 30 days.
    """
    logger.info(f"GET /api/brain/overview/{tenant_id} - Endpoint called")

    try:
        rows = await store.overview_rows(tenant_id)
        return reporting.build_overview(
            scores=rows["scores"],
            actions=rows["actions"],
            signals=rows["signals"],
            recent_actions=rows["recent_actions"]
        )
    except ValueError as e:
        logger.error(f"GET /api/brain/overview/{tenant_id} - Validation error: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"GET /api/brain/overview/{tenant_id} - Exception: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@router.post("/analyze", response_model=AnalyzeMessageResponse)
async def analyze_message(request: AnalyzeMessageRequest, store=Depends(get_store)):
    """
    Analyze an inbound client message, store its signals and refresh the
    client's motivation level. Called by the message pipeline after saving
    the user message.
    """
    logger.info(f"POST /api/brain/analyze - Endpoint called for {request.phone} ({request.tenant_id})")

    try:
        signals, motivation_level = await analyzer.process_and_save(
            request.tenant_id,
            request.phone,
            request.text,
            signal_store=store,
            score_store=store
        )
        return AnalyzeMessageResponse(signals=signals, motivation_level=motivation_level)
    except ValueError as e:
        logger.error(f"POST /api/brain/analyze - Validation error: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"POST /api/brain/analyze - Exception: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


def _count_last_hour(entries: List[Dict[str, Any]]) -> int:
    one_hour_ago = datetime.now().timestamp() - 3600
    count = 0
    for entry in entries:
        try:
            ts_str = entry.get("timestamp", "")
            if ts_str and datetime.fromisoformat(ts_str.replace('Z', '+00:00')).timestamp() > one_hour_ago:
                count += 1
        except ValueError:
            continue
    return count


@router.get("/activity")
async def brain_activity(limit: int = 50, tenant_id: Optional[str] = None):
    """
    Latest entries of the cycle, action and analyzer activity logs.

    Args:
        limit: Maximum entries per log kind
        tenant_id: Optional filter for action and analyzer entries
    """
    cycles = activity_logger.read_activity_logs(
        activity_logger.CYCLE_LOG_SUBDIR,
        limit=limit
    )
    actions = activity_logger.read_activity_logs(
        activity_logger.ACTION_LOG_SUBDIR,
        limit=limit,
        tenant_id=tenant_id
    )
    analyzer_entries = activity_logger.read_activity_logs(
        activity_logger.ANALYZER_LOG_SUBDIR,
        limit=limit,
        tenant_id=tenant_id
    )

    return {
        "cycles": cycles,
        "actions": actions,
        "analyzer": analyzer_entries,
        "stats": {
            "cycles_last_hour": _count_last_hour(cycles),
            "actions_last_hour": _count_last_hour(actions),
            "analyzer_last_hour": _count_last_hour(analyzer_entries)
        }
    }


@router.get("/health")
async def health():
    """Health check endpoint for the brain service."""
    return {
        "status": "healthy",
        "service": "brain",
        "timestamp": datetime.now().isoformat()
    }
