"""
Scheduler management endpoints
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from typing import Dict, Any

from marketsync.scheduler import PollScheduler
from marketsync.schemas.api import SchedulerStatus

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/scheduler", tags=["scheduler"])


def get_scheduler(request: Request) -> PollScheduler:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler not initialized")
    return scheduler


@router.get("/status", response_model=SchedulerStatus)
async def scheduler_status(scheduler: PollScheduler = Depends(get_scheduler)):
    """Get current scheduler status and configured jobs"""
    return scheduler.status()


@router.post("/trigger/{job_id}", response_model=Dict[str, Any])
async def trigger_job(job_id: str, scheduler: PollScheduler = Depends(get_scheduler)):
    """Run a job now and return its report"""
    if job_id not in scheduler.jobs:
        raise HTTPException(status_code=404, detail=f"Unknown job {job_id}")
    try:
        result = await scheduler.trigger(job_id)
    except Exception as e:
        logger.error(f"Error triggering {job_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"status": "success", "job_id": job_id, "result": result}


@router.post("/pause")
async def pause_scheduler(scheduler: PollScheduler = Depends(get_scheduler)):
    """Pause all scheduled jobs"""
    if scheduler.pause():
        return {"status": "success", "message": "Scheduler paused"}
    return {"status": "warning", "message": "Scheduler not running"}


@router.post("/resume")
async def resume_scheduler(scheduler: PollScheduler = Depends(get_scheduler)):
    """Resume all scheduled jobs"""
    if scheduler.resume():
        return {"status": "success", "message": "Scheduler resumed"}
    return {"status": "warning", "message": "Scheduler not running"}
