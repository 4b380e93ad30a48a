# keyword_discovery/routes/keyword_jobs.py
"""
Keyword search job endpoints
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException

from keyword_discovery.core.exceptions import (
    JobAlreadyRunningError,
    JobNotFoundError,
    JobNotRunningError,
    ValidationError,
)
from keyword_discovery.dependencies import get_job_scheduler
from keyword_discovery.scheduler import KeywordJobScheduler
from keyword_discovery.schemas.keyword_job import (
    JobActionResponse,
    KeywordJobCreate,
    KeywordJobDetail,
    KeywordJobRead,
    KeywordJobSummary,
    TrackKeywordsRequest,
    TrackKeywordsResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/jobs", tags=["keyword-jobs"])


@router.post("", response_model=KeywordJobRead, status_code=201)
async def create_job(
    payload: KeywordJobCreate,
    scheduler: KeywordJobScheduler = Depends(get_job_scheduler)
):
    """Create a new keyword search job"""
    try:
        return await scheduler.create(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating job: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("", response_model=List[KeywordJobSummary])
async def list_jobs(
    session_id: Optional[str] = None,
    scheduler: KeywordJobScheduler = Depends(get_job_scheduler)
):
    """List keyword search jobs, newest first"""
    try:
        return await scheduler.list_jobs(session_id)
    except Exception as e:
        logger.error(f"Error listing jobs: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/scheduler/status", response_model=Dict[str, Any])
async def scheduler_status(
    scheduler: KeywordJobScheduler = Depends(get_job_scheduler)
):
    """Active job timers and their next run"""
    return scheduler.status()


@router.get("/{job_id}", response_model=KeywordJobDetail)
async def get_job(
    job_id: str,
    scheduler: KeywordJobScheduler = Depends(get_job_scheduler)
):
    """Job details with results sorted by opportunity score"""
    try:
        return await scheduler.get_job_details(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error getting job details: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{job_id}/start", response_model=JobActionResponse)
async def start_job(
    job_id: str,
    scheduler: KeywordJobScheduler = Depends(get_job_scheduler)
):
    """Start (or resume) a job"""
    try:
        await scheduler.start(job_id)
        return JobActionResponse(message="Job started")
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except JobAlreadyRunningError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error starting job: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{job_id}/stop", response_model=JobActionResponse)
async def stop_job(
    job_id: str,
    scheduler: KeywordJobScheduler = Depends(get_job_scheduler)
):
    """Pause a running job"""
    try:
        await scheduler.stop(job_id)
        return JobActionResponse(message="Job stopped")
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except JobNotRunningError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error stopping job: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{job_id}", response_model=JobActionResponse)
async def delete_job(
    job_id: str,
    scheduler: KeywordJobScheduler = Depends(get_job_scheduler)
):
    """Delete a job and all of its results"""
    try:
        await scheduler.delete(job_id)
        return JobActionResponse(message="Job deleted")
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error deleting job: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{job_id}/track-keywords", response_model=TrackKeywordsResponse)
async def track_keywords(
    job_id: str,
    payload: TrackKeywordsRequest,
    scheduler: KeywordJobScheduler = Depends(get_job_scheduler)
):
    """Add selected job results to tracked keywords"""
    try:
        tracked = await scheduler.track_results(job_id, payload.result_ids, payload.session_id)
        return TrackKeywordsResponse(tracked=tracked)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error adding keywords to tracked: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
