from fastapi import HTTPException, Request

from keyword_discovery.scheduler import KeywordJobScheduler


def get_job_scheduler(request: Request) -> KeywordJobScheduler:
    """Dependency for the scheduler built during application startup."""
    scheduler = getattr(request.app.state, "job_scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Job scheduler not initialised")
    return scheduler
