"""Durable state for keyword jobs: job rows, per-keyword results, tracked keywords."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload

from keyword_discovery.core.enums import JobStatus, ResultStatus
from keyword_discovery.core.exceptions import JobNotFoundError
from keyword_discovery.models.keyword_job import KeywordSearchJob, KeywordSearchResult
from keyword_discovery.models.tracked_keyword import TrackedKeyword
from keyword_discovery.schemas.keyword_job import KeywordJobCreate

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 2000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeywordJobStore:
    """
    Store adapter used by the scheduler.

    Every call runs in its own short transaction. Writes for a job that has
    been deleted in the meantime are skipped and return None.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    # --- Jobs ---

    async def create_job(self, config: KeywordJobCreate) -> KeywordSearchJob:
        async with self.session_factory() as db:
            job = KeywordSearchJob(
                name=config.name,
                strategy=config.strategy.value,
                seed_category=config.seed_category,
                country=config.country,
                searches_per_batch=config.searches_per_batch,
                interval_minutes=config.interval_minutes,
                total_cycles=config.total_cycles,
                notes=config.notes,
                session_id=config.session_id,
                status=JobStatus.PENDING.value,
                current_cycle=0,
                total_keywords=0,
                used_keywords=[],
                created_at=_utcnow(),
            )
            db.add(job)
            await db.commit()
            await db.refresh(job)
            return job

    async def get_job(self, job_id: str) -> Optional[KeywordSearchJob]:
        async with self.session_factory() as db:
            return await db.get(KeywordSearchJob, job_id)

    async def get_job_with_results(self, job_id: str) -> Optional[KeywordSearchJob]:
        async with self.session_factory() as db:
            stmt = (
                select(KeywordSearchJob)
                .where(KeywordSearchJob.id == job_id)
                .options(selectinload(KeywordSearchJob.results))
            )
            result = await db.execute(stmt)
            return result.scalars().first()

    async def list_jobs(self, session_id: Optional[str] = None) -> List[Tuple[KeywordSearchJob, int]]:
        """Jobs newest first, each with its stored result count."""
        async with self.session_factory() as db:
            result_count = (
                select(func.count(KeywordSearchResult.id))
                .where(KeywordSearchResult.job_id == KeywordSearchJob.id)
                .correlate(KeywordSearchJob)
                .scalar_subquery()
            )
            stmt = select(KeywordSearchJob, result_count).order_by(KeywordSearchJob.created_at.desc())
            if session_id:
                stmt = stmt.where(KeywordSearchJob.session_id == session_id)
            result = await db.execute(stmt)
            return [(job, count or 0) for job, count in result.all()]

    async def list_running_jobs(self) -> List[KeywordSearchJob]:
        async with self.session_factory() as db:
            stmt = (
                select(KeywordSearchJob)
                .where(KeywordSearchJob.status == JobStatus.RUNNING.value)
                .order_by(KeywordSearchJob.created_at.asc())
            )
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def mark_running(self, job_id: str) -> Optional[KeywordSearchJob]:
        async with self.session_factory() as db:
            job = await db.get(KeywordSearchJob, job_id)
            if job is None:
                return None
            now = _utcnow()
            job.status = JobStatus.RUNNING.value
            job.started_at = now
            job.last_run_at = now
            await db.commit()
            await db.refresh(job)
            return job

    async def set_status(
        self,
        job_id: str,
        status: JobStatus,
        only_from: Optional[JobStatus] = None,
    ) -> Optional[KeywordSearchJob]:
        """Set the status; with only_from, a job in any other status is returned unchanged."""
        async with self.session_factory() as db:
            job = await db.get(KeywordSearchJob, job_id)
            if job is None:
                return None
            if only_from is not None and job.status != only_from.value:
                return job
            job.status = status.value
            await db.commit()
            await db.refresh(job)
            return job

    async def mark_completed(self, job_id: str) -> Optional[KeywordSearchJob]:
        """Completion pins current_cycle to total_cycles."""
        async with self.session_factory() as db:
            job = await db.get(KeywordSearchJob, job_id)
            if job is None:
                return None
            job.status = JobStatus.COMPLETED.value
            job.current_cycle = job.total_cycles
            job.completed_at = _utcnow()
            await db.commit()
            await db.refresh(job)
            return job

    async def record_cycle(
        self,
        job_id: str,
        cycle_number: int,
        used_keywords: Iterable[str],
    ) -> Optional[KeywordSearchJob]:
        """Write the end-of-cycle snapshot: progress counter and used-keyword set."""
        async with self.session_factory() as db:
            job = await db.get(KeywordSearchJob, job_id)
            if job is None:
                return None

            merged = list(job.used_keywords or [])
            seen = set(merged)
            for keyword in used_keywords:
                if keyword not in seen:
                    merged.append(keyword)
                    seen.add(keyword)

            job.used_keywords = merged
            job.total_keywords = len(merged)
            job.current_cycle = max(job.current_cycle or 0, min(cycle_number, job.total_cycles))
            job.last_run_at = _utcnow()
            await db.commit()
            await db.refresh(job)
            return job

    async def delete_job(self, job_id: str) -> bool:
        async with self.session_factory() as db:
            job = await db.get(KeywordSearchJob, job_id, options=[selectinload(KeywordSearchJob.results)])
            if job is None:
                return False
            await db.delete(job)
            await db.commit()
            return True

    # --- Results ---

    async def add_result(
        self,
        job_id: str,
        keyword: str,
        cycle_number: int,
        status: ResultStatus,
        analysis: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> Optional[KeywordSearchResult]:
        analysis = analysis or {}
        async with self.session_factory() as db:
            if await db.get(KeywordSearchJob, job_id) is None:
                logger.info(f"Job {job_id} no longer exists; dropping result for '{keyword}'")
                return None

            row = KeywordSearchResult(
                job_id=job_id,
                keyword=keyword,
                cycle_number=cycle_number,
                status=status.value,
                popularity=analysis.get("popularity"),
                difficulty=analysis.get("difficulty"),
                competitor_count=analysis.get("competitor_count"),
                opportunity_score=analysis.get("opportunity_score"),
                top_apps=analysis.get("top_apps"),
                related_terms=analysis.get("related_terms"),
                error_message=error_message[:MAX_ERROR_MESSAGE_LENGTH] if error_message else None,
                is_tracked=False,
                searched_at=_utcnow(),
            )
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return row

    async def count_results(self, job_id: str) -> int:
        async with self.session_factory() as db:
            stmt = select(func.count(KeywordSearchResult.id)).where(KeywordSearchResult.job_id == job_id)
            result = await db.execute(stmt)
            return result.scalar() or 0

    # --- Tracking ---

    async def track_results(self, job_id: str, result_ids: Iterable[str], session_id: str) -> List[str]:
        """
        Upsert successful results of a job into tracked_keywords and flag them.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        async with self.session_factory() as db:
            job = await db.get(KeywordSearchJob, job_id)
            if job is None:
                raise JobNotFoundError(job_id)

            stmt = select(KeywordSearchResult).where(
                KeywordSearchResult.id.in_(list(result_ids)),
                KeywordSearchResult.job_id == job_id,
                KeywordSearchResult.status == ResultStatus.SUCCESS.value,
            )
            results = (await db.execute(stmt)).scalars().all()

            tracked = []
            for result in results:
                existing = (await db.execute(
                    select(TrackedKeyword).where(
                        TrackedKeyword.keyword == result.keyword,
                        TrackedKeyword.country == job.country,
                        TrackedKeyword.session_id == session_id,
                    )
                )).scalars().first()

                if existing is None:
                    existing = TrackedKeyword(
                        keyword=result.keyword,
                        country=job.country,
                        session_id=session_id,
                    )
                    db.add(existing)

                existing.popularity = result.popularity
                existing.difficulty = result.difficulty
                existing.opportunity_score = result.opportunity_score
                existing.competitor_count = result.competitor_count

                result.is_tracked = True
                tracked.append(result.keyword)

            await db.commit()
            return tracked
