"""
Continuous keyword discovery scheduler.

Owns the lifecycle of keyword search jobs and one repeating timer per running
job. Timers are APScheduler interval jobs on an AsyncIOScheduler that is
created by the application and injected here, together with the store, the
strategy generator and the scorer.

Cycle execution for a job is serialised by a per-job lock, so at most one cycle
of a job runs at any time and cycle numbers only ever go up.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.job import Job as APSJob
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from pydantic import ValidationError as PydanticValidationError

from keyword_discovery.core.enums import JobStatus, ResultStatus
from keyword_discovery.core.exceptions import (
    JobAlreadyRunningError,
    JobNotFoundError,
    JobNotRunningError,
    ValidationError,
)
from keyword_discovery.models.keyword_job import KeywordSearchJob
from keyword_discovery.schemas.keyword_job import (
    KeywordJobCreate,
    KeywordJobDetail,
    KeywordJobSummary,
    KeywordResultRead,
)
from keyword_discovery.services.keyword_job_store import KeywordJobStore
from keyword_discovery.services.keyword_scoring import KeywordScorer, ratio_opportunity_score
from keyword_discovery.services.keyword_strategy import KeywordStrategyGenerator, normalize_keyword

logger = logging.getLogger(__name__)


def job_listener(event):
    """Listen to APScheduler job events for logging"""
    if event.exception:
        logger.error(f"Timer {event.job_id} crashed: {event.exception}")
    else:
        logger.debug(f"Timer {event.job_id} executed at {datetime.now()}")


def create_aps_scheduler() -> AsyncIOScheduler:
    """Create the APScheduler instance that carries the per-job timers"""
    scheduler = AsyncIOScheduler()
    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
    return scheduler


@dataclass
class JobTimer:
    """Cancellation token and timer handles for one running job."""
    job_id: str
    next_cycle: int
    cancelled: asyncio.Event = field(default_factory=asyncio.Event)
    aps_job: Optional[APSJob] = None
    task: Optional[asyncio.Task] = None


class KeywordJobScheduler:
    """
    Job lifecycle state machine and cycle runner.

    pending --start--> running --stop--> paused --start--> running --(last cycle)--> completed

    Only `running` jobs hold an entry in the timer table.
    """

    def __init__(
        self,
        store: KeywordJobStore,
        generator: KeywordStrategyGenerator,
        scorer: KeywordScorer,
        scheduler: AsyncIOScheduler,
        keyword_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.generator = generator
        self.scorer = scorer
        self.scheduler = scheduler
        self.keyword_delay = keyword_delay
        self._sleep = sleep
        self._timers: Dict[str, JobTimer] = {}
        self._cycle_locks: Dict[str, asyncio.Lock] = {}
        self._startup_tasks: Dict[str, asyncio.Task] = {}  # latest start-up cycle per job, kept after stop

    # --- Job management ---

    async def create(self, config: Union[KeywordJobCreate, Dict[str, Any]]) -> KeywordSearchJob:
        """Validate config bounds and persist a new pending job."""
        if not isinstance(config, KeywordJobCreate):
            try:
                config = KeywordJobCreate.model_validate(config)
            except PydanticValidationError as e:
                raise ValidationError(str(e)) from e

        job = await self.store.create_job(config)
        logger.info(f"Created new keyword search job: {job.id} ({job.name})")
        return job

    async def list_jobs(self, session_id: Optional[str] = None) -> List[KeywordJobSummary]:
        rows = await self.store.list_jobs(session_id)
        return [
            KeywordJobSummary.from_orm_model(job).model_copy(update={"result_count": count})
            for job, count in rows
        ]

    async def get_job_details(self, job_id: str) -> KeywordJobDetail:
        """Job with its used keywords and results, best opportunity first."""
        job = await self.store.get_job_with_results(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        results = sorted(
            job.results,
            key=lambda r: (r.opportunity_score is None, -(r.opportunity_score or 0)),
        )
        detail = KeywordJobDetail.model_validate(job, from_attributes=True)
        return detail.model_copy(update={
            "used_keywords": list(job.used_keywords or []),
            "results": [KeywordResultRead.model_validate(r) for r in results],
        })

    async def start(self, job_id: str) -> KeywordSearchJob:
        """
        Move a job to running and launch its cycle loop.

        The next cycle runs straight away in a background task; the repeating
        timer is armed once that cycle has finished.

        Raises:
            JobNotFoundError: If the job does not exist
            JobAlreadyRunningError: If the job is already running
        """
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status == JobStatus.RUNNING.value:
            raise JobAlreadyRunningError(job_id)

        job = await self.store.mark_running(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        logger.info(f"Starting job: {job_id} ({job.name})")
        self._launch(job)
        return job

    async def stop(self, job_id: str) -> KeywordSearchJob:
        """
        Cancel a running job's timer and pause it.

        A cycle already in flight checks the cancellation token between keywords
        and ends early; what it produced so far is still committed, and the
        cycle number counts as used even when stop lands before its first
        keyword (the generated batch is dropped and no results are written).
        If that cycle was the job's last one the job ends up `completed`
        rather than `paused`.

        Raises:
            JobNotFoundError: If the job does not exist
            JobNotRunningError: If the job is not running
        """
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status != JobStatus.RUNNING.value:
            raise JobNotRunningError(job_id)

        timer = self._timers.get(job_id)
        if timer is not None:
            self._cancel_timer(timer)

        job = await self.store.set_status(job_id, JobStatus.PAUSED, only_from=JobStatus.RUNNING)
        logger.info(f"Stopped job: {job_id} (status {job.status if job else 'deleted'})")
        return job

    async def delete(self, job_id: str) -> None:
        """Stop the job if running, wait out any in-flight cycle, then delete it with its results."""
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        if job.status == JobStatus.RUNNING.value:
            await self.stop(job_id)

        timer = self._timers.get(job_id)
        if timer is not None:
            self._cancel_timer(timer)

        async with self._lock_for(job_id):
            await self.store.delete_job(job_id)
        self._cycle_locks.pop(job_id, None)
        self._startup_tasks.pop(job_id, None)
        logger.info(f"Deleted job: {job_id}")

    async def track_results(self, job_id: str, result_ids: List[str], session_id: str = "default") -> List[str]:
        """Promote successful results of a job to tracked keywords."""
        tracked = await self.store.track_results(job_id, result_ids, session_id)
        logger.info(f"Added {len(tracked)} keywords to tracked from job {job_id}")
        return tracked

    # --- Startup ---

    async def reconcile(self) -> Dict[str, List[str]]:
        """
        Resume jobs left `running` by a previous process.

        Jobs that already reached their last cycle are marked completed; the rest
        re-enter the cycle loop at current_cycle + 1. Jobs that already have a
        timer in this process are left alone, so calling this twice is harmless.
        """
        summary = {"resumed": [], "completed": []}
        running_jobs = await self.store.list_running_jobs()

        if running_jobs:
            logger.info(f"Found {len(running_jobs)} jobs that were running. Resuming...")

        for job in running_jobs:
            if job.id in self._timers:
                continue
            if job.current_cycle >= job.total_cycles:
                await self.store.mark_completed(job.id)
                logger.info(f"Job {job.id}: reached its last cycle before restart, marked completed")
                summary["completed"].append(job.id)
            else:
                logger.info(f"Resuming job: {job.id} ({job.name}) at cycle {job.current_cycle + 1}")
                self._launch(job)
                summary["resumed"].append(job.id)

        return summary

    # --- Timer table ---

    def is_active(self, job_id: str) -> bool:
        return job_id in self._timers

    def status(self) -> Dict[str, Any]:
        jobs_info = []
        for timer in self._timers.values():
            next_run = timer.aps_job.next_run_time if timer.aps_job is not None else None
            jobs_info.append({
                "job_id": timer.job_id,
                "next_cycle": timer.next_cycle,
                "next_run": next_run.isoformat() if next_run else None,
            })
        return {
            "status": "running" if self.scheduler.running else "stopped",
            "jobs": jobs_info,
        }

    async def join(self, job_id: str) -> None:
        """Wait for a job's start-up cycle (launched by start/reconcile) to finish, even after stop."""
        task = self._startup_tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)

    async def shutdown(self) -> None:
        """Cancel every timer; running jobs stay `running` in the store for reconcile()."""
        timers = list(self._timers.values())
        for timer in timers:
            self._cancel_timer(timer)
        pending = [t.task for t in timers if t.task is not None and not t.task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _lock_for(self, job_id: str) -> asyncio.Lock:
        lock = self._cycle_locks.get(job_id)
        if lock is None:
            lock = self._cycle_locks[job_id] = asyncio.Lock()
        return lock

    def _launch(self, job: KeywordSearchJob) -> JobTimer:
        timer = JobTimer(job_id=job.id, next_cycle=(job.current_cycle or 0) + 1)
        self._timers[job.id] = timer
        timer.task = asyncio.create_task(self._enter_loop(timer, job.interval_minutes))
        self._startup_tasks[job.id] = timer.task
        return timer

    def _arm(self, timer: JobTimer, interval_minutes: int) -> None:
        timer.aps_job = self.scheduler.add_job(
            self.tick,
            IntervalTrigger(minutes=interval_minutes),
            args=[timer.job_id],
            id=f"keyword-job:{timer.job_id}:{uuid.uuid4().hex[:8]}",
            name=f"Keyword job {timer.job_id}",
            max_instances=1,  # Cycles of one job never overlap
            coalesce=True,
        )
        logger.debug(f"Job {timer.job_id}: timer armed every {interval_minutes} minutes")

    def _cancel_timer(self, timer: JobTimer) -> None:
        timer.cancelled.set()
        if self._timers.get(timer.job_id) is timer:
            del self._timers[timer.job_id]
        if timer.aps_job is not None:
            try:
                timer.aps_job.remove()
            except JobLookupError:
                pass
            timer.aps_job = None

    # --- Cycle loop ---

    async def _enter_loop(self, timer: JobTimer, interval_minutes: int) -> None:
        try:
            await self._run_cycle(timer)
        except Exception as e:
            logger.exception(f"Job {timer.job_id}: error entering cycle loop: {str(e)}")

        if timer.cancelled.is_set() or self._timers.get(timer.job_id) is not timer:
            return
        self._arm(timer, interval_minutes)

    async def tick(self, job_id: str) -> None:
        """Timer callback: run the next cycle if the job is still running."""
        timer = self._timers.get(job_id)
        if timer is None:
            return
        try:
            await self._run_cycle(timer)
        except Exception as e:
            # Job stays running; the next tick tries the following cycle
            logger.exception(f"Job {job_id}: tick failed: {str(e)}")

    async def _run_cycle(self, timer: JobTimer) -> bool:
        """Run the timer's next cycle; returns False when nothing was run."""
        async with self._lock_for(timer.job_id):
            job = await self.store.get_job(timer.job_id)

            if job is None or job.status != JobStatus.RUNNING.value or timer.cancelled.is_set():
                logger.info(f"Job {timer.job_id} stopped or deleted")
                self._cancel_timer(timer)
                return False

            cycle_number = max(timer.next_cycle, (job.current_cycle or 0) + 1)
            if cycle_number > job.total_cycles:
                await self._complete(timer)
                return False

            timer.next_cycle = cycle_number + 1
            committed = await self.execute_cycle(job, cycle_number, timer.cancelled)

            # A committed last cycle completes the job even if stop arrived meanwhile
            if committed and cycle_number >= job.total_cycles:
                await self._complete(timer)
            return True

    async def _complete(self, timer: JobTimer) -> None:
        self._cancel_timer(timer)
        await self.store.mark_completed(timer.job_id)
        logger.info(f"Job {timer.job_id}: Completed successfully")

    async def execute_cycle(
        self,
        job: KeywordSearchJob,
        cycle_number: int,
        cancelled: Optional[asyncio.Event] = None,
    ) -> bool:
        """
        Generate, score and store one batch of keywords for a job.

        Per-keyword failures become `error` results and the keyword still counts as
        used. Anything else (e.g. a store write failing) ends the cycle early and is
        logged; the job is left running. Returns True when the cycle was committed.
        """
        logger.info(f"Job {job.id}: Starting cycle {cycle_number}")

        try:
            used_keywords = [normalize_keyword(k) for k in (job.used_keywords or [])]
            used_set = set(used_keywords)

            keywords = await self.generator.generate(
                job.strategy,
                job.seed_category,
                job.searches_per_batch,
                used_keywords,
            )
            if not keywords:
                logger.warning(f"Job {job.id}: No new keywords generated for cycle {cycle_number}")

            for index, raw_keyword in enumerate(keywords):
                if cancelled is not None and cancelled.is_set():
                    logger.info(f"Job {job.id}: stop requested, ending cycle {cycle_number} early")
                    break

                keyword = normalize_keyword(raw_keyword)
                if not keyword or keyword in used_set:
                    continue

                try:
                    analysis = await self.scorer.analyze(keyword, job.country)
                except Exception as e:
                    logger.error(f"Job {job.id}: Error analyzing keyword \"{keyword}\": {str(e)}")
                    await self.store.add_result(
                        job.id, keyword, cycle_number, ResultStatus.ERROR, error_message=str(e) or type(e).__name__
                    )
                else:
                    analysis.opportunity_score = ratio_opportunity_score(analysis.popularity, analysis.difficulty)
                    await self.store.add_result(
                        job.id, keyword, cycle_number, ResultStatus.SUCCESS, analysis=analysis.to_dict()
                    )
                    logger.info(
                        f"Job {job.id}: Analyzed keyword \"{keyword}\" - Pop: {analysis.popularity}, "
                        f"Diff: {analysis.difficulty}, Opp: {analysis.opportunity_score}"
                    )

                used_keywords.append(keyword)
                used_set.add(keyword)

                if index < len(keywords) - 1 and self.keyword_delay > 0:
                    await self._sleep(self.keyword_delay)

            updated = await self.store.record_cycle(job.id, cycle_number, used_keywords)
            if updated is None:
                logger.info(f"Job {job.id}: deleted during cycle {cycle_number}")
                return False

            logger.info(f"Job {job.id}: Completed cycle {cycle_number} - Total keywords: {updated.total_keywords}")
            return True

        except Exception as e:
            logger.error(f"Job {job.id}: Error in cycle {cycle_number}: {str(e)}")
            return False
