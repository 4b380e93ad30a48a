# Keyword job scheduler tests: lifecycle, cycle loop and restart reconciliation
import asyncio
from datetime import timedelta

import pytest
from unittest.mock import MagicMock

from apscheduler.triggers.interval import IntervalTrigger

from keyword_discovery.core.enums import JobStatus, ResultStatus
from keyword_discovery.core.exceptions import (
    JobAlreadyRunningError,
    JobNotFoundError,
    JobNotRunningError,
    ValidationError,
)
from keyword_discovery.scheduler import KeywordJobScheduler, create_aps_scheduler
from keyword_discovery.services.keyword_scoring import ratio_opportunity_score

FITNESS_IDEAS = [f"Fitness Idea {n}" for n in range(1, 11)]


@pytest.fixture
def aps_scheduler():
    """Stand-in for AsyncIOScheduler that records add_job calls"""
    scheduler = MagicMock()
    scheduler.running = True
    scheduler.add_job.return_value.next_run_time = None
    return scheduler


@pytest.fixture
def job_scheduler(store, generator, scorer, aps_scheduler, mock_provider):
    mock_provider.responses["Health & Fitness"] = FITNESS_IDEAS
    return KeywordJobScheduler(
        store=store,
        generator=generator,
        scorer=scorer,
        scheduler=aps_scheduler,
        keyword_delay=0,
    )


"""
1. Job Management Tests
"""


@pytest.mark.asyncio
async def test_create_validates_config(job_scheduler, sample_job_data):
    job = await job_scheduler.create(sample_job_data)
    assert job.status == JobStatus.PENDING.value

    with pytest.raises(ValidationError):
        await job_scheduler.create({**sample_job_data, "searches_per_batch": 11})
    with pytest.raises(ValidationError):
        await job_scheduler.create({**sample_job_data, "interval_minutes": 0})
    with pytest.raises(ValidationError):
        await job_scheduler.create({**sample_job_data, "total_cycles": 1001})


@pytest.mark.asyncio
async def test_lifecycle_errors(job_scheduler, sample_job_data):
    with pytest.raises(JobNotFoundError):
        await job_scheduler.start("missing")
    with pytest.raises(JobNotFoundError):
        await job_scheduler.stop("missing")
    with pytest.raises(JobNotFoundError):
        await job_scheduler.delete("missing")
    with pytest.raises(JobNotFoundError):
        await job_scheduler.get_job_details("missing")

    job = await job_scheduler.create(sample_job_data)
    with pytest.raises(JobNotRunningError):
        await job_scheduler.stop(job.id)

    await job_scheduler.start(job.id)
    with pytest.raises(JobAlreadyRunningError):
        await job_scheduler.start(job.id)
    await job_scheduler.join(job.id)


"""
2. Cycle Loop Tests
"""


@pytest.mark.asyncio
async def test_category_job_runs_to_completion(job_scheduler, aps_scheduler, store, sample_job_data):
    job = await job_scheduler.create(sample_job_data)

    started = await job_scheduler.start(job.id)
    assert started.status == JobStatus.RUNNING.value
    await job_scheduler.join(job.id)

    # First cycle ran immediately, then the repeating timer was armed
    aps_scheduler.add_job.assert_called_once()
    args, kwargs = aps_scheduler.add_job.call_args
    assert args[0] == job_scheduler.tick
    assert isinstance(args[1], IntervalTrigger)
    assert args[1].interval == timedelta(minutes=15)
    assert kwargs["args"] == [job.id]
    assert kwargs["max_instances"] == 1

    await job_scheduler.tick(job.id)
    await job_scheduler.tick(job.id)

    finished = await store.get_job(job.id)
    assert finished.status == JobStatus.COMPLETED.value
    assert finished.current_cycle == 3
    assert finished.total_keywords == 6
    assert finished.completed_at is not None
    assert not job_scheduler.is_active(job.id)
    aps_scheduler.add_job.return_value.remove.assert_called_once()

    detail = await job_scheduler.get_job_details(job.id)
    assert len(detail.results) == 6
    assert sorted(r.cycle_number for r in detail.results) == [1, 1, 2, 2, 3, 3]
    assert detail.used_keywords == [k.lower() for k in FITNESS_IDEAS[:6]]
    assert len({r.keyword for r in detail.results}) == 6

    # Timer is gone, so a stray tick is a no-op
    await job_scheduler.tick(job.id)
    assert await store.count_results(job.id) == 6


@pytest.mark.asyncio
async def test_stop_then_resume_continues_cycle_numbers(job_scheduler, aps_scheduler, store, sample_job_data):
    job = await job_scheduler.create(sample_job_data)
    await job_scheduler.start(job.id)
    await job_scheduler.join(job.id)

    stopped = await job_scheduler.stop(job.id)
    assert stopped.status == JobStatus.PAUSED.value
    assert not job_scheduler.is_active(job.id)
    aps_scheduler.add_job.return_value.remove.assert_called_once()

    await job_scheduler.tick(job.id)
    assert (await store.get_job(job.id)).current_cycle == 1

    await job_scheduler.start(job.id)
    await job_scheduler.join(job.id)

    resumed = await store.get_job(job.id)
    assert resumed.status == JobStatus.RUNNING.value
    assert resumed.current_cycle == 2
    detail = await job_scheduler.get_job_details(job.id)
    assert sorted(r.cycle_number for r in detail.results) == [1, 1, 2, 2]


@pytest.mark.asyncio
async def test_delete_running_job(job_scheduler, store, sample_job_data):
    job = await job_scheduler.create(sample_job_data)
    await job_scheduler.start(job.id)
    await job_scheduler.join(job.id)

    await job_scheduler.delete(job.id)

    assert await store.get_job(job.id) is None
    assert await store.count_results(job.id) == 0
    assert not job_scheduler.is_active(job.id)


@pytest.mark.asyncio
async def test_failed_keyword_becomes_error_result(job_scheduler, mock_catalog, store, job_config):
    mock_catalog.failing_terms.add("fitness idea 1")
    job = await store.create_job(job_config)

    assert await job_scheduler.execute_cycle(job, 1) is True

    detail = await job_scheduler.get_job_details(job.id)
    by_keyword = {r.keyword: r for r in detail.results}
    assert by_keyword["fitness idea 1"].status == ResultStatus.ERROR.value
    assert "fitness idea 1" in by_keyword["fitness idea 1"].error_message
    ok = by_keyword["fitness idea 2"]
    assert ok.status == ResultStatus.SUCCESS.value
    assert ok.opportunity_score == ratio_opportunity_score(ok.popularity, ok.difficulty)
    # Errored keywords still count as used
    assert detail.used_keywords == ["fitness idea 1", "fitness idea 2"]
    # Successful results sort ahead of errors
    assert detail.results[-1].keyword == "fitness idea 1"


@pytest.mark.asyncio
async def test_cycle_without_keywords_still_advances(job_scheduler, mock_provider, store, job_config):
    mock_provider.should_fail = True
    job = await store.create_job(job_config)

    assert await job_scheduler.execute_cycle(job, 1) is True

    updated = await store.get_job(job.id)
    assert updated.current_cycle == 1
    assert updated.total_keywords == 0
    assert await store.count_results(job.id) == 0


@pytest.mark.asyncio
async def test_cancelled_cycle_commits_progress_only(job_scheduler, store, job_config):
    job = await store.create_job(job_config)
    cancelled = asyncio.Event()
    cancelled.set()

    assert await job_scheduler.execute_cycle(job, 1, cancelled) is True

    assert await store.count_results(job.id) == 0
    assert (await store.get_job(job.id)).current_cycle == 1


@pytest.mark.asyncio
async def test_cycle_for_deleted_job_writes_nothing(job_scheduler, store, job_config):
    job = await store.create_job(job_config)
    await store.delete_job(job.id)

    assert await job_scheduler.execute_cycle(job, 1) is False
    assert await store.count_results(job.id) == 0


@pytest.mark.asyncio
async def test_job_details_sorted_by_opportunity(job_scheduler, store, job_config):
    job = await store.create_job(job_config)
    await store.add_result(job.id, "low", 1, ResultStatus.SUCCESS, analysis={"opportunity_score": 5})
    await store.add_result(job.id, "broken", 1, ResultStatus.ERROR, error_message="boom")
    await store.add_result(job.id, "high", 1, ResultStatus.SUCCESS, analysis={"opportunity_score": 30})

    detail = await job_scheduler.get_job_details(job.id)

    assert [r.keyword for r in detail.results] == ["high", "low", "broken"]
    assert detail.results[0].top_apps == []


@pytest.mark.asyncio
async def test_list_jobs_includes_result_counts(job_scheduler, store, job_config):
    job = await store.create_job(job_config)
    await store.add_result(job.id, "a", 1, ResultStatus.SUCCESS, analysis={"opportunity_score": 5})

    summaries = await job_scheduler.list_jobs()

    assert len(summaries) == 1
    assert summaries[0].id == job.id
    assert summaries[0].result_count == 1
    assert summaries[0].strategy.value == "category"


"""
3. Restart Tests
"""


@pytest.mark.asyncio
async def test_reconcile_resumes_and_completes(job_scheduler, store, sample_job_data, job_config):
    resumable = await store.create_job(job_config)
    await store.mark_running(resumable.id)
    await store.record_cycle(resumable.id, 1, ["fitness idea 1"])

    finished = await store.create_job(job_config)
    await store.mark_running(finished.id)
    await store.record_cycle(finished.id, 3, [])

    summary = await job_scheduler.reconcile()

    assert summary == {"resumed": [resumable.id], "completed": [finished.id]}
    await job_scheduler.join(resumable.id)

    resumed = await store.get_job(resumable.id)
    assert resumed.current_cycle == 2
    detail = await job_scheduler.get_job_details(resumable.id)
    assert {r.cycle_number for r in detail.results} == {2}
    assert "fitness idea 1" not in {r.keyword for r in detail.results}

    assert (await store.get_job(finished.id)).status == JobStatus.COMPLETED.value

    # Second pass finds nothing new to do
    assert await job_scheduler.reconcile() == {"resumed": [], "completed": []}


@pytest.mark.asyncio
async def test_shutdown_keeps_jobs_running_in_store(job_scheduler, store, job_config):
    job = await store.create_job(job_config)
    await job_scheduler.start(job.id)
    await job_scheduler.join(job.id)

    status = job_scheduler.status()
    assert status["status"] == "running"
    assert status["jobs"] == [{"job_id": job.id, "next_cycle": 2, "next_run": None}]

    await job_scheduler.shutdown()

    assert not job_scheduler.is_active(job.id)
    assert (await store.get_job(job.id)).status == JobStatus.RUNNING.value


@pytest.mark.asyncio
async def test_timer_registered_on_real_scheduler(store, generator, scorer, mock_provider, job_config):
    mock_provider.responses["Health & Fitness"] = FITNESS_IDEAS
    aps_scheduler = create_aps_scheduler()
    aps_scheduler.start()
    job_scheduler = KeywordJobScheduler(store, generator, scorer, aps_scheduler, keyword_delay=0)

    try:
        job = await store.create_job(job_config)
        await job_scheduler.start(job.id)
        await job_scheduler.join(job.id)

        assert len(aps_scheduler.get_jobs()) == 1
        assert job_scheduler.status()["jobs"][0]["next_run"] is not None

        await job_scheduler.stop(job.id)
        assert aps_scheduler.get_jobs() == []
    finally:
        await job_scheduler.shutdown()
        aps_scheduler.shutdown(wait=False)


"""
4. In-flight Stop and Failure Tests
"""


class SleepGate:
    """Keyword-delay stand-in that parks the cycle until released"""

    def __init__(self):
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def __call__(self, seconds):
        self.entered.set()
        await self.release.wait()


@pytest.fixture
def gate():
    return SleepGate()


@pytest.fixture
def gated_scheduler(store, generator, scorer, aps_scheduler, mock_provider, gate):
    """Scheduler whose cycles block in the pause after their first keyword"""
    mock_provider.responses["Health & Fitness"] = FITNESS_IDEAS
    return KeywordJobScheduler(
        store=store,
        generator=generator,
        scorer=scorer,
        scheduler=aps_scheduler,
        keyword_delay=1,
        sleep=gate,
    )


@pytest.mark.asyncio
async def test_stop_during_cycle_pauses_with_partial_results(gated_scheduler, gate, aps_scheduler, store, job_config):
    job = await store.create_job(job_config)
    await gated_scheduler.start(job.id)
    await asyncio.wait_for(gate.entered.wait(), timeout=5)

    stopped = await gated_scheduler.stop(job.id)
    assert stopped.status == JobStatus.PAUSED.value
    assert not gated_scheduler.is_active(job.id)

    gate.release.set()
    await gated_scheduler.join(job.id)

    paused = await store.get_job(job.id)
    assert paused.status == JobStatus.PAUSED.value
    assert paused.current_cycle == 1
    assert paused.used_keywords == ["fitness idea 1"]
    assert await store.count_results(job.id) == 1
    # The cycle saw the cancellation, so no timer was armed after it
    aps_scheduler.add_job.assert_not_called()


@pytest.mark.asyncio
async def test_stop_during_last_cycle_completes_job(gated_scheduler, gate, aps_scheduler, store, sample_job_data):
    config = {**sample_job_data, "total_cycles": 3}
    job = await gated_scheduler.create(config)
    await store.mark_running(job.id)
    await store.record_cycle(job.id, 2, [])
    await store.set_status(job.id, JobStatus.PAUSED)

    await gated_scheduler.start(job.id)
    await asyncio.wait_for(gate.entered.wait(), timeout=5)
    await gated_scheduler.stop(job.id)
    gate.release.set()
    await gated_scheduler.join(job.id)

    finished = await store.get_job(job.id)
    assert finished.current_cycle == 3
    assert finished.status == JobStatus.COMPLETED.value
    assert finished.completed_at is not None
    assert not gated_scheduler.is_active(job.id)
    aps_scheduler.add_job.assert_not_called()


@pytest.mark.asyncio
async def test_stop_then_delete_during_cycle(gated_scheduler, gate, aps_scheduler, store, job_config):
    job = await store.create_job(job_config)
    await gated_scheduler.start(job.id)
    await asyncio.wait_for(gate.entered.wait(), timeout=5)

    await gated_scheduler.stop(job.id)
    # delete waits for the in-flight cycle, which is parked on the gate
    deleting = asyncio.create_task(gated_scheduler.delete(job.id))
    await asyncio.sleep(0)
    assert not deleting.done()

    gate.release.set()
    await asyncio.wait_for(deleting, timeout=5)
    await gated_scheduler.join(job.id)

    assert await store.get_job(job.id) is None
    assert await store.count_results(job.id) == 0
    assert not gated_scheduler.is_active(job.id)
    aps_scheduler.add_job.assert_not_called()

    await gated_scheduler.tick(job.id)
    assert await store.count_results(job.id) == 0


@pytest.mark.asyncio
async def test_store_failure_leaves_job_running_for_next_tick(job_scheduler, store, job_config, monkeypatch):
    job = await store.create_job(job_config)
    original_record_cycle = store.record_cycle
    failures = []

    async def flaky_record_cycle(job_id, cycle_number, used_keywords):
        if not failures:
            failures.append(cycle_number)
            raise RuntimeError("database unavailable")
        return await original_record_cycle(job_id, cycle_number, used_keywords)

    monkeypatch.setattr(store, "record_cycle", flaky_record_cycle)

    await job_scheduler.start(job.id)
    await job_scheduler.join(job.id)

    after_failure = await store.get_job(job.id)
    assert failures == [1]
    assert after_failure.status == JobStatus.RUNNING.value
    assert after_failure.current_cycle == 0
    assert job_scheduler.is_active(job.id)

    await job_scheduler.tick(job.id)

    recovered = await store.get_job(job.id)
    assert recovered.status == JobStatus.RUNNING.value
    assert recovered.current_cycle == 2
    detail = await job_scheduler.get_job_details(job.id)
    assert sorted(r.cycle_number for r in detail.results) == [1, 1, 2, 2]
