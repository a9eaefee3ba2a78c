import asyncio
from datetime import timedelta

import pytest

from conftest import StubProvider
from quickval.core.errors import InvalidPropertyInput, JobNotFound, JobQueueFull
from quickval.core.store import MemoryStore
from quickval.schemas import PropertyInput
from quickval.services.aggregator import ProviderAggregator
from quickval.services.jobs import KEY_PREFIX, EvaluationJob, JobOrchestrator, JobStatus
from quickval.services.sales_cache import SuburbSalesCache
from quickval.services.valuation_service import ValuationService
from quickval.services.weights import WeightConfigurationStore

BONDI = PropertyInput(location="Bondi, NSW 2026")


async def ok_pipeline(prop, on_stage):
    await on_stage("fetching_data")
    await on_stage("generating_evaluation")
    return {"valuation": {"market": 900_000}, "location": prop.location}


@pytest.fixture
def make_jobs(store, clock):
    def _build(pipeline=ok_pipeline, **kwargs):
        return JobOrchestrator(store, pipeline, clock=clock, **kwargs)
    return _build


def test_completed_job_is_delivered_then_reaped(make_jobs, store, timer):
    jobs = make_jobs(workers=2, delivery_grace_seconds=30)

    async def scenario():
        job_id = await jobs.submit(BONDI)
        queued = await jobs.poll(job_id)
        await jobs.join()
        first = await jobs.poll(job_id)
        again = await jobs.poll(job_id)
        timer.advance(31)
        with pytest.raises(JobNotFound):
            await jobs.poll(job_id)
        await jobs.stop()
        return queued, first, again

    queued, first, again = asyncio.run(scenario())
    assert queued == {"status": "queued", "stage": "queued"}
    assert first["status"] == "completed" and first["stage"] == "completed"
    assert first["result"]["valuation"]["market"] == 900_000
    assert again == first


def test_no_grace_deletes_on_first_delivery(make_jobs):
    jobs = make_jobs(delivery_grace_seconds=0)

    async def scenario():
        job_id = await jobs.submit(BONDI)
        await jobs.join()
        first = await jobs.poll(job_id)
        with pytest.raises(JobNotFound):
            await jobs.poll(job_id)
        await jobs.stop()
        return first

    assert asyncio.run(scenario())["status"] == "completed"


def test_completed_record_drops_property_snapshot(make_jobs, store):
    jobs = make_jobs()

    async def scenario():
        job_id = await jobs.submit(BONDI)
        before = EvaluationJob.model_validate_json(await store.get(KEY_PREFIX + job_id))
        await jobs.join()
        after = EvaluationJob.model_validate_json(await store.get(KEY_PREFIX + job_id))
        await jobs.stop()
        return before, after

    before, after = asyncio.run(scenario())
    assert before.property_data["location"] == "Bondi, NSW 2026"
    assert after.property_data is None and after.completed_at is not None


def test_stage_is_visible_while_running(make_jobs):
    async def scenario():
        started, release = asyncio.Event(), asyncio.Event()

        async def pipeline(prop, on_stage):
            await on_stage("generating_evaluation")
            started.set()
            await release.wait()
            return {}

        jobs = make_jobs(pipeline)
        job_id = await jobs.submit(BONDI)
        await started.wait()
        running = await jobs.poll(job_id)
        release.set()
        await jobs.join()
        await jobs.stop()
        return running

    assert asyncio.run(scenario()) == {"status": "in_progress", "stage": "generating_evaluation"}


def test_pipeline_error_fails_the_job(make_jobs):
    async def pipeline(prop, on_stage):
        raise ValueError("provider payload unreadable")

    jobs = make_jobs(pipeline)

    async def scenario():
        job_id = await jobs.submit(BONDI)
        await jobs.join()
        status = await jobs.poll(job_id)
        await jobs.stop()
        return status

    status = asyncio.run(scenario())
    assert status == {"status": "failed", "stage": "failed", "error": "provider payload unreadable"}


def test_timeout_fails_the_job(make_jobs):
    async def pipeline(prop, on_stage):
        await asyncio.sleep(5)

    jobs = make_jobs(pipeline, job_timeout=0.05)

    async def scenario():
        job_id = await jobs.submit(BONDI)
        await jobs.join()
        status = await jobs.poll(job_id)
        await jobs.stop()
        return status

    status = asyncio.run(scenario())
    assert status["status"] == "failed"
    assert "timed out" in status["error"]


def test_job_completes_on_formula_when_every_provider_fails(store, clock):
    cache = SuburbSalesCache(store, ttl=timedelta(days=7), clock=clock)
    aggregator = ProviderAggregator(
        [StubProvider("broken", error=RuntimeError("upstream 500")), StubProvider("slow", delay=1.0)],
        cache,
        timeout=0.05,
    )
    service = ValuationService(aggregator, WeightConfigurationStore(store, clock=clock))
    jobs = JobOrchestrator(store, service.evaluate, clock=clock)

    async def scenario():
        job_id = await jobs.submit(BONDI)
        await jobs.join()
        status = await jobs.poll(job_id)
        await jobs.stop()
        return status

    status = asyncio.run(scenario())
    assert status["status"] == "completed"
    result = status["result"]
    assert (result["valuation"]["conservative"], result["valuation"]["market"],
            result["valuation"]["premium"]) == (855_000, 900_000, 945_000)
    assert result["report_source"] == "fallback"
    assert result["comparables_data"]["comparable_sold"] == []


def test_missing_location_creates_nothing(make_jobs, store):
    jobs = make_jobs()

    async def scenario():
        with pytest.raises(InvalidPropertyInput, match="Location is required"):
            await jobs.submit(PropertyInput(location="   "))
        return await store.list_prefix(KEY_PREFIX)

    assert asyncio.run(scenario()) == {}


def test_full_queue_rejects_without_creating_a_record(make_jobs, store):
    async def scenario():
        release = asyncio.Event()

        async def pipeline(prop, on_stage):
            await release.wait()
            return {}

        jobs = make_jobs(pipeline, workers=1, queue_size=1)
        await jobs.submit(BONDI)
        with pytest.raises(JobQueueFull):
            await jobs.submit(BONDI)
        records = await store.list_prefix(KEY_PREFIX)
        release.set()
        await jobs.join()
        await jobs.stop()
        return records

    assert len(asyncio.run(scenario())) == 1


def test_unpolled_jobs_expire_after_retention(make_jobs, timer):
    jobs = make_jobs(retention_seconds=600)

    async def scenario():
        job_id = await jobs.submit(BONDI)
        await jobs.join()
        timer.advance(601)
        with pytest.raises(JobNotFound):
            await jobs.poll(job_id)
        await jobs.stop()

    asyncio.run(scenario())


def test_unknown_job():
    jobs = JobOrchestrator(MemoryStore(), ok_pipeline)
    with pytest.raises(JobNotFound):
        asyncio.run(jobs.poll("does-not-exist"))


class TestTransitions:
    def test_forward_path(self):
        job = EvaluationJob()
        job.advance(JobStatus.IN_PROGRESS)
        job.advance(JobStatus.COMPLETED)
        assert job.status == JobStatus.COMPLETED

    @pytest.mark.parametrize("start,target", [
        (JobStatus.QUEUED, JobStatus.COMPLETED),
        (JobStatus.QUEUED, JobStatus.FAILED),
        (JobStatus.COMPLETED, JobStatus.FAILED),
        (JobStatus.FAILED, JobStatus.IN_PROGRESS),
        (JobStatus.IN_PROGRESS, JobStatus.QUEUED),
    ])
    def test_illegal_transitions(self, start, target):
        job = EvaluationJob(status=start)
        with pytest.raises(ValueError):
            job.advance(target)
