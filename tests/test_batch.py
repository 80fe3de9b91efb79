import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from kasama_ai.core.config.models import BatchConfig
from kasama_ai.core.contracts.batch import BatchJob, BatchMember, BatchOptions, ScheduleRequest
from kasama_ai.core.contracts.requests import AgentResult, AgentType
from kasama_ai.core.exceptions import ConflictError, NotFoundError, ProviderError, ValidationError
from kasama_ai.orchestrator.batch import BatchOrchestrator
from kasama_ai.orchestrator.scheduler import BatchScheduler


class RecordingDispatch:
    """Stands in for the agent handlers: echoes the member, optionally failing some."""

    def __init__(self, delay: float = 0.0, fail: tuple[int, ...] = ()):
        self.delay = delay
        self.fail = set(fail)
        self.in_flight = 0
        self.max_in_flight = 0
        self.order: list[int] = []
        self.completed_at_start: list[int] = []
        self.job: BatchJob | None = None

    async def __call__(self, member: BatchMember) -> AgentResult:
        n = member.input["n"]
        if self.job is not None:
            self.completed_at_start.append(self.job.completed_count)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            self.order.append(n)
            if n in self.fail:
                raise ProviderError(f"member {n} exploded", code="MODEL_OVERLOADED")
            return AgentResult(
                request_id=f"req-{n}",
                agent_type=AgentType.PROGRESS_TRACKER,
                operation="analyze_progress",
                output={"n": n},
            )
        finally:
            self.in_flight -= 1


class MemoryArchive:
    def __init__(self):
        self.saved: dict[str, BatchJob] = {}

    async def save_job(self, job: BatchJob) -> None:
        self.saved[job.id] = job.model_copy(deep=True)

    async def load_job(self, job_id: str) -> BatchJob | None:
        return self.saved.get(job_id)


def members(count: int, agent_type: str = "progress_tracker") -> list[BatchMember]:
    return [BatchMember(agent_type=agent_type, input={"n": n}) for n in range(count)]


@pytest.mark.asyncio
async def test_parallel_batch_runs_in_chunks_and_keeps_order():
    dispatch = RecordingDispatch(delay=0.01)
    batches = BatchOrchestrator(BatchConfig(), dispatch)

    job = batches.submit(members(12))
    dispatch.job = job
    assert job.status == "accepted"
    done = await batches.wait(job.id, timeout=5)

    assert done.status == "completed"
    assert done.progress == 100.0
    assert done.completed_count == 12
    assert dispatch.max_in_flight == 5
    assert sorted(dispatch.completed_at_start) == [0] * 5 + [5] * 5 + [10] * 2
    assert [r.index for r in done.results] == list(range(12))
    assert [r.output for r in done.results] == [{"n": n} for n in range(12)]
    assert all(r.status == "succeeded" for r in done.results)


@pytest.mark.asyncio
async def test_sequential_batch_runs_one_at_a_time():
    dispatch = RecordingDispatch()
    batches = BatchOrchestrator(BatchConfig(), dispatch)

    job = batches.submit(members(4), BatchOptions(parallel=False))
    await batches.wait(job.id, timeout=5)

    assert dispatch.max_in_flight == 1
    assert dispatch.order == [0, 1, 2, 3]


def test_concurrency_defaults_and_cap():
    batches = BatchOrchestrator(BatchConfig(default_max_concurrency=3, max_concurrency_cap=10), RecordingDispatch())
    assert batches.normalize_options(None).max_concurrency == 3
    assert batches.normalize_options(BatchOptions(max_concurrency=50)).max_concurrency == 10
    assert batches.normalize_options(BatchOptions(max_concurrency=2)).max_concurrency == 2
    assert batches.normalize_options(None).timeout_ms == 300000


@pytest.mark.asyncio
async def test_submission_limits():
    batches = BatchOrchestrator(BatchConfig(max_members=3), RecordingDispatch())
    with pytest.raises(ValidationError):
        batches.submit([])
    with pytest.raises(ValidationError):
        batches.submit(members(4))


@pytest.mark.asyncio
async def test_member_failure_does_not_stop_batch():
    batches = BatchOrchestrator(BatchConfig(), RecordingDispatch(fail=(1,)))

    job = batches.submit(members(3))
    done = await batches.wait(job.id, timeout=5)

    assert done.status == "completed"
    assert [r.status for r in done.results] == ["succeeded", "failed", "succeeded"]
    assert done.results[1].error["code"] == "MODEL_OVERLOADED"


@pytest.mark.asyncio
async def test_fail_fast_skips_remaining_members():
    batches = BatchOrchestrator(BatchConfig(), RecordingDispatch(fail=(1,)))

    job = batches.submit(members(6), BatchOptions(max_concurrency=2, fail_fast=True))
    done = await batches.wait(job.id, timeout=5)

    assert done.status == "failed"
    assert "member 1 failed" in done.error
    assert [r.status for r in done.results] == ["succeeded", "failed"] + ["skipped"] * 4
    assert {r.error["code"] for r in done.results[2:]} == {"FAIL_FAST"}
    assert len(done.results) == 6


@pytest.mark.asyncio
async def test_timeout_fails_job_and_skips_unstarted_members():
    batches = BatchOrchestrator(BatchConfig(), RecordingDispatch(delay=0.02))

    job = batches.submit(members(5), BatchOptions(parallel=False, timeout_ms=30))
    done = await batches.wait(job.id, timeout=5)

    assert done.status == "failed"
    succeeded = [r for r in done.results if r.status == "succeeded"]
    skipped = [r for r in done.results if r.status == "skipped"]
    assert 1 <= len(succeeded) < 5
    assert skipped and all(r.error["code"] == "TIMEOUT" for r in skipped)
    assert len(done.results) == 5


@pytest.mark.asyncio
async def test_cancel_marks_unfinished_members_and_rejects_second_cancel():
    dispatch = RecordingDispatch(delay=0.05)
    batches = BatchOrchestrator(BatchConfig(), dispatch)

    job = batches.submit(members(4), BatchOptions(parallel=False))
    await asyncio.sleep(0.01)
    cancelled = batches.cancel(job.id)
    await batches.wait(job.id, timeout=5)

    assert cancelled.status == "cancelled"
    assert len(cancelled.results) == 4
    assert {r.status for r in cancelled.results} == {"cancelled"}
    assert cancelled.completed_count == 0
    # the member already running finished; nothing after it started
    assert dispatch.order == [0]
    with pytest.raises(ConflictError):
        batches.cancel(job.id)
    with pytest.raises(NotFoundError):
        batches.cancel("no-such-batch")


THEME = json.dumps(
    {
        "theme": "Listening",
        "description": "A week of hearing each other out.",
        "dailyFocus": ["Pause before replying"],
        "practices": ["Reflective listening"],
    }
)


@pytest.mark.asyncio
async def test_cancel_does_not_interrupt_a_call_shared_with_another_request(orchestrator, primary):
    primary.script("insight_generator", THEME)
    primary.delay_seconds = 0.1
    job = orchestrator.batches.submit([BatchMember(agent_type="insight_generator", operation="weekly_theme")])
    await asyncio.sleep(0.02)
    same = asyncio.create_task(orchestrator.handlers.run("insight_generator", "weekly_theme", {}, user_id="other"))
    await asyncio.sleep(0.02)

    orchestrator.batches.cancel(job.id)
    result = await same
    done = await orchestrator.batches.wait(job.id, timeout=5)

    assert result.fallback_used is False
    assert result.output["theme"] == "Listening"
    assert len(primary.calls) == 1
    assert done.status == "cancelled"
    assert done.results[0].status == "cancelled"
    later = await orchestrator.handlers.run("insight_generator", "weekly_theme", {}, user_id="third")
    assert later.cache_hit is True
    assert len(primary.calls) == 1


@pytest.mark.asyncio
async def test_progress_never_goes_backwards():
    dispatch = RecordingDispatch(delay=0.01)
    batches = BatchOrchestrator(BatchConfig(), dispatch)
    job = batches.submit(members(6), BatchOptions(max_concurrency=2))

    seen = []
    while not job.terminal:
        seen.append(job.progress)
        await asyncio.sleep(0.005)
    seen.append(job.progress)

    assert seen == sorted(seen)
    assert seen[-1] == 100.0


@pytest.mark.asyncio
async def test_terminal_jobs_are_archived_and_found_after_eviction():
    archive = MemoryArchive()
    batches = BatchOrchestrator(BatchConfig(retained_jobs=1), RecordingDispatch(), archive=archive)

    first = batches.submit(members(2))
    await batches.wait(first.id, timeout=5)
    second = batches.submit(members(1))
    await batches.wait(second.id, timeout=5)

    assert set(archive.saved) == {first.id, second.id}
    found = await batches.status(first.id)
    assert found.status == "completed"
    assert len(found.results) == 2
    with pytest.raises(NotFoundError):
        await batches.status("missing")


@pytest.mark.asyncio
async def test_stats_count_jobs_by_state():
    batches = BatchOrchestrator(BatchConfig(), RecordingDispatch(fail=(0,)), queued=lambda: 2)

    ok = batches.submit(members(1, agent_type="learning_coach"))
    failing = batches.submit(members(1), BatchOptions(fail_fast=True))
    await batches.wait(ok.id, timeout=5)
    await batches.wait(failing.id, timeout=5)

    stats = batches.stats()
    assert stats.total == 2
    assert stats.failed == 1
    assert stats.active == 0
    assert stats.queued == 2


@pytest.mark.asyncio
async def test_unknown_agent_type_fails_only_that_member(orchestrator, providers_down):
    job = orchestrator.batches.submit(
        [
            BatchMember(agent_type="astrologer", input={}),
            BatchMember(agent_type="insight_generator", operation="weekly_theme", input={}),
        ]
    )
    done = await orchestrator.batches.wait(job.id, timeout=5)

    assert done.status == "completed"
    assert done.results[0].status == "failed"
    assert done.results[0].error["code"] == "NOT_FOUND"
    assert done.results[1].status == "succeeded"
    assert done.results[1].fallback_used is True
    assert done.results[1].output["theme"]


@pytest.mark.asyncio
async def test_scheduler_releases_due_members_as_batches():
    dispatch = RecordingDispatch()
    batches = BatchOrchestrator(BatchConfig(), dispatch)
    now = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    scheduler = BatchScheduler(batches, clock=lambda: now)
    batches.queued = lambda: scheduler.queued

    response = scheduler.schedule(
        ScheduleRequest(
            user_id="u42",
            members=[
                {"agent_type": "progress_tracker", "input": {"n": 0}, "scheduled_time": now - timedelta(minutes=1)},
                {"agent_type": "progress_tracker", "input": {"n": 1}, "scheduled_time": now + timedelta(hours=1)},
            ],
        )
    )
    assert response.status == "scheduled"
    assert response.queue_position == 1
    assert response.member_count == 2

    [first_batch] = scheduler.tick()
    first = await batches.wait(first_batch, timeout=5)
    assert first.total_count == 1
    assert first.members[0].user_id == "u42"
    assert scheduler.queued == 1
    assert batches.stats().queued == 1

    assert scheduler.tick() == []
    [second_batch] = scheduler.tick(now + timedelta(hours=2))
    await batches.wait(second_batch, timeout=5)
    assert scheduler.queued == 0
    assert dispatch.order == [0, 1]


def test_schedule_rejects_oversized_requests():
    scheduler = BatchScheduler(BatchOrchestrator(BatchConfig(max_members=1), RecordingDispatch()))
    later = datetime.now(timezone.utc) + timedelta(hours=1)
    with pytest.raises(ValidationError):
        scheduler.schedule(
            ScheduleRequest(
                members=[
                    {"agent_type": "progress_tracker", "scheduled_time": later},
                    {"agent_type": "progress_tracker", "scheduled_time": later},
                ]
            )
        )
