"""Run batches of agent requests as background jobs: chunked fan-out, progress, cancel, timeout."""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Protocol

from kasama_ai.core.config.models import BatchConfig
from kasama_ai.core.contracts.batch import (
    BatchJob,
    BatchMember,
    BatchOptions,
    BatchStats,
    MemberResult,
)
from kasama_ai.core.contracts.requests import AgentResult
from kasama_ai.core.exceptions import ConflictError, NotFoundError, OrchestratorError, ValidationError

log = logging.getLogger("batch")

Dispatch = Callable[[BatchMember], Awaitable[AgentResult]]


class JobArchive(Protocol):
    async def save_job(self, job: BatchJob) -> None: ...

    async def load_job(self, job_id: str) -> BatchJob | None: ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BatchOrchestrator:
    def __init__(
        self,
        config: BatchConfig,
        dispatch: Dispatch,
        archive: JobArchive | None = None,
        queued: Callable[[], int] | None = None,
    ):
        self.config = config
        self._dispatch = dispatch
        self.archive = archive
        self.queued = queued
        self._jobs: dict[str, BatchJob] = {}
        self._slots: dict[str, list[MemberResult | None]] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    def normalize_options(self, options: BatchOptions | None) -> BatchOptions:
        options = options or BatchOptions()
        concurrency = options.max_concurrency
        if "max_concurrency" not in options.model_fields_set:
            concurrency = self.config.default_max_concurrency
        return options.model_copy(
            update={
                "max_concurrency": max(1, min(concurrency, self.config.max_concurrency_cap)),
                "timeout_ms": options.timeout_ms or self.config.default_timeout_ms,
            }
        )

    def submit(self, members: list[BatchMember], options: BatchOptions | None = None) -> BatchJob:
        """Accept a batch and start it in the background. Returns immediately."""
        if not members:
            raise ValidationError("batch has no members")
        if len(members) > self.config.max_members:
            raise ValidationError(f"batch has {len(members)} members; at most {self.config.max_members} allowed")
        job = BatchJob(members=list(members), options=self.normalize_options(options), total_count=len(members))
        self._jobs[job.id] = job
        self._slots[job.id] = [None] * len(members)
        self._tasks[job.id] = asyncio.get_running_loop().create_task(self._run(job))
        log.info(
            "accepted batch %s: %s members parallel=%s max_concurrency=%s",
            job.id,
            job.total_count,
            job.options.parallel,
            job.options.max_concurrency,
        )
        return job

    async def status(self, job_id: str) -> BatchJob:
        job = self._jobs.get(job_id)
        if job is not None:
            return job
        if self.archive is not None:
            archived = await self.archive.load_job(job_id)
            if archived is not None:
                return archived
        raise NotFoundError(f"batch {job_id} not found")

    def cancel(self, job_id: str) -> BatchJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"batch {job_id} not found")
        if job.terminal:
            raise ConflictError(f"batch {job_id} is already {job.status}")
        # in-flight member calls run to completion; _run drops their results and stops
        job.status = "cancelled"
        job.error = "cancelled by caller"
        self._finalize(job, unfinished="cancelled")
        log.info("cancelled batch %s at %s/%s", job.id, job.completed_count, job.total_count)
        return job

    async def wait(self, job_id: str, timeout: float | None = None) -> BatchJob:
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)
        return await self.status(job_id)

    def stats(self) -> BatchStats:
        counts: dict[str, int] = {}
        for job in self._jobs.values():
            counts[job.status] = counts.get(job.status, 0) + 1
        return BatchStats(
            active=counts.get("accepted", 0) + counts.get("processing", 0),
            completed=counts.get("completed", 0),
            failed=counts.get("failed", 0),
            cancelled=counts.get("cancelled", 0),
            queued=self.queued() if self.queued else 0,
            total=len(self._jobs),
        )

    async def shutdown(self) -> None:
        running = [t for t in self._tasks.values() if not t.done()]
        for job in self._jobs.values():
            if not job.terminal:
                job.status = "cancelled"
                job.error = "service shutting down"
                self._finalize(job, unfinished="cancelled")
        for task in running:
            task.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)

    async def _run(self, job: BatchJob) -> None:
        job.status = "processing"
        job.started_at = _now()
        deadline = time.monotonic() + job.options.timeout_ms / 1000.0
        n = job.total_count
        step = job.options.max_concurrency if job.options.parallel else 1
        cancelled = False
        try:
            for start in range(0, n, step):
                if time.monotonic() >= deadline:
                    log.warning("batch %s timed out after %s/%s members", job.id, job.completed_count, n)
                    self._fail(job, f"batch timed out after {job.options.timeout_ms} ms", code="TIMEOUT")
                    break
                indices = list(range(start, min(start + step, n)))
                outcomes = await asyncio.gather(*(self._run_member(job, i) for i in indices))
                if job.terminal:
                    # cancelled while the chunk was in flight; its results are discarded
                    break
                slots = self._slots[job.id]
                for i, result in zip(indices, outcomes):
                    slots[i] = result
                self._advance(job, len(indices))
                if job.options.fail_fast and any(r.status == "failed" for r in outcomes):
                    failed = next(r for r in outcomes if r.status == "failed")
                    self._fail(job, f"member {failed.index} failed: {failed.error['message']}", code="FAIL_FAST")
                    break
            else:
                job.status = "completed"
                self._finalize(job)
        except asyncio.CancelledError:
            cancelled = True
            if not job.terminal:
                job.status = "cancelled"
                self._finalize(job, unfinished="cancelled")
        except Exception as e:
            log.exception("batch %s crashed", job.id)
            job.status = "failed"
            job.error = str(e)
            self._finalize(job, unfinished="skipped", code="INTERNAL_ERROR")
        finally:
            self._tasks.pop(job.id, None)
        log.info(
            "batch %s %s: %s/%s members (%s%%)", job.id, job.status, job.completed_count, n, job.progress
        )
        await self._archive(job)
        self._retain()
        if cancelled:
            raise asyncio.CancelledError()

    async def _run_member(self, job: BatchJob, index: int) -> MemberResult:
        member = job.members[index]
        started = time.perf_counter()
        base: dict[str, Any] = {
            "member_id": member.id,
            "index": index,
            "agent_type": member.agent_type,
            "operation": member.operation,
        }
        try:
            result = await self._dispatch(member)
        except OrchestratorError as e:
            latency_ms = int((time.perf_counter() - started) * 1000)
            log.warning("batch %s member %s failed: %s %s", job.id, index, e.code, e.message)
            return MemberResult(
                **base, status="failed", error={"code": e.code, "message": e.message}, latency_ms=latency_ms
            )
        except Exception as e:
            latency_ms = int((time.perf_counter() - started) * 1000)
            log.exception("batch %s member %s crashed", job.id, index)
            return MemberResult(
                **base, status="failed", error={"code": "INTERNAL_ERROR", "message": str(e)}, latency_ms=latency_ms
            )
        latency_ms = int((time.perf_counter() - started) * 1000)
        base["operation"] = result.operation
        return MemberResult(
            **base,
            status="succeeded",
            output=result.output,
            cache_hit=result.cache_hit,
            fallback_used=result.fallback_used,
            latency_ms=latency_ms,
        )

    def _advance(self, job: BatchJob, finished: int) -> None:
        job.completed_count += finished
        progress = round(job.completed_count / job.total_count * 100, 1)
        job.progress = max(job.progress, progress)

    def _fail(self, job: BatchJob, message: str, code: str) -> None:
        job.status = "failed"
        job.error = message
        self._finalize(job, unfinished="skipped", code=code)

    def _finalize(self, job: BatchJob, unfinished: str = "skipped", code: str | None = None) -> None:
        """Fill every open slot so results always has one entry per member, in order."""
        slots = self._slots.get(job.id) or [None] * job.total_count
        results: list[MemberResult] = []
        for i, slot in enumerate(slots):
            if slot is not None:
                results.append(slot)
                continue
            member = job.members[i]
            error = {"code": code or unfinished.upper(), "message": job.error or unfinished}
            results.append(
                MemberResult(
                    member_id=member.id,
                    index=i,
                    agent_type=member.agent_type,
                    operation=member.operation,
                    status=unfinished,
                    error=error,
                )
            )
        job.results = results
        job.finished_at = _now()

    async def _archive(self, job: BatchJob) -> None:
        if self.archive is None:
            return
        try:
            await self.archive.save_job(job)
        except Exception as e:
            log.warning("archiving batch %s failed: %s", job.id, e)

    def _retain(self) -> None:
        terminal = [jid for jid, j in self._jobs.items() if j.terminal]
        excess = len(terminal) - self.config.retained_jobs
        for jid in terminal[: max(0, excess)]:
            self._jobs.pop(jid, None)
            self._slots.pop(jid, None)
