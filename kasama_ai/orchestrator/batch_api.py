"""Batch endpoints: submit, poll, cancel, schedule."""
from __future__ import annotations

from fastapi import APIRouter

from kasama_ai.core.contracts.batch import (
    BatchStats,
    BatchStatusResponse,
    BatchSubmitRequest,
    BatchSubmitResponse,
    ScheduleRequest,
    ScheduleResponse,
)
from kasama_ai.orchestrator.deps import get_orchestrator

router = APIRouter(prefix="/batch", tags=["batch"])


@router.post("", response_model=BatchSubmitResponse, status_code=202)
async def submit_batch(req: BatchSubmitRequest):
    job = get_orchestrator().batches.submit(req.members, req.options)
    return BatchSubmitResponse(
        batch_id=job.id,
        status="accepted",
        status_url=f"/batch/{job.id}/status",
        member_count=job.total_count,
    )


@router.get("/stats", response_model=BatchStats)
def batch_stats():
    return get_orchestrator().batches.stats()


@router.post("/schedule", response_model=ScheduleResponse)
async def schedule_batch(req: ScheduleRequest):
    return get_orchestrator().scheduler.schedule(req)


@router.get("/{batch_id}/status", response_model=BatchStatusResponse)
async def batch_status(batch_id: str):
    job = await get_orchestrator().batches.status(batch_id)
    return BatchStatusResponse(
        batch_id=job.id,
        status=job.status,
        progress=job.progress,
        completed_count=job.completed_count,
        total_count=job.total_count,
        error=job.error,
        results=job.results if job.terminal else None,
    )


@router.post("/{batch_id}/cancel")
async def cancel_batch(batch_id: str):
    job = get_orchestrator().batches.cancel(batch_id)
    return {"success": True, "batch_id": job.id, "status": job.status}
