"""Hold scheduled batch members until they are due, then submit them as batches."""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from kasama_ai.core.contracts.batch import BatchMember, BatchOptions, ScheduledMember, ScheduleRequest, ScheduleResponse
from kasama_ai.core.exceptions import ValidationError
from kasama_ai.orchestrator.batch import BatchOrchestrator

log = logging.getLogger("scheduler")


def _utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


@dataclass
class ScheduledBatch:
    id: str
    user_id: str
    options: BatchOptions
    members: list[ScheduledMember]
    batch_ids: list[str] = field(default_factory=list)


class BatchScheduler:
    def __init__(
        self,
        batches: BatchOrchestrator,
        poll_seconds: float = 5.0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.batches = batches
        self.poll_seconds = poll_seconds
        self._clock = clock
        self._queue: list[ScheduledBatch] = []

    def schedule(self, request: ScheduleRequest) -> ScheduleResponse:
        if len(request.members) > self.batches.config.max_members:
            raise ValidationError(
                f"schedule has {len(request.members)} members; at most {self.batches.config.max_members} allowed"
            )
        # members without their own user id belong to the scheduling user
        members = [
            m if "user_id" in m.model_fields_set else m.model_copy(update={"user_id": request.user_id})
            for m in request.members
        ]
        entry = ScheduledBatch(id=str(uuid.uuid4()), user_id=request.user_id, options=request.options, members=members)
        self._queue.append(entry)
        first_due = min(_utc(m.scheduled_time) for m in members)
        log.info("scheduled %s: %s members, first due %s", entry.id, len(members), first_due.isoformat())
        return ScheduleResponse(
            schedule_id=entry.id,
            status="scheduled",
            queue_position=len(self._queue),
            member_count=len(members),
        )

    @property
    def queued(self) -> int:
        return len(self._queue)

    def tick(self, now: datetime | None = None) -> list[str]:
        """Submit every due member, one batch per schedule. Returns the new batch ids."""
        now = _utc(now or self._clock())
        submitted: list[str] = []
        remaining: list[ScheduledBatch] = []
        for entry in self._queue:
            due = [m for m in entry.members if _utc(m.scheduled_time) <= now]
            if due:
                members = [BatchMember.model_validate(m.model_dump(exclude={"scheduled_time"})) for m in due]
                job = self.batches.submit(members, entry.options)
                entry.batch_ids.append(job.id)
                submitted.append(job.id)
                log.info("schedule %s released %s members as batch %s", entry.id, len(members), job.id)
                entry.members = [m for m in entry.members if _utc(m.scheduled_time) > now]
            if entry.members:
                remaining.append(entry)
        self._queue = remaining
        return submitted

    async def run(self) -> None:
        while True:
            try:
                self.tick()
            except Exception:
                log.exception("scheduler tick failed")
            await asyncio.sleep(self.poll_seconds)
