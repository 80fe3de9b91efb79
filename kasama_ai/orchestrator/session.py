"""Persist terminal batch jobs and provider metrics in app Postgres."""
from __future__ import annotations

import json
from typing import Any

import asyncpg

from kasama_ai.core.contracts.batch import BatchJob
from kasama_ai.providers.metrics import ProviderMetricsRecord


def get_app_db_url(env: dict[str, str], var: str = "POSTGRES_APP_URL") -> str:
    url = env.get(var)
    if not url:
        raise ValueError(f"{var} not set")
    return url.replace("postgresql+asyncpg://", "postgresql://")


async def save_batch_job(conn: asyncpg.Connection, job: BatchJob) -> None:
    results_json = json.dumps([r.model_dump(mode="json") for r in job.results])
    options_json = job.options.model_dump_json()
    await conn.execute(
        """
        INSERT INTO app.batch_jobs
            (id, status, progress, completed_count, total_count, options, results, error, created_at, finished_at)
        VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7::jsonb, $8, $9, $10)
        ON CONFLICT (id) DO UPDATE SET
            status = EXCLUDED.status, progress = EXCLUDED.progress,
            completed_count = EXCLUDED.completed_count, results = EXCLUDED.results,
            error = EXCLUDED.error, finished_at = EXCLUDED.finished_at
        """,
        job.id,
        job.status,
        job.progress,
        job.completed_count,
        job.total_count,
        options_json,
        results_json,
        job.error,
        job.created_at,
        job.finished_at,
    )


async def get_batch_job(conn: asyncpg.Connection, job_id: str) -> dict[str, Any] | None:
    """Load one archived job. Returns a dict shaped like BatchJob without the member inputs."""
    row = await conn.fetchrow(
        """
        SELECT id, status, progress, completed_count, total_count, options, results, error, created_at, finished_at
        FROM app.batch_jobs WHERE id = $1
        """,
        job_id,
    )
    if not row:
        return None
    options = row["options"]
    results = row["results"]
    if isinstance(options, str):
        options = json.loads(options)
    if isinstance(results, str):
        results = json.loads(results)
    return {
        "id": row["id"],
        "members": [],
        "status": row["status"],
        "progress": row["progress"],
        "completed_count": row["completed_count"],
        "total_count": row["total_count"],
        "options": options or {},
        "results": results or [],
        "error": row["error"],
        "created_at": row["created_at"],
        "finished_at": row["finished_at"],
    }


async def save_provider_metric(conn: asyncpg.Connection, record: ProviderMetricsRecord) -> None:
    await conn.execute(
        """
        INSERT INTO app.provider_metrics
            (provider, request_id, agent_type, status, input_tokens, output_tokens, latency_ms, cost, error_code, recorded_at)
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
        """,
        record.provider,
        record.request_id,
        record.agent_type,
        record.status,
        record.usage.input_tokens,
        record.usage.output_tokens,
        record.latency_ms,
        record.cost,
        record.error_code,
        record.recorded_at,
    )


class PostgresArchive:
    """Job archive and metrics sink over short-lived asyncpg connections."""

    def __init__(self, url: str):
        self.url = url

    async def save_job(self, job: BatchJob) -> None:
        conn = await asyncpg.connect(self.url)
        try:
            await save_batch_job(conn, job)
        finally:
            await conn.close()

    async def load_job(self, job_id: str) -> BatchJob | None:
        conn = await asyncpg.connect(self.url)
        try:
            row = await get_batch_job(conn, job_id)
        finally:
            await conn.close()
        return BatchJob.model_validate(row) if row else None

    async def record_metric(self, record: ProviderMetricsRecord) -> None:
        conn = await asyncpg.connect(self.url)
        try:
            await save_provider_metric(conn, record)
        finally:
            await conn.close()
