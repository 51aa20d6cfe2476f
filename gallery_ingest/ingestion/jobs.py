"""
Background Jobs Module
======================

Runs workflow runs on an arq worker. Redis is the job queue backend; the
workflow run table stays the source of truth for run status and results.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from arq import create_pool
from arq.connections import RedisSettings

from gallery_ingest.config import get_default_config
from gallery_ingest.db.engine import get_session

logger = logging.getLogger(__name__)


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from environment."""
    return RedisSettings(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", "6379")),
        database=int(os.environ.get("REDIS_DB", "0")),
    )


async def run_workflow_job(
    ctx: dict[str, Any],
    workflow_name: str,
    params: dict[str, Any],
    run_id: str | None = None,
) -> dict[str, Any]:
    """
    arq task executing one workflow run.

    Child workflows started by the run are enqueued as further jobs.

    Args:
        ctx: arq context (contains Redis connection)
        workflow_name: Registered workflow name
        params: Workflow parameters
        run_id: Run to create or resume

    Returns:
        The run's status, result and error as a dictionary
    """
    from gallery_ingest.workflows import ArqDispatcher, PipelineContext, run_workflow

    run_id = run_id or ctx.get("job_id")
    with get_session() as session:
        pipeline_ctx = PipelineContext(
            session=session, config=get_default_config(), dispatcher=ArqDispatcher()
        )
        try:
            run = await run_workflow(pipeline_ctx, workflow_name, params, run_id=run_id)
        finally:
            await pipeline_ctx.aclose()

    logger.info(f"Job for workflow {workflow_name} finished with status {run.status.value}")
    return {
        "run_id": run.id,
        "workflow": run.workflow,
        "status": run.status.value,
        "result": run.result,
        "error": run.error,
    }


async def enqueue_workflow(
    workflow_name: str,
    params: dict[str, Any],
    run_id: str | None = None,
) -> str:
    """
    Enqueue a workflow run for async processing.

    Args:
        workflow_name: Registered workflow name
        params: Workflow parameters
        run_id: Optional run id; also used as the arq job id

    Returns:
        Job ID
    """
    redis = await create_pool(get_redis_settings())
    try:
        job = await redis.enqueue_job(
            "run_workflow_job", workflow_name, params, run_id, _job_id=run_id
        )
    finally:
        await redis.close()
    if job is None:
        # arq returns None when a job with this id is already queued or done.
        logger.info(f"Job {run_id} already enqueued")
        return run_id or ""
    return job.job_id


async def get_job_status(job_id: str) -> dict[str, Any] | None:
    """
    Get the status of a queued workflow job.

    Args:
        job_id: Job ID to look up

    Returns:
        Job info dict, or None if not found
    """
    from arq.jobs import Job, JobStatus

    redis = await create_pool(get_redis_settings())
    try:
        job = Job(job_id, redis)
        status = await job.status()
        if status == JobStatus.not_found:
            return None
        info = await job.result_info()
    finally:
        await redis.close()

    return {
        "job_id": job_id,
        "status": status.value,
        "result": info.result if info else None,
    }


class WorkerSettings:
    """arq worker settings."""

    functions = [run_workflow_job]
    redis_settings = get_redis_settings()
    max_jobs = 5
    job_timeout = 3600  # 1 hour
    keep_result = 86400  # 24 hours
