"""
Workflow Runner
===============

Registry of named workflows, the context they run with, and the entry
point that creates, resumes and records workflow runs. Child workflows are
started through a dispatcher: inline (same process, used by the CLI
``--sync`` mode and tests) or via the arq job queue.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from gallery_ingest.config import PipelineConfig, get_default_config
from gallery_ingest.core.enums import RunStatus
from gallery_ingest.core.exceptions import UnknownWorkflowError
from gallery_ingest.core.schema import WorkflowRun
from gallery_ingest.db.repositories import WorkflowRepository
from gallery_ingest.ingestion.crawler import PageFetcher, get_fetcher
from gallery_ingest.services.ai.client import AIClient, get_default_ai_client
from gallery_ingest.workflows.steps import StepRunner, to_json_value

logger = logging.getLogger(__name__)

WorkflowFn = Callable[[StepRunner, "PipelineContext", dict[str, Any]], Awaitable[dict[str, Any]]]

_WORKFLOWS: dict[str, WorkflowFn] = {}


def workflow(name: str) -> Callable[[WorkflowFn], WorkflowFn]:
    """Register a workflow function under `name`."""

    def decorator(fn: WorkflowFn) -> WorkflowFn:
        _WORKFLOWS[name] = fn
        return fn

    return decorator


def get_workflow(name: str) -> WorkflowFn:
    """
    Look up a registered workflow.

    Raises:
        UnknownWorkflowError: If no workflow has that name.
    """
    try:
        return _WORKFLOWS[name]
    except KeyError:
        raise UnknownWorkflowError(name) from None


def list_workflows() -> list[str]:
    """Names of all registered workflows."""
    return sorted(_WORKFLOWS)


@dataclass
class PipelineContext:
    """
    Collaborators a workflow runs with.

    The fetcher, AI client and dispatcher are built lazily from
    configuration when not injected.
    """

    session: Session
    config: PipelineConfig = field(default_factory=get_default_config)
    fetcher: PageFetcher | None = None
    ai: AIClient | None = None
    dispatcher: Dispatcher | None = None
    _owned_fetcher: bool = field(default=False, repr=False)

    def get_fetcher(self) -> PageFetcher:
        if self.fetcher is None:
            self.fetcher = get_fetcher(self.config.fetcher)
            self._owned_fetcher = True
        return self.fetcher

    def get_ai(self) -> AIClient:
        if self.ai is None:
            self.ai = get_default_ai_client(self.config.ai)
        return self.ai

    def get_dispatcher(self) -> Dispatcher:
        if self.dispatcher is None:
            self.dispatcher = InlineDispatcher()
        return self.dispatcher

    async def trigger(self, name: str, params: dict[str, Any]) -> str:
        """Start a child workflow and return its run id."""
        return await self.get_dispatcher().dispatch(self, name, params)

    async def aclose(self) -> None:
        """Close the fetcher if this context created it."""
        if self.fetcher is not None and self._owned_fetcher:
            await self.fetcher.close()
            self.fetcher = None
            self._owned_fetcher = False


async def run_workflow(
    ctx: PipelineContext,
    name: str,
    params: dict[str, Any] | None = None,
    run_id: str | None = None,
) -> WorkflowRun:
    """
    Execute a workflow run, creating it or resuming it by id.

    A run that already completed returns its stored result without
    executing anything. Failures are recorded on the run as
    ``"<ErrorType>: <message>"``; steps completed before the failure stay
    memoized so re-running with the same run id resumes the work.

    Raises:
        UnknownWorkflowError: If `name` is not registered.
    """
    fn = get_workflow(name)
    repo = WorkflowRepository(ctx.session)

    run = repo.get_run(run_id) if run_id else None
    if run is not None and run.status == RunStatus.COMPLETED:
        logger.info(f"Workflow run {run.id} ({name}) already completed")
        return run

    if run is None:
        run = repo.create_run(
            name, to_json_value(params or {}), run_id=run_id, status=RunStatus.RUNNING
        )
    else:
        if params is None:
            params = run.params
        run = repo.set_status(run.id, RunStatus.RUNNING)
    ctx.session.commit()

    logger.info(f"Starting workflow {name} (run {run.id})")
    step = StepRunner(ctx.session, run.id, ctx.config.steps)
    try:
        result = await fn(step, ctx, dict(params or {}))
    except Exception as e:
        ctx.session.rollback()
        logger.exception(f"Workflow {name} (run {run.id}) failed")
        run = repo.set_status(run.id, RunStatus.FAILED, error=f"{type(e).__name__}: {e}")
        ctx.session.commit()
        return run

    run = repo.set_status(run.id, RunStatus.COMPLETED, result=to_json_value(result or {}))
    ctx.session.commit()
    logger.info(f"Workflow {name} (run {run.id}) completed")
    return run


class Dispatcher(ABC):
    """Starts child workflows on behalf of a running workflow."""

    @abstractmethod
    async def dispatch(self, ctx: PipelineContext, name: str, params: dict[str, Any]) -> str:
        """Start workflow `name` and return its run id."""


class InlineDispatcher(Dispatcher):
    """Runs child workflows to completion in the current process."""

    async def dispatch(self, ctx: PipelineContext, name: str, params: dict[str, Any]) -> str:
        get_workflow(name)
        run = await run_workflow(ctx, name, params)
        if run.status == RunStatus.FAILED:
            logger.warning(f"Child workflow {name} (run {run.id}) failed: {run.error}")
        return run.id


class ArqDispatcher(Dispatcher):
    """Records a queued run and hands it to the arq worker."""

    async def dispatch(self, ctx: PipelineContext, name: str, params: dict[str, Any]) -> str:
        from gallery_ingest.ingestion.jobs import enqueue_workflow

        get_workflow(name)
        repo = WorkflowRepository(ctx.session)
        run = repo.create_run(name, to_json_value(params), status=RunStatus.QUEUED)
        ctx.session.commit()
        await enqueue_workflow(name, params, run_id=run.id)
        logger.info(f"Enqueued workflow {name} (run {run.id})")
        return run.id
