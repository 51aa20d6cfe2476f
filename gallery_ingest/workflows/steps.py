"""
Durable Step Runtime
====================

A workflow run executes as a sequence of named steps. Each completed step
is recorded in the step log keyed by (run_id, step_name); when the run is
replayed the recorded result is returned instead of executing the step
again. Transient infrastructure errors are retried with exponential
backoff before a step is allowed to fail.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import httpx
from pydantic import BaseModel
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from gallery_ingest.config import StepConfig
from gallery_ingest.core.exceptions import TransientError
from gallery_ingest.db.repositories import WorkflowRepository

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    TransientError,
    httpx.TransportError,
    OperationalError,
)


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Step result of type {type(value).__name__} is not JSON serializable")


def to_json_value(value: Any) -> Any:
    """Round-trip a step result through JSON so first runs and replays agree."""
    return json.loads(json.dumps(value, default=_json_default))


class StepRunner:
    """
    Executes and memoizes the named steps of one workflow run.

    Args:
        session: Database session holding the step log.
        run_id: The workflow run the steps belong to.
        config: Retry settings.
        sleep: Coroutine used for backoff and durable sleeps.
    """

    def __init__(
        self,
        session: Session,
        run_id: str,
        config: StepConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.session = session
        self.run_id = run_id
        self.config = config or StepConfig()
        self._sleep = sleep
        self.repo = WorkflowRepository(session)

    async def do(self, name: str, fn: Callable[[], Any]) -> Any:
        """
        Run a step once per run.

        Args:
            name: Step name, unique within the run.
            fn: Zero-argument callable; may be sync or return an awaitable.

        Returns:
            The JSON form of the step's result (memoized on replay).
        """
        recorded = self.repo.get_step(self.run_id, name)
        if recorded is not None:
            logger.debug(f"Step {name} already completed for run {self.run_id}, replaying")
            return recorded.result

        attempt = 0
        while True:
            attempt += 1
            try:
                if inspect.iscoroutinefunction(fn):
                    result = await fn()
                else:
                    # Sync bodies make blocking AI and database calls; keep them
                    # off the event loop shared by the worker's jobs.
                    result = await asyncio.to_thread(fn)
                if inspect.isawaitable(result):
                    result = await result
                break
            except TRANSIENT_ERRORS as e:
                self.session.rollback()
                if attempt >= self.config.max_attempts:
                    logger.error(f"Step {name} failed after {attempt} attempts: {e}")
                    raise
                delay = self.config.backoff_base_seconds * (2 ** (attempt - 1))
                logger.warning(
                    f"Step {name} attempt {attempt} failed ({e}), retrying in {delay:.1f}s"
                )
                await self._sleep(delay)

        value = to_json_value(result)
        try:
            self.repo.save_step(self.run_id, name, value, attempts=attempt)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return value

    async def sleep(self, name: str, seconds: float) -> None:
        """Sleep durably; a replayed run skips sleeps it already completed."""

        async def _sleep() -> None:
            if seconds > 0:
                await self._sleep(seconds)

        await self.do(name, _sleep)
