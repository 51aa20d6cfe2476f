"""Workflow routes: trigger named workflows and inspect their runs."""

import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException
from fastapi.responses import JSONResponse

from gallery_ingest.config import get_default_config
from gallery_ingest.db.engine import get_session
from gallery_ingest.db.repositories import WorkflowRepository
from gallery_ingest.web.dependencies import DispatcherDep
from gallery_ingest.workflows import PipelineContext, list_workflows

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/workflows", tags=["workflows"])


@router.get("")
async def api_list_workflows() -> JSONResponse:
    """List registered workflow names."""
    return JSONResponse({"workflows": list_workflows()})


@router.get("/runs/{run_id}")
async def api_get_run(run_id: str) -> JSONResponse:
    """Get a workflow run with its status, result and error."""
    with get_session() as session:
        run = WorkflowRepository(session).get_run(run_id)
        if run is None:
            raise HTTPException(status_code=404, detail="Workflow run not found")

    return JSONResponse({"run": run.model_dump(mode="json")})


@router.post("/{name}")
async def api_trigger_workflow(
    name: str,
    dispatcher: DispatcherDep,
    params: dict[str, Any] = Body(default_factory=dict),
) -> JSONResponse:
    """
    Trigger a workflow by name.

    The JSON body is passed to the workflow as its parameters. Returns the
    id of the created run.
    """
    if name not in list_workflows():
        raise HTTPException(status_code=404, detail=f"Unknown workflow: {name}")

    with get_session() as session:
        ctx = PipelineContext(session=session, config=get_default_config(), dispatcher=dispatcher)
        try:
            run_id = await ctx.trigger(name, params)
        except Exception as e:
            logger.exception(f"Failed to trigger workflow {name}")
            raise HTTPException(
                status_code=503,
                detail=f"Failed to start workflow {name}: {e}",
            ) from e
        finally:
            await ctx.aclose()

    return JSONResponse({"id": run_id}, status_code=202)
