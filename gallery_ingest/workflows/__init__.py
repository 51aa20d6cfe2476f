"""
Durable ingestion workflows.

Importing this package registers every workflow with the runner.
"""

from gallery_ingest.workflows.runner import (
    ArqDispatcher,
    Dispatcher,
    InlineDispatcher,
    PipelineContext,
    get_workflow,
    list_workflows,
    run_workflow,
    workflow,
)
from gallery_ingest.workflows.steps import StepRunner
from gallery_ingest.workflows import composite, galleries, pages  # noqa: F401

__all__ = [
    "ArqDispatcher",
    "Dispatcher",
    "InlineDispatcher",
    "PipelineContext",
    "StepRunner",
    "get_workflow",
    "list_workflows",
    "run_workflow",
    "workflow",
]
