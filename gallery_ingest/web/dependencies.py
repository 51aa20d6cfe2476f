"""FastAPI dependencies shared by the workflow routes."""

from typing import Annotated

from fastapi import Depends

from gallery_ingest.workflows import ArqDispatcher, Dispatcher


def get_dispatcher() -> Dispatcher:
    """Dependency returning the dispatcher that starts triggered workflows.

    Runs are queued on the arq worker. Override this dependency to run
    workflows another way (e.g. inline).
    """
    return ArqDispatcher()


# Type aliases for dependency injection
DispatcherDep = Annotated[Dispatcher, Depends(get_dispatcher)]
