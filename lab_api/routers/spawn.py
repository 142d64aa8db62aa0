"""
Spawn Router

REST API endpoints for the lab session lifecycle: spawn, stop and status.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..schemas import (
    SpawnRequest,
    SpawnResponse,
    SpawnResponseData,
    StopRequest,
    StopResponse,
    StatusResponse,
)
from ..services.errors import LabError
from ..services.lab_manager import LabManager, SessionRequest, get_lab_manager

logger = logging.getLogger(__name__)
router = APIRouter()


def _to_http_exception(error: LabError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message)


@router.post("", response_model=SpawnResponse)
async def spawn_lab(
    request: SpawnRequest,
    lab_manager: LabManager = Depends(get_lab_manager),
):
    """
    Spawn a lab session and wait until it is ready.

    Terminal labs return a WebSocket URL for the terminal relay, web labs the
    external address of their LoadBalancer service.
    """
    try:
        result = await lab_manager.spawn(SessionRequest(
            session_id=str(request.session_id),
            lab_type=request.lab_type,
            template_path=request.template_path,
        ))
    except LabError as e:
        logger.warning(f"Spawn of {request.lab_type} lab for session {request.session_id} failed: {e.message}")
        raise _to_http_exception(e) from e

    return SpawnResponse(
        success=True,
        data=SpawnResponseData(
            pod_name=result.external_identifier,
            access_url=result.access_url,
        )
    )


@router.post("/stop", response_model=StopResponse)
async def stop_lab(
    request: StopRequest,
    lab_manager: LabManager = Depends(get_lab_manager),
):
    """Tear down a lab session. Stopping an already stopped lab succeeds."""
    try:
        await lab_manager.stop(request.container_id)
    except LabError as e:
        raise _to_http_exception(e) from e

    return StopResponse(status="Stopped")


@router.get("/status/{container_id}", response_model=StatusResponse)
async def lab_status(
    container_id: str,
    lab_manager: LabManager = Depends(get_lab_manager),
):
    """Get the pod phase of a lab session, "Unknown" if it cannot be read."""
    phase = await lab_manager.status(container_id)
    return StatusResponse(status=phase)
