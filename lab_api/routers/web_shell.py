"""
Web Shell Router

WebSocket endpoint attaching a browser terminal to a lab pod's shell.

Frames are raw bytes in both directions: client binary frames are keystrokes,
server binary frames are terminal output. Text frames from the client are
ignored.
"""

import logging

from fastapi import APIRouter, Depends, WebSocket

from ..services.kubernetes.client import get_k8s_client
from ..services.terminal_relay import TerminalRelay

logger = logging.getLogger(__name__)
router = APIRouter()


def get_terminal_relay() -> TerminalRelay:
    return TerminalRelay(get_k8s_client())


@router.websocket("/{pod_name}")
async def web_shell(
    websocket: WebSocket,
    pod_name: str,
    relay: TerminalRelay = Depends(get_terminal_relay),
):
    await websocket.accept()
    logger.info(f"Web shell connection for pod {pod_name}")

    await relay.run(websocket, pod_name)
