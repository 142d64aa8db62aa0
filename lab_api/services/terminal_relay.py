"""
Terminal Relay

Bridges a client WebSocket with an interactive shell inside a lab pod.

Two pumps run until either side is done:
- outbound: binary client frames -> shell stdin (text frames are ignored)
- inbound: shell stdout -> binary client frames, at most READ_CHUNK_SIZE each

Whichever pump finishes first tears the session down.
"""

import asyncio
import logging

from fastapi import WebSocket

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


class TerminalRelay:
    """Relays one WebSocket per call to run(); holds no state between sessions."""

    def __init__(self, k8s_client, settings=None):
        if settings is None:
            from ..config import get_settings
            settings = get_settings()

        self.k8s_client = k8s_client
        self.settings = settings

    async def run(self, websocket: WebSocket, pod_name: str) -> None:
        """
        Relay bytes between an accepted WebSocket and a shell in the pod.

        Never raises: attach failures and stream errors end the relay and close
        the WebSocket.
        """
        try:
            exec_stream = await self.k8s_client.open_exec(
                self.settings.k8s_namespace,
                pod_name,
                self.settings.shell_command,
                container=self.settings.lab_container_name,
                stdin=True,
                stdout=True,
                stderr=False,
                tty=True
            )
        except Exception as e:
            logger.error(f"[RELAY] Failed to attach to pod {pod_name}: {e}")
            await _close_websocket(websocket)
            return

        logger.info(f"[RELAY] Attached to pod {pod_name}")

        outbound = asyncio.create_task(self._pump_outbound(websocket, exec_stream, pod_name))
        inbound = asyncio.create_task(self._pump_inbound(websocket, exec_stream, pod_name))

        try:
            done, pending = await asyncio.wait(
                {outbound, inbound},
                return_when=asyncio.FIRST_COMPLETED
            )
            for task in pending:
                task.cancel()
            # Wait for cancellation so stdin is closed before the stream goes away
            await asyncio.gather(*pending, return_exceptions=True)
        finally:
            exec_stream.close()
            await _close_websocket(websocket)

        logger.info(f"[RELAY] Session for pod {pod_name} ended")

    async def _pump_outbound(self, websocket: WebSocket, exec_stream, pod_name: str) -> None:
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    logger.debug(f"[RELAY] Client disconnected from {pod_name}")
                    break

                data = message.get("bytes")
                if data:
                    await exec_stream.write(data)
                # Text frames carry no terminal input
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"[RELAY] Outbound pump for {pod_name} stopped: {e}")
        finally:
            try:
                await exec_stream.close_stdin()
            except Exception as e:
                logger.debug(f"[RELAY] Failed to close stdin of {pod_name}: {e}")

    async def _pump_inbound(self, websocket: WebSocket, exec_stream, pod_name: str) -> None:
        try:
            while True:
                chunk = await exec_stream.read(READ_CHUNK_SIZE)
                if not chunk:
                    logger.debug(f"[RELAY] Shell in {pod_name} closed its output")
                    break
                await websocket.send_bytes(chunk)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"[RELAY] Inbound pump for {pod_name} stopped: {e}")


async def _close_websocket(websocket: WebSocket) -> None:
    try:
        await websocket.close()
    except Exception:
        # Already closed by the client
        pass
