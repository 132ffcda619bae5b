"""
Async client for handing tracks to Liquidsoap over its Unix domain socket.

Uses the Liquidsoap telnet protocol: send a command, read until END, close.
Graceful degradation: if the socket is missing or the connection fails, returns None.
"""
import asyncio
import logging
import os
from typing import Any, NamedTuple

from stationqueue.config import settings

logger = logging.getLogger(__name__)

COMMAND_TIMEOUT = 5.0  # seconds per response line
DEFAULT_QUEUE = "main_queue"


class LiquidsoapTarget(NamedTuple):
    socket_path: str
    queue: str


def station_target(backend_config: dict[str, Any] | None) -> LiquidsoapTarget:
    """Where a station's tracks go: its own socket and request queue when
    backend_config names them (liquidsoap_socket_path, liquidsoap_queue),
    otherwise LIQUIDSOAP_SOCKET_PATH and the default queue.
    """
    config = backend_config or {}
    return LiquidsoapTarget(
        socket_path=config.get("liquidsoap_socket_path") or settings.LIQUIDSOAP_SOCKET_PATH,
        queue=config.get("liquidsoap_queue") or DEFAULT_QUEUE,
    )


async def _send_command(command: str, socket_path: str | None = None) -> str | None:
    """Send a single command to Liquidsoap and return the response."""
    socket_path = socket_path or settings.LIQUIDSOAP_SOCKET_PATH
    if not socket_path or not os.path.exists(socket_path):
        logger.debug("Liquidsoap socket not found at %s", socket_path)
        return None

    try:
        reader, writer = await asyncio.open_unix_connection(socket_path)
        writer.write((command + "\n").encode())
        await writer.drain()

        # Read response until END marker or connection closes
        response_lines = []
        while True:
            line = await asyncio.wait_for(reader.readline(), timeout=COMMAND_TIMEOUT)
            if not line:
                break
            decoded = line.decode().strip()
            if decoded == "END":
                break
            response_lines.append(decoded)

        writer.close()
        await writer.wait_closed()

        response = "\n".join(response_lines)
        logger.debug("Liquidsoap command '%s' -> '%s'", command, response[:100])
        return response
    except FileNotFoundError:
        logger.debug("Liquidsoap socket not found")
        return None
    except ConnectionRefusedError:
        logger.warning("Liquidsoap connection refused")
        return None
    except asyncio.TimeoutError:
        logger.warning("Liquidsoap command timed out: %s", command)
        return None
    except OSError as e:
        logger.warning("Liquidsoap command failed: %s", e)
        return None


async def push_track(audio_uri: str, queue: str = DEFAULT_QUEUE, socket_path: str | None = None) -> str | None:
    """Push a track URI onto a Liquidsoap request queue. Returns the request id."""
    return await _send_command(f"{queue}.push {audio_uri}", socket_path)


async def is_alive(socket_path: str | None = None) -> bool:
    """Check if Liquidsoap is responding."""
    result = await _send_command("version", socket_path)
    return result is not None
