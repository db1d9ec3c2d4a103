"""Server health check — ping the council server before starting a session."""

import asyncio
import logging

from council_client.backend.base import CouncilBackend

logger = logging.getLogger(__name__)

_TIMEOUT_SEC = 15.0


async def check_server(backend: CouncilBackend, timeout_sec: float | None = None) -> tuple[bool, str]:
    """Ping the server. Returns (ok, error_message); error_message is "" when ok."""
    timeout = _TIMEOUT_SEC if timeout_sec is None else timeout_sec
    try:
        await asyncio.wait_for(backend.health(), timeout=timeout)
        return True, ""
    except TimeoutError:
        return False, f"No answer within {timeout}s"
    except Exception as exc:
        logger.debug("Health check failed: %s", exc)
        return False, str(exc)
