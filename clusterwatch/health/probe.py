"""Node health probe — one bounded GET against a node's health endpoint.

Every failure mode (connect error, timeout, HTTP error, bad body) surfaces as a
single ProbeError. The probe never retries; the next reconciliation pass does.
"""

from __future__ import annotations

import asyncio
import logging

import httpx
from pydantic import ValidationError

from clusterwatch.config import settings
from clusterwatch.health.models import HealthDocument, NodeHealth

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 1.0  # seconds


class ProbeError(Exception):
    """Raised when a node's health could not be read."""

    def __init__(self, address: str, cause: BaseException | str) -> None:
        self.address = address
        self.cause = cause
        super().__init__(f"Health probe failed for {address}: {cause}")


def health_url(address: str, port: int | None = None, path: str | None = None) -> str:
    port = port or settings.health_port
    path = path or settings.health_path
    return f"http://{address}:{port}/{path.lstrip('/')}"


async def probe_node(
    address: str,
    timeout: float = DEFAULT_TIMEOUT,
    *,
    client: httpx.AsyncClient | None = None,
    port: int | None = None,
    path: str | None = None,
) -> NodeHealth:
    """Fetch and parse the submodule health of a single node.

    ``timeout`` bounds the whole round trip, not just each socket operation.
    Pass ``client`` to reuse a connection pool across probes.
    """
    if not address:
        raise ValueError("Node address must be non-empty")
    if timeout <= 0:
        raise ValueError(f"Probe timeout must be positive, got {timeout}")

    url = health_url(address, port, path)
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                resp = await asyncio.wait_for(own_client.get(url), timeout)
        else:
            resp = await asyncio.wait_for(client.get(url, timeout=timeout), timeout)
        resp.raise_for_status()
        doc = HealthDocument.model_validate_json(resp.content)
    except (asyncio.TimeoutError, httpx.TimeoutException) as e:
        raise ProbeError(address, f"timed out after {timeout}s") from e
    except httpx.HTTPStatusError as e:
        raise ProbeError(address, f"HTTP {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise ProbeError(address, f"{type(e).__name__}: {e}") from e
    except ValidationError as e:
        raise ProbeError(address, f"undecodable health document: {e.error_count()} error(s)") from e

    health = doc.to_node_health()
    logger.debug("Probed %s: %s", address, health)
    return health
