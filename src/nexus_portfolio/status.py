"""Upstream provider health checks.

Each check issues one lightweight request and classifies the provider as
Operational, Degraded (slow) or Outage (error, non-2xx or missing key).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import httpx

from nexus_portfolio.config import Settings, get_settings

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

DEGRADED_LATENCY_MS = 800
CHECK_TIMEOUT_SECONDS = 10.0


class ServiceState(str, Enum):
    OPERATIONAL = "Operational"
    DEGRADED = "Degraded"
    OUTAGE = "Outage"


class UnknownServiceError(ValueError):
    """Raised for a service name with no health check."""


class ServiceNotConfiguredError(Exception):
    """Raised when a provider credential is missing."""


@dataclass(frozen=True)
class ServiceStatus:
    """Result of one health check. `metric` is the latency or "Error"."""

    name: str
    status: ServiceState
    metric: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "status": self.status.value, "metric": self.metric}


SERVICE_NAMES: tuple[str, ...] = (
    "Moralis API",
    "Helius API",
    "CoinGecko API",
    "Blockstream API",
)


async def _health_request(
    client: httpx.AsyncClient, name: str, settings: Settings
) -> httpx.Response:
    if name == "Moralis API":
        if settings.moralis.api_key is None:
            raise ServiceNotConfiguredError("Moralis key not configured")
        return await client.get(
            f"{settings.moralis.base_url}/dateToBlock",
            params={"chain": "eth", "date": "1"},
            headers={"X-API-Key": settings.moralis.api_key.get_secret_value()},
        )
    if name == "Helius API":
        if settings.helius.api_key is None:
            raise ServiceNotConfiguredError("Helius key not configured")
        return await client.post(
            settings.helius.rpc_url,
            params={"api-key": settings.helius.api_key.get_secret_value()},
            json={"jsonrpc": "2.0", "id": 1, "method": "getSlot"},
        )
    if name == "CoinGecko API":
        return await client.get(f"{settings.coingecko.base_url}/ping")
    if name == "Blockstream API":
        return await client.get(f"{settings.blockstream.base_url}/blocks/tip/height")
    raise UnknownServiceError(f"Unknown service: {name}")


async def check_service(
    name: str,
    *,
    settings: Settings | None = None,
    client: httpx.AsyncClient | None = None,
) -> ServiceStatus:
    """Run the health check for one service.

    Raises:
        UnknownServiceError: If no check exists for `name`.
    """
    if name not in SERVICE_NAMES:
        raise UnknownServiceError(f"Unknown service: {name}")
    settings = settings or get_settings()

    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=CHECK_TIMEOUT_SECONDS)
    start = time.monotonic()
    try:
        response = await _health_request(http, name, settings)
        latency_ms = int((time.monotonic() - start) * 1000)
    except (httpx.HTTPError, ServiceNotConfiguredError) as e:
        logger.warning("Health check failed for %s: %s", name, e)
        return ServiceStatus(name=name, status=ServiceState.OUTAGE, metric="Error")
    finally:
        if owns_client:
            await http.aclose()

    if not response.is_success:
        state = ServiceState.OUTAGE
    elif latency_ms > DEGRADED_LATENCY_MS:
        state = ServiceState.DEGRADED
    else:
        state = ServiceState.OPERATIONAL
    return ServiceStatus(name=name, status=state, metric=f"{latency_ms}ms")


async def check_all_services(
    names: Sequence[str] = SERVICE_NAMES,
    *,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[ServiceStatus]:
    """Check several services concurrently, in the order given."""
    settings = settings or get_settings()
    async with httpx.AsyncClient(timeout=CHECK_TIMEOUT_SECONDS, transport=transport) as client:
        return list(
            await asyncio.gather(
                *(check_service(name, settings=settings, client=client) for name in names)
            )
        )
