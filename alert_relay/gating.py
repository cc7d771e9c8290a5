"""
Poll gating.

A gate reports whether an external condition is active; while it is, the
pipeline skips the fetch-and-enqueue step of a poll tick. Cursors and any
open batch window are left untouched.
"""

import logging
from typing import Protocol

import httpx

from alert_relay.exceptions import GateError

logger = logging.getLogger(__name__)


class Gate(Protocol):
    """External gating signal."""

    async def is_active(self) -> bool:
        """Return True while poll ticks should be skipped.

        Raises:
            GateError: If the state cannot be determined
        """
        ...


class SirenGate:
    """Gate driven by an air-alert status API.

    The endpoint returns a list of regions, each with ``activeAlerts``
    entries carrying a ``type``. The gate is active while any region has an
    active alert of ``alert_type``.

    Args:
        url: Status endpoint (e.g. https://siren.pp.ua/api/v3/alerts/964)
        alert_type: Alert type that activates the gate
        timeout: Request timeout in seconds
        http_client: Pre-built httpx.AsyncClient (tests)
    """

    def __init__(
        self,
        url: str,
        alert_type: str = "AIR",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.alert_type = alert_type
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def is_active(self) -> bool:
        try:
            response = await self._http.get(self.url)
            response.raise_for_status()
            regions = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise GateError(f"Error checking alert status: {e}", source="gate") from e

        if not isinstance(regions, list):
            raise GateError("Unexpected alert status payload", source="gate")

        for region in regions:
            for alert in region.get("activeAlerts") or []:
                if alert.get("type") == self.alert_type:
                    return True
        return False

    async def aclose(self) -> None:
        await self._http.aclose()
