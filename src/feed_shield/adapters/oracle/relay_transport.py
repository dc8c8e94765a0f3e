"""Transport to the local classification relay."""

import logging
from typing import Any

import httpx

from feed_shield.core.errors import DecodeError, ProtocolError, TransportError
from feed_shield.core.interfaces import OracleTransport

logger = logging.getLogger(__name__)


class RelayTransport(OracleTransport):
    """POST batches to the relay's ``/classify`` endpoint."""

    name = "relay"

    def __init__(self, base_url: str = "http://127.0.0.1:7890", timeout: float = 60.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def send(self, entries: list[dict[str, str]]) -> list[Any]:
        """Send entries and return the ``verdicts`` array."""
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(f"{self.base_url}/classify", json=entries)
            except httpx.RequestError as e:
                raise TransportError(f"server request failed: {e}") from e

            if response.status_code != 200:
                raise ProtocolError(response.status_code, response.text)

            try:
                body = response.json()
            except ValueError as e:
                raise DecodeError("malformed server response") from e

        verdicts = body.get("verdicts") if isinstance(body, dict) else None
        if not isinstance(verdicts, list):
            raise DecodeError("malformed verdict structure")
        return verdicts

    async def check_health(self) -> bool:
        """Whether the relay reports a warm classifier pool."""
        async with httpx.AsyncClient(timeout=5.0) as client:
            try:
                response = await client.get(f"{self.base_url}/health")
            except httpx.RequestError as e:
                logger.info("Relay health check failed: %s", e)
                return False
        return response.status_code == 200
