"""Midtrans Snap client: sends transaction requests only. No business validation."""
import base64
import logging
from typing import Any, Dict, Optional

import httpx

from domain.exceptions import ProviderError
from domain.repositories import PaymentGateway
from infrastructure.config import Settings, get_settings

logger = logging.getLogger(__name__)


class MidtransSnapClient(PaymentGateway):
    """Snap transaction API over HTTP"""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._settings = settings or get_settings()
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self._settings.midtrans_server_key and self._settings.midtrans_client_key)

    def _headers(self) -> Dict[str, str]:
        # Snap uses HTTP basic auth with the server key as username and no password
        credentials = base64.b64encode(f"{self._settings.midtrans_server_key}:".encode()).decode()
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Basic {credentials}",
        }

    async def create_transaction(self, transaction: Dict[str, Any]) -> Dict[str, Any]:
        if not self.is_configured():
            raise ProviderError("Midtrans configuration is missing")

        url = self._settings.snap_url
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.midtrans_timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(url, json=transaction, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error("Midtrans request failed: %s", e)
            raise ProviderError(f"Midtrans request failed: {e}") from e

        if not response.is_success:
            logger.error("Midtrans API error %s: %s", response.status_code, response.text[:500])
            raise ProviderError(f"Midtrans API error: {response.status_code}")
        try:
            return response.json() if response.content else {}
        except ValueError as e:
            raise ProviderError("Midtrans returned a non-JSON response") from e
