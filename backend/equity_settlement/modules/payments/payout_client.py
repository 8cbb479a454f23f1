"""
HTTP client for the external payout processor.
"""

import logging
from typing import Any, Dict, Optional
import requests

from equity_settlement.core.config import settings

logger = logging.getLogger(__name__)


class PayoutError(Exception):
    """The payout processor rejected or failed a transfer."""


class PayoutClient:
    """Submits transfers to the payout API configured by PAYOUT_API_URL."""

    def __init__(self, base_url: Optional[str] = None, api_token: Optional[str] = None, timeout: int = 10):
        self.base_url = (base_url or settings.PAYOUT_API_URL or "").rstrip("/")
        self.api_token = api_token or settings.PAYOUT_API_TOKEN
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def create_transfer(
        self,
        reference: str,
        company_investor_id: int,
        amount_cents: int,
        description: str = "",
    ) -> Dict[str, Any]:
        """
        Create a transfer and return the processor's response body.

        Raises:
            PayoutError: on any HTTP or transport failure
        """
        if not self.enabled:
            raise PayoutError("Payout API is not configured. Set PAYOUT_API_URL in .env")

        headers = {"Idempotency-Key": reference}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"

        payload = {
            "reference": reference,
            "recipient_id": company_investor_id,
            "amount_cents": amount_cents,
            "currency": "USD",
            "description": description,
        }

        try:
            response = requests.post(f"{self.base_url}/transfers", json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise PayoutError(f"Transfer {reference} failed: {e}") from e

        result = response.json()
        logger.info(f"Payout transfer {reference} created (id: {result.get('id')})")
        return result
