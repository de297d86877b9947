"""
WhatsApp Messenger

Sends text messages through the Evolution API (v2.x):
POST {EVOLUTION_API_URL}/message/sendText/{instance} with body {number, text}
and the 'apikey' header.
"""

import os
import httpx
import logging
from typing import Dict, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_EVOLUTION_API_URL = "http://evolution-api:8080"


class EvolutionMessenger:
    """Evolution API client. send() raises on any transport or HTTP error."""

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None, timeout: float = 15.0):
        """
        Args:
            base_url: Evolution API base URL (defaults to EVOLUTION_API_URL)
            api_key: Evolution API key (defaults to EVOLUTION_API_KEY)
            timeout: Read timeout in seconds
        """
        self.base_url = (base_url or os.getenv("EVOLUTION_API_URL", DEFAULT_EVOLUTION_API_URL)).rstrip("/")
        self.api_key = api_key or os.getenv("EVOLUTION_API_KEY")
        if not self.api_key:
            raise ValueError("EVOLUTION_API_KEY environment variable is required")
        self.timeout = timeout

        logger.info(f"EvolutionMessenger initialized with URL: {self.base_url}")

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Content-Type": "application/json"
        }

    async def send(self, channel_id: str, phone: str, text: str) -> None:
        """
        Send a text message.

        Args:
            channel_id: Evolution instance name of the tenant
            phone: Recipient phone number
            text: Message body

        Raises:
            httpx.HTTPError: If the request fails or the API answers with an error status
        """
        url = f"{self.base_url}/message/sendText/{channel_id}"
        timeout_config = httpx.Timeout(connect=5.0, read=self.timeout, write=5.0, pool=5.0)

        async with httpx.AsyncClient(timeout=timeout_config) as client:
            response = await client.post(url, headers=self._headers(), json={"number": phone, "text": text})
            response.raise_for_status()

        logger.debug(f"Sent WhatsApp message to {phone} via {channel_id}")
