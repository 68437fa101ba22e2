"""
Shared async HTTP plumbing for provider adapters
Maps transport and status failures onto the provider error taxonomy
"""

from typing import Any, Dict, Optional
import httpx

from ..utils import get_logger
from .base import ProviderUnavailable, RateLimited

logger = get_logger(__name__)


class ProviderHttpClient:
    """Thin wrapper around httpx.AsyncClient for one provider"""

    def __init__(
        self,
        provider: str,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.provider = provider
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {}
        self.timeout = timeout
        self._transport = transport
        self.client: Optional[httpx.AsyncClient] = None

    async def open(self):
        if not self.client:
            self.client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport
            )

    async def close(self):
        if self.client:
            await self.client.aclose()
            self.client = None

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a JSON document

        Raises:
            RateLimited: on HTTP 429
            ProviderUnavailable: on timeouts, transport errors, 5xx and bad payloads
        """
        if not self.client:
            await self.open()

        clean_params = {k: v for k, v in (params or {}).items() if v is not None}

        try:
            response = await self.client.get(path, params=clean_params)
        except httpx.TimeoutException as e:
            raise ProviderUnavailable(self.provider, f"timeout on {path}") from e
        except httpx.HTTPError as e:
            raise ProviderUnavailable(self.provider, f"transport error on {path}: {e}") from e

        if response.status_code == 429:
            logger.warning(f"{self.provider} rate limited on {path}")
            raise RateLimited(self.provider, f"rate limited on {path}", status_code=429)

        if response.status_code >= 400:
            raise ProviderUnavailable(
                self.provider,
                f"HTTP {response.status_code} on {path}",
                status_code=response.status_code
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderUnavailable(self.provider, f"invalid JSON from {path}") from e
