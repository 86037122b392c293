"""HTTP provider — adapter for a configured JSON search endpoint."""

import logging
from typing import Any

import httpx

from tripmerge.schemas.common import ServiceType
from tripmerge.schemas.query import SearchQuery
from tripmerge.services.providers.base import OfferProvider, ProviderError

logger = logging.getLogger(__name__)


class HttpOfferProvider(OfferProvider):
    """POSTs the canonical query to `{base_url}/search/{service}` and returns its offers.

    The endpoint may answer with a bare list or with `{"data": [...]}`.
    Cancellation (e.g. a lost timeout race) propagates into the in-flight request.
    """

    def __init__(
        self,
        name: str,
        service_type: ServiceType,
        base_url: str,
        api_key: str = "",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(name, service_type, timeout_seconds)
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self.timeout_seconds,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def search(self, query: SearchQuery) -> list[dict[str, Any]]:
        client = await self._get_client()
        try:
            resp = await client.post(
                f"/search/{self.service_type.value}",
                json=query.model_dump(mode="json"),
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(self.name, f"HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise ProviderError(self.name, f"request error: {e}") from e
        except ValueError as e:
            raise ProviderError(self.name, f"invalid JSON: {e}") from e

        offers = data.get("data") if isinstance(data, dict) else data
        if not isinstance(offers, list):
            raise ProviderError(self.name, "malformed payload: expected a list of offers")
        return [o for o in offers if isinstance(o, dict)]

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None
