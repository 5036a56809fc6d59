"""Entity store backed by a REST entity service."""

import asyncio
from typing import Any

import httpx
import structlog

from practice_automation.config import get_settings
from practice_automation.errors import EntityStoreError, RateLimitError, RecordNotFoundError
from practice_automation.store.base import EntityName, entity_key

logger = structlog.get_logger(__name__)


class HttpEntityStore:
    """Async client for the entity service.

    Endpoints: ``GET/POST /entities/{name}`` and
    ``PATCH/DELETE /entities/{name}/{id}``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.entity_api_url).rstrip("/")
        if api_key is None and settings.entity_api_key is not None:
            api_key = settings.entity_api_key.get_secret_value()
        self._api_key = api_key
        self._timeout = timeout if timeout is not None else settings.entity_timeout
        self._max_retries = (
            max_retries if max_retries is not None else settings.entity_max_retries
        )
        self._default_limit = settings.entity_list_limit

        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpEntityStore":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self) -> dict[str, str]:
        """Get request headers with the API key."""
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def collection(self, name: EntityName | str) -> "HttpEntityCollection":
        return HttpEntityCollection(self, entity_key(name))

    # === Requests ===

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> dict[str, Any] | list[dict[str, Any]]:
        """Make an API request with retry logic."""
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=self._get_headers(),
            )

            if response.status_code == 429:
                retry_after = int(response.headers.get("Retry-After", "60"))
                raise RateLimitError(
                    f"Rate limited, retry after {retry_after}s",
                    status_code=429,
                    details={"retry_after": retry_after},
                )

            if response.status_code == 404:
                raise RecordNotFoundError(
                    f"Not found: {method} {path}", status_code=404
                )

            if response.status_code >= 400:
                try:
                    error_detail = response.json() if response.content else {}
                except ValueError:
                    error_detail = {
                        "raw": response.text[:500]
                        if response.text
                        else "empty response"
                    }
                raise EntityStoreError(
                    f"API error: {response.status_code}",
                    status_code=response.status_code,
                    details=error_detail,
                )

            return response.json() if response.content else {}

        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                logger.warning(
                    "entity_request_retry",
                    method=method,
                    path=path,
                    attempt=retry_count + 1,
                    error=str(e),
                )
                await asyncio.sleep(2**retry_count)  # Exponential backoff
                return await self._request(method, path, params, json, retry_count + 1)
            raise EntityStoreError(f"Request failed: {e}") from e

    @staticmethod
    def _clamp_limit(limit: int) -> int:
        return max(limit, 1)

    @staticmethod
    def _extract_items(result: Any) -> list[dict[str, Any]]:
        """Return list of items from a list or paged response."""
        if isinstance(result, list):
            return result
        if isinstance(result, dict):
            items = result.get("items")
            if isinstance(items, list):
                return items
        return []

    # === Entity Endpoints ===

    async def list_records(
        self,
        name: str,
        filter: dict[str, Any] | None = None,
        sort: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """List records of an entity family."""
        params: dict[str, Any] = {
            "limit": self._clamp_limit(limit if limit is not None else self._default_limit)
        }
        if sort:
            params["sort"] = sort
        for key, value in (filter or {}).items():
            params[key] = value
        result = await self._request("GET", f"/entities/{name}", params=params)
        return self._extract_items(result)

    async def create_record(self, name: str, data: dict[str, Any]) -> dict[str, Any]:
        """Create a record and return it as stored."""
        result = await self._request("POST", f"/entities/{name}", json=data)
        return result if isinstance(result, dict) else {}

    async def update_record(
        self, name: str, record_id: str, patch: dict[str, Any]
    ) -> dict[str, Any]:
        """Apply a partial update to a record."""
        result = await self._request("PATCH", f"/entities/{name}/{record_id}", json=patch)
        return result if isinstance(result, dict) else {}

    async def delete_record(self, name: str, record_id: str) -> None:
        """Delete a record."""
        await self._request("DELETE", f"/entities/{name}/{record_id}")


class HttpEntityCollection:
    """One entity family on an :class:`HttpEntityStore`."""

    def __init__(self, store: HttpEntityStore, name: str):
        self._store = store
        self.name = name

    async def list(
        self,
        filter: dict[str, Any] | None = None,
        sort: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        return await self._store.list_records(self.name, filter=filter, sort=sort, limit=limit)

    async def create(self, data: dict[str, Any]) -> dict[str, Any]:
        return await self._store.create_record(self.name, data)

    async def update(self, record_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        return await self._store.update_record(self.name, record_id, patch)

    async def delete(self, record_id: str) -> None:
        await self._store.delete_record(self.name, record_id)
