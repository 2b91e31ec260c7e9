# portal/services/mutation_service.py
"""
The remote data API, seen through the only contract the pipeline needs:
every call answers with the complete post-mutation collection.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx
from loguru import logger

from portal.core.config import settings
from portal.core.errors import MutationFailed
from portal.services.collections import get_collection_spec

EntityId = Union[int, str]


class MutationService(ABC):
    @abstractmethod
    async def list(self, collection: str) -> List[Any]:
        ...

    @abstractmethod
    async def create(self, collection: str, payload: Dict[str, Any]) -> List[Any]:
        ...

    @abstractmethod
    async def update(self, collection: str, entity_id: EntityId, payload: Dict[str, Any]) -> List[Any]:
        ...

    @abstractmethod
    async def delete(self, collection: str, entity_id: EntityId) -> List[Any]:
        ...


# ============================================================================
# HTTP CLIENT
# ============================================================================
def _error_message(response: httpx.Response) -> str:
    message = f"API Error: {response.status_code} {response.reason_phrase}"
    try:
        body = response.json()
    except ValueError:
        return message
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or message)
    return message


def extract_collection(body: Any) -> Optional[List[Any]]:
    """
    A bare list is the collection. Some write endpoints wrap it
    ({"allVisitors": [...], "checkedInVisitor": {...}}); anything else
    (a single entity, 204) means the caller has to re-list.
    """
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        for key, value in body.items():
            if key.startswith("all") and isinstance(value, list):
                return value
    return None


class HttpMutationService(MutationService):
    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.DATA_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.DATA_API_TIMEOUT
        self._token = token
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _send(self, method: str, url: str, json: Optional[Dict[str, Any]] = None) -> Any:
        try:
            async with self._client() as client:
                response = await client.request(method, url, json=json)
        except httpx.HTTPError as exc:
            logger.error("Data API {} {} failed: {}", method, url, exc)
            raise MutationFailed(None, f"Data API unreachable: {exc}") from exc

        if response.status_code >= 400:
            detail = _error_message(response)
            logger.warning("Data API {} {} -> {}: {}", method, url, response.status_code, detail)
            raise MutationFailed(response.status_code, detail)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def _collection_after(self, collection: str, body: Any) -> List[Any]:
        items = extract_collection(body)
        if items is None:
            items = await self.list(collection)
        return items

    async def list(self, collection: str) -> List[Any]:
        spec = get_collection_spec(collection)
        body = await self._send("GET", spec.path)
        items = extract_collection(body)
        if items is None:
            raise MutationFailed(502, f"Data API returned no collection for '{collection}'")
        return items

    async def create(self, collection: str, payload: Dict[str, Any]) -> List[Any]:
        spec = get_collection_spec(collection)
        body = await self._send("POST", spec.create_path or spec.path, json=payload)
        return await self._collection_after(collection, body)

    async def update(self, collection: str, entity_id: EntityId, payload: Dict[str, Any]) -> List[Any]:
        spec = get_collection_spec(collection)
        body = await self._send("PUT", f"{spec.path}/{entity_id}", json=payload)
        return await self._collection_after(collection, body)

    async def delete(self, collection: str, entity_id: EntityId) -> List[Any]:
        spec = get_collection_spec(collection)
        body = await self._send("DELETE", f"{spec.path}/{entity_id}")
        return await self._collection_after(collection, body)


# ============================================================================
# ROUTING
# ============================================================================
class RoutingMutationService(MutationService):
    """Sends listed collections to their own backend, the rest to `default`."""

    def __init__(self, default: MutationService, routes: Optional[Mapping[str, MutationService]] = None):
        self.default = default
        self.routes = dict(routes or {})

    def _backend(self, collection: str) -> MutationService:
        return self.routes.get(collection, self.default)

    async def list(self, collection: str) -> List[Any]:
        return await self._backend(collection).list(collection)

    async def create(self, collection: str, payload: Dict[str, Any]) -> List[Any]:
        return await self._backend(collection).create(collection, payload)

    async def update(self, collection: str, entity_id: EntityId, payload: Dict[str, Any]) -> List[Any]:
        return await self._backend(collection).update(collection, entity_id, payload)

    async def delete(self, collection: str, entity_id: EntityId) -> List[Any]:
        return await self._backend(collection).delete(collection, entity_id)
