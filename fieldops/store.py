"""
Remote store contract and the Realtime Database REST adapter.

The store is hierarchical: a path such as ``farmers`` addresses a subtree of
child records keyed by id, ``users/<uid>`` a single record. It supports
exactly one query shape, equality on a single child field.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from fieldops.config import (
    FIREBASE_AUTH_TOKEN,
    STORE_BACKEND,
    STORE_TIMEOUT_SECONDS,
    get_env,
)

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised by store adapters for any failed read or write."""


class RemoteStore(ABC):
    """Async path-addressed store."""

    @abstractmethod
    async def read(self, path: str) -> Any:
        """Full subtree at ``path``; None when nothing is stored there."""

    @abstractmethod
    async def read_where(self, path: str, field: str, value: Any) -> Dict[str, Any]:
        """Children of ``path`` whose ``field`` equals ``value``, keyed by id."""

    @abstractmethod
    async def write(self, path: str, value: Any) -> None:
        ...

    @abstractmethod
    async def update(self, path: str, values: Dict[str, Any]) -> None:
        """Merge ``values`` into the record at ``path``."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        ...

    @abstractmethod
    async def push(self, path: str, value: Any) -> str:
        """Create a child of ``path`` under a generated key and return the key."""


def children_of(value: Any) -> Dict[str, Any]:
    """Turn a subtree into ``{key: child}``.

    Sequential keys come back from the store as JSON arrays, so lists are
    re-keyed by index with null holes skipped. Primitives have no children.
    """
    if isinstance(value, dict):
        return {str(k): v for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return {str(i): v for i, v in enumerate(value) if v is not None}
    return {}


def split_path(path: str):
    parts = [p for p in str(path).strip("/").split("/") if p]
    if not parts:
        raise ValueError("Store path must not be empty.")
    return parts


# ── Realtime Database REST adapter ───────────────────────────────────

class FirebaseStore(RemoteStore):
    """Realtime Database over its REST API (``<url>/<path>.json``)."""

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        timeout: float = STORE_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout = timeout
        self._transport = transport

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{'/'.join(split_path(path))}.json"

    async def _request(self, method: str, path: str, params=None, body: Any = None) -> Any:
        url = self._url(path)
        params = dict(params or {})
        if self.auth_token:
            params["auth"] = self.auth_token
        kwargs = {"params": params}
        if body is not None:
            kwargs["content"] = json.dumps(body)
            kwargs["headers"] = {"Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                return response.json() if response.content else None
        except httpx.HTTPStatusError as e:
            logger.error("Store HTTP error on %s %s: %s", method, path, e)
            raise StoreError(f"{method} {path} failed with status {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error("Store request error on %s %s: %s", method, path, e)
            raise StoreError(f"{method} {path} failed: {e}") from e
        except ValueError as e:
            raise StoreError(f"{method} {path} returned invalid JSON") from e

    async def read(self, path: str) -> Any:
        return await self._request("GET", path)

    async def read_where(self, path: str, field: str, value: Any) -> Dict[str, Any]:
        # The REST query parameters are JSON-encoded, quotes included.
        params = {"orderBy": json.dumps(field), "equalTo": json.dumps(value)}
        return children_of(await self._request("GET", path, params=params))

    async def write(self, path: str, value: Any) -> None:
        await self._request("PUT", path, body=value)

    async def update(self, path: str, values: Dict[str, Any]) -> None:
        await self._request("PATCH", path, body=values)

    async def delete(self, path: str) -> None:
        await self._request("DELETE", path)

    async def push(self, path: str, value: Any) -> str:
        result = await self._request("POST", path, body=value)
        if not isinstance(result, dict) or "name" not in result:
            raise StoreError(f"POST {path} did not return a generated key")
        return str(result["name"])


def init_store() -> RemoteStore:
    """Build the store adapter selected by FIELDOPS_STORE."""
    if STORE_BACKEND == "firebase":
        url = get_env("FIREBASE_DATABASE_URL")
        print(f"[init] Using Realtime Database at {url}")
        return FirebaseStore(url, auth_token=FIREBASE_AUTH_TOKEN)
    if STORE_BACKEND == "sql":
        from fieldops.database import SqlStore, init_engine
        return SqlStore(init_engine())
    raise ValueError(f"Unknown store backend '{STORE_BACKEND}' (expected 'sql' or 'firebase').")
