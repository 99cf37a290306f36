"""
HTTP record store — talks to a store gateway over REST + server-sent events.

Endpoints:
  GET    /records/{id}                  → record JSON, 404 if absent
  POST   /records                       → create, returns {"id": ...}
  PUT    /records/{id}                  → replace
  POST   /records/{id}/acl              → {"identity", "level"}
  DELETE /records/{id}/acl/{identity}
  POST   /query                         → {"results": [...]} one page at the cursor
  POST   /query/stream                  → SSE, `event: change` + `data: {ChangeEvent}`

Status mapping: 403 → PermissionDenied, 422 → ValidationError,
404 → NotFound (absent for GET), anything else ≥ 400 → StoreError.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

import httpx

from catalog.kernel.types import ChangeEvent, ListingRecord, OrderingKey, QuerySpec
from dprop.config import settings
from dprop.errors import NotFound, PermissionDenied, StoreError, SubscriptionFailure, ValidationError
from dprop.store.base import RecordStore, SubscriptionHandle

logger = logging.getLogger(__name__)


def encode_position(position: OrderingKey | None) -> dict[str, Any] | None:
    """Cursor position as JSON: {"value": ..., "id": ...}."""
    if position is None:
        return None
    value, record_id = position
    if isinstance(value, datetime):
        value = value.isoformat()
    return {"value": value, "id": record_id}


class HttpRecordStore(RecordStore):
    """Record store backed by an HTTP gateway."""

    def __init__(
        self,
        api_url: str | None = None,
        token: str | None = None,
        *,
        identity: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(identity)
        self.api_url = (api_url or settings.STORE_URL).rstrip("/")
        self.token = token if token is not None else settings.STORE_TOKEN
        self.client = client or httpx.AsyncClient(base_url=self.api_url, timeout=settings.STORE_TIMEOUT)

    def _headers(self, accept: str = "application/json") -> dict:
        """Build request headers."""
        headers = {"Content-Type": "application/json", "Accept": accept}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if self._identity:
            headers["X-Identity"] = self._identity
        return headers

    def _url(self, path: str) -> str:
        return f"{self.api_url}{path}"

    async def _request(self, method: str, path: str, body: dict | None = None) -> httpx.Response:
        try:
            res = await self.client.request(method, self._url(path), json=body, headers=self._headers())
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path} failed: {e}") from e
        _raise_for_status(res)
        return res

    # -- reads --

    async def get(self, record_id: str) -> ListingRecord | None:
        try:
            res = await self._request("GET", f"/records/{record_id}")
        except NotFound:
            return None
        return ListingRecord.from_dict(res.json(), id=record_id)

    async def fetch_page(self, spec: QuerySpec, position: OrderingKey | None) -> list[ListingRecord]:
        body = {**spec.to_store_query(), "after": encode_position(position)}
        res = await self._request("POST", "/query", body)
        return [ListingRecord.from_dict(item) for item in res.json().get("results", [])]

    async def subscribe(self, spec: QuerySpec, position: OrderingKey | None) -> SubscriptionHandle:
        body = {**spec.to_store_query(), "after": encode_position(position)}
        results = await self.fetch_page(spec, position)

        state = {"closed": False}

        def cancel() -> None:
            state["closed"] = True

        return SubscriptionHandle(
            initial_results=results,
            change_stream=self._stream_changes(body, state),
            cancel=cancel,
        )

    async def _stream_changes(self, body: dict, state: dict) -> AsyncIterator[ChangeEvent]:
        """
        Read the live query as SSE.

        Yields ChangeEvents until the server closes the stream or cancel()
        is called. Transport faults surface as SubscriptionFailure.
        """
        try:
            async with self.client.stream(
                "POST",
                self._url("/query/stream"),
                json=body,
                headers=self._headers(accept="text/event-stream"),
            ) as response:
                if response.status_code >= 400:
                    raise SubscriptionFailure(f"live query rejected with HTTP {response.status_code}")

                event_type = None
                async for line in response.aiter_lines():
                    if state["closed"]:
                        return
                    line = line.strip()

                    if not line:
                        continue

                    if line.startswith("event: "):
                        event_type = line[7:]
                    elif line.startswith("data: "):
                        if event_type == "change":
                            yield ChangeEvent.from_dict(json.loads(line[6:]))
                        event_type = None
        except httpx.HTTPError as e:
            raise SubscriptionFailure(f"live query stream broke: {e}") from e
        except (json.JSONDecodeError, KeyError) as e:
            raise SubscriptionFailure(f"malformed change event: {e}") from e

    # -- writes --

    async def write(self, record: ListingRecord, record_id: str | None = None) -> str:
        payload = record.to_dict()
        if record_id is None:
            payload.pop("id", None)
            res = await self._request("POST", "/records", payload)
            return res.json()["id"]
        payload["id"] = record_id
        await self._request("PUT", f"/records/{record_id}", payload)
        return record_id

    async def grant(self, record_id: str, identity: str, level: str) -> None:
        await self._request("POST", f"/records/{record_id}/acl", {"identity": identity, "level": level})

    async def revoke(self, record_id: str, identity: str) -> None:
        await self._request("DELETE", f"/records/{record_id}/acl/{identity}")

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()


def _raise_for_status(res: httpx.Response) -> None:
    if res.status_code < 400:
        return
    detail = _detail(res)
    if res.status_code == 403:
        raise PermissionDenied(detail.get("message", "Permission denied"))
    if res.status_code == 404:
        raise NotFound(detail.get("id", res.request.url.path.rsplit("/", 1)[-1]))
    if res.status_code == 422:
        raise ValidationError(detail.get("message", "Rejected by store"), detail.get("errors") or {})
    raise StoreError(f"HTTP {res.status_code} from store", detail)


def _detail(res: httpx.Response) -> dict[str, Any]:
    try:
        body = res.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
