"""Remote CRUD service: rows keyed by ``id`` and scoped by ``user_id``.

``RestRemoteStore`` talks to a PostgREST endpoint (the REST face of a
hosted Postgres such as Supabase). ``InMemoryRemoteStore`` keeps rows in
process and can be switched offline; it backs tests and demos.
"""

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import httpx

from focuskit.errors import RemoteError

logger = logging.getLogger(__name__)

Row = dict[str, Any]

OWNER_COLUMN = "user_id"


class RemoteStore(Protocol):
    """Generic create/read/update/delete service.

    Every method may raise ``RemoteError``; callers do not distinguish
    transport failures from validation failures.
    """

    def select(self, table: str, owner_id: str, *, include_public: bool = False) -> list[Row]: ...

    def insert(self, table: str, row: Row) -> Row: ...

    def update(self, table: str, record_id: str, patch: Row) -> Row: ...

    def delete(self, table: str, record_id: str) -> None: ...


class InMemoryRemoteStore:
    """Process-local remote store with an ``online`` switch."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, Row]] = {}
        self._lock = threading.Lock()
        self.online = True
        self.calls: list[tuple[str, str]] = []

    def set_online(self, online: bool) -> None:
        self.online = online

    def _check(self, op: str, table: str) -> None:
        self.calls.append((op, table))
        if not self.online:
            raise RemoteError(f"{op} {table}: remote store unreachable")

    def rows(self, table: str) -> list[Row]:
        with self._lock:
            return [dict(r) for r in self._tables.get(table, {}).values()]

    def select(self, table: str, owner_id: str, *, include_public: bool = False) -> list[Row]:
        self._check("select", table)
        with self._lock:
            rows = [
                dict(r)
                for r in self._tables.get(table, {}).values()
                if r.get(OWNER_COLUMN) == owner_id
                or (include_public and r.get(OWNER_COLUMN) is None)
            ]
        return sorted(rows, key=lambda r: str(r.get("created_at") or ""), reverse=True)

    def insert(self, table: str, row: Row) -> Row:
        self._check("insert", table)
        stored = dict(row)
        stored["id"] = str(uuid.uuid4())
        stored.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        with self._lock:
            self._tables.setdefault(table, {})[stored["id"]] = stored
        return dict(stored)

    def update(self, table: str, record_id: str, patch: Row) -> Row:
        self._check("update", table)
        with self._lock:
            existing = self._tables.get(table, {}).get(record_id)
            if existing is None:
                raise RemoteError(f"update {table}: no row with id {record_id}")
            existing.update(patch)
            return dict(existing)

    def delete(self, table: str, record_id: str) -> None:
        self._check("delete", table)
        with self._lock:
            self._tables.get(table, {}).pop(record_id, None)


class RestRemoteStore:
    """PostgREST client over httpx.

    Args:
        base_url: Project URL; tables are served under ``/rest/v1/<table>``.
        api_key: Anonymous/public API key sent as ``apikey``.
        access_token: Principal's bearer token; defaults to ``api_key``.
        timeout: Request timeout in seconds.
        client: Optional preconfigured ``httpx.Client`` (tests pass one
            built on ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        table: str,
        params: Optional[dict[str, str]] = None,
        body: Optional[Row] = None,
    ) -> Any:
        url = f"{self._base_url}/rest/v1/{table}"
        try:
            response = self._client.request(
                method, url, params=params, json=body, headers=self._headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = e.response.text[:200]
            raise RemoteError(
                f"{method} {table} failed with {e.response.status_code}: {detail}"
            ) from e
        except httpx.HTTPError as e:
            raise RemoteError(f"{method} {table} failed: {e}") from e
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(f"{method} {table} returned non-JSON body") from e

    @staticmethod
    def _single(payload: Any, method: str, table: str) -> Row:
        if isinstance(payload, list) and payload and isinstance(payload[0], dict):
            return payload[0]
        if isinstance(payload, dict):
            return payload
        raise RemoteError(f"{method} {table} returned no row")

    def select(self, table: str, owner_id: str, *, include_public: bool = False) -> list[Row]:
        params = {"select": "*", "order": "created_at.desc"}
        if include_public:
            params["or"] = f"({OWNER_COLUMN}.is.null,{OWNER_COLUMN}.eq.{owner_id})"
        else:
            params[OWNER_COLUMN] = f"eq.{owner_id}"
        payload = self._request("GET", table, params=params)
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise RemoteError(f"GET {table} returned {type(payload).__name__}, expected list")
        return [r for r in payload if isinstance(r, dict)]

    def insert(self, table: str, row: Row) -> Row:
        return self._single(self._request("POST", table, body=row), "POST", table)

    def update(self, table: str, record_id: str, patch: Row) -> Row:
        payload = self._request("PATCH", table, params={"id": f"eq.{record_id}"}, body=patch)
        return self._single(payload, "PATCH", table)

    def delete(self, table: str, record_id: str) -> None:
        self._request("DELETE", table, params={"id": f"eq.{record_id}"})
