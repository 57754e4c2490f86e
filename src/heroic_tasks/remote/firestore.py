# src/heroic_tasks/remote/firestore.py

"""
Firestore REST (v1) document client.

Layout (per owner):
- users/{uid}                 profile document (xp, level, lastLogin)
- users/{uid}/tasks/{taskId}  task documents (server-assigned ids)

Only the handful of calls the task backend needs are implemented; values are
encoded with Firestore's typed JSON representation.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

import httpx

from ..core.errors import HeroicTasksError, NotFound, StoreUnavailable, WriteFailed
from ..tasks.task_models import to_epoch_seconds

logger = logging.getLogger(__name__)

FIRESTORE_BASE_URL = "https://firestore.googleapis.com/v1"

# Fields stored as Firestore timestamps (epoch seconds in Python).
TIMESTAMP_FIELDS = frozenset({"createdAt", "xpAwardedAt", "lastLogin"})

TokenProvider = Callable[[], Awaitable[str | None]]


# ---- value codec ----


def _rfc3339(ts: float) -> str:
    return datetime.fromtimestamp(float(ts), UTC).isoformat().replace("+00:00", "Z")


def encode_value(value: Any, *, timestamp: bool = False) -> dict[str, Any]:
    if value is None:
        return {"nullValue": None}
    if timestamp and isinstance(value, (int, float)) and not isinstance(value, bool):
        return {"timestampValue": _rfc3339(value)}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, Mapping):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise TypeError(f"cannot encode {type(value).__name__} for Firestore")


def encode_fields(record: Mapping[str, Any]) -> dict[str, Any]:
    return {k: encode_value(v, timestamp=k in TIMESTAMP_FIELDS) for k, v in record.items()}


def decode_value(value: Mapping[str, Any]) -> Any:
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "timestampValue" in value:
        return to_epoch_seconds(value["timestampValue"])
    if "stringValue" in value:
        return str(value["stringValue"])
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields") or {})
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values") or []]
    return None


def decode_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {k: decode_value(v) for k, v in fields.items()}


def decode_document(doc: Mapping[str, Any]) -> dict[str, Any]:
    """Document JSON -> plain record with "id" (last path segment)."""
    record = decode_fields(doc.get("fields") or {})
    name = str(doc.get("name") or "")
    record["id"] = name.rsplit("/", 1)[-1] if name else ""
    if record.get("createdAt") is None and doc.get("createTime"):
        record["createdAt"] = to_epoch_seconds(doc["createTime"])
    return record


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    return resp.text[:200]


class FirestoreDocuments:
    """RemoteDocuments implementation over the Firestore REST API."""

    def __init__(
        self,
        *,
        project_id: str,
        api_key: str,
        database: str = "(default)",
        token_provider: TokenProvider | None = None,
        http: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
        base_url: str = FIRESTORE_BASE_URL,
    ) -> None:
        if not project_id or not api_key:
            raise StoreUnavailable(
                "remote store is not configured: set HEROIC_FIREBASE_PROJECT_ID and HEROIC_FIREBASE_API_KEY"
            )
        self._api_key = api_key
        self._token_provider = token_provider
        self._root = f"projects/{project_id}/databases/{database}/documents"
        self._base_url = base_url.rstrip("/")
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout_seconds)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ---- low-level helpers ----

    def _user_path(self, owner_id: str) -> str:
        return f"{self._root}/users/{quote(owner_id, safe='')}"

    def _task_path(self, owner_id: str, task_id: str) -> str:
        return f"{self._user_path(owner_id)}/tasks/{quote(task_id, safe='')}"

    async def _headers(self) -> dict[str, str]:
        if self._token_provider is None:
            return {}
        token = await self._token_provider()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        write: bool,
        params: list[tuple[str, str]] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        failure = WriteFailed if write else StoreUnavailable
        query = [("key", self._api_key), *(params or [])]
        try:
            headers = await self._headers()
            resp = await self._http.request(
                method,
                f"{self._base_url}/{path}",
                params=query,
                headers=headers,
                json=json,
            )
        except httpx.HTTPError as e:
            raise failure(f"{method} {path} failed: {e}") from e
        except HeroicTasksError as e:
            # Token refresh failures surface with the same kind as the request.
            raise failure(f"{method} {path} failed: {e}") from e

        if resp.status_code == 404:
            raise NotFound(f"{path} not found")
        if resp.is_error:
            raise failure(f"{method} {path} -> HTTP {resp.status_code}: {_error_message(resp)}")
        return resp

    async def _stamp_server_time(self, document_name: str, field: str) -> float:
        resp = await self._request(
            "POST",
            f"{self._root}:commit",
            write=True,
            json={
                "writes": [
                    {
                        "transform": {
                            "document": document_name,
                            "fieldTransforms": [
                                {"fieldPath": field, "setToServerValue": "REQUEST_TIME"}
                            ],
                        }
                    }
                ]
            },
        )
        try:
            raw = resp.json()["writeResults"][0]["transformResults"][0]["timestampValue"]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise WriteFailed(f"unexpected commit response: {e!r}") from e
        ts = to_epoch_seconds(raw)
        if ts is None:
            raise WriteFailed(f"unparseable server timestamp {raw!r}")
        return ts

    # ---- RemoteDocuments ----

    async def query_tasks(self, owner_id: str) -> list[dict[str, Any]]:
        resp = await self._request(
            "POST",
            f"{self._user_path(owner_id)}:runQuery",
            write=False,
            json={
                "structuredQuery": {
                    "from": [{"collectionId": "tasks"}],
                    "orderBy": [{"field": {"fieldPath": "createdAt"}, "direction": "DESCENDING"}],
                }
            },
        )
        rows = resp.json()
        if not isinstance(rows, list):
            raise StoreUnavailable("unexpected runQuery response")
        return [decode_document(r["document"]) for r in rows if isinstance(r, dict) and r.get("document")]

    async def create_task(self, owner_id: str, record: Mapping[str, Any]) -> dict[str, Any]:
        resp = await self._request(
            "POST",
            f"{self._user_path(owner_id)}/tasks",
            write=True,
            json={"fields": encode_fields(record)},
        )
        doc = resp.json()
        stored = decode_document(doc)
        try:
            stored["createdAt"] = await self._stamp_server_time(str(doc.get("name") or ""), "createdAt")
        except HeroicTasksError as e:
            logger.warning("Server timestamp for task %s not applied, keeping client time: %s", stored["id"], e)
        return stored

    async def patch_task(self, owner_id: str, task_id: str, fields: Mapping[str, Any]) -> None:
        if not fields:
            return
        params = [("updateMask.fieldPaths", k) for k in fields]
        params.append(("currentDocument.exists", "true"))
        await self._request(
            "PATCH",
            self._task_path(owner_id, task_id),
            write=True,
            params=params,
            json={"fields": encode_fields(fields)},
        )
        if fields.get("xpAwardedAt") is not None:
            # The patch already closed the gate with client time; the server clock replaces it.
            name = f"{self._root}/users/{owner_id}/tasks/{task_id}"
            try:
                await self._stamp_server_time(name, "xpAwardedAt")
            except HeroicTasksError as e:
                logger.warning("Server timestamp for award on task %s not applied: %s", task_id, e)

    async def delete_task(self, owner_id: str, task_id: str) -> None:
        await self._request("DELETE", self._task_path(owner_id, task_id), write=True)

    async def get_profile(self, owner_id: str) -> dict[str, Any] | None:
        try:
            resp = await self._request("GET", self._user_path(owner_id), write=False)
        except NotFound:
            return None
        return decode_document(resp.json())

    async def patch_profile(self, owner_id: str, fields: Mapping[str, Any]) -> None:
        params = [("updateMask.fieldPaths", k) for k in fields]
        await self._request(
            "PATCH",
            self._user_path(owner_id),
            write=True,
            params=params,
            json={"fields": encode_fields(fields)},
        )
