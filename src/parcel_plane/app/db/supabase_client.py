"""Async PostgREST client for Supabase (service role).

The single point of Supabase HTTP interaction for the repositories in this
package.  Each call is one HTTP request; the configured timeout is the only
retry/timeout policy.  Atomic operations that PostgREST cannot express as a
single table request (the conditional view increment) go through ``rpc``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import httpx

from .errors import (
    UNIQUE_VIOLATION,
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
)

DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True, slots=True)
class PostgrestFilter:
    column: str
    op: str
    value: Any


Filters = Sequence[PostgrestFilter] | Mapping[str, Any] | None


def encode_filter_value(op: str, value: Any) -> str:
    """Render ``value`` for a PostgREST ``column=op.value`` query parameter."""
    if op == "is":
        if value is None:
            return "null"
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    if op == "in":
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise ValueError("in operator requires an iterable of values")
        items = []
        for v in value:
            if isinstance(v, str):
                items.append(json.dumps(v))
            elif v is None:
                items.append("null")
            else:
                items.append(str(v))
        return f"({','.join(items)})"

    if value is None:
        raise ValueError(f"{op} does not support None; use op='is' with value=None")
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def filters_to_params(filters: Filters) -> dict[str, str]:
    """Convert filters to query params.

    Mapping values may be a bare value (``eq``) or an ``(op, value)`` tuple.
    """
    if not filters:
        return {}
    if isinstance(filters, Mapping):
        specs = [
            PostgrestFilter(str(col), *spec) if isinstance(spec, tuple) and len(spec) == 2
            else PostgrestFilter(str(col), "eq", spec)
            for col, spec in filters.items()
        ]
    else:
        specs = list(filters)
    return {f.column: f"{f.op}.{encode_filter_value(f.op, f.value)}" for f in specs}


def _error_class(resp: httpx.Response, code: str | None) -> type[SupabaseError]:
    if resp.status_code in (401, 403):
        return SupabaseAuthError
    if resp.status_code == 404:
        return SupabaseNotFoundError
    if resp.status_code == 409 or code == UNIQUE_VIOLATION:
        return SupabaseConflictError
    return SupabaseError


def raise_for_error(resp: httpx.Response) -> None:
    if resp.status_code < 400:
        return

    message = resp.text
    code = details = hint = None
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        message = payload.get("message") or message
        code = payload.get("code")
        details = payload.get("details")
        hint = payload.get("hint")

    raise _error_class(resp, code)(
        status_code=resp.status_code,
        message=message,
        code=code,
        details=details,
        hint=hint,
    )


class SupabaseClient:
    """Minimal async PostgREST client.

    Args:
        supabase_url: Project URL.
        service_role_key: Service-role key; sent as ``apikey`` and bearer.
        http_client: Injected ``httpx.AsyncClient`` (tests pass one built on
            ``httpx.MockTransport``).  When omitted the client owns one.
        timeout_seconds: Per-request timeout.
    """

    def __init__(
        self,
        *,
        supabase_url: str,
        service_role_key: str,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        if not supabase_url:
            raise ValueError("supabase_url is required")
        if not service_role_key:
            raise ValueError("service_role_key is required")

        self._base = f"{supabase_url.rstrip('/')}/rest/v1"
        self._key = service_role_key
        self._timeout = float(timeout_seconds)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    @property
    def base_rest_url(self) -> str:
        return self._base

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        body: Any = None,
        prefer: str | None = None,
    ) -> Any:
        # Never log these headers.
        headers = {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
        }
        if prefer:
            headers["Prefer"] = prefer
        resp = await self._client.request(
            method,
            f"{self._base}/{path}",
            params=params,
            json=body,
            headers=headers,
            timeout=self._timeout,
        )
        raise_for_error(resp)
        if not resp.content:
            return None
        return resp.json()

    @staticmethod
    def _rows(payload: Any, operation: str) -> list[dict[str, Any]]:
        if not isinstance(payload, list):
            raise SupabaseError(status_code=500, message=f"expected list response from {operation}")
        return payload

    async def select(
        self,
        table: str,
        filters: Filters = None,
        *,
        columns: str = "*",
        limit: int | None = None,
        order: str | None = None,
    ) -> list[dict[str, Any]]:
        params = filters_to_params(filters)
        params["select"] = columns
        if limit is not None:
            params["limit"] = str(int(limit))
        if order:
            params["order"] = order
        return self._rows(await self._request("GET", table, params=params), "select")

    async def insert(
        self,
        table: str,
        data: Mapping[str, Any] | Sequence[Mapping[str, Any]],
    ) -> list[dict[str, Any]]:
        payload = await self._request("POST", table, body=data, prefer="return=representation")
        return self._rows(payload, "insert")

    async def update(
        self,
        table: str,
        filters: Filters,
        data: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("update requires at least one filter")
        payload = await self._request(
            "PATCH",
            table,
            params=filters_to_params(filters),
            body=data,
            prefer="return=representation",
        )
        return self._rows(payload, "update")

    async def rpc(self, function_name: str, params: Mapping[str, Any] | None = None) -> Any:
        return await self._request("POST", f"rpc/{function_name}", body=dict(params or {}))
