from __future__ import annotations

from typing import Any, Iterable

import httpx
import structlog

from msp_portal.core.config import settings

logger = structlog.get_logger(__name__)

Filter = tuple[str, str, Any]


class GatewayError(Exception):
    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.details = details


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def eq(column: str, value: Any) -> Filter:
    return (column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return (column, "neq", value)


def in_(column: str, values: Iterable[Any]) -> Filter:
    return (column, "in", list(values))


def is_(column: str, value: bool | None) -> Filter:
    return (column, "is", value)


def _filter_params(filters: Iterable[Filter]) -> list[tuple[str, str]]:
    params: list[tuple[str, str]] = []
    for column, op, value in filters:
        if op == "in":
            joined = ",".join(_format_value(item) for item in value)
            params.append((column, f"in.({joined})"))
        else:
            params.append((column, f"{op}.{_format_value(value)}"))
    return params


def _order_param(order: Iterable[tuple[str, bool]]) -> str:
    return ",".join(
        f"{column}.{'asc' if ascending else 'desc'}" for column, ascending in order
    )


def parse_content_range(header: str | None) -> int:
    # "0-24/3573" or "*/0"
    if not header or "/" not in header:
        return 0
    total = header.rsplit("/", 1)[1]
    if not total.isdigit():
        return 0
    return int(total)


class RestClient:
    """Thin async client for the hosted table API, auth API and edge functions."""

    def __init__(
        self,
        access_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = settings.SUPABASE_URL.rstrip("/")
        self.api_key = settings.SUPABASE_ANON_KEY
        self.access_token = access_token
        self.transport = transport

    def with_token(self, access_token: str | None) -> "RestClient":
        return RestClient(access_token=access_token, transport=self.transport)

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=settings.REQUEST_TIMEOUT_SEC, transport=self.transport
        )

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Iterable[Filter] = (),
        order: Iterable[tuple[str, bool]] = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        params: list[tuple[str, str]] = [("select", "".join(columns.split()))]
        params.extend(_filter_params(filters))
        order_value = _order_param(order)
        if order_value:
            params.append(("order", order_value))
        if limit is not None:
            params.append(("limit", str(limit)))
        response = await self._request("GET", f"/rest/v1/{table}", params=params)
        return self._rows(response, table)

    async def count(self, table: str, filters: Iterable[Filter] = ()) -> int:
        params: list[tuple[str, str]] = [("select", "*")]
        params.extend(_filter_params(filters))
        response = await self._request(
            "HEAD",
            f"/rest/v1/{table}",
            params=params,
            prefer="count=exact",
        )
        return parse_content_range(response.headers.get("content-range"))

    async def insert(
        self, table: str, rows: dict[str, Any] | list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        response = await self._request(
            "POST",
            f"/rest/v1/{table}",
            json=rows,
            prefer="return=representation",
        )
        return self._rows(response, table)

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: Iterable[Filter],
        returning: bool = False,
    ) -> list[dict[str, Any]]:
        response = await self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=_filter_params(filters),
            json=values,
            prefer="return=representation" if returning else "return=minimal",
        )
        if not returning:
            return []
        return self._rows(response, table)

    async def invoke(self, function: str, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._request(
            "POST", f"/functions/v1/{function}", json=payload
        )
        data = self._json(response, function)
        if not isinstance(data, dict):
            raise GatewayError(f"{function}: invalid JSON response")
        if data.get("error"):
            raise GatewayError(str(data["error"]), status_code=response.status_code)
        return data

    async def auth_request(
        self,
        path: str,
        payload: dict[str, Any] | None = None,
        params: list[tuple[str, str]] | None = None,
    ) -> dict[str, Any]:
        response = await self._request(
            "POST", f"/auth/v1/{path}", params=params, json=payload
        )
        if not response.content:
            return {}
        data = self._json(response, path)
        return data if isinstance(data, dict) else {}

    async def _request(
        self,
        method: str,
        path: str,
        params: list[tuple[str, str]] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        if not self.base_url:
            raise GatewayError("SUPABASE_URL is not configured")
        if not self.api_key:
            raise GatewayError("SUPABASE_ANON_KEY is not configured")
        url = f"{self.base_url}{path}"
        try:
            async with self._client() as client:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers(prefer),
                )
        except httpx.HTTPError as exc:
            logger.error("errors", stage="remote_http", method=method, path=path, error=str(exc))
            raise GatewayError(f"Request failed: {exc}") from exc

        if response.status_code >= 400:
            self._raise_for_body(response, method, path)
        return response

    def _raise_for_body(self, response: httpx.Response, method: str, path: str) -> None:
        code = None
        details = None
        message = response.text or response.reason_phrase
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            code = body.get("code")
            details = body.get("details") or body.get("hint")
            message = (
                body.get("message")
                or body.get("error_description")
                or body.get("msg")
                or body.get("error")
                or message
            )
        logger.error(
            "errors",
            stage="remote_http",
            method=method,
            path=path,
            status_code=response.status_code,
            response=message,
        )
        raise GatewayError(
            str(message),
            status_code=response.status_code,
            code=code,
            details=details,
        )

    def _json(self, response: httpx.Response, context: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            logger.error("errors", stage="remote_json", context=context, response=response.text)
            raise GatewayError(f"{context}: invalid JSON response") from exc

    def _rows(self, response: httpx.Response, table: str) -> list[dict[str, Any]]:
        if not response.content:
            return []
        data = self._json(response, table)
        if data is None:
            return []
        if isinstance(data, dict):
            return [data]
        if not isinstance(data, list):
            raise GatewayError(f"{table}: expected a list of rows")
        return [row for row in data if isinstance(row, dict)]
