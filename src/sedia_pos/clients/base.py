from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from ..http_client import HttpClient


@dataclass
class BaseClient:
    http: HttpClient
    access_token: str | None = None
    outlet_id: str | None = None

    def _auth_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        if self.outlet_id:
            headers["X-Outlet-ID"] = self.outlet_id
        return headers

    def _request(self, method: str, path: str, **kwargs):
        headers = kwargs.pop("headers", {})
        merged = {**self._auth_headers(), **headers}
        return self.http.request(method, path, headers=merged, **kwargs)


def expect_object(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError(f"Expected {what} response to be a JSON object")
    return data


def expect_list(data: Any, what: str) -> list[Any]:
    if not isinstance(data, list):
        raise ValueError(f"Expected {what} response to be a JSON array")
    return data


def money_str(value: Decimal | None) -> str | None:
    return None if value is None else str(value)
