from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter

from .config import PosConfig
from .error_mapper import map_error
from .exceptions import TransportError
from .logging import log_json

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Trace-ID"
TRACE_HEADER_ALIASES = (TRACE_HEADER, "X-Trace-Id", "x-trace-id")
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD"})

JsonBody = dict[str, Any] | list[Any] | None


@dataclass
class TraceContext:
    """Trace id shared by every request of one till session."""

    trace_id: str | None = None

    def ensure(self) -> str:
        if not self.trace_id:
            self.trace_id = str(uuid.uuid4())
        return self.trace_id

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        trace_id = next((headers.get(key) for key in TRACE_HEADER_ALIASES if headers.get(key)), None)
        if trace_id:
            self.trace_id = trace_id


@dataclass
class HttpClient:
    """JSON over HTTP against the POS backend.

    Reads are retried on transport errors and 5xx answers. Mutations are
    sent once unless the caller passes ``retry_mutation`` (only for calls
    the backend deduplicates, e.g. by ``Idempotency-Key``).
    """

    config: PosConfig
    trace: TraceContext | None = None
    session: requests.Session | None = None

    def __post_init__(self) -> None:
        self.config.require_api()
        if self.trace is None:
            self.trace = TraceContext()
        if self.session is None:
            pool = HTTPAdapter(pool_connections=self.config.max_connections, pool_maxsize=self.config.max_connections)
            self.session = requests.Session()
            for scheme in ("http://", "https://"):
                self.session.mount(scheme, pool)

    def url_for(self, path: str) -> str:
        return urljoin(self.config.api_base_url.rstrip("/") + "/", path.lstrip("/"))

    def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        retry_mutation: bool = False,
        operation: str = "unknown",
    ) -> JsonBody:
        verb = method.upper()
        trace = self.trace or TraceContext()
        request_headers = {"Accept": "application/json", **(headers or {}), TRACE_HEADER: trace.ensure()}
        attempts = self.config.retries + 1 if verb in IDEMPOTENT_METHODS or retry_mutation else 1

        started = time.monotonic()
        response = self._send(verb, self.url_for(path), request_headers, json_body, params, attempts, trace)
        trace.update_from_headers(response.headers)
        log_json(
            logger,
            {
                "event": "http.request",
                "operation": operation,
                "method": verb,
                "path": path,
                "status": response.status_code,
                "duration_ms": int((time.monotonic() - started) * 1000),
                "trace_id": trace.trace_id,
            },
            logging.DEBUG,
        )
        return self._decode(response, trace)

    def _send(
        self,
        verb: str,
        url: str,
        headers: dict[str, str],
        json_body: dict[str, Any] | None,
        params: dict[str, Any] | None,
        attempts: int,
        trace: TraceContext,
    ) -> requests.Response:
        session = self.session
        if session is None:
            raise RuntimeError("HttpClient was built without a requests session")
        for attempt in range(attempts):
            last = attempt == attempts - 1
            try:
                response = session.request(
                    method=verb,
                    url=url,
                    headers=headers,
                    json=json_body,
                    params=params,
                    timeout=(self.config.connect_timeout_seconds, self.config.read_timeout_seconds),
                    verify=self.config.verify_ssl,
                )
            except requests.RequestException as exc:
                if last:
                    raise TransportError(
                        code="TRANSPORT_ERROR",
                        message=str(exc),
                        details={"type": type(exc).__name__, "attempts": attempts},
                        trace_id=trace.trace_id,
                        status_code=0,
                    ) from exc
                logger.warning("%s %s failed (%s), retrying", verb, url, type(exc).__name__)
            else:
                if response.status_code < 500 or last:
                    return response
                logger.warning("%s %s answered %s, retrying", verb, url, response.status_code)
            time.sleep(self.config.retry_backoff_seconds * (2**attempt))
        raise RuntimeError(f"{verb} {url} was never sent")

    @staticmethod
    def _decode(response: requests.Response, trace: TraceContext) -> JsonBody:
        if response.ok:
            return response.json() if response.content else None
        try:
            payload = response.json()
        except json.JSONDecodeError:
            payload = {"message": response.text}
        raise map_error(response.status_code, payload if isinstance(payload, dict) else None, trace.trace_id)
