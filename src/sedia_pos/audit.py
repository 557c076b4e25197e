from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_FORBIDDEN_METADATA_KEYS = {
    "customer_name",
    "customer_phone",
    "phone",
    "email",
    "pin",
    "pin_code",
    "account_number",
    "va_number",
    "bill_key",
    "qr_string",
    "token",
    "authorization",
}


@dataclass(frozen=True)
class AuditEvent:
    action: str
    entity_type: str
    entity_id: str | None
    outlet_id: str | None
    result: str
    timestamp_utc: str
    actor_id: str | None = None
    trace_id: str | None = None
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        return {key: value for key, value in payload.items() if value is not None}


def _validate_metadata(metadata: dict[str, Any] | None) -> None:
    if not metadata:
        return
    illegal = sorted(key for key in metadata if key.lower() in _FORBIDDEN_METADATA_KEYS)
    if illegal:
        raise ValueError(f"PII-like keys are forbidden in audit metadata: {illegal}")


def build_event(
    *,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    outlet_id: str | None = None,
    result: str = "success",
    actor_id: str | None = None,
    trace_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> AuditEvent:
    _validate_metadata(metadata)
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    return AuditEvent(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        outlet_id=outlet_id,
        result=result,
        timestamp_utc=stamp,
        actor_id=actor_id,
        trace_id=trace_id,
        metadata=metadata,
    )


class AuditSink(Protocol):
    def write(self, event: AuditEvent) -> None: ...


class MemoryAuditSink:
    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    def write(self, event: AuditEvent) -> None:
        self.events.append(event)

    def actions(self) -> list[str]:
        return [event.action for event in self.events]


class JsonlAuditSink:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def write(self, event: AuditEvent) -> None:
        line = json.dumps(event.to_dict(), sort_keys=True, default=str)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fp:
                fp.write(f"{line}\n")


class AuditTrail:
    """Best-effort audit logging. Sink failures are logged and swallowed."""

    def __init__(self, sink: AuditSink | None = None) -> None:
        self.sink = sink

    def record(self, action: str, entity_type: str, **fields: Any) -> None:
        if self.sink is None:
            return
        try:
            self.sink.write(build_event(action=action, entity_type=entity_type, **fields))
        except Exception:
            logger.exception(
                "Failed to write audit event",
                extra={"action": action, "entity_id": fields.get("entity_id")},
            )
