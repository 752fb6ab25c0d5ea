from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal[
    "booking.created",
    "booking.rescheduled",
    "booking.cancelled",
    "booking.checked_in",
    "booking.checked_out",
    "policy.updated",
]

_audit_logger = logging.getLogger("audit")
_audit_logger.setLevel(logging.INFO)
if not _audit_logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    _audit_logger.addHandler(handler)
_audit_logger.propagate = False


def _jsonable(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value"):
        return str(value.value)
    return value


def emit_audit_log(
    *,
    action: AuditAction,
    user_id: Optional[int],
    club_id: Optional[int],
    booking_id: Optional[int] = None,
    stand_id: Optional[int] = None,
    status_from: Any = None,
    status_to: Any = None,
    starts_at: Optional[datetime] = None,
    ends_at: Optional[datetime] = None,
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Emit one JSON line per booking lifecycle change. Raises RuntimeError if logging fails."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "info",
        "action": action,
        "request_id": get_request_id(),
        "booking_id": booking_id,
        "stand_id": stand_id,
        "club_id": club_id,
        "user_id": user_id,
        "status_from": _jsonable(status_from),
        "status_to": _jsonable(status_to),
        "starts_at": _jsonable(starts_at),
        "ends_at": _jsonable(ends_at),
    }
    if message is not None:
        payload["message"] = message
    if extra:
        payload.update({k: _jsonable(v) for k, v in extra.items()})

    compact_payload = {k: v for k, v in payload.items() if v is not None}
    try:
        _audit_logger.info(json.dumps(compact_payload, ensure_ascii=True))
    except Exception as exc:  # pragma: no cover - handler failures
        raise RuntimeError("failed to emit audit log") from exc
