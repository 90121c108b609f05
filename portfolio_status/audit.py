"""
portfolio_status/audit.py

Audit trail helpers.

Goals:
- Capture WHO did WHAT to WHICH record, with BEFORE/AFTER snapshots.
- Store the actor email snapshot so identity survives later renames.
- Store the IP address for traceability.

Entries are emitted on the "portfolio_status.audit" logger as one JSON document
per action; ship that logger wherever audit records must be retained.

IMPORTANT:
- Call log_action() only after the store write succeeded.
- Password hashes are never included in snapshots.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from flask import has_request_context, request
from flask_login import current_user

from .models import Record

audit_logger = logging.getLogger("portfolio_status.audit")

_REDACTED_FIELDS = {"password"}


def snapshot(record: Any) -> Optional[Dict[str, Any]]:
    """JSON-safe dict of a stored record (or plain dict), secrets removed."""
    if record is None:
        return None
    data = record.to_store() if isinstance(record, Record) else dict(record)
    return {k: v for k, v in data.items() if k not in _REDACTED_FIELDS}


def _actor() -> Dict[str, Optional[str]]:
    if has_request_context() and current_user.is_authenticated:
        return {"userId": current_user.id, "email": getattr(current_user, "email", None)}
    return {"userId": None, "email": None}


def log_action(
    entity_type: str,
    entity_id: Any,
    action: str,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Emit one audit entry.

    Parameters:
        entity_type: collection/record label (e.g. "Country", "User")
        entity_id: record id, or a list of ids for bulk actions
        action: CREATE / UPDATE / DELETE / APPROVE / LOGIN ...
        before/after: snapshots (see snapshot())
    """
    entry = {
        "actor": _actor(),
        "entityType": entity_type,
        "entityId": entity_id,
        "action": str(action),
        "before": before,
        "after": after,
        "ip": request.remote_addr if has_request_context() else None,
    }
    if extra:
        entry.update(extra)
    audit_logger.info(json.dumps(entry, ensure_ascii=False, default=str))
