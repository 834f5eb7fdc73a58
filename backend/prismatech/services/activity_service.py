# Overview: Structured audit log lines for business events.

from __future__ import annotations

import json
import logging

from flask import current_app, has_request_context, request


def log_activity(action: str, data: dict | None = None, user_id: int | None = None) -> None:
    """Write one INFO record on the prismatech.activity logger."""
    logger = logging.getLogger(f"{current_app.logger.name}.activity")
    record = {
        "action": action,
        "user_id": user_id,
        "data": data or {},
    }
    if has_request_context():
        record["ip"] = request.remote_addr
        record["endpoint"] = request.path
    logger.info("activity %s", json.dumps(record, default=str, sort_keys=True))
