# backend/prismatech/routes/system.py
"""
System health endpoint.

Answers whether the API process is up and the database reachable.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..responses import success
from ..services.transactions import fetch_one
from ..validation import InternalError

system_bp = Blueprint("system", __name__, url_prefix="/api")


@system_bp.get("/health")
def health():
    start_time = time.time()
    try:
        row = fetch_one("SELECT 1 AS ok")
    except SQLAlchemyError:
        current_app.logger.exception("Database health check failed")
        raise InternalError("Database connection failed")

    return success({
        "status": "ok",
        "database": "ok" if row and row.get("ok") == 1 else "degraded",
        "latency_ms": round((time.time() - start_time) * 1000, 2),
    })
