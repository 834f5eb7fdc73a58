# Overview: JSON envelope, pagination and sorting helpers shared by all routes.

from __future__ import annotations

import math
from dataclasses import dataclass

from flask import jsonify, request

from .time_utils import to_utc_z, utcnow
from .validation import ApiError, ValidationError, sanitize


DEFAULT_PAGE_SIZE = 20
MIN_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def success(data=None, message: str = "OK", status: int = 200):
    """Wrap a payload in the standard success envelope."""
    body = {
        "success": True,
        "message": message,
        "timestamp": to_utc_z(utcnow()),
        "method": request.method,
    }
    if data is not None:
        body["data"] = data
    return jsonify(body), status


def error_body(exc: ApiError) -> dict:
    error = {
        "code": exc.status_code,
        "type": exc.code,
        "message": exc.message,
        "timestamp": to_utc_z(utcnow()),
        "method": request.method,
        "endpoint": request.path,
    }
    if exc.details:
        error["details"] = exc.details
    return {"success": False, "error": error}


def render_error(exc: ApiError):
    response = jsonify(error_body(exc))
    response.status_code = exc.status_code
    if exc.status_code == 429 and exc.details and "retry_after" in exc.details:
        response.headers["Retry-After"] = str(exc.details["retry_after"])
    return response


def get_json_body(required: bool = True) -> dict:
    """Parsed, sanitized JSON object from the request body."""
    payload = request.get_json(silent=True)
    if payload is None:
        if required:
            raise ValidationError("Request body must be valid JSON")
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return sanitize(payload)


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def get_page_params(args=None) -> PageParams:
    """page >= 1; limit clamped into [10, 100], default 20."""
    args = request.args if args is None else args
    page = args.get("page", default=1, type=int) or 1
    limit = args.get("limit", default=DEFAULT_PAGE_SIZE, type=int) or DEFAULT_PAGE_SIZE
    page = max(1, page)
    limit = min(MAX_PAGE_SIZE, max(MIN_PAGE_SIZE, limit))
    return PageParams(page=page, limit=limit)


def get_sort(allowed: dict, default_order: str = "ASC", args=None):
    """
    Resolve sort_by/sort_order against an allowlist of column expressions.
    Unknown sort_by falls back to the first allowed key.
    """
    args = request.args if args is None else args
    keys = list(allowed)
    sort_by = args.get("sort_by", keys[0])
    if sort_by not in allowed:
        sort_by = keys[0]
    sort_order = (args.get("sort_order") or default_order).upper()
    if sort_order not in ("ASC", "DESC"):
        sort_order = default_order
    column = allowed[sort_by]
    return sort_by, sort_order, column.desc() if sort_order == "DESC" else column.asc()


def pagination_block(total: int, params: PageParams, base_url: str | None = None) -> dict:
    base_url = base_url or request.path
    total_pages = math.ceil(total / params.limit) if total else 0
    has_next = params.page < total_pages
    has_prev = params.page > 1

    def link(page: int | None) -> str | None:
        if page is None:
            return None
        return f"{base_url}?page={page}&limit={params.limit}"

    return {
        "current_page": params.page,
        "per_page": params.limit,
        "total": total,
        "total_pages": total_pages,
        "has_next": has_next,
        "has_prev": has_prev,
        "next_page": params.page + 1 if has_next else None,
        "prev_page": params.page - 1 if has_prev else None,
        "links": {
            "first": link(1),
            "last": link(total_pages) if total_pages else link(1),
            "next": link(params.page + 1) if has_next else None,
            "prev": link(params.page - 1) if has_prev else None,
        },
    }


def paginate_query(query, params: PageParams, serialize, base_url: str | None = None) -> dict:
    """Run count + page slice on a SQLAlchemy query and build the paginated body."""
    total = query.order_by(None).count()
    rows = query.offset(params.offset).limit(params.limit).all()
    return {
        "data": [serialize(row) for row in rows],
        "pagination": pagination_block(total, params, base_url),
    }
