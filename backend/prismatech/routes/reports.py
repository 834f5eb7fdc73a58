# Overview: Flask API routes for reports operations; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import require_auth, require_roles
from ..responses import success
from ..services import reporting_service

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
@require_auth
@require_roles("admin", "manager")
def sales_report():
    """?type=summary|products|customers|daily&date_from=YYYY-MM-DD&date_to=YYYY-MM-DD"""
    report = reporting_service.sales_report(
        report_type=request.args.get("type", "summary"),
        date_from=request.args.get("date_from"),
        date_to=request.args.get("date_to"),
        user=g.current_user,
    )
    return success(report, "Report generated")
