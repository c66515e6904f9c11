# Overview: Flask API routes for reports operations; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..services import reporting_service
from ..services.reporting_service import ReportError
from ..decorators import require_auth


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
@require_auth
def dashboard_route():
    return reporting_service.dashboard(g.org_id)


@reports_bp.get("/analytics")
@require_auth
def analytics_route():
    try:
        return reporting_service.analytics_summary(
            g.org_id,
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except ReportError as exc:
        return {"error": str(exc)}, 400


@reports_bp.get("/monthly-sales")
@require_auth
def monthly_sales_route():
    try:
        return reporting_service.monthly_sales(
            g.org_id,
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except ReportError as exc:
        return {"error": str(exc)}, 400


@reports_bp.get("/profit-loss")
@require_auth
def profit_loss_route():
    try:
        return reporting_service.profit_loss(
            g.org_id,
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except ReportError as exc:
        return {"error": str(exc)}, 400


@reports_bp.get("/top-customers")
@require_auth
def top_customers_route():
    limit = min(request.args.get("limit", type=int) or reporting_service.TOP_LIMIT, 100)
    return reporting_service.top_customers(g.org_id, limit=limit)


@reports_bp.get("/top-products")
@require_auth
def top_products_route():
    limit = min(request.args.get("limit", type=int) or reporting_service.TOP_LIMIT, 100)
    return reporting_service.top_products(g.org_id, limit=limit)
