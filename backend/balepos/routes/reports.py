# Overview: Flask API routes for reporting; analytics, dashboard figures and CSV downloads.

from flask import Blueprint, request, jsonify, Response

from ..services import reporting_service
from ..services.reporting_service import ReportError
from ..decorators import require_approved_device


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/analytics")
@require_approved_device
def analytics_route():
    """Query params: range = Week | Month | Year | All (default Month)."""
    try:
        return jsonify(reporting_service.analytics(request.args.get("range", "Month"))), 200
    except ReportError as e:
        return jsonify({"error": str(e)}), 400


@reports_bp.get("/dashboard")
@require_approved_device
def dashboard_route():
    return jsonify({
        "stats": reporting_service.dashboard_stats(),
        "active_bales": reporting_service.active_bales(),
    }), 200


@reports_bp.get("/chart")
@require_approved_device
def chart_route():
    """Query params: period = Today | Month | Year (default Month)."""
    try:
        points = reporting_service.chart_data(request.args.get("period", "Month"))
        return jsonify({"items": points}), 200
    except ReportError as e:
        return jsonify({"error": str(e)}), 400


@reports_bp.get("/export/<kind>")
@require_approved_device
def export_route(kind: str):
    """CSV download. kind: Sales | Financial | Inventory | Customers."""
    try:
        filename, body = reporting_service.export_csv(kind, request.args.get("range", "All"))
    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
