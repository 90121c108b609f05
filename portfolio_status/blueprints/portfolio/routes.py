"""
portfolio_status/blueprints/portfolio/routes.py

Dashboard read API and status editing.

Provides:
- GET  /api/portfolio                   the view (optionally narrowed with ?countryId=)
- GET  /api/procedures/<id>/products    products of one procedure
- GET  /api/dashboard-data              aggregated payload from the read cache (X-Cache: HIT/MISS)
- POST /api/update-status               one update object or an array of them (admin)
- POST /api/rebuild-view                recompute portfolioStatusView (admin)
- POST /api/refresh-cache               clear the read cache (admin)
- GET  /api/store/status                ping + record counts per key (admin)
- POST /api/store/reset                 drop and recreate the store client (admin)
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from ...audit import log_action
from ...exceptions import StorageUnavailable, ValidationError
from ...extensions import get_store, portfolio_service
from ...security import admin_required
from ...store import COLLECTION_KEYS
from ...utils import json_body

portfolio_bp = Blueprint("portfolio", __name__, url_prefix="/api")


# ----------------------------------------------------------------------
# Reads (any logged-in user)
# ----------------------------------------------------------------------
@portfolio_bp.route("/portfolio", methods=["GET"])
@login_required
def portfolio_view():
    """
    The stored view.

    With ?countryId=X every entry is returned with countryStatuses narrowed to X;
    entries without a status in X keep an empty list.
    """
    service = portfolio_service()
    country_id = (request.args.get("countryId") or "").strip()
    if country_id:
        entries = service.get_portfolio_status_view_by_country(country_id)
    else:
        entries = service.get_portfolio_status_view()
    return jsonify({"portfolioData": [e.to_store() for e in entries]})


@portfolio_bp.route("/procedures/<procedure_id>/products", methods=["GET"])
@login_required
def products_by_procedure(procedure_id: str):
    products = portfolio_service().get_products_by_procedure(procedure_id)
    return jsonify({"products": [p.to_store() for p in products]})


@portfolio_bp.route("/dashboard-data", methods=["GET"])
@login_required
def dashboard_data():
    payload, hit = portfolio_service().get_dashboard_data()
    response = jsonify(payload)
    response.headers["X-Cache"] = "HIT" if hit else "MISS"
    return response


# ----------------------------------------------------------------------
# Status editing (admin)
# ----------------------------------------------------------------------
@portfolio_bp.route("/update-status", methods=["POST"])
@login_required
@admin_required
def update_status():
    """
    Body: {productId, countryId, statusId, setsQty?, notes?} or an array of those.

    An empty statusId clears the (product, country) cell.
    """
    data = json_body((dict, list))
    updates = data if isinstance(data, list) else [data]
    if not updates:
        raise ValidationError("No status updates given")

    service = portfolio_service()
    applied = service.bulk_update_status(updates, updated_by=current_user.id)
    rebuild = service.refresh_derived()

    log_action("StatusPortfolio", None, "UPDATE_STATUS", after={"updates": updates})
    return jsonify(
        {
            "success": True,
            "message": f"{applied} status update(s) applied",
            "updated": applied,
            "view": rebuild.to_dict(),
        }
    )


@portfolio_bp.route("/rebuild-view", methods=["POST"])
@login_required
@admin_required
def rebuild_view():
    service = portfolio_service()
    result = service.rebuild_portfolio_status_view()
    if not result.success:
        return jsonify(result.to_dict()), 500

    service.refresh_cache()
    log_action("PortfolioStatusView", None, "REBUILD", after=result.to_dict())
    return jsonify(result.to_dict())


@portfolio_bp.route("/refresh-cache", methods=["POST"])
@login_required
@admin_required
def refresh_cache():
    portfolio_service().refresh_cache()
    return jsonify({"success": True, "message": "Cache refreshed successfully"})


# ----------------------------------------------------------------------
# Store maintenance (admin)
# ----------------------------------------------------------------------
@portfolio_bp.route("/store/status", methods=["GET"])
@login_required
@admin_required
def store_status():
    """Ping the store and count records under every known key."""
    store = get_store()
    try:
        store.ping()
    except StorageUnavailable as exc:
        current_app.logger.error("Store status check failed: %s", exc)
        return jsonify({"connected": False, "message": str(exc)}), 503

    counts = {key: len(store.get_raw_collection(key)) for key in COLLECTION_KEYS}
    return jsonify({"connected": True, "collections": counts})


@portfolio_bp.route("/store/reset", methods=["POST"])
@login_required
@admin_required
def store_reset():
    """Reconnect: the next store call builds a fresh client."""
    get_store().reset()
    log_action("Store", None, "RESET")
    return jsonify({"success": True, "message": "Store client reset"})
