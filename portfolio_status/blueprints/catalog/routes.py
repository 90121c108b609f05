"""
portfolio_status/blueprints/catalog/routes.py

Master data editors for the five base collections.

Scope:
- /api/countries
- /api/procedures
- /api/product-types
- /api/products
- /api/statuses

Each collection exposes:
- GET     list (any logged-in user)
- POST    merge records by id (admin-only); body is an array or {"<collectionKey>": [...]}
- DELETE  delete by ids (admin-only); ?ids=a,b or {"ids": [...]}

SECURITY:
- UI is never trusted. Writes are admin-only, enforced here.

DERIVED STATE:
- Every successful write is followed by refresh_derived() (view rebuild + read cache clear).

AUDIT:
- CREATE/UPDATE and DELETE are audited via portfolio_status/audit.py.
"""

from __future__ import annotations

from typing import Callable, Dict, List

from flask import Blueprint, jsonify
from flask_login import login_required

from ...audit import log_action
from ...extensions import portfolio_service
from ...security import admin_required
from ...services import PortfolioService
from ...store import (
    COUNTRIES_KEY,
    PROCEDURES_KEY,
    PRODUCT_TYPES_KEY,
    PRODUCTS_KEY,
    STATUSES_KEY,
)
from ...utils import parse_ids, records_from_body

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


# ----------------------------------------------------------------------
# Collection table
# ----------------------------------------------------------------------
class _Editor:
    """Bindings from one URL segment to the service calls for its collection."""

    def __init__(
        self,
        key: str,
        label: str,
        getter: Callable[[PortfolioService], List],
        saver: Callable[[PortfolioService, List], int],
        deleter: Callable[[PortfolioService, List[str]], int],
    ) -> None:
        self.key = key
        self.label = label
        self.getter = getter
        self.saver = saver
        self.deleter = deleter


EDITORS: Dict[str, _Editor] = {
    "countries": _Editor(
        COUNTRIES_KEY, "Country",
        PortfolioService.get_countries, PortfolioService.save_countries, PortfolioService.delete_countries,
    ),
    "procedures": _Editor(
        PROCEDURES_KEY, "Procedure",
        PortfolioService.get_procedures, PortfolioService.save_procedures, PortfolioService.delete_procedures,
    ),
    "product-types": _Editor(
        PRODUCT_TYPES_KEY, "ProductType",
        PortfolioService.get_product_types, PortfolioService.save_product_types,
        PortfolioService.delete_product_types,
    ),
    "products": _Editor(
        PRODUCTS_KEY, "Product",
        PortfolioService.get_products, PortfolioService.save_products, PortfolioService.delete_products,
    ),
    "statuses": _Editor(
        STATUSES_KEY, "Status",
        PortfolioService.get_statuses, PortfolioService.save_statuses, PortfolioService.delete_statuses,
    ),
}

_COLLECTIONS = '<any("countries", "procedures", "product-types", "products", "statuses"):collection>'


# ----------------------------------------------------------------------
# Routes
# ----------------------------------------------------------------------
@catalog_bp.route(f"/{_COLLECTIONS}", methods=["GET"])
@login_required
def list_records(collection: str):
    editor = EDITORS[collection]
    records = editor.getter(portfolio_service())
    return jsonify({editor.key: [r.to_store() for r in records]})


@catalog_bp.route(f"/{_COLLECTIONS}", methods=["POST"])
@login_required
@admin_required
def save_records(collection: str):
    """Merge posted records by id: existing ids are replaced in place, new ids appended."""
    editor = EDITORS[collection]
    records = records_from_body(editor.key)

    service = portfolio_service()
    total = editor.saver(service, records)
    rebuild = service.refresh_derived()

    log_action(
        editor.label,
        [r.get("id") for r in records if isinstance(r, dict)],
        "SAVE",
        after={"records": len(records)},
    )
    return jsonify(
        {
            "success": True,
            "message": f"{len(records)} {editor.label} record(s) saved",
            "total": total,
            "view": rebuild.to_dict(),
        }
    )


@catalog_bp.route(f"/{_COLLECTIONS}", methods=["DELETE"])
@login_required
@admin_required
def delete_records(collection: str):
    editor = EDITORS[collection]
    ids = parse_ids()

    service = portfolio_service()
    removed = editor.deleter(service, ids)
    rebuild = service.refresh_derived()

    log_action(editor.label, ids, "DELETE")
    return jsonify(
        {
            "success": True,
            "message": f"{removed} {editor.label} record(s) deleted",
            "deleted": removed,
            "view": rebuild.to_dict(),
        }
    )
