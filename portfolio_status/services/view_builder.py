"""
portfolio_status/services/view_builder.py

Builds the denormalized `portfolioStatusView` collection.

The dashboard reads this collection directly instead of joining five collections on
every render. It is derived state: never edited, only rebuilt in full from
products, procedures, productTypes, countries, statuses and statusPortfolios, and
written back with a single SET. Nothing invalidates it automatically; every
mutation path must call rebuild_portfolio_status_view() afterwards.

Dangling foreign keys never abort a rebuild:
- product whose procedure or product type does not resolve -> product skipped
- status row whose country or status does not resolve -> row skipped
Each skip is recorded as a DanglingReference and counted in the result.

Duplicate (productId, countryId) rows: one country status per country; the last
row in stored order wins and keeps the position where the country first appeared.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from ..exceptions import DanglingReference, StorageUnavailable
from ..models import (
    Country,
    CountryStatus,
    PortfolioStatusView,
    Procedure,
    Product,
    ProductType,
    Status,
    StatusPortfolio,
)
from ..store import (
    COUNTRIES_KEY,
    PORTFOLIO_VIEW_KEY,
    PROCEDURES_KEY,
    PRODUCT_TYPES_KEY,
    PRODUCTS_KEY,
    STATUSES_KEY,
    STATUS_PORTFOLIOS_KEY,
    KeyValueStore,
)

logger = logging.getLogger(__name__)


@dataclass
class ViewBuild:
    """In-memory result of the join, before it is persisted."""

    entries: List[PortfolioStatusView] = field(default_factory=list)
    skipped_products: List[DanglingReference] = field(default_factory=list)
    skipped_rows: List[DanglingReference] = field(default_factory=list)


@dataclass
class RebuildResult:
    success: bool
    message: str
    products: int = 0
    skipped_products: int = 0
    skipped_rows: int = 0

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "products": self.products,
            "skippedProducts": self.skipped_products,
            "skippedRows": self.skipped_rows,
        }


def view_entry_id(product_id: str) -> str:
    return f"view-{product_id}"


def build_portfolio_status_view(
    products: Sequence[Product],
    procedures: Sequence[Procedure],
    product_types: Sequence[ProductType],
    countries: Sequence[Country],
    statuses: Sequence[Status],
    status_portfolios: Sequence[StatusPortfolio],
) -> ViewBuild:
    """Join the source collections into view entries (pure, no I/O)."""
    procedures_by_id = {p.id: p for p in procedures}
    types_by_id = {t.id: t for t in product_types}
    countries_by_id = {c.id: c for c in countries}
    statuses_by_id = {s.id: s for s in statuses}

    rows_by_product: Dict[str, List[StatusPortfolio]] = {}
    for row in status_portfolios:
        rows_by_product.setdefault(row.product_id, []).append(row)

    build = ViewBuild()

    for product in products:
        procedure = procedures_by_id.get(product.procedure_id)
        if procedure is None:
            build.skipped_products.append(
                DanglingReference("Product", product.id, "procedureId", product.procedure_id)
            )
            continue

        product_type = types_by_id.get(product.product_type_id)
        if product_type is None:
            build.skipped_products.append(
                DanglingReference("Product", product.id, "productTypeId", product.product_type_id)
            )
            continue

        # dict keeps first-insertion order; reassignment keeps the slot
        by_country: Dict[str, CountryStatus] = {}
        for row in rows_by_product.get(product.id, []):
            country = countries_by_id.get(row.country_id)
            if country is None:
                build.skipped_rows.append(
                    DanglingReference("StatusPortfolio", row.id, "countryId", row.country_id)
                )
                continue
            status = statuses_by_id.get(row.status_id)
            if status is None:
                build.skipped_rows.append(
                    DanglingReference("StatusPortfolio", row.id, "statusId", row.status_id)
                )
                continue

            by_country[country.id] = CountryStatus(
                country_id=country.id,
                country_name=country.name,
                status_id=status.id,
                status_code=status.code,
                status_name=status.name,
                status_color=status.color,
                last_updated=row.last_updated,
                sets_qty=row.sets_qty,
            )

        build.entries.append(
            PortfolioStatusView(
                id=view_entry_id(product.id),
                category=procedure.category,
                procedure=procedure.name,
                procedure_id=procedure.id,
                product_type=product_type.name,
                product_type_id=product_type.id,
                product=product.name,
                product_id=product.id,
                product_tier=product.product_tier.value,
                product_life_cycle=product.product_life_cycle.value,
                country_statuses=list(by_country.values()),
            )
        )

    return build


def rebuild_portfolio_status_view(store: KeyValueStore) -> RebuildResult:
    """
    Recompute and replace the stored view.

    Store failures are reported in the result (success=False), not raised and
    not retried.
    """
    try:
        build = build_portfolio_status_view(
            products=store.get_collection(PRODUCTS_KEY, Product),
            procedures=store.get_collection(PROCEDURES_KEY, Procedure),
            product_types=store.get_collection(PRODUCT_TYPES_KEY, ProductType),
            countries=store.get_collection(COUNTRIES_KEY, Country),
            statuses=store.get_collection(STATUSES_KEY, Status),
            status_portfolios=store.get_collection(STATUS_PORTFOLIOS_KEY, StatusPortfolio),
        )
        store.set_collection(PORTFOLIO_VIEW_KEY, build.entries)
    except StorageUnavailable as exc:
        logger.error("View rebuild failed: %s", exc)
        return RebuildResult(success=False, message=f"View rebuild failed: {exc}")

    for ref in build.skipped_products + build.skipped_rows:
        logger.warning("View rebuild skipped: %s", ref)

    logger.info(
        "View rebuilt: %d products, %d products skipped, %d rows skipped",
        len(build.entries),
        len(build.skipped_products),
        len(build.skipped_rows),
    )
    return RebuildResult(
        success=True,
        message="View rebuilt successfully",
        products=len(build.entries),
        skipped_products=len(build.skipped_products),
        skipped_rows=len(build.skipped_rows),
    )
