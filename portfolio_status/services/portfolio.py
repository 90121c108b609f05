"""
portfolio_status/services/portfolio.py

Typed access to the portfolio collections, plus the write paths used by the admin
editors.

Reads:
- one accessor per collection, returning validated records in stored order
- get_products_by_procedure / get_portfolio_status_view_by_country

Writes (whole-collection read-modify-write; all validation runs BEFORE the write):
- update_status / bulk_update_status on statusPortfolios
- save_* / delete_* for the five catalog collections

IMPORTANT:
- Writes do NOT rebuild the view. Callers must follow every mutation with
  refresh_derived() (rebuild view + clear read cache); the blueprints do.
- Store failures surface as StorageUnavailable; nothing here returns a default
  collection on error.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ..cache import ReadCache
from ..exceptions import ConflictError, NotFoundError, ValidationError
from ..models import (
    Country,
    PortfolioStatusView,
    Procedure,
    Product,
    ProductType,
    Record,
    Status,
    StatusPortfolio,
    new_id,
    utcnow,
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
from .view_builder import RebuildResult, rebuild_portfolio_status_view

logger = logging.getLogger(__name__)

DASHBOARD_CACHE_KEY = "dashboard-data"


class StatusUpdate(BaseModel):
    """One cell edit from the grid. An empty status_id clears the cell."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    product_id: str
    country_id: str
    status_id: str
    sets_qty: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("product_id", "country_id")
    @classmethod
    def _required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value


def _pydantic_details(exc: PydanticValidationError) -> Dict[str, str]:
    """Flatten pydantic errors to {"field.path": "message"}."""
    return {
        ".".join(str(part) for part in err["loc"]) or "_": err["msg"]
        for err in exc.errors()
    }


def _norm(value) -> str:
    return str(value or "").strip().casefold()


# ---------------------------------------------------------------------
# Catalog definitions
# ---------------------------------------------------------------------
class _Catalog:
    """How one master-data collection is keyed, validated and protected."""

    def __init__(
        self,
        key: str,
        model: Type[Record],
        label: str,
        unique: Sequence[Tuple[str, ...]],
        required: Sequence[str],
    ) -> None:
        self.key = key
        self.model = model
        self.label = label
        self.unique = unique
        self.required = required


CATALOGS: Dict[str, _Catalog] = {
    COUNTRIES_KEY: _Catalog(COUNTRIES_KEY, Country, "Country", [("name",), ("code",)], ["name", "code"]),
    # Procedure names repeat across categories (Corpectomy: CERVICAL and TL)
    PROCEDURES_KEY: _Catalog(PROCEDURES_KEY, Procedure, "Procedure", [("category", "name")], ["name", "category"]),
    PRODUCT_TYPES_KEY: _Catalog(PRODUCT_TYPES_KEY, ProductType, "ProductType", [("name",)], ["name"]),
    PRODUCTS_KEY: _Catalog(PRODUCTS_KEY, Product, "Product", [("name",)], ["name"]),
    STATUSES_KEY: _Catalog(STATUSES_KEY, Status, "Status", [("name",), ("code",)], ["name"]),
}


class PortfolioService:
    """Portfolio collections over an explicitly passed store (and optional read cache)."""

    def __init__(self, store: KeyValueStore, cache: Optional[ReadCache] = None) -> None:
        self.store = store
        self.cache = cache

    # -----------------------------------------------------------------
    # Typed reads
    # -----------------------------------------------------------------
    def get_countries(self) -> List[Country]:
        return self.store.get_collection(COUNTRIES_KEY, Country)

    def get_procedures(self) -> List[Procedure]:
        return self.store.get_collection(PROCEDURES_KEY, Procedure)

    def get_product_types(self) -> List[ProductType]:
        return self.store.get_collection(PRODUCT_TYPES_KEY, ProductType)

    def get_products(self) -> List[Product]:
        return self.store.get_collection(PRODUCTS_KEY, Product)

    def get_statuses(self) -> List[Status]:
        return self.store.get_collection(STATUSES_KEY, Status)

    def get_status_portfolios(self) -> List[StatusPortfolio]:
        return self.store.get_collection(STATUS_PORTFOLIOS_KEY, StatusPortfolio)

    def get_portfolio_status_view(self) -> List[PortfolioStatusView]:
        return self.store.get_collection(PORTFOLIO_VIEW_KEY, PortfolioStatusView)

    # -----------------------------------------------------------------
    # Derived queries
    # -----------------------------------------------------------------
    def get_products_by_procedure(self, procedure_id: str) -> List[Product]:
        """Products of one procedure, in stored order."""
        return [p for p in self.get_products() if p.procedure_id == procedure_id]

    def get_portfolio_status_view_by_country(self, country_id: str) -> List[PortfolioStatusView]:
        """
        The full view with each entry's countryStatuses narrowed to `country_id`.

        Entries left with an empty countryStatuses list are still returned; callers
        that want only products with a status there must filter themselves.
        """
        return [
            entry.model_copy(
                update={
                    "country_statuses": [
                        cs for cs in entry.country_statuses if cs.country_id == country_id
                    ]
                }
            )
            for entry in self.get_portfolio_status_view()
        ]

    def get_dashboard_data(self) -> Tuple[dict, bool]:
        """
        Everything the grid needs in one payload, served from the read cache.

        Returns (payload, cache_hit).
        """
        if self.cache is not None:
            cached = self.cache.get(DASHBOARD_CACHE_KEY)
            if cached is not None:
                return cached, True

        payload = {
            "countries": [c.to_store() for c in self.get_countries()],
            "portfolioData": [v.to_store() for v in self.get_portfolio_status_view()],
            "procedures": [p.to_store() for p in self.get_procedures()],
            "productTypes": [t.to_store() for t in self.get_product_types()],
            "statuses": [s.to_store() for s in self.get_statuses()],
            "products": [p.to_store() for p in self.get_products()],
        }
        if self.cache is not None:
            self.cache.set(DASHBOARD_CACHE_KEY, payload)
        return payload, False

    # -----------------------------------------------------------------
    # Derived state
    # -----------------------------------------------------------------
    def rebuild_portfolio_status_view(self) -> RebuildResult:
        return rebuild_portfolio_status_view(self.store)

    def refresh_cache(self) -> bool:
        """
        Clear the read cache in front of the store.

        Advisory: True means the next read refetches from the store. There is no
        cache to clear when the service was built without one; that is reported
        as success.
        """
        if self.cache is not None:
            self.cache.clear()
        return True

    def refresh_derived(self) -> RebuildResult:
        """Rebuild the view and clear the read cache (call after every mutation)."""
        result = self.rebuild_portfolio_status_view()
        self.refresh_cache()
        return result

    # -----------------------------------------------------------------
    # Status assignments
    # -----------------------------------------------------------------
    def _validate_updates(self, raw_updates: Iterable) -> List[StatusUpdate]:
        updates: List[StatusUpdate] = []
        for index, raw in enumerate(raw_updates):
            if isinstance(raw, StatusUpdate):
                updates.append(raw)
                continue
            try:
                updates.append(StatusUpdate.model_validate(raw))
            except PydanticValidationError as exc:
                details = {f"{index}.{k}": v for k, v in _pydantic_details(exc).items()}
                raise ValidationError("Invalid status update", details=details) from exc

        if not updates:
            return updates

        product_ids = {p.id for p in self.get_products()}
        country_ids = {c.id for c in self.get_countries()}
        status_ids = {s.id for s in self.get_statuses()}

        details: Dict[str, str] = {}
        for index, upd in enumerate(updates):
            if upd.product_id not in product_ids:
                details[f"{index}.productId"] = f"unknown product {upd.product_id!r}"
            if upd.country_id not in country_ids:
                details[f"{index}.countryId"] = f"unknown country {upd.country_id!r}"
            if upd.status_id and upd.status_id not in status_ids:
                details[f"{index}.statusId"] = f"unknown status {upd.status_id!r}"
        if details:
            raise ValidationError("Status update references unknown records", details=details)
        return updates

    @staticmethod
    def _apply_update(
        rows: List[StatusPortfolio],
        upd: StatusUpdate,
        updated_by: Optional[str],
        now: datetime,
    ) -> List[StatusPortfolio]:
        """Upsert (or remove, for an empty status) the row of one (product, country) pair."""
        same_pair = lambda r: r.product_id == upd.product_id and r.country_id == upd.country_id  # noqa: E731

        if not upd.status_id:
            return [r for r in rows if not same_pair(r)]

        for index, row in enumerate(rows):
            if same_pair(row):
                rows[index] = row.model_copy(
                    update={
                        "status_id": upd.status_id,
                        "sets_qty": upd.sets_qty,
                        "notes": upd.notes,
                        "last_updated": now,
                        "updated_by": updated_by,
                    }
                )
                # collapse legacy duplicates of the same pair into this row
                return rows[: index + 1] + [r for r in rows[index + 1:] if not same_pair(r)]

        rows.append(
            StatusPortfolio(
                id=new_id("sp"),
                product_id=upd.product_id,
                country_id=upd.country_id,
                status_id=upd.status_id,
                sets_qty=upd.sets_qty,
                notes=upd.notes,
                last_updated=now,
                updated_by=updated_by,
            )
        )
        return rows

    def bulk_update_status(self, updates: Iterable, updated_by: Optional[str] = None) -> int:
        """
        Apply several cell edits in one read-modify-write of statusPortfolios.

        Every update is validated before anything is written. Returns the number
        of updates applied.
        """
        validated = self._validate_updates(updates)
        if not validated:
            return 0

        now = utcnow()
        rows = self.get_status_portfolios()
        for upd in validated:
            rows = self._apply_update(rows, upd, updated_by, now)

        self.store.set_collection(STATUS_PORTFOLIOS_KEY, rows)
        logger.info("Applied %d status update(s); %d assignment rows", len(validated), len(rows))
        return len(validated)

    def update_status(
        self,
        product_id: str,
        country_id: str,
        status_id: str,
        *,
        sets_qty: Optional[str] = None,
        notes: Optional[str] = None,
        updated_by: Optional[str] = None,
    ) -> bool:
        upd = {
            "productId": product_id,
            "countryId": country_id,
            "statusId": status_id,
            "setsQty": sets_qty,
            "notes": notes,
        }
        return self.bulk_update_status([upd], updated_by=updated_by) == 1

    # -----------------------------------------------------------------
    # Catalog editors (merge by id)
    # -----------------------------------------------------------------
    def _parse_records(self, catalog: _Catalog, raw_records: Iterable) -> List[Record]:
        if isinstance(raw_records, (str, bytes, dict)) or raw_records is None:
            raise ValidationError(f"Expected an array of {catalog.label} records")

        parsed: List[Record] = []
        details: Dict[str, str] = {}
        for index, raw in enumerate(raw_records):
            try:
                record = raw if isinstance(raw, catalog.model) else catalog.model.model_validate(raw)
            except PydanticValidationError as exc:
                for k, v in _pydantic_details(exc).items():
                    details[f"{index}.{k}"] = v
                continue

            for attr in ("id", *catalog.required):
                if not _norm(getattr(record, attr)):
                    details[f"{index}.{attr}"] = "is required"
            parsed.append(record)

        if details:
            raise ValidationError(f"Invalid {catalog.label} records", details=details)
        return parsed

    @staticmethod
    def _unique_key(record: Record, fields: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(_norm(getattr(record, f)) for f in fields)

    def _check_unique(self, catalog: _Catalog, incoming: List[Record], existing: List[Record]) -> None:
        incoming_ids = {r.id for r in incoming}
        if len(incoming_ids) != len(incoming):
            raise ValidationError(f"Duplicate ids in {catalog.label} batch")

        for fields in catalog.unique:
            label = "/".join(fields)

            seen: Dict[Tuple[str, ...], str] = {}
            for record in incoming:
                key = self._unique_key(record, fields)
                if key in seen:
                    raise ValidationError(
                        f"Duplicate {catalog.label} {label} in batch",
                        details={label: " / ".join(key)},
                    )
                seen[key] = record.id

            for record in existing:
                if record.id in incoming_ids:
                    continue
                key = self._unique_key(record, fields)
                if key in seen:
                    raise ConflictError(
                        f"{catalog.label} {label} already exists",
                        details={label: " / ".join(key), "existingId": record.id},
                    )

    def _check_product_references(self, products: List[Record]) -> None:
        procedure_ids = {p.id for p in self.get_procedures()}
        type_ids = {t.id for t in self.get_product_types()}
        details: Dict[str, str] = {}
        for product in products:
            if product.procedure_id not in procedure_ids:
                details[f"{product.id}.procedureId"] = f"unknown procedure {product.procedure_id!r}"
            if product.product_type_id not in type_ids:
                details[f"{product.id}.productTypeId"] = f"unknown product type {product.product_type_id!r}"
        if details:
            raise ValidationError("Product references unknown records", details=details)

    def _save_catalog(self, key: str, raw_records: Iterable, normalize: Optional[Callable] = None) -> int:
        catalog = CATALOGS[key]
        incoming = self._parse_records(catalog, raw_records)
        if normalize is not None:
            incoming = [normalize(r) for r in incoming]

        existing = self.store.get_collection(key, catalog.model)
        self._check_unique(catalog, incoming, existing)
        if key == PRODUCTS_KEY:
            self._check_product_references(incoming)

        # keep stored order; updated ids stay in place, new ids are appended
        merged: Dict[str, Record] = {r.id: r for r in existing}
        for record in incoming:
            merged[record.id] = record

        self.store.set_collection(key, merged.values())
        logger.info("Saved %d %s record(s); %d total", len(incoming), catalog.label, len(merged))
        return len(merged)

    def save_countries(self, records: Iterable) -> int:
        return self._save_catalog(
            COUNTRIES_KEY,
            records,
            normalize=lambda c: c.model_copy(update={"code": c.code.strip().upper(), "name": c.name.strip()}),
        )

    def save_procedures(self, records: Iterable) -> int:
        return self._save_catalog(PROCEDURES_KEY, records)

    def save_product_types(self, records: Iterable) -> int:
        return self._save_catalog(PRODUCT_TYPES_KEY, records)

    def save_products(self, records: Iterable) -> int:
        return self._save_catalog(PRODUCTS_KEY, records)

    def save_statuses(self, records: Iterable) -> int:
        return self._save_catalog(STATUSES_KEY, records)

    # -----------------------------------------------------------------
    # Catalog deletes
    # -----------------------------------------------------------------
    def _delete_catalog(self, key: str, ids: Sequence[str]) -> int:
        catalog = CATALOGS[key]
        wanted = {i for i in ids if i}
        if not wanted:
            raise ValidationError(f"No {catalog.label} ids given")

        existing = self.store.get_collection(key, catalog.model)
        remaining = [r for r in existing if r.id not in wanted]
        removed = len(existing) - len(remaining)
        if removed == 0:
            raise NotFoundError(catalog.label, ", ".join(sorted(wanted)))

        self.store.set_collection(key, remaining)
        logger.info("Deleted %d %s record(s); %d remaining", removed, catalog.label, len(remaining))
        return removed

    def _drop_assignments(self, predicate: Callable[[StatusPortfolio], bool]) -> int:
        rows = self.get_status_portfolios()
        kept = [r for r in rows if not predicate(r)]
        if len(kept) != len(rows):
            self.store.set_collection(STATUS_PORTFOLIOS_KEY, kept)
        return len(rows) - len(kept)

    def delete_countries(self, ids: Sequence[str]) -> int:
        """Delete countries and the status assignments that point at them."""
        removed = self._delete_catalog(COUNTRIES_KEY, ids)
        deleted = set(ids)
        dropped = self._drop_assignments(lambda r: r.country_id in deleted)
        if dropped:
            logger.info("Dropped %d assignment(s) of deleted countries", dropped)
        return removed

    def delete_products(self, ids: Sequence[str]) -> int:
        """Delete products and their status assignments."""
        removed = self._delete_catalog(PRODUCTS_KEY, ids)
        deleted = set(ids)
        dropped = self._drop_assignments(lambda r: r.product_id in deleted)
        if dropped:
            logger.info("Dropped %d assignment(s) of deleted products", dropped)
        return removed

    def delete_procedures(self, ids: Sequence[str]) -> int:
        used = sorted({p.procedure_id for p in self.get_products()} & set(ids))
        if used:
            raise ConflictError(
                "Cannot delete procedures that are used by products",
                details={"usedProcedureIds": used},
            )
        return self._delete_catalog(PROCEDURES_KEY, ids)

    def delete_product_types(self, ids: Sequence[str]) -> int:
        used = sorted({p.product_type_id for p in self.get_products()} & set(ids))
        if used:
            raise ConflictError(
                "Cannot delete product types that are used by products",
                details={"usedProductTypeIds": used},
            )
        return self._delete_catalog(PRODUCT_TYPES_KEY, ids)

    def delete_statuses(self, ids: Sequence[str]) -> int:
        used = sorted({r.status_id for r in self.get_status_portfolios()} & set(ids))
        if used:
            raise ConflictError(
                "Cannot delete statuses that are assigned in the portfolio",
                details={"usedStatusIds": used},
            )
        return self._delete_catalog(STATUSES_KEY, ids)
