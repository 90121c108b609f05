"""
portfolio_status/seed.py

Seed default master data.

Rules:
- Safe to run multiple times (idempotent): records are added only when their id
  is missing; existing records are never overwritten.
- Seeds statuses, countries, procedures and product types.

NOTE:
- Products and status assignments are not seeded; they are entered by admins.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Type

from .models import Country, Procedure, ProductType, Record, Status
from .store import (
    COUNTRIES_KEY,
    PROCEDURES_KEY,
    PRODUCT_TYPES_KEY,
    STATUSES_KEY,
    KeyValueStore,
)

logger = logging.getLogger(__name__)


DEFAULT_STATUSES = [
    # id, code, name, color
    ("status-1", "Available", "Available", "#7CD992"),
    ("status-2", "RA Submitted", "RA Submitted", "#A8A8A8"),
    ("status-3", "RA To be submitted", "RA To be submitted", "#EB6060"),
    ("status-4", "Not Planned", "Not Planned", "#F7E463"),
    ("status-5", "", "None", "#FFFFFF"),
]

DEFAULT_COUNTRIES = [
    # id, name, code, number_of_tiers
    ("country-1", "Brazil", "BR", 2),
    ("country-2", "Colombia", "CO", 2),
    ("country-3", "Mexico", "MX", 2),
]

DEFAULT_PROCEDURES = [
    # id, name, category
    ("proc-1", "ACDF", "CERVICAL"),
    ("proc-2", "Corpectomy", "CERVICAL"),
    ("proc-3", "cTDR", "CERVICAL"),
    ("proc-4", "PCF", "CERVICAL"),
    ("proc-5", "Fixation", "CERVICAL"),
    ("proc-6", "Pediatric", "TL"),
    ("proc-7", "Corpectomy", "TL"),
]

DEFAULT_PRODUCT_TYPES = [
    ("type-1", "Retractor"),
    ("type-2", "Odontoid"),
    ("type-3", "Interbody"),
    ("type-4", "Plate"),
    ("type-5", "cTDR"),
    ("type-6", "Fixation"),
]


def _seed_collection(store: KeyValueStore, key: str, model: Type[Record], defaults: List[Record]) -> int:
    """Append defaults whose id is not stored yet. Returns how many were added."""
    existing = store.get_collection(key, model)
    known = {r.id for r in existing}
    missing = [r for r in defaults if r.id not in known]
    if missing:
        store.set_collection(key, existing + missing)
    return len(missing)


def seed_default_data(store: KeyValueStore) -> Dict[str, int]:
    """Seed every default collection. Returns {key: records added}."""
    added = {
        STATUSES_KEY: _seed_collection(
            store,
            STATUSES_KEY,
            Status,
            [Status(id=i, code=code, name=name, color=color) for i, code, name, color in DEFAULT_STATUSES],
        ),
        COUNTRIES_KEY: _seed_collection(
            store,
            COUNTRIES_KEY,
            Country,
            [
                Country(id=i, name=name, code=code, has_tiers=tiers > 0, number_of_tiers=tiers)
                for i, name, code, tiers in DEFAULT_COUNTRIES
            ],
        ),
        PROCEDURES_KEY: _seed_collection(
            store,
            PROCEDURES_KEY,
            Procedure,
            [Procedure(id=i, name=name, category=cat) for i, name, cat in DEFAULT_PROCEDURES],
        ),
        PRODUCT_TYPES_KEY: _seed_collection(
            store,
            PRODUCT_TYPES_KEY,
            ProductType,
            [ProductType(id=i, name=name) for i, name in DEFAULT_PRODUCT_TYPES],
        ),
    }
    logger.info("Seed complete: %s", added)
    return added
