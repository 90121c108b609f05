"""
Portfolio Status Dashboard – Domain Models

Every collection in the key-value store is a JSON array of one of these records.
Wire format is camelCase (as stored by earlier versions of the dashboard); Python
attributes are snake_case. Validation happens here, at the deserialization
boundary: a stored payload that does not fit its model is rejected by the store
layer instead of flowing through the app as untyped data.

Base entities:
- Country, Procedure, ProductType, Product, Status

Assignments:
- StatusPortfolio (product x country -> status)

Derived (read-only, rebuilt by services/view_builder.py):
- PortfolioStatusView + CountryStatus

Auth:
- User (pending/approved pools), SessionUser (Flask-Login wrapper)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from flask_login import UserMixin
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def utcnow() -> datetime:
    """Timezone-aware current time (all stored timestamps are UTC)."""
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Generate a record id such as 'sp-3f2a9c1e0b7d'."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class Record(BaseModel):
    """Base for stored records: camelCase aliases, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_store(self) -> dict:
        """JSON-ready dict with camelCase keys; unset optionals are omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------
class ProductTier(str, Enum):
    TIER_1 = "Tier 1"
    TIER_2 = "Tier 2"


class ProductLifeCycle(str, Enum):
    MAINTAIN = "Maintain"
    FLAGSHIP = "Flagship"
    DE_EMPHASIZE = "De-emphasize"


class UserStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


# ---------------------------------------------------------------------
# Base entities (admin-managed master data)
# ---------------------------------------------------------------------
class Country(Record):
    """Market where a product can hold a status."""

    id: str
    name: str
    code: str
    has_tiers: bool = False
    number_of_tiers: int = 0
    is_active: bool = True


class Procedure(Record):
    """Surgical procedure; `category` is a free-text grouping label (CERVICAL, TL...)."""

    id: str
    name: str
    category: str
    description: Optional[str] = None
    is_active: bool = True


class ProductType(Record):
    id: str
    name: str
    description: Optional[str] = None
    is_active: bool = True


class Product(Record):
    """Portfolio product. References one ProductType and one Procedure."""

    id: str
    name: str
    product_type_id: str
    procedure_id: str
    product_tier: ProductTier
    product_life_cycle: ProductLifeCycle
    description: Optional[str] = None
    is_active: bool = True


class Status(Record):
    """
    Regulatory/availability status.

    `code` is the stable short code shown in the grid. The "None" status uses an
    empty code, so empty strings are valid here.
    """

    id: str
    code: str
    name: str
    color: str
    description: Optional[str] = None
    is_active: bool = True


# ---------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------
class StatusPortfolio(Record):
    """Current status of one product in one country."""

    id: str
    product_id: str
    country_id: str
    status_id: str
    sets_qty: Optional[str] = None
    last_updated: datetime
    updated_by: Optional[str] = None
    notes: Optional[str] = None


# ---------------------------------------------------------------------
# Derived view
# ---------------------------------------------------------------------
class CountryStatus(Record):
    country_id: str
    country_name: str
    status_id: str
    status_code: str
    status_name: str
    status_color: str
    last_updated: datetime
    sets_qty: Optional[str] = None


class PortfolioStatusView(Record):
    """One row of the dashboard grid: a product with its per-country statuses."""

    id: str
    category: str
    procedure: str
    procedure_id: str
    product_type: str
    product_type_id: str
    product: str
    product_id: str
    product_tier: str
    product_life_cycle: str
    country_statuses: List[CountryStatus] = Field(default_factory=list)


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
class User(Record):
    """
    Dashboard user.

    `password` always holds a hash (see security.hash_password), never the
    clear-text value. `email` is matched case-sensitively, as stored.
    """

    id: str
    name: str
    email: str
    password: str
    requested_at: datetime
    approved_at: Optional[datetime] = None
    last_login: Optional[datetime] = None
    status: UserStatus = UserStatus.PENDING
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def session_payload(self) -> dict:
        """Public fields returned to the client after login."""
        data = self.to_store()
        return {
            "id": data["id"],
            "name": data["name"],
            "email": data["email"],
            "approvedAt": data.get("approvedAt"),
            "lastLogin": data.get("lastLogin"),
            "role": data["role"],
        }

    def public_dict(self) -> dict:
        """Stored fields minus the password hash (admin listings)."""
        data = self.to_store()
        data.pop("password", None)
        return data


class SessionUser(UserMixin):
    """Flask-Login wrapper around an approved User record."""

    def __init__(self, user: User) -> None:
        self.user = user
        self.id = user.id

    @property
    def is_admin(self) -> bool:
        return self.user.is_admin

    @property
    def email(self) -> str:
        return self.user.email

    def __repr__(self):
        return f"<SessionUser {self.user.email}>"
