"""
Shared pytest fixtures for the Portfolio Status Dashboard test suite.

Provides:
    - redis_client: in-memory fakeredis client (fresh per test)
    - app: Flask application built from TestingConfig around redis_client
    - client: Flask test client
    - store / service / directory: store and services bound to the same client
    - seeded: default master data + two products + status assignments
    - admin_user / regular_user: approved users in the store
    - admin_client / user_client: test clients already logged in
"""

from datetime import datetime, timezone

import fakeredis
import pytest

from config import TestingConfig
from portfolio_status import create_app
from portfolio_status.extensions import CACHE_EXTENSION, STORE_EXTENSION
from portfolio_status.models import StatusPortfolio
from portfolio_status.seed import seed_default_data
from portfolio_status.services import PortfolioService, UserDirectory
from portfolio_status.store import PRODUCTS_KEY, STATUS_PORTFOLIOS_KEY

ADMIN_PASSWORD = "Admin@1234"
USER_PASSWORD = "User@12345"

T0 = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)
T1 = datetime(2024, 2, 20, 14, 0, tzinfo=timezone.utc)


# ── App & store fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def redis_client():
    """Own FakeServer per test: FakeRedis instances with default args share one server."""
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture()
def app(redis_client):
    """Flask app whose key-value store is the in-memory client."""
    return create_app(TestingConfig, kv_client=redis_client)


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def store(app):
    return app.extensions[STORE_EXTENSION]


@pytest.fixture()
def service(app, store):
    return PortfolioService(store, app.extensions[CACHE_EXTENSION])


@pytest.fixture()
def directory(store):
    return UserDirectory(store)


# ── Data fixtures ────────────────────────────────────────────────────────


def make_product(product_id, name, procedure_id="proc-1", product_type_id="type-3", **extra):
    data = {
        "id": product_id,
        "name": name,
        "procedureId": procedure_id,
        "productTypeId": product_type_id,
        "productTier": "Tier 1",
        "productLifeCycle": "Flagship",
    }
    data.update(extra)
    return data


def make_row(row_id, product_id, country_id, status_id, when=T0, **extra):
    return StatusPortfolio(
        id=row_id,
        product_id=product_id,
        country_id=country_id,
        status_id=status_id,
        last_updated=when,
        **extra,
    )


@pytest.fixture()
def seeded(store, service):
    """
    Defaults plus:
        prod-1 (ACDF / Interbody): BR=Available, MX=RA Submitted
        prod-2 (Corpectomy TL / Plate): CO=Not Planned
    View is rebuilt at the end.
    """
    seed_default_data(store)
    store.set_collection(
        PRODUCTS_KEY,
        [
            make_product("prod-1", "Cage A", "proc-1", "type-3"),
            make_product("prod-2", "Plate B", "proc-7", "type-4", productTier="Tier 2",
                         productLifeCycle="Maintain"),
        ],
    )
    store.set_collection(
        STATUS_PORTFOLIOS_KEY,
        [
            make_row("sp-1", "prod-1", "country-1", "status-1", setsQty="4"),
            make_row("sp-2", "prod-1", "country-3", "status-2"),
            make_row("sp-3", "prod-2", "country-2", "status-4", when=T1),
        ],
    )
    result = service.rebuild_portfolio_status_view()
    assert result.success
    return store


# ── User fixtures ────────────────────────────────────────────────────────


@pytest.fixture()
def admin_user(directory):
    user, _ = directory.create_user(
        name="Ada Admin", email="ada.admin@company.com", role="admin", status="approved",
        password=ADMIN_PASSWORD,
    )
    return user


@pytest.fixture()
def regular_user(directory):
    user, _ = directory.create_user(
        name="Rui User", email="rui.user@company.com", role="user", status="approved",
        password=USER_PASSWORD,
    )
    return user


def login(client, email, password):
    return client.post("/api/auth/login", json={"email": email, "password": password})


@pytest.fixture()
def admin_client(app, admin_user):
    c = app.test_client()
    res = login(c, admin_user.email, ADMIN_PASSWORD)
    assert res.status_code == 200, res.get_json()
    return c


@pytest.fixture()
def user_client(app, regular_user):
    c = app.test_client()
    res = login(c, regular_user.email, USER_PASSWORD)
    assert res.status_code == 200, res.get_json()
    return c
