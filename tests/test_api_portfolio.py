"""
Catalog editor & dashboard API tests.
"""

import pytest

from portfolio_status.store import COLLECTION_KEYS

from conftest import make_product


# ═══════════════════════════════════════════════════════════════
# CATALOG EDITORS
# ═══════════════════════════════════════════════════════════════

@pytest.mark.parametrize(
    "path,key,count",
    [
        ("/api/countries", "countries", 3),
        ("/api/procedures", "procedures", 7),
        ("/api/product-types", "productTypes", 6),
        ("/api/products", "products", 2),
        ("/api/statuses", "statuses", 5),
    ],
)
def test_catalog_lists_for_any_user(seeded, user_client, path, key, count):
    res = user_client.get(path)
    assert res.status_code == 200
    assert len(res.get_json()[key]) == count


def test_catalog_writes_are_admin_only(seeded, user_client):
    res = user_client.post("/api/countries", json=[{"id": "country-4", "name": "Peru", "code": "PE"}])
    assert res.status_code == 403
    assert user_client.delete("/api/countries?ids=country-1").status_code == 403


def test_save_country_accepts_wrapped_body(seeded, admin_client):
    res = admin_client.post("/api/countries", json={"countries": [{"id": "country-4", "name": "Peru", "code": "pe"}]})
    assert res.status_code == 200
    body = res.get_json()
    assert body["total"] == 4
    assert body["view"]["success"] is True

    codes = [c["code"] for c in admin_client.get("/api/countries").get_json()["countries"]]
    assert codes == ["BR", "CO", "MX", "PE"]


def test_save_conflict_returns_409_with_details(seeded, admin_client):
    res = admin_client.post("/api/statuses", json=[{"id": "status-9", "code": "New", "name": "available", "color": "#000"}])
    assert res.status_code == 409
    assert res.get_json()["details"]["existingId"] == "status-1"


def test_save_invalid_body_returns_400(seeded, admin_client):
    assert admin_client.post("/api/products", json={"wrong": []}).status_code == 400
    res = admin_client.post("/api/products", json=[make_product("prod-9", "Ghost", procedure_id="proc-404")])
    assert res.status_code == 400
    assert "prod-9.procedureId" in res.get_json()["details"]


def test_new_product_appears_in_view(seeded, admin_client):
    res = admin_client.post("/api/products", json=[make_product("prod-3", "Rod C", "proc-5", "type-6")])
    assert res.status_code == 200
    assert res.get_json()["view"]["products"] == 3

    entries = admin_client.get("/api/portfolio").get_json()["portfolioData"]
    assert [e["productId"] for e in entries] == ["prod-1", "prod-2", "prod-3"]
    assert entries[-1]["countryStatuses"] == []


def test_delete_country_rebuilds_view(seeded, admin_client):
    res = admin_client.delete("/api/countries", json={"ids": ["country-1"]})
    assert res.status_code == 200
    assert res.get_json()["deleted"] == 1

    entries = admin_client.get("/api/portfolio").get_json()["portfolioData"]
    assert [cs["countryId"] for cs in entries[0]["countryStatuses"]] == ["country-3"]


def test_delete_in_use_returns_409(seeded, admin_client):
    assert admin_client.delete("/api/procedures?ids=proc-1").status_code == 409
    assert admin_client.delete("/api/product-types?ids=type-3").status_code == 409


def test_delete_without_ids_returns_400(seeded, admin_client):
    assert admin_client.delete("/api/statuses").status_code == 400


def test_delete_unknown_returns_404(seeded, admin_client):
    assert admin_client.delete("/api/statuses?ids=status-404").status_code == 404


# ═══════════════════════════════════════════════════════════════
# DASHBOARD READS
# ═══════════════════════════════════════════════════════════════

def test_portfolio_filtered_by_country(seeded, user_client):
    entries = user_client.get("/api/portfolio?countryId=country-2").get_json()["portfolioData"]
    assert len(entries) == 2
    assert [len(e["countryStatuses"]) for e in entries] == [0, 1]
    assert entries[1]["countryStatuses"][0]["statusName"] == "Not Planned"


def test_products_by_procedure(seeded, user_client):
    products = user_client.get("/api/procedures/proc-1/products").get_json()["products"]
    assert [p["id"] for p in products] == ["prod-1"]


def test_dashboard_data_cache_header(seeded, user_client, admin_client):
    first = user_client.get("/api/dashboard-data")
    assert first.status_code == 200
    assert first.headers["X-Cache"] == "MISS"
    assert user_client.get("/api/dashboard-data").headers["X-Cache"] == "HIT"

    admin_client.post("/api/update-status", json={"productId": "prod-2", "countryId": "country-1", "statusId": "status-1"})
    after_write = user_client.get("/api/dashboard-data")
    assert after_write.headers["X-Cache"] == "MISS"
    grid = {e["productId"]: e for e in after_write.get_json()["portfolioData"]}
    assert [cs["countryId"] for cs in grid["prod-2"]["countryStatuses"]] == ["country-2", "country-1"]


# ═══════════════════════════════════════════════════════════════
# STATUS UPDATES & MAINTENANCE
# ═══════════════════════════════════════════════════════════════

def test_update_status_array(seeded, admin_client, admin_user, service):
    res = admin_client.post(
        "/api/update-status",
        json=[
            {"productId": "prod-1", "countryId": "country-1", "statusId": ""},
            {"productId": "prod-1", "countryId": "country-2", "statusId": "status-3", "notes": "Q3"},
        ],
    )
    assert res.status_code == 200
    assert res.get_json()["updated"] == 2

    rows = {(r.product_id, r.country_id): r for r in service.get_status_portfolios()}
    assert ("prod-1", "country-1") not in rows
    assert rows[("prod-1", "country-2")].updated_by == admin_user.id
    assert rows[("prod-1", "country-2")].notes == "Q3"


def test_update_status_is_admin_only(seeded, user_client):
    res = user_client.post("/api/update-status", json={"productId": "prod-1", "countryId": "country-1", "statusId": "status-2"})
    assert res.status_code == 403


def test_update_status_rejects_unknown_references(seeded, admin_client):
    res = admin_client.post("/api/update-status", json={"productId": "prod-1", "countryId": "country-404", "statusId": "status-2"})
    assert res.status_code == 400
    assert "0.countryId" in res.get_json()["details"]
    assert admin_client.post("/api/update-status", json=[]).status_code == 400


def test_rebuild_view_endpoint(seeded, admin_client):
    res = admin_client.post("/api/rebuild-view")
    assert res.status_code == 200
    assert res.get_json() == {
        "success": True,
        "message": "View rebuilt successfully",
        "products": 2,
        "skippedProducts": 0,
        "skippedRows": 0,
    }


def test_rebuild_view_failure_returns_500(seeded, admin_client, redis_client):
    redis_client.set("statuses", "not json")
    res = admin_client.post("/api/rebuild-view")
    assert res.status_code == 500
    assert res.get_json()["success"] is False


def test_refresh_cache_endpoint(admin_client):
    res = admin_client.post("/api/refresh-cache")
    assert res.get_json() == {"success": True, "message": "Cache refreshed successfully"}


def test_store_status_counts_every_key(seeded, admin_client):
    data = admin_client.get("/api/store/status").get_json()
    assert data["connected"] is True
    assert set(data["collections"]) == set(COLLECTION_KEYS)
    assert data["collections"]["statusPortfolios"] == 3
    assert data["collections"]["auth:approvedUsers"] == 1


def test_store_reset(admin_client):
    assert admin_client.post("/api/store/reset").status_code == 200
    assert admin_client.get("/api/auth/me").status_code == 200


def test_unknown_route_is_json_404(client):
    res = client.get("/api/nothing")
    assert res.status_code == 404
    assert res.get_json()["success"] is False
