import vfurniture.catalog as catalog_module


def test_categories_sorted_by_name(client, seed):
    seed.category("Outdoor")
    seed.category("Bedroom")
    seed.category("Living Room")

    resp = client.get("/api/categories")
    assert resp.status_code == 200
    assert [c["name"] for c in resp.json()] == ["Bedroom", "Living Room", "Outdoor"]


def test_categories_retry_then_succeed(client, seed, monkeypatch):
    seed.category("Bedroom")
    real = catalog_module.list_categories
    calls = {"n": 0}

    async def flaky(db):
        calls["n"] += 1
        if calls["n"] < 3:
            raise ConnectionError("connection reset by peer")
        return await real(db)

    monkeypatch.setattr(catalog_module, "list_categories", flaky)

    resp = client.get("/api/categories")
    assert resp.status_code == 200
    assert [c["name"] for c in resp.json()] == ["Bedroom"]
    assert calls["n"] == 3


def test_categories_degrade_to_empty_list(client, monkeypatch):
    async def broken(db):
        raise ValueError("permanent failure")

    monkeypatch.setattr(catalog_module, "list_categories", broken)

    resp = client.get("/api/categories")
    assert resp.status_code == 200
    assert resp.json() == []


def test_list_endpoints_degrade_without_database_handle(app, client, monkeypatch):
    monkeypatch.setattr(app.state, "db", None)

    for path in ("/api/categories", "/api/subcategories"):
        resp = client.get(path)
        assert resp.status_code == 200
        assert resp.json() == []

    assert client.get("/api/categories/living-room").status_code == 500


def test_category_detail(client, catalog):
    resp = client.get("/api/categories/living-room")
    assert resp.status_code == 200
    body = resp.json()
    assert body["name"] == "Living Room"
    assert [s["name"] for s in body["subcategories"]] == ["Sofas"]
    assert body["productCount"] == 3


def test_unknown_category_is_404(client):
    assert client.get("/api/categories/nope").status_code == 404


def test_subcategories_embed_parent(client, catalog):
    resp = client.get("/api/subcategories")
    assert resp.status_code == 200
    (sub,) = resp.json()
    assert sub["categoryId"] == {"id": catalog["category"], "name": "Living Room", "slug": "living-room"}


def test_create_subcategory(client, catalog):
    resp = client.post(
        "/api/subcategories",
        json={"name": "Coffee  Tables", "categoryId": catalog["category"]},
    )
    assert resp.status_code == 201
    assert resp.json()["slug"] == "coffee-tables"
    assert resp.json()["categoryId"]["slug"] == "living-room"


def test_create_subcategory_errors(client, catalog):
    assert client.post("/api/subcategories", json={"name": "X"}).status_code == 400
    assert client.post(
        "/api/subcategories", json={"name": "X", "categoryId": "missing"}
    ).status_code == 404
