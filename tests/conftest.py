import sqlite3
import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from vfurniture.core.config import Config
from vfurniture.main import create_app

PASSWORD = "secret123"


@pytest.fixture
def config(tmp_path):
    return Config(
        ENV                   = "development",
        DB_PATH               = str(tmp_path / "test.db"),
        PUBLIC_DIR            = str(tmp_path / "public"),
        JWT_SECRET            = "test-access-secret",
        JWT_REFRESH_SECRET    = "test-refresh-secret",
        BCRYPT_ROUNDS         = 4,
        RESEND_API_KEY        = "",
        AWS_ACCESS_KEY_ID     = "",
        AWS_SECRET_ACCESS_KEY = "",
        RETRY_BASE_DELAY      = 0,
    )


@pytest.fixture
def app(config):
    return create_app(config)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


# ─────────────────────────────────────────────
# Users
# ─────────────────────────────────────────────
def register(client, name="Jane Doe", email="jane@example.com", password=PASSWORD, **extra):
    return client.post(
        "/api/auth/register",
        json={"name": name, "email": email, "password": password, **extra},
    )


def login_as(client, email, password=PASSWORD):
    client.cookies.clear()
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp


@pytest.fixture
def user(client):
    """Registered + signed in."""
    resp = register(client)
    assert resp.status_code == 201, resp.text
    return resp.json()


# ─────────────────────────────────────────────
# Direct seeding (separate sqlite3 connection)
# ─────────────────────────────────────────────
class Seeder:
    def __init__(self, db_path):
        self.db_path = db_path

    def _now(self):
        return datetime.now(timezone.utc).isoformat()

    def run(self, sql, params=()):
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute(sql, params)
            conn.commit()
        finally:
            conn.close()

    def query(self, sql, params=()):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            return [dict(r) for r in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()

    def category(self, name="Living Room", slug=None, main_image=None):
        cid = uuid.uuid4().hex[:12]
        self.run(
            """INSERT INTO categories (id, name, slug, description, main_image, created_at, updated_at)
               VALUES (?,?,?,?,?,?,?)""",
            (cid, name, slug or name.lower().replace(" ", "-"), f"{name} furniture",
             main_image, self._now(), self._now()),
        )
        return cid

    def subcategory(self, category_id, name="Sofas"):
        sid = uuid.uuid4().hex[:12]
        self.run(
            """INSERT INTO subcategories (id, name, slug, category_id, created_at, updated_at)
               VALUES (?,?,?,?,?,?)""",
            (sid, name, name.lower().replace(" ", "-"), category_id, self._now(), self._now()),
        )
        return sid

    def product(
        self, category_id, sub_category_id, name="Oslo Sofa", price=5000,
        stock=10, published=True, description="Three-seater sofa",
    ):
        pid = uuid.uuid4().hex[:12]
        self.run(
            """INSERT INTO products
               (id, name, slug, description, category_id, sub_category_id, item_id,
                original_price, final_price, discount_percent, in_stock_quantity,
                tags, is_published, created_at, updated_at)
               VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)""",
            (pid, name, name.lower().replace(" ", "-"), description, category_id,
             sub_category_id, f"VF-{pid}", price * 1.2, price, 16.7, stock,
             '["sofa"]', int(published), self._now(), self._now()),
        )
        return pid

    def inspiration(self, title, slug, tags=(), keywords=(), category_ids=(), hero_url=None):
        iid = uuid.uuid4().hex[:12]
        hero = '{"url": "%s", "alt": "%s"}' % (hero_url, title) if hero_url else None
        self.run(
            """INSERT INTO inspirations (id, title, slug, description, hero_image, tags, keywords, created_at, updated_at)
               VALUES (?,?,?,?,?,?,?,?,?)""",
            (iid, title, slug, f"{title} ideas", hero,
             "[%s]" % ",".join(f'"{t}"' for t in tags),
             "[%s]" % ",".join(f'"{k}"' for k in keywords),
             self._now(), self._now()),
        )
        for cid in category_ids:
            self.run(
                "INSERT INTO inspiration_categories (inspiration_id, category_id) VALUES (?,?)",
                (iid, cid),
            )
        return iid


@pytest.fixture
def seed(client, config):
    """Depends on client so the tables exist."""
    return Seeder(config.DB_PATH)


@pytest.fixture
def catalog(seed):
    cat = seed.category("Living Room")
    sub = seed.subcategory(cat, "Sofas")
    return {
        "category":    cat,
        "subcategory": sub,
        "sofa":        seed.product(cat, sub, "Oslo Sofa", price=5000, stock=10),
        "chair":       seed.product(cat, sub, "Bergen Chair", price=6000, stock=2),
        "lamp":        seed.product(cat, sub, "Arc Lamp", price=1500, stock=None),
    }
