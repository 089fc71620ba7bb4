"""
VFurniture — catalog.py
─────────────────────────────────────────────────────────────────
Category + subcategory reads for the storefront navigation.

  GET  /api/categories          → all categories (retry-wrapped)
  GET  /api/categories/{slug}   → one category + subcategories + products
  GET  /api/subcategories       → all, parent embedded (retry-wrapped)
  POST /api/subcategories       → create under a category

The list endpoints degrade to [] when the database (or its handle)
stays unavailable after retries; the menu renders empty rather than erroring.
─────────────────────────────────────────────────────────────────
"""

import logging
import re
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from vfurniture.core.config import Config
from vfurniture.core.database import Database, get_db, new_id, now_utc
from vfurniture.core.errors import NotFound, ValidationError
from vfurniture.core.retry import fetch_with_retry
from vfurniture.core.security import get_config
from vfurniture.models.catalog import Category, Product, SubCategory

logger = logging.getLogger("vfurniture.catalog")

router = APIRouter(prefix="/api", tags=["catalog"])

CATEGORY_PRODUCT_LIMIT = 20

SUBCATEGORY_SELECT = """
    SELECT s.*, c.name AS category_name, c.slug AS category_slug
    FROM subcategories s
    LEFT JOIN categories c ON c.id = s.category_id
"""


class SubCategoryCreate(BaseModel):
    name:        Optional[str] = None
    categoryId:  Optional[str] = None
    description: Optional[str] = None


# ─────────────────────────────────────────────
# Queries
# ─────────────────────────────────────────────
async def list_categories(db: Database) -> List[dict]:
    rows = await db.fetch_all("SELECT * FROM categories ORDER BY name")
    return [Category.from_row(r).to_dict() for r in rows]


async def list_subcategories(db: Database, category_id: Optional[str] = None) -> List[dict]:
    if category_id:
        rows = await db.fetch_all(
            SUBCATEGORY_SELECT + " WHERE s.category_id = ? ORDER BY s.name", (category_id,)
        )
    else:
        rows = await db.fetch_all(SUBCATEGORY_SELECT + " ORDER BY s.name")
    return [SubCategory.from_row(r).to_dict() for r in rows]


def subcategory_slug(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


# ─────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────
@router.get("/categories")
async def get_categories(
    request: Request,
    config:  Config = Depends(get_config),
):
    result = await fetch_with_retry(
        lambda: list_categories(get_db(request)),
        attempts   = config.RETRY_ATTEMPTS,
        base_delay = config.RETRY_BASE_DELAY,
        label      = "categories",
    )
    if not result.success:
        logger.error(f"Categories unavailable after {result.attempts} attempt(s): {result.error}")
        return []
    return result.data


@router.get("/categories/{slug}")
async def get_category(slug: str, db: Database = Depends(get_db)):
    slug = slug.strip()
    if not slug:
        raise ValidationError("Category slug is required")

    row = await db.fetch_one("SELECT * FROM categories WHERE slug = ?", (slug,))
    if not row:
        raise NotFound("Category not found")

    category = Category.from_row(row)
    products = await db.fetch_all(
        """SELECT * FROM products
           WHERE category_id = ? AND is_published = 1
           ORDER BY created_at DESC LIMIT ?""",
        (category.id, CATEGORY_PRODUCT_LIMIT),
    )
    product_list = [Product.from_row(p).summary() for p in products]

    return {
        **category.to_dict(),
        "subcategories": await list_subcategories(db, category.id),
        "products":      product_list,
        "productCount":  len(product_list),
    }


@router.get("/subcategories")
async def get_subcategories(
    request: Request,
    config:  Config = Depends(get_config),
):
    result = await fetch_with_retry(
        lambda: list_subcategories(get_db(request)),
        attempts   = config.RETRY_ATTEMPTS,
        base_delay = config.RETRY_BASE_DELAY,
        label      = "subcategories",
    )
    if not result.success:
        logger.error(f"Subcategories unavailable after {result.attempts} attempt(s): {result.error}")
        return []
    return result.data


@router.post("/subcategories", status_code=201)
async def create_subcategory(payload: SubCategoryCreate, db: Database = Depends(get_db)):
    name = (payload.name or "").strip()
    if not name or not payload.categoryId:
        raise ValidationError("Name and categoryId are required")

    category = await db.fetch_one("SELECT id FROM categories WHERE id = ?", (payload.categoryId,))
    if not category:
        raise NotFound("Category not found")

    sub_id = new_id()
    ts     = now_utc()
    await db.execute(
        """INSERT INTO subcategories (id, name, slug, category_id, description, created_at, updated_at)
           VALUES (?,?,?,?,?,?,?)""",
        (sub_id, name, subcategory_slug(name), payload.categoryId, payload.description, ts, ts),
    )
    logger.info(f"Subcategory created: {sub_id} under {payload.categoryId}")

    row = await db.fetch_one(SUBCATEGORY_SELECT + " WHERE s.id = ?", (sub_id,))
    return SubCategory.from_row(row).to_dict()
