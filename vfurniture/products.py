"""
VFurniture — products.py
─────────────────────────────────────────────────────────────────
Product catalog.

  GET   /api/products        → filtered, sorted, paginated
  GET   /api/products/{id}   → one product, category + subCategory embedded
  PATCH /api/products/{id}   → partial update of editable fields
─────────────────────────────────────────────────────────────────
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query

from vfurniture.core.database import Database, get_db, now_utc, to_json
from vfurniture.core.errors import NotFound, ValidationError
from vfurniture.inspirations import like_pattern, paginate
from vfurniture.models.catalog import PRODUCT_EDITABLE, Product, ref

logger = logging.getLogger("vfurniture.products")

router = APIRouter(prefix="/api/products", tags=["products"])

SORTS = {
    "newest":     "created_at DESC",
    "oldest":     "created_at ASC",
    "name-asc":   "name ASC",
    "name-desc":  "name DESC",
    "price-low":  "final_price ASC",
    "price-high": "final_price DESC",
}

NUMERIC_FIELDS = {"originalPrice", "finalPrice", "emiPrice", "discountPercent", "weight"}


async def get_product(db: Database, product_id: str) -> Optional[Product]:
    row = await db.fetch_one("SELECT * FROM products WHERE id = ?", (product_id,))
    return Product.from_row(row) if row else None


async def product_detail(db: Database, product: Product) -> dict:
    category = await db.fetch_one(
        "SELECT id, name, slug FROM categories WHERE id = ?", (product.category_id,)
    )
    sub = await db.fetch_one(
        "SELECT id, name, slug FROM subcategories WHERE id = ?", (product.sub_category_id,)
    )
    return {**product.to_dict(), "category": ref(category), "subCategory": ref(sub)}


async def _resolve(db: Database, table: str, key: str) -> Optional[str]:
    row = await db.fetch_one(f"SELECT id FROM {table} WHERE slug = ? OR id = ?", (key, key))
    return row["id"] if row else None


@router.get("")
async def list_products(
    page:               int = Query(1, ge=1),
    limit:              int = Query(12, ge=1, le=50),
    category:           Optional[str] = None,
    subCategory:        Optional[str] = None,
    search:             Optional[str] = None,
    minPrice:           Optional[float] = Query(None, ge=0),
    maxPrice:           Optional[float] = Query(None, ge=0),
    sort:               str = "newest",
    includeUnpublished: bool = False,
    db:                 Database = Depends(get_db),
):
    clauses, params = [], []

    if not includeUnpublished:
        clauses.append("is_published = 1")

    # Unknown category / subcategory → empty page, not 404
    for key, table, column in (
        (category, "categories", "category_id"),
        (subCategory, "subcategories", "sub_category_id"),
    ):
        if not key:
            continue
        resolved = await _resolve(db, table, key.strip())
        if not resolved:
            return {
                "products":   [],
                "pagination": paginate(page, limit, 0),
                "message":    f"'{key}' not found",
            }
        clauses.append(f"{column} = ?")
        params.append(resolved)

    if search and search.strip():
        pattern = like_pattern(search.strip())
        clauses.append(
            "(lower(name) LIKE ? ESCAPE '\\' OR lower(coalesce(description, '')) LIKE ? ESCAPE '\\')"
        )
        params += [pattern, pattern]
    if minPrice is not None:
        clauses.append("final_price >= ?")
        params.append(minPrice)
    if maxPrice is not None:
        clauses.append("final_price <= ?")
        params.append(maxPrice)

    where    = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    order_by = SORTS.get(sort, SORTS["newest"])

    total = await db.fetch_value(f"SELECT COUNT(*) FROM products {where}", params, 0)
    rows = await db.fetch_all(
        f"SELECT * FROM products {where} ORDER BY {order_by} LIMIT ? OFFSET ?",
        [*params, limit, (page - 1) * limit],
    )

    return {
        "products":   [Product.from_row(r).to_dict() for r in rows],
        "pagination": paginate(page, limit, total),
    }


@router.get("/{product_id}")
async def get_product_by_id(product_id: str, db: Database = Depends(get_db)):
    product = await get_product(db, product_id)
    if not product:
        raise NotFound("Product not found")
    return await product_detail(db, product)


@router.patch("/{product_id}")
async def update_product(
    product_id: str,
    updates:    Dict[str, Any] = Body(...),
    db:         Database = Depends(get_db),
):
    if not await get_product(db, product_id):
        raise NotFound("Product not found")

    columns, values = [], []
    for key, value in updates.items():
        if key not in PRODUCT_EDITABLE:
            continue
        column, is_json = PRODUCT_EDITABLE[key]

        if key == "name" and not (isinstance(value, str) and value.strip()):
            raise ValidationError("Name cannot be empty")
        if key in NUMERIC_FIELDS and value is not None:
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                raise ValidationError(f"{key} must be a non-negative number")
        if key == "inStockQuantity" and value is not None:
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError("inStockQuantity must be a non-negative integer")
        if key == "isPublished":
            value = int(bool(value))

        columns.append(f"{column} = ?")
        values.append(to_json(value) if is_json else value)

    if not columns:
        raise ValidationError("No editable fields in request body")

    await db.execute(
        f"UPDATE products SET {', '.join(columns)}, updated_at = ? WHERE id = ?",
        (*values, now_utc(), product_id),
    )
    logger.info(f"Product {product_id} updated: {sorted(k for k in updates if k in PRODUCT_EDITABLE)}")

    return await product_detail(db, await get_product(db, product_id))
