"""
VFurniture — wishlist.py
─────────────────────────────────────────────────────────────────
One wishlist per user, newest item first.

  GET    /api/wishlist                  → paginated items + product cards
  POST   /api/wishlist                  → add {productId}
  DELETE /api/wishlist?productId=…      → remove one
  DELETE /api/wishlist?clearAll=true    → remove all
  POST   /api/wishlist/check            → which of {productIds} are saved

products.wishlist_count is kept in step with adds / removes.
─────────────────────────────────────────────────────────────────
"""

import logging
import math
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from vfurniture.core.database import Database, get_db, new_id, now_utc
from vfurniture.core.errors import NotFound, ValidationError
from vfurniture.core.security import AuthenticatedUser, get_current_user
from vfurniture.models.catalog import Product
from vfurniture.products import get_product

logger = logging.getLogger("vfurniture.wishlist")

router = APIRouter(prefix="/api/wishlist", tags=["wishlist"])


class WishlistAdd(BaseModel):
    productId: Optional[str] = None


class WishlistCheck(BaseModel):
    productIds: Any = None


# ─────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────
async def find_wishlist_id(db: Database, user_id: str) -> Optional[str]:
    return await db.fetch_value("SELECT id FROM wishlists WHERE user_id = ?", (user_id,))


async def get_or_create_wishlist_id(db: Database, user_id: str) -> str:
    async with db.transaction():
        wishlist_id = await find_wishlist_id(db, user_id)
        if wishlist_id:
            return wishlist_id
        wishlist_id = new_id()
        ts = now_utc()
        await db.execute(
            "INSERT INTO wishlists (id, user_id, created_at, updated_at) VALUES (?,?,?,?)",
            (wishlist_id, user_id, ts, ts),
        )
        return wishlist_id


async def count_items(db: Database, wishlist_id: str) -> int:
    return await db.fetch_value(
        "SELECT COUNT(*) FROM wishlist_items WHERE wishlist_id = ?", (wishlist_id,), 0
    )


async def _touch(db: Database, wishlist_id: str):
    await db.execute("UPDATE wishlists SET updated_at = ? WHERE id = ?", (now_utc(), wishlist_id))


# ─────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────
@router.get("")
async def get_wishlist(
    page:    int = Query(1, ge=1),
    limit:   int = Query(12, ge=1, le=100),
    current: AuthenticatedUser = Depends(get_current_user),
    db:      Database = Depends(get_db),
):
    wishlist_id = await get_or_create_wishlist_id(db, current.user_id)

    # Entries whose product no longer exists are pruned on read
    removed = await db.execute(
        """DELETE FROM wishlist_items
           WHERE wishlist_id = ?
             AND product_id NOT IN (SELECT id FROM products)""",
        (wishlist_id,),
    )
    if removed:
        logger.info(f"Pruned {removed} stale wishlist item(s) for {current.user_id}")

    total = await count_items(db, wishlist_id)
    rows = await db.fetch_all(
        """SELECT w.product_id, w.added_at, p.*
           FROM wishlist_items w
           JOIN products p ON p.id = w.product_id
           WHERE w.wishlist_id = ?
           ORDER BY w.added_at DESC, w.rowid DESC
           LIMIT ? OFFSET ?""",
        (wishlist_id, limit, (page - 1) * limit),
    )

    items = []
    for r in rows:
        product = Product.from_row(r)
        items.append({
            "productId": r["product_id"],
            "addedAt":   r["added_at"],
            "product":   {
                **product.summary(),
                "material":   product.material,
                "dimensions": product.dimensions,
            },
        })

    pages = math.ceil(total / limit)
    return {
        "items": items,
        "pagination": {
            "currentPage": page,
            "totalPages":  pages,
            "totalItems":  total,
            "hasMore":     page < pages,
        },
    }


@router.post("")
async def add_to_wishlist(
    payload: WishlistAdd,
    current: AuthenticatedUser = Depends(get_current_user),
    db:      Database = Depends(get_db),
):
    if not payload.productId:
        raise ValidationError("Product ID is required")

    if not await get_product(db, payload.productId):
        raise NotFound("Product not found")

    wishlist_id = await get_or_create_wishlist_id(db, current.user_id)

    async with db.transaction():
        exists = await db.fetch_one(
            "SELECT 1 FROM wishlist_items WHERE wishlist_id = ? AND product_id = ?",
            (wishlist_id, payload.productId),
        )
        if exists:
            raise ValidationError("Product already in wishlist")

        await db.execute(
            "INSERT INTO wishlist_items (wishlist_id, product_id, added_at) VALUES (?,?,?)",
            (wishlist_id, payload.productId, now_utc()),
        )
        await db.execute(
            "UPDATE products SET wishlist_count = wishlist_count + 1 WHERE id = ?",
            (payload.productId,),
        )
        await _touch(db, wishlist_id)

    return {
        "success":       True,
        "message":       "Product added to wishlist successfully",
        "wishlistCount": await count_items(db, wishlist_id),
    }


@router.delete("")
async def remove_from_wishlist(
    productId: Optional[str] = None,
    clearAll:  bool = False,
    current:   AuthenticatedUser = Depends(get_current_user),
    db:        Database = Depends(get_db),
):
    if not productId and not clearAll:
        raise ValidationError("Product ID or clearAll parameter is required")

    wishlist_id = await find_wishlist_id(db, current.user_id)
    if not wishlist_id:
        raise NotFound("Wishlist not found")

    if clearAll:
        async with db.transaction():
            await db.execute(
                """UPDATE products SET wishlist_count = MAX(wishlist_count - 1, 0)
                   WHERE id IN (SELECT product_id FROM wishlist_items WHERE wishlist_id = ?)""",
                (wishlist_id,),
            )
            await db.execute("DELETE FROM wishlist_items WHERE wishlist_id = ?", (wishlist_id,))
            await _touch(db, wishlist_id)
        return {"success": True, "message": "Wishlist cleared successfully"}

    async with db.transaction():
        removed = await db.execute(
            "DELETE FROM wishlist_items WHERE wishlist_id = ? AND product_id = ?",
            (wishlist_id, productId),
        )
        if not removed:
            raise NotFound("Product not found in wishlist")

        await db.execute(
            "UPDATE products SET wishlist_count = MAX(wishlist_count - 1, 0) WHERE id = ?",
            (productId,),
        )
        await _touch(db, wishlist_id)

    return {
        "success":       True,
        "message":       "Product removed from wishlist successfully",
        "wishlistCount": await count_items(db, wishlist_id),
    }


@router.post("/check")
async def check_wishlist(
    payload: WishlistCheck,
    current: AuthenticatedUser = Depends(get_current_user),
    db:      Database = Depends(get_db),
):
    if not isinstance(payload.productIds, list):
        raise ValidationError("Product IDs array is required")

    wishlist_id = await find_wishlist_id(db, current.user_id)
    if not wishlist_id:
        return {"wishlistedProducts": []}

    rows = await db.fetch_all(
        "SELECT product_id FROM wishlist_items WHERE wishlist_id = ?", (wishlist_id,)
    )
    saved = {r["product_id"] for r in rows}

    # Request order preserved
    return {"wishlistedProducts": [
        pid for pid in payload.productIds if isinstance(pid, str) and pid in saved
    ]}
