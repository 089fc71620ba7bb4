"""
VFurniture — cart.py
─────────────────────────────────────────────────────────────────
One cart per user. One line per product; adding an existing
product merges quantities (stock re-checked on the merged total).

  GET    /api/cart                   → lines + totals
  POST   /api/cart                   → add {productId, quantity, selectedVariant}
  PATCH  /api/cart                   → set {productId, quantity}; ≤ 0 removes
  DELETE /api/cart?productId=…       → remove a line (no productId → clear)
  POST   /api/cart/check             → which of {productIds} are in the cart
─────────────────────────────────────────────────────────────────
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from vfurniture.core.database import Database, from_json, get_db, new_id, now_utc, to_json
from vfurniture.core.errors import NotFound, ValidationError
from vfurniture.core.security import AuthenticatedUser, get_current_user
from vfurniture.models.catalog import Product
from vfurniture.products import get_product

logger = logging.getLogger("vfurniture.cart")

router = APIRouter(prefix="/api/cart", tags=["cart"])


class CartAdd(BaseModel):
    productId:       Optional[str] = None
    quantity:        int = 1
    selectedVariant: Optional[dict] = None


class CartUpdate(BaseModel):
    productId: Optional[str] = None
    quantity:  Optional[int] = None


class CartCheck(BaseModel):
    productIds: Any = None


# ─────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────
async def find_cart(db: Database, user_id: str) -> Optional[dict]:
    return await db.fetch_one("SELECT * FROM carts WHERE user_id = ?", (user_id,))


async def get_or_create_cart(db: Database, user_id: str) -> dict:
    async with db.transaction():
        cart = await find_cart(db, user_id)
        if cart:
            return cart
        ts = now_utc()
        await db.execute(
            "INSERT INTO carts (id, user_id, created_at, updated_at) VALUES (?,?,?,?)",
            (new_id(), user_id, ts, ts),
        )
        return await find_cart(db, user_id)


async def get_cart_lines(db: Database, cart_id: str) -> list:
    """(quantity, product, row) for every line whose product still exists."""
    rows = await db.fetch_all(
        """SELECT ci.product_id, ci.quantity, ci.variant, ci.added_at, p.*
           FROM cart_items ci
           JOIN products p ON p.id = ci.product_id
           WHERE ci.cart_id = ?
           ORDER BY ci.added_at, ci.rowid""",
        (cart_id,),
    )
    return [(r["quantity"], Product.from_row(r), r) for r in rows]


async def _touch(db: Database, cart_id: str):
    await db.execute("UPDATE carts SET updated_at = ? WHERE id = ?", (now_utc(), cart_id))


# ─────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────
@router.get("")
async def get_cart(
    current: AuthenticatedUser = Depends(get_current_user),
    db:      Database = Depends(get_db),
):
    cart = await get_or_create_cart(db, current.user_id)

    removed = await db.execute(
        "DELETE FROM cart_items WHERE cart_id = ? AND product_id NOT IN (SELECT id FROM products)",
        (cart["id"],),
    )
    if removed:
        logger.info(f"Pruned {removed} stale cart line(s) for {current.user_id}")

    items, subtotal = [], 0
    for quantity, product, row in await get_cart_lines(db, cart["id"]):
        item_total = product.final_price * quantity
        subtotal += item_total
        items.append({
            "productId":       product.id,
            "quantity":        quantity,
            "selectedVariant": from_json(row["variant"]),
            "addedAt":         row["added_at"],
            "itemTotal":       item_total,
            "product":         product.summary(),
        })

    return {
        "id":             cart["id"],
        "items":          items,
        "itemCount":      len(items),
        "totalQuantity":  sum(i["quantity"] for i in items),
        "subtotal":       subtotal,
        "estimatedTotal": subtotal,
        "updatedAt":      cart["updated_at"],
    }


@router.post("")
async def add_to_cart(
    payload: CartAdd,
    current: AuthenticatedUser = Depends(get_current_user),
    db:      Database = Depends(get_db),
):
    if not payload.productId:
        raise ValidationError("Product ID is required")
    if payload.quantity <= 0:
        raise ValidationError("Quantity must be greater than 0")

    product = await get_product(db, payload.productId)
    if not product:
        raise NotFound("Product not found")
    if not product.has_stock_for(payload.quantity):
        raise ValidationError("Insufficient stock")

    cart = await get_or_create_cart(db, current.user_id)

    async with db.transaction():
        existing = await db.fetch_one(
            "SELECT quantity FROM cart_items WHERE cart_id = ? AND product_id = ?",
            (cart["id"], product.id),
        )

        if existing:
            merged = existing["quantity"] + payload.quantity
            if not product.has_stock_for(merged):
                raise ValidationError("Cannot add more items. Insufficient stock")
            await db.execute(
                "UPDATE cart_items SET quantity = ? WHERE cart_id = ? AND product_id = ?",
                (merged, cart["id"], product.id),
            )
        else:
            await db.execute(
                """INSERT INTO cart_items (cart_id, product_id, quantity, variant, added_at)
                   VALUES (?,?,?,?,?)""",
                (cart["id"], product.id, payload.quantity, to_json(payload.selectedVariant), now_utc()),
            )
        await _touch(db, cart["id"])

    return {"success": True, "message": "Item added to cart successfully"}


@router.patch("")
async def update_cart(
    payload: CartUpdate,
    current: AuthenticatedUser = Depends(get_current_user),
    db:      Database = Depends(get_db),
):
    if not payload.productId or payload.quantity is None:
        raise ValidationError("Product ID and quantity are required")

    cart = await find_cart(db, current.user_id)
    if not cart:
        raise NotFound("Cart not found")

    async with db.transaction():
        line = await db.fetch_one(
            "SELECT quantity FROM cart_items WHERE cart_id = ? AND product_id = ?",
            (cart["id"], payload.productId),
        )
        if not line:
            raise NotFound("Item not found in cart")

        if payload.quantity <= 0:
            await db.execute(
                "DELETE FROM cart_items WHERE cart_id = ? AND product_id = ?",
                (cart["id"], payload.productId),
            )
            await _touch(db, cart["id"])
            return {"success": True, "message": "Item removed from cart"}

        product = await get_product(db, payload.productId)
        if not product:
            raise NotFound("Product not found")
        if not product.has_stock_for(payload.quantity):
            raise ValidationError("Insufficient stock")

        await db.execute(
            "UPDATE cart_items SET quantity = ? WHERE cart_id = ? AND product_id = ?",
            (payload.quantity, cart["id"], payload.productId),
        )
        await _touch(db, cart["id"])

    return {"success": True, "message": "Cart updated successfully"}


@router.delete("")
async def delete_from_cart(
    productId: Optional[str] = None,
    current:   AuthenticatedUser = Depends(get_current_user),
    db:        Database = Depends(get_db),
):
    cart = await find_cart(db, current.user_id)
    if not cart:
        raise NotFound("Cart not found")

    async with db.transaction():
        if productId:
            removed = await db.execute(
                "DELETE FROM cart_items WHERE cart_id = ? AND product_id = ?",
                (cart["id"], productId),
            )
            if not removed:
                raise NotFound("Item not found in cart")
            message = "Item removed successfully"
        else:
            await db.execute("DELETE FROM cart_items WHERE cart_id = ?", (cart["id"],))
            message = "Cart cleared successfully"

        await _touch(db, cart["id"])
    return {"success": True, "message": message}


@router.post("/check")
async def check_cart(
    payload: CartCheck,
    current: AuthenticatedUser = Depends(get_current_user),
    db:      Database = Depends(get_db),
):
    if not isinstance(payload.productIds, list):
        raise ValidationError("Product IDs array is required")

    cart = await find_cart(db, current.user_id)
    if not cart:
        return {"cartProducts": []}

    rows = await db.fetch_all("SELECT product_id FROM cart_items WHERE cart_id = ?", (cart["id"],))
    in_cart = {r["product_id"] for r in rows}
    return {"cartProducts": [
        pid for pid in payload.productIds if isinstance(pid, str) and pid in in_cart
    ]}
