"""
VFurniture — checkout.py
─────────────────────────────────────────────────────────────────
Checkout sessions: a snapshot of selected cart lines with optional
per-item insurance, alive for one hour.

  POST   /api/checkout                → new session from the cart
  GET    /api/checkout?sessionId=…    → session + computed totals
  PUT    /api/checkout                → set address / payment method
  DELETE /api/checkout?sessionId=…    → drop one (or all) sessions

Totals:
  itemTotal   = finalPrice × quantity
  insurance   = round(itemTotal × 2%)         per insured line
  shipping    = 0 if subtotal ≥ 10000 else 40
  tax         = round(subtotal × 18%)
  totalAmount = subtotal + shipping + tax + insurance
─────────────────────────────────────────────────────────────────
"""

import logging
import math
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from vfurniture.cart import find_cart
from vfurniture.core.config import Config
from vfurniture.core.database import Database, get_db, now_utc, parse_ts
from vfurniture.core.errors import NotFound, ValidationError
from vfurniture.core.security import AuthenticatedUser, get_config, get_current_user
from vfurniture.models.catalog import Product
from vfurniture.models.shop import PaymentMethod

logger = logging.getLogger("vfurniture.checkout")

router = APIRouter(prefix="/api/checkout", tags=["checkout"])


class CheckoutCreate(BaseModel):
    selectedItems:    Any = None
    insuranceEnabled: Any = None


class CheckoutUpdate(BaseModel):
    sessionId:             Optional[str] = None
    selectedAddressId:     Optional[str] = None
    selectedPaymentMethod: Optional[str] = None


def round_half_up(value: float) -> float:
    return math.floor(value + 0.5)


def compute_totals(lines: List[dict], config: Config) -> dict:
    """lines: [{itemTotal, insuranceCost, quantity}, …]"""
    subtotal  = sum(l["itemTotal"] for l in lines)
    insurance = sum(l["insuranceCost"] for l in lines)
    shipping  = 0 if subtotal >= config.FREE_SHIPPING_THRESHOLD else config.SHIPPING_FEE
    tax       = round_half_up(subtotal * config.TAX_RATE)
    return {
        "subtotal":         subtotal,
        "insuranceCost":    insurance,
        "shippingCost":     shipping,
        "tax":              tax,
        "totalAmount":      subtotal + shipping + tax + insurance,
        "selectedQuantity": sum(l["quantity"] for l in lines),
    }


async def purge_expired(db: Database, user_id: str) -> int:
    rows = await db.fetch_all(
        "SELECT session_id, expires_at FROM checkout_sessions WHERE user_id = ?", (user_id,)
    )
    now = datetime.now(timezone.utc)
    expired = [r["session_id"] for r in rows if parse_ts(r["expires_at"]) <= now]
    if expired:
        await db.executemany(
            "DELETE FROM checkout_sessions WHERE session_id = ?", [(s,) for s in expired]
        )
        logger.info(f"Purged {len(expired)} expired checkout session(s) for {user_id}")
    return len(expired)


# ─────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────
@router.post("")
async def create_checkout(
    payload: CheckoutCreate,
    current: AuthenticatedUser = Depends(get_current_user),
    db:      Database = Depends(get_db),
    config:  Config = Depends(get_config),
):
    selected = payload.selectedItems
    if not isinstance(selected, list) or not selected:
        raise ValidationError("Selected items are required")
    insured = payload.insuranceEnabled if isinstance(payload.insuranceEnabled, list) else []

    cart = await find_cart(db, current.user_id)
    rows = []
    if cart:
        rows = await db.fetch_all(
            """SELECT ci.product_id, ci.quantity FROM cart_items ci
               JOIN products p ON p.id = ci.product_id
               WHERE ci.cart_id = ?""",
            (cart["id"],),
        )
    if not rows:
        raise ValidationError("Cart is empty")

    in_cart = {r["product_id"]: r["quantity"] for r in rows}
    chosen = []
    for pid in selected:
        if isinstance(pid, str) and pid in in_cart and pid not in chosen:
            chosen.append(pid)
    if not chosen:
        raise ValidationError("No valid items selected")

    session_id = secrets.token_urlsafe(12)      # 16 chars
    ts         = now_utc()
    expires    = (datetime.now(timezone.utc) + timedelta(minutes=config.CHECKOUT_TTL_MINUTES)).isoformat()

    # One live session per user
    async with db.transaction():
        await db.execute("DELETE FROM checkout_sessions WHERE user_id = ?", (current.user_id,))
        await db.execute(
            """INSERT INTO checkout_sessions (session_id, user_id, expires_at, created_at, updated_at)
               VALUES (?,?,?,?,?)""",
            (session_id, current.user_id, expires, ts, ts),
        )
        await db.executemany(
            """INSERT INTO checkout_items (session_id, product_id, quantity, has_insurance, position)
               VALUES (?,?,?,?,?)""",
            [
                (session_id, pid, in_cart[pid], int(pid in insured), pos)
                for pos, pid in enumerate(chosen)
            ],
        )

    logger.info(f"Checkout session {session_id} for {current.user_id}: {len(chosen)} item(s)")
    return {
        "success":   True,
        "sessionId": session_id,
        "message":   "Checkout session created successfully",
    }


@router.get("")
async def get_checkout(
    sessionId: Optional[str] = None,
    current:   AuthenticatedUser = Depends(get_current_user),
    db:        Database = Depends(get_db),
    config:    Config = Depends(get_config),
):
    await purge_expired(db, current.user_id)

    if sessionId:
        session = await db.fetch_one(
            "SELECT * FROM checkout_sessions WHERE session_id = ? AND user_id = ?",
            (sessionId, current.user_id),
        )
    else:
        session = await db.fetch_one(
            """SELECT * FROM checkout_sessions WHERE user_id = ?
               ORDER BY created_at DESC LIMIT 1""",
            (current.user_id,),
        )
    if not session:
        raise NotFound("No active checkout session found")

    rows = await db.fetch_all(
        """SELECT ci.product_id, ci.quantity, ci.has_insurance, p.*
           FROM checkout_items ci
           LEFT JOIN products p ON p.id = ci.product_id
           WHERE ci.session_id = ?
           ORDER BY ci.position""",
        (session["session_id"],),
    )

    lines, dropped = [], []
    for r in rows:
        if r["id"] is None:
            dropped.append(r["product_id"])
            continue
        product = Product.from_row(r)
        if not product.is_in_stock:
            dropped.append(product.id)
            continue

        quantity   = r["quantity"]
        item_total = product.final_price * quantity
        insurance  = round_half_up(item_total * config.INSURANCE_RATE) if r["has_insurance"] else 0
        lines.append({
            "productId":     product.id,
            "quantity":      quantity,
            "hasInsurance":  bool(r["has_insurance"]),
            "itemTotal":     item_total,
            "insuranceCost": insurance,
            "product":       product.summary(),
        })

    if not lines:
        await db.execute("DELETE FROM checkout_sessions WHERE session_id = ?", (session["session_id"],))
        raise ValidationError("All items in checkout are no longer available")

    if dropped:
        marks = ",".join("?" for _ in dropped)
        await db.execute(
            f"DELETE FROM checkout_items WHERE session_id = ? AND product_id IN ({marks})",
            (session["session_id"], *dropped),
        )
        logger.info(f"Dropped {len(dropped)} unavailable item(s) from {session['session_id']}")

    return {
        "success": True,
        "checkout": {
            "sessionId":             session["session_id"],
            "items":                 lines,
            "selectedItems":         [l["productId"] for l in lines],
            "insuranceEnabled":      [l["productId"] for l in lines if l["hasInsurance"]],
            "selectedAddressId":     session["selected_address_id"],
            "selectedPaymentMethod": session["selected_payment_method"],
            "totals":                compute_totals(lines, config),
            "expiresAt":             session["expires_at"],
            "createdAt":             session["created_at"],
        },
    }


@router.put("")
async def update_checkout(
    payload: CheckoutUpdate,
    current: AuthenticatedUser = Depends(get_current_user),
    db:      Database = Depends(get_db),
):
    if not payload.sessionId:
        raise ValidationError("Session ID is required")

    updates = {}
    if payload.selectedAddressId:
        updates["selected_address_id"] = payload.selectedAddressId
    if payload.selectedPaymentMethod:
        try:
            updates["selected_payment_method"] = PaymentMethod(payload.selectedPaymentMethod).value
        except ValueError:
            allowed = ", ".join(m.value for m in PaymentMethod)
            raise ValidationError(f"Payment method must be one of: {allowed}")

    session = await db.fetch_one(
        "SELECT session_id FROM checkout_sessions WHERE session_id = ? AND user_id = ?",
        (payload.sessionId, current.user_id),
    )
    if not session:
        raise NotFound("Checkout session not found")

    if updates:
        cols = ", ".join(f"{k} = ?" for k in updates)
        await db.execute(
            f"UPDATE checkout_sessions SET {cols}, updated_at = ? WHERE session_id = ?",
            (*updates.values(), now_utc(), payload.sessionId),
        )

    return {"success": True, "message": "Checkout session updated successfully"}


@router.delete("")
async def clear_checkout(
    sessionId: Optional[str] = None,
    current:   AuthenticatedUser = Depends(get_current_user),
    db:        Database = Depends(get_db),
):
    if sessionId:
        await db.execute(
            "DELETE FROM checkout_sessions WHERE session_id = ? AND user_id = ?",
            (sessionId, current.user_id),
        )
    else:
        await db.execute("DELETE FROM checkout_sessions WHERE user_id = ?", (current.user_id,))

    return {"success": True, "message": "Checkout session cleared successfully"}
