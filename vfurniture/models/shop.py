"""
VFurniture — models/shop.py
─────────────────────────────────────────────────────────────────
Wishlist / Cart / Checkout / Review tables + dataclasses.

Wishlist and cart are one-per-user (UNIQUE user_id) with child item
tables. Product references are plain ids; items whose product
disappeared are filtered out by the readers, not by FKs.
─────────────────────────────────────────────────────────────────
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from vfurniture.core.database import from_json


# ─────────────────────────────────────────────
# SQL
# ─────────────────────────────────────────────
SHOP_SQL = """
    CREATE TABLE IF NOT EXISTS wishlists (
        id          TEXT PRIMARY KEY,
        user_id     TEXT NOT NULL UNIQUE REFERENCES users(id),
        created_at  TEXT NOT NULL,
        updated_at  TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS wishlist_items (
        wishlist_id TEXT NOT NULL REFERENCES wishlists(id) ON DELETE CASCADE,
        product_id  TEXT NOT NULL,
        added_at    TEXT NOT NULL,
        PRIMARY KEY (wishlist_id, product_id)
    );

    CREATE INDEX IF NOT EXISTS idx_wishlist_items_product
        ON wishlist_items(product_id);

    CREATE TABLE IF NOT EXISTS carts (
        id          TEXT PRIMARY KEY,
        user_id     TEXT NOT NULL UNIQUE REFERENCES users(id),
        created_at  TEXT NOT NULL,
        updated_at  TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS cart_items (
        cart_id     TEXT NOT NULL REFERENCES carts(id) ON DELETE CASCADE,
        product_id  TEXT NOT NULL,
        quantity    INTEGER NOT NULL CHECK (quantity >= 1),
        variant     TEXT,                 -- JSON {color, size, sku}
        added_at    TEXT NOT NULL,
        PRIMARY KEY (cart_id, product_id)
    );

    CREATE TABLE IF NOT EXISTS checkout_sessions (
        session_id              TEXT PRIMARY KEY,
        user_id                 TEXT NOT NULL REFERENCES users(id),
        selected_address_id     TEXT,
        selected_payment_method TEXT,
        expires_at              TEXT NOT NULL,
        created_at              TEXT NOT NULL,
        updated_at              TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_checkout_user
        ON checkout_sessions(user_id, created_at DESC);

    CREATE TABLE IF NOT EXISTS checkout_items (
        session_id    TEXT NOT NULL REFERENCES checkout_sessions(session_id) ON DELETE CASCADE,
        product_id    TEXT NOT NULL,
        quantity      INTEGER NOT NULL CHECK (quantity >= 1),
        has_insurance INTEGER NOT NULL DEFAULT 0,
        position      INTEGER NOT NULL,
        PRIMARY KEY (session_id, product_id)
    );

    CREATE TABLE IF NOT EXISTS reviews (
        id                   TEXT PRIMARY KEY,
        user_id              TEXT NOT NULL REFERENCES users(id),
        product_id           TEXT NOT NULL,
        rating               INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
        title                TEXT,
        comment              TEXT NOT NULL,
        images               TEXT,        -- JSON list of {url, publicId, alt}
        is_verified_purchase INTEGER NOT NULL DEFAULT 0,
        helpful_votes        INTEGER NOT NULL DEFAULT 0,
        unhelpful_votes      INTEGER NOT NULL DEFAULT 0,
        reported_count       INTEGER NOT NULL DEFAULT 0,
        status               TEXT NOT NULL DEFAULT 'pending',
        moderator_note       TEXT,
        created_at           TEXT NOT NULL,
        updated_at           TEXT NOT NULL,
        UNIQUE (user_id, product_id)
    );

    CREATE INDEX IF NOT EXISTS idx_reviews_product
        ON reviews(product_id, status);

    CREATE TABLE IF NOT EXISTS review_votes (
        user_id     TEXT NOT NULL REFERENCES users(id),
        review_id   TEXT NOT NULL REFERENCES reviews(id) ON DELETE CASCADE,
        vote_type   TEXT NOT NULL,        -- helpful | unhelpful
        created_at  TEXT NOT NULL,
        PRIMARY KEY (user_id, review_id)
    );
"""


# ─────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────
class ReviewStatus(str, Enum):
    PENDING  = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class VoteType(str, Enum):
    HELPFUL   = "helpful"
    UNHELPFUL = "unhelpful"


class PaymentMethod(str, Enum):
    COD        = "cod"
    CARD       = "card"
    UPI        = "upi"
    NETBANKING = "netbanking"
    WALLET     = "wallet"


# Reports at which a review drops back into moderation
REPORT_THRESHOLD = 5


# ─────────────────────────────────────────────
# Dataclasses
# ─────────────────────────────────────────────
@dataclass
class Review:
    id:                   str
    user_id:              str
    product_id:           str
    rating:               int
    title:                Optional[str]
    comment:              str
    images:               List[dict]
    is_verified_purchase: bool
    helpful_votes:        int
    unhelpful_votes:      int
    reported_count:       int
    status:               ReviewStatus
    created_at:           str
    updated_at:           str

    @classmethod
    def from_row(cls, row: dict) -> "Review":
        return cls(
            id                   = row["id"],
            user_id              = row["user_id"],
            product_id           = row["product_id"],
            rating               = int(row["rating"]),
            title                = row.get("title"),
            comment              = row["comment"],
            images               = from_json(row.get("images"), []),
            is_verified_purchase = bool(row.get("is_verified_purchase")),
            helpful_votes        = int(row.get("helpful_votes") or 0),
            unhelpful_votes      = int(row.get("unhelpful_votes") or 0),
            reported_count       = int(row.get("reported_count") or 0),
            status               = ReviewStatus(row["status"]),
            created_at           = row["created_at"],
            updated_at           = row["updated_at"],
        )

    def to_dict(self, author: Optional[dict] = None, user_vote: Optional[str] = None) -> dict:
        return {
            "id":                 self.id,
            "productId":          self.product_id,
            "rating":             self.rating,
            "title":              self.title,
            "comment":            self.comment,
            "images":             self.images,
            "isVerifiedPurchase": self.is_verified_purchase,
            "helpfulVotes":       self.helpful_votes,
            "unhelpfulVotes":     self.unhelpful_votes,
            "status":             self.status.value,
            "createdAt":          self.created_at,
            "userVote":           user_vote,
            "user":               author or {"id": self.user_id, "name": "Anonymous", "photoURL": None},
        }
