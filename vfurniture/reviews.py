"""
VFurniture — reviews.py
─────────────────────────────────────────────────────────────────
Product reviews, helpful/unhelpful votes, abuse reports.

  GET    /api/reviews?productId=…   → approved reviews + statistics
  POST   /api/reviews               → create (one per user per product)
  POST   /api/reviews/vote          → toggle / switch a vote
  POST   /api/reviews/report        → report someone else's review
  DELETE /api/reviews/{reviewId}    → author removes own review

Reviews go live as "approved". Five reports push a review back to
"pending", which hides it from listings until moderated.
─────────────────────────────────────────────────────────────────
"""

import logging
import math
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from vfurniture.core.database import Database, get_db, new_id, now_utc, to_json
from vfurniture.core.errors import Forbidden, NotFound, ValidationError
from vfurniture.core.security import AuthenticatedUser, get_current_user, get_optional_user
from vfurniture.models.shop import REPORT_THRESHOLD, Review, ReviewStatus, VoteType
from vfurniture.products import get_product

logger = logging.getLogger("vfurniture.reviews")

router = APIRouter(prefix="/api/reviews", tags=["reviews"])

MIN_COMMENT_LEN = 10

SORTS = {
    "newest":  "r.created_at DESC",
    "oldest":  "r.created_at ASC",
    "highest": "r.rating DESC, r.created_at DESC",
    "lowest":  "r.rating ASC, r.created_at DESC",
    "helpful": "r.helpful_votes DESC, r.created_at DESC",
}


class ReviewCreate(BaseModel):
    productId: Optional[str] = None
    rating:    Any = None
    title:     Optional[str] = None
    comment:   Optional[str] = None
    images:    Optional[List[dict]] = None


class VoteRequest(BaseModel):
    reviewId: Optional[str] = None
    action:   Optional[str] = None


class ReportRequest(BaseModel):
    reviewId: Optional[str] = None


# ─────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────
def parse_rating(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


async def get_review(db: Database, review_id: str) -> Optional[Review]:
    row = await db.fetch_one("SELECT * FROM reviews WHERE id = ?", (review_id,))
    return Review.from_row(row) if row else None


async def review_stats(db: Database, product_id: str) -> dict:
    """Aggregate over approved reviews only."""
    rows = await db.fetch_all(
        """SELECT rating, COUNT(*) AS n, SUM(is_verified_purchase) AS verified
           FROM reviews WHERE product_id = ? AND status = ?
           GROUP BY rating""",
        (product_id, ReviewStatus.APPROVED.value),
    )
    breakdown = {str(star): 0 for star in range(5, 0, -1)}
    total = verified = weighted = 0
    for r in rows:
        breakdown[str(r["rating"])] = r["n"]
        total    += r["n"]
        verified += r["verified"] or 0
        weighted += r["rating"] * r["n"]

    return {
        "totalReviews":       total,
        "averageRating":      round(weighted / total, 1) if total else 0,
        "breakdown":          breakdown,
        "verifiedCount":      verified,
        "verifiedPercentage": round(verified * 100 / total, 1) if total else 0,
    }


async def refresh_product_rating(db: Database, product_id: str):
    stats = await review_stats(db, product_id)
    await db.execute(
        "UPDATE products SET ratings = ?, review_count = ?, updated_at = ? WHERE id = ?",
        (stats["averageRating"], stats["totalReviews"], now_utc(), product_id),
    )


# ─────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────
@router.get("")
async def list_reviews(
    productId: Optional[str] = None,
    page:      int = Query(1, ge=1),
    limit:     int = Query(10, ge=1, le=50),
    sortBy:    str = "newest",
    rating:    Optional[str] = None,
    current:   Optional[AuthenticatedUser] = Depends(get_optional_user),
    db:        Database = Depends(get_db),
):
    if not productId:
        raise ValidationError("Product ID is required")

    clauses = ["r.product_id = ?", "r.status = ?"]
    params: list = [productId, ReviewStatus.APPROVED.value]

    star = parse_rating(rating) if rating and rating != "all" else None
    if star is not None and 1 <= star <= 5:
        clauses.append("r.rating = ?")
        params.append(star)

    where = " AND ".join(clauses)
    total = await db.fetch_value(f"SELECT COUNT(*) FROM reviews r WHERE {where}", params, 0)
    rows = await db.fetch_all(
        f"""SELECT r.*, u.name AS author_name, u.photo_url AS author_photo
            FROM reviews r
            LEFT JOIN users u ON u.id = r.user_id
            WHERE {where}
            ORDER BY {SORTS.get(sortBy, SORTS['newest'])}
            LIMIT ? OFFSET ?""",
        [*params, limit, (page - 1) * limit],
    )

    user_votes, has_reviewed = {}, False
    if current:
        has_reviewed = bool(await db.fetch_one(
            "SELECT 1 FROM reviews WHERE user_id = ? AND product_id = ?",
            (current.user_id, productId),
        ))
        if rows:
            marks = ",".join("?" for _ in rows)
            votes = await db.fetch_all(
                f"SELECT review_id, vote_type FROM review_votes WHERE user_id = ? AND review_id IN ({marks})",
                [current.user_id, *(r["id"] for r in rows)],
            )
            user_votes = {v["review_id"]: v["vote_type"] for v in votes}

    reviews = []
    for r in rows:
        author = {
            "id":       r["user_id"],
            "name":     r["author_name"] or "Anonymous",
            "photoURL": r["author_photo"] or None,
        }
        reviews.append(Review.from_row(r).to_dict(author=author, user_vote=user_votes.get(r["id"])))

    pages = math.ceil(total / limit)
    return {
        "reviews":         reviews,
        "statistics":      await review_stats(db, productId),
        "userHasReviewed": has_reviewed,
        "pagination": {
            "currentPage":  page,
            "totalPages":   pages,
            "totalReviews": total,
            "hasMore":      page < pages,
        },
    }


@router.post("")
async def create_review(
    payload: ReviewCreate,
    current: AuthenticatedUser = Depends(get_current_user),
    db:      Database = Depends(get_db),
):
    if not payload.productId or payload.rating in (None, "") or not payload.comment:
        raise ValidationError("Product ID, rating, and comment are required")

    rating = parse_rating(payload.rating)
    if rating is None or not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")

    comment = payload.comment.strip()
    if len(comment) < MIN_COMMENT_LEN:
        raise ValidationError(f"Comment must be at least {MIN_COMMENT_LEN} characters long")

    if not await get_product(db, payload.productId):
        raise NotFound("Product not found")

    review_id = new_id()
    ts        = now_utc()
    async with db.transaction():
        existing = await db.fetch_one(
            "SELECT id FROM reviews WHERE user_id = ? AND product_id = ?",
            (current.user_id, payload.productId),
        )
        if existing:
            raise ValidationError("You have already reviewed this product")

        await db.execute(
            """INSERT INTO reviews
               (id, user_id, product_id, rating, title, comment, images, status, created_at, updated_at)
               VALUES (?,?,?,?,?,?,?,?,?,?)""",
            (review_id, current.user_id, payload.productId, rating,
             (payload.title or "").strip() or None, comment, to_json(payload.images or []),
             ReviewStatus.APPROVED.value, ts, ts),
        )
        await refresh_product_rating(db, payload.productId)
    logger.info(f"Review {review_id} on {payload.productId} by {current.user_id} ({rating}★)")

    author = await db.fetch_one("SELECT name, photo_url FROM users WHERE id = ?", (current.user_id,))
    review = await get_review(db, review_id)
    return {
        "message": "Review added successfully",
        "review":  review.to_dict(author={
            "id":       current.user_id,
            "name":     author["name"] if author else "User",
            "photoURL": (author["photo_url"] or None) if author else None,
        }),
    }


@router.post("/vote")
async def vote_review(
    payload: VoteRequest,
    current: AuthenticatedUser = Depends(get_current_user),
    db:      Database = Depends(get_db),
):
    if not payload.reviewId or not payload.action:
        raise ValidationError("Review ID and action are required")
    try:
        action = VoteType(payload.action)
    except ValueError:
        raise ValidationError('Invalid action. Must be "helpful" or "unhelpful"')

    review = await get_review(db, payload.reviewId)
    if not review:
        raise NotFound("Review not found")
    if review.user_id == current.user_id:
        raise ValidationError("You cannot vote on your own review")

    async with db.transaction():
        existing = await db.fetch_one(
            "SELECT vote_type FROM review_votes WHERE user_id = ? AND review_id = ?",
            (current.user_id, review.id),
        )
        column = {VoteType.HELPFUL: "helpful_votes", VoteType.UNHELPFUL: "unhelpful_votes"}

        if existing and existing["vote_type"] == action.value:
            await db.execute(
                "DELETE FROM review_votes WHERE user_id = ? AND review_id = ?",
                (current.user_id, review.id),
            )
            await db.execute(
                f"UPDATE reviews SET {column[action]} = MAX({column[action]} - 1, 0) WHERE id = ?",
                (review.id,),
            )
            user_vote, message = None, f"{action.value} vote removed"

        elif existing:
            old = VoteType(existing["vote_type"])
            await db.execute(
                "UPDATE review_votes SET vote_type = ?, created_at = ? WHERE user_id = ? AND review_id = ?",
                (action.value, now_utc(), current.user_id, review.id),
            )
            await db.execute(
                f"""UPDATE reviews
                    SET {column[old]} = MAX({column[old]} - 1, 0), {column[action]} = {column[action]} + 1
                    WHERE id = ?""",
                (review.id,),
            )
            user_vote, message = action.value, f"Vote changed to {action.value}"

        else:
            await db.execute(
                "INSERT INTO review_votes (user_id, review_id, vote_type, created_at) VALUES (?,?,?,?)",
                (current.user_id, review.id, action.value, now_utc()),
            )
            await db.execute(
                f"UPDATE reviews SET {column[action]} = {column[action]} + 1 WHERE id = ?",
                (review.id,),
            )
            user_vote, message = action.value, f"Marked as {action.value}"

        review = await get_review(db, review.id)

    return {
        "message":        message,
        "helpfulVotes":   review.helpful_votes,
        "unhelpfulVotes": review.unhelpful_votes,
        "userVote":       user_vote,
    }


@router.post("/report")
async def report_review(
    payload: ReportRequest,
    current: AuthenticatedUser = Depends(get_current_user),
    db:      Database = Depends(get_db),
):
    if not payload.reviewId:
        raise ValidationError("Review ID is required")

    review = await get_review(db, payload.reviewId)
    if not review:
        raise NotFound("Review not found")
    if review.user_id == current.user_id:
        raise ValidationError("You cannot report your own review")

    # Incremented in SQL; the loaded review may already be stale
    async with db.transaction():
        await db.execute(
            """UPDATE reviews
               SET reported_count = reported_count + 1,
                   status = CASE WHEN reported_count + 1 >= ? THEN ? ELSE status END,
                   updated_at = ?
               WHERE id = ?""",
            (REPORT_THRESHOLD, ReviewStatus.PENDING.value, now_utc(), review.id),
        )
        row = await db.fetch_one("SELECT reported_count, status FROM reviews WHERE id = ?", (review.id,))
        count, status = row["reported_count"], ReviewStatus(row["status"])

        if status is not review.status:
            logger.warning(f"Review {review.id} moved to {status.value} after {count} reports")
            await refresh_product_rating(db, review.product_id)

    return {
        "message":       "Review reported successfully",
        "reportedCount": count,
        "status":        status.value,
    }


@router.delete("/{review_id}")
async def delete_review(
    review_id: str,
    current:   AuthenticatedUser = Depends(get_current_user),
    db:        Database = Depends(get_db),
):
    review = await get_review(db, review_id)
    if not review:
        raise NotFound("Review not found")
    if review.user_id != current.user_id:
        raise Forbidden("You can only delete your own reviews")

    async with db.transaction():
        await db.execute("DELETE FROM review_votes WHERE review_id = ?", (review.id,))
        await db.execute("DELETE FROM reviews WHERE id = ?", (review.id,))
        await refresh_product_rating(db, review.product_id)

    logger.info(f"Review {review.id} deleted by author")
    return {"message": "Review deleted successfully"}
