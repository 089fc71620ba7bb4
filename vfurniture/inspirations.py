"""
VFurniture — inspirations.py
─────────────────────────────────────────────────────────────────
Room inspiration boards.

  GET /api/inspirations          → filtered, paginated list
  GET /api/inspirations/{slug}   → one board with its categories

Filters: category (id or slug), tag, keyword, search (title,
description, tags, keywords; case-insensitive substring).
─────────────────────────────────────────────────────────────────
"""

import logging
import math
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from vfurniture.core.database import Database, from_json, get_db
from vfurniture.core.errors import Internal, NotFound, ValidationError
from vfurniture.models.catalog import Inspiration

logger = logging.getLogger("vfurniture.inspirations")

router = APIRouter(prefix="/api/inspirations", tags=["inspirations"])


def paginate(page: int, limit: int, total: int) -> dict:
    pages = math.ceil(total / limit) if limit else 0
    return {
        "page":    page,
        "limit":   limit,
        "total":   total,
        "pages":   pages,
        "hasNext": page < pages,
        "hasPrev": page > 1,
    }


def like_pattern(term: str) -> str:
    escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


async def attach_categories(db: Database, items: List[Inspiration], with_image: bool = False):
    """Fill .categories on each inspiration from the join table."""
    if not items:
        return
    marks = ",".join("?" for _ in items)
    rows = await db.fetch_all(
        f"""SELECT ic.inspiration_id, c.id, c.name, c.slug, c.main_image
            FROM inspiration_categories ic
            JOIN categories c ON c.id = ic.category_id
            WHERE ic.inspiration_id IN ({marks})
            ORDER BY c.name""",
        [i.id for i in items],
    )
    by_id = {i.id: i for i in items}
    for r in rows:
        entry = {"id": r["id"], "name": r["name"], "slug": r["slug"]}
        if with_image:
            entry["mainImage"] = from_json(r["main_image"])
        by_id[r["inspiration_id"]].categories.append(entry)


@router.get("")
async def list_inspirations(
    page:     int = Query(1, ge=1),
    limit:    int = Query(12, ge=1, le=100),
    category: Optional[str] = None,
    tag:      Optional[str] = None,
    keyword:  Optional[str] = None,
    search:   Optional[str] = None,
    db:       Database = Depends(get_db),
):
    clauses, params = [], []

    if category:
        clauses.append(
            """EXISTS (SELECT 1 FROM inspiration_categories ic
                       JOIN categories c ON c.id = ic.category_id
                       WHERE ic.inspiration_id = i.id AND (c.id = ? OR c.slug = ?))"""
        )
        params += [category, category]
    if tag:
        clauses.append("EXISTS (SELECT 1 FROM json_each(i.tags) WHERE value = ?)")
        params.append(tag)
    if keyword:
        clauses.append("EXISTS (SELECT 1 FROM json_each(i.keywords) WHERE value = ?)")
        params.append(keyword)
    if search and search.strip():
        pattern = like_pattern(search.strip())
        clauses.append(
            """(lower(i.title) LIKE ? ESCAPE '\\'
                OR lower(coalesce(i.description, '')) LIKE ? ESCAPE '\\'
                OR EXISTS (SELECT 1 FROM json_each(i.tags) WHERE lower(value) LIKE ? ESCAPE '\\')
                OR EXISTS (SELECT 1 FROM json_each(i.keywords) WHERE lower(value) LIKE ? ESCAPE '\\'))"""
        )
        params += [pattern] * 4

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    try:
        total = await db.fetch_value(f"SELECT COUNT(*) FROM inspirations i {where}", params, 0)
        rows = await db.fetch_all(
            f"SELECT i.* FROM inspirations i {where} ORDER BY i.title LIMIT ? OFFSET ?",
            [*params, limit, (page - 1) * limit],
        )
        items = [Inspiration.from_row(r) for r in rows]
        await attach_categories(db, items)
    except Exception as e:
        logger.error(f"Inspiration list failed: {e}", exc_info=True)
        raise Internal("Failed to fetch inspirations")

    return {
        "inspirations": [i.to_dict() for i in items],
        "pagination":   paginate(page, limit, total),
    }


@router.get("/{slug}")
async def get_inspiration(slug: str, db: Database = Depends(get_db)):
    slug = slug.strip()
    if not slug:
        raise ValidationError("Slug is required")

    row = await db.fetch_one("SELECT * FROM inspirations WHERE slug = ?", (slug,))
    if not row:
        raise NotFound("Inspiration not found")

    inspiration = Inspiration.from_row(row)
    await attach_categories(db, [inspiration], with_image=True)
    return inspiration.to_dict()
