"""
VFurniture — core/slugs.py
URL-safe slugs, collision-resolved with -2, -3, … suffixes.
"""

import re
import unicodedata
from typing import Optional

from vfurniture.core.database import Database

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

# Tables that carry a UNIQUE slug column
_SLUG_TABLES = {"users", "categories", "inspirations"}


def slugify(value: str, fallback: str = "item") -> str:
    """'Living Room  Sofas!' → 'living-room-sofas'"""
    ascii_value = (
        unicodedata.normalize("NFKD", value or "")
        .encode("ascii", "ignore")
        .decode("ascii")
    )
    slug = _NON_ALNUM.sub("-", ascii_value.lower()).strip("-")
    return slug or fallback


async def unique_slug(db: Database, table: str, base: str, exclude_id: Optional[str] = None) -> str:
    """First free slug among base, base-2, base-3, …"""
    if table not in _SLUG_TABLES:
        raise ValueError(f"No unique slug column on {table}")

    candidate = base
    counter = 1
    while True:
        row = await db.fetch_one(
            f"SELECT id FROM {table} WHERE slug = ? AND id != ?",
            (candidate, exclude_id or ""),
        )
        if not row:
            return candidate
        counter += 1
        candidate = f"{base}-{counter}"
