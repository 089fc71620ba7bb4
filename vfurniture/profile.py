"""
VFurniture — profile.py
─────────────────────────────────────────────────────────────────
Signed-in user's own profile.

  GET   /api/user/profile   → full profile (slug, phone, hasOAuth…)
  PATCH /api/user/profile   → name (re-slugs), phone, photoURL
─────────────────────────────────────────────────────────────────
"""

import logging
import re
import sqlite3
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from vfurniture.auth import format_name, format_phone, get_user_by_id
from vfurniture.core.database import Database, get_db, now_utc
from vfurniture.core.errors import Conflict, Unauthorized, ValidationError
from vfurniture.core.security import AuthenticatedUser, get_current_user
from vfurniture.core.slugs import slugify, unique_slug

logger = logging.getLogger("vfurniture.profile")

router = APIRouter(prefix="/api/user", tags=["profile"])

PHONE_RE = re.compile(r"^\d{10,15}$")


class ProfileUpdate(BaseModel):
    name:     Optional[str] = None
    phone:    Optional[str] = None
    photoURL: Optional[str] = None


@router.get("/profile")
async def get_profile(
    current: AuthenticatedUser = Depends(get_current_user),
    db:      Database = Depends(get_db),
):
    user = await get_user_by_id(db, current.user_id)
    if not user:
        raise Unauthorized("User not found")
    return {"user": user.full_profile()}


@router.patch("/profile")
async def update_profile(
    payload: ProfileUpdate,
    current: AuthenticatedUser = Depends(get_current_user),
    db:      Database = Depends(get_db),
):
    user = await get_user_by_id(db, current.user_id)
    if not user:
        raise Unauthorized("User not found")

    name = format_name(payload.name)
    if not name:
        raise ValidationError("Name is required")

    phone = user.phone
    if payload.phone is not None:
        phone = format_phone(payload.phone) or None
        if phone and not PHONE_RE.match(phone):
            raise ValidationError("Invalid phone number")

    photo = user.photo_url if payload.photoURL is None else payload.photoURL.strip()

    try:
        async with db.transaction():
            slug = user.slug
            if name != user.name:
                slug = await unique_slug(db, "users", slugify(name, fallback="user"), exclude_id=user.id)
            await db.execute(
                "UPDATE users SET name = ?, slug = ?, phone = ?, photo_url = ?, updated_at = ? WHERE id = ?",
                (name, slug, phone, photo, now_utc(), user.id),
            )
    except sqlite3.IntegrityError:
        raise Conflict("Phone number already in use")

    logger.info(f"Profile updated: {user.id}")
    user = await get_user_by_id(db, user.id)
    return {"message": "Profile updated", "user": user.full_profile()}
