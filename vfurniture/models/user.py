"""
VFurniture — models/user.py
─────────────────────────────────────────────────────────────────
User table definition + dataclass.
No queries here, only structure and shaping.
─────────────────────────────────────────────────────────────────
"""

from dataclasses import dataclass
from typing import Optional


# ─────────────────────────────────────────────
# SQL
# ─────────────────────────────────────────────
USERS_SQL = """
    CREATE TABLE IF NOT EXISTS users (
        id                 TEXT PRIMARY KEY,
        name               TEXT NOT NULL,
        slug               TEXT UNIQUE NOT NULL,
        email              TEXT UNIQUE NOT NULL,
        password           TEXT NOT NULL,          -- bcrypt hash
        phone              TEXT UNIQUE,            -- NULLs don't collide
        photo_url          TEXT NOT NULL DEFAULT '',
        has_oauth          INTEGER NOT NULL DEFAULT 0,
        reset_code         TEXT,                   -- sha256 hex of the 6-digit code
        reset_code_expires TEXT,
        created_at         TEXT NOT NULL,
        updated_at         TEXT NOT NULL
    );
"""


# ─────────────────────────────────────────────
# Dataclass
# ─────────────────────────────────────────────
@dataclass
class User:
    id:                 str
    name:               str
    slug:               str
    email:              str
    password:           str
    phone:              Optional[str]
    photo_url:          str
    has_oauth:          bool
    reset_code:         Optional[str]
    reset_code_expires: Optional[str]
    created_at:         str
    updated_at:         str

    @classmethod
    def from_row(cls, row: dict) -> "User":
        return cls(
            id                 = row["id"],
            name               = row["name"],
            slug               = row["slug"],
            email              = row["email"],
            password           = row["password"],
            phone              = row.get("phone"),
            photo_url          = row.get("photo_url") or "",
            has_oauth          = bool(row.get("has_oauth")),
            reset_code         = row.get("reset_code"),
            reset_code_expires = row.get("reset_code_expires"),
            created_at         = row["created_at"],
            updated_at         = row["updated_at"],
        )

    def public_profile(self) -> dict:
        """Safe to send to the browser: never the hash or reset fields."""
        return {
            "id":       self.id,
            "name":     self.name,
            "email":    self.email,
            "photoURL": self.photo_url,
        }

    def full_profile(self) -> dict:
        return {
            **self.public_profile(),
            "slug":      self.slug,
            "phone":     self.phone or "",
            "hasOAuth":  self.has_oauth,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
