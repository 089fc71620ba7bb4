"""
VFurniture — models/catalog.py
─────────────────────────────────────────────────────────────────
Category / SubCategory / Product / Inspiration tables + dataclasses.

List-ish fields (tags, gallery images, dimensions…) live in JSON
text columns; inspiration ↔ category is a join table.
─────────────────────────────────────────────────────────────────
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from vfurniture.core.database import from_json


# ─────────────────────────────────────────────
# SQL
# ─────────────────────────────────────────────
CATALOG_SQL = """
    CREATE TABLE IF NOT EXISTS categories (
        id          TEXT PRIMARY KEY,
        name        TEXT NOT NULL,
        slug        TEXT UNIQUE NOT NULL,
        description TEXT,
        main_image  TEXT,                 -- JSON {url, alt, publicId}
        created_at  TEXT NOT NULL,
        updated_at  TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS subcategories (
        id          TEXT PRIMARY KEY,
        name        TEXT NOT NULL,
        slug        TEXT NOT NULL,
        category_id TEXT NOT NULL REFERENCES categories(id),
        description TEXT,
        main_image  TEXT,
        created_at  TEXT NOT NULL,
        updated_at  TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_subcategories_category
        ON subcategories(category_id);

    CREATE TABLE IF NOT EXISTS products (
        id                TEXT PRIMARY KEY,
        name              TEXT NOT NULL,
        slug              TEXT,
        description       TEXT,
        category_id       TEXT NOT NULL REFERENCES categories(id),
        sub_category_id   TEXT NOT NULL REFERENCES subcategories(id),
        item_id           TEXT UNIQUE NOT NULL,
        original_price    REAL NOT NULL,
        final_price       REAL NOT NULL,
        emi_price         REAL,
        discount_percent  REAL NOT NULL DEFAULT 0,
        in_stock_quantity INTEGER,          -- NULL = stock not tracked
        color_options     TEXT,             -- JSON list
        sizes             TEXT,             -- JSON list
        material          TEXT,
        tags              TEXT,             -- JSON list
        gallery_images    TEXT,             -- JSON list of {url, alt, publicId}
        main_image        TEXT,             -- JSON {url, alt, publicId}
        badge             TEXT,
        dimensions        TEXT,             -- JSON {length, width, height}
        weight            REAL,
        is_published      INTEGER NOT NULL DEFAULT 0,
        ratings           REAL NOT NULL DEFAULT 0,
        review_count      INTEGER NOT NULL DEFAULT 0,
        wishlist_count    INTEGER NOT NULL DEFAULT 0,
        created_at        TEXT NOT NULL,
        updated_at        TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_products_category
        ON products(category_id, sub_category_id);

    CREATE INDEX IF NOT EXISTS idx_products_published
        ON products(is_published);

    CREATE TABLE IF NOT EXISTS inspirations (
        id          TEXT PRIMARY KEY,
        title       TEXT NOT NULL,
        slug        TEXT UNIQUE NOT NULL,
        description TEXT,
        hero_image  TEXT,                 -- JSON {url, alt, publicId}
        tags        TEXT,                 -- JSON list
        keywords    TEXT,                 -- JSON list
        created_at  TEXT NOT NULL,
        updated_at  TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS inspiration_categories (
        inspiration_id TEXT NOT NULL REFERENCES inspirations(id) ON DELETE CASCADE,
        category_id    TEXT NOT NULL REFERENCES categories(id),
        PRIMARY KEY (inspiration_id, category_id)
    );
"""

# Product fields PATCH may touch: JSON key → (column, is_json)
PRODUCT_EDITABLE = {
    "name":            ("name", False),
    "description":     ("description", False),
    "originalPrice":   ("original_price", False),
    "finalPrice":      ("final_price", False),
    "emiPrice":        ("emi_price", False),
    "discountPercent": ("discount_percent", False),
    "inStockQuantity": ("in_stock_quantity", False),
    "colorOptions":    ("color_options", True),
    "size":            ("sizes", True),
    "material":        ("material", False),
    "tags":            ("tags", True),
    "galleryImages":   ("gallery_images", True),
    "mainImage":       ("main_image", True),
    "badge":           ("badge", False),
    "dimensions":      ("dimensions", True),
    "weight":          ("weight", False),
    "isPublished":     ("is_published", False),
}


def ref(row: Optional[dict]) -> Optional[dict]:
    """{id, name, slug} stub used when one entity embeds another."""
    if not row:
        return None
    return {"id": row["id"], "name": row["name"], "slug": row["slug"]}


# ─────────────────────────────────────────────
# Dataclasses
# ─────────────────────────────────────────────
@dataclass
class Category:
    id:          str
    name:        str
    slug:        str
    description: Optional[str]
    main_image:  Optional[dict]
    created_at:  str
    updated_at:  str

    @classmethod
    def from_row(cls, row: dict) -> "Category":
        return cls(
            id          = row["id"],
            name        = row["name"],
            slug        = row["slug"],
            description = row.get("description"),
            main_image  = from_json(row.get("main_image")),
            created_at  = row["created_at"],
            updated_at  = row["updated_at"],
        )

    def to_dict(self) -> dict:
        return {
            "id":          self.id,
            "name":        self.name,
            "slug":        self.slug,
            "description": self.description,
            "mainImage":   self.main_image,
            "createdAt":   self.created_at,
            "updatedAt":   self.updated_at,
        }


@dataclass
class SubCategory:
    id:          str
    name:        str
    slug:        str
    category_id: str
    description: Optional[str]
    main_image:  Optional[dict]
    created_at:  str
    updated_at:  str
    category:    Optional[dict] = None

    @classmethod
    def from_row(cls, row: dict) -> "SubCategory":
        category = None
        if row.get("category_name") is not None:
            category = {
                "id":   row["category_id"],
                "name": row["category_name"],
                "slug": row["category_slug"],
            }
        return cls(
            id          = row["id"],
            name        = row["name"],
            slug        = row["slug"],
            category_id = row["category_id"],
            description = row.get("description"),
            main_image  = from_json(row.get("main_image")),
            created_at  = row["created_at"],
            updated_at  = row["updated_at"],
            category    = category,
        )

    def to_dict(self) -> dict:
        return {
            "id":          self.id,
            "name":        self.name,
            "slug":        self.slug,
            "categoryId":  self.category or self.category_id,
            "description": self.description,
            "mainImage":   self.main_image,
            "createdAt":   self.created_at,
            "updatedAt":   self.updated_at,
        }


@dataclass
class Product:
    id:                str
    name:              str
    slug:              Optional[str]
    description:       Optional[str]
    category_id:       str
    sub_category_id:   str
    item_id:           str
    original_price:    float
    final_price:       float
    emi_price:         Optional[float]
    discount_percent:  float
    in_stock_quantity: Optional[int]
    color_options:     List[str]
    sizes:             List[str]
    material:          Optional[str]
    tags:              List[str]
    gallery_images:    List[dict]
    main_image:        Optional[dict]
    badge:             Optional[str]
    dimensions:        Optional[Dict[str, Any]]
    weight:            Optional[float]
    is_published:      bool
    ratings:           float
    review_count:      int
    wishlist_count:    int
    created_at:        str
    updated_at:        str

    @classmethod
    def from_row(cls, row: dict) -> "Product":
        return cls(
            id                = row["id"],
            name              = row["name"],
            slug              = row.get("slug"),
            description       = row.get("description"),
            category_id       = row["category_id"],
            sub_category_id   = row["sub_category_id"],
            item_id           = row["item_id"],
            original_price    = row["original_price"],
            final_price       = row["final_price"],
            emi_price         = row.get("emi_price"),
            discount_percent  = row.get("discount_percent") or 0,
            in_stock_quantity = row.get("in_stock_quantity"),
            color_options     = from_json(row.get("color_options"), []),
            sizes             = from_json(row.get("sizes"), []),
            material          = row.get("material"),
            tags              = from_json(row.get("tags"), []),
            gallery_images    = from_json(row.get("gallery_images"), []),
            main_image        = from_json(row.get("main_image")),
            badge             = row.get("badge"),
            dimensions        = from_json(row.get("dimensions")),
            weight            = row.get("weight"),
            is_published      = bool(row.get("is_published")),
            ratings           = row.get("ratings") or 0,
            review_count      = row.get("review_count") or 0,
            wishlist_count    = row.get("wishlist_count") or 0,
            created_at        = row["created_at"],
            updated_at        = row["updated_at"],
        )

    @property
    def is_in_stock(self) -> bool:
        return self.in_stock_quantity is None or self.in_stock_quantity > 0

    def has_stock_for(self, quantity: int) -> bool:
        return self.in_stock_quantity is None or self.in_stock_quantity >= quantity

    def summary(self) -> dict:
        """Card-sized view embedded in cart / wishlist / checkout rows."""
        return {
            "id":              self.id,
            "name":            self.name,
            "finalPrice":      self.final_price,
            "originalPrice":   self.original_price,
            "discountPercent": self.discount_percent,
            "mainImage":       self.main_image,
            "inStockQuantity": self.in_stock_quantity,
            "isInStock":       self.is_in_stock,
            "ratings":         self.ratings,
        }

    def to_dict(self) -> dict:
        return {
            "id":              self.id,
            "name":            self.name,
            "slug":            self.slug,
            "description":     self.description,
            "categoryId":      self.category_id,
            "subCategoryId":   self.sub_category_id,
            "itemId":          self.item_id,
            "originalPrice":   self.original_price,
            "finalPrice":      self.final_price,
            "emiPrice":        self.emi_price,
            "discountPercent": self.discount_percent,
            "inStockQuantity": self.in_stock_quantity,
            "isInStock":       self.is_in_stock,
            "colorOptions":    self.color_options,
            "size":            self.sizes,
            "material":        self.material,
            "tags":            self.tags,
            "galleryImages":   self.gallery_images,
            "mainImage":       self.main_image,
            "badge":           self.badge,
            "dimensions":      self.dimensions,
            "weight":          self.weight,
            "isPublished":     self.is_published,
            "ratings":         self.ratings,
            "reviewCount":     self.review_count,
            "wishlistCount":   self.wishlist_count,
            "createdAt":       self.created_at,
            "updatedAt":       self.updated_at,
        }


@dataclass
class Inspiration:
    id:          str
    title:       str
    slug:        str
    description: Optional[str]
    hero_image:  Optional[dict]
    tags:        List[str]
    keywords:    List[str]
    created_at:  str
    updated_at:  str
    categories:  List[dict] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: dict) -> "Inspiration":
        return cls(
            id          = row["id"],
            title       = row["title"],
            slug        = row["slug"],
            description = row.get("description"),
            hero_image  = from_json(row.get("hero_image")),
            tags        = from_json(row.get("tags"), []),
            keywords    = from_json(row.get("keywords"), []),
            created_at  = row["created_at"],
            updated_at  = row["updated_at"],
        )

    @property
    def image_url(self) -> str:
        return (self.hero_image or {}).get("url") or ""

    def to_dict(self) -> dict:
        return {
            "id":          self.id,
            "title":       self.title,
            "slug":        self.slug,
            "description": self.description,
            "heroImage":   self.hero_image,
            "tags":        self.tags,
            "keywords":    self.keywords,
            "categories":  self.categories,
            "imageUrl":    self.image_url,
            "createdAt":   self.created_at,
            "updatedAt":   self.updated_at,
        }
