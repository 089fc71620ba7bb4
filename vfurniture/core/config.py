"""
VFurniture — core/config.py
─────────────────────────────────────────────────────────────────
Single source of truth for ALL environment variables.

Every other file imports from here; no os.getenv() scattered
across auth.py, catalog.py, upload.py etc.

Usage:
    from vfurniture.core.config import cfg

    print(cfg.DB_PATH)
    print(cfg.ACCESS_COOKIE)

Tests (or a second app in the same process) build their own copy:
    Config(DB_PATH="/tmp/test.db", ENV="development")
─────────────────────────────────────────────────────────────────
"""

import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    # ── App ───────────────────────────────────
    ENV:          str = os.getenv("ENV", "development")   # "production" in prod
    DB_PATH:      str = os.getenv("DB_PATH", "vfurniture.db")
    BASE_URL:     str = os.getenv("BASE_URL", "http://localhost:8000")
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")
    PUBLIC_DIR:   str = os.getenv("PUBLIC_DIR", "public")

    # ── Tokens ────────────────────────────────
    JWT_SECRET:         str = os.getenv("JWT_SECRET", "dev-access-secret-change-in-prod!")
    JWT_REFRESH_SECRET: str = os.getenv("JWT_REFRESH_SECRET", "dev-refresh-secret-change-in-prod!")
    ALGORITHM:          str = "HS256"
    ACCESS_TOKEN_MINUTES: int = 15
    REFRESH_TOKEN_DAYS:   int = 7

    # ── Cookies ───────────────────────────────
    ACCESS_COOKIE:  str = "vf_access"
    REFRESH_COOKIE: str = "vf_refresh"

    # ── Passwords / reset codes ───────────────
    BCRYPT_ROUNDS:      int = int(os.getenv("BCRYPT_ROUNDS", "12"))
    MIN_PASSWORD_LEN:   int = 6
    RESET_CODE_MINUTES: int = 10

    # ── Email (Resend) ────────────────────────
    RESEND_API_KEY: str = os.getenv("RESEND_API_KEY", "")
    EMAIL_FROM:     str = os.getenv("EMAIL_FROM", "support@vfurniture.com")

    # ── Catalog reads ─────────────────────────
    RETRY_ATTEMPTS:   int   = 3
    RETRY_BASE_DELAY: float = 1.0   # seconds, doubled per attempt

    # ── Checkout ──────────────────────────────
    CHECKOUT_TTL_MINUTES:    int   = 60
    FREE_SHIPPING_THRESHOLD: float = 10000
    SHIPPING_FEE:            float = 40
    TAX_RATE:                float = 0.18
    INSURANCE_RATE:          float = 0.02

    # ── S3 image storage ──────────────────────
    AWS_ACCESS_KEY_ID:     str = os.getenv("AWS_ACCESS_KEY_ID", "")
    AWS_SECRET_ACCESS_KEY: str = os.getenv("AWS_SECRET_ACCESS_KEY", "")
    AWS_S3_BUCKET:         str = os.getenv("AWS_S3_BUCKET", "vfurniture-images")
    AWS_REGION:            str = os.getenv("AWS_REGION", "ap-south-1")
    AWS_CDN_URL:           str = os.getenv("AWS_CDN_URL", "").rstrip("/")
    UPLOAD_FOLDER:         str = "furniture-store"

    def __init__(self, **overrides):
        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown config key: {key}")
            setattr(self, key, value)

    # ── Shortcuts ─────────────────────────────
    @property
    def is_production(self) -> bool:
        return self.ENV == "production"

    @property
    def email_ready(self) -> bool:
        return bool(self.RESEND_API_KEY)

    @property
    def s3_ready(self) -> bool:
        return bool(self.AWS_ACCESS_KEY_ID and self.AWS_SECRET_ACCESS_KEY)

    def __repr__(self):
        return (
            f"<Config env={self.ENV} db={self.DB_PATH} "
            f"email={'✓' if self.email_ready else '✗'} "
            f"s3={'✓' if self.s3_ready else '✗'}>"
        )


# Single global instance, import this everywhere
cfg = Config()
