"""
VFurniture — main.py
─────────────────────────────────────────────────────────────────
Central entry point. All routers mount here.

Start server:
    uvicorn vfurniture.main:app --reload --port 8000

File map:
    auth.py          → /api/auth/*          (register, login, google, reset)
    profile.py       → /api/user/profile
    catalog.py       → /api/categories, /api/subcategories
    products.py      → /api/products/*
    inspirations.py  → /api/inspirations/*
    wishlist.py      → /api/wishlist/*
    cart.py          → /api/cart/*
    checkout.py      → /api/checkout
    reviews.py       → /api/reviews/*
    upload.py        → /api/upload
    seed.py          → /api/saveDefault/*
─────────────────────────────────────────────────────────────────
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from vfurniture import __version__
from vfurniture.core.config import Config, cfg
from vfurniture.core.database import Database
from vfurniture.core.errors import register_exception_handlers
from vfurniture.core.security import TokenService

# ── Logging ───────────────────────────────────
logging.basicConfig(
    level   = logging.INFO,
    format  = "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt = "%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("vfurniture.main")


# ─────────────────────────────────────────────
# Startup / Shutdown
# ─────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup  → open the database, create tables, build the token service.
    Shutdown → close the database.
    """
    config: Config = app.state.config
    logger.info(f"🚀 VFurniture starting [{config.ENV}] {config!r}")

    db = Database(config.DB_PATH)
    await db.connect()
    await db.init_all_tables()

    app.state.db     = db
    app.state.tokens = TokenService.from_config(config)

    if config.s3_ready:
        from vfurniture.storage.s3 import check_s3_connection
        probe = await run_in_threadpool(check_s3_connection, config)
        if probe["ok"]:
            logger.info(f"✓ S3 bucket {probe['bucket']} reachable")
        else:
            logger.warning(f"⚠️  S3 not reachable: {probe['error']}")
    else:
        logger.warning("⚠️  AWS credentials not set — /api/upload will fail")

    if not config.email_ready:
        logger.warning("⚠️  RESEND_API_KEY not set — reset codes are logged, not emailed")

    logger.info("✅ VFurniture is live.")

    yield  # App runs here

    await db.close()
    app.state.db = None
    logger.info("VFurniture shutting down.")


# ─────────────────────────────────────────────
# App factory
# ─────────────────────────────────────────────
def create_app(config: Optional[Config] = None) -> FastAPI:
    config = config or cfg

    app = FastAPI(
        title       = "VFurniture API",
        description = "Backend for the VFurniture storefront",
        version     = __version__,
        docs_url    = "/docs"  if not config.is_production else None,
        redoc_url   = "/redoc" if not config.is_production else None,
        lifespan    = lifespan,
    )
    app.state.config = config

    # ── CORS ──────────────────────────────────
    # Cookies ride along, so origins must be explicit
    app.add_middleware(
        CORSMiddleware,
        allow_origins     = [config.FRONTEND_URL],
        allow_credentials = True,
        allow_methods     = ["*"],
        allow_headers     = ["*"],
    )

    register_exception_handlers(app)

    # ── Routers ───────────────────────────────
    from vfurniture import (
        auth, cart, catalog, checkout, inspirations, products,
        profile, reviews, seed, upload, wishlist,
    )
    for module in (
        auth, profile, catalog, products, inspirations,
        wishlist, cart, checkout, reviews, upload, seed,
    ):
        app.include_router(module.router)

    # ── System ────────────────────────────────
    @app.get("/health", tags=["system"])
    async def health():
        """Quick ping — load balancer / uptime monitor uses this."""
        return {
            "status":  "ok",
            "app":     "VFurniture",
            "version": __version__,
            "env":     config.ENV,
        }

    @app.get("/", tags=["system"])
    async def root():
        return {"message": "VFurniture API is running. Docs at /docs"}

    return app


app = create_app()


# ─────────────────────────────────────────────
# Run
# ─────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "vfurniture.main:app",
        host    = "0.0.0.0",
        port    = 8000,
        reload  = not cfg.is_production,
        workers = 1 if not cfg.is_production else 4,
    )
