"""
VFurniture — seed.py
─────────────────────────────────────────────────────────────────
POST /api/saveDefault/{kind} — snapshot default catalog data to
PUBLIC_DIR/<kind>.json for the storefront's offline fallback.

Write-once: the file is only written while it is missing, empty
or "[]". Later calls are no-ops.
─────────────────────────────────────────────────────────────────
"""

import json
import logging
from pathlib import Path

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from vfurniture.core.config import Config
from vfurniture.core.errors import NotFound, ValidationError
from vfurniture.core.security import get_config

logger = logging.getLogger("vfurniture.seed")

router = APIRouter(prefix="/api/saveDefault", tags=["seed"])

SNAPSHOT_KINDS = {
    "categories":    "categories",
    "subcategories": "subcategories",
    "products":      "products",
    "inspirations":  "inspirations",
    "insparation":   "inspirations",     # legacy storefront path
}


def snapshot_is_empty(path: Path) -> bool:
    if not path.exists():
        return True
    content = path.read_text(encoding="utf-8").strip()
    return content in ("", "[]")


def save_snapshot(public_dir: str, kind: str, items: list) -> bool:
    """Returns True if the file was written."""
    folder = Path(public_dir)
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / f"{kind}.json"

    if not snapshot_is_empty(path):
        return False

    path.write_text(json.dumps(items, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info(f"Wrote {len(items)} default {kind} → {path}")
    return True


@router.post("/{kind}")
async def save_default(kind: str, request: Request, config: Config = Depends(get_config)):
    name = SNAPSHOT_KINDS.get(kind)
    if not name:
        raise NotFound(f"Unknown snapshot kind: {kind}")

    try:
        data = await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON body")

    if isinstance(data, list):
        items = data
    elif isinstance(data, dict):
        items = data.get(name) or []
    else:
        raise ValidationError(f"Expected a list or {{\"{name}\": [...]}}")
    if not isinstance(items, list):
        raise ValidationError(f"{name} must be a list")

    written = await run_in_threadpool(save_snapshot, config.PUBLIC_DIR, name, items)
    return {"message": f"Default {name} saved if empty", "written": written}
