"""
HTTP routes for the content backend API.
"""

from __future__ import annotations

from fastapi import APIRouter

from tenxdev import __version__
from tenxdev.routes import contents, gitsync, saved_items
from tenxdev.types import utc_now

router = APIRouter()


@router.get("/health")
def health():
    return {
        "success": True,
        "message": "10xDev Backend API is running",
        "timestamp": utc_now(),
        "version": __version__,
    }


router.include_router(contents.router)
router.include_router(saved_items.router)
router.include_router(gitsync.router)
