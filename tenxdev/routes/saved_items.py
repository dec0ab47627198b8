"""
Saved-item routes. Every endpoint acts on the authenticated user's bookmarks.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from tenxdev.auth import AuthUser
from tenxdev.db import DbClient
from tenxdev.dependencies import get_db_client, require_user
from tenxdev.errors import unwrap
from tenxdev.models.saved_items import SavedItemModel
from tenxdev.schemas import CheckMultipleRequest, SaveItemRequest, success_body

router = APIRouter(prefix="/saved-items", tags=["saved-items"])


def _model(db: DbClient = Depends(get_db_client)) -> SavedItemModel:
    return SavedItemModel(db)


@router.get("")
def list_saved_items(
    type: Optional[str] = None,
    model: SavedItemModel = Depends(_model),
    user: AuthUser = Depends(require_user),
):
    result = unwrap(model.find_by_user(user.id, type))
    return success_body(result.data, count=result.count)


@router.get("/check/{item_type}/{item_id}")
def check_saved_item(
    item_type: str,
    item_id: str,
    model: SavedItemModel = Depends(_model),
    user: AuthUser = Depends(require_user),
):
    result = unwrap(model.is_saved(user.id, item_type, item_id))
    return success_body({"isSaved": result.data})


@router.post("/check-multiple")
def check_multiple_saved_items(
    payload: CheckMultipleRequest,
    model: SavedItemModel = Depends(_model),
    user: AuthUser = Depends(require_user),
):
    result = unwrap(model.check_multiple(user.id, payload.item_type, payload.item_ids))
    return success_body(result.data, count=result.count)


@router.post("", status_code=201)
def save_item(
    payload: SaveItemRequest,
    model: SavedItemModel = Depends(_model),
    user: AuthUser = Depends(require_user),
):
    result = unwrap(model.save(user.id, payload.item_type, payload.item_id))
    return success_body(result.data, message="Item saved")


@router.delete("/{item_type}/{item_id}")
def unsave_item(
    item_type: str,
    item_id: str,
    model: SavedItemModel = Depends(_model),
    user: AuthUser = Depends(require_user),
):
    unwrap(model.unsave(user.id, item_type, item_id))
    return success_body(message="Item removed")
