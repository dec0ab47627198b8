"""
Content routes: public listing and reads, admin-only writes and PDF upload.
"""

from __future__ import annotations

import io
import logging
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, File, Query, UploadFile
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from tenxdev.auth import AuthUser
from tenxdev.config import get_settings
from tenxdev.db import DbClient
from tenxdev.dependencies import get_db_client, get_storage_client, require_admin
from tenxdev.errors import ApiError, unwrap
from tenxdev.models.content import ContentModel
from tenxdev.schemas import (
    CardFeatureSelection,
    ContentCreate,
    ContentUpdate,
    SortField,
    SortOrder,
    success_body,
)
from tenxdev.storage import StorageClient
from tenxdev.types import ContentType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contents", tags=["contents"])

PDF_CONTENT_TYPE = "application/pdf"


def _model(db: DbClient = Depends(get_db_client)) -> ContentModel:
    return ContentModel(db)


def _count_pdf_pages(body: bytes) -> int:
    try:
        return len(PdfReader(io.BytesIO(body)).pages)
    except (PyPdfError, ValueError, OSError) as exc:
        raise ApiError(400, "File is not a readable PDF") from exc


@router.get("")
def list_contents(
    page: Optional[int] = Query(default=None, ge=1),
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    content_type: Optional[ContentType] = Query(default=None, alias="type"),
    category: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: SortField = Query(default=SortField.CREATED_AT, alias="sortBy"),
    sort_order: SortOrder = Query(default=SortOrder.DESC, alias="sortOrder"),
    model: ContentModel = Depends(_model),
):
    result = unwrap(
        model.list(
            content_type=content_type.value if content_type else None,
            category=category,
            search=search,
            sort_by=sort_by.value,
            sort_order=sort_order.value,
            page=page,
            limit=limit,
        )
    )
    return success_body(result.data, count=result.count)


@router.get("/post-tags")
def list_post_tags(model: ContentModel = Depends(_model)):
    result = unwrap(model.list_post_tags())
    return success_body(result.data, count=result.count)


@router.get("/{content_id}")
def get_content(content_id: str, model: ContentModel = Depends(_model)):
    return success_body(unwrap(model.get_by_id(content_id)).data)


@router.post("/upload", status_code=201)
async def upload_pdf(
    file: UploadFile = File(...),
    storage: StorageClient = Depends(get_storage_client),
    admin: AuthUser = Depends(require_admin),
):
    settings = get_settings()
    filename = file.filename or ""
    if file.content_type != PDF_CONTENT_TYPE or not filename.lower().endswith(".pdf"):
        raise ApiError(400, "Only PDF files are allowed")

    if file.size is not None and file.size > settings.max_upload_bytes:
        raise ApiError(413, "File is too large")
    body = await file.read(settings.max_upload_bytes + 1)
    if not body:
        raise ApiError(400, "File is empty")
    if len(body) > settings.max_upload_bytes:
        raise ApiError(413, "File is too large")
    page_count = _count_pdf_pages(body)

    path = f"contents/{uuid4().hex}.pdf"
    storage.upload_bytes(path, body, PDF_CONTENT_TYPE)
    logger.info("User %s uploaded %s (%d bytes) to %s", admin.id, filename, len(body), path)
    return success_body(
        {
            "url": storage.public_url(path),
            "fileName": filename,
            "fileSize": len(body),
            "fileType": PDF_CONTENT_TYPE,
            "pageCount": page_count,
        },
        message="File uploaded",
    )


@router.post("", status_code=201)
def create_content(
    payload: ContentCreate,
    model: ContentModel = Depends(_model),
    admin: AuthUser = Depends(require_admin),
):
    result = unwrap(model.create(payload.provided()))
    return success_body(result.data, message="Content created")


@router.put("/{content_id}")
def update_content(
    content_id: str,
    payload: ContentUpdate,
    model: ContentModel = Depends(_model),
    admin: AuthUser = Depends(require_admin),
):
    result = unwrap(model.update(content_id, payload.provided()))
    return success_body(result.data, message="Content updated")


@router.delete("/{content_id}")
def delete_content(
    content_id: str,
    model: ContentModel = Depends(_model),
    admin: AuthUser = Depends(require_admin),
):
    unwrap(model.delete(content_id))
    return success_body(message="Content deleted")


@router.patch("/{content_id}/card-feature")
def update_selected_card_feature(
    content_id: str,
    payload: CardFeatureSelection,
    model: ContentModel = Depends(_model),
    admin: AuthUser = Depends(require_admin),
):
    card_feature_id = payload.card_feature_id or None
    result = unwrap(model.update_selected_card_feature(content_id, card_feature_id))
    message = "Card feature selected" if card_feature_id else "Card feature cleared"
    return success_body(result.data, message=message)
