"""
Data access for site content (videos, posts, manuals and tutorials).
"""

from __future__ import annotations

import logging
from typing import Optional

from tenxdev.db import ContentRecord, DbClient
from tenxdev.types import ContentType, ModelListResult, ModelResult, utc_now
from tenxdev.youtube import extract_video_id, thumbnail_url

logger = logging.getLogger(__name__)


class ContentModel:
    def __init__(self, db: DbClient):
        self.db = db

    def list(
        self,
        *,
        content_type: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> ModelListResult[ContentRecord]:
        """
        List contents. `count` is always the number of matches before
        pagination; pagination applies only when both `page` and `limit` are set.
        """
        offset, size = 0, None
        if page and limit:
            offset, size = (page - 1) * limit, limit
        items, total = self.db.list_contents(
            content_type=content_type,
            category=category,
            search=search.strip() if search else None,
            sort_by=sort_by,
            descending=sort_order != "asc",
            offset=offset,
            limit=size,
        )
        return ModelListResult.ok(items, count=total)

    def get_by_id(self, content_id: str) -> ModelResult[ContentRecord]:
        record = self.db.get_content(content_id)
        if not record:
            return ModelResult.fail("Content not found", 404)
        return ModelResult.ok(record)

    def create(self, payload: dict) -> ModelResult[ContentRecord]:
        values = dict(payload)
        title = (values.get("title") or "").strip()
        if not title:
            return ModelResult.fail("Title is required", 400)
        values["title"] = title
        values["content_type"] = str(values.get("content_type") or ContentType.VIDEO)

        error = _apply_youtube_url(values, values["content_type"])
        if error:
            return ModelResult.fail(error, 400)

        record = self.db.insert_content(ContentRecord(**values))
        logger.info("Created %s content %s", record.content_type, record.id)
        return ModelResult.ok(record, status_code=201)

    def update(self, content_id: str, payload: dict) -> ModelResult[ContentRecord]:
        existing = self.db.get_content(content_id)
        if not existing:
            return ModelResult.fail("Content not found", 404)

        values = dict(payload)
        if "title" in values:
            title = (values["title"] or "").strip()
            if not title:
                return ModelResult.fail("Title is required", 400)
            values["title"] = title
        if values.get("content_type"):
            values["content_type"] = str(values["content_type"])
        else:
            # content_type is never null; an explicit null keeps the current type
            values.pop("content_type", None)
        content_type = values.get("content_type") or existing.content_type

        if "youtube_url" in values:
            error = _apply_youtube_url(values, content_type)
            if error:
                return ModelResult.fail(error, 400)

        values["updated_at"] = utc_now()
        record = self.db.update_content(content_id, values)
        return ModelResult.ok(record)

    def delete(self, content_id: str) -> ModelResult[None]:
        if not self.db.delete_content(content_id):
            return ModelResult.fail("Content not found", 404)
        logger.info("Deleted content %s", content_id)
        return ModelResult.ok(None)

    def update_selected_card_feature(
        self, content_id: str, card_feature_id: Optional[str]
    ) -> ModelResult[ContentRecord]:
        record = self.db.update_content(
            content_id,
            {"selected_card_feature_id": card_feature_id, "updated_at": utc_now()},
        )
        if not record:
            return ModelResult.fail("Content not found", 404)
        return ModelResult.ok(record)

    def list_post_tags(self) -> ModelListResult[str]:
        posts, _ = self.db.list_contents(content_type=ContentType.POST.value)
        tags = sorted({tag for post in posts for tag in (post.tags or []) if tag})
        return ModelListResult.ok(tags)


def _apply_youtube_url(values: dict, content_type: str) -> Optional[str]:
    """Fill video_id/thumbnail from youtube_url in place; return an error message."""
    url = values.get("youtube_url")
    if not url:
        if "youtube_url" in values:
            values.update(video_id=None, thumbnail=None)
        return None
    if content_type != ContentType.VIDEO:
        return None
    video_id = extract_video_id(url)
    if not video_id:
        return "Invalid YouTube URL"
    values["video_id"] = video_id
    values.setdefault("thumbnail", None)
    if not values["thumbnail"]:
        values["thumbnail"] = thumbnail_url(video_id)
    return None
