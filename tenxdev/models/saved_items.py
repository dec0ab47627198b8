"""
Per-user bookmarks of videos and cards.
"""

from __future__ import annotations

from typing import Iterable, Optional

from tenxdev.db import (
    CardFeatureRecord,
    DbClient,
    DuplicateRecordError,
    SavedItemRecord,
    VideoRecord,
)
from tenxdev.types import ItemType, ModelListResult, ModelResult


def parse_item_type(value: Optional[str]) -> Optional[ItemType]:
    try:
        return ItemType(value)
    except ValueError:
        return None


def _video_summary(video: VideoRecord) -> dict:
    return {
        "id": video.id,
        "title": video.title,
        "description": video.description,
        "youtube_url": video.youtube_url,
        "video_id": video.video_id,
        "thumbnail": video.thumbnail,
        "category": video.category,
    }


def _card_summary(card: CardFeatureRecord) -> dict:
    return {
        "id": card.id,
        "title": card.title,
        "tech": card.tech,
        "language": card.language,
        "description": card.description,
        "content_type": card.content_type,
        "card_type": card.card_type,
        "created_at": card.created_at,
    }


class SavedItemModel:
    def __init__(self, db: DbClient):
        self.db = db

    def save(
        self, user_id: str, item_type: str, item_id: str
    ) -> ModelResult[SavedItemRecord]:
        if not parse_item_type(item_type):
            return ModelResult.fail("Invalid item type", 400)
        try:
            record = self.db.insert_saved_item(
                SavedItemRecord(user_id=user_id, item_type=item_type, item_id=item_id)
            )
        except DuplicateRecordError:
            return ModelResult.fail("Item already saved", 409)
        return ModelResult.ok(record, status_code=201)

    def unsave(self, user_id: str, item_type: str, item_id: str) -> ModelResult[None]:
        if not parse_item_type(item_type):
            return ModelResult.fail("Invalid item type", 400)
        self.db.delete_saved_item(user_id, item_type, item_id)
        return ModelResult.ok(None)

    def find_by_user(
        self, user_id: str, item_type: Optional[str] = None
    ) -> ModelListResult[dict]:
        """Saved items newest first, each with the referenced video or card."""
        if item_type and not parse_item_type(item_type):
            return ModelListResult.fail("Invalid item type", 400)
        items = self.db.list_saved_items(user_id, item_type or None)

        video_ids = [i.item_id for i in items if i.item_type == ItemType.VIDEO]
        card_ids = [i.item_id for i in items if i.item_type == ItemType.CARD]
        videos = {v.id: _video_summary(v) for v in self.db.get_videos(video_ids)}
        cards = {c.id: _card_summary(c) for c in self.db.get_card_features(card_ids)}

        rows = []
        for item in items:
            lookup = videos if item.item_type == ItemType.VIDEO else cards
            row = item.as_dict()
            row["item"] = lookup.get(item.item_id)
            rows.append(row)
        return ModelListResult.ok(rows)

    def is_saved(self, user_id: str, item_type: str, item_id: str) -> ModelResult[bool]:
        if not parse_item_type(item_type):
            return ModelResult.fail("Invalid item type", 400)
        found = self.db.find_saved_item_ids(user_id, item_type, [item_id])
        return ModelResult.ok(bool(found))

    def check_multiple(
        self, user_id: str, item_type: str, item_ids: Iterable[str]
    ) -> ModelListResult[str]:
        if not parse_item_type(item_type):
            return ModelListResult.fail("Invalid item type", 400)
        ids = [i for i in item_ids if i]
        if not ids:
            return ModelListResult.ok([])
        return ModelListResult.ok(self.db.find_saved_item_ids(user_id, item_type, ids))
