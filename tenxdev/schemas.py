"""
Pydantic schemas for request bodies and helpers for the JSON response envelope.

Bodies are accepted in camelCase (`youtubeUrl`, `itemType`) or snake_case.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tenxdev.types import ContentType


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def provided(self) -> dict:
        """Fields the client actually sent, keyed by attribute name."""
        return self.model_dump(exclude_unset=True)


class SortField(StrEnum):
    TITLE = "title"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"


class SortOrder(StrEnum):
    ASC = "asc"
    DESC = "desc"


# contents


class ContentCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=500)
    content_type: ContentType = ContentType.VIDEO
    description: Optional[str] = None
    youtube_url: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None
    selected_card_feature_id: Optional[str] = None
    file_url: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = Field(default=None, ge=0)
    markdown_content: Optional[str] = None


class ContentUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    content_type: Optional[ContentType] = None
    description: Optional[str] = None
    youtube_url: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None
    selected_card_feature_id: Optional[str] = None
    file_url: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = Field(default=None, ge=0)
    markdown_content: Optional[str] = None


class CardFeatureSelection(CamelModel):
    card_feature_id: Optional[str] = None


# saved items


class SaveItemRequest(CamelModel):
    item_type: str
    item_id: str = Field(..., min_length=1)


class CheckMultipleRequest(CamelModel):
    item_type: str
    item_ids: list[str] = Field(default_factory=list)


# git sync


class ConnectionCreate(CamelModel):
    project_id: str = Field(..., min_length=1)
    github_owner: str = Field(..., min_length=1)
    github_repo: str = Field(..., min_length=1)
    default_branch: Optional[str] = None


class LinkFileRequest(CamelModel):
    connection_id: str = Field(..., min_length=1)
    file_path: str = Field(..., min_length=1)
    branch_name: Optional[str] = None


class SyncToGitHubRequest(CamelModel):
    new_content: str
    commit_message: Optional[str] = None


# response helpers


def camelize(value: Any) -> Any:
    """Recursively convert dict keys (records, nested items) to camelCase."""
    if hasattr(value, "as_dict"):
        value = value.as_dict()
    if isinstance(value, dict):
        return {
            (to_camel(key) if "_" in key else key): camelize(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [camelize(item) for item in value]
    return value


def success_body(
    data: Any = None, *, count: Optional[int] = None, message: Optional[str] = None
) -> dict:
    body: dict = {"success": True}
    if data is not None:
        body["data"] = camelize(data)
    if count is not None:
        body["count"] = count
    if message:
        body["message"] = message
    return body
