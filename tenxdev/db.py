"""
Database abstraction for Supabase Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Dict, Iterable, Optional, Protocol

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    func,
    or_,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from tenxdev.types import ContentType, utc_now


class DuplicateRecordError(Exception):
    """Raised when an insert violates a uniqueness constraint."""


def _new_id() -> str:
    return uuid.uuid4().hex


class _Record:
    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class ContentRecord(_Record):
    title: str
    content_type: str = ContentType.VIDEO.value
    description: Optional[str] = None
    youtube_url: Optional[str] = None
    video_id: Optional[str] = None
    thumbnail: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None
    selected_card_feature_id: Optional[str] = None
    file_url: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    markdown_content: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)


@dataclass
class SavedItemRecord(_Record):
    user_id: str
    item_type: str
    item_id: str
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now)


@dataclass
class CardFeatureRecord(_Record):
    title: str
    tech: Optional[str] = None
    language: Optional[str] = None
    description: Optional[str] = None
    content_type: Optional[str] = None
    card_type: Optional[str] = None
    screens: Optional[list] = None
    created_by: Optional[str] = None
    is_private: bool = False
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)


@dataclass
class VideoRecord(_Record):
    title: str
    description: Optional[str] = None
    youtube_url: Optional[str] = None
    video_id: Optional[str] = None
    thumbnail: Optional[str] = None
    category: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now)


@dataclass
class OAuthTokenRecord(_Record):
    user_id: str
    access_token: str
    scope: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)


@dataclass
class ConnectionRecord(_Record):
    project_id: str
    user_id: str
    github_owner: str
    github_repo: str
    default_branch: str = "main"
    is_active: bool = True
    last_sync_at: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now)

    @property
    def full_name(self) -> str:
        return f"{self.github_owner}/{self.github_repo}"


@dataclass
class FileMappingRecord(_Record):
    connection_id: str
    project_id: str
    card_feature_id: str
    file_path: str
    branch_name: str = "main"
    last_commit_sha: Optional[str] = None
    last_synced_at: Optional[str] = None
    card_modified_at: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now)


@dataclass
class PullRequestRecord(_Record):
    connection_id: str
    pr_number: int
    pr_title: str
    source_branch: str
    target_branch: str
    card_feature_id: Optional[str] = None
    pr_url: Optional[str] = None
    pr_state: str = "open"
    merged_at: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now)


@dataclass
class SyncLogRecord(_Record):
    connection_id: str
    direction: str
    status: str
    event_type: Optional[str] = None
    error_message: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now)


class DbClient(Protocol):
    """Interface for database access."""

    # contents
    def insert_content(self, record: ContentRecord) -> ContentRecord:
        ...

    def get_content(self, content_id: str) -> Optional[ContentRecord]:
        ...

    def list_contents(
        self,
        *,
        content_type: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "created_at",
        descending: bool = True,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> tuple[list[ContentRecord], int]:
        ...

    def update_content(self, content_id: str, values: dict) -> Optional[ContentRecord]:
        ...

    def delete_content(self, content_id: str) -> bool:
        ...

    # saved items
    def insert_saved_item(self, record: SavedItemRecord) -> SavedItemRecord:
        ...

    def delete_saved_item(self, user_id: str, item_type: str, item_id: str) -> int:
        ...

    def list_saved_items(
        self, user_id: str, item_type: Optional[str] = None
    ) -> list[SavedItemRecord]:
        ...

    def find_saved_item_ids(
        self, user_id: str, item_type: str, item_ids: Iterable[str]
    ) -> list[str]:
        ...

    # cards and videos referenced by saved items and sync
    def save_card_feature(self, record: CardFeatureRecord) -> None:
        ...

    def get_card_feature(self, card_id: str) -> Optional[CardFeatureRecord]:
        ...

    def get_card_features(self, card_ids: Iterable[str]) -> list[CardFeatureRecord]:
        ...

    def save_video(self, record: VideoRecord) -> None:
        ...

    def get_videos(self, video_ids: Iterable[str]) -> list[VideoRecord]:
        ...

    # github oauth tokens
    def get_oauth_token(self, user_id: str) -> Optional[OAuthTokenRecord]:
        ...

    def upsert_oauth_token(
        self, user_id: str, access_token: str, scope: Optional[str]
    ) -> OAuthTokenRecord:
        ...

    def delete_oauth_token(self, user_id: str) -> bool:
        ...

    # connections
    def insert_connection(self, record: ConnectionRecord) -> ConnectionRecord:
        ...

    def get_connection(self, connection_id: str) -> Optional[ConnectionRecord]:
        ...

    def list_connections(
        self,
        *,
        project_id: Optional[str] = None,
        owner: Optional[str] = None,
        repo: Optional[str] = None,
    ) -> list[ConnectionRecord]:
        ...

    def update_connection(
        self, connection_id: str, values: dict
    ) -> Optional[ConnectionRecord]:
        ...

    def delete_connection(self, connection_id: str) -> bool:
        ...

    # file mappings
    def insert_mappings(
        self, records: list[FileMappingRecord]
    ) -> list[FileMappingRecord]:
        ...

    def upsert_mappings(
        self, records: list[FileMappingRecord]
    ) -> list[FileMappingRecord]:
        ...

    def get_mapping(self, mapping_id: str) -> Optional[FileMappingRecord]:
        ...

    def list_mappings(
        self,
        *,
        project_id: Optional[str] = None,
        card_feature_id: Optional[str] = None,
        connection_id: Optional[str] = None,
        file_path: Optional[str] = None,
    ) -> list[FileMappingRecord]:
        ...

    def update_mappings(self, values: dict, **filters: str) -> list[FileMappingRecord]:
        ...

    def delete_mappings(self, **filters: str) -> int:
        ...

    # pull requests
    def insert_pull_request(self, record: PullRequestRecord) -> PullRequestRecord:
        ...

    def list_pull_requests(
        self, connection_id: str, limit: int = 20
    ) -> list[PullRequestRecord]:
        ...

    def update_pull_request(
        self, connection_id: str, pr_number: int, values: dict
    ) -> Optional[PullRequestRecord]:
        ...

    # sync logs
    def insert_sync_log(self, record: SyncLogRecord) -> SyncLogRecord:
        ...

    def list_sync_logs(self, connection_id: str, limit: int = 50) -> list[SyncLogRecord]:
        ...

    # webhook deliveries
    def record_delivery(self, delivery_id: str, event_type: str) -> bool:
        ...

    def forget_delivery(self, delivery_id: str) -> None:
        ...


_MAPPING_FILTERS = ("id", "project_id", "card_feature_id", "connection_id", "file_path")


def _matches(record, **filters) -> bool:
    return all(
        getattr(record, key) == value
        for key, value in filters.items()
        if value is not None
    )


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.contents: Dict[str, ContentRecord] = {}
        self.saved_items: Dict[str, SavedItemRecord] = {}
        self.card_features: Dict[str, CardFeatureRecord] = {}
        self.videos: Dict[str, VideoRecord] = {}
        self.tokens: Dict[str, OAuthTokenRecord] = {}
        self.connections: Dict[str, ConnectionRecord] = {}
        self.mappings: Dict[str, FileMappingRecord] = {}
        self.pull_requests: Dict[str, PullRequestRecord] = {}
        self.sync_logs: Dict[str, SyncLogRecord] = {}
        self.deliveries: Dict[str, str] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        for table in (
            self.contents,
            self.saved_items,
            self.card_features,
            self.videos,
            self.tokens,
            self.connections,
            self.mappings,
            self.pull_requests,
            self.sync_logs,
            self.deliveries,
        ):
            table.clear()

    # contents

    def insert_content(self, record: ContentRecord) -> ContentRecord:
        self.contents[record.id] = replace(record)
        return replace(record)

    def get_content(self, content_id: str) -> Optional[ContentRecord]:
        record = self.contents.get(content_id)
        return replace(record) if record else None

    def list_contents(
        self,
        *,
        content_type: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "created_at",
        descending: bool = True,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> tuple[list[ContentRecord], int]:
        items = [
            c
            for c in self.contents.values()
            if _matches(c, content_type=content_type, category=category)
        ]
        if search:
            needle = search.lower()
            items = [
                c
                for c in items
                if needle in c.title.lower()
                or needle in (c.description or "").lower()
            ]
        items.sort(key=lambda c: getattr(c, sort_by) or "", reverse=descending)
        total = len(items)
        end = offset + limit if limit is not None else None
        return [replace(c) for c in items[offset:end]], total

    def update_content(self, content_id: str, values: dict) -> Optional[ContentRecord]:
        record = self.contents.get(content_id)
        if not record:
            return None
        updated = replace(record, **values)
        self.contents[content_id] = updated
        return replace(updated)

    def delete_content(self, content_id: str) -> bool:
        return self.contents.pop(content_id, None) is not None

    # saved items

    def insert_saved_item(self, record: SavedItemRecord) -> SavedItemRecord:
        for item in self.saved_items.values():
            if (item.user_id, item.item_type, item.item_id) == (
                record.user_id,
                record.item_type,
                record.item_id,
            ):
                raise DuplicateRecordError("saved item already exists")
        self.saved_items[record.id] = replace(record)
        return replace(record)

    def delete_saved_item(self, user_id: str, item_type: str, item_id: str) -> int:
        doomed = [
            key
            for key, item in self.saved_items.items()
            if _matches(item, user_id=user_id, item_type=item_type, item_id=item_id)
        ]
        for key in doomed:
            del self.saved_items[key]
        return len(doomed)

    def list_saved_items(
        self, user_id: str, item_type: Optional[str] = None
    ) -> list[SavedItemRecord]:
        items = [
            replace(item)
            for item in self.saved_items.values()
            if _matches(item, user_id=user_id, item_type=item_type)
        ]
        items.sort(key=lambda item: item.created_at, reverse=True)
        return items

    def find_saved_item_ids(
        self, user_id: str, item_type: str, item_ids: Iterable[str]
    ) -> list[str]:
        wanted = set(item_ids)
        return [
            item.item_id
            for item in self.saved_items.values()
            if item.user_id == user_id
            and item.item_type == item_type
            and item.item_id in wanted
        ]

    # cards and videos

    def save_card_feature(self, record: CardFeatureRecord) -> None:
        self.card_features[record.id] = replace(record)

    def get_card_feature(self, card_id: str) -> Optional[CardFeatureRecord]:
        record = self.card_features.get(card_id)
        return replace(record) if record else None

    def get_card_features(self, card_ids: Iterable[str]) -> list[CardFeatureRecord]:
        return [
            replace(self.card_features[cid])
            for cid in dict.fromkeys(card_ids)
            if cid in self.card_features
        ]

    def save_video(self, record: VideoRecord) -> None:
        self.videos[record.id] = replace(record)

    def get_videos(self, video_ids: Iterable[str]) -> list[VideoRecord]:
        return [
            replace(self.videos[vid])
            for vid in dict.fromkeys(video_ids)
            if vid in self.videos
        ]

    # oauth tokens

    def get_oauth_token(self, user_id: str) -> Optional[OAuthTokenRecord]:
        record = self.tokens.get(user_id)
        return replace(record) if record else None

    def upsert_oauth_token(
        self, user_id: str, access_token: str, scope: Optional[str]
    ) -> OAuthTokenRecord:
        existing = self.tokens.get(user_id)
        if existing:
            record = replace(
                existing, access_token=access_token, scope=scope, updated_at=utc_now()
            )
        else:
            record = OAuthTokenRecord(
                user_id=user_id, access_token=access_token, scope=scope
            )
        self.tokens[user_id] = record
        return replace(record)

    def delete_oauth_token(self, user_id: str) -> bool:
        return self.tokens.pop(user_id, None) is not None

    # connections

    def insert_connection(self, record: ConnectionRecord) -> ConnectionRecord:
        for conn in self.connections.values():
            if (
                conn.project_id == record.project_id
                and conn.github_owner.lower() == record.github_owner.lower()
                and conn.github_repo.lower() == record.github_repo.lower()
            ):
                raise DuplicateRecordError("connection already exists")
        self.connections[record.id] = replace(record)
        return replace(record)

    def get_connection(self, connection_id: str) -> Optional[ConnectionRecord]:
        record = self.connections.get(connection_id)
        return replace(record) if record else None

    def list_connections(
        self,
        *,
        project_id: Optional[str] = None,
        owner: Optional[str] = None,
        repo: Optional[str] = None,
    ) -> list[ConnectionRecord]:
        items = []
        for conn in self.connections.values():
            if project_id is not None and conn.project_id != project_id:
                continue
            if owner is not None and conn.github_owner.lower() != owner.lower():
                continue
            if repo is not None and conn.github_repo.lower() != repo.lower():
                continue
            items.append(replace(conn))
        items.sort(key=lambda c: c.created_at)
        return items

    def update_connection(
        self, connection_id: str, values: dict
    ) -> Optional[ConnectionRecord]:
        record = self.connections.get(connection_id)
        if not record:
            return None
        updated = replace(record, **values)
        self.connections[connection_id] = updated
        return replace(updated)

    def delete_connection(self, connection_id: str) -> bool:
        if self.connections.pop(connection_id, None) is None:
            return False
        self.delete_mappings(connection_id=connection_id)
        return True

    # file mappings

    def _find_mapping_key(self, project_id: str, file_path: str) -> Optional[str]:
        for key, mapping in self.mappings.items():
            if mapping.project_id == project_id and mapping.file_path == file_path:
                return key
        return None

    def insert_mappings(
        self, records: list[FileMappingRecord]
    ) -> list[FileMappingRecord]:
        seen = set()
        for record in records:
            key = (record.project_id, record.file_path)
            if key in seen or self._find_mapping_key(*key):
                raise DuplicateRecordError("file mapping already exists")
            seen.add(key)
        for record in records:
            self.mappings[record.id] = replace(record)
        return [replace(r) for r in records]

    def upsert_mappings(
        self, records: list[FileMappingRecord]
    ) -> list[FileMappingRecord]:
        stored = []
        for record in records:
            key = self._find_mapping_key(record.project_id, record.file_path)
            if key:
                existing = self.mappings[key]
                record = replace(record, id=existing.id, created_at=existing.created_at)
                self.mappings[key] = record
            else:
                record = replace(record)
                self.mappings[record.id] = record
            stored.append(replace(record))
        return stored

    def get_mapping(self, mapping_id: str) -> Optional[FileMappingRecord]:
        record = self.mappings.get(mapping_id)
        return replace(record) if record else None

    def list_mappings(
        self,
        *,
        project_id: Optional[str] = None,
        card_feature_id: Optional[str] = None,
        connection_id: Optional[str] = None,
        file_path: Optional[str] = None,
    ) -> list[FileMappingRecord]:
        items = [
            replace(m)
            for m in self.mappings.values()
            if _matches(
                m,
                project_id=project_id,
                card_feature_id=card_feature_id,
                connection_id=connection_id,
                file_path=file_path,
            )
        ]
        items.sort(key=lambda m: m.file_path)
        return items

    def update_mappings(self, values: dict, **filters: str) -> list[FileMappingRecord]:
        _check_mapping_filters(filters)
        updated = []
        for key, mapping in self.mappings.items():
            if _matches(mapping, **filters):
                self.mappings[key] = replace(mapping, **values)
                updated.append(replace(self.mappings[key]))
        return updated

    def delete_mappings(self, **filters: str) -> int:
        _check_mapping_filters(filters)
        doomed = [k for k, m in self.mappings.items() if _matches(m, **filters)]
        for key in doomed:
            del self.mappings[key]
        return len(doomed)

    # pull requests

    def insert_pull_request(self, record: PullRequestRecord) -> PullRequestRecord:
        self.pull_requests[record.id] = replace(record)
        return replace(record)

    def list_pull_requests(
        self, connection_id: str, limit: int = 20
    ) -> list[PullRequestRecord]:
        items = [
            replace(pr)
            for pr in self.pull_requests.values()
            if pr.connection_id == connection_id
        ]
        items.sort(key=lambda pr: pr.created_at, reverse=True)
        return items[:limit]

    def update_pull_request(
        self, connection_id: str, pr_number: int, values: dict
    ) -> Optional[PullRequestRecord]:
        for key, pr in self.pull_requests.items():
            if pr.connection_id == connection_id and pr.pr_number == pr_number:
                self.pull_requests[key] = replace(pr, **values)
                return replace(self.pull_requests[key])
        return None

    # sync logs

    def insert_sync_log(self, record: SyncLogRecord) -> SyncLogRecord:
        self.sync_logs[record.id] = replace(record)
        return replace(record)

    def list_sync_logs(self, connection_id: str, limit: int = 50) -> list[SyncLogRecord]:
        items = [
            replace(log)
            for log in self.sync_logs.values()
            if log.connection_id == connection_id
        ]
        items.sort(key=lambda log: log.created_at, reverse=True)
        return items[:limit]

    # webhook deliveries

    def record_delivery(self, delivery_id: str, event_type: str) -> bool:
        if delivery_id in self.deliveries:
            return False
        self.deliveries[delivery_id] = event_type
        return True

    def forget_delivery(self, delivery_id: str) -> None:
        self.deliveries.pop(delivery_id, None)


def _check_mapping_filters(filters: dict) -> None:
    unknown = set(filters) - set(_MAPPING_FILTERS)
    if unknown:
        raise ValueError(f"Unsupported mapping filters: {sorted(unknown)}")
    if not any(v is not None for v in filters.values()):
        raise ValueError("At least one mapping filter is required")


def _row_to_record(row, record_cls):
    return record_cls(**{f.name: getattr(row, f.name) for f in fields(record_cls)})


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., the
    Supabase Postgres connection string, or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _insert(self, row_cls, record):
        with self.Session() as session:
            session.add(row_cls(**record.as_dict()))
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError(str(exc.orig)) from exc
        return record

    def _update(self, row_cls, key, values: dict, record_cls):
        with self.Session() as session:
            row = session.get(row_cls, key)
            if not row:
                return None
            for name, value in values.items():
                setattr(row, name, value)
            session.commit()
            return _row_to_record(row, record_cls)

    # contents

    def insert_content(self, record: ContentRecord) -> ContentRecord:
        return self._insert(ContentRow, record)

    def get_content(self, content_id: str) -> Optional[ContentRecord]:
        with self.Session() as session:
            row = session.get(ContentRow, content_id)
            return _row_to_record(row, ContentRecord) if row else None

    def list_contents(
        self,
        *,
        content_type: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "created_at",
        descending: bool = True,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> tuple[list[ContentRecord], int]:
        stmt = select(ContentRow)
        if content_type:
            stmt = stmt.where(ContentRow.content_type == content_type)
        if category:
            stmt = stmt.where(ContentRow.category == category)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(
                    ContentRow.title.ilike(pattern),
                    ContentRow.description.ilike(pattern),
                )
            )
        column = getattr(ContentRow, sort_by)
        with self.Session() as session:
            total = session.execute(
                select(func.count()).select_from(stmt.subquery())
            ).scalar_one()
            stmt = stmt.order_by(column.desc() if descending else column.asc())
            stmt = stmt.offset(offset)
            if limit is not None:
                stmt = stmt.limit(limit)
            rows = session.execute(stmt).scalars().all()
            return [_row_to_record(r, ContentRecord) for r in rows], total

    def update_content(self, content_id: str, values: dict) -> Optional[ContentRecord]:
        return self._update(ContentRow, content_id, values, ContentRecord)

    def delete_content(self, content_id: str) -> bool:
        with self.Session() as session:
            result = session.execute(delete(ContentRow).where(ContentRow.id == content_id))
            session.commit()
            return bool(result.rowcount)

    # saved items

    def insert_saved_item(self, record: SavedItemRecord) -> SavedItemRecord:
        return self._insert(SavedItemRow, record)

    def delete_saved_item(self, user_id: str, item_type: str, item_id: str) -> int:
        with self.Session() as session:
            result = session.execute(
                delete(SavedItemRow).where(
                    SavedItemRow.user_id == user_id,
                    SavedItemRow.item_type == item_type,
                    SavedItemRow.item_id == item_id,
                )
            )
            session.commit()
            return result.rowcount or 0

    def list_saved_items(
        self, user_id: str, item_type: Optional[str] = None
    ) -> list[SavedItemRecord]:
        stmt = select(SavedItemRow).where(SavedItemRow.user_id == user_id)
        if item_type:
            stmt = stmt.where(SavedItemRow.item_type == item_type)
        stmt = stmt.order_by(SavedItemRow.created_at.desc())
        with self.Session() as session:
            rows = session.execute(stmt).scalars().all()
            return [_row_to_record(r, SavedItemRecord) for r in rows]

    def find_saved_item_ids(
        self, user_id: str, item_type: str, item_ids: Iterable[str]
    ) -> list[str]:
        ids = list(item_ids)
        if not ids:
            return []
        stmt = select(SavedItemRow.item_id).where(
            SavedItemRow.user_id == user_id,
            SavedItemRow.item_type == item_type,
            SavedItemRow.item_id.in_(ids),
        )
        with self.Session() as session:
            return list(session.execute(stmt).scalars().all())

    # cards and videos

    def save_card_feature(self, record: CardFeatureRecord) -> None:
        with self.Session() as session:
            session.merge(CardFeatureRow(**record.as_dict()))
            session.commit()

    def get_card_feature(self, card_id: str) -> Optional[CardFeatureRecord]:
        with self.Session() as session:
            row = session.get(CardFeatureRow, card_id)
            return _row_to_record(row, CardFeatureRecord) if row else None

    def get_card_features(self, card_ids: Iterable[str]) -> list[CardFeatureRecord]:
        ids = list(card_ids)
        if not ids:
            return []
        with self.Session() as session:
            rows = session.execute(
                select(CardFeatureRow).where(CardFeatureRow.id.in_(ids))
            ).scalars().all()
            return [_row_to_record(r, CardFeatureRecord) for r in rows]

    def save_video(self, record: VideoRecord) -> None:
        with self.Session() as session:
            session.merge(VideoRow(**record.as_dict()))
            session.commit()

    def get_videos(self, video_ids: Iterable[str]) -> list[VideoRecord]:
        ids = list(video_ids)
        if not ids:
            return []
        with self.Session() as session:
            rows = session.execute(
                select(VideoRow).where(VideoRow.id.in_(ids))
            ).scalars().all()
            return [_row_to_record(r, VideoRecord) for r in rows]

    # oauth tokens

    def get_oauth_token(self, user_id: str) -> Optional[OAuthTokenRecord]:
        with self.Session() as session:
            row = session.execute(
                select(OAuthTokenRow).where(OAuthTokenRow.user_id == user_id)
            ).scalar_one_or_none()
            return _row_to_record(row, OAuthTokenRecord) if row else None

    def upsert_oauth_token(
        self, user_id: str, access_token: str, scope: Optional[str]
    ) -> OAuthTokenRecord:
        with self.Session() as session:
            row = session.execute(
                select(OAuthTokenRow).where(OAuthTokenRow.user_id == user_id)
            ).scalar_one_or_none()
            if row:
                row.access_token = access_token
                row.scope = scope
                row.updated_at = utc_now()
            else:
                row = OAuthTokenRow(
                    **OAuthTokenRecord(
                        user_id=user_id, access_token=access_token, scope=scope
                    ).as_dict()
                )
                session.add(row)
            session.commit()
            return _row_to_record(row, OAuthTokenRecord)

    def delete_oauth_token(self, user_id: str) -> bool:
        with self.Session() as session:
            result = session.execute(
                delete(OAuthTokenRow).where(OAuthTokenRow.user_id == user_id)
            )
            session.commit()
            return bool(result.rowcount)

    # connections

    def insert_connection(self, record: ConnectionRecord) -> ConnectionRecord:
        with self.Session() as session:
            clash = session.execute(
                select(ConnectionRow.id).where(
                    ConnectionRow.project_id == record.project_id,
                    func.lower(ConnectionRow.github_owner) == record.github_owner.lower(),
                    func.lower(ConnectionRow.github_repo) == record.github_repo.lower(),
                )
            ).first()
        if clash:
            raise DuplicateRecordError("connection already exists")
        return self._insert(ConnectionRow, record)

    def get_connection(self, connection_id: str) -> Optional[ConnectionRecord]:
        with self.Session() as session:
            row = session.get(ConnectionRow, connection_id)
            return _row_to_record(row, ConnectionRecord) if row else None

    def list_connections(
        self,
        *,
        project_id: Optional[str] = None,
        owner: Optional[str] = None,
        repo: Optional[str] = None,
    ) -> list[ConnectionRecord]:
        stmt = select(ConnectionRow)
        if project_id is not None:
            stmt = stmt.where(ConnectionRow.project_id == project_id)
        if owner is not None:
            stmt = stmt.where(func.lower(ConnectionRow.github_owner) == owner.lower())
        if repo is not None:
            stmt = stmt.where(func.lower(ConnectionRow.github_repo) == repo.lower())
        stmt = stmt.order_by(ConnectionRow.created_at.asc())
        with self.Session() as session:
            rows = session.execute(stmt).scalars().all()
            return [_row_to_record(r, ConnectionRecord) for r in rows]

    def update_connection(
        self, connection_id: str, values: dict
    ) -> Optional[ConnectionRecord]:
        return self._update(ConnectionRow, connection_id, values, ConnectionRecord)

    def delete_connection(self, connection_id: str) -> bool:
        with self.Session() as session:
            session.execute(
                delete(FileMappingRow).where(FileMappingRow.connection_id == connection_id)
            )
            result = session.execute(
                delete(ConnectionRow).where(ConnectionRow.id == connection_id)
            )
            session.commit()
            return bool(result.rowcount)

    # file mappings

    def insert_mappings(
        self, records: list[FileMappingRecord]
    ) -> list[FileMappingRecord]:
        with self.Session() as session:
            session.add_all(FileMappingRow(**r.as_dict()) for r in records)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError(str(exc.orig)) from exc
        return records

    def upsert_mappings(
        self, records: list[FileMappingRecord]
    ) -> list[FileMappingRecord]:
        stored = []
        with self.Session() as session:
            for record in records:
                row = session.execute(
                    select(FileMappingRow).where(
                        FileMappingRow.project_id == record.project_id,
                        FileMappingRow.file_path == record.file_path,
                    )
                ).scalar_one_or_none()
                if row:
                    values = record.as_dict()
                    values.pop("id")
                    values.pop("created_at")
                    for name, value in values.items():
                        setattr(row, name, value)
                else:
                    row = FileMappingRow(**record.as_dict())
                    session.add(row)
                session.flush()
                stored.append(_row_to_record(row, FileMappingRecord))
            session.commit()
        return stored

    def get_mapping(self, mapping_id: str) -> Optional[FileMappingRecord]:
        with self.Session() as session:
            row = session.get(FileMappingRow, mapping_id)
            return _row_to_record(row, FileMappingRecord) if row else None

    def _mapping_conditions(self, filters: dict) -> list:
        _check_mapping_filters(filters)
        return [
            getattr(FileMappingRow, key) == value
            for key, value in filters.items()
            if value is not None
        ]

    def list_mappings(
        self,
        *,
        project_id: Optional[str] = None,
        card_feature_id: Optional[str] = None,
        connection_id: Optional[str] = None,
        file_path: Optional[str] = None,
    ) -> list[FileMappingRecord]:
        filters = {
            "project_id": project_id,
            "card_feature_id": card_feature_id,
            "connection_id": connection_id,
            "file_path": file_path,
        }
        conditions = [
            getattr(FileMappingRow, key) == value
            for key, value in filters.items()
            if value is not None
        ]
        stmt = select(FileMappingRow).where(*conditions).order_by(
            FileMappingRow.file_path.asc()
        )
        with self.Session() as session:
            rows = session.execute(stmt).scalars().all()
            return [_row_to_record(r, FileMappingRecord) for r in rows]

    def update_mappings(self, values: dict, **filters: str) -> list[FileMappingRecord]:
        conditions = self._mapping_conditions(filters)
        with self.Session() as session:
            rows = session.execute(
                select(FileMappingRow).where(*conditions)
            ).scalars().all()
            for row in rows:
                for name, value in values.items():
                    setattr(row, name, value)
            session.commit()
            return [_row_to_record(r, FileMappingRecord) for r in rows]

    def delete_mappings(self, **filters: str) -> int:
        conditions = self._mapping_conditions(filters)
        with self.Session() as session:
            result = session.execute(delete(FileMappingRow).where(*conditions))
            session.commit()
            return result.rowcount or 0

    # pull requests

    def insert_pull_request(self, record: PullRequestRecord) -> PullRequestRecord:
        return self._insert(PullRequestRow, record)

    def list_pull_requests(
        self, connection_id: str, limit: int = 20
    ) -> list[PullRequestRecord]:
        stmt = (
            select(PullRequestRow)
            .where(PullRequestRow.connection_id == connection_id)
            .order_by(PullRequestRow.created_at.desc())
            .limit(limit)
        )
        with self.Session() as session:
            rows = session.execute(stmt).scalars().all()
            return [_row_to_record(r, PullRequestRecord) for r in rows]

    def update_pull_request(
        self, connection_id: str, pr_number: int, values: dict
    ) -> Optional[PullRequestRecord]:
        with self.Session() as session:
            row = session.execute(
                select(PullRequestRow).where(
                    PullRequestRow.connection_id == connection_id,
                    PullRequestRow.pr_number == pr_number,
                )
            ).scalars().first()
            if not row:
                return None
            for name, value in values.items():
                setattr(row, name, value)
            session.commit()
            return _row_to_record(row, PullRequestRecord)

    # sync logs

    def insert_sync_log(self, record: SyncLogRecord) -> SyncLogRecord:
        return self._insert(SyncLogRow, record)

    def list_sync_logs(self, connection_id: str, limit: int = 50) -> list[SyncLogRecord]:
        stmt = (
            select(SyncLogRow)
            .where(SyncLogRow.connection_id == connection_id)
            .order_by(SyncLogRow.created_at.desc())
            .limit(limit)
        )
        with self.Session() as session:
            rows = session.execute(stmt).scalars().all()
            return [_row_to_record(r, SyncLogRecord) for r in rows]

    # webhook deliveries

    def record_delivery(self, delivery_id: str, event_type: str) -> bool:
        with self.Session() as session:
            session.add(
                WebhookDeliveryRow(
                    delivery_id=delivery_id,
                    event_type=event_type,
                    received_at=utc_now(),
                )
            )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
            return True

    def forget_delivery(self, delivery_id: str) -> None:
        with self.Session() as session:
            session.execute(
                delete(WebhookDeliveryRow).where(
                    WebhookDeliveryRow.delivery_id == delivery_id
                )
            )
            session.commit()


Base = declarative_base()


class ContentRow(Base):
    __tablename__ = "contents"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    youtube_url = Column(String, nullable=True)
    video_id = Column(String, nullable=True)
    thumbnail = Column(String, nullable=True)
    category = Column(String, nullable=True, index=True)
    tags = Column(JSON, nullable=True)
    selected_card_feature_id = Column(String, nullable=True)
    content_type = Column(String, nullable=False, default="video", index=True)
    file_url = Column(String, nullable=True)
    file_type = Column(String, nullable=True)
    file_size = Column(Integer, nullable=True)
    markdown_content = Column(Text, nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class SavedItemRow(Base):
    __tablename__ = "saved_items"
    __table_args__ = (UniqueConstraint("user_id", "item_type", "item_id"),)

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    item_type = Column(String, nullable=False)
    item_id = Column(String, nullable=False)
    created_at = Column(String, nullable=False)


class CardFeatureRow(Base):
    __tablename__ = "card_features"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    tech = Column(String, nullable=True)
    language = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    content_type = Column(String, nullable=True)
    card_type = Column(String, nullable=True)
    screens = Column(JSON, nullable=True)
    created_by = Column(String, nullable=True)
    is_private = Column(Boolean, nullable=False, default=False)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class VideoRow(Base):
    __tablename__ = "videos"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    youtube_url = Column(String, nullable=True)
    video_id = Column(String, nullable=True)
    thumbnail = Column(String, nullable=True)
    category = Column(String, nullable=True)
    created_at = Column(String, nullable=False)


class OAuthTokenRow(Base):
    __tablename__ = "github_oauth_tokens"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, unique=True)
    access_token = Column(String, nullable=False)
    scope = Column(String, nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class ConnectionRow(Base):
    __tablename__ = "gitsync_connections"
    __table_args__ = (UniqueConstraint("project_id", "github_owner", "github_repo"),)

    id = Column(String, primary_key=True)
    project_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False)
    github_owner = Column(String, nullable=False)
    github_repo = Column(String, nullable=False)
    default_branch = Column(String, nullable=False, default="main")
    is_active = Column(Boolean, nullable=False, default=True)
    last_sync_at = Column(String, nullable=True)
    created_at = Column(String, nullable=False)


class FileMappingRow(Base):
    __tablename__ = "gitsync_file_mappings"
    __table_args__ = (UniqueConstraint("project_id", "file_path"),)

    id = Column(String, primary_key=True)
    connection_id = Column(String, nullable=False, index=True)
    project_id = Column(String, nullable=False, index=True)
    card_feature_id = Column(String, nullable=False, index=True)
    file_path = Column(String, nullable=False)
    branch_name = Column(String, nullable=False, default="main")
    last_commit_sha = Column(String, nullable=True)
    last_synced_at = Column(String, nullable=True)
    card_modified_at = Column(String, nullable=True)
    created_at = Column(String, nullable=False)


class PullRequestRow(Base):
    __tablename__ = "gitsync_pull_requests"

    id = Column(String, primary_key=True)
    connection_id = Column(String, nullable=False, index=True)
    card_feature_id = Column(String, nullable=True)
    pr_number = Column(Integer, nullable=False)
    pr_title = Column(String, nullable=False)
    pr_url = Column(String, nullable=True)
    pr_state = Column(String, nullable=False, default="open")
    source_branch = Column(String, nullable=False)
    target_branch = Column(String, nullable=False)
    merged_at = Column(String, nullable=True)
    created_at = Column(String, nullable=False)


class SyncLogRow(Base):
    __tablename__ = "gitsync_sync_logs"

    id = Column(String, primary_key=True)
    connection_id = Column(String, nullable=False, index=True)
    direction = Column(String, nullable=False)
    event_type = Column(String, nullable=True)
    status = Column(String, nullable=False)
    error_message = Column(Text, nullable=True)
    created_at = Column(String, nullable=False)


class WebhookDeliveryRow(Base):
    __tablename__ = "gitsync_webhook_deliveries"

    delivery_id = Column(String, primary_key=True)
    event_type = Column(String, nullable=False)
    received_at = Column(String, nullable=False)
