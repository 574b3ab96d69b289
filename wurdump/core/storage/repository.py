"""Repository for bounded, deduplicated clipboard history"""

import json
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from loguru import logger

from .database import ClipboardItemDB, DatabaseManager
from ..clipboard.classifier import ContentClassifier
from ..clipboard.item import ClipboardItem, ContentType
from ..errors import StorageError

MAX_ITEMS = 20
DUPLICATE_WINDOW = timedelta(hours=1)


def utc_now() -> datetime:
    """Naive UTC timestamp; local wall time can move backwards"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ClipboardRepository:
    """Repository for clipboard history with dedup and retention"""

    def __init__(self, database_manager: DatabaseManager,
                 classifier: Optional[ContentClassifier] = None,
                 max_items: int = MAX_ITEMS,
                 duplicate_window: timedelta = DUPLICATE_WINDOW,
                 clock: Callable[[], datetime] = utc_now):
        """
        Initialize repository

        Args:
            database_manager: DatabaseManager instance
            classifier: Classifier used to annotate inserted items
            max_items: Number of most recent items retained after every insert
            duplicate_window: Window in which identical content is not stored again
            clock: Source of naive UTC capture timestamps
        """
        if max_items < 1:
            raise ValueError("max_items must be at least 1")

        self.db_manager = database_manager
        self.classifier = classifier or ContentClassifier()
        self.max_items = max_items
        self.duplicate_window = duplicate_window
        self.clock = clock
        self._lock = threading.RLock()

    @contextmanager
    def get_session(self):
        """Get a new database session with proper cleanup"""
        with self._lock:
            session = self.db_manager.get_session()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def insert_if_new(self, content: str) -> Optional[ClipboardItem]:
        """
        Classify and store content unless it was captured recently

        Args:
            content: Clipboard text

        Returns:
            The stored item, or None when the content is a recent duplicate

        Raises:
            StorageError: The write failed
        """
        info = self.classifier.classify(content)
        content_hash = ClipboardItem.calculate_hash(content)

        try:
            with self.get_session() as session:
                now = self.clock()
                if self._exists_recently(session, content, content_hash, now):
                    logger.debug(f"Skipping recent duplicate: {content_hash[:8]}")
                    return None

                db_item = ClipboardItemDB(
                    id=str(uuid.uuid4()),
                    content=content,
                    content_hash=content_hash,
                    content_type=info.content_type.value,
                    code_language=info.code_language,
                    source_app=info.source_app,
                    timestamp=now,
                    size=info.size,
                    is_favorite=False,
                    tags='[]',
                    preview=info.preview
                )
                session.add(db_item)
                session.flush()

                self._retain_latest(session, self.max_items)
                item = self._to_item(db_item)

        except SQLAlchemyError as e:
            logger.error(f"Failed to store clipboard item: {e}")
            raise StorageError("Failed to store clipboard item", e) from e

        logger.info(f"Stored clipboard item: {item.size} chars, type: {item.content_type.value}")
        return item

    def exists_recently(self, content: str) -> bool:
        """
        Check whether identical content was stored within the duplicate window

        Args:
            content: Clipboard text

        Returns:
            True if a matching item is younger than the window
        """
        content_hash = ClipboardItem.calculate_hash(content)
        try:
            with self.get_session() as session:
                return self._exists_recently(session, content, content_hash, self.clock())
        except SQLAlchemyError as e:
            logger.error(f"Failed to check if content exists: {e}")
            raise StorageError("Failed to check if content exists", e) from e

    def _exists_recently(self, session: Session, content: str, content_hash: str,
                         now: datetime) -> bool:
        cutoff = now - self.duplicate_window
        candidates = session.query(ClipboardItemDB.content).filter(
            ClipboardItemDB.content_hash == content_hash,
            ClipboardItemDB.timestamp > cutoff
        ).all()
        # The fingerprint narrows the scan; equality decides
        return any(row.content == content for row in candidates)

    def _retain_latest(self, session: Session, keep: int) -> int:
        """Delete every item except the `keep` most recent ones"""
        keep_ids = [
            row.id for row in session.query(ClipboardItemDB.id).order_by(
                ClipboardItemDB.timestamp.desc(),
                ClipboardItemDB.seq.desc()
            ).limit(keep)
        ]

        query = session.query(ClipboardItemDB)
        if keep_ids:
            query = query.filter(~ClipboardItemDB.id.in_(keep_ids))
        deleted = query.delete(synchronize_session=False)

        if deleted:
            logger.debug(f"Cleaned up {deleted} old clipboard items to maintain {keep}-item limit")
        return deleted

    def list(self, limit: int = 50, offset: int = 0) -> List[ClipboardItem]:
        """
        Get clipboard history, newest first

        Args:
            limit: Maximum number of items
            offset: Number of items to skip

        Returns:
            List of clipboard items
        """
        try:
            with self.get_session() as session:
                db_items = session.query(ClipboardItemDB).order_by(
                    ClipboardItemDB.timestamp.desc(),
                    ClipboardItemDB.seq.desc()
                ).limit(limit).offset(offset).all()
                return [self._to_item(db_item) for db_item in db_items]

        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch clipboard history: {e}")
            raise StorageError("Failed to fetch clipboard history", e) from e

    def get(self, item_id: str) -> Optional[ClipboardItem]:
        """Get a single item by id"""
        try:
            with self.get_session() as session:
                db_item = session.query(ClipboardItemDB).filter_by(id=item_id).first()
                return self._to_item(db_item) if db_item else None

        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch clipboard item {item_id}: {e}")
            raise StorageError(f"Failed to fetch clipboard item {item_id}", e) from e

    def search(self, query: str, limit: int = 50) -> List[ClipboardItem]:
        """
        Case-insensitive substring search over item content

        Args:
            query: Text to look for
            limit: Maximum number of results

        Returns:
            Matching items, newest first
        """
        if not query.strip():
            return []

        pattern = '%' + query.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_') + '%'
        try:
            with self.get_session() as session:
                db_items = session.query(ClipboardItemDB).filter(
                    ClipboardItemDB.content.ilike(pattern, escape='\\')
                ).order_by(
                    ClipboardItemDB.timestamp.desc(),
                    ClipboardItemDB.seq.desc()
                ).limit(limit).all()
                return [self._to_item(db_item) for db_item in db_items]

        except SQLAlchemyError as e:
            logger.error(f"Search failed: {e}")
            raise StorageError("Search failed", e) from e

    def delete(self, item_id: str) -> bool:
        """
        Delete item by id

        Args:
            item_id: Identifier of the item

        Returns:
            True if an item was removed, False if it did not exist
        """
        try:
            with self.get_session() as session:
                deleted = session.query(ClipboardItemDB).filter_by(id=item_id).delete(
                    synchronize_session=False
                )

        except SQLAlchemyError as e:
            logger.error(f"Failed to delete clipboard item: {e}")
            raise StorageError("Failed to delete clipboard item", e) from e

        if deleted:
            logger.info(f"Deleted clipboard item: {item_id}")
        return bool(deleted)

    def clear(self) -> int:
        """
        Remove every item

        Returns:
            Number of items removed
        """
        try:
            with self.get_session() as session:
                deleted = session.query(ClipboardItemDB).delete(synchronize_session=False)

        except SQLAlchemyError as e:
            logger.error(f"Failed to clear clipboard history: {e}")
            raise StorageError("Failed to clear clipboard history", e) from e

        logger.info("Cleared all clipboard history")
        return deleted

    def count(self) -> int:
        """
        Get total number of stored items

        Returns:
            Number of items
        """
        try:
            with self.get_session() as session:
                return session.query(ClipboardItemDB).count()

        except SQLAlchemyError as e:
            logger.error(f"Failed to get item count: {e}")
            raise StorageError("Failed to get item count", e) from e

    def toggle_favorite(self, item_id: str) -> Optional[bool]:
        """
        Toggle favorite status of an item

        Args:
            item_id: Identifier of the item

        Returns:
            New favorite state, or None if the item does not exist
        """
        try:
            with self.get_session() as session:
                db_item = session.query(ClipboardItemDB).filter_by(id=item_id).first()
                if db_item is None:
                    return None

                db_item.is_favorite = not db_item.is_favorite
                new_state = db_item.is_favorite

        except SQLAlchemyError as e:
            logger.error(f"Failed to toggle favorite: {e}")
            raise StorageError("Failed to toggle favorite", e) from e

        logger.debug(f"Toggled favorite: {item_id} -> {new_state}")
        return new_state

    def set_tags(self, item_id: str, tags: List[str]) -> bool:
        """
        Replace the tags of an item

        Args:
            item_id: Identifier of the item
            tags: New tag list (blank and repeated tags are dropped)

        Returns:
            True if the item exists
        """
        cleaned = []
        for tag in tags:
            tag = tag.strip()
            if tag and tag not in cleaned:
                cleaned.append(tag)

        try:
            with self.get_session() as session:
                db_item = session.query(ClipboardItemDB).filter_by(id=item_id).first()
                if db_item is None:
                    return False
                db_item.tags = json.dumps(cleaned)

        except SQLAlchemyError as e:
            logger.error(f"Failed to update tags: {e}")
            raise StorageError("Failed to update tags", e) from e

        return True

    @staticmethod
    def _to_item(db_item: ClipboardItemDB) -> ClipboardItem:
        try:
            tags = json.loads(db_item.tags) if db_item.tags else []
        except ValueError:
            logger.warning(f"Discarding malformed tags on item {db_item.id}")
            tags = []

        return ClipboardItem(
            id=db_item.id,
            content=db_item.content,
            content_type=ContentType(db_item.content_type),
            timestamp=db_item.timestamp,
            size=db_item.size,
            preview=db_item.preview,
            code_language=db_item.code_language,
            source_app=db_item.source_app,
            is_favorite=bool(db_item.is_favorite),
            tags=tags
        )
