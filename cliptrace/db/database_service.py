"""
SQLAlchemy database service for the clip history and settings.
"""
import json
import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from sqlalchemy import func, or_

from cliptrace.db.models import Clip, DatabaseManager, Setting

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY_ITEMS = 1000


def today_start_ms(now: datetime = None) -> int:
    """Local midnight of the current day, in ms since epoch."""
    now = now or datetime.now()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return int(midnight.timestamp() * 1000)


class DatabaseService:
    """
    Model-level access to the clips and settings tables.

    Returned models are expunged from their session so callers can keep
    using them after the session closes.
    """

    def __init__(self, db_path: str, max_history_items: int = DEFAULT_MAX_HISTORY_ITEMS):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.max_history_items = max_history_items
        self.db_manager = DatabaseManager(str(self.db_path))

    @contextmanager
    def get_session(self):
        """Context manager for database sessions with automatic commit/rollback."""
        session = self.db_manager.get_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            session.close()

    def close(self):
        self.db_manager.close()

    # Setting operations
    def get_setting(self, key: str, default: str = None) -> Optional[str]:
        """Get a setting value by key."""
        with self.get_session() as session:
            setting = session.query(Setting).filter(Setting.key == key).first()
            if setting:
                return setting.value
            return default

    def set_setting(self, key: str, value: str) -> Setting:
        """Set a setting value."""
        with self.get_session() as session:
            setting = session.query(Setting).filter(Setting.key == key).first()
            if setting is None:
                setting = Setting(key=key)
                session.add(setting)
            setting.value = str(value) if value is not None else None
            session.flush()
            session.refresh(setting)
            session.expunge(setting)
            return setting

    def get_all_settings(self) -> dict:
        """Get all settings as a dictionary."""
        with self.get_session() as session:
            return {s.key: s.value for s in session.query(Setting).all()}

    def delete_setting(self, key: str) -> bool:
        with self.get_session() as session:
            setting = session.query(Setting).filter(Setting.key == key).first()
            if setting:
                session.delete(setting)
                return True
            return False

    # Clip operations
    def is_duplicate_today(self, text: str, url: str, now: datetime = None) -> bool:
        """Same text from the same page already captured since local midnight."""
        with self.get_session() as session:
            existing = session.query(Clip.id).filter(
                Clip.text == text,
                Clip.url == url,
                Clip.timestamp >= today_start_ms(now),
            ).first()
            return existing is not None

    def add_clip(self, clip: Clip, now: datetime = None) -> Optional[Clip]:
        """
        Save a new clip and trim the history to max_history_items.

        Returns None, saving nothing, when the clip duplicates one captured
        from the same page earlier today.
        """
        if self.is_duplicate_today(clip.text, clip.url, now):
            logger.info("Skipping same-day duplicate from same page")
            return None

        with self.get_session() as session:
            session.add(clip)
            session.flush()
            session.refresh(clip)
            session.expunge(clip)

        self._trim_history()
        return clip

    def _trim_history(self) -> int:
        with self.get_session() as session:
            total = session.query(func.count(Clip.id)).scalar() or 0
            excess = total - self.max_history_items
            if excess <= 0:
                return 0

            oldest = session.query(Clip).order_by(Clip.timestamp.asc(), Clip.created_at.asc()).limit(excess).all()
            for clip in oldest:
                session.delete(clip)
            logger.debug(f"Trimmed {len(oldest)} clips beyond history limit")
            return len(oldest)

    def get_clip(self, clip_id: str) -> Optional[Clip]:
        with self.get_session() as session:
            clip = session.query(Clip).filter(Clip.id == clip_id).first()
            if clip:
                session.expunge(clip)
            return clip

    def get_history(self, limit: int = None) -> List[Clip]:
        """All clips, newest first."""
        with self.get_session() as session:
            query = session.query(Clip).order_by(Clip.timestamp.desc(), Clip.created_at.desc())
            if limit:
                query = query.limit(limit)
            clips = query.all()
            for clip in clips:
                session.expunge(clip)
            return clips

    def search_history(self, query: str) -> List[Clip]:
        """Case-insensitive substring search over clip text and page title."""
        if not query:
            return self.get_history()

        escaped = query.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        with self.get_session() as session:
            clips = session.query(Clip).filter(or_(
                func.lower(Clip.text).like(pattern, escape="\\"),
                func.lower(Clip.page_title).like(pattern, escape="\\"),
            )).order_by(Clip.timestamp.desc()).all()
            for clip in clips:
                session.expunge(clip)
            return clips

    def delete_clip(self, clip_id: str) -> bool:
        with self.get_session() as session:
            clip = session.query(Clip).filter(Clip.id == clip_id).first()
            if clip:
                session.delete(clip)
                return True
            return False

    def clear_all(self) -> int:
        with self.get_session() as session:
            return session.query(Clip).delete()

    def count_clips(self) -> int:
        with self.get_session() as session:
            return session.query(func.count(Clip.id)).scalar() or 0

    def export_json(self) -> str:
        """The whole history as a pretty-printed JSON array, newest first."""
        return json.dumps([clip.to_dict() for clip in self.get_history()], indent=2, ensure_ascii=False)

    def import_json(self, payload: str) -> int:
        """
        Replace the history with the clips in a JSON array.

        Raises ValueError when the payload is not a JSON array of clip records.
        """
        try:
            data = json.loads(payload)
        except (TypeError, json.JSONDecodeError) as e:
            raise ValueError(f"Import failed: {e}")

        if not isinstance(data, list):
            raise ValueError("Import failed: Invalid data format")
        for item in data:
            if not isinstance(item, dict) or not item.get('id') or item.get('text') is None:
                raise ValueError("Import failed: Invalid data format")

        with self.get_session() as session:
            session.query(Clip).delete()
            for item in data[:self.max_history_items]:
                session.merge(Clip.from_dict(item))

        logger.info(f"📥 Imported {min(len(data), self.max_history_items)} clips")
        return min(len(data), self.max_history_items)
