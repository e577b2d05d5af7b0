"""
SQLAlchemy ORM models for the ClipTrace history store.
"""
import json
from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, String, Text, create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


class Clip(Base):
    """
    One captured copy event, with the anchor needed to find the text again.
    """
    __tablename__ = 'clips'

    id = Column(String(64), primary_key=True)
    text = Column(Text, nullable=False)
    url = Column(String(2048), nullable=True, index=True)
    page_title = Column(String(1024), nullable=True)
    favicon = Column(String(2048), nullable=True)
    timestamp = Column(BigInteger, nullable=False, index=True)  # ms since epoch
    selection_info = Column(Text, nullable=True)  # JSON anchor dict
    tags = Column(Text, nullable=True)  # JSON list
    created_at = Column(DateTime, default=datetime.utcnow)

    def __init__(self, id: str, text: str, url: str = None, page_title: str = None,
                 favicon: str = None, timestamp: int = None, selection_info: dict = None,
                 tags: list = None):
        self.id = id
        self.text = text
        self.url = url
        self.page_title = page_title
        self.favicon = favicon
        self.timestamp = timestamp
        self.selection_info = json.dumps(selection_info) if selection_info is not None else None
        self.tags = json.dumps(tags or [])
        self.created_at = datetime.utcnow()

    @property
    def selection_info_dict(self):
        try:
            return json.loads(self.selection_info) if self.selection_info else None
        except json.JSONDecodeError:
            return None

    @property
    def tags_list(self):
        try:
            return json.loads(self.tags) if self.tags else []
        except json.JSONDecodeError:
            return []

    def to_dict(self) -> dict:
        """Record shape shared with the browser side (camelCase keys)."""
        return {
            'id': self.id,
            'text': self.text,
            'url': self.url,
            'pageTitle': self.page_title,
            'favicon': self.favicon or '',
            'timestamp': self.timestamp,
            'selectionInfo': self.selection_info_dict,
            'tags': self.tags_list,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Clip":
        return cls(
            id=data['id'],
            text=data['text'],
            url=data.get('url'),
            page_title=data.get('pageTitle'),
            favicon=data.get('favicon'),
            timestamp=int(data.get('timestamp') or 0),
            selection_info=data.get('selectionInfo'),
            tags=data.get('tags') or [],
        )

    def __repr__(self):
        return f"<Clip(id='{self.id}', url='{self.url}', text='{(self.text or '')[:30]}')>"


class Setting(Base):
    """
    Setting model storing application configuration.
    """
    __tablename__ = 'settings'

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=True)

    def __init__(self, key: str, value: str = None):
        self.key = key
        self.value = value

    def __repr__(self):
        return f"<Setting(key='{self.key}', value='{self.value}')>"


class DatabaseManager:
    """
    Owns the SQLAlchemy engine and session factory for one SQLite file.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.engine = create_engine(
            f'sqlite:///{db_path}',
            echo=False,
            connect_args={'timeout': 30, 'check_same_thread': False}
        )

        @event.listens_for(self.engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

        self.SessionLocal = sessionmaker(bind=self.engine)
        Base.metadata.create_all(self.engine)

    def get_session(self):
        """Get a new database session."""
        return self.SessionLocal()

    def close(self):
        """Close the database engine."""
        self.engine.dispose()
