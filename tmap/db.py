"""
Tiddler store for tmap.

Provides a minimal document-store API over SQLAlchemy: tiddlers keyed by
title, prefix and filter queries, and batched change notification.
"""
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Generator, Iterable, List, Optional, Union
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import create_engine, select, delete, event, func
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from tmap.models import Base, Tiddler
from tmap.config import get_config
from tmap.filters import CompiledFilter, compile_filter

logger = logging.getLogger(__name__)

ChangeListener = Callable[[Dict[str, Dict[str, bool]]], Any]


class Wiki:
    """
    Tiddler store.

    Writes are recorded as pending changes; :meth:`dispatch_changes`
    delivers them as one batch ``{title: {"modified": True}}`` or
    ``{title: {"deleted": True}}`` to every registered listener.
    """

    def __init__(self, path: Optional[str] = None, url: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            path: Database file path (for SQLite). Uses config default if not provided.
            url: Full database URL (overrides path).

        Examples:
            Wiki()  # Uses config default
            Wiki(path="wiki.db")  # SQLite file
            Wiki(url="sqlite://")  # In-memory
        """
        config = get_config()

        if url:
            self.url = url
            self.path = None
        elif path:
            self.path = Path(path)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.url = f"sqlite:///{self.path}"
        else:
            self.url = config.get_database_url()
            if config.is_sqlite() and not config.database_url:
                self.path = config.get_database_path()
                self.path.parent.mkdir(parents=True, exist_ok=True)
            else:
                self.path = None

        if self.url in ("sqlite://", "sqlite:///:memory:"):
            # A single shared connection keeps the in-memory database alive
            self.engine = create_engine(
                self.url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=config.database_echo
            )
        else:
            self.engine = create_engine(
                self.url,
                connect_args={"check_same_thread": False} if self.url.startswith("sqlite:") else {},
                poolclass=NullPool,
                echo=config.database_echo
            )
        if self.url.startswith("sqlite:"):
            event.listen(self.engine, "connect", self._configure_sqlite)

        self.Session = sessionmaker(bind=self.engine, autoflush=False)
        Base.metadata.create_all(self.engine)

        self._pending: Dict[str, Dict[str, bool]] = {}
        self._listeners: List[ChangeListener] = []

    @staticmethod
    def _configure_sqlite(dbapi_conn, connection_record):
        """Configure SQLite for optimal performance."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode = WAL")
        cursor.execute("PRAGMA synchronous = NORMAL")
        cursor.execute("PRAGMA temp_store = MEMORY")
        cursor.close()

    @contextmanager
    def session(self, expire_on_commit: bool = True) -> Generator[Session, None, None]:
        """
        Context manager for database sessions.

        Yields:
            SQLAlchemy session with automatic commit/rollback
        """
        session = self.Session()
        session.expire_on_commit = expire_on_commit
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def add_change_listener(self, listener: ChangeListener) -> None:
        """Register a callable receiving each batch of changed titles."""
        self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _enqueue_change(self, title: str, deleted: bool = False) -> None:
        self._pending[title] = {"deleted": True} if deleted else {"modified": True}

    def pending_changes(self) -> Dict[str, Dict[str, bool]]:
        """Changes recorded since the last dispatch."""
        return dict(self._pending)

    def dispatch_changes(self) -> Dict[str, Dict[str, bool]]:
        """
        Deliver pending changes to all listeners and clear them.

        Changes caused by listeners during delivery are queued for the
        next dispatch.

        Returns:
            The batch that was delivered
        """
        changes, self._pending = self._pending, {}
        if not changes:
            return changes
        logger.debug(f"Dispatching {len(changes)} changed tiddler(s)")
        for listener in list(self._listeners):
            listener(changes)
        return changes

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def get_tiddler(self, title: Optional[str]) -> Optional[Tiddler]:
        """
        Get a tiddler by title.

        Returns:
            Detached Tiddler instance or None
        """
        if not title:
            return None
        with self.session(expire_on_commit=False) as session:
            return session.get(Tiddler, title)

    def tiddler_exists(self, title: Optional[str]) -> bool:
        """Check whether a tiddler with this title is stored."""
        return self.get_tiddler(title) is not None

    def add_tiddler(self, tiddler: Union[Tiddler, Dict[str, Any]], **overrides) -> Tiddler:
        """
        Add a tiddler or replace the one with the same title.

        Args:
            tiddler: A Tiddler or a field dictionary containing ``title``
            **overrides: Field values applied on top; a value of None removes the field

        Returns:
            The stored tiddler
        """
        if isinstance(tiddler, Tiddler):
            fields = tiddler.to_dict()
            fields["created"] = tiddler.created
        else:
            fields = dict(tiddler)
        fields.update(overrides)

        title = fields.pop("title", None)
        if not title:
            raise ValueError("A tiddler requires a title")

        created = fields.pop("created", None)
        fields.pop("modified", None)
        data = {k: v for k, v in fields.items() if v is not None}

        with self.session(expire_on_commit=False) as session:
            existing = session.get(Tiddler, title)
            now = datetime.now(timezone.utc)
            if existing:
                existing.fields = data
                existing.modified = now
                stored = existing
            else:
                if isinstance(created, str):
                    created = datetime.fromisoformat(created)
                stored = Tiddler(title=title, fields=data, created=created or now, modified=now)
                session.add(stored)

        self._enqueue_change(title)
        return stored

    def set_field(self, title: str, name: str, value: Any) -> Tiddler:
        """Set one field of a tiddler, creating the tiddler if needed."""
        tiddler = self.get_tiddler(title)
        if tiddler is None:
            return self.add_tiddler({"title": title, name: value})
        return self.add_tiddler(tiddler, **{name: value})

    def delete_tiddler(self, title: str) -> bool:
        """
        Delete a tiddler.

        Returns:
            True if deleted, False if not found
        """
        with self.session() as session:
            result = session.execute(delete(Tiddler).where(Tiddler.title == title))
            deleted = result.rowcount > 0
        if deleted:
            self._enqueue_change(title, deleted=True)
        return deleted

    def delete_tiddlers(self, titles: Iterable[str]) -> int:
        """Delete several tiddlers, returning how many existed."""
        return sum(1 for title in list(titles) if self.delete_tiddler(title))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def all_titles(self) -> List[str]:
        """All titles in key order."""
        with self.session() as session:
            return list(session.execute(select(Tiddler.title).order_by(Tiddler.title)).scalars())

    def snapshot(self) -> Dict[str, Tiddler]:
        """All tiddlers by title, detached, in key order."""
        with self.session(expire_on_commit=False) as session:
            result = session.execute(select(Tiddler).order_by(Tiddler.title))
            return {t.title: t for t in result.scalars()}

    def find_by_prefix(self, prefix: str) -> List[str]:
        """Titles starting with ``prefix`` (case-sensitive)."""
        if not prefix:
            return self.all_titles()
        with self.session() as session:
            query = select(Tiddler.title).where(func.substr(Tiddler.title, 1, len(prefix)) == prefix)
            return list(session.execute(query.order_by(Tiddler.title)).scalars())

    def compile_filter(self, expression: Optional[str]) -> CompiledFilter:
        return compile_filter(expression)

    def filter_tiddlers(
        self,
        filter: Union[str, CompiledFilter, None],
        source: Optional[Iterable[str]] = None
    ) -> List[str]:
        """
        Run a filter against the store.

        Args:
            filter: Expression or compiled filter
            source: Restrict the input titles (defaults to the whole store)

        Returns:
            Matching titles
        """
        if filter is None:
            return []
        if isinstance(filter, str):
            filter = compile_filter(filter)
        return filter(self, source)

    def generate_unique_id(self) -> str:
        return str(uuid.uuid4())

    # ------------------------------------------------------------------
    # Structured field data
    # ------------------------------------------------------------------

    def get_tiddler_data(self, title: str, default: Any = None, field: str = "text") -> Any:
        """Parse the JSON stored in a field, falling back to ``default``."""
        tiddler = self.get_tiddler(title)
        if tiddler is None:
            return default
        raw = tiddler.get(field)
        if not raw:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed data in {title}!!{field}")
            return default

    def set_tiddler_data(self, title: str, data: Any, field: str = "text") -> Tiddler:
        """Serialize ``data`` as JSON into a field, creating the tiddler if needed."""
        tiddler = self.get_tiddler(title)
        overrides = {field: json.dumps(data)}
        if field == "text" and (tiddler is None or tiddler.get("type") is None):
            overrides["type"] = "application/json"
        if tiddler is None:
            return self.add_tiddler({"title": title, **overrides})
        return self.add_tiddler(tiddler, **overrides)


# Global database instance
_wiki: Optional[Wiki] = None


def get_wiki(path: Optional[str] = None, reload: bool = False) -> Wiki:
    """
    Get the global wiki instance.

    Args:
        path: Database file path
        reload: Force new connection

    Returns:
        Wiki instance
    """
    global _wiki
    if _wiki is None or reload or path:
        _wiki = Wiki(path)
    return _wiki
