"""
SQLAlchemy models for the tiddler store.

A tiddler is a titled record carrying an open set of string fields.
The title is the key; all other fields (including ``text``) live in a JSON
column so that views, edge types and plain content share one table.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from sqlalchemy import String, DateTime, JSON, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class Tiddler(Base):
    """
    Tiddler model.

    Attributes:
        title: Primary key, the hierarchical store key
        fields: JSON mapping of all remaining fields
        created: Creation timestamp
        modified: Last modification timestamp
    """
    __tablename__ = 'tiddlers'

    title: Mapped[str] = mapped_column(String(1024), primary_key=True)
    fields: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )
    modified: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index('ix_tiddlers_modified', 'modified'),
    )

    @property
    def text(self) -> str:
        return self.fields.get("text", "") if self.fields else ""

    def get(self, name: str, default: Any = None) -> Any:
        """Get a field value, including the column-backed ones."""
        if name == "title":
            return self.title
        if name in ("created", "modified"):
            return getattr(self, name)
        return (self.fields or {}).get(name, default)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a flat field dictionary."""
        result = dict(self.fields or {})
        result["title"] = self.title
        result["created"] = self.created.isoformat() if self.created else None
        result["modified"] = self.modified.isoformat() if self.modified else None
        return result

    def __repr__(self) -> str:
        return f"<Tiddler(title='{self.title}')>"
