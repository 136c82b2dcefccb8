"""
Edge types.

An edge type is a named edge category persisted as a tiddler under the
edge-types namespace, e.g. ``$:/plugins/.../graph/edgeTypes/tmap:unknown``.
"""
import logging
from typing import TYPE_CHECKING, List, Optional

from tmap.config import TmapConfig, get_config
from tmap.utils import get_without_prefix

if TYPE_CHECKING:
    from tmap.db import Wiki

logger = logging.getLogger(__name__)


class EdgeType:
    """
    Handle for a named edge type.

    Constructing a handle does not persist anything; call :meth:`persist`.

    Example:
        edge_type = EdgeType(wiki, "tmap:unknown")
        if not edge_type.exists():
            edge_type.persist()
    """

    def __init__(self, wiki: "Wiki", name: str, config: Optional[TmapConfig] = None):
        self.wiki = wiki
        self.config = config or get_config()
        self.name = get_without_prefix(name, self.prefix)

    @property
    def prefix(self) -> str:
        return self.config.edge_types_path + "/"

    @property
    def title(self) -> str:
        """Store key of this edge type."""
        return self.prefix + self.name

    @property
    def namespace(self) -> str:
        """The part before the first colon, or empty."""
        ns, sep, _ = self.name.partition(":")
        return ns if sep else ""

    @property
    def id(self) -> str:
        return self.get_id()

    def get_id(self) -> str:
        """Stable id; the persisted ``id`` field or the name."""
        tiddler = self.wiki.get_tiddler(self.title)
        if tiddler is not None and tiddler.get("id"):
            return tiddler.get("id")
        return self.name

    def exists(self) -> bool:
        return self.wiki.tiddler_exists(self.title)

    def persist(self) -> None:
        """Store this edge type, keeping fields of an existing record."""
        tiddler = self.wiki.get_tiddler(self.title)
        if tiddler is None:
            self.wiki.add_tiddler({"title": self.title, "id": self.name})
            logger.info(f"Created edge type {self.name}")
        else:
            self.wiki.add_tiddler(tiddler, id=tiddler.get("id") or self.name)

    @classmethod
    def all_titles(cls, wiki: "Wiki", config: Optional[TmapConfig] = None) -> List[str]:
        """Titles of all persisted edge types."""
        config = config or get_config()
        return wiki.find_by_prefix(config.edge_types_path + "/")

    def __eq__(self, other) -> bool:
        return isinstance(other, EdgeType) and other.name == self.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return f"EdgeType({self.name!r})"
