"""
View paths.

A view is stored as a handful of tiddlers sharing the view's root title:

    <views>/<label>                 config (the root)
    <views>/<label>/map             node positions
    <views>/<label>/filter/nodes    node filter
    <views>/<label>/filter/edges    edge filter

Only direct roles are allowed here; the rebuild mechanism matches changed
titles against these keys exactly.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, List, Optional, Tuple

from tmap.config import TmapConfig
from tmap.models import Tiddler
from tmap.utils import get_without_prefix


class Role(Enum):
    """The part of a view a tiddler holds."""
    CONFIG = "config"
    MAP = "map"
    NODE_FILTER = "node_filter"
    EDGE_FILTER = "edge_filter"


@dataclass(frozen=True)
class PathSet:
    """Titles of the tiddlers that make up one view."""
    config: Optional[str] = None
    map: Optional[str] = None
    node_filter: Optional[str] = None
    edge_filter: Optional[str] = None

    @classmethod
    def derive(cls, root: str) -> "PathSet":
        return cls(
            config=root,
            map=f"{root}/map",
            node_filter=f"{root}/filter/nodes",
            edge_filter=f"{root}/filter/edges",
        )

    @classmethod
    def empty(cls) -> "PathSet":
        return cls()

    def get(self, role: Role) -> Optional[str]:
        return getattr(self, role.value)

    def items(self) -> Iterator[Tuple[Role, str]]:
        for role in Role:
            title = self.get(role)
            if title is not None:
                yield role, title

    def values(self) -> List[str]:
        return [title for _, title in self.items()]

    def role_of(self, title: str) -> Optional[Role]:
        for role, path in self.items():
            if path == title:
                return role
        return None

    def __bool__(self) -> bool:
        return self.config is not None


def _resolve_label(view: str, config: TmapConfig) -> Optional[str]:
    prefix = config.views_path + "/"
    label = get_without_prefix(view, prefix)
    if not label or "/" in label:
        return None
    return prefix + label


def _resolve_tiddler(view: Tiddler, config: TmapConfig) -> Optional[str]:
    return view.title


def _resolve_view(view: Any, config: TmapConfig) -> Optional[str]:
    return view.get_root()


_RESOLVERS = {
    "label": _resolve_label,
    "tiddler": _resolve_tiddler,
    "view": _resolve_view,
}


def reference_kind(view: Any) -> Optional[str]:
    """Classify a view reference as ``label``, ``tiddler`` or ``view``."""
    if isinstance(view, str):
        return "label"
    if isinstance(view, Tiddler):
        return "tiddler"
    if callable(getattr(view, "get_root", None)):
        return "view"
    return None


def resolve_root(view: Any, config: TmapConfig) -> Optional[str]:
    """
    Translate a view reference into the title of its config tiddler.

    Args:
        view: A label, a root title, the config tiddler or a view object
        config: Configuration providing the views namespace

    Returns:
        The root title, or None if the reference cannot name a view
    """
    resolver = _RESOLVERS.get(reference_kind(view))
    if resolver is None:
        return None
    return resolver(view, config)
