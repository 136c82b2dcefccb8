"""
tmap view system

A view is a named bundle of tiddlers describing one graph visualization:
a config tiddler (the root), a node filter, an edge filter and a map of
node positions. :class:`ViewAbstraction` binds them into one object with a
selectively rebuilt cache.

Example:
    from tmap.views import open_view

    view = open_view("Concepts", create=True, wiki=wiki)
    view.set_node_filter("[tag[concept]]")
    view.set_config("layout.active", "hierarchical")

    # feed store change reports back into the cache
    wiki.add_change_listener(view.refresh)
"""

from tmap.views.paths import (
    PathSet,
    Role,
    resolve_root,
)

from tmap.views.cache import (
    CacheSlot,
    CacheState,
    FilterPair,
    SuppressSet,
    ViewCache,
)

from tmap.views.abstraction import (
    ViewAbstraction,
    open_view,
    list_views,
)

__all__ = [
    # Paths
    "PathSet",
    "Role",
    "resolve_root",
    # Cache
    "CacheSlot",
    "CacheState",
    "FilterPair",
    "SuppressSet",
    "ViewCache",
    # Views
    "ViewAbstraction",
    "open_view",
    "list_views",
]
