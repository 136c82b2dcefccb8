"""
View abstraction.

A :class:`ViewAbstraction` binds the tiddlers that make up one view (config,
node filter, edge filter, positions) into a single object with a partial
in-memory cache. Change reports from the store are fed to :meth:`refresh`,
which reloads only the parts whose tiddler changed.

Example:
    view = open_view("My View", create=True, wiki=wiki)
    view.set_node_filter("[tag[concept]]")
    wiki.add_change_listener(view.refresh)
"""
import logging
import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from tmap.config import TmapConfig, get_config
from tmap.db import Wiki, get_wiki
from tmap.edgetype import EdgeType
from tmap.filters import FilterSyntaxError, compile_filter
from tmap.notify import Notifier, notify
from tmap.utils import get_basename, get_properties_by_prefix, get_without_prefix, is_true
from tmap.views.cache import CacheSlot, FilterPair, ViewCache
from tmap.views.paths import PathSet, Role, resolve_root

logger = logging.getLogger(__name__)

CONFIG_PREFIX = "config."
CONFIG_DEFAULTS = {
    "config.layout.active": "user",
}
DEFAULT_STABILIZATION_ITERATIONS = 1000

# Distinguishes "leave unchanged" from None, which deletes a config option
_MISSING = object()


class ViewAbstraction:
    """
    A view and its cached parts.

    Unless ``create`` is set, the instance only represents the view and does
    not create it or any missing part of it. Operations on a view that does
    not exist are no-ops and getters return empty values.

    Args:
        view: A view label, a root title, the config tiddler or another view
        create: Create the view, replacing any view with the same root
        wiki: Store to operate on (defaults to the global wiki)
        config: Configuration (defaults to the global config)
        notifier: Callable receiving user-facing notices
    """

    def __init__(
        self,
        view: Any,
        create: bool = False,
        wiki: Optional[Wiki] = None,
        config: Optional[TmapConfig] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.wiki = wiki or get_wiki()
        self.config = config or get_config()
        self.notify = notifier or notify
        self._cache = ViewCache()
        self._stabilization_iterations: Optional[int] = None

        root = resolve_root(view, self.config)
        self.path = PathSet.derive(root) if root else PathSet.empty()

        if not self.path:
            return

        if create:
            self._create_view()
        elif not self.exists():
            return

        self.rebuild_cache(self.path.values())

    def __repr__(self) -> str:
        return f"ViewAbstraction({self.path.config!r})"

    # ------------------------------------------------------------------
    # Identity and lifecycle
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        """True if the config tiddler of this view is stored."""
        return bool(self.path) and self.wiki.tiddler_exists(self.path.config)

    def get_root(self) -> Optional[str]:
        return self.path.config

    def get_paths(self) -> PathSet:
        return self.path

    def get_label(self) -> Optional[str]:
        """The label (name) of the view, which is the root's basename."""
        if not self.exists():
            return None
        return get_basename(self.path.config)

    def is_live_view(self) -> bool:
        return self.get_label() == self.config.live_view_label

    def get_creation_date(self, as_string: bool = False):
        """
        The creation date of the config tiddler.

        Args:
            as_string: Format as e.g. ``"3rd Mar 2024"``
        """
        if not self.exists():
            return None

        created = self.wiki.get_tiddler(self.path.config).created
        if as_string:
            if not isinstance(created, datetime):
                return ""
            day = created.day
            suffix = "th" if 11 <= day <= 13 else {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
            return f"{day}{suffix} {created.strftime('%b %Y')}"
        return created

    def _create_view(self) -> None:
        root = self.path.config
        if self.exists():
            self.destroy()
            self.path = PathSet.derive(root)

        self.wiki.add_tiddler({
            "title": root,
            self.config.view_marker_field: "true",
            "id": self.wiki.generate_unique_id(),
        })
        logger.info(f"Created view {root}")

    def destroy(self) -> None:
        """Remove all tiddlers of this view; afterwards it no longer exists."""
        if not self.exists():
            return

        root = self.get_root()
        titles = [root] + self.wiki.find_by_prefix(root + "/")
        self.wiki.delete_tiddlers(titles)
        logger.info(f"Destroyed view {root} ({len(titles)} tiddlers)")

        self.path = PathSet.empty()
        self._cache.reset()

    def rename(self, new_label: Any) -> None:
        """Move every tiddler of this view below a new label."""
        if not self.exists() or not isinstance(new_label, str) or not new_label:
            return

        if "/" in new_label:
            self.notify('A view name must not contain any "/"')
            return

        old_label = self.get_label()
        if old_label == new_label:
            return

        old_root = self.get_root()
        new_root = old_root[:-len(old_label)] + new_label

        if self.wiki.tiddler_exists(new_root):
            replaced = [new_root] + self.wiki.find_by_prefix(new_root + "/")
            self.wiki.delete_tiddlers(replaced)
            logger.info(f"Replaced view {new_root} ({len(replaced)} tiddlers)")

        for title in [old_root] + self.wiki.find_by_prefix(old_root + "/"):
            tiddler = self.wiki.get_tiddler(title)
            if tiddler is None:
                continue
            self.wiki.add_tiddler(tiddler, title=new_root + title[len(old_root):])
            self.wiki.delete_tiddler(title)

        logger.info(f"Renamed view {old_label} to {new_label}")

        self.path = PathSet.derive(new_root)
        self.rebuild_cache(self.path.values(), force=True)

    def get_references(self) -> List[str]:
        """Titles of tiddlers that embed this view in a graph widget."""
        if not self.exists():
            return []
        pattern = re.compile(r"<\$tiddlymap.*?view=." + re.escape(self.get_label()) + r"..*?>")
        return [title for title, tiddler in self.wiki.snapshot().items() if pattern.search(tiddler.text)]

    # ------------------------------------------------------------------
    # Cache rebuild
    # ------------------------------------------------------------------

    def refresh(self, changed: Iterable[str]) -> List[str]:
        """
        Rebuild the parts of the cache affected by changed tiddlers.

        Args:
            changed: Changed titles, or a mapping keyed by title as
                delivered by :meth:`Wiki.dispatch_changes`

        Returns:
            The titles whose cached part got updated
        """
        return self.rebuild_cache(list(changed))

    def rebuild_cache(self, components: Iterable[str], force: bool = False) -> List[str]:
        """
        Reload the cached parts backed by ``components``.

        A change of the config tiddler reloads every part. Titles written by
        a setter since the previous rebuild are skipped unless ``force`` is
        set.

        Returns:
            The titles that were reloaded, in processing order
        """
        if not self.exists():
            return []

        components = list(components)
        if self.path.config in components:
            logger.debug(f"Reloading config of view {self.get_label()}; trigger full rebuild")
            components = self.path.values()

        ignored = self._cache.suppress.swap()
        edge_types_prefix = self.config.edge_types_path + "/"

        modified = []
        for title in components:
            if not force and title in ignored:
                continue

            role = self.path.role_of(title)
            if role is Role.CONFIG:
                self._reload(self._cache.config, self.get_config, force_reload=True)
            elif role is Role.MAP:
                self._reload(self._cache.positions, self.get_positions, force_reload=True)
            elif role is Role.NODE_FILTER:
                self._reload(self._cache.node_filter, self.get_node_filter, force_reload=True)
            elif role is Role.EDGE_FILTER:
                self._reload(self._cache.edge_filter, self.get_edge_filter, force_reload=True)
                self._reload(self._cache.type_white_list, self.get_type_white_list, force_reload=True)
            elif title.startswith(edge_types_prefix):
                self._reload(self._cache.type_white_list, self.get_type_white_list, force_reload=True)
            else:
                continue

            modified.append(title)

        return modified

    @staticmethod
    def _reload(slot: CacheSlot, getter, **kwargs) -> None:
        slot.invalidate()
        getter(**kwargs)

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    def _load_config(self, force_reload: bool = False) -> Dict[str, Any]:
        slot = self._cache.config
        if slot.is_fresh() and not force_reload:
            return slot.value

        tiddler = self.wiki.get_tiddler(self.path.config)
        config = dict(CONFIG_DEFAULTS)
        if tiddler is not None:
            config.update(get_properties_by_prefix(tiddler.fields or {}, CONFIG_PREFIX))
        return slot.store(config)

    def get_config(self, name: Optional[str] = None, force_reload: bool = False, default: Any = None):
        """
        Get one configuration value or all of them.

        Args:
            name: Option name; the ``config.`` prefix may be omitted
            force_reload: Bypass the cache
            default: Returned if the option is not set

        Returns:
            The value, or a dict of all ``config.*`` options if no name is given
        """
        config = self._load_config(force_reload) if self.exists() else {}

        if name is None:
            return dict(config)
        key = name if name.startswith(CONFIG_PREFIX) else CONFIG_PREFIX + name
        return config.get(key, default)

    def set_config(self, name_or_options: Any, value: Any = _MISSING) -> None:
        """
        Set configuration options and persist them.

        Call as ``set_config(name, value)`` or ``set_config({name: value})``.
        A value of None removes the option.
        """
        if name_or_options is None or not self.exists():
            return

        if isinstance(name_or_options, Mapping) and value is _MISSING:
            for name, option_value in name_or_options.items():
                self._set_config_option(name, option_value)
        elif isinstance(name_or_options, str):
            if value is _MISSING:
                return
            self._set_config_option(name_or_options, value)
        else:
            return

        self._persist_config()

    def _set_config_option(self, name: str, value: Any) -> None:
        if value is _MISSING:
            return

        prop = get_without_prefix(name, CONFIG_PREFIX)
        config = self._load_config()

        if value is None:
            logger.debug(f"Removing config {prop}")
            config.pop(CONFIG_PREFIX + prop, None)
            return

        if prop == "edge_type_namespace" and isinstance(value, str) and value and not value.endswith(":"):
            value += ":"

        logger.debug(f"Setting config {prop} = {value!r}")
        config[CONFIG_PREFIX + prop] = value

    def _persist_config(self) -> None:
        tiddler = self.wiki.get_tiddler(self.path.config)
        fields = {k: v for k, v in tiddler.to_dict().items() if not k.startswith(CONFIG_PREFIX)}
        fields.update(self._load_config())
        self.wiki.add_tiddler(fields)
        self._cache.suppress.add(self.path.config)

    def is_enabled(self, name: str) -> bool:
        """True if a checkbox-style option is switched on."""
        return is_true(self.get_config(name), False)

    def get_stabilization_iterations(self) -> int:
        """Suggested number of layout iterations before the graph is shown."""
        return self._stabilization_iterations or DEFAULT_STABILIZATION_ITERATIONS

    def set_stabilization_iterations(self, iterations: int) -> None:
        pass

    def get_hierarchy_edge_types(self) -> Set[str]:
        """
        Names of the edge types that define the hierarchical order.

        Empty unless the active layout is ``hierarchical``.
        """
        if self.get_config("layout.active") != "hierarchical":
            return set()

        order_by = get_properties_by_prefix(
            self.get_config(), "config.layout.hierarchical.order-by-", remove_prefix=True
        )
        prefix = self.config.edge_types_path + "/"
        names_by_id = {}
        for title, tiddler in self.wiki.snapshot().items():
            if title.startswith(prefix):
                name = get_without_prefix(title, prefix)
                names_by_id[tiddler.get("id") or name] = name

        return {
            names_by_id[type_id]
            for type_id, enabled in order_by.items()
            if is_true(enabled) and type_id in names_by_id
        }

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def _load_filter(self, role: Role, slot: CacheSlot, force_reload: bool) -> FilterPair:
        if slot.is_fresh() and not force_reload:
            return slot.value

        tiddler = self.wiki.get_tiddler(self.path.get(role))
        expression = tiddler.get("filter") if tiddler is not None else None
        if not expression:
            expression = "" if role is Role.NODE_FILTER else self.config.default_edge_filter

        try:
            compiled = compile_filter(expression)
        except FilterSyntaxError as e:
            logger.warning(f"Filter of {self.path.get(role)} does not compile, matching nothing: {e}")
            compiled = compile_filter("")

        return slot.store(FilterPair(expression, compiled))

    def get_node_filter(self, kind: Optional[str] = None, force_reload: bool = False):
        """
        The filter deciding which nodes are displayed.

        Args:
            kind: ``"expression"``, ``"compiled"`` or None for both as a FilterPair
            force_reload: Bypass the cache

        Note: If the view doesn't exist, the filter is empty and matches nothing.
        """
        if not self.exists():
            return FilterPair.empty().select(kind)
        return self._load_filter(Role.NODE_FILTER, self._cache.node_filter, force_reload).select(kind)

    def get_edge_filter(self, kind: Optional[str] = None, force_reload: bool = False):
        """
        The filter deciding which edge types are displayed.

        Falls back to the configured default edge filter if none is stored.
        """
        if not self.exists():
            return FilterPair.empty().select(kind)
        return self._load_filter(Role.EDGE_FILTER, self._cache.edge_filter, force_reload).select(kind)

    def set_node_filter(self, expression: str, force: bool = False) -> None:
        """
        Set and rebuild the node filter.

        Args:
            expression: A filter expression
            force: Allow changing the node filter of the live view
        """
        if not self.exists() or not isinstance(expression, str):
            return

        expression = expression.replace("\n", " ")

        # An unchanged expression must not be written, or the write would echo back
        if self.get_node_filter("expression") == expression:
            return

        if self.is_live_view() and not force:
            self.notify("It is forbidden to change the node filter of the live view!")
            return

        self.wiki.set_field(self.path.node_filter, "filter", expression)
        logger.debug(f"Node filter set to {expression}")

        self.get_node_filter(force_reload=True)
        self._cache.suppress.add(self.path.node_filter)

    def set_edge_filter(self, expression: str) -> None:
        """Set and rebuild the edge filter and the type white list."""
        if not self.exists() or not isinstance(expression, str):
            return

        expression = expression.replace("\n", " ")

        if self.get_edge_filter("expression") == expression:
            return

        self.wiki.set_field(self.path.edge_filter, "filter", expression)
        logger.debug(f"Edge filter set to {expression}")

        self.get_edge_filter(force_reload=True)
        self.get_type_white_list(force_reload=True)
        self._cache.suppress.add(self.path.edge_filter)

    def append_to_node_filter(self, expression: str) -> None:
        """Append a filter part to the node filter (or-style)."""
        self.set_node_filter(f"{self.get_node_filter('expression')} {expression}")

    def append_to_edge_filter(self, expression: str) -> None:
        self.set_edge_filter(f"{self.get_edge_filter('expression')} {expression}")

    def _node_filter_part(self, node: Mapping) -> str:
        return f"[field:{self.config.node_id_field}[{node['id']}]]"

    def is_explicit_node(self, node: Mapping) -> bool:
        """True if the node filter names this node explicitly."""
        return self._node_filter_part(node) in self.get_node_filter("expression")

    def add_node_to_view(self, node: Mapping) -> None:
        self.append_to_node_filter(self._node_filter_part(node))
        self.set_node_position(node)

    def remove_node_from_filter(self, node: Mapping) -> bool:
        if not self.is_explicit_node(node):
            return False

        expression = self.get_node_filter("expression")
        self.set_node_filter(expression.replace(self._node_filter_part(node), ""))
        return True

    # ------------------------------------------------------------------
    # Edge types
    # ------------------------------------------------------------------

    def get_type_white_list(self, force_reload: bool = False) -> Dict[str, EdgeType]:
        """
        Edge types allowed by the edge filter, keyed by name.
        """
        if not self.exists():
            return {}

        slot = self._cache.type_white_list
        if slot.is_fresh() and not force_reload:
            return dict(slot.value)

        prefix = self.config.edge_types_path + "/"
        source = EdgeType.all_titles(self.wiki, self.config)
        matches = self.wiki.filter_tiddlers(self.get_edge_filter("compiled"), source)

        white_list = {}
        for title in matches:
            name = get_without_prefix(title, prefix)
            white_list[name] = EdgeType(self.wiki, name, self.config)

        slot.store(white_list)
        return dict(white_list)

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def get_position_store(self) -> Optional[str]:
        """
        Title of the tiddler holding the positions.

        The live view keeps a dedicated store per focused tiddler.
        """
        if self.is_live_view():
            matches = self.wiki.filter_tiddlers(self.get_node_filter("compiled"))
            if matches:
                tiddler = self.wiki.get_tiddler(matches[0])
                node_id = tiddler.get(self.config.node_id_field) if tiddler is not None else None
                if node_id:
                    return f"{self.path.map}/{node_id}"

        return self.path.map

    def get_positions(self, force_reload: bool = False) -> Dict[str, Dict[str, Any]]:
        """
        Node positions stored in the view, keyed by node id.

        Positions of nodes that no longer exist are kept.
        """
        if not self.exists():
            return {}

        slot = self._cache.positions
        if not self.is_live_view() and slot.is_fresh() and not force_reload:
            return dict(slot.value)

        store = self.get_position_store()
        positions = self.wiki.get_tiddler_data(store, {})
        if not isinstance(positions, dict):
            positions = {}
        logger.debug(f"Loading {len(positions)} positions from {store}")

        slot.store(positions)
        return dict(positions)

    def set_positions(self, positions: Mapping) -> None:
        """Store the given positions in the view's map."""
        if not self.exists() or not isinstance(positions, Mapping):
            return

        store = self.get_position_store()
        positions = {str(node_id): position for node_id, position in positions.items()}
        logger.debug(f"Storing positions in {store}")
        self.wiki.set_tiddler_data(store, positions)

        self._cache.positions.store(positions)
        self._cache.suppress.add(store)

    def set_node_position(self, node: Mapping) -> None:
        """Store a single node's position; requires ``id``, ``x`` and ``y``."""
        if node and node.get("id") is not None and node.get("x") and node.get("y"):
            positions = self.get_positions()
            positions[str(node["id"])] = {"x": node["x"], "y": node["y"]}
            self.set_positions(positions)


def open_view(view: Any, create: bool = False, **kwargs) -> ViewAbstraction:
    """
    Get a view abstraction for a label, a tiddler or an existing abstraction.

    An existing abstraction is returned as is unless ``create`` is set.
    """
    if isinstance(view, ViewAbstraction) and not create:
        return view
    return ViewAbstraction(view, create=create, **kwargs)


def list_views(wiki: Wiki, config: Optional[TmapConfig] = None) -> List[str]:
    """Root titles of all views in the store."""
    config = config or get_config()
    prefix = config.views_path + "/"
    titles = []
    for title, tiddler in wiki.snapshot().items():
        if title.startswith(prefix) and "/" not in title[len(prefix):]:
            if is_true(tiddler.get(config.view_marker_field)):
                titles.append(title)
    return titles
