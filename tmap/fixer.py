"""
Data structure upgrades.

Runs once at startup and upgrades tiddlers written by older versions. The
version of the data structure in use is kept in the meta tiddler under
``dataStructureState``; each upgrade runs if that version is at or below
the upgrade's ``before`` version and records its ``after`` version.

Upgrades:
    0.6.11 -> 0.7.0   Edges move from type-based edge stores into the
                      tiddler of their source node; view-private edges get
                      the view label as type namespace.
    0.7.0  -> 0.7.31  The live view follows the current tiddler and the
                      ``refresh-trigger`` option is renamed.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from tmap.config import TmapConfig, get_config
from tmap.db import Wiki
from tmap.edgetype import EdgeType
from tmap.filters import stringify_list
from tmap.notify import Notifier
from tmap.utils import check_versions, get_basename
from tmap.views import list_views, open_view

logger = logging.getLogger(__name__)

CURRENT_TIDDLER_REF = "$:/temp/tmap/currentTiddler"
UNNAMED_TYPE = "__noname__"
UNKNOWN_TYPE = "tmap:unknown"


@dataclass
class Upgrade:
    before: str
    after: str
    apply: Callable[[Wiki, TmapConfig, Optional[Notifier]], None]


def get_data_structure_state(wiki: Wiki, config: TmapConfig) -> Optional[str]:
    meta = wiki.get_tiddler_data(config.meta_ref, {})
    return meta.get("dataStructureState") if isinstance(meta, dict) else None


def set_data_structure_state(wiki: Wiki, config: TmapConfig, version: str) -> None:
    meta = wiki.get_tiddler_data(config.meta_ref, {})
    if not isinstance(meta, dict):
        meta = {}
    meta["dataStructureState"] = version
    wiki.set_tiddler_data(config.meta_ref, meta)


def find_node_tiddler(wiki: Wiki, node_id: Any, config: TmapConfig) -> Optional[str]:
    """Title of the tiddler carrying ``node_id`` in its node id field."""
    for title, tiddler in wiki.snapshot().items():
        if tiddler.get(config.node_id_field) == node_id:
            return title
    return None


def insert_edge(wiki: Wiki, edge: Dict[str, Any], config: TmapConfig) -> Optional[str]:
    """
    Store an edge in the ``tmap.edges`` field of its source node's tiddler.

    Returns:
        The edge id, or None if the source node is unknown
    """
    source = find_node_tiddler(wiki, edge.get("from"), config)
    if source is None:
        logger.warning(f"Dropping edge {edge.get('id')}: no tiddler for node {edge.get('from')}")
        return None

    edge_id = edge.get("id") or wiki.generate_unique_id()
    edges = wiki.get_tiddler_data(source, {}, field="tmap.edges")
    edges[edge_id] = {"to": edge.get("to"), "type": edge.get("type")}
    wiki.set_tiddler_data(source, edges, field="tmap.edges")
    return edge_id


def move_edges(wiki: Wiki, path: str, view_label: Optional[str], config: TmapConfig) -> int:
    """
    Move edges out of the type-based stores below ``path``.

    Returns:
        Number of edges moved
    """
    moved = 0
    for store in wiki.find_by_prefix(path):
        name = get_basename(store)
        if name == UNNAMED_TYPE:
            name = UNKNOWN_TYPE

        edge_type = EdgeType(wiki, name, config)
        if not edge_type.exists():
            edge_type.persist()

        edges = wiki.get_tiddler_data(store, [])
        for edge in edges if isinstance(edges, list) else []:
            edge = dict(edge)
            # formerly private edges get the view name as namespace
            edge["type"] = (f"{view_label}:" if view_label else "") + edge_type.get_id()
            if insert_edge(wiki, edge, config):
                moved += 1

        wiki.delete_tiddler(store)
        logger.info(f"Moved edges of store {store}")

    return moved


def _upgrade_edge_stores(wiki: Wiki, config: TmapConfig, notifier: Optional[Notifier]) -> None:
    move_edges(wiki, f"{config.plugin_root}/graph/edges", None, config)

    for root in list_views(wiki, config):
        view = open_view(root, wiki=wiki, config=config, notifier=notifier)
        move_edges(wiki, f"{view.get_root()}/graph/edges", view.get_label(), config)


def _upgrade_live_view(wiki: Wiki, config: TmapConfig, notifier: Optional[Notifier]) -> None:
    live_view = open_view(config.live_view_label, wiki=wiki, config=config, notifier=notifier)
    live_view.set_node_filter(f"[field:title{{{CURRENT_TIDDLER_REF}}}]", force=True)
    live_view.set_config({
        "refresh-trigger": None,
        "refresh-triggers": stringify_list([CURRENT_TIDDLER_REF]),
    })


UPGRADES = [
    Upgrade(before="0.6.11", after="0.7.0", apply=_upgrade_edge_stores),
    Upgrade(before="0.7.0", after="0.7.31", apply=_upgrade_live_view),
]


def run_fixer(
    wiki: Wiki,
    config: Optional[TmapConfig] = None,
    notifier: Optional[Notifier] = None,
) -> List[str]:
    """
    Apply all pending upgrades in order.

    Returns:
        The versions the data structure was upgraded to
    """
    config = config or get_config()
    logger.debug("Fixer is started")
    logger.debug(f"Data-structure currently in use: {get_data_structure_state(wiki, config)}")

    applied = []
    for upgrade in UPGRADES:
        if not check_versions(upgrade.before, get_data_structure_state(wiki, config)):
            continue

        logger.info(f"Upgrading data structure to {upgrade.after}")
        upgrade.apply(wiki, config, notifier)
        set_data_structure_state(wiki, config, upgrade.after)
        applied.append(upgrade.after)

    return applied
