"""
tmap - graph views over a tiddler store

A view bundles the tiddlers that describe one graph visualization (node
filter, edge filter, layout config, node positions) and keeps a selectively
rebuilt in-memory cache of them.

Example Usage:
    >>> from tmap import Wiki, open_view
    >>> wiki = Wiki(url="sqlite://")
    >>> view = open_view("Concepts", create=True, wiki=wiki)
    >>> view.set_node_filter("[tag[concept]]")
    >>> wiki.add_change_listener(view.refresh)
"""

__version__ = "0.7.31"
__author__ = "tmap Contributors"

# Store
from tmap.db import Wiki, get_wiki
from tmap.models import Tiddler

# Configuration
from tmap.config import TmapConfig, get_config, init_config

# Filters
from tmap.filters import CompiledFilter, FilterSyntaxError, compile_filter

# Views
from tmap.edgetype import EdgeType
from tmap.views import ViewAbstraction, open_view, list_views
from tmap.fixer import run_fixer

__all__ = [
    # Store
    "Wiki",
    "get_wiki",
    "Tiddler",
    # Config
    "TmapConfig",
    "get_config",
    "init_config",
    # Filters
    "CompiledFilter",
    "FilterSyntaxError",
    "compile_filter",
    # Views
    "EdgeType",
    "ViewAbstraction",
    "open_view",
    "list_views",
    "run_fixer",
]
