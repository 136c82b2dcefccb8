import pytest
from unittest.mock import Mock

from tmap.config import TmapConfig
from tmap.db import Wiki
from tmap.edgetype import EdgeType
from tmap.views import ViewAbstraction


@pytest.fixture
def config():
    """Default configuration, independent of any user config file."""
    return TmapConfig()


@pytest.fixture
def wiki(tmp_path):
    """Empty tiddler store in a temporary SQLite file."""
    return Wiki(path=str(tmp_path / "wiki.db"))


@pytest.fixture
def notifier():
    """Records user-facing notices instead of printing them."""
    return Mock()


@pytest.fixture
def make_view(wiki, config, notifier):
    """Factory creating (or just opening) a view on the test store."""
    def _make(name, create=True):
        return ViewAbstraction(name, create=create, wiki=wiki, config=config, notifier=notifier)
    return _make


@pytest.fixture
def edge_types(wiki, config):
    """Persist a few edge types and return their handles by name."""
    types = {}
    for name in ["friend", "enemy", "tmap:unknown"]:
        edge_type = EdgeType(wiki, name, config)
        edge_type.persist()
        types[name] = edge_type
    return types


@pytest.fixture
def nodes(wiki, config):
    """Content tiddlers carrying node ids."""
    wiki.add_tiddler({"title": "Alice", "tags": "person", config.node_id_field: "n-alice"})
    wiki.add_tiddler({"title": "Bob", "tags": "person [[night owl]]", config.node_id_field: "n-bob"})
    wiki.add_tiddler({"title": "Paris", "tags": "place", "text": "A city"})
    return ["Alice", "Bob", "Paris"]
