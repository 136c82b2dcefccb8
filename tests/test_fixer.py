"""
Tests for data structure upgrades.
"""
import json

import pytest

from tmap.edgetype import EdgeType
from tmap.fixer import (
    CURRENT_TIDDLER_REF,
    get_data_structure_state,
    insert_edge,
    move_edges,
    run_fixer,
    set_data_structure_state,
)
from tmap.views import open_view


def edges_of(wiki, title):
    return wiki.get_tiddler_data(title, {}, field="tmap.edges")


class TestDataStructureState:
    """Test the version kept in the meta tiddler."""

    def test_missing_state(self, wiki, config):
        assert get_data_structure_state(wiki, config) is None

    def test_set_state_keeps_other_meta(self, wiki, config):
        wiki.set_tiddler_data(config.meta_ref, {"other": 1})
        set_data_structure_state(wiki, config, "0.7.0")
        assert get_data_structure_state(wiki, config) == "0.7.0"
        assert wiki.get_tiddler_data(config.meta_ref)["other"] == 1


class TestRunFixer:
    """Test applying the upgrade chain."""

    def test_fresh_store_runs_every_upgrade_once(self, wiki, config, notifier):
        assert run_fixer(wiki, config, notifier) == ["0.7.0", "0.7.31"]
        assert get_data_structure_state(wiki, config) == "0.7.31"
        assert run_fixer(wiki, config, notifier) == []

    def test_skips_applied_upgrades(self, wiki, config, notifier):
        set_data_structure_state(wiki, config, "0.7.0")
        assert run_fixer(wiki, config, notifier) == ["0.7.31"]

    def test_current_state_is_left_alone(self, wiki, config, notifier):
        set_data_structure_state(wiki, config, "0.8.0")
        assert run_fixer(wiki, config, notifier) == []
        assert get_data_structure_state(wiki, config) == "0.8.0"


class TestEdgeUpgrade:
    """Test moving edges from type stores into node tiddlers."""

    def test_global_store_edges_move_to_source_node(self, wiki, config, nodes, notifier):
        store = f"{config.plugin_root}/graph/edges/friend"
        wiki.set_tiddler_data(store, [{"id": "e1", "from": "n-alice", "to": "n-bob"}])

        run_fixer(wiki, config, notifier)

        assert not wiki.tiddler_exists(store)
        assert edges_of(wiki, "Alice") == {"e1": {"to": "n-bob", "type": "friend"}}
        assert EdgeType(wiki, "friend", config).exists()

    def test_view_private_edges_get_view_namespace(self, wiki, config, nodes, make_view):
        view = make_view("A")
        store = f"{view.get_root()}/graph/edges/enemy"
        wiki.set_tiddler_data(store, [{"id": "e2", "from": "n-bob", "to": "n-alice"}])

        run_fixer(wiki, config)

        assert not wiki.tiddler_exists(store)
        assert edges_of(wiki, "Bob") == {"e2": {"to": "n-alice", "type": "A:enemy"}}
        assert view.exists()

    def test_unnamed_store_becomes_unknown_type(self, wiki, config, nodes):
        store = f"{config.plugin_root}/graph/edges/__noname__"
        wiki.set_tiddler_data(store, [{"id": "e3", "from": "n-alice", "to": "n-bob"}])

        assert move_edges(wiki, f"{config.plugin_root}/graph/edges", None, config) == 1
        assert edges_of(wiki, "Alice")["e3"]["type"] == "tmap:unknown"
        assert EdgeType(wiki, "tmap:unknown", config).exists()

    def test_existing_edge_type_id_is_used(self, wiki, config, nodes):
        wiki.add_tiddler({"title": f"{config.edge_types_path}/friend", "id": "friend-id"})
        wiki.set_tiddler_data(
            f"{config.plugin_root}/graph/edges/friend",
            [{"id": "e1", "from": "n-alice", "to": "n-bob"}],
        )
        move_edges(wiki, f"{config.plugin_root}/graph/edges", None, config)
        assert edges_of(wiki, "Alice")["e1"]["type"] == "friend-id"

    def test_edges_of_unknown_nodes_are_dropped(self, wiki, config, nodes):
        store = f"{config.plugin_root}/graph/edges/friend"
        wiki.set_tiddler_data(store, [
            {"id": "e1", "from": "n-ghost", "to": "n-bob"},
            {"id": "e2", "from": "n-bob", "to": "n-alice"},
        ])

        assert move_edges(wiki, f"{config.plugin_root}/graph/edges", None, config) == 1
        assert not wiki.tiddler_exists(store)
        assert list(edges_of(wiki, "Bob")) == ["e2"]


class TestInsertEdge:
    """Test storing an edge on its source node."""

    def test_edges_accumulate(self, wiki, config, nodes):
        insert_edge(wiki, {"id": "e1", "from": "n-alice", "to": "n-bob", "type": "friend"}, config)
        insert_edge(wiki, {"id": "e2", "from": "n-alice", "to": "n-bob", "type": "enemy"}, config)
        assert set(edges_of(wiki, "Alice")) == {"e1", "e2"}

    def test_missing_id_is_generated(self, wiki, config, nodes):
        edge_id = insert_edge(wiki, {"from": "n-alice", "to": "n-bob", "type": "friend"}, config)
        assert edge_id
        assert edge_id in edges_of(wiki, "Alice")

    def test_unknown_source(self, wiki, config, nodes):
        assert insert_edge(wiki, {"id": "e1", "from": "nobody", "to": "n-bob"}, config) is None

    def test_node_text_is_untouched(self, wiki, config, nodes):
        insert_edge(wiki, {"id": "e1", "from": "n-alice", "to": "n-bob", "type": "friend"}, config)
        tiddler = wiki.get_tiddler("Alice")
        assert tiddler.get("tags") == "person"
        assert json.loads(tiddler.get("tmap.edges"))["e1"]["to"] == "n-bob"


class TestLiveViewUpgrade:
    """Test the live view following the current tiddler."""

    @pytest.fixture
    def live_view(self, make_view, config):
        view = make_view(config.live_view_label)
        view.set_config("refresh-trigger", "$:/old/trigger")
        return view

    def test_live_view_is_upgraded(self, wiki, config, live_view, notifier):
        set_data_structure_state(wiki, config, "0.7.0")
        run_fixer(wiki, config, notifier)

        view = open_view(config.live_view_label, wiki=wiki, config=config)
        assert view.get_node_filter("expression") == f"[field:title{{{CURRENT_TIDDLER_REF}}}]"
        assert view.get_config("refresh-trigger") is None
        assert view.get_config("refresh-triggers") == CURRENT_TIDDLER_REF
        notifier.assert_not_called()

    def test_missing_live_view_is_not_created(self, wiki, config):
        run_fixer(wiki, config)
        assert not open_view(config.live_view_label, wiki=wiki, config=config).exists()
