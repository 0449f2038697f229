"""Tests for tab bookkeeping and dirty/error flags."""

from service.workflow.tab_manager import TabManager
from service.workflow.workflow_model import NodePosition, NodeStatus, ValidationResult
from tests.fakes import edge, trigger_to_end_graph


def _saved(manager: TabManager, flow_id: str = "f1"):
    graph = trigger_to_end_graph(flow_id)
    manager.open_tab(flow_id)
    manager.set_saved_state(flow_id, graph.nodes, graph.edges, graph.graph_id)
    return graph


class TestTabOrder:
    def test_open_is_idempotent_and_activates(self):
        tabs = TabManager()
        tabs.open_tab("a")
        tabs.open_tab("b")
        tabs.open_tab("a")
        assert tabs.open_tabs == ["a", "b"]
        assert tabs.active_flow_id == "a"

    def test_close_active_selects_left_neighbour(self):
        tabs = TabManager()
        for flow_id in ("a", "b", "c"):
            tabs.open_tab(flow_id)
        tabs.activate("b")
        assert tabs.close_tab("b") == "a"
        assert tabs.open_tabs == ["a", "c"]

    def test_close_first_active_selects_new_first(self):
        tabs = TabManager()
        for flow_id in ("a", "b"):
            tabs.open_tab(flow_id)
        tabs.activate("a")
        assert tabs.close_tab("a") == "b"

    def test_close_inactive_keeps_active(self):
        tabs = TabManager()
        for flow_id in ("a", "b", "c"):
            tabs.open_tab(flow_id)
        assert tabs.close_tab("a") == "c"
        assert tabs.get_state("a") is None

    def test_close_last_tab(self):
        tabs = TabManager()
        tabs.open_tab("a")
        assert tabs.close_tab("a") is None
        assert tabs.open_tabs == []


class TestUnsavedChanges:
    def test_never_saved_flow_is_clean(self):
        tabs = TabManager()
        tabs.open_tab("f1")
        graph = trigger_to_end_graph()
        assert not tabs.check_flow_has_unsaved_changes("f1", graph.nodes, graph.edges)

    def test_identical_graph_is_clean(self):
        tabs = TabManager()
        graph = _saved(tabs)
        assert not tabs.check_flow_has_unsaved_changes("f1", graph.nodes, graph.edges)

    def test_config_change_is_dirty(self):
        tabs = TabManager()
        graph = _saved(tabs)
        changed = [graph.nodes[0].model_copy(update={"config": {"message": "bye"}}), graph.nodes[1]]
        assert tabs.check_flow_has_unsaved_changes("f1", changed, graph.edges)

    def test_status_and_order_do_not_count(self):
        tabs = TabManager()
        graph = _saved(tabs)
        nodes = [graph.nodes[1], graph.nodes[0].model_copy(update={"status": NodeStatus.RUNNING})]
        assert not tabs.check_flow_has_unsaved_changes("f1", nodes, graph.edges)

    def test_edges_compared_by_endpoints_not_id(self):
        tabs = TabManager()
        graph = _saved(tabs)
        renamed = [edge("other-id", "t1", "r1")]
        assert not tabs.check_flow_has_unsaved_changes("f1", graph.nodes, renamed)
        rewired = [edge("e1", "t1", "r1", target_handle="in")]
        assert tabs.check_flow_has_unsaved_changes("f1", graph.nodes, rewired)

    def test_position_policy(self):
        graph = trigger_to_end_graph()
        moved = [graph.nodes[0].model_copy(update={"position": NodePosition(x=99, y=1)}), graph.nodes[1]]

        lenient = TabManager()
        _saved(lenient)
        assert not lenient.check_flow_has_unsaved_changes("f1", moved, graph.edges)

        strict = TabManager(dirty_on_position=True)
        _saved(strict)
        assert strict.check_flow_has_unsaved_changes("f1", moved, graph.edges)

    def test_snapshot_is_detached_from_live_nodes(self):
        tabs = TabManager()
        graph = _saved(tabs)
        graph.nodes[0].config["message"] = "edited in place"
        assert tabs.check_flow_has_unsaved_changes("f1", graph.nodes, graph.edges)


class TestErrorFlag:
    def test_uses_cached_result_only(self):
        tabs = TabManager()
        tabs.open_tab("f1")
        assert not tabs.check_flow_has_errors("f1")

        tabs.set_validation("f1", ValidationResult(valid=False, errors=["boom"]))
        assert tabs.check_flow_has_errors("f1")

        tabs.set_validation("f1", ValidationResult(valid=True))
        assert not tabs.check_flow_has_errors("f1")

    def test_unknown_flow(self):
        assert not TabManager().check_flow_has_errors("missing")
