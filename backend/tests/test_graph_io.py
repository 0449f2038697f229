"""Tests for graph export and atomic import."""

import json

from service.workflow.graph_io import export_graph, import_graph, parse_graph
from service.workflow.graph_store import GraphStore
from service.workflow.templates import get_example, list_examples
from service.workflow.workflow_model import NodePosition
from service.workflow.workflow_validator import EMPTY_GRAPH_ERROR, validate_local
from tests.fakes import trigger_to_end_graph


LEGACY_PAYLOAD = {
    "id": "legacy-graph",
    "version": 1,
    "start": "t1",
    "nodes": [
        {
            "id": "t1",
            "type": "ap.trigger.manual",
            "typeVersion": 1,
            "label": "Start",
            "config": {"message": "hello"},
            "ui": {"x": 10, "y": 20},
        },
        {"id": "r1", "type": "response.end", "config": {}},
    ],
    "edges": [{"id": "e1", "source": "t1", "target": "r1"}],
}


class TestExport:
    def test_wire_shape(self):
        graph = trigger_to_end_graph("g1")
        graph.nodes[0].position = NodePosition(x=5, y=6)
        data = json.loads(export_graph(graph))

        assert data["graphId"] == "g1"
        assert data["contractVersion"] == 1
        assert data["nodes"][0] == {
            "id": "t1",
            "typeId": "trigger.manual",
            "version": 1,
            "config": {"message": "hi"},
            "ui": {"x": 5, "y": 6},
        }
        assert data["edges"] == [{"id": "e1", "source": "t1", "target": "r1"}]

    def test_export_is_canonical(self):
        text = export_graph(trigger_to_end_graph())
        assert export_graph(parse_graph(text)) == text
        assert list(json.loads(text)) == sorted(json.loads(text))


class TestImport:
    def test_round_trip_into_store(self, registry):
        original = trigger_to_end_graph("g1")
        store = GraphStore()
        result = import_graph(export_graph(original), store, registry)

        assert result.success
        assert store.graph_id == "g1"
        assert [n.id for n in store.nodes] == ["t1", "r1"]
        assert export_graph(store.snapshot()) == export_graph(original)

    def test_invalid_json_leaves_store_untouched(self, registry):
        store = GraphStore(trigger_to_end_graph())
        nodes_before = store.nodes
        result = import_graph("{not json", store, registry)

        assert not result.success
        assert result.errors[0].startswith("invalid JSON")
        assert store.nodes is nodes_before

    def test_shape_errors(self, registry):
        store = GraphStore()
        result = import_graph(json.dumps({"nodes": {}, "edges": "x"}), store, registry)
        assert not result.success
        assert "'nodes' must be a list" in result.errors
        assert "'edges' must be a list" in result.errors

    def test_not_an_object(self, registry):
        result = import_graph("[1, 2]", GraphStore(), registry)
        assert result.errors == ["graph must be a JSON object"]

    def test_validation_failure_is_atomic(self, registry):
        store = GraphStore(trigger_to_end_graph("keep"))
        payload = json.loads(export_graph(trigger_to_end_graph("other")))
        payload["edges"].append({"id": "e_bad", "source": "t1", "target": "ghost"})

        result = import_graph(json.dumps(payload), store, registry)
        assert not result.success
        assert any("e_bad" in e for e in result.errors)
        assert store.graph_id == "keep"
        assert len(store.edges) == 1

    def test_overflowing_version_is_rejected(self, registry):
        store = GraphStore(trigger_to_end_graph("keep"))
        for bad in ("inf", "1e999"):
            payload = json.loads(export_graph(trigger_to_end_graph()))
            payload["nodes"][0]["version"] = bad
            payload["contractVersion"] = bad

            result = import_graph(json.dumps(payload), store, registry)

            assert not result.success
            assert all(e.startswith("invalid graph:") for e in result.errors)
            assert store.graph_id == "keep"

    def test_non_utf8_bytes_are_rejected(self, registry):
        store = GraphStore(trigger_to_end_graph("keep"))
        result = import_graph(b'{"nodes": ["\xff"]}', store, registry)

        assert not result.success
        assert result.errors[0].startswith("invalid JSON: not valid UTF-8")
        assert store.graph_id == "keep"

    def test_empty_graph_is_rejected(self, registry):
        result = import_graph(json.dumps({"nodes": [], "edges": []}), GraphStore(), registry)
        assert result.errors == [EMPTY_GRAPH_ERROR]

    def test_legacy_payload(self, registry):
        store = GraphStore()
        result = import_graph(json.dumps(LEGACY_PAYLOAD), store, registry)

        assert result.success, result.errors
        assert store.graph_id == "legacy-graph"
        t1 = store.get_node("t1")
        assert t1.type_id == "trigger.manual"
        assert t1.display_name == "Start"
        assert (t1.position.x, t1.position.y) == (10, 20)

    def test_old_node_versions_are_migrated(self, registry):
        payload = json.loads(export_graph(trigger_to_end_graph()))
        payload["nodes"].insert(1, {
            "id": "m1",
            "typeId": "model.llm",
            "version": 1,
            "config": {"provider": "local", "model": "llama3", "system": "terse"},
        })
        payload["edges"] = [
            {"id": "e1", "source": "t1", "target": "m1"},
            {"id": "e2", "source": "m1", "target": "r1"},
        ]
        store = GraphStore()
        assert import_graph(json.dumps(payload), store, registry).success

        m1 = store.get_node("m1")
        assert m1.version == 2
        assert m1.config["prompt"] == "terse"


class TestExamples:
    def test_every_example_is_valid(self, registry):
        for name in list_examples():
            result = validate_local(get_example(name), registry)
            assert result.valid, (name, result.errors)

    def test_camel_case_alias(self):
        assert get_example("helloAgent").graph_id == "hello-agent"
        assert get_example("nope") is None
