"""
Example Graphs.

Factory functions that return ready-made ``GraphDefinition`` objects
for the editor's "load example" menu. Each one is a complete, valid
graph built from the built-in node types.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from service.workflow.workflow_model import (
    GraphDefinition,
    NodePosition,
    WorkflowEdge,
    WorkflowNodeInstance,
)


class _GraphBuilder:
    def __init__(self, graph_id: str):
        self.graph_id = graph_id
        self.nodes: List[WorkflowNodeInstance] = []
        self.edges: List[WorkflowEdge] = []

    def add(self, type_id: str, nid: str, label: str, x: float, y: float, cfg: Optional[Dict[str, Any]] = None):
        self.nodes.append(WorkflowNodeInstance(
            id=nid, type_id=type_id, display_name=label,
            position=NodePosition(x=x, y=y), config=cfg or {},
        ))

    def edge(self, src: str, tgt: str, lbl: str = ""):
        self.edges.append(WorkflowEdge(
            id=f"e_{src}_{tgt}", source=src, target=tgt, label=lbl,
        ))

    def build(self) -> GraphDefinition:
        return GraphDefinition(graph_id=self.graph_id, nodes=self.nodes, edges=self.edges)


# ============================================================================
# hello-agent:  manual trigger → agent → chat response
# ============================================================================


def create_hello_agent_template() -> GraphDefinition:
    g = _GraphBuilder("hello-agent")

    g.add("trigger.manual", "t1", "Start",      80, 160, {"message": "Hello, agent!"})
    g.add("agent.core",     "a1", "Agent",      320, 160, {
        "strategy": "reactive",
        "instructions": "Greet the user and answer briefly.",
    })
    g.add("response.chat",  "r1", "Reply",      560, 160, {"format": "text"})

    g.edge("t1", "a1")
    g.edge("a1", "r1")
    return g.build()


# ============================================================================
# route-intent:  classify the message and route to a specialised model
#
#   t1 → c1 ─┬─[billing]→ m_billing ─┐
#            └─[default]→ m_general ─┴→ r1
# ============================================================================


def create_route_intent_template() -> GraphDefinition:
    g = _GraphBuilder("route-intent")

    g.add("trigger.manual", "t1", "Start",  80, 240, {"message": "I was charged twice"})
    g.add("condition.expr", "c1", "Intent", 320, 240, {
        "engine": "jexl",
        "rules": [
            {"if": "input.message =~ 'charge|invoice|refund'", "to": "m_billing"},
            {"if": "true", "to": "m_general"},
        ],
    })
    g.add("model.llm", "m_billing", "Billing Model", 560, 160, {
        "provider": "openai",
        "model": "gpt-4o-mini",
        "temperature": 0.2,
        "prompt": "You are a billing assistant.",
    })
    g.add("model.llm", "m_general", "General Model", 560, 320, {
        "provider": "openai",
        "model": "gpt-4o-mini",
        "temperature": 0.7,
    })
    g.add("response.chat", "r1", "Reply", 800, 240, {"format": "text"})

    g.edge("t1", "c1")
    g.edge("c1", "m_billing", "billing")
    g.edge("c1", "m_general", "default")
    g.edge("m_billing", "r1")
    g.edge("m_general", "r1")
    return g.build()


# ============================================================================
# input-llm-end-flow:  structured input → model → final output
# ============================================================================


def create_input_llm_end_template() -> GraphDefinition:
    g = _GraphBuilder("input-llm-end-flow")

    g.add("trigger.input", "in1", "Input", 80, 160, {
        "schema": {
            "type": "object",
            "properties": {"question": {"type": "string"}},
            "required": ["question"],
        },
    })
    g.add("model.llm", "llm1", "Model", 320, 160, {
        "provider": "azure",
        "model": "gpt-4o",
        "prompt": "Answer the question: {{question}}",
    })
    g.add("response.end", "end1", "End", 560, 160, {"output": {"answer": "{{llm1.output}}"}})

    g.edge("in1", "llm1")
    g.edge("llm1", "end1")
    return g.build()


EXAMPLES: Dict[str, Callable[[], GraphDefinition]] = {
    "hello-agent": create_hello_agent_template,
    "route-intent": create_route_intent_template,
    "input-llm-end-flow": create_input_llm_end_template,
}

# camelCase names used by older clients
_EXAMPLE_ALIASES = {
    "helloAgent": "hello-agent",
    "routeIntent": "route-intent",
    "inputLlmEndFlow": "input-llm-end-flow",
}


def list_examples() -> List[str]:
    return list(EXAMPLES)


def get_example(name: str) -> Optional[GraphDefinition]:
    """Fresh copy of the named example, or ``None`` if unknown."""
    factory = EXAMPLES.get(_EXAMPLE_ALIASES.get(name, name))
    return factory() if factory else None
