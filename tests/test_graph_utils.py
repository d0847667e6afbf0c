import pytest

from flowguard.utils.graph import (
    build_connection_graph,
    find_cycles,
    is_trigger_type,
    iter_connection_edges,
    longest_chain,
    upstream_nodes,
)


def _edge(name, channel="main"):
    return {"node": name, "type": channel, "index": 0}


def test_iter_connection_edges_skips_null_slots():
    conns = {
        "A": {"main": [None, [_edge("B"), _edge("C")]], "error": [[_edge("D", "main")]]},
        "Broken": "not-a-dict",
    }
    edges = [(s, ch, i, e["node"]) for s, ch, i, e in iter_connection_edges(conns)]
    assert edges == [("A", "main", 1, "B"), ("A", "main", 1, "C"), ("A", "error", 0, "D")]


def test_graph_records_channels_per_pair():
    wf = {
        "nodes": [{"name": "A"}, {"name": "B"}],
        "connections": {"A": {"main": [[_edge("B")]], "ai_tool": [[_edge("B", "ai_tool")]]}},
    }
    G = build_connection_graph(wf)
    assert G["A"]["B"]["channels"] == {"main", "ai_tool"}


def test_graph_skips_non_string_names_and_targets():
    wf = {
        "nodes": [{"name": "A"}, {"name": ["B"]}, {"name": None}],
        "connections": {"A": {"main": [[_edge(["B"]), _edge({"x": 1}), _edge("C")]]}},
    }
    G = build_connection_graph(wf)
    assert sorted(G.nodes) == ["A", "C"], list(G.nodes)
    assert list(G.edges) == [("A", "C")]


def test_find_cycles_reports_back_edges():
    wf = {"nodes": [{"name": n} for n in "ABC"],
          "connections": {"A": {"main": [[_edge("B")]]}, "B": {"main": [[_edge("C")]]},
                          "C": {"main": [[_edge("A")]]}}}
    assert find_cycles(build_connection_graph(wf)) == [["A", "B", "C", "A"]]


def test_find_cycles_self_loop_and_diamond():
    loop = {"nodes": [{"name": "A"}], "connections": {"A": {"main": [[_edge("A")]]}}}
    assert find_cycles(build_connection_graph(loop)) == [["A", "A"]]

    diamond = {"nodes": [{"name": n} for n in "TABC"],
               "connections": {"T": {"main": [[_edge("A"), _edge("B")]]},
                               "A": {"main": [[_edge("C")]]}, "B": {"main": [[_edge("C")]]}}}
    G = build_connection_graph(diamond)
    assert find_cycles(G) == []
    assert longest_chain(G) == 2
    assert upstream_nodes(G, "C") == ["A", "B", "T"]


@pytest.mark.parametrize("node_type, expected", [
    ("n8n-nodes-base.manualTrigger", True),
    ("n8n-nodes-base.webhook", True),
    ("n8n-nodes-base.scheduleTrigger", True),
    ("n8n-nodes-base.start", True),
    ("n8n-nodes-base.formTrigger", True),
    ("@n8n/n8n-nodes-langchain.chatTrigger", True),
    ("n8n-nodes-base.respondToWebhook", False),
    ("n8n-nodes-base.httpRequest", False),
    ("", False),
])
def test_trigger_predicate(node_type, expected):
    assert is_trigger_type(node_type) == expected, f"{node_type}: expected trigger={expected}"
