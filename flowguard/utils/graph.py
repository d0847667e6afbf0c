# flowguard/utils/graph.py
from typing import Dict, Any, Iterator, List, Tuple

import networkx as nx

MAIN = "main"
ERROR = "error"
AI_TOOL = "ai_tool"

_TRIGGER_LOCAL_NAMES = {"webhook", "start", "cron", "interval"}


def iter_connection_edges(connections: Dict[str, Any]) -> Iterator[Tuple[str, str, int, Dict[str, Any]]]:
    """
    Walk an n8n connection map and yield (source, channel, slot, edge).

      connections[src]["main"] = [
         [ {"node": "B", "type": "main", "index": 0}, {"node": "C", ...} ],   # output slot 0
         None,                                                                # sparse slot
         [ {"node": "D", "type": "main", "index": 0} ]                        # output slot 2
      ]
    Null slots and non-dict hops are skipped.
    """
    for src_name, channels in (connections or {}).items():
        if not isinstance(channels, dict):
            continue
        for channel, slots in channels.items():
            if not isinstance(slots, list):
                continue
            for slot_idx, slot in enumerate(slots):
                if not slot:
                    continue
                if isinstance(slot, dict):
                    slot = [slot]
                for hop in slot:
                    if isinstance(hop, dict):
                        yield src_name, channel, slot_idx, hop


def build_connection_graph(workflow: Dict[str, Any]) -> nx.DiGraph:
    """
    Directed graph keyed by node *name* over every channel type.
    Each edge records the set of channels that connect the pair.
    Edge endpoints that are not nodes of the workflow are still added so
    that cycles through dangling names are visible too.
    """
    G = nx.DiGraph()
    for n in workflow.get("nodes") or []:
        name = n.get("name") if isinstance(n, dict) else None
        if isinstance(name, str):
            G.add_node(name)

    for src, channel, _slot, hop in iter_connection_edges(workflow.get("connections") or {}):
        tgt = hop.get("node")
        if not isinstance(tgt, str):
            continue
        if G.has_edge(src, tgt):
            G[src][tgt]["channels"].add(channel)
        else:
            G.add_edge(src, tgt, channels={channel})
    return G


def is_trigger_type(node_type: str) -> bool:
    """Trigger-capable node types: *Trigger nodes, webhooks, schedule/cron and start nodes."""
    local = (node_type or "").rsplit(".", 1)[-1].lower()
    return local.endswith("trigger") or local in _TRIGGER_LOCAL_NAMES


def find_cycles(G: nx.DiGraph) -> List[List[str]]:
    """
    DFS with an explicit recursion stack. Every back-edge (an edge into a
    node still on the stack) yields one cycle, returned as the path from
    that node around to itself, e.g. ["A", "B", "A"].
    """
    cycles: List[List[str]] = []
    visited = set()

    for root in G.nodes:
        if root in visited:
            continue
        visited.add(root)
        path = [root]
        on_stack = {root}
        stack = [iter(G.successors(root))]
        while stack:
            advanced = False
            for nxt in stack[-1]:
                if nxt in on_stack:
                    start = path.index(nxt)
                    cycles.append(path[start:] + [nxt])
                    continue
                if nxt in visited:
                    continue
                visited.add(nxt)
                on_stack.add(nxt)
                path.append(nxt)
                stack.append(iter(G.successors(nxt)))
                advanced = True
                break
            if not advanced:
                stack.pop()
                on_stack.discard(path.pop())
    return cycles


def longest_chain(G: nx.DiGraph) -> int:
    """Number of hops on the longest path; 0 for cyclic graphs (reported elsewhere)."""
    if G.number_of_edges() == 0 or not nx.is_directed_acyclic_graph(G):
        return 0
    return nx.dag_longest_path_length(G)


def upstream_nodes(G: nx.DiGraph, name: str) -> List[str]:
    if name not in G:
        return []
    return sorted(nx.ancestors(G, name))
