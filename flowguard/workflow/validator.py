# flowguard/workflow/validator.py
from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Set

import networkx as nx
from jsonschema import Draft7Validator

from flowguard.config.enhanced import PROFILES, EnhancedConfigValidator
from flowguard.expressions.validator import validate_node_expressions
from flowguard.structural.schema import NODE_SCHEMA
from flowguard.utils.graph import (
    AI_TOOL,
    ERROR,
    build_connection_graph,
    find_cycles,
    is_trigger_type,
    iter_connection_edges,
    longest_chain,
    upstream_nodes,
)
from flowguard.utils.logger import get_logger
from flowguard.workflow.node_types import (
    CANONICAL_PACKAGES,
    NodeTypeRepository,
    deprecated_prefix_fix,
    has_package_prefix,
    latest_version,
    normalize_node_type,
    package_of,
)

log = get_logger("workflow")

LONG_CHAIN_THRESHOLD = 10
ERROR_HANDLING_NODE_THRESHOLD = 3
SUBWORKFLOW_NODE_THRESHOLD = 20
EXPRESSION_COUNT_THRESHOLD = 5

AGENT_TYPES = {"nodes-langchain.agent"}
_WEBHOOK_LOCAL_NAMES = {"webhook", "webhooktrigger"}
_COMMUNITY_TOOL_ENV = "N8N_COMMUNITY_PACKAGES_ALLOW_TOOL_USAGE"
_CONNECTION_EXAMPLE = (
    'Example connection structure: {"Manual Trigger": {"main": '
    '[[{"node": "Set", "type": "main", "index": 0}]]}}'
)

_node_shape = Draft7Validator(NODE_SCHEMA)


class _Findings:
    """Shared accumulator threaded through every phase."""

    def __init__(self):
        self.errors: List[Dict[str, Any]] = []
        self.warnings: List[Dict[str, Any]] = []
        self.suggestions: List[str] = []
        self.connection_errors = 0

    @staticmethod
    def _entry(message: str, node: Optional[Dict[str, Any]], details: Any) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"message": message}
        if node is not None:
            entry["node_name"] = node.get("name")
            if node.get("id") is not None:
                entry["node_id"] = node.get("id")
        if details is not None:
            entry["details"] = details
        return entry

    def error(self, message: str, node: Optional[Dict[str, Any]] = None, details: Any = None) -> None:
        self.errors.append(self._entry(message, node, details))

    def warn(self, message: str, node: Optional[Dict[str, Any]] = None, details: Any = None) -> None:
        self.warnings.append(self._entry(message, node, details))

    def suggest(self, text: str) -> None:
        if text not in self.suggestions:
            self.suggestions.append(text)


def _is_enabled(node: Dict[str, Any]) -> bool:
    return not node.get("disabled")


def _is_key(value: Any) -> bool:
    """Ids usable as lookup keys; anything else is malformed input."""
    return isinstance(value, (str, int, float)) and not isinstance(value, bool)


def _local_type(node: Dict[str, Any]) -> str:
    return str(node.get("type") or "").rsplit(".", 1)[-1].lower()


def _fmt_version(v: Any) -> str:
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


class WorkflowValidator:
    """
    Validates a whole workflow: structure, connections, cycles, per-node
    configuration, expressions and common best practices.

    Collaborators are injected:
      node_repository     object with get_node(type) -> metadata | None
      node_validator      object with validate_with_mode(type, config, props, mode, profile)
      expression_checker  callable(parameters, context) -> expression result
    """

    def __init__(
        self,
        node_repository: Optional[Any] = None,
        node_validator: Optional[Any] = None,
        expression_checker: Optional[Callable[[Any, Dict[str, Any]], Dict[str, Any]]] = None,
    ):
        self.node_repository = node_repository if node_repository is not None else NodeTypeRepository.with_builtin_catalog()
        self.node_validator = node_validator if node_validator is not None else EnhancedConfigValidator()
        self.expression_checker = expression_checker or validate_node_expressions

    def validate_workflow(
        self,
        workflow: Dict[str, Any],
        validate_nodes: bool = True,
        validate_connections: bool = True,
        validate_expressions: bool = True,
        profile: str = "runtime",
    ) -> Dict[str, Any]:
        """
        Returns {valid, errors, warnings, suggestions, statistics}.
        Raises TypeError when the workflow has no `nodes` list.
        """
        if not isinstance(workflow, dict) or not isinstance(workflow.get("nodes"), list):
            raise TypeError("Workflow must be an object with a 'nodes' array")
        if profile not in PROFILES:
            raise ValueError(f"Unknown validation profile '{profile}'. Choose one of: {', '.join(PROFILES)}")

        raw_nodes = workflow["nodes"]
        findings = _Findings()
        stats = {
            "total_nodes": len(raw_nodes),
            "enabled_nodes": 0,
            "trigger_nodes": 0,
            "valid_connections": 0,
            "invalid_connections": 0,
            "expressions_validated": 0,
        }

        # 1) Structural preconditions
        nodes = self._check_structure(workflow, raw_nodes, findings)
        enabled = [n for n in nodes if _is_enabled(n)]
        stats["enabled_nodes"] = len(enabled)
        if not raw_nodes:
            return self._result(findings, stats)

        connections = workflow.get("connections")
        conn_ok = isinstance(connections, dict)
        G = build_connection_graph({"nodes": nodes, "connections": connections}) if conn_ok else nx.DiGraph()

        # 2) Triggers
        triggers = [n for n in enabled if is_trigger_type(str(n.get("type") or ""))]
        stats["trigger_nodes"] = len(triggers)
        if enabled and not triggers:
            findings.warn("Workflow has no trigger nodes. It can only be started manually or from another workflow")

        # 3) Connections, 4) cycles
        cyclic: Set[str] = set()
        if conn_ok:
            if validate_connections:
                self._check_connections(nodes, connections, findings, stats)
            for cycle in find_cycles(G):
                cyclic.update(cycle)
                findings.error(f"Workflow contains a cycle: {' -> '.join(map(str, cycle))}")

        # 5) Per-node configuration
        if validate_nodes:
            for node in enabled:
                self._check_node(node, profile, findings)

        # 6) Expressions
        if validate_expressions:
            for node in enabled:
                self._check_expressions(node, G, cyclic, findings, stats)

        # 7) Patterns, 8) suggestions
        self._check_patterns(nodes, enabled, connections if conn_ok else {}, G, findings)
        self._add_suggestions(nodes, connections if conn_ok else {}, findings, stats)

        log.debug(
            "validated %d nodes: %d errors, %d warnings",
            len(raw_nodes), len(findings.errors), len(findings.warnings),
        )
        return self._result(findings, stats)

    @staticmethod
    def _result(findings: _Findings, stats: Dict[str, int]) -> Dict[str, Any]:
        return {
            "valid": len(findings.errors) == 0,
            "errors": findings.errors,
            "warnings": findings.warnings,
            "suggestions": findings.suggestions,
            "statistics": stats,
        }

    # ---------- Phase 1 ----------

    def _check_structure(self, workflow: Dict[str, Any], raw_nodes: List[Any], findings: _Findings) -> List[Dict[str, Any]]:
        if not raw_nodes:
            findings.error("Workflow has no nodes")
            findings.suggest(
                "A minimal workflow needs a trigger node, at least one processing node "
                "and a connection between them"
            )
            return []

        connections = workflow.get("connections")
        if not isinstance(connections, dict):
            findings.error("Workflow must have a connections object")
            findings.connection_errors += 1

        nodes: List[Dict[str, Any]] = []
        for idx, node in enumerate(raw_nodes):
            for err in sorted(_node_shape.iter_errors(node), key=lambda e: list(e.path)):
                findings.error(f"Invalid node at index {idx}: {err.message}")
            if isinstance(node, dict):
                nodes.append(node)

        seen_names: Set[Any] = set()
        seen_ids: Set[Any] = set()
        for node in nodes:
            name, nid = node.get("name"), node.get("id")
            if isinstance(name, str):
                if name in seen_names:
                    findings.error(f'Duplicate node name: "{name}"', node)
                seen_names.add(name)
            if _is_key(nid):
                if nid in seen_ids:
                    findings.error(f'Duplicate node ID: "{nid}"', node)
                seen_ids.add(nid)

        if len(nodes) == 1:
            only = nodes[0]
            if _local_type(only) not in _WEBHOOK_LOCAL_NAMES:
                findings.error(
                    "Single-node workflows are only valid for webhook endpoints. "
                    "Add at least one more connected node to create a functional workflow",
                    only,
                )
            elif not connections:
                findings.warn(
                    "Webhook node has no connections. Consider adding nodes to process the webhook data",
                    only,
                )
                findings.suggest(
                    "A minimal workflow needs a trigger node, at least one processing node "
                    "and a connection between them"
                )
        elif len(nodes) > 1 and any(_is_enabled(n) for n in nodes):
            if isinstance(connections, dict) and not connections:
                findings.error(
                    "Multi-node workflow has no connections. Nodes must be connected to create a workflow"
                )
                findings.connection_errors += 1
        return nodes

    # ---------- Phase 3 ----------

    def _check_connections(self, nodes: List[Dict[str, Any]], connections: Dict[str, Any],
                           findings: _Findings, stats: Dict[str, int]) -> None:
        by_name = {n["name"]: n for n in nodes if isinstance(n.get("name"), str)}
        name_by_id = {n["id"]: n.get("name") for n in nodes if _is_key(n.get("id"))}
        connected: Set[str] = set()

        def _bad_reference(ref: Any, role: str, source: Any = None) -> None:
            stats["invalid_connections"] += 1
            findings.connection_errors += 1
            if _is_key(ref) and ref in name_by_id:
                findings.error(
                    f"Connection uses node ID '{ref}' instead of node name '{name_by_id[ref]}' "
                    f"({role}). Connections must reference node names"
                )
            elif role == "source":
                findings.error(f'Connection from non-existent node: "{ref}"')
            else:
                findings.error(f'Connection to non-existent node: "{ref}" from "{source}"')

        for src, channels in connections.items():
            if src not in by_name:
                _bad_reference(src, "source")
                continue
            for _src, channel, _slot, hop in iter_connection_edges({src: channels}):
                connected.add(src)
                tgt = hop.get("node")
                if not isinstance(tgt, str) or tgt not in by_name:
                    _bad_reference(tgt, "target", src)
                    continue
                stats["valid_connections"] += 1
                connected.add(tgt)
                if not _is_enabled(by_name[tgt]):
                    findings.warn(f'Connection to disabled node: "{tgt}" from "{src}"', by_name[src])

        if len(nodes) > 1:
            for node in nodes:
                name = node.get("name")
                if not isinstance(name, str):
                    continue
                if (_is_enabled(node) and name not in connected
                        and not is_trigger_type(str(node.get("type") or ""))):
                    findings.warn(f'Node "{name}" is not connected to any other nodes', node)

    # ---------- Phase 5 ----------

    def _lookup(self, node_type: str) -> Optional[Dict[str, Any]]:
        meta = self.node_repository.get_node(node_type)
        if meta is None:
            normalized = normalize_node_type(node_type)
            if normalized != node_type:
                meta = self.node_repository.get_node(normalized)
        return meta

    def _check_node(self, node: Dict[str, Any], profile: str, findings: _Findings) -> None:
        ntype = str(node.get("type") or "")
        try:
            fixed = deprecated_prefix_fix(ntype)
            if fixed is not None:
                findings.error(f'Invalid node type: "{ntype}". Use "{fixed}" instead', node)
                return

            meta = self._lookup(ntype)
            if meta is None:
                hint = "" if has_package_prefix(ntype) else (
                    f'. Node types need a package prefix, e.g. "n8n-nodes-base.{ntype}"'
                )
                findings.error(f'Unknown node type: "{ntype}"{hint}', node)
                return

            if meta.get("is_versioned"):
                self._check_type_version(node, meta, findings)

            res = self.node_validator.validate_with_mode(
                ntype, node.get("parameters") or {}, meta.get("properties") or [], "operation", profile
            )
            for err in res.get("errors") or []:
                if isinstance(err, dict):
                    findings.error(err.get("message", str(err)), node, err)
                else:
                    findings.error(str(err), node)
            for warn in res.get("warnings") or []:
                if isinstance(warn, dict):
                    findings.warn(warn.get("message", str(warn)), node, warn)
                else:
                    findings.warn(str(warn), node)
        except Exception as exc:
            log.warning("validation of node %r failed: %s", node.get("name"), exc, exc_info=True)
            findings.error(f"Failed to validate node: {exc}", node)

    @staticmethod
    def _check_type_version(node: Dict[str, Any], meta: Dict[str, Any], findings: _Findings) -> None:
        tv = node.get("typeVersion")
        latest = latest_version(meta)
        shown_latest = _fmt_version(latest) if latest is not None else "the latest version"
        # zero counts as missing
        if not tv and not isinstance(tv, str):
            findings.error(f"Missing required property 'typeVersion'. Add typeVersion: {shown_latest}", node)
            return
        if isinstance(tv, bool) or not isinstance(tv, (int, float)) or tv < 0:
            findings.error(f"Invalid typeVersion: {tv}. Must be a non-negative number", node)
            return
        if latest is None:
            return
        if tv > latest:
            findings.error(
                f"typeVersion {_fmt_version(tv)} exceeds maximum supported version {shown_latest}", node
            )
        elif tv < latest:
            findings.warn(f"Outdated typeVersion: {_fmt_version(tv)}. Latest is {shown_latest}", node)

    # ---------- Phase 6 ----------

    def _check_expressions(self, node: Dict[str, Any], G: nx.DiGraph, cyclic: Set[str],
                           findings: _Findings, stats: Dict[str, int]) -> None:
        name = node.get("name")
        named = isinstance(name, str)
        context = {
            "available_nodes": upstream_nodes(G, name) if named else [],
            "current_node_name": name,
            "has_input_data": named and name in G and G.in_degree(name) > 0,
            "is_in_loop": named and name in cyclic,
        }
        res = self.expression_checker(node.get("parameters") or {}, context)
        stats["expressions_validated"] += len(res.get("used_variables") or ())
        for err in res.get("errors") or []:
            findings.error(f"Expression error: {err}", node)
        for warn in res.get("warnings") or []:
            findings.warn(f"Expression warning: {warn}", node)

    # ---------- Phase 7 ----------

    def _check_patterns(self, nodes: List[Dict[str, Any]], enabled: List[Dict[str, Any]],
                        connections: Dict[str, Any], G: nx.DiGraph, findings: _Findings) -> None:
        edges = list(iter_connection_edges(connections))
        has_error_edges = any(channel == ERROR for _s, channel, _i, _h in edges)

        if len(nodes) > ERROR_HANDLING_NODE_THRESHOLD and not has_error_edges:
            findings.warn("Consider adding error handling to your workflow")

        chain = longest_chain(G)
        if chain > LONG_CHAIN_THRESHOLD:
            findings.warn(
                f"Long linear chain detected ({chain} hops). Consider splitting it into sub-workflows"
            )

        for node in enabled:
            creds = node.get("credentials")
            if isinstance(creds, dict):
                for cred_type, cred in creds.items():
                    if not isinstance(cred, dict) or not cred.get("id"):
                        findings.warn(f"Missing credentials configuration for {cred_type}", node)

        by_name = {n["name"]: n for n in nodes if isinstance(n.get("name"), str)}
        community_tools = False
        for node in enabled:
            if normalize_node_type(str(node.get("type") or "")) not in AGENT_TYPES:
                continue
            tools = [s for s, channel, _i, hop in edges if channel == AI_TOOL and hop.get("node") == node.get("name")]
            if not tools:
                findings.warn("AI Agent has no tools connected. Attach tool nodes through ai_tool connections", node)
            for tool_name in tools:
                tool = by_name.get(tool_name)
                if tool is None:
                    continue
                if package_of(str(tool.get("type") or "")) not in CANONICAL_PACKAGES:
                    community_tools = True
                    findings.warn(f'Community node "{tool_name}" is used as an AI tool', tool)
        if community_tools:
            findings.suggest(
                f"Community nodes used as AI tools require {_COMMUNITY_TOOL_ENV}=true in the n8n environment"
            )

        for node in enabled:
            count = json.dumps(node.get("parameters") or {}, default=str).count("{{")
            if count > EXPRESSION_COUNT_THRESHOLD:
                findings.suggest(
                    f'Node "{node.get("name")}" uses {count} expressions. '
                    "Consider moving the logic into a Code node"
                )

    # ---------- Phase 8 ----------

    @staticmethod
    def _add_suggestions(nodes: List[Dict[str, Any]], connections: Dict[str, Any],
                         findings: _Findings, stats: Dict[str, int]) -> None:
        if stats["trigger_nodes"] == 0:
            findings.suggest("Add a trigger node (Manual Trigger, Webhook or Schedule Trigger) to start the workflow")
        if findings.connection_errors:
            findings.suggest(_CONNECTION_EXAMPLE)
            findings.suggest("Use node NAMES (not IDs) in connections")
        has_error_edges = any(ch == ERROR for _s, ch, _i, _h in iter_connection_edges(connections))
        if len(nodes) > 1 and not has_error_edges:
            findings.suggest("Add error handling with error outputs or an Error Trigger workflow")
        if len(nodes) > SUBWORKFLOW_NODE_THRESHOLD:
            findings.suggest("Consider breaking this workflow into sub-workflows for maintainability")
