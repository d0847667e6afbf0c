# flowguard/diff/engine.py
from __future__ import annotations

import copy
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from jsonschema import Draft7Validator

from flowguard.structural.schema import DIFF_REQUEST_SCHEMA, OPERATION_SCHEMAS
from flowguard.utils.graph import MAIN
from flowguard.utils.logger import get_logger
from flowguard.workflow.node_types import deprecated_prefix_fix, has_package_prefix

log = get_logger("diff")

MAX_OPERATIONS = 5

NODE_OPERATIONS = ("addNode", "removeNode", "updateNode", "moveNode", "enableNode", "disableNode")
CONNECTION_OPERATIONS = ("addConnection", "removeConnection", "updateConnection")
METADATA_OPERATIONS = ("updateSettings", "updateName", "addTag", "removeTag")

_PASSTHROUGH_FIELDS = (
    "credentials", "notes", "notesInFlow", "disabled", "continueOnFail", "retryOnFail",
    "maxTries", "waitBetweenTries", "alwaysOutputData", "executeOnce",
)

_request_schema = Draft7Validator(DIFF_REQUEST_SCHEMA)
_op_schemas = {name: Draft7Validator(schema) for name, schema in OPERATION_SCHEMAS.items()}


class DiffError(Exception):
    """Raised inside the engine for an invalid operation; never escapes apply_diff."""


def _schema_problem(validator: Draft7Validator, instance: Any) -> Optional[str]:
    errors = sorted(validator.iter_errors(instance), key=lambda e: list(e.path))
    if not errors:
        return None
    err = errors[0]
    where = ".".join(str(p) for p in err.path)
    return f"{where}: {err.message}" if where else err.message


class WorkflowDiffEngine:
    """
    Applies a bounded batch of add/remove/update operations to a workflow.

    The batch is all-or-nothing: operations run against a deep copy and the
    first failure discards it. Node operations run first, then connection
    operations, then metadata operations, whatever order the caller used.
    """

    def __init__(self, id_factory: Optional[Callable[[], str]] = None):
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._handlers: Dict[str, Callable[[Dict[str, Any], Dict[str, Any]], None]] = {
            "addNode": self._add_node,
            "removeNode": self._remove_node,
            "updateNode": self._update_node,
            "moveNode": self._move_node,
            "enableNode": self._enable_node,
            "disableNode": self._disable_node,
            "addConnection": self._add_connection,
            "removeConnection": self._remove_connection,
            "updateConnection": self._update_connection,
            "updateSettings": self._update_settings,
            "updateName": self._update_name,
            "addTag": self._add_tag,
            "removeTag": self._remove_tag,
        }

    def apply_diff(self, workflow: Dict[str, Any], request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Returns {success, workflow?, operations_applied, message, errors?}.
        Error entries are {operation: <original index or -1>, message, details}.
        """
        raw_ops = request.get("operations") if isinstance(request, dict) else None
        if isinstance(raw_ops, list) and len(raw_ops) > MAX_OPERATIONS:
            return self._failure(
                -1,
                f"Too many operations ({len(raw_ops)}). Maximum {MAX_OPERATIONS} operations per request",
                None,
            )

        problem = _schema_problem(_request_schema, request)
        if problem:
            return self._failure(-1, f"Invalid diff request: {problem}", request)

        operations: List[Dict[str, Any]] = request["operations"]

        # keep the caller's index on every operation before reordering
        indexed = list(enumerate(operations))
        node_ops = [(i, op) for i, op in indexed if op["type"] in NODE_OPERATIONS]
        conn_ops = [(i, op) for i, op in indexed if op["type"] in CONNECTION_OPERATIONS]
        other_ops = [(i, op) for i, op in indexed
                     if op["type"] not in NODE_OPERATIONS and op["type"] not in CONNECTION_OPERATIONS]

        working = copy.deepcopy(workflow)
        working.setdefault("nodes", [])
        if not isinstance(working.get("connections"), dict):
            working["connections"] = {}

        for idx, op in node_ops + conn_ops + other_ops:
            try:
                self._apply_one(working, op)
            except DiffError as exc:
                log.debug("operation %d (%s) rejected: %s", idx, op.get("type"), exc)
                return self._failure(idx, str(exc), op)

        total = len(operations)
        if request.get("validateOnly"):
            return {
                "success": True,
                "operations_applied": 0,
                "message": f"Validation successful. {total} operations are valid",
            }

        log.debug("applied %d operations", total)
        return {
            "success": True,
            "workflow": working,
            "operations_applied": total,
            "message": (
                f"Applied {total} operations "
                f"({len(node_ops)} node ops, {len(conn_ops) + len(other_ops)} other ops)"
            ),
        }

    @staticmethod
    def _failure(index: int, message: str, op: Any) -> Dict[str, Any]:
        return {
            "success": False,
            "operations_applied": 0,
            "message": message,
            "errors": [{"operation": index, "message": message, "details": copy.deepcopy(op)}],
        }

    def _apply_one(self, workflow: Dict[str, Any], op: Dict[str, Any]) -> None:
        handler = self._handlers.get(op["type"])
        if handler is None:
            raise DiffError(f"Unknown operation type: {op['type']}")
        problem = _schema_problem(_op_schemas[op["type"]], op)
        if problem:
            raise DiffError(f"Invalid {op['type']} operation: {problem}")
        handler(workflow, op)

    # ---------- lookups ----------

    @staticmethod
    def _find_node(workflow: Dict[str, Any], node_id: Any = None, node_name: Any = None) -> Optional[Dict[str, Any]]:
        """id first, then name; a nodeId that is really a name still resolves."""
        nodes = workflow["nodes"]
        if node_id is not None:
            for n in nodes:
                if n.get("id") == node_id:
                    return n
        for key in (node_name, node_id):
            if key is None:
                continue
            for n in nodes:
                if n.get("name") == key:
                    return n
        return None

    def _require_node(self, workflow: Dict[str, Any], op: Dict[str, Any]) -> Dict[str, Any]:
        node = self._find_node(workflow, op.get("nodeId"), op.get("nodeName"))
        if node is None:
            raise DiffError(f"Node not found: {op.get('nodeId') or op.get('nodeName')}")
        return node

    # ---------- node operations ----------

    def _add_node(self, workflow: Dict[str, Any], op: Dict[str, Any]) -> None:
        fields = op["node"]
        name, ntype = fields["name"], fields["type"]
        if any(n.get("name") == name for n in workflow["nodes"]):
            raise DiffError(f'Node with name "{name}" already exists')
        new_id = fields.get("id")
        if new_id is not None and any(n.get("id") == new_id for n in workflow["nodes"]):
            raise DiffError(f'Node with id "{new_id}" already exists')
        if not has_package_prefix(ntype):
            raise DiffError(
                f'Invalid node type "{ntype}". Must include package prefix. '
                f'Use "n8n-nodes-base.{ntype}" instead'
            )
        fixed = deprecated_prefix_fix(ntype)
        if fixed is not None:
            raise DiffError(f'Invalid node type "{ntype}". Use "{fixed}" instead')

        node: Dict[str, Any] = {
            "id": fields.get("id") or self.id_factory(),
            "name": name,
            "type": ntype,
            "typeVersion": fields.get("typeVersion", 1),
            "position": list(fields.get("position") or [0, 0]),
            "parameters": copy.deepcopy(fields.get("parameters") or {}),
        }
        for field in _PASSTHROUGH_FIELDS:
            if field in fields:
                node[field] = copy.deepcopy(fields[field])
        workflow["nodes"].append(node)

    def _remove_node(self, workflow: Dict[str, Any], op: Dict[str, Any]) -> None:
        node = self._require_node(workflow, op)
        workflow["nodes"] = [n for n in workflow["nodes"] if n is not node]
        name = node.get("name")
        conns = workflow["connections"]
        conns.pop(name, None)
        for src in list(conns):
            channels = conns[src]
            if not isinstance(channels, dict):
                continue
            touched = False
            for channel in list(channels):
                slots = channels[channel]
                if not isinstance(slots, list):
                    continue
                for i, slot in enumerate(slots):
                    if isinstance(slot, list) and any(e.get("node") == name for e in slot):
                        slots[i] = [e for e in slot if e.get("node") != name]
                        touched = True
            if touched:
                _prune(conns, src)

    def _update_node(self, workflow: Dict[str, Any], op: Dict[str, Any]) -> None:
        node = self._require_node(workflow, op)
        changes = op["changes"]
        others = [n for n in workflow["nodes"] if n is not node]
        old_name = node.get("name")

        if "name" in changes:
            new_name = changes["name"]
            if not isinstance(new_name, str) or not new_name:
                raise DiffError("Node name must be a non-empty string")
            if any(n.get("name") == new_name for n in others):
                raise DiffError(f'Node with name "{new_name}" already exists')
        if "id" in changes and any(n.get("id") == changes["id"] for n in others):
            raise DiffError(f'Node with id "{changes["id"]}" already exists')

        for path, value in changes.items():
            _set_path(node, path, copy.deepcopy(value))

        if isinstance(old_name, str) and node.get("name") != old_name:
            _rename_references(workflow["connections"], old_name, node["name"])

    def _move_node(self, workflow: Dict[str, Any], op: Dict[str, Any]) -> None:
        self._require_node(workflow, op)["position"] = list(op["position"])

    def _enable_node(self, workflow: Dict[str, Any], op: Dict[str, Any]) -> None:
        self._require_node(workflow, op)["disabled"] = False

    def _disable_node(self, workflow: Dict[str, Any], op: Dict[str, Any]) -> None:
        self._require_node(workflow, op)["disabled"] = True

    # ---------- connection operations ----------

    def _endpoints(self, workflow: Dict[str, Any], op: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        source = self._find_node(workflow, node_name=op["source"])
        if source is None:
            raise DiffError(f"Source node not found: {op['source']}")
        target = self._find_node(workflow, node_name=op["target"])
        if target is None:
            raise DiffError(f"Target node not found: {op['target']}")
        return source, target

    @staticmethod
    def _edge_fields(op: Dict[str, Any]) -> Tuple[str, str, int, int]:
        return (
            op.get("sourceOutput") or MAIN,
            op.get("targetInput") or MAIN,
            int(op.get("sourceIndex") or 0),
            int(op.get("targetIndex") or 0),
        )

    def _add_connection(self, workflow: Dict[str, Any], op: Dict[str, Any]) -> None:
        source, target = self._endpoints(workflow, op)
        src_name, tgt_name = source["name"], target["name"]
        output, input_type, src_idx, tgt_idx = self._edge_fields(op)

        channels = workflow["connections"].setdefault(src_name, {})
        slots = channels.setdefault(output, [])
        while len(slots) <= src_idx:
            slots.append([])
        if slots[src_idx] is None:
            slots[src_idx] = []
        edge = {"node": tgt_name, "type": input_type, "index": tgt_idx}
        if any(e == edge for e in slots[src_idx]):
            raise DiffError(
                f'Connection already exists from "{src_name}" ({output}[{src_idx}]) '
                f'to "{tgt_name}" ({input_type}[{tgt_idx}])'
            )
        slots[src_idx].append(edge)

    def _remove_connection(self, workflow: Dict[str, Any], op: Dict[str, Any]) -> None:
        source, target = self._endpoints(workflow, op)
        src_name, tgt_name = source["name"], target["name"]
        output, input_type, src_idx, tgt_idx = self._edge_fields(op)

        conns = workflow["connections"]
        slots = (conns.get(src_name) or {}).get(output)
        if not slots:
            raise DiffError(f'No connections found from "{src_name}" on output "{output}"')
        slot = slots[src_idx] if src_idx < len(slots) else None

        def _is_target(e: Any) -> bool:
            return (isinstance(e, dict) and e.get("node") == tgt_name
                    and (e.get("type") or MAIN) == input_type
                    and (e.get("index") or 0) == tgt_idx)

        if not slot or not any(_is_target(e) for e in slot):
            raise DiffError(
                f'Connection not found from "{src_name}" ({output}[{src_idx}]) '
                f'to "{tgt_name}" ({input_type}[{tgt_idx}])'
            )
        slots[src_idx] = [e for e in slot if not _is_target(e)]
        _prune(conns, src_name)

    def _update_connection(self, workflow: Dict[str, Any], op: Dict[str, Any]) -> None:
        self._remove_connection(workflow, op)
        merged = {k: v for k, v in op.items() if k != "changes"}
        merged.update(op.get("changes") or {})
        self._add_connection(workflow, merged)

    # ---------- metadata operations ----------

    @staticmethod
    def _update_settings(workflow: Dict[str, Any], op: Dict[str, Any]) -> None:
        settings = workflow.get("settings")
        if not isinstance(settings, dict):
            settings = workflow["settings"] = {}
        settings.update(copy.deepcopy(op["settings"]))

    @staticmethod
    def _update_name(workflow: Dict[str, Any], op: Dict[str, Any]) -> None:
        workflow["name"] = op["name"]

    @staticmethod
    def _add_tag(workflow: Dict[str, Any], op: Dict[str, Any]) -> None:
        tags = workflow.get("tags")
        if not isinstance(tags, list):
            tags = workflow["tags"] = []
        if op["tag"] not in tags:
            tags.append(op["tag"])

    @staticmethod
    def _remove_tag(workflow: Dict[str, Any], op: Dict[str, Any]) -> None:
        tags = workflow.get("tags")
        if isinstance(tags, list) and op["tag"] in tags:
            workflow["tags"] = [t for t in tags if t != op["tag"]]


# ---------- helpers ----------

def _rename_references(connections: Dict[str, Any], old: str, new: str) -> None:
    """Point the source key and every edge that names `old` at `new`."""
    if old in connections:
        connections[new] = connections.pop(old)
    for channels in connections.values():
        if not isinstance(channels, dict):
            continue
        for slots in channels.values():
            for slot in slots if isinstance(slots, list) else ():
                for e in slot if isinstance(slot, list) else ():
                    if isinstance(e, dict) and e.get("node") == old:
                        e["node"] = new


def _prune(connections: Dict[str, Any], source: str) -> None:
    """Drop trailing empty output slots, then empty channels, then the source key."""
    channels = connections.get(source)
    if not isinstance(channels, dict):
        return
    for channel in list(channels):
        slots = channels[channel]
        if not isinstance(slots, list):
            continue
        while slots and not slots[-1]:
            slots.pop()
        if not slots:
            del channels[channel]
    if not channels:
        del connections[source]


def _set_path(target: Dict[str, Any], path: str, value: Any) -> None:
    """Set a dot-separated path, creating intermediate dicts."""
    keys = path.split(".")
    cur = target
    for key in keys[:-1]:
        nxt = cur.get(key)
        if not isinstance(nxt, dict):
            nxt = cur[key] = {}
        cur = nxt
    cur[keys[-1]] = value
