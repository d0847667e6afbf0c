# flowguard/workflow/node_types.py
from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from flowguard.utils.io import load_any
from flowguard.utils.logger import get_logger

log = get_logger("node_types")

BASE_PACKAGE = "n8n-nodes-base"
LANGCHAIN_PACKAGE = "@n8n/n8n-nodes-langchain"
CANONICAL_PACKAGES = (BASE_PACKAGE, LANGCHAIN_PACKAGE)

# full package prefix -> short form used by the metadata store
_SHORT_FORMS = {
    f"{BASE_PACKAGE}.": "nodes-base.",
    f"{LANGCHAIN_PACKAGE}.": "nodes-langchain.",
}
# deprecated short prefix -> canonical prefix
_DEPRECATED_PREFIXES = {short: full for full, short in _SHORT_FORMS.items()}


def normalize_node_type(node_type: str) -> str:
    """n8n-nodes-base.X -> nodes-base.X, @n8n/n8n-nodes-langchain.X -> nodes-langchain.X."""
    for full, short in _SHORT_FORMS.items():
        if node_type.startswith(full):
            return short + node_type[len(full):]
    return node_type


def deprecated_prefix_fix(node_type: str) -> Optional[str]:
    """Canonical spelling when `node_type` uses a short package alias, else None."""
    for short, full in _DEPRECATED_PREFIXES.items():
        if node_type.startswith(short):
            return full + node_type[len(short):]
    return None


def has_package_prefix(node_type: str) -> bool:
    return "." in node_type.strip(".")


def package_of(node_type: str) -> str:
    return node_type.rsplit(".", 1)[0] if "." in node_type else ""


def latest_version(meta: Dict[str, Any]) -> Optional[float]:
    """Parse the metadata `version` (a string like '4' or '4.2'); None when unusable."""
    raw = meta.get("version")
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        log.debug("unparseable version %r for %s", raw, meta.get("node_type"))
        return None


# ---------- Repository ----------

class NodeTypeRepository:
    """
    In-memory node-type lookup.

    Entries are keyed by their normalized type; `get_node` accepts both the
    canonical and the short spelling and hands out deep copies so callers
    can not corrupt the catalog.
    """

    def __init__(self, entries: Optional[Iterable[Dict[str, Any]]] = None):
        self._entries: Dict[str, Dict[str, Any]] = {}
        for e in entries or []:
            self.add(e)

    def add(self, entry: Dict[str, Any]) -> None:
        node_type = entry.get("node_type")
        if not isinstance(node_type, str) or not node_type:
            raise ValueError(f"Node type entry without 'node_type': {entry!r}")
        self._entries[normalize_node_type(node_type)] = entry

    def get_node(self, node_type: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(normalize_node_type(node_type))
        return copy.deepcopy(entry) if entry is not None else None

    def __contains__(self, node_type: str) -> bool:
        return normalize_node_type(node_type) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def load(self, path: Union[str, Path]) -> "NodeTypeRepository":
        """Merge a JSON/YAML catalog (a list of entries, or {"nodes": [...]}) into this repository."""
        data = load_any(path)
        if isinstance(data, dict):
            data = data.get("nodes")
        if not isinstance(data, list):
            raise ValueError(f"{path}: expected a list of node type entries")
        for entry in data:
            self.add(entry)
        log.info("loaded %d node types from %s", len(data), path)
        return self

    @classmethod
    def with_builtin_catalog(cls) -> "NodeTypeRepository":
        return cls(copy.deepcopy(BUILTIN_CATALOG))


# ---------- Built-in catalog ----------

def _prop(name: str, display: str, ptype: str = "string", **extra: Any) -> Dict[str, Any]:
    return {"name": name, "displayName": display, "type": ptype, **extra}


def _options(*values: str) -> List[Dict[str, str]]:
    return [{"name": v.title(), "value": v} for v in values]


def _entry(node_type: str, display: str, version: str = "1", versioned: bool = False,
           properties: Optional[List[Dict[str, Any]]] = None, **flags: Any) -> Dict[str, Any]:
    return {
        "node_type": node_type,
        "display_name": display,
        "package": package_of(node_type),
        "is_versioned": versioned,
        "version": version,
        "is_trigger": flags.get("trigger", False),
        "is_webhook": flags.get("webhook", False),
        "is_ai_tool": flags.get("ai_tool", False),
        "properties": properties or [],
    }


BUILTIN_CATALOG: List[Dict[str, Any]] = [
    _entry("n8n-nodes-base.manualTrigger", "Manual Trigger", trigger=True),
    _entry("n8n-nodes-base.start", "Start", trigger=True),
    _entry("n8n-nodes-base.scheduleTrigger", "Schedule Trigger", version="1.2", versioned=True, trigger=True,
           properties=[_prop("rule", "Trigger Rules", "fixedCollection", default={})]),
    _entry("n8n-nodes-base.formTrigger", "Form Trigger", version="2", versioned=True, trigger=True,
           properties=[_prop("formTitle", "Form Title", required=True)]),
    _entry("n8n-nodes-base.webhook", "Webhook", version="2", versioned=True, trigger=True, webhook=True, properties=[
        _prop("httpMethod", "HTTP Method", "options", options=_options("GET", "POST", "PUT", "DELETE"), default="GET"),
        _prop("path", "Path", required=True),
        _prop("responseMode", "Respond", "options",
              options=_options("onReceived", "lastNode", "responseNode"), default="onReceived"),
    ]),
    _entry("n8n-nodes-base.respondToWebhook", "Respond to Webhook", version="1.1", versioned=True, properties=[
        _prop("respondWith", "Respond With", "options", options=_options("json", "text", "noData")),
    ]),
    _entry("n8n-nodes-base.httpRequest", "HTTP Request", version="4", versioned=True, properties=[
        _prop("method", "Method", "options",
              options=_options("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"), default="GET"),
        _prop("url", "URL", required=True),
        _prop("authentication", "Authentication", "options",
              options=_options("none", "predefinedCredentialType", "genericCredentialType"), default="none"),
        _prop("sendBody", "Send Body", "boolean", default=False),
        _prop("contentType", "Body Content Type", "options", options=_options("json", "form-urlencoded", "raw"),
              displayOptions={"show": {"sendBody": [True]}}),
        _prop("jsonBody", "JSON", displayOptions={"show": {"sendBody": [True], "contentType": ["json"]}}),
        _prop("timeout", "Timeout", "number"),
    ]),
    _entry("n8n-nodes-base.set", "Edit Fields (Set)", version="3.4", versioned=True, properties=[
        _prop("mode", "Mode", "options", options=_options("manual", "raw"), default="manual"),
        _prop("assignments", "Fields to Set", "fixedCollection", displayOptions={"show": {"mode": ["manual"]}}),
        _prop("jsonOutput", "JSON", displayOptions={"show": {"mode": ["raw"]}}),
    ]),
    _entry("n8n-nodes-base.if", "If", version="2", versioned=True,
           properties=[_prop("conditions", "Conditions", "fixedCollection", required=True)]),
    _entry("n8n-nodes-base.code", "Code", version="2", versioned=True, properties=[
        _prop("language", "Language", "options", options=_options("javaScript", "python"), default="javaScript"),
        _prop("jsCode", "JavaScript", displayOptions={"show": {"language": ["javaScript"]}}),
        _prop("pythonCode", "Python", displayOptions={"show": {"language": ["python"]}}),
    ]),
    _entry("n8n-nodes-base.slack", "Slack", version="2.2", versioned=True, properties=[
        _prop("resource", "Resource", "options", options=_options("message", "channel", "user"), default="message"),
        _prop("operation", "Operation", "options", options=_options("send", "update", "delete"),
              displayOptions={"show": {"resource": ["message"]}}, default="send"),
        _prop("operation", "Operation", "options", options=_options("get", "getAll", "getStatus"),
              displayOptions={"show": {"resource": ["user"]}}),
        _prop("channel", "Channel", required=True,
              displayOptions={"show": {"resource": ["message"], "operation": ["send"]}}),
        _prop("text", "Text", displayOptions={"show": {"resource": ["message"], "operation": ["send"]}}),
        _prop("user", "User", required=True, displayOptions={"show": {"resource": ["user"], "operation": ["get"]}}),
    ]),
    _entry("n8n-nodes-base.postgres", "Postgres", version="2.5", versioned=True, properties=[
        _prop("operation", "Operation", "options",
              options=_options("executeQuery", "insert", "update", "delete"), default="insert"),
        _prop("query", "Query", required=True, displayOptions={"show": {"operation": ["executeQuery"]}}),
        _prop("table", "Table", displayOptions={"hide": {"operation": ["executeQuery"]}}),
    ]),
    _entry("n8n-nodes-base.mySql", "MySQL", version="2.4", versioned=True, properties=[
        _prop("operation", "Operation", "options",
              options=_options("executeQuery", "insert", "update", "delete"), default="insert"),
        _prop("query", "Query", required=True, displayOptions={"show": {"operation": ["executeQuery"]}}),
        _prop("table", "Table", displayOptions={"hide": {"operation": ["executeQuery"]}}),
    ]),
    _entry("n8n-nodes-base.googleSheets", "Google Sheets", version="4.5", versioned=True, properties=[
        _prop("operation", "Operation", "options", options=_options("append", "read", "update", "delete"),
              default="read"),
        _prop("sheetId", "Document ID", required=True),
        _prop("range", "Range"),
    ]),
    _entry("n8n-nodes-base.openAi", "OpenAI", version="1.1", versioned=True, properties=[
        _prop("resource", "Resource", "options", options=_options("chat", "text", "image"), default="text"),
        _prop("operation", "Operation", "options", options=_options("complete", "create")),
        _prop("model", "Model"),
    ]),
    _entry("n8n-nodes-base.mongoDb", "MongoDB", version="1.1", versioned=True, properties=[
        _prop("operation", "Operation", "options", options=_options("find", "insert", "update", "delete"),
              default="find"),
        _prop("collection", "Collection", required=True),
        _prop("query", "Query (JSON Format)",
              displayOptions={"show": {"operation": ["find", "delete"]}}),
    ]),
    _entry("@n8n/n8n-nodes-langchain.agent", "AI Agent", version="1.7", versioned=True, properties=[
        _prop("text", "Text"),
    ]),
    _entry("@n8n/n8n-nodes-langchain.toolCode", "Code Tool", version="1.1", versioned=True, ai_tool=True),
    _entry("@n8n/n8n-nodes-langchain.toolHttpRequest", "HTTP Request Tool", version="1.1", versioned=True,
           ai_tool=True),
]
