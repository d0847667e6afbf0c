# flowguard/config/examples.py
from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional

from flowguard.workflow.node_types import normalize_node_type

# normalized, lower-cased node type -> working configurations
EXAMPLE_CATALOG: Dict[str, List[Dict[str, Any]]] = {
    "nodes-base.slack": [
        {
            "description": "Send a message to a channel",
            "config": {"resource": "message", "operation": "send", "channel": "#general",
                       "text": "New order received"},
        },
        {
            "description": "Get a user by ID",
            "config": {"resource": "user", "operation": "get", "user": "U0123456789"},
        },
    ],
    "nodes-base.googlesheets": [
        {
            "description": "Append rows to a sheet",
            "config": {"operation": "append", "sheetId": "1A2b3C4d5E6f", "range": "Sheet1!A:D"},
        },
        {
            "description": "Read a range",
            "config": {"operation": "read", "sheetId": "1A2b3C4d5E6f", "range": "Sheet1!A1:D100"},
        },
    ],
    "nodes-base.httprequest": [
        {
            "description": "Simple GET request",
            "config": {"method": "GET", "url": "https://api.example.com/items"},
        },
        {
            "description": "POST JSON body",
            "config": {"method": "POST", "url": "https://api.example.com/items", "sendBody": True,
                       "contentType": "json", "jsonBody": "{\"name\": \"example\"}"},
        },
    ],
    "nodes-base.webhook": [
        {
            "description": "Receive POST data and answer immediately",
            "config": {"httpMethod": "POST", "path": "incoming-data", "responseMode": "onReceived"},
        },
    ],
    "nodes-base.code": [
        {
            "description": "Transform every input item",
            "config": {"language": "javaScript",
                       "jsCode": "return $input.all().map(item => ({ json: { ...item.json, seen: true } }));"},
        },
    ],
    "nodes-base.postgres": [
        {
            "description": "Parameterised select",
            "config": {"operation": "executeQuery",
                       "query": "SELECT id, email FROM users WHERE id = $1"},
        },
    ],
}

_PLACEHOLDERS = {"string": "", "number": 0, "boolean": False, "options": None}


def catalog_examples(node_type: str) -> List[Dict[str, Any]]:
    return copy.deepcopy(EXAMPLE_CATALOG.get(normalize_node_type(node_type).lower(), []))


def _operation_matches(example: Dict[str, Any], config: Dict[str, Any]) -> bool:
    ex_cfg = example["config"]
    for key in ("resource", "operation", "action"):
        if key in config and key in ex_cfg and config[key] != ex_cfg[key]:
            return False
    return True


def _placeholder(prop: Optional[Dict[str, Any]]) -> Any:
    if not prop:
        return ""
    if "default" in prop and prop["default"] not in (None, ""):
        return prop["default"]
    if prop.get("type") == "options" and prop.get("options"):
        first = prop["options"][0]
        return first.get("value") if isinstance(first, dict) else first
    return _PLACEHOLDERS.get(prop.get("type"), "")


def generate_examples(node_type: str, config: Dict[str, Any], errors: List[Dict[str, Any]],
                      properties: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Build example configurations for a failing node:
      - minimal: current operation context plus every missing required field
      - common: catalog examples for the same resource/operation
      - advanced: minimal merged with the first common example when the node
        has more than two errors
    """
    by_name = {p.get("name"): p for p in properties or [] if isinstance(p, dict)}
    minimal: Dict[str, Any] = {
        k: config[k] for k in ("resource", "operation", "action", "mode") if k in config
    }
    for err in errors:
        if err.get("type") == "missing_required":
            minimal[err["property"]] = _placeholder(by_name.get(err["property"]))

    examples: List[Dict[str, Any]] = [
        {"description": "Minimal configuration with required fields", "config": minimal}
    ]
    common = [ex for ex in catalog_examples(node_type) if _operation_matches(ex, config)]
    examples.extend(common)

    if len(errors) > 2:
        advanced = dict(minimal)
        if common:
            advanced.update(common[0]["config"])
        examples.append({"description": "Complete configuration covering all reported fields",
                         "config": advanced})
    return examples
