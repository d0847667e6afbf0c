# flowguard/structural/schema.py
"""jsonschema documents for workflow nodes and diff requests."""

NODE_SCHEMA = {
    "type": "object",
    "required": ["name", "type"],
    "properties": {
        "id": {
            "type": ["string", "number"]
        },
        "name": {
            "type": "string",
            "minLength": 1
        },
        "type": {
            "type": "string",
            "minLength": 1
        },
        # Optional: parameters must be an object when present
        "parameters": {
            "type": "object"
        },
        "credentials": {
            "type": "object"
        },
        "disabled": {
            "type": "boolean"
        }
    },
    "additionalProperties": True
}


# ---------- Diff requests ----------

_NODE_REF = {
    "anyOf": [
        {"required": ["nodeId"]},
        {"required": ["nodeName"]}
    ]
}

_NODE_REF_PROPS = {
    "nodeId": {"type": ["string", "number"]},
    "nodeName": {"type": "string"}
}

_POSITION = {
    "type": "array",
    "items": {"type": "number"},
    "minItems": 2,
    "maxItems": 2
}

_CONNECTION_PROPS = {
    "source": {"type": "string", "minLength": 1},
    "target": {"type": "string", "minLength": 1},
    "sourceOutput": {"type": "string", "minLength": 1},
    "targetInput": {"type": "string", "minLength": 1},
    "sourceIndex": {"type": "integer", "minimum": 0},
    "targetIndex": {"type": "integer", "minimum": 0}
}


def _node_ref_op(extra_props=None, extra_required=None):
    return {
        "type": "object",
        "properties": {**_NODE_REF_PROPS, **(extra_props or {})},
        "required": list(extra_required or []),
        **_NODE_REF,
    }


OPERATION_SCHEMAS = {
    "addNode": {
        "type": "object",
        "required": ["node"],
        "properties": {
            "node": {
                "type": "object",
                "required": ["name", "type"],
                "properties": {
                    "id": {"type": ["string", "number"]},
                    "name": {"type": "string", "minLength": 1},
                    "type": {"type": "string", "minLength": 1},
                    "position": _POSITION,
                    "parameters": {"type": "object"},
                    "typeVersion": {"type": "number"}
                }
            }
        }
    },
    "removeNode": _node_ref_op(),
    "updateNode": _node_ref_op({"changes": {"type": "object"}}, ["changes"]),
    "moveNode": _node_ref_op({"position": _POSITION}, ["position"]),
    "enableNode": _node_ref_op(),
    "disableNode": _node_ref_op(),
    "addConnection": {
        "type": "object",
        "required": ["source", "target"],
        "properties": _CONNECTION_PROPS
    },
    "removeConnection": {
        "type": "object",
        "required": ["source", "target"],
        "properties": _CONNECTION_PROPS
    },
    "updateConnection": {
        "type": "object",
        "required": ["source", "target", "changes"],
        "properties": {
            **_CONNECTION_PROPS,
            "changes": {
                "type": "object",
                "properties": {
                    k: v for k, v in _CONNECTION_PROPS.items()
                    if k not in ("source", "target")
                }
            }
        }
    },
    "updateSettings": {
        "type": "object",
        "required": ["settings"],
        "properties": {"settings": {"type": "object"}}
    },
    "updateName": {
        "type": "object",
        "required": ["name"],
        "properties": {"name": {"type": "string"}}
    },
    "addTag": {
        "type": "object",
        "required": ["tag"],
        "properties": {"tag": {"type": "string", "minLength": 1}}
    },
    "removeTag": {
        "type": "object",
        "required": ["tag"],
        "properties": {"tag": {"type": "string", "minLength": 1}}
    },
}

DIFF_REQUEST_SCHEMA = {
    "type": "object",
    "required": ["operations"],
    "properties": {
        "id": {"type": ["string", "number"]},
        "validateOnly": {"type": "boolean"},
        "operations": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["type"],
                "properties": {"type": {"type": "string"}}
            }
        }
    }
}
