# flowguard/config/validator.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from flowguard.config.node_rules import DEFAULT_RULES, NodeRuleRegistry, RuleContext, is_expression
from flowguard.utils.logger import get_logger
from flowguard.visibility.conditions import CompiledProperties

log = get_logger("config")

_SECRET_MARKERS = ("api_key", "apikey", "password", "token", "secret")
_COMMON_SUGGESTED = {
    "authentication": "Consider setting authentication if the service requires credentials",
    "errorHandling": "Consider configuring errorHandling to control what happens on failure",
    "timeout": "Consider setting a timeout for long-running requests",
}


def _missing(value: Any) -> bool:
    return value is None or value == ""


def _type_name(value: Any) -> str:
    if value is None:
        return "undefined"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
}


def _option_values(prop: Dict[str, Any]) -> List[Any]:
    values = []
    for opt in prop.get("options") or []:
        values.append(opt.get("value", opt.get("name")) if isinstance(opt, dict) else opt)
    return values


class ConfigValidator:
    """
    Field-level validation of one node's parameters against its property
    definitions. Hidden properties are neither required nor type-checked.
    """

    def __init__(self, rules: Optional[NodeRuleRegistry] = None):
        self.rules = rules if rules is not None else DEFAULT_RULES

    def validate(self, node_type: str, config: Optional[Dict[str, Any]], properties: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
        config = dict(config or {})
        props = CompiledProperties(properties)
        ctx = RuleContext(node_type=node_type, config=config)

        visible: List[str] = []
        hidden: List[str] = []
        for prop in props:
            name = prop.get("name")
            if not name:
                continue
            (visible if props.is_visible(prop, config) else hidden).append(name)
        visible_set = set(visible)

        self._check_required(props, config, ctx)
        self._check_types(props, config, ctx)
        self._check_common(props, config, visible_set, ctx)
        self.rules.apply(ctx)

        result: Dict[str, Any] = {
            "valid": not ctx.errors,
            "errors": ctx.errors,
            "warnings": ctx.warnings,
            "suggestions": ctx.suggestions,
            "visible_properties": _unique(visible),
            "hidden_properties": [h for h in _unique(hidden) if h not in visible_set],
        }
        if ctx.autofix:
            result["autofix"] = ctx.autofix
        log.debug("%s: %d errors, %d warnings", node_type, len(ctx.errors), len(ctx.warnings))
        return result

    # ---------- checks ----------

    def _check_required(self, props: CompiledProperties, config: Dict[str, Any], ctx: RuleContext) -> None:
        reported = set()
        for prop in props:
            name = prop.get("name")
            if not name or not prop.get("required") or name in reported:
                continue
            if not props.is_visible(prop, config):
                continue
            if _missing(config.get(name)):
                reported.add(name)
                label = prop.get("displayName") or name
                ctx.error("missing_required", name, f"Required property '{label}' is missing",
                          fix=f"Add {name} to your configuration")

    def _check_types(self, props: CompiledProperties, config: Dict[str, Any], ctx: RuleContext) -> None:
        missing_required = {e["property"] for e in ctx.errors if e["type"] == "missing_required"}
        for prop in props:
            name = prop.get("name")
            if not name or name not in config or name in missing_required:
                continue
            if not props.is_visible(prop, config):
                continue
            value = config[name]
            if is_expression(value):
                continue
            ptype = prop.get("type")
            check = _TYPE_CHECKS.get(ptype)
            if check is not None and not check(value):
                if value is None:
                    msg = f"Property '{name}' is undefined but must be a {ptype}"
                else:
                    msg = f"Property '{name}' must be a {ptype}, got {_type_name(value)}"
                ctx.error("invalid_type", name, msg, fix=f"Change {name} to a {ptype} value")
            elif ptype == "options" and prop.get("options"):
                allowed = _option_values(prop)
                if value not in allowed:
                    shown = ", ".join(str(a) for a in allowed)
                    ctx.error("invalid_value", name,
                              f"Invalid value for '{name}'. Must be one of: {shown}",
                              fix=f"Change {name} to one of: {shown}")

    def _check_common(self, props: CompiledProperties, config: Dict[str, Any], visible: set, ctx: RuleContext) -> None:
        for key in config:
            if key == "@version" or key.startswith("_"):
                continue
            if key in props.by_name and key not in visible:
                label = props.label(key)
                ctx.warn("inefficient", key,
                         f"Property '{label}' is configured but won't be used due to current settings")

        for name, text in _COMMON_SUGGESTED.items():
            if name in visible and name not in config:
                ctx.suggestions.append(text)

        for key, value in config.items():
            lowered = key.lower()
            if not any(m in lowered for m in _SECRET_MARKERS):
                continue
            if isinstance(value, str) and value.strip() and "{{" not in value:
                ctx.warn("security", key,
                         f"Hardcoded {key} detected: store it in credentials or an expression instead")


def _unique(names: List[str]) -> List[str]:
    seen = set()
    out = []
    for n in names:
        if n not in seen:
            seen.add(n)
            out.append(n)
    return out
