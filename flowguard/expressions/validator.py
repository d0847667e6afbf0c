# flowguard/expressions/validator.py
"""
Token-level checks for n8n-style `{{ ... }}` expressions.

This is not an interpreter: it looks for bracket mistakes, unsupported
syntax and references to variables / nodes that can not resolve.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

VARIABLES = (
    "$json", "$node", "$input", "$items", "$workflow", "$execution",
    "$now", "$today", "$itemIndex", "$runIndex", "$env", "$prevNode", "$parameter",
)

_EXPR_RE = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_BRACE_TOKEN_RE = re.compile(r"\{\{|\}\}")
_VAR_RES = {v: re.compile(re.escape(v) + r"(?![\w$])") for v in VARIABLES}
_NODE_REF_RES = (
    re.compile(r"""\$node\[\s*["']([^"']+)["']\s*\]"""),
    re.compile(r"""\$\(\s*["']([^"']+)["']\s*\)"""),
    re.compile(r"""\$items\(\s*["']([^"']+)["']"""),
)
_SINGLE_QUOTE_ACCESS_RE = re.compile(r"\[\s*'([^']*)'\s*\]")
_MISSING_DOLLAR_RE = re.compile(r"(?<![\w$.'\"])(json|node|input|items|workflow|execution|env)\s*[.\[]")


def _empty_result() -> Dict[str, Any]:
    return {"valid": True, "errors": [], "warnings": [], "used_variables": set(), "used_nodes": set()}


def _has_nesting(expression: str) -> bool:
    depth = 0
    for tok in _BRACE_TOKEN_RE.findall(expression):
        if tok == "{{":
            if depth > 0:
                return True
            depth += 1
        else:
            depth = max(0, depth - 1)
    return False


def validate_expression(expression: Any, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Check one string that may contain expressions.

    context keys: available_nodes (names that may be referenced; omitted
    means "don't check"), current_node_name, has_input_data, is_in_loop.
    """
    context = context or {}
    result = _empty_result()
    if not isinstance(expression, str) or ("{{" not in expression and "}}" not in expression):
        return result

    errors: List[str] = result["errors"]
    warnings: List[str] = result["warnings"]

    if expression.count("{{") != expression.count("}}"):
        errors.append("Unmatched expression brackets {{ }}")
        result["valid"] = False
        return result

    if _has_nesting(expression):
        errors.append("Nested expressions are not supported")

    for body in _EXPR_RE.findall(expression):
        if not body.strip():
            errors.append("Empty expression found")
            continue
        if "${" in body:
            errors.append("Template literals ${} are not supported. Use string concatenation instead")
        for var, pattern in _VAR_RES.items():
            if pattern.search(body):
                result["used_variables"].add(var)
        for pattern in _NODE_REF_RES:
            result["used_nodes"].update(pattern.findall(body))
        if "?." in body:
            warnings.append("Optional chaining (?.) is not supported in all versions. Use explicit checks instead")
        for field_name in _SINGLE_QUOTE_ACCESS_RE.findall(body):
            warnings.append(f"Consider using dot notation or double quotes for property access: '{field_name}'")
        for name in _MISSING_DOLLAR_RE.findall(body):
            warnings.append(f"Possible missing $ prefix for variable '{name}' (did you mean ${name}?)")

    used = result["used_variables"]
    has_input = bool(context.get("has_input_data"))
    if "$input" in used and not has_input:
        errors.append("$input is only available when the node has input data")
    if "$json" in used and not has_input and not context.get("is_in_loop"):
        warnings.append("Using $json but node might not have input data")

    available = context.get("available_nodes")
    if available is not None:
        for node in sorted(result["used_nodes"]):
            if node not in available:
                errors.append(f'Referenced node "{node}" is not upstream of this node')

    result["valid"] = not errors
    return result


def validate_node_expressions(parameters: Any, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Walk a node's parameter tree; findings are prefixed with the parameter path."""
    combined = _empty_result()
    _walk(parameters, "", context or {}, combined)
    combined["valid"] = not combined["errors"]
    return combined


def _walk(value: Any, path: str, context: Dict[str, Any], combined: Dict[str, Any]) -> None:
    if isinstance(value, str):
        res = validate_expression(value, context)
        prefix = f"{path}: " if path else ""
        combined["errors"].extend(prefix + e for e in res["errors"])
        combined["warnings"].extend(prefix + w for w in res["warnings"])
        combined["used_variables"] |= res["used_variables"]
        combined["used_nodes"] |= res["used_nodes"]
    elif isinstance(value, dict):
        for key, sub in value.items():
            _walk(sub, f"{path}.{key}" if path else str(key), context, combined)
    elif isinstance(value, list):
        for i, sub in enumerate(value):
            _walk(sub, f"{path}[{i}]", context, combined)
