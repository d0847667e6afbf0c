# flowguard/config/enhanced.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from flowguard.config.examples import generate_examples
from flowguard.config.validator import ConfigValidator
from flowguard.utils.logger import get_logger
from flowguard.visibility.conditions import CompiledProperties

log = get_logger("config")

MODES = ("full", "minimal", "operation")
PROFILES = ("strict", "runtime", "minimal", "ai-friendly")

_OPERATION_KEYS = ("resource", "operation", "action")
_RUNTIME_ERROR_TYPES = ("missing_required", "invalid_value", "syntax_error")


class EnhancedConfigValidator:
    """
    Mode-aware wrapper around ConfigValidator.

    mode    decides which property definitions are in scope,
    profile decides which findings survive into the result.
    """

    def __init__(self, base: Optional[ConfigValidator] = None):
        self.base = base if base is not None else ConfigValidator()

    def validate_with_mode(
        self,
        node_type: str,
        config: Optional[Dict[str, Any]],
        properties: Optional[List[Dict[str, Any]]],
        mode: str = "operation",
        profile: str = "ai-friendly",
    ) -> Dict[str, Any]:
        if mode not in MODES:
            raise ValueError(f"Unknown validation mode '{mode}'. Choose one of: {', '.join(MODES)}")
        if profile not in PROFILES:
            raise ValueError(f"Unknown validation profile '{profile}'. Choose one of: {', '.join(PROFILES)}")

        config = dict(config or {})
        in_scope = self._filter_properties(properties or [], config, mode)
        result = self.base.validate(node_type, config, in_scope)

        result["mode"] = mode
        result["profile"] = profile
        result["operation"] = {k: config.get(k) for k in (*_OPERATION_KEYS, "mode")}

        self._apply_profile(result, profile)
        result["errors"] = _dedupe_errors(result["errors"])
        result["valid"] = not result["errors"]

        result["examples"] = (
            generate_examples(node_type, config, result["errors"], in_scope)
            if result["errors"] else []
        )
        result["next_steps"] = _next_steps(result)
        log.debug("%s [%s/%s] valid=%s", node_type, mode, profile, result["valid"])
        return result

    # ---------- mode ----------

    @staticmethod
    def _filter_properties(properties: List[Dict[str, Any]], config: Dict[str, Any], mode: str) -> List[Dict[str, Any]]:
        props = CompiledProperties(properties)
        if mode == "full":
            return list(props)
        if mode == "minimal":
            return [p for p in props if p.get("required") and props.is_visible(p, config)]

        kept = []
        for p in props:
            show = (p.get("displayOptions") or {}).get("show") or {}
            if not isinstance(show, dict):
                kept.append(p)
                continue
            relevant = True
            for key in _OPERATION_KEYS:
                if key not in show:
                    continue
                allowed = show[key] if isinstance(show[key], list) else [show[key]]
                if config.get(key) not in allowed:
                    relevant = False
                    break
            if relevant:
                kept.append(p)
        return kept

    # ---------- profile ----------

    @staticmethod
    def _apply_profile(result: Dict[str, Any], profile: str) -> None:
        if profile == "minimal":
            result["errors"] = [e for e in result["errors"] if e["type"] == "missing_required"]
            result["warnings"] = []
            result["suggestions"] = []
        elif profile == "runtime":
            result["errors"] = [
                e for e in result["errors"]
                if e["type"] in _RUNTIME_ERROR_TYPES
                or (e["type"] == "invalid_type" and "undefined" in e["message"])
            ]
            result["warnings"] = [w for w in result["warnings"] if w["type"] == "security"]
            result["suggestions"] = []
        elif profile == "strict":
            if not result["errors"] and not result["warnings"]:
                result["suggestions"].append(
                    "Consider adding error handling (continueOnFail or an error output) for production use"
                )
                result["suggestions"].append(
                    "Review the authentication settings before running against production services"
                )
        else:  # ai-friendly
            result["warnings"] = [
                w for w in result["warnings"]
                if not (w["type"] == "inefficient" and str(w.get("property") or "").startswith("_"))
            ]


def _dedupe_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """One error per (property, type); the more descriptive message wins."""
    kept: Dict[tuple, Dict[str, Any]] = {}
    for err in errors:
        key = (err.get("property"), err.get("type"))
        prev = kept.get(key)
        if prev is None or len(err.get("message", "")) > len(prev.get("message", "")):
            kept[key] = err
    return list(kept.values())


def _next_steps(result: Dict[str, Any]) -> List[str]:
    steps: List[str] = []
    errors = result["errors"]

    def _props(kind: str) -> List[str]:
        return [e["property"] for e in errors if e["type"] == kind]

    required = _props("missing_required")
    if required:
        steps.append(f"Add required fields: {', '.join(required)}")
    mistyped = _props("invalid_type")
    if mistyped:
        steps.append(f"Fix type mismatches: {', '.join(mistyped)}")
    invalid = _props("invalid_value") + _props("syntax_error")
    if invalid:
        steps.append(f"Correct invalid values: {', '.join(invalid)}")
    if result["warnings"]:
        steps.append("Address the warnings to make the node more reliable")
    if errors and result.get("examples"):
        steps.append("See the examples for working configurations")
    return steps
