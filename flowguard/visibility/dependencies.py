# flowguard/visibility/dependencies.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

import networkx as nx

from flowguard.utils.graph import find_cycles
from flowguard.utils.logger import get_logger
from flowguard.visibility.conditions import (
    EQUALS,
    CompiledProperties,
    DisplayCondition,
    first_blocking,
)

log = get_logger("visibility")

_CONTAINER_TYPES = ("collection", "fixedCollection")


def _quote_values(values) -> str:
    return ", ".join(f'"{v}"' for v in values)


def describe(cond: DisplayCondition, label: str) -> str:
    """Human-readable phrase for one clause, singular/plural aware."""
    verb = "Visible" if cond.mode == EQUALS else "Hidden"
    if len(cond.values) == 1:
        return f'{verb} when {label} is set to "{cond.values[0]}"'
    return f"{verb} when {label} is one of: {_quote_values(cond.values)}"


def _has_display_rules(prop: Dict[str, Any]) -> bool:
    opts = prop.get("displayOptions")
    if not isinstance(opts, dict):
        return False
    return opts.get("show") is not None or opts.get("hide") is not None


def analyze(properties: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
    """
    Analyze which properties control the visibility of others.

    Returns:
        {
          total_properties, properties_with_dependencies,
          dependencies: [ {property, display_name, depends_on, show_when?,
                           hide_when?, enables_properties?, notes} ],
          dependency_graph: {controller: [dependents]},
          suggestions: [str],
        }
    """
    props = CompiledProperties(properties)
    dependencies: List[Dict[str, Any]] = []
    graph = nx.DiGraph()

    for prop in props:
        if not _has_display_rules(prop):
            continue
        name = str(prop.get("name") or "")
        opts = prop["displayOptions"]
        entry: Dict[str, Any] = {
            "property": name,
            "display_name": prop.get("displayName") or name,
            "depends_on": [],
            "notes": [],
        }
        if opts.get("show") is not None:
            entry["show_when"] = opts["show"]
        if opts.get("hide") is not None:
            entry["hide_when"] = opts["hide"]

        for cond in props.conditions_of(prop):
            entry["depends_on"].append({
                "property": cond.controlling_property,
                "values": list(cond.values),
                "condition": cond.mode,
                "description": describe(cond, props.label(cond.controlling_property)),
            })
            if name:
                graph.add_edge(cond.controlling_property, name)

        if prop.get("type") in _CONTAINER_TYPES:
            entry["notes"].append(
                "This property has nested properties that may have their own dependencies"
            )
        controllers = {d["property"] for d in entry["depends_on"]}
        if len(controllers) > 1:
            entry["notes"].append(
                "Multiple conditions must be met for this property to be visible"
            )
        dependencies.append(entry)

    dependency_graph = {ctrl: list(graph.successors(ctrl)) for ctrl in graph.nodes if graph.out_degree(ctrl)}

    for entry in dependencies:
        enables = dependency_graph.get(entry["property"])
        if enables:
            entry["enables_properties"] = list(enables)

    return {
        "total_properties": len(props),
        "properties_with_dependencies": len(dependencies),
        "dependencies": dependencies,
        "dependency_graph": dependency_graph,
        "suggestions": _suggestions(dependencies, dependency_graph, graph),
    }


def _suggestions(dependencies: List[Dict[str, Any]], dependency_graph: Dict[str, List[str]], graph: nx.DiGraph) -> List[str]:
    suggestions: List[str] = []

    if dependency_graph:
        ranked = sorted(dependency_graph.items(), key=lambda kv: len(kv[1]), reverse=True)
        top = [ctrl for ctrl, _ in ranked[:3]]
        suggestions.append(f"Key properties to configure first: {', '.join(top)}")

    multi = [
        d["property"] for d in dependencies
        if len({dep["property"] for dep in d["depends_on"]}) > 1
    ]
    if multi:
        suggestions.append(
            f"{len(multi)} properties have multiple dependencies ({', '.join(multi)}). "
            "Check that all their conditions are met."
        )

    for cycle in find_cycles(graph):
        log.debug("circular visibility dependency: %s", cycle)
        suggestions.append(
            f"Circular dependency detected: {' -> '.join(cycle)}. "
            "These properties control each other's visibility."
        )
    return suggestions


def get_visibility_impact(properties: Optional[List[Dict[str, Any]]], config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Split properties into visible / hidden for `config`, with a reason per hidden one."""
    props = CompiledProperties(properties)
    config = config or {}
    visible: List[str] = []
    hidden: List[str] = []
    reasons: Dict[str, str] = {}

    for prop in props:
        name = prop.get("name")
        if not name:
            continue
        blocking = first_blocking(props.conditions_of(prop), config)
        if blocking is None:
            visible.append(name)
            continue
        hidden.append(name)
        reasons[name] = _explain(blocking, config)

    return {"visible": visible, "hidden": hidden, "reasons": reasons}


def _explain(cond: DisplayCondition, config: Dict[str, Any]) -> str:
    ctrl = cond.controlling_property
    if cond.mode == EQUALS:
        if ctrl not in config:
            return f"Requires {ctrl} to be {_quote_values(cond.values)} (currently not set)"
        return (
            f'Requires {ctrl} to be {_quote_values(cond.values)} '
            f'(currently "{config[ctrl]}")'
        )
    return f'Hidden because {ctrl} is "{config[ctrl]}"'
