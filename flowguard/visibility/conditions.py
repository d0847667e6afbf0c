# flowguard/visibility/conditions.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

EQUALS = "equals"
NOT_EQUALS = "not_equals"


@dataclass(frozen=True)
class DisplayCondition:
    """One controller clause of a property's displayOptions."""
    controlling_property: str
    mode: str  # EQUALS for show, NOT_EQUALS for hide
    values: Tuple[Any, ...]

    def matches(self, config: Dict[str, Any]) -> bool:
        """True when the controller's current value is one of `values`."""
        if self.controlling_property not in config:
            return False
        current = config[self.controlling_property]
        return any(_same(current, v) for v in self.values)


def _same(a: Any, b: Any) -> bool:
    # keep True distinct from 1
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


def _as_values(raw: Any) -> Tuple[Any, ...]:
    if isinstance(raw, (list, tuple)):
        return tuple(raw)
    return (raw,)


def _clause_items(block: Any) -> Iterable[Tuple[str, Any]]:
    if not isinstance(block, dict):
        return ()
    return ((str(k).lstrip("/"), v) for k, v in block.items())


def compile_conditions(prop: Dict[str, Any]) -> Tuple[DisplayCondition, ...]:
    """Turn displayOptions.show/hide maps into DisplayCondition tuples (show first)."""
    opts = prop.get("displayOptions") if isinstance(prop, dict) else None
    if not isinstance(opts, dict):
        return ()
    conds: List[DisplayCondition] = []
    for key, raw in _clause_items(opts.get("show")):
        conds.append(DisplayCondition(key, EQUALS, _as_values(raw)))
    for key, raw in _clause_items(opts.get("hide")):
        conds.append(DisplayCondition(key, NOT_EQUALS, _as_values(raw)))
    return tuple(conds)


def evaluate(conditions: Iterable[DisplayCondition], config: Dict[str, Any]) -> bool:
    """
    All show clauses must match; any matching hide clause hides.
    A failed show can not be rescued by hide.
    """
    conditions = tuple(conditions)
    for c in conditions:
        if c.mode == EQUALS and not c.matches(config):
            return False
    for c in conditions:
        if c.mode == NOT_EQUALS and c.matches(config):
            return False
    return True


def is_visible(prop: Dict[str, Any], config: Optional[Dict[str, Any]]) -> bool:
    return evaluate(compile_conditions(prop), config or {})


def first_blocking(conditions: Iterable[DisplayCondition], config: Dict[str, Any]) -> Optional[DisplayCondition]:
    """The clause responsible for hiding a property, or None when visible."""
    conditions = tuple(conditions)
    for c in conditions:
        if c.mode == EQUALS and not c.matches(config):
            return c
    for c in conditions:
        if c.mode == NOT_EQUALS and c.matches(config):
            return c
    return None


class CompiledProperties:
    """
    Property definitions with their display conditions compiled once.
    Definitions without a usable name are kept out of the index.
    """

    def __init__(self, properties: Optional[Iterable[Dict[str, Any]]]):
        self.properties: List[Dict[str, Any]] = [
            p for p in (properties or []) if isinstance(p, dict)
        ]
        self.conditions: Dict[int, Tuple[DisplayCondition, ...]] = {
            id(p): compile_conditions(p) for p in self.properties
        }
        self.by_name: Dict[str, Dict[str, Any]] = {}
        for p in self.properties:
            name = p.get("name")
            if isinstance(name, str) and name and name not in self.by_name:
                self.by_name[name] = p

    def __iter__(self):
        return iter(self.properties)

    def __len__(self) -> int:
        return len(self.properties)

    def conditions_of(self, prop: Dict[str, Any]) -> Tuple[DisplayCondition, ...]:
        conds = self.conditions.get(id(prop))
        return conds if conds is not None else compile_conditions(prop)

    def is_visible(self, prop: Dict[str, Any], config: Optional[Dict[str, Any]]) -> bool:
        return evaluate(self.conditions_of(prop), config or {})

    def label(self, name: str) -> str:
        """displayName of a controller, falling back to the raw key."""
        prop = self.by_name.get(name)
        if prop and prop.get("displayName"):
            return str(prop["displayName"])
        return name
