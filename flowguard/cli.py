#!/usr/bin/env python3
# flowguard/cli.py

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from flowguard.config.enhanced import MODES, PROFILES, EnhancedConfigValidator
from flowguard.diff.engine import WorkflowDiffEngine
from flowguard.utils.io import dumps, load_any, write_json
from flowguard.utils.logger import init_logger, set_level
from flowguard.visibility.dependencies import analyze as analyze_dependencies
from flowguard.visibility.dependencies import get_visibility_impact
from flowguard.workflow.node_types import NodeTypeRepository
from flowguard.workflow.validator import WorkflowValidator

app = typer.Typer(help="flowguard CLI - validate and patch n8n-style workflow graphs")


@app.callback()
def main(
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", help="Also write logs to a rotating file in this directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    if log_dir is not None:
        init_logger(log_dir=log_dir)
    if verbose:
        set_level(logging.DEBUG)


def _load(path: Path) -> Any:
    try:
        return load_any(path)
    except (OSError, ValueError) as e:
        raise typer.BadParameter(f"could not read {path}: {e}")


def _repository(node_types: Optional[Path]) -> NodeTypeRepository:
    repo = NodeTypeRepository.with_builtin_catalog()
    if node_types is not None:
        try:
            repo.load(node_types)
        except (OSError, ValueError) as e:
            raise typer.BadParameter(f"could not load node types from {node_types}: {e}")
    return repo


def _check_choice(value: str, choices, option: str) -> str:
    if value not in choices:
        raise typer.BadParameter(f"Invalid {option} '{value}'. Choose one of: {', '.join(choices)}")
    return value


def _print_findings(title: str, items: List[Dict[str, Any]]) -> None:
    if not items:
        return
    print(f"{title}:")
    for it in items:
        where = it.get("node_name") or "workflow"
        print(f"- [{where}] {it['message']}")


@app.command()
def validate(
    input: Path = typer.Option(..., "--input", "-i", exists=True, readable=True, help="Path to workflow JSON/YAML"),
    profile: str = typer.Option("runtime", "--profile", help="strict | runtime | minimal | ai-friendly"),
    check_nodes: bool = typer.Option(True, "--nodes/--no-nodes", help="Validate node configuration"),
    check_connections: bool = typer.Option(True, "--connections/--no-connections", help="Validate connections"),
    check_expressions: bool = typer.Option(True, "--expressions/--no-expressions", help="Validate expressions"),
    node_types: Optional[Path] = typer.Option(None, "--node-types", exists=True, help="Extra node type catalog (JSON/YAML)"),
    report: Optional[Path] = typer.Option(None, "--report", help="Write the full JSON result to this path"),
):
    """
    Validate a workflow and print its findings. Exits with code 1 when invalid.
    """
    _check_choice(profile, PROFILES, "profile")
    wf = _load(input)
    validator = WorkflowValidator(_repository(node_types))
    try:
        result = validator.validate_workflow(
            wf,
            validate_nodes=check_nodes,
            validate_connections=check_connections,
            validate_expressions=check_expressions,
            profile=profile,
        )
    except TypeError as e:
        raise typer.BadParameter(f"{input} is not a workflow: {e}")

    stats = result["statistics"]
    print(f"Valid:        {result['valid']}")
    print(f"Nodes:        {stats['enabled_nodes']}/{stats['total_nodes']} enabled, {stats['trigger_nodes']} triggers")
    print(f"Connections:  {stats['valid_connections']} valid, {stats['invalid_connections']} invalid")
    print(f"Expressions:  {stats['expressions_validated']} variables checked")
    _print_findings("Errors", result["errors"])
    _print_findings("Warnings", result["warnings"])
    if result["suggestions"]:
        print("Suggestions:")
        for s in result["suggestions"]:
            print(f"- {s}")

    if report is not None:
        write_json(report, {"input": str(input), **result})
        print(f"[ok] wrote report to {report}")

    if not result["valid"]:
        raise typer.Exit(code=1)


@app.command()
def analyze(
    input: Path = typer.Option(..., "--input", "-i", exists=True, readable=True, help="Property definition list (JSON/YAML)"),
):
    """Show which properties control the visibility of others."""
    props = _load(input)
    if isinstance(props, dict):
        props = props.get("properties", [])
    print(dumps(analyze_dependencies(props)))


@app.command()
def impact(
    input: Path = typer.Option(..., "--input", "-i", exists=True, readable=True, help="Property definition list (JSON/YAML)"),
    config: Path = typer.Option(..., "--config", "-c", exists=True, readable=True, help="Node parameters (JSON/YAML)"),
):
    """List visible and hidden properties for a given configuration."""
    props = _load(input)
    if isinstance(props, dict):
        props = props.get("properties", [])
    print(dumps(get_visibility_impact(props, _load(config))))


@app.command("config")
def check_config(
    node_type: str = typer.Option(..., "--type", "-t", help="Node type, e.g. n8n-nodes-base.httpRequest"),
    config: Path = typer.Option(..., "--config", "-c", exists=True, readable=True, help="Node parameters (JSON/YAML)"),
    mode: str = typer.Option("operation", "--mode", help="full | minimal | operation"),
    profile: str = typer.Option("ai-friendly", "--profile", help="strict | runtime | minimal | ai-friendly"),
    node_types: Optional[Path] = typer.Option(None, "--node-types", exists=True, help="Extra node type catalog (JSON/YAML)"),
):
    """Validate one node configuration against its type's property definitions."""
    _check_choice(mode, MODES, "mode")
    _check_choice(profile, PROFILES, "profile")
    meta = _repository(node_types).get_node(node_type)
    if meta is None:
        raise typer.BadParameter(f"Unknown node type: {node_type}")
    result = EnhancedConfigValidator().validate_with_mode(
        node_type, _load(config), meta.get("properties") or [], mode=mode, profile=profile
    )
    print(dumps(result))
    if not result["valid"]:
        raise typer.Exit(code=1)


@app.command()
def diff(
    input: Path = typer.Option(..., "--input", "-i", exists=True, readable=True, help="Path to workflow JSON/YAML"),
    operations: Path = typer.Option(..., "--ops", "-o", exists=True, readable=True, help="Diff request or operation list"),
    validate_only: bool = typer.Option(False, "--validate-only", help="Check the operations without applying them"),
    out: Optional[Path] = typer.Option(None, "--out", help="Write the patched workflow here (default: stdout)"),
):
    """Apply a batch of diff operations to a workflow."""
    wf = _load(input)
    request = _load(operations)
    if isinstance(request, list):
        request = {"operations": request}
    if validate_only:
        request["validateOnly"] = True

    result = WorkflowDiffEngine().apply_diff(wf, request)
    print(result["message"])
    if not result["success"]:
        for err in result.get("errors", []):
            print(f"- operation {err['operation']}: {err['message']}")
        raise typer.Exit(code=1)

    if "workflow" in result:
        if out is not None:
            write_json(out, result["workflow"])
            print(f"[ok] wrote {out}")
        else:
            print(dumps(result["workflow"]))


if __name__ == "__main__":
    app()
