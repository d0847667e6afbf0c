import json
from pathlib import Path

import pytest

from flowguard.workflow.validator import WorkflowValidator

BENCH = Path(__file__).parent / "bench" / "workflows"


@pytest.mark.parametrize("case_dir", sorted(BENCH.glob("W*")), ids=lambda p: p.name)
def test_workflow_bench(case_dir: Path):
    """
    Workflow benchmark:
    - load workflow.json
    - load expect.json
    - run WorkflowValidator with the built-in node catalog
    - check coarse-grained properties (validity, trigger, expected findings)
    """
    wf_file = case_dir / "workflow.json"
    exp_file = case_dir / "expect.json"

    assert wf_file.exists(), f"Missing workflow.json in {case_dir}"
    assert exp_file.exists(), f"Missing expect.json in {case_dir}"

    with wf_file.open("r", encoding="utf-8") as f:
        workflow = json.load(f)

    with exp_file.open("r", encoding="utf-8") as f:
        expect = json.load(f)

    result = WorkflowValidator().validate_workflow(workflow)
    asserts = (expect.get("assert") or {})

    errors = [e["message"] for e in result["errors"]]
    warnings = [w["message"] for w in result["warnings"]]

    # ---- valid ----
    if "valid" in asserts:
        expected = bool(asserts["valid"])
        assert result["valid"] == expected, f"{case_dir.name}: valid={result['valid']}, errors={errors}"

    # ---- has_trigger ----
    if "has_trigger" in asserts:
        expected = bool(asserts["has_trigger"])
        got = result["statistics"]["trigger_nodes"] > 0
        assert got == expected, f"{case_dir.name}: has_trigger={got}, expected={expected}"

    # ---- error_count ----
    if "error_count" in asserts:
        assert len(errors) == asserts["error_count"], f"{case_dir.name}: errors={errors}"

    # ---- expected findings ----
    for fragment in asserts.get("errors_contain", []):
        assert any(fragment in e for e in errors), f"{case_dir.name}: no error containing {fragment!r} in {errors}"
    for fragment in asserts.get("warnings_contain", []):
        assert any(fragment in w for w in warnings), f"{case_dir.name}: no warning containing {fragment!r} in {warnings}"
    for fragment in asserts.get("suggestions_contain", []):
        assert any(fragment in s for s in result["suggestions"]), (
            f"{case_dir.name}: no suggestion containing {fragment!r}"
        )

    # Statistics are always consistent with the input.
    assert result["statistics"]["total_nodes"] == len(workflow["nodes"])
