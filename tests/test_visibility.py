import pytest

from flowguard.visibility.conditions import EQUALS, NOT_EQUALS, compile_conditions, is_visible
from flowguard.visibility.dependencies import analyze, get_visibility_impact


SHOW_AND_HIDE = {"name": "p", "displayOptions": {"show": {"a": [1]}, "hide": {"b": [2]}}}

SLACK_LIKE = [
    {"name": "resource", "displayName": "Resource", "type": "options"},
    {"name": "channel", "displayName": "Channel", "displayOptions": {"show": {"resource": ["channel"]}}},
    {"name": "text", "displayOptions": {"show": {"resource": ["channel", "message"]}}},
    {"name": "simpleField", "displayOptions": {"hide": {"mode": ["simple"]}}},
]


# ---------- is_visible ----------

@pytest.mark.parametrize("config, expected", [
    ({"a": 1, "b": 2}, False),
    ({"a": 1, "b": 3}, True),
    ({"a": 2, "b": 3}, False),
    ({"a": 2, "b": 2}, False),
])
def test_show_and_hide_combine(config, expected):
    got = is_visible(SHOW_AND_HIDE, config)
    assert got == expected, f"config={config}: visible={got}, expected={expected}"


def test_property_without_display_options_is_visible():
    assert is_visible({"name": "x"}, {})
    assert is_visible({"name": "x", "displayOptions": None}, None)


def test_show_requires_every_controller():
    prop = {"name": "channel", "displayOptions": {"show": {"resource": ["message"], "operation": ["send"]}}}
    assert is_visible(prop, {"resource": "message", "operation": "send"})
    assert not is_visible(prop, {"resource": "message", "operation": "get"})
    assert not is_visible(prop, {"operation": "send"})


def test_any_hide_controller_hides():
    prop = {"name": "x", "displayOptions": {"hide": {"a": [1], "b": [2]}}}
    assert not is_visible(prop, {"a": 0, "b": 2})
    assert is_visible(prop, {"a": 0, "b": 0})
    assert is_visible(prop, {})


def test_scalar_allowed_value_is_normalized():
    prop = {"name": "x", "displayOptions": {"show": {"mode": "simple"}}}
    assert is_visible(prop, {"mode": "simple"})
    assert not is_visible(prop, {"mode": "advanced"})


def test_boolean_controller_does_not_match_integer():
    prop = {"name": "x", "displayOptions": {"show": {"flag": [True]}}}
    assert is_visible(prop, {"flag": True})
    assert not is_visible(prop, {"flag": 1})


def test_compiled_conditions_list_show_before_hide():
    conds = compile_conditions(SHOW_AND_HIDE)
    assert [(c.controlling_property, c.mode, c.values) for c in conds] == [
        ("a", EQUALS, (1,)),
        ("b", NOT_EQUALS, (2,)),
    ]


# ---------- analyze ----------

def test_analyze_counts_and_descriptions():
    result = analyze(SLACK_LIKE)
    assert result["total_properties"] == 4
    assert result["properties_with_dependencies"] == 3

    deps = {d["property"]: d for d in result["dependencies"]}
    assert deps["channel"]["depends_on"][0]["description"] == 'Visible when Resource is set to "channel"'
    assert deps["text"]["depends_on"][0]["description"] == 'Visible when Resource is one of: "channel", "message"'
    assert deps["simpleField"]["depends_on"][0] == {
        "property": "mode",
        "values": ["simple"],
        "condition": "not_equals",
        "description": 'Hidden when mode is set to "simple"',
    }
    assert deps["text"]["display_name"] == "text"
    assert deps["channel"]["show_when"] == {"resource": ["channel"]}
    assert deps["simpleField"]["hide_when"] == {"mode": ["simple"]}


def test_analyze_builds_graph_and_ranks_controllers():
    result = analyze(SLACK_LIKE)
    assert result["dependency_graph"] == {"resource": ["channel", "text"], "mode": ["simpleField"]}
    assert result["suggestions"][0] == "Key properties to configure first: resource, mode"


def test_analyze_reports_mutual_dependency_without_looping():
    props = [
        {"name": "A", "displayOptions": {"show": {"B": ["x"]}}},
        {"name": "B", "displayOptions": {"show": {"A": ["y"]}}},
    ]
    result = analyze(props)
    circular = [s for s in result["suggestions"] if "Circular dependency" in s]
    assert len(circular) == 1, f"expected one cycle report, got {result['suggestions']}"
    assert "A" in circular[0] and "B" in circular[0]
    enables = {d["property"]: d.get("enables_properties") for d in result["dependencies"]}
    assert enables == {"A": ["B"], "B": ["A"]}


def test_analyze_handles_self_reference():
    result = analyze([{"name": "x", "displayOptions": {"show": {"x": [1]}}}])
    assert any("Circular dependency" in s for s in result["suggestions"])


def test_analyze_notes_nested_and_multi_condition_properties():
    props = [
        {"name": "opts", "type": "collection", "displayOptions": {"show": {"a": [1]}}},
        {"name": "both", "displayOptions": {"show": {"a": [1], "b": [2]}}},
    ]
    result = analyze(props)
    deps = {d["property"]: d for d in result["dependencies"]}
    assert any("nested properties" in n for n in deps["opts"]["notes"])
    assert any("Multiple conditions" in n for n in deps["both"]["notes"])
    assert any("multiple dependencies" in s for s in result["suggestions"])


def test_analyze_counts_empty_show_block():
    result = analyze([{"name": "e", "displayOptions": {"show": {}}}])
    assert result["properties_with_dependencies"] == 1
    assert result["dependencies"][0]["depends_on"] == []


@pytest.mark.parametrize("props", [None, [], [None, "junk", {"name": "ok"}], [{"displayOptions": "bad"}]])
def test_analyze_degrades_on_malformed_input(props):
    result = analyze(props)
    assert result["properties_with_dependencies"] == 0
    assert result["dependency_graph"] == {}


# ---------- get_visibility_impact ----------

def test_visibility_impact_splits_properties():
    impact = get_visibility_impact(SLACK_LIKE, {"resource": "message"})
    assert impact["visible"] == ["resource", "text", "simpleField"]
    assert impact["hidden"] == ["channel"]
    reason = impact["reasons"]["channel"]
    assert "resource" in reason and "message" in reason


def test_visibility_impact_explains_hide_rules():
    impact = get_visibility_impact(SLACK_LIKE, {"resource": "channel", "mode": "simple"})
    assert "simpleField" in impact["hidden"]
    assert "mode" in impact["reasons"]["simpleField"]
    assert "simple" in impact["reasons"]["simpleField"]


def test_visibility_impact_mentions_unset_controller():
    impact = get_visibility_impact(SLACK_LIKE, {})
    assert "not set" in impact["reasons"]["channel"]
