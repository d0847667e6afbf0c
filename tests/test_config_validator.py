import pytest

from flowguard.config.node_rules import NodeRuleRegistry, RuleContext
from flowguard.config.validator import ConfigValidator


def prop(name, **extra):
    return {"name": name, "displayName": extra.pop("displayName", name), "type": extra.pop("type", "string"), **extra}


@pytest.fixture
def validator():
    return ConfigValidator()


def _of(items, kind, prop_name=None):
    return [i for i in items if i["type"] == kind and (prop_name is None or i.get("property") == prop_name)]


# ---------- required ----------

def test_missing_required_properties_in_definition_order(validator):
    result = validator.validate("nodes-base.generic", {}, [prop("url", required=True), prop("method", required=True)])
    assert result["valid"] is False
    assert [(e["type"], e["property"]) for e in result["errors"]] == [
        ("missing_required", "url"),
        ("missing_required", "method"),
    ]


def test_required_message_uses_display_name_and_fix_uses_name(validator):
    result = validator.validate("nodes-base.generic", {}, [prop("apiKey", displayName="API Key", required=True)])
    err = result["errors"][0]
    assert "API Key" in err["message"]
    assert "apiKey" in err["fix"]


def test_required_message_falls_back_to_name(validator):
    result = validator.validate("nodes-base.generic", {}, [{"name": "url", "required": True}])
    assert "url" in result["errors"][0]["message"]


def test_hidden_required_property_is_not_reported(validator):
    props = [prop("sendBody", type="boolean"),
             prop("body", required=True, displayOptions={"show": {"sendBody": [True]}})]
    result = validator.validate("nodes-base.generic", {"sendBody": False}, props)
    assert _of(result["errors"], "missing_required") == []
    assert "body" in result["hidden_properties"]
    assert "body" not in result["visible_properties"]


def test_visible_properties_follow_config(validator):
    props = [prop("sendBody", type="boolean"),
             prop("body", displayOptions={"show": {"sendBody": [True]}})]
    result = validator.validate("nodes-base.generic", {"sendBody": True, "body": "x"}, props)
    assert "body" in result["visible_properties"]
    assert "body" not in result["hidden_properties"]


# ---------- types and options ----------

@pytest.mark.parametrize("ptype, value, expected_words", [
    ("string", 42, ("string", "number")),
    ("number", "fast", ("number", "string")),
    ("boolean", "yes", ("boolean", "string")),
])
def test_type_mismatch(validator, ptype, value, expected_words):
    result = validator.validate("nodes-base.generic", {"field": value}, [prop("field", type=ptype)])
    errs = _of(result["errors"], "invalid_type", "field")
    assert len(errs) == 1, f"expected one invalid_type error, got {result['errors']}"
    for word in expected_words:
        assert word in errs[0]["message"]


def test_none_value_is_reported_as_undefined(validator):
    result = validator.validate("nodes-base.generic", {"timeout": None}, [prop("timeout", type="number")])
    errs = _of(result["errors"], "invalid_type", "timeout")
    assert errs and "undefined" in errs[0]["message"]


def test_expressions_skip_type_checks(validator):
    result = validator.validate("nodes-base.generic", {"timeout": "={{ $json.t }}"}, [prop("timeout", type="number")])
    assert result["errors"] == []


def test_options_value_must_be_allowed(validator):
    props = [prop("method", type="options", options=[{"name": "GET", "value": "GET"}, "POST"])]
    result = validator.validate("nodes-base.generic", {"method": "FETCH"}, props)
    errs = _of(result["errors"], "invalid_value", "method")
    assert errs and "GET" in errs[0]["message"] and "POST" in errs[0]["message"]

    ok = validator.validate("nodes-base.generic", {"method": "POST"}, props)
    assert ok["errors"] == []


# ---------- common checks ----------

def test_configured_but_hidden_property_is_inefficient(validator):
    props = [prop("sendBody", type="boolean"),
             prop("body", displayOptions={"show": {"sendBody": [True]}})]
    result = validator.validate("nodes-base.generic", {"sendBody": False, "body": "x"}, props)
    warns = _of(result["warnings"], "inefficient", "body")
    assert warns and "won't be used" in warns[0]["message"]


def test_internal_keys_are_not_inefficient(validator):
    props = [prop("_meta", displayOptions={"show": {"x": [1]}})]
    result = validator.validate("nodes-base.generic", {"_meta": 1, "@version": 2}, props)
    assert _of(result["warnings"], "inefficient") == []


def test_unset_common_properties_get_suggestions(validator):
    props = [prop("authentication", type="options", options=["none", "oauth2"]), prop("timeout", type="number")]
    result = validator.validate("nodes-base.generic", {}, props)
    assert any("authentication" in s for s in result["suggestions"])
    assert any("timeout" in s for s in result["suggestions"])


@pytest.mark.parametrize("key, value, flagged", [
    ("apiKey", "sk-123", True),
    ("password", "hunter2", True),
    ("accessToken", "abc", True),
    ("apiKey", "={{ $env.API_KEY }}", False),
    ("password", "", False),
    ("channel", "#general", False),
])
def test_hardcoded_secrets(validator, key, value, flagged):
    result = validator.validate("nodes-base.generic", {key: value}, [])
    security = [w for w in result["warnings"] if w["type"] == "security"]
    assert bool(security) == flagged, f"{key}={value!r}: warnings={result['warnings']}"
    if flagged:
        assert "Hardcoded" in security[0]["message"]


def test_empty_input_is_clean(validator):
    result = validator.validate("nodes-base.generic", {}, [])
    assert result["valid"] is True
    assert result["warnings"] == []
    assert "autofix" not in result


def test_properties_without_name_do_not_crash(validator):
    result = validator.validate("nodes-base.generic", {"x": 1}, [{"type": "string", "required": True}, "junk"])
    assert result["valid"] is True


# ---------- HTTP Request ----------

def test_url_without_protocol(validator):
    result = validator.validate("nodes-base.httpRequest", {"url": "example.com/api"}, [])
    errs = _of(result["errors"], "invalid_value", "url")
    assert errs and "http://" in errs[0]["message"]


@pytest.mark.parametrize("url", ["https://api.example.com", "http://localhost:3000", "={{ $json.url }}"])
def test_url_accepted(validator, url):
    result = validator.validate("n8n-nodes-base.httpRequest", {"url": url}, [])
    assert _of(result["errors"], "invalid_value", "url") == []


@pytest.mark.parametrize("method", ["POST", "PUT", "PATCH"])
def test_body_methods_without_body(validator, method):
    result = validator.validate("nodes-base.httpRequest", {"method": method, "url": "https://example.com"}, [])
    warns = [w for w in result["warnings"] if w["property"] == "sendBody"]
    assert warns and method in warns[0]["message"]
    assert result["autofix"] == {"sendBody": True, "contentType": "json"}


def test_get_needs_no_body(validator):
    result = validator.validate("nodes-base.httpRequest", {"method": "GET", "url": "https://example.com"}, [])
    assert [w for w in result["warnings"] if w["property"] == "sendBody"] == []


def test_api_call_without_authentication(validator):
    result = validator.validate(
        "nodes-base.httpRequest", {"url": "https://api.example.com/v1", "authentication": "none"}, []
    )
    assert _of(result["warnings"], "security", "authentication")


def test_invalid_json_body(validator):
    result = validator.validate(
        "nodes-base.httpRequest",
        {"url": "https://example.com", "method": "POST", "sendBody": True, "jsonBody": "{bad"},
        [],
    )
    assert _of(result["errors"], "invalid_value", "jsonBody")


# ---------- Webhook / databases ----------

def test_webhook_response_node_suggestion(validator):
    result = validator.validate("nodes-base.webhook", {"path": "hook", "responseMode": "responseNode"}, [])
    assert any("Respond to Webhook" in s for s in result["suggestions"])


@pytest.mark.parametrize("node_type", ["nodes-base.postgres", "n8n-nodes-base.mySql", "nodes-base.mysql"])
def test_sql_injection_and_select_star(validator, node_type):
    result = validator.validate(node_type, {"query": "SELECT * FROM users WHERE id = ${id}"}, [])
    security = _of(result["warnings"], "security", "query")
    assert security and "SQL injection" in security[0]["message"]
    assert any("specific columns" in s for s in result["suggestions"])


def test_delete_without_where(validator):
    result = validator.validate("nodes-base.postgres", {"query": "DELETE FROM users"}, [])
    assert any("WHERE" in w["message"] for w in _of(result["warnings"], "security"))

    scoped = validator.validate("nodes-base.postgres", {"query": "DELETE FROM users WHERE id = 1"}, [])
    assert _of(scoped["warnings"], "security") == []


# ---------- Code ----------

@pytest.mark.parametrize("config", [
    {"jsCode": ""},
    {"jsCode": "   \n  "},
    {"language": "python", "pythonCode": ""},
    {},
])
def test_empty_code(validator, config):
    result = validator.validate("nodes-base.code", config, [])
    assert any("empty" in e["message"] for e in result["errors"])


def test_eval_is_a_security_warning(validator):
    result = validator.validate("nodes-base.code", {"jsCode": "const x = eval('1'); return items;"}, [])
    assert _of(result["warnings"], "security", "jsCode")


@pytest.mark.parametrize("code, word", [
    ("function f() { return items;", "brace"),
    ("return items.map((x) => x;", "parenthes"),
])
def test_unbalanced_javascript(validator, code, word):
    result = validator.validate("nodes-base.code", {"jsCode": code}, [])
    assert any(word in e["message"].lower() for e in _of(result["errors"], "syntax_error"))


def test_python_mixed_indentation(validator):
    code = "def f():\n\treturn items\nif True:\n    x = _input.all()\n"
    result = validator.validate("nodes-base.code", {"language": "python", "pythonCode": code}, [])
    assert any("tabs and spaces" in e["message"] for e in result["errors"])


def test_code_without_return_or_input(validator):
    no_return = validator.validate("nodes-base.code", {"jsCode": "const a = $input.all();"}, [])
    assert _of(no_return["warnings"], "missing_common", "jsCode")

    no_input = validator.validate("nodes-base.code", {"jsCode": "return [{ json: { a: 1 } }];"}, [])
    assert any("input items" in w["message"] for w in no_input["warnings"])


# ---------- Registry ----------

def test_custom_rule_registry():
    rules = NodeRuleRegistry()

    @rules.register("n8n-nodes-base.thing")
    def _needs_flag(ctx: RuleContext) -> None:
        if not ctx.config.get("flag"):
            ctx.error("missing_required", "flag", "flag is required")

    v = ConfigValidator(rules=rules)
    assert not v.validate("nodes-base.Thing", {}, [])["valid"]
    assert v.validate("nodes-base.thing", {"flag": True}, [])["valid"]
    # default rules are not consulted
    assert v.validate("nodes-base.httpRequest", {"url": "nope"}, [])["valid"]
