# flowguard/config/node_rules.py
"""
Per-node-type validation rules.

Each rule receives a RuleContext and appends findings to it. Rules can add
errors, warnings, suggestions and autofix hints; they never remove what the
generic checks already found.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from flowguard.workflow.node_types import normalize_node_type


@dataclass
class RuleContext:
    node_type: str
    config: Dict[str, Any]
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    autofix: Dict[str, Any] = field(default_factory=dict)

    def error(self, etype: str, prop: str, message: str, fix: Optional[str] = None) -> None:
        entry = {"type": etype, "property": prop, "message": message}
        if fix:
            entry["fix"] = fix
        self.errors.append(entry)

    def warn(self, wtype: str, prop: Optional[str], message: str, suggestion: Optional[str] = None) -> None:
        entry: Dict[str, Any] = {"type": wtype, "property": prop, "message": message}
        if suggestion:
            entry["suggestion"] = suggestion
        self.warnings.append(entry)


Rule = Callable[[RuleContext], None]


class NodeRuleRegistry:
    """Maps node types (any spelling, case-insensitive) to rule callables."""

    def __init__(self):
        self._rules: Dict[str, List[Rule]] = {}

    @staticmethod
    def _key(node_type: str) -> str:
        return normalize_node_type(node_type or "").lower()

    def register(self, *node_types: str) -> Callable[[Rule], Rule]:
        def deco(fn: Rule) -> Rule:
            for t in node_types:
                self._rules.setdefault(self._key(t), []).append(fn)
            return fn
        return deco

    def rules_for(self, node_type: str) -> List[Rule]:
        return list(self._rules.get(self._key(node_type), []))

    def apply(self, ctx: RuleContext) -> None:
        for rule in self.rules_for(ctx.node_type):
            rule(ctx)


DEFAULT_RULES = NodeRuleRegistry()


# ---------- helpers ----------

def is_expression(value: Any) -> bool:
    return isinstance(value, str) and (value.startswith("=") or "{{" in value)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


_DELETE_RE = re.compile(r"\bdelete\s+from\b", re.IGNORECASE)
_WHERE_RE = re.compile(r"\bwhere\b", re.IGNORECASE)
_SELECT_STAR_RE = re.compile(r"\bselect\s+\*", re.IGNORECASE)
_EVAL_RE = re.compile(r"\b(eval|exec)\s*\(")
_RETURN_RE = re.compile(r"\breturn\b")
_INPUT_RE = re.compile(r"(\bitems\b|\$input\b|\b_input\b)")


# ---------- HTTP Request ----------

@DEFAULT_RULES.register("nodes-base.httpRequest")
def _http_request(ctx: RuleContext) -> None:
    cfg = ctx.config
    url = cfg.get("url")
    if isinstance(url, str) and url and not is_expression(url):
        if not url.startswith(("http://", "https://")):
            ctx.error("invalid_value", "url", "URL must start with http:// or https://",
                      fix=f"Change the URL to https://{url}")

    method = str(cfg.get("method") or "GET").upper()
    if method in ("POST", "PUT", "PATCH") and not cfg.get("sendBody"):
        ctx.warn("missing_common", "sendBody",
                 f"{method} requests usually send a body but sendBody is not enabled",
                 suggestion="Set sendBody to true and choose a content type")
        ctx.autofix["sendBody"] = True
        ctx.autofix["contentType"] = "json"

    if (isinstance(url, str) and "api" in url.lower()
            and cfg.get("authentication") == "none"):
        ctx.warn("security", "authentication",
                 "API endpoint is called without authentication",
                 suggestion="Configure credentials for this API if it requires them")

    body = cfg.get("jsonBody")
    if isinstance(body, str) and body.strip() and not is_expression(body):
        try:
            json.loads(body)
        except ValueError as e:
            ctx.error("invalid_value", "jsonBody", f"jsonBody is not valid JSON: {e}",
                      fix="Fix the JSON syntax or build the body with an expression")


# ---------- Webhook ----------

@DEFAULT_RULES.register("nodes-base.webhook")
def _webhook(ctx: RuleContext) -> None:
    if ctx.config.get("responseMode") == "responseNode":
        ctx.suggestions.append(
            "Add a 'Respond to Webhook' node to send the response when responseMode is 'responseNode'"
        )
    path = ctx.config.get("path")
    if isinstance(path, str) and path.startswith("/"):
        ctx.warn("best_practice", "path", "Webhook path should not start with '/'")


# ---------- SQL databases ----------

@DEFAULT_RULES.register("nodes-base.postgres", "nodes-base.mySql")
def _sql_query(ctx: RuleContext) -> None:
    query = ctx.config.get("query")
    if not isinstance(query, str) or not query.strip():
        return
    if "${" in query:
        ctx.warn("security", "query",
                 "Query uses ${...} interpolation, which is open to SQL injection",
                 suggestion="Use query parameters instead of string interpolation")
    if _DELETE_RE.search(query) and not _WHERE_RE.search(query):
        ctx.warn("security", "query", "DELETE query without a WHERE clause removes every row")
    if _SELECT_STAR_RE.search(query):
        ctx.suggestions.append("Select specific columns instead of SELECT * to reduce payload size")


# ---------- Code ----------

def _mixed_indentation(code: str) -> bool:
    seen_tab = seen_space = False
    for line in code.splitlines():
        indent = line[: len(line) - len(line.lstrip(" \t"))]
        if not indent or not line.strip():
            continue
        if "\t" in indent and " " in indent:
            return True
        seen_tab = seen_tab or "\t" in indent
        seen_space = seen_space or " " in indent
    return seen_tab and seen_space


@DEFAULT_RULES.register("nodes-base.code")
def _code(ctx: RuleContext) -> None:
    python = ctx.config.get("language") in ("python", "pythonNative")
    key = "pythonCode" if python else "jsCode"
    code = ctx.config.get(key)

    if not isinstance(code, str) or not code.strip():
        ctx.error("missing_required", key, "Code cannot be empty",
                  fix="Add code that processes the input items and returns a result")
        return

    if _EVAL_RE.search(code):
        ctx.warn("security", key, "Avoid eval()/exec(): they run arbitrary code")

    if python:
        if _mixed_indentation(code):
            ctx.error("syntax_error", key, "Mixed tabs and spaces in indentation",
                      fix="Indent with spaces only")
    else:
        if code.count("{") != code.count("}"):
            ctx.error("syntax_error", key, "Unbalanced braces in code")
        if code.count("(") != code.count(")"):
            ctx.error("syntax_error", key, "Unbalanced parentheses in code")

    if not _RETURN_RE.search(code):
        ctx.warn("missing_common", key, "Code does not return anything",
                 suggestion="Return the items to pass on, e.g. `return items`")
    if not _INPUT_RE.search(code):
        ctx.warn("best_practice", key, "Code does not reference the input items",
                 suggestion="Read data with $input.all() or items")


# ---------- Slack ----------

@DEFAULT_RULES.register("nodes-base.slack")
def _slack(ctx: RuleContext) -> None:
    cfg = ctx.config
    resource = cfg.get("resource", "message")
    operation = cfg.get("operation", "send")
    if resource == "message" and operation == "send":
        if _blank(cfg.get("channel")) and _blank(cfg.get("channelId")):
            ctx.error("missing_required", "channel",
                      "Slack message requires a channel (name like #general or an ID)",
                      fix='Set channel to a channel name like "#general"')
        if all(_blank(cfg.get(k)) for k in ("text", "blocks", "attachments")):
            ctx.error("missing_required", "text",
                      "Message content is required: provide text, blocks or attachments",
                      fix="Set text to the message you want to send")
    elif resource == "user" and operation == "get":
        if _blank(cfg.get("user")):
            ctx.error("missing_required", "user", "Getting a Slack user requires the user ID",
                      fix="Set user to a Slack user ID")


# ---------- Google Sheets ----------

@DEFAULT_RULES.register("nodes-base.googleSheets")
def _google_sheets(ctx: RuleContext) -> None:
    operation = ctx.config.get("operation")
    rng = ctx.config.get("range")
    if operation in ("append", "update") and _blank(rng):
        ctx.error("missing_required", "range", f"Range is required for {operation} operations",
                  fix="Set range like 'Sheet1!A:D'")
        return
    if isinstance(rng, str) and rng and not is_expression(rng) and "!" not in rng:
        ctx.warn("best_practice", "range",
                 "Range should include sheet name (e.g. 'Sheet1!A:D')")


# ---------- OpenAI ----------

@DEFAULT_RULES.register("nodes-base.openAi")
def _openai(ctx: RuleContext) -> None:
    cfg = ctx.config
    if cfg.get("operation") == "complete":
        if _blank(cfg.get("model")):
            ctx.error("missing_required", "model", "Model is required for completions",
                      fix='Set model, e.g. "gpt-4o-mini"')
        if cfg.get("resource") == "chat" and not cfg.get("messages") and _blank(cfg.get("prompt")):
            ctx.error("missing_required", "messages", "Chat completion needs messages or a prompt")
    max_tokens = cfg.get("maxTokens")
    if isinstance(max_tokens, (int, float)) and not isinstance(max_tokens, bool) and max_tokens > 4096:
        ctx.warn("best_practice", "maxTokens",
                 f"maxTokens={max_tokens} exceeds the limit of most models (4096)")


# ---------- MongoDB ----------

@DEFAULT_RULES.register("nodes-base.mongoDb")
def _mongodb(ctx: RuleContext) -> None:
    operation = ctx.config.get("operation")
    query = ctx.config.get("query")
    parsed: Any = None
    if isinstance(query, str) and query.strip() and not is_expression(query):
        try:
            parsed = json.loads(query)
        except ValueError:
            ctx.error("invalid_value", "query", "Query must be valid JSON",
                      fix='Use a JSON filter such as {"status": "active"}')
            return
    elif isinstance(query, dict):
        parsed = query
    if operation == "delete" and not is_expression(query) and not parsed:
        ctx.warn("security", "query", "Delete with an empty query removes every document in the collection")
