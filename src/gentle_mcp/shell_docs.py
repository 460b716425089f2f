"""
Command help rendered from the packaged glossary.

The glossary (``glossary.json``) lists every shell command with its usage,
summary, the interfaces that expose it and the engine operations it maps to.
Lookups pick the command whose path or alias is the longest token prefix of
the requested topic.
"""

import json
from functools import lru_cache
from importlib import resources
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

HELP_CATALOG_SCHEMA = "gentle.shell_help_catalog.v1"
HELP_TOPIC_SCHEMA = "gentle.shell_help_topic.v1"
KNOWN_INTERFACE_FILTERS = ("cli-direct", "cli-shell", "gui-shell", "js", "lua")
HELP_FORMATS = ("text", "json", "markdown")


class HelpError(ValueError):
    """Unknown topic, interface or format."""


class ShellCommandDoc(BaseModel):
    path: str
    usage: str
    summary: str
    interfaces: List[str] = Field(default_factory=list)
    engine_operations: List[str] = Field(default_factory=list)
    aliases: List[str] = Field(default_factory=list)

    def record(self) -> Dict[str, Any]:
        return self.model_dump()


class ShellGlossary(BaseModel):
    schema_: str = Field(alias="schema")
    interfaces: List[str] = Field(default_factory=list)
    commands: List[ShellCommandDoc] = Field(default_factory=list)


def parse_glossary(raw: str) -> ShellGlossary:
    try:
        return ShellGlossary.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as e:
        raise HelpError(f"Could not parse glossary.json: {e}")


@lru_cache(maxsize=1)
def glossary() -> ShellGlossary:
    raw = resources.files("gentle_mcp").joinpath("glossary.json").read_text(encoding="utf-8")
    return parse_glossary(raw)


def parse_help_format(raw: Optional[str]) -> str:
    value = (raw or "text").strip().lower()
    if value == "md":
        value = "markdown"
    if value not in HELP_FORMATS:
        raise HelpError(f"Unsupported help format '{value}' (expected text|json|markdown)")
    return value


def normalize_interface_filter(raw: Optional[str]) -> Optional[str]:
    """``None`` means no filter; ``mcp`` shares the shell command surface."""
    if raw is None:
        return None
    normalized = raw.strip().lower()
    if not normalized or normalized == "all":
        return None
    if normalized == "mcp":
        return "cli-shell"
    if normalized in KNOWN_INTERFACE_FILTERS:
        return normalized
    raise HelpError(
        f"Unsupported --interface '{raw}' (expected all|cli-direct|cli-shell|gui-shell|js|lua|mcp)"
    )


def docs_for_interface(
    interface_filter: Optional[str],
    source: Optional[ShellGlossary] = None,
) -> List[ShellCommandDoc]:
    source = source or glossary()
    wanted = normalize_interface_filter(interface_filter)
    return [doc for doc in source.commands if wanted is None or wanted in doc.interfaces]


def _tokens(text: str) -> List[str]:
    return [t.lower() for t in text.split()]


def _topic_tokens(topic: List[str]) -> List[str]:
    return [t.strip().lower() for t in topic if t.strip()]


def _prefix_score(path: str, topic: List[str]) -> Optional[int]:
    tokens = _tokens(path)
    if len(topic) < len(tokens) or topic[:len(tokens)] != tokens:
        return None
    return len(tokens)


def find_doc_for_topic(docs: List[ShellCommandDoc], topic: List[str]) -> Optional[ShellCommandDoc]:
    """Longest path/alias prefix wins; on a tie the later command wins."""
    tokens = _topic_tokens(topic)
    best: Optional[ShellCommandDoc] = None
    best_score = -1
    for doc in docs:
        scores = [_prefix_score(doc.path, tokens)] + [_prefix_score(alias, tokens) for alias in doc.aliases]
        scores = [s for s in scores if s is not None]
        if scores and max(scores) >= best_score:
            best, best_score = doc, max(scores)
    return best


def topic_not_found_message(topic: List[str], docs: List[ShellCommandDoc]) -> str:
    first = topic[0].lower() if topic else ""
    suggestions = [doc.path for doc in docs if not first or doc.path.startswith(first)][:8]
    if not suggestions:
        suggestions = [doc.path for doc in docs][:8]
    return f"Unknown help topic '{' '.join(topic)}'. Try one of: {', '.join(suggestions)}"


def _lookup(topic: List[str], interface_filter: Optional[str]) -> ShellCommandDoc:
    docs = docs_for_interface(interface_filter)
    doc = find_doc_for_topic(docs, topic)
    if doc is None:
        raise HelpError(topic_not_found_message(topic, docs))
    return doc


def render_topic_text(doc: ShellCommandDoc) -> str:
    lines = [
        "GENtle command help",
        f"Path: {doc.path}",
        f"Usage: {doc.usage}",
        f"Summary: {doc.summary}",
        f"Interfaces: {', '.join(doc.interfaces)}",
    ]
    if doc.engine_operations:
        lines.append(f"Engine operations: {', '.join(doc.engine_operations)}")
    if doc.aliases:
        lines.append(f"Aliases: {', '.join(doc.aliases)}")
    return "\n".join(lines) + "\n"


def render_topic_markdown(doc: ShellCommandDoc) -> str:
    lines = [
        f"## `{doc.path}`",
        f"- Usage: `{doc.usage}`",
        f"- Summary: {doc.summary}",
        f"- Interfaces: `{'`, `'.join(doc.interfaces)}`",
    ]
    if doc.engine_operations:
        lines.append(f"- Engine operations: `{'`, `'.join(doc.engine_operations)}`")
    if doc.aliases:
        lines.append(f"- Aliases: `{'`, `'.join(doc.aliases)}`")
    return "\n".join(lines) + "\n"


def help_text(interface_filter: Optional[str] = None) -> str:
    out = ["GENtle Shell commands:"]
    for doc in docs_for_interface(interface_filter):
        out.append(f"- {doc.usage}")
        out.append(f"  {doc.summary}")
    out.append("Use `help COMMAND ...` for command-specific help.")
    out.append("Use `help [--format json|markdown]` to export machine-readable docs.")
    out.append("Use `--interface` to filter (`all|cli-direct|cli-shell|gui-shell|js|lua|mcp`).")
    return "\n".join(out)


def help_markdown(interface_filter: Optional[str] = None) -> str:
    out = "# GENtle Shell Command Reference\n\n"
    for doc in docs_for_interface(interface_filter):
        out += render_topic_markdown(doc) + "\n"
    return out


def help_json(interface_filter: Optional[str] = None) -> Dict[str, Any]:
    source = glossary()
    docs = docs_for_interface(interface_filter, source)
    return {
        "schema": HELP_CATALOG_SCHEMA,
        "source_schema": source.schema_,
        "known_interfaces": list(source.interfaces),
        "interface_filter": normalize_interface_filter(interface_filter) or "all",
        "command_count": len(docs),
        "commands": [doc.record() for doc in docs],
    }


def topic_help_text(topic: List[str], interface_filter: Optional[str] = None) -> str:
    return render_topic_text(_lookup(topic, interface_filter))


def topic_help_markdown(topic: List[str], interface_filter: Optional[str] = None) -> str:
    return render_topic_markdown(_lookup(topic, interface_filter))


def topic_help_json(topic: List[str], interface_filter: Optional[str] = None) -> Dict[str, Any]:
    doc = _lookup(topic, interface_filter)
    return {
        "schema": HELP_TOPIC_SCHEMA,
        "topic": " ".join(topic),
        "doc": doc.record(),
    }
