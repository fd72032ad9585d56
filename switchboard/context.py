"""
Documentation context: keyword-routed enrichment ahead of provider dispatch.

A declarative table maps keyword sets to documentation sources. For every
outgoing message, each rule whose keywords appear in the text gets its
source's search(query) called, and the result is appended to the message the
providers see:

    <message>

    [<label>]:
    <search result, truncated to max_chars>

Sources are anything with a search(query) -> str | None method or a plain
callable; either may be sync or async. A source can also be a Python file
exposing a module-level search() function, loaded by path from config.yaml.

A source that raises or returns nothing is logged and skipped. The stored
user message is never modified, only the copy that goes to the providers.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class ContextRule:
    """One row of the routing table."""
    name: str
    keywords: frozenset[str]
    source: Any
    label: str = ""
    max_chars: int = 1500
    enabled: bool = True

    def matches(self, message: str) -> bool:
        text = message.lower()
        return any(k in text for k in self.keywords)


@dataclass
class ContextMiddleware:
    """Applies every matching rule, in table order, to an outgoing message."""
    rules: list[ContextRule] = field(default_factory=list)

    @classmethod
    def from_config(cls, rules_cfg: dict | None, sources: dict[str, Any] | None = None) -> ContextMiddleware:
        """
        Build the table from the `context_rules:` config block.

        Each entry is keyed by rule name and may set keywords, label,
        max_chars, enabled and path. A source is taken from `sources` by rule
        name, else loaded from `path`.
        """
        sources = sources or {}
        rules = []
        for name, rc in (rules_cfg or {}).items():
            rc = rc or {}
            if not rc.get("enabled", True):
                logger.debug("Context rule '%s' disabled in config", name)
                continue

            source = sources.get(name)
            if source is None and rc.get("path"):
                source = _load_source(rc["path"], name)
            if source is None:
                logger.warning("Context rule '%s' has no source, skipping", name)
                continue

            rules.append(ContextRule(
                name=name,
                keywords=frozenset(k.lower() for k in rc.get("keywords", [])),
                source=source,
                label=rc.get("label", f"{name} Documentation"),
                max_chars=int(rc.get("max_chars", 1500)),
            ))
        return cls(rules)

    def add_rule(self, rule: ContextRule) -> None:
        self.rules.append(rule)

    def list_rules(self) -> list[str]:
        return [r.name for r in self.rules if r.enabled]

    async def apply(self, message: str) -> str:
        """Return the message with documentation context appended."""
        enriched = message
        for rule in self.rules:
            if not rule.enabled or not rule.keywords or not rule.matches(message):
                continue
            try:
                result = await _search(rule.source, message)
            except Exception as e:
                logger.info("Context source '%s' failed, continuing without it: %s", rule.name, e)
                continue
            if not result:
                logger.debug("Context source '%s' returned nothing", rule.name)
                continue
            enriched += f"\n\n[{rule.label}]:\n{str(result)[:rule.max_chars]}"
            logger.debug("Context rule '%s' applied", rule.name)
        return enriched


async def _search(source: Any, query: str):
    search = getattr(source, "search", source)
    result = search(query)
    if inspect.isawaitable(result):
        result = await result
    return result


def _load_source(path: str, name: str):
    """Load a Python file exposing search(query) as a context source."""
    if not Path(path).exists():
        logger.warning("Context source '%s' path not found: %s", name, path)
        return None
    try:
        spec = importlib.util.spec_from_file_location(f"switchboard_context_{name}", path)
        if spec is None or spec.loader is None:
            logger.error("Could not load context source '%s' from %s", name, path)
            return None
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
    except Exception as e:
        logger.error("Failed to load context source '%s' from %s: %s", name, path, e)
        return None

    if not callable(getattr(module, "search", None)):
        logger.warning("Context source '%s' has no search() function", name)
        return None
    logger.info("Loaded context source '%s' from %s", name, path)
    return module
