"""
Tests for keyword-routed documentation context.
Run with: pytest tests/test_context.py
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from switchboard.context import ContextMiddleware, ContextRule


def _rule(name="chrome", keywords=("chrome", "manifest"), source=None, **kwargs):
    return ContextRule(
        name=name,
        keywords=frozenset(keywords),
        source=source or (lambda q: f"{name} docs"),
        label=kwargs.pop("label", f"{name} Documentation"),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_no_match_leaves_message_unchanged():
    mw = ContextMiddleware([_rule()])
    assert await mw.apply("How do I sort a list?") == "How do I sort a list?"


@pytest.mark.asyncio
async def test_match_is_case_insensitive():
    mw = ContextMiddleware([_rule()])
    out = await mw.apply("What goes in a Chrome MANIFEST?")
    assert out == "What goes in a Chrome MANIFEST?\n\n[chrome Documentation]:\nchrome docs"


@pytest.mark.asyncio
async def test_rules_apply_in_table_order():
    mw = ContextMiddleware([
        _rule("chrome", ("extension",)),
        _rule("n8n", ("webhook",)),
    ])
    out = await mw.apply("extension calls a webhook")
    assert out.index("[chrome Documentation]") < out.index("[n8n Documentation]")


@pytest.mark.asyncio
async def test_result_truncated_to_max_chars():
    mw = ContextMiddleware([_rule(source=lambda q: "x" * 5000, max_chars=100)])
    out = await mw.apply("chrome")
    assert out.endswith("\n" + "x" * 100)


@pytest.mark.asyncio
async def test_async_search_object():
    """Sources may expose an async search() method."""
    source = MagicMock()
    source.search = AsyncMock(return_value="async docs")
    mw = ContextMiddleware([_rule(source=source)])

    out = await mw.apply("chrome tabs")

    assert out.endswith("async docs")
    source.search.assert_awaited_once_with("chrome tabs")


@pytest.mark.asyncio
async def test_failing_source_is_skipped(caplog):
    """A source that raises is logged and the message goes out unenriched."""
    def broken(query):
        raise ConnectionError("docs offline")

    mw = ContextMiddleware([_rule(source=broken), _rule("n8n", ("chrome",))])
    with caplog.at_level("INFO", logger="switchboard.context"):
        out = await mw.apply("chrome")

    assert "[chrome Documentation]" not in out
    assert "[n8n Documentation]" in out
    assert "docs offline" in caplog.text


@pytest.mark.asyncio
async def test_empty_result_is_skipped():
    mw = ContextMiddleware([_rule(source=lambda q: None)])
    assert await mw.apply("chrome") == "chrome"


@pytest.mark.asyncio
async def test_disabled_rule_is_ignored():
    mw = ContextMiddleware([_rule(enabled=False)])
    assert await mw.apply("chrome") == "chrome"
    assert mw.list_rules() == []


def test_add_rule_and_list():
    mw = ContextMiddleware()
    mw.add_rule(_rule("a"))
    mw.add_rule(_rule("b"))
    assert mw.list_rules() == ["a", "b"]


def test_from_config_with_injected_sources():
    mw = ContextMiddleware.from_config(
        {
            "chrome": {"keywords": ["Chrome", "popup"], "label": "Chrome Docs", "max_chars": 10},
            "n8n": {"enabled": False, "keywords": ["n8n"]},
            "orphan": {"keywords": ["x"]},
        },
        sources={"chrome": lambda q: "docs", "n8n": lambda q: "docs"},
    )
    assert mw.list_rules() == ["chrome"]
    rule = mw.rules[0]
    assert rule.keywords == frozenset({"chrome", "popup"})
    assert rule.label == "Chrome Docs"
    assert rule.max_chars == 10


@pytest.mark.asyncio
async def test_from_config_loads_source_file(tmp_path):
    """A rule can point at a Python file defining search(query)."""
    source_file = tmp_path / "n8n_docs.py"
    source_file.write_text(
        "def search(query):\n"
        "    return 'Webhook node starts a workflow.'\n"
    )
    mw = ContextMiddleware.from_config({
        "n8n": {"keywords": ["workflow"], "path": str(source_file)},
    })

    assert mw.list_rules() == ["n8n"]
    out = await mw.apply("new workflow")
    assert out.endswith("[n8n Documentation]:\nWebhook node starts a workflow.")


def test_from_config_bad_source_files(tmp_path):
    """Missing, broken and search-less files are skipped."""
    no_search = tmp_path / "empty.py"
    no_search.write_text("X = 1\n")
    broken = tmp_path / "broken.py"
    broken.write_text("def search(:\n")

    mw = ContextMiddleware.from_config({
        "missing": {"keywords": ["a"], "path": str(tmp_path / "nope.py")},
        "empty": {"keywords": ["a"], "path": str(no_search)},
        "broken": {"keywords": ["a"], "path": str(broken)},
    })
    assert mw.list_rules() == []
