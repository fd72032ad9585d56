"""
Tests for the YAML config loader.
Run with: pytest tests/test_config.py
"""

import pytest

from switchboard import config as cfg_mod


@pytest.fixture(autouse=True)
def fresh_config():
    orig = cfg_mod._config
    cfg_mod.reset_config()
    yield
    cfg_mod._config = orig


def test_env_vars_resolved(tmp_path, monkeypatch):
    """${VAR} references are filled from the environment, missing ones become empty."""
    monkeypatch.setenv("SWITCHBOARD_TEST_KEY", "sk-test")
    monkeypatch.delenv("SWITCHBOARD_TEST_MISSING", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(
        "providers:\n"
        "  openai:\n"
        "    api_key: ${SWITCHBOARD_TEST_KEY}\n"
        "  webhook:\n"
        "    url: ${SWITCHBOARD_TEST_MISSING}\n"
        "context_rules:\n"
        "  n8n:\n"
        "    keywords: [n8n, '${SWITCHBOARD_TEST_KEY}']\n"
    )

    cfg = cfg_mod.load_config(path)

    assert cfg["providers"]["openai"]["api_key"] == "sk-test"
    assert cfg["providers"]["webhook"]["url"] == ""
    assert cfg["context_rules"]["n8n"]["keywords"] == ["n8n", "sk-test"]


def test_explicit_path_bypasses_cache(tmp_path):
    a = tmp_path / "a.yaml"
    a.write_text("server:\n  port: 1\n")
    b = tmp_path / "b.yaml"
    b.write_text("server:\n  port: 2\n")

    assert cfg_mod.load_config(a)["server"]["port"] == 1
    assert cfg_mod.load_config(b)["server"]["port"] == 2
    assert cfg_mod.get_config()["server"]["port"] == 2


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        cfg_mod.load_config(tmp_path / "nope.yaml")


def test_empty_file_is_empty_config(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert cfg_mod.load_config(path) == {}


def test_shipped_config_loads():
    """The repository's config.yaml has every section the app reads."""
    cfg = cfg_mod.load_config()
    for section in ("server", "storage", "providers", "routing", "conversations", "wiretap", "logging"):
        assert section in cfg
    assert list(cfg["providers"]) == ["vertex", "openai", "webhook"]
    assert cfg["conversations"]["context_window"] == 20
