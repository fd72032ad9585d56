"""
Tests for the command line interface.
Run with: pytest tests/test_cli.py
"""

import json
from unittest.mock import patch

import pytest

from switchboard import __version__
from switchboard import config as cfg_mod
from switchboard.cli import build_parser, cmd_call, cmd_dial, main


@pytest.fixture
def memory_config(tmp_path):
    orig = cfg_mod._config
    cfg_mod._config = {
        "server": {"host": "127.0.0.1", "port": 9999},
        "storage": {"backend": "memory"},
        "providers": {},
        "routing": {"retry_attempts": 1},
        "wiretap": {"enabled": False},
    }
    yield cfg_mod._config
    cfg_mod._config = orig


@pytest.mark.parametrize("names,func", [
    (["dial", "start", "serve"], cmd_dial),
    (["call", "ask", "send"], cmd_call),
])
def test_aliases_share_a_handler(names, func):
    parser = build_parser()
    extra = ["hello"] if func is cmd_call else []
    for name in names:
        assert parser.parse_args([name, *extra]).func is func


def test_version(capsys):
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--version"])
    assert __version__ in capsys.readouterr().out


def test_no_command_prints_banner(capsys):
    main([])
    assert "Patch the call through." in capsys.readouterr().out


def test_dial_runs_uvicorn(memory_config):
    with patch("uvicorn.run") as mock_run:
        main(["dial", "--port", "9100"])
    args, kwargs = mock_run.call_args
    assert args[0] == "switchboard.main:app"
    assert kwargs["port"] == 9100
    assert kwargs["host"] == "127.0.0.1"


def test_dump_to_stdout(memory_config, capsys):
    main(["dump", "--format", "json"])
    out = capsys.readouterr().out
    assert json.loads(out)["title"] == "Conversation 1"


def test_dump_to_file(memory_config, tmp_path, capsys):
    target = tmp_path / "out.md"
    main(["export", "-f", "md", "-o", str(target)])
    assert target.read_text().startswith("# Conversation 1")


def test_dump_unknown_format(memory_config):
    with pytest.raises(SystemExit) as exc_info:
        main(["dump", "--format", "pdf"])
    assert exc_info.value.code == 2


def test_book_lists_conversations(memory_config, capsys):
    main(["list"])
    out = capsys.readouterr().out
    assert "Conversation 1" in out
    assert "●" in out


def test_call_without_providers_exits(memory_config, capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["ask", "hello"])
    assert exc_info.value.code == 1
    assert "No AI provider is configured" in capsys.readouterr().out


def test_dial_prints_chain_in_fixed_order(memory_config, capsys):
    memory_config["providers"] = {"webhook": {"url": "http://hook"}, "openai": {}, "vertex": {}}
    with patch("uvicorn.run"):
        main(["serve"])
    assert "Chain: vertex → openai → webhook" in capsys.readouterr().out


def test_commands_apply_logging_config(memory_config, capsys):
    memory_config["logging"] = {"level": "DEBUG"}
    with patch("switchboard.main._setup_logging") as mock_setup:
        main(["book"])
    mock_setup.assert_called_once_with(memory_config)
