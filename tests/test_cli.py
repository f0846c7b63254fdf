from __future__ import annotations

import io
import json
from pathlib import Path

import httpx
import pytest
import yaml

from chat_client import cli
from chat_client.completion import CompletionClient
from chat_client.config import load_config

from conftest import completion_body


@pytest.fixture
def workdir(tmp_path: Path, clean_env, monkeypatch):
    """A working directory with a prompt file and profile, logging left alone."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "system_prompts").mkdir()
    (tmp_path / "system_prompts" / "prompt.md").write_text("You are a test bot.", encoding="utf-8")
    (tmp_path / "memories").mkdir()
    (tmp_path / "memories" / "userprofile.txt").write_text("Profile v1", encoding="utf-8")
    (tmp_path / "memories" / "userprofile_backup.txt").write_text("Profile backup", encoding="utf-8")

    calls = []
    monkeypatch.setattr(cli, "setup_logging", lambda verbose: calls.append(verbose))
    return tmp_path, calls


@pytest.fixture
def fake_service(monkeypatch):
    """Route every CompletionClient built by the CLI to an in-memory service."""
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        if body["messages"][0]["content"] == "Profile_check":
            return httpx.Response(200, json=completion_body("Profile v2"))
        return httpx.Response(200, json=completion_body("Hi from the bot"))

    real_make_client = cli._make_client

    def make_client(cfg, api_key):
        client = real_make_client(cfg, api_key)
        client._transport = httpx.MockTransport(handler)
        return client

    monkeypatch.setattr(cli, "_make_client", make_client)
    return bodies


def _feed_input(monkeypatch, *lines: str) -> None:
    it = iter(lines)

    def fake_input(prompt: str = "") -> str:
        try:
            return next(it)
        except StopIteration:
            raise EOFError

    monkeypatch.setattr("builtins.input", fake_input)


def test_build_coordinator_from_config(workdir):
    cfg = load_config(None)
    screen = io.StringIO()
    coordinator = cli.build_coordinator(cfg, "sk-test", stream=screen)

    assert coordinator.log.system_prompt == "You are a test bot."
    assert coordinator.client.model == "gpt-3.5-turbo"
    assert coordinator.client.timeout is None
    assert coordinator.indicator.stream is screen
    assert coordinator.indicator.interval == 0.1
    assert coordinator.renderer.delay == 0.01
    assert coordinator.reconciler.rollback_threshold == 200
    assert coordinator.reconciler.store.path == Path("memories/userprofile.txt")
    assert coordinator.reconcile_fatal is True


def test_build_coordinator_without_prompt_or_profile(workdir, tmp_path: Path):
    cfg_path = tmp_path / "cfg.yaml"
    cfg_path.write_text(
        yaml.safe_dump({"chat": {"system_prompt_file": "missing.md"}, "profile": {"enabled": False}}),
        encoding="utf-8",
    )
    coordinator = cli.build_coordinator(load_config(str(cfg_path)), "sk-test")

    assert len(coordinator.log) == 0
    assert coordinator.reconciler is None


def test_main_without_api_key_does_not_start(workdir, capsys):
    assert cli.main(["--quiet-start"]) == 1
    assert cli.WELCOME not in capsys.readouterr().out


def test_main_chat_session(workdir, fake_service, monkeypatch, capsys):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("CHAT_CLIENT__DISPLAY__CHAR_DELAY", "0")
    _feed_input(monkeypatch, "no", "Hello bot")

    assert cli.main([]) == 0

    out = capsys.readouterr().out
    assert cli.WELCOME in out
    assert cli.VERBOSE_QUESTION in out
    assert "Bot: Hi from the bot\n" in out

    chat_body, profile_body = fake_service
    assert chat_body["messages"] == [
        {"role": "system", "content": "You are a test bot."},
        {"role": "user", "content": "Hello bot"},
    ]
    assert profile_body["model"] == "gpt-3.5-turbo-0125"
    assert Path("memories/userprofile.txt").read_text(encoding="utf-8") == "Profile v2"


def test_main_yes_enables_verbose_logging(workdir, fake_service, monkeypatch):
    _, logging_calls = workdir
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    _feed_input(monkeypatch, "YES")

    assert cli.main([]) == 0
    assert logging_calls == [False, True]


def test_main_exits_nonzero_when_turn_fails(workdir, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    Path("memories/userprofile.txt").unlink()
    monkeypatch.setattr(
        cli,
        "_make_client",
        lambda cfg, api_key: CompletionClient(
            api_key, transport=httpx.MockTransport(lambda request: httpx.Response(200, json=completion_body("ok")))
        ),
    )
    _feed_input(monkeypatch, "hello", "never sent")

    assert cli.main(["--quiet-start"]) == 1


def test_parse_args_rejects_conflicting_flags():
    with pytest.raises(SystemExit):
        cli.parse_args(["--verbose", "--quiet-start"])
    args = cli.parse_args(["--config", "x.yaml", "--verbose"])
    assert args.config == "x.yaml" and args.verbose


def test_main_exits_nonzero_on_undecodable_profile(workdir, fake_service, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("CHAT_CLIENT__DISPLAY__CHAR_DELAY", "0")
    Path("memories/userprofile.txt").write_bytes(b"\xff\xfe bad")
    _feed_input(monkeypatch, "hello", "never sent")

    assert cli.main(["--quiet-start"]) == 1
    assert len(fake_service) == 1
