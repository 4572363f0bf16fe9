import signal

import pytest

from llmadapter.lifecycle import Environment, add_exited, add_initialized, initialized


def test_load_and_lookup(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "server:\n  port: 8080\n  debug: true\nserver-conn:\n  idleConnTimeout: 5\n",
        encoding="utf-8",
    )
    env = Environment.load(str(path))
    assert env.get_int("server.port") == 8080
    assert env.get_string("server.port") == "8080"
    assert env.get_bool("server.debug") is True
    assert env.get_string_map("server-conn") == {"idleconntimeout": 5}


def test_missing_file_gives_empty():
    env = Environment.load("/nonexistent/path/config.yaml")
    assert env.get_string("server.port") == ""
    assert env.get_int("x") == 0
    assert env.get_bool("x") is False


def test_load_rejects_non_mapping(tmp_path):
    path = tmp_path / "c.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        Environment.load(str(path))


def test_set_overrides_nested():
    env = Environment({"Server": {"Port": 1}})
    env.set("server.port", 9)
    env.set("browser-less.port", "3000")
    assert env.get_int("SERVER.PORT") == 9
    assert env.get("browser-less.port") == "3000"


def test_initialized_runs_hooks():
    seen = []
    env = Environment({"a": 1})
    add_initialized(lambda e: seen.append(e.get_int("a")))
    add_exited(lambda e: None)
    previous = signal.getsignal(signal.SIGTERM)
    try:
        initialized(env)
        assert seen[-1] == 1
        assert signal.getsignal(signal.SIGTERM) is not previous
    finally:
        signal.signal(signal.SIGTERM, previous)
        signal.signal(signal.SIGINT, signal.default_int_handler)