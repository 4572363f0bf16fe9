import base64
import json
import os
import string
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
import requests

from llmadapter import common
from llmadapter.lifecycle import Environment


@pytest.fixture
def server():
    routes = {}
    seen = []

    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            seen.append({k: v for k, v in self.headers.items()})
            route = routes.get(self.path)
            if route is None:
                self.send_response(404)
                self.send_header("Content-Length", "0")
                self.end_headers()
                return
            status, ctype, body = route
            self.send_response(status)
            self.send_header("Content-Type", ctype)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, *args):
            pass

    httpd = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{httpd.server_address[1]}", routes, seen
    httpd.shutdown()
    httpd.server_close()


def test_random_hex_length_and_alphabet():
    value = common.random_hex(12)
    assert len(value) == 12
    assert set(value) <= set(string.ascii_letters + string.digits)


def test_calc_hex_known_digest():
    assert common.calc_hex("abc") == "a9993e364706816aba3e25717850c26c9cd0d89d"


def test_calc_hex_is_stable_and_distinct():
    assert common.calc_hex("model-a") == common.calc_hex("model-a")
    assert len(common.calc_hex("model-b")) == 40
    assert common.calc_hex("model-a") != common.calc_hex("model-b")


def test_is_nil():
    assert common.is_nil(None) is True
    assert common.is_nil(0) is False


def test_idle_connect_options_filters_values():
    env = Environment({"server-conn": {
        "idleConnTimeout": 30,
        "responseHeaderTimeout": 0,
        "expectContinueTimeout": "soon",
    }})
    assert common.idle_connect_options(env) == {"idle_conn_timeout": 30, "verify": False}


def test_idle_connect_options_empty_env():
    assert common.idle_connect_options(Environment()) == {"verify": False}


def test_save_base64_round_trip(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    payload = b"\x00\x01binary payload"
    encoded = "data:image/png;base64," + base64.b64encode(payload).decode()
    path = common.save_base64(encoded, "png")
    assert path.startswith("tmp")
    assert path.endswith(".png")
    with open(path, "rb") as fh:
        assert fh.read() == payload


def test_save_base64_bare_string(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = common.save_base64(base64.b64encode(b"hello").decode(), "txt")
    with open(path, "rb") as fh:
        assert fh.read() == b"hello"


def test_save_base64_invalid(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ValueError):
        common.save_base64("data:,@@@not-base64@@@", "png")


def test_download_writes_file_and_sends_headers(server, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    base, routes, seen = server
    routes["/img.png"] = (200, "image/png", b"\x89PNGcontent")
    path = common.download(None, "", base + "/img.png", "png", {"X-Test": "value"})
    assert not path.startswith("tmp")
    assert (tmp_path / "tmp" / path).read_bytes() == b"\x89PNGcontent"
    assert seen[-1]["X-Test"] == "value"
    assert seen[-1]["Sec-Fetch-Dest"] == "image"


def test_download_retries_then_fails(server, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    base, routes, seen = server
    with pytest.raises(requests.HTTPError):
        common.download(None, "", base + "/missing", "png", None)
    assert len(seen) == 3


def test_new_ppl_session_without_url():
    assert common.new_ppl_session(Environment()) is None


def test_new_ppl_session_from_json(server):
    base, routes, _ = server
    body = {"ok": True, "data": [{"t": "HTTP", "addr": "127.0.0.1", "port": 8080}]}
    routes["/ppl"] = (200, "application/json", json.dumps(body).encode())
    session = common.new_ppl_session(Environment({"ppl": base + "/ppl"}))
    assert session.proxies["http"] == "http://127.0.0.1:8080"
    assert session.proxies["https"] == "http://127.0.0.1:8080"


def test_new_ppl_session_json_empty_data(server):
    base, routes, _ = server
    routes["/ppl"] = (200, "application/json", json.dumps({"ok": True, "data": []}).encode())
    assert common.new_ppl_session(Environment({"ppl": base + "/ppl"})) is None


def test_new_ppl_session_from_text(server):
    base, routes, _ = server
    routes["/ppl"] = (200, "text/plain", b"socks5://10.0.0.1:1080")
    session = common.new_ppl_session(Environment({"ppl": base + "/ppl"}))
    assert session.proxies["https"] == "socks5://10.0.0.1:1080"


def test_new_ppl_session_rejects_text(server):
    base, routes, _ = server
    routes["/ppl"] = (200, "text/plain", b"no proxy here")
    assert common.new_ppl_session(Environment({"ppl": base + "/ppl"})) is None


def test_app_path_points_at_helper():
    path = common.app_path()
    assert path.startswith("bin/")
    assert "helper" in os.path.basename(path)


def test_exec_helper_missing_executable(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        common.exec_helper("8081", "", None, None)