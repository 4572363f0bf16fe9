"""Shared helpers: hashing, random ids, HTTP sessions, files and the helper process."""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
import platform
import random
import re
import subprocess
import sys
import tempfile
import time
from typing import Any, IO, Mapping

import requests

from .lifecycle import Environment, add_exited, add_initialized

log = logging.getLogger("llmadapter.common")

_ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ1234567890"
_DEFAULT_CONN_TIMEOUT = 180
_PROXY_RE = re.compile(r"(http|https|socks5)://\d+\.\d+\.\d+\.\d+:\d+")
_DOWNLOAD_ATTEMPTS = 3
_RETRY_DELAY = 1.0
_HELPER_STARTUP = 5.0

_IMAGE_HEADERS = {
    "Sec-Ch-Ua-Mobile": "?0",
    "Sec-Ch-Ua-Platform": '"macOS"',
    "Sec-Fetch-Dest": "image",
    "accept": "image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8",
}

HTTP_CLIENT: requests.Session | None = None
NOP_HTTP_CLIENT: requests.Session | None = None
_helper: subprocess.Popen | None = None


def random_hex(n: int) -> str:
    """A random string of ``n`` ASCII letters and digits."""
    return "".join(random.choice(_ALPHABET) for _ in range(n))


def calc_hex(text: str) -> str:
    """Hex SHA-1 digest of ``text``."""
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def is_nil(obj: Any) -> bool:
    return obj is None


class _Session(requests.Session):
    """A requests session with a default timeout."""

    def __init__(self, timeout: tuple[float, float]):
        super().__init__()
        self.timeout = timeout
        self.trust_env = False

    def request(self, method, url, **kwargs):
        kwargs.setdefault("timeout", self.timeout)
        return super().request(method, url, **kwargs)


def idle_connect_options(env: Environment) -> dict:
    """Connection options read from the ``server-conn`` section."""
    opts = env.get_string_map("server-conn")
    options: dict[str, Any] = {}
    for key, name in (
        ("idleconntimeout", "idle_conn_timeout"),
        ("responseheadertimeout", "response_header_timeout"),
        ("expectcontinuetimeout", "expect_continue_timeout"),
    ):
        if key not in opts:
            continue
        value = opts[key]
        if isinstance(value, int) and not isinstance(value, bool):
            if value > 0:
                options[name] = value
        else:
            log.warning("read %s error: %r", key, value)
    options["verify"] = False
    return options


def _conn_timeout(env: Environment) -> int:
    return env.get_int("server-conn.connTimeout") or _DEFAULT_CONN_TIMEOUT


def _new_session(proxied: str, options: Mapping[str, Any], conn_timeout: float) -> requests.Session:
    read_timeout = options.get("response_header_timeout") or conn_timeout
    session = _Session((conn_timeout, read_timeout))
    session.verify = options.get("verify", True)
    if proxied:
        session.proxies = {"http": proxied, "https": proxied}
    return session


def _init_clients(env: Environment) -> None:
    global HTTP_CLIENT, NOP_HTTP_CLIENT
    options = idle_connect_options(env)
    timeout = _conn_timeout(env)
    HTTP_CLIENT = _new_session(env.get_string("server.proxied"), options, timeout)
    NOP_HTTP_CLIENT = _new_session("", options, timeout)


def _http_client() -> requests.Session:
    if HTTP_CLIENT is None:
        _init_clients(Environment())
    return HTTP_CLIENT


def _is_content_type(response: requests.Response | None, *types: str) -> bool:
    if response is None:
        return False
    content_type = response.headers.get("Content-Type", "")
    return any(t in content_type for t in types)


def _format_value(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def new_ppl_session(env: Environment) -> requests.Session | None:
    """Fetch a proxy from the ``ppl`` endpoint and return a session using it."""
    url = env.get_string("ppl")
    if not url:
        return None

    try:
        response = _http_client().get(url, timeout=10)
    except requests.RequestException as exc:
        log.error("%s", exc)
        return None

    with response:
        if response.status_code != 200:
            log.error("ppl request failed: status %d", response.status_code)
            return None

        if _is_content_type(response, "application/json"):
            try:
                obj = response.json()
            except ValueError as exc:
                log.error("%s", exc)
                return None
            if not isinstance(obj, dict) or obj.get("ok") is not True:
                return None
            data = obj.get("data")
            if not isinstance(data, list) or not data or not isinstance(data[0], dict):
                return None
            entry = data[0]
            proxied = "{}://{}:{}".format(
                _format_value(entry.get("t")),
                _format_value(entry.get("addr")),
                _format_value(entry.get("port")),
            ).lower()
            log.info("%s", entry)
        else:
            proxied = response.text
            if not _PROXY_RE.search(proxied):
                return None

    if not proxied:
        return None

    log.info("ppl proxied: %s", proxied)
    return _new_session(proxied, idle_connect_options(env), _conn_timeout(env))


def _temp_file(suffix: str) -> tuple[int, str]:
    directory = "tmp/" + time.strftime("%Y/%m/%d")
    os.makedirs(directory, mode=0o766, exist_ok=True)
    return tempfile.mkstemp(suffix="." + suffix, prefix="", dir=directory)


def save_base64(data: str, suffix: str) -> str:
    """Decode a (data-URL or bare) base64 string into a dated temp file; return its path."""
    encoded = data[data.find(",") + 1:]
    try:
        decoded = base64.b64decode(encoded, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"invalid base64 data: {exc}") from exc

    try:
        fd, path = _temp_file(suffix)
        with os.fdopen(fd, "wb") as fh:
            fh.write(decoded)
    except OSError:
        log.error("save base64 failed", exc_info=True)
        raise
    return path


def download(session: requests.Session | None, proxies: str, url: str, suffix: str,
             header: Mapping[str, str] | None) -> str:
    """Download ``url`` into a dated temp file; return its path below ``tmp/``."""
    session = session or _http_client()
    headers = dict(_IMAGE_HEADERS)
    headers.update(header or {})
    proxy_map = {"http": proxies, "https": proxies} if proxies else None

    for attempt in range(_DOWNLOAD_ATTEMPTS):
        try:
            with session.get(url, headers=headers, proxies=proxy_map) as response:
                if response.status_code != 200:
                    raise requests.HTTPError(
                        f"unexpected status {response.status_code}", response=response)
                content = response.content
            break
        except requests.RequestException:
            if attempt + 1 >= _DOWNLOAD_ATTEMPTS:
                raise
            time.sleep(_RETRY_DELAY)

    fd, path = _temp_file(suffix)
    with os.fdopen(fd, "wb") as fh:
        fh.write(content)
    return path[len("tmp/"):]


def app_path() -> str:
    """Path of the helper executable for this platform."""
    system = platform.system().lower()
    machine = platform.machine().lower()
    if system == "linux":
        if machine.startswith(("arm", "aarch64")):
            return "bin/linux/helper-arm64"
        return "bin/linux/helper"
    if system == "darwin":
        return "bin/osx/helper"
    if system == "windows":
        return "bin/windows/helper.exe"
    raise RuntimeError(f"Unsupported platform: {system}")


def exec_helper(port: str, proxies: str, stdout: IO | None = None,
                stderr: IO | None = None) -> subprocess.Popen:
    """Start the helper executable in the background and wait for it to come up."""
    global _helper
    app = app_path()
    if not os.path.exists(app):
        raise FileNotFoundError(f"executable file not exists: {app}")

    args = [app, "--port", port]
    if proxies:
        args += ["--proxies", proxies]

    _helper = subprocess.Popen([app, *args], stdout=stdout, stderr=stderr)
    time.sleep(_HELPER_STARTUP)
    log.info("helper exec running ...")
    return _helper


def exit_helper(env: Environment | None = None) -> None:
    """Kill the helper process if one was started."""
    global _helper
    if _helper is None:
        return
    _helper.kill()
    _helper = None


def _init_browser_less(env: Environment) -> None:
    if not env.get_bool("browser-less.enabled"):
        return
    port = env.get_string("browser-less.port")
    if not port:
        raise RuntimeError("please config browser-less.port to use")
    exec_helper(port, env.get_string("server.proxied"), sys.stdout, sys.stderr)
    add_exited(exit_helper)


add_initialized(_init_clients)
add_initialized(_init_browser_less)