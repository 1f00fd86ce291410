"""Global test fixtures and configuration."""

from __future__ import annotations

import logging
import os
import socket
import sys
import textwrap
from typing import TYPE_CHECKING

import pytest
import yaml

from completer.utils.config_loader import ConfigLoader
from tests.base import write_executable

if TYPE_CHECKING:
	from collections.abc import Iterator
	from pathlib import Path


FAKE_DAEMON = textwrap.dedent(
	'''\
	#!{python}
	"""Minimal stand-in for sourcekittend used by the integration tests."""

	import json
	import sys
	import threading
	from http.server import BaseHTTPRequestHandler, HTTPServer

	args = sys.argv[1:]
	port = int(args[args.index("--port") + 1])
	project = args[args.index("--project") + 1]

	if project.endswith("broken.xcodeproj"):
	    print("[ERR] could not parse project", flush=True)
	    sys.exit(1)


	class Handler(BaseHTTPRequestHandler):
	    def log_message(self, *args):
	        pass

	    def _send(self, payload):
	        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
	        self.send_response(200)
	        self.send_header("Content-Length", str(len(body)))
	        self.end_headers()
	        self.wfile.write(body)

	    def do_GET(self):
	        if self.path == "/files":
	            self._send([project + "/a.swift", project + "/b.swift"])
	        elif self.path == "/complete":
	            path = self.headers.get("X-Path", "")
	            offset = self.headers.get("X-Offset", "")
	            with open(path, encoding="utf-8") as f:
	                size = len(f.read().encode("utf-8"))
	            self._send([{{"name": "offset" + offset}}, {{"kind": "skip me"}}, {{"name": "size" + str(size)}}])
	        elif self.path == "/stop":
	            self._send({{"ok": True}})
	            threading.Thread(target=self.server.shutdown).start()
	        else:
	            self._send({{"error": "unknown path " + self.path}})


	server = HTTPServer(("localhost", port), Handler)
	print("[INFO] Starting", flush=True)
	print("[INFO] Monitoring " + project, flush=True)
	server.serve_forever()
	'''
)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
	"""Keep user configuration and COMPLETER_* variables out of every test."""
	for name in list(os.environ):
		if name.startswith("COMPLETER_"):
			monkeypatch.delenv(name)
	monkeypatch.setattr("completer.utils.config_loader.xdg_config_home", str(tmp_path / "xdg"))
	monkeypatch.setenv("HOME", str(tmp_path / "home"))
	monkeypatch.chdir(tmp_path)
	ConfigLoader._instance = None
	yield
	ConfigLoader._instance = None


@pytest.fixture(autouse=True)
def restore_logging() -> Iterator[None]:
	"""The CLI reconfigures the root logger; undo that after each test."""
	root_logger = logging.getLogger()
	handlers, level = root_logger.handlers[:], root_logger.level
	yield
	root_logger.handlers[:] = handlers
	root_logger.setLevel(level)


@pytest.fixture
def write_config(tmp_path: Path):  # noqa: ANN201
	"""Return a function writing a YAML config file and loading it."""

	def _write(config: dict) -> ConfigLoader:
		config_file = tmp_path / "completer.yml"
		config_file.write_text(yaml.dump(config))
		return ConfigLoader(str(config_file))

	return _write


@pytest.fixture
def config_loader(write_config) -> ConfigLoader:  # noqa: ANN001
	"""Configuration with short timeouts suitable for tests."""
	return write_config({"daemon": {"startup_timeout": 5.0, "terminate_timeout": 1.0}})


@pytest.fixture
def events() -> list[tuple[str, str]]:
	"""Shared, ordered record of supervisor and client activity."""
	return []


@pytest.fixture
def free_port() -> int:
	"""A loopback port that nothing listens on right now."""
	with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
		sock.bind(("localhost", 0))
		return sock.getsockname()[1]


@pytest.fixture
def fake_daemon(tmp_path: Path) -> Path:
	"""An executable fake daemon speaking the completion protocol."""
	return write_executable(tmp_path / "sourcekittend", FAKE_DAEMON.format(python=sys.executable))


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
	"""An empty project descriptor directory."""
	project = tmp_path / "Demo.xcodeproj"
	project.mkdir()
	return project
