"""End-to-end tests against a fake daemon process speaking the real protocol."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
import yaml
from typer.testing import CliRunner

from completer.cli import app
from completer.completer import Completer
from completer.daemon.client import ProtocolClient
from completer.daemon.models import ErrorKind, LifecycleState, OperationRequest, Outcome
from completer.daemon.monitor import MSG_DAEMON_ERROR
from completer.manager import CompleterManager
from tests.base import OutcomeRecorder

if TYPE_CHECKING:
	from collections.abc import Iterator
	from pathlib import Path

	from completer.utils.config_loader import ConfigLoader

TIMEOUT = 15.0


@pytest.fixture
def daemon_loader(write_config, fake_daemon: Path, free_port: int) -> ConfigLoader:  # noqa: ANN001
	return write_config(
		{
			"daemon": {
				"binary": str(fake_daemon),
				"port": free_port,
				"startup_timeout": TIMEOUT,
				"terminate_timeout": 2.0,
			},
			"client": {"request_timeout": 5.0},
		}
	)


@pytest.fixture
def completer(daemon_loader: ConfigLoader, project_dir: Path) -> Iterator[Completer]:
	started = OutcomeRecorder()
	instance = Completer(project_dir, started, config_loader=daemon_loader)
	assert started.wait_for(1, TIMEOUT) == [Outcome.started()]
	yield instance
	stopped = OutcomeRecorder()
	instance.stop(stopped)
	stopped.wait_for(1, TIMEOUT)
	instance.dispatcher.shutdown()


@pytest.mark.integration
class TestFakeDaemon:
	"""Tests driving a spawned daemon over HTTP."""

	def test_list_files(self, completer: Completer, project_dir: Path) -> None:
		received = OutcomeRecorder()

		completer.list_files(received)

		assert received.wait_for(1, TIMEOUT) == [
			Outcome.with_files([f"{project_dir}/a.swift", f"{project_dir}/b.swift"])
		]

	def test_complete_text(self, completer: Completer) -> None:
		"""The daemon sees the buffer contents and a UTF-8 byte offset."""
		received = OutcomeRecorder()
		content = "let café"

		token = completer.complete_text(content, len(content), received)

		outcome = received.wait_for(1, TIMEOUT)[0]
		assert outcome.token == token
		assert outcome.completions == ("offset9", "size9")

	def test_complete_file(self, completer: Completer, tmp_path: Path) -> None:
		source = tmp_path / "main.swift"
		source.write_text("import Foundation\n")
		received = OutcomeRecorder()

		completer.complete(source, 7, received)

		assert received.wait_for(1, TIMEOUT)[0].completions == ("offset7", "size18")

	def test_stop_reaps_daemon(self, daemon_loader: ConfigLoader, project_dir: Path) -> None:
		started, stopped = OutcomeRecorder(), OutcomeRecorder()
		instance = Completer(project_dir, started, config_loader=daemon_loader)
		started.wait_for(1, TIMEOUT)
		process = instance.session.process

		instance.stop(stopped)

		assert stopped.wait_for(1, TIMEOUT) == [Outcome.stopped()]
		assert instance.state is LifecycleState.STOPPED
		assert process is not None
		assert not process.is_running()

	def test_broken_project_fails_startup(self, daemon_loader: ConfigLoader, tmp_path: Path) -> None:
		"""An error line from the daemon fails the startup."""
		broken = tmp_path / "broken.xcodeproj"
		broken.mkdir()
		started = OutcomeRecorder()

		instance = Completer(broken, started, config_loader=daemon_loader)
		outcome = started.wait_for(1, TIMEOUT)[0]

		assert outcome.error_kind is ErrorKind.STARTUP
		assert outcome.message == MSG_DAEMON_ERROR
		assert instance.state is LifecycleState.FAILED

	def test_nothing_listening_is_transport_error(self, free_port: int) -> None:
		client = ProtocolClient(port=free_port, timeout=2.0)
		try:
			outcome = client.call(OperationRequest.list_files())
		finally:
			client.close()

		assert outcome.error_kind is ErrorKind.TRANSPORT
		assert outcome.message.startswith("error:")


def open_and_wait(manager: CompleterManager, project: Path) -> Outcome | None:
	"""Open a project and wait for its startup outcome."""
	started = OutcomeRecorder()
	manager.open_project(project, started)
	outcomes = started.wait_for(1, TIMEOUT)
	return outcomes[0] if outcomes else None


@pytest.mark.integration
def test_manager_switches_projects_on_one_port(daemon_loader: ConfigLoader, tmp_path: Path) -> None:
	"""The second daemon can bind the port because the first was reaped."""
	first = tmp_path / "First.xcodeproj"
	second = tmp_path / "Second.xcodeproj"
	first.mkdir()
	second.mkdir()
	manager = CompleterManager(config_loader=daemon_loader)
	try:
		assert open_and_wait(manager, first) == Outcome.started()
		assert open_and_wait(manager, second) == Outcome.started()

		received = OutcomeRecorder()
		manager.list_files(received)
		files = received.wait_for(1, TIMEOUT)[0].files
		assert files == (f"{second}/a.swift", f"{second}/b.swift")
	finally:
		stopped = OutcomeRecorder()
		manager.close(stopped)
		stopped.wait_for(1, TIMEOUT)
		manager.dispatcher.shutdown()


@pytest.mark.integration
def test_cli_files(fake_daemon: Path, free_port: int, project_dir: Path, tmp_path: Path) -> None:
	config_file = tmp_path / "completer.yml"
	config_file.write_text(yaml.dump({"daemon": {"binary": str(fake_daemon), "port": free_port}}))

	result = CliRunner().invoke(app, ["--config", str(config_file), "files", str(project_dir)])

	assert result.exit_code == 0, result.output
	assert result.stdout.splitlines() == [f"{project_dir.resolve()}/a.swift", f"{project_dir.resolve()}/b.swift"]
