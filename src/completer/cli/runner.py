"""Blocking helpers that drive a completion session from the command line."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from completer.daemon.debug import CommunicationLog, LoggingDebugObserver
from completer.daemon.models import ErrorKind, Outcome
from completer.daemon.service import DeploymentError
from completer.manager import CompleterManager
from completer.utils.cli_utils import loading_spinner, show_error, show_warning
from completer.utils.config_loader import ConfigError, ConfigLoader
from completer.utils.log_setup import console

if TYPE_CHECKING:
	from collections.abc import Callable
	from pathlib import Path

logger = logging.getLogger(__name__)

# Seconds to wait for the daemon to stop at the end of a command
STOP_TIMEOUT = 15.0


class OutcomeWaiter:
	"""A callback that records the first outcome it receives and can be waited on."""

	def __init__(self) -> None:
		self.outcome: Outcome | None = None
		self._event = threading.Event()

	def __call__(self, outcome: Outcome) -> None:
		if self._event.is_set():
			return
		self.outcome = outcome
		self._event.set()

	def wait(self, timeout: float | None = None, timeout_kind: ErrorKind = ErrorKind.TRANSPORT) -> Outcome:
		"""
		Wait for the outcome.

		Args:
			timeout: Seconds to wait, forever when None
			timeout_kind: Error kind reported when nothing arrives in time

		Returns:
			Outcome: The received outcome, or a ``timeout_kind`` error on timeout

		"""
		if not self._event.wait(timeout):
			return Outcome.error(timeout_kind, f"No answer from the daemon within {timeout} seconds")
		if self.outcome is None:
			msg = "Outcome event set without an outcome"
			raise RuntimeError(msg)
		return self.outcome


def run_session(
	project: Path,
	action: Callable[[CompleterManager, OutcomeWaiter], None],
	config_path: Path | None = None,
	timeout: float = 60.0,
	show_debug_log: bool = False,
) -> tuple[int, Outcome | None]:
	"""
	Open ``project``, run one action against it and stop the daemon again.

	Args:
		project: Project descriptor to open
		action: Issues one request through the manager, reporting to the waiter
		config_path: Configuration file to use
		timeout: Seconds to wait for startup and for the action's outcome
		show_debug_log: Print the daemon communication log at the end

	Returns:
		tuple[int, Outcome | None]: Exit code and the action's outcome

	"""
	try:
		config_loader = ConfigLoader.get_instance(str(config_path) if config_path else None, reload=True)
	except ConfigError as e:
		show_error("Invalid configuration", e)
		return 1, None

	communication_log = CommunicationLog(int(config_loader.get("debug.log_size", 200)))
	observer = communication_log if show_debug_log else LoggingDebugObserver()

	try:
		manager = CompleterManager(config_loader=config_loader, debug_observer=observer)
	except DeploymentError as e:
		show_error("The completion daemon is not installed correctly", e)
		return 1, None

	started = OutcomeWaiter()
	try:
		manager.open_project(project, started)
	except DeploymentError as e:
		manager.dispatcher.shutdown()
		show_error("The completion daemon could not be launched", e)
		return 1, None

	result: Outcome | None = None
	exit_code = 1
	try:
		with loading_spinner(f"Starting completion daemon for {project.name}..."):
			startup = started.wait(timeout, timeout_kind=ErrorKind.STARTUP)

		if startup.is_error:
			show_error(f"Completion daemon did not start: {startup}")
			return exit_code, startup
		logger.debug("Session for %s is ready", project)

		waiter = OutcomeWaiter()
		with loading_spinner("Waiting for the daemon..."):
			action(manager, waiter)
			result = waiter.wait(timeout)

		if result.is_error:
			show_error(str(result))
		else:
			exit_code = 0
		return exit_code, result
	finally:
		stopped = OutcomeWaiter()
		manager.close(stopped)
		if stopped.wait(STOP_TIMEOUT).is_error:
			show_warning(f"The completion daemon for {project.name} did not stop within {STOP_TIMEOUT:g} seconds")
		manager.dispatcher.shutdown()
		if show_debug_log:
			console.rule("Completer communication log")
			console.print(communication_log.render(), markup=False)
