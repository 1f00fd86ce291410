"""
Session management for the completer.

The manager is what an editor holds on to: it keeps at most one
``Completer`` alive and makes sure an old daemon is fully stopped before a
new one is started on the same port.

"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from completer.completer import FINISHED_STATES, Completer
from completer.daemon.dispatch import Dispatcher
from completer.daemon.models import ErrorKind, Outcome
from completer.daemon.service import DaemonSupervisor, DeploymentError, resolve_daemon_binary
from completer.utils.config_loader import ConfigLoader

if TYPE_CHECKING:
	from collections.abc import Callable

	from completer.daemon.debug import DebugObserver

logger = logging.getLogger(__name__)

MSG_NO_PROJECT = "No project is open"
MSG_SUPERSEDED = "Opening {path} was superseded by a later request"


class CompleterManager:
	"""Owns the single active completion session of an editor."""

	def __init__(
		self,
		config_loader: ConfigLoader | None = None,
		debug_observer: DebugObserver | None = None,
		supervisor: DaemonSupervisor | None = None,
		completer_factory: Callable[..., Completer] = Completer,
	) -> None:
		"""
		Initialize the manager.

		Args:
			config_loader: Configuration source
			debug_observer: Passed to every session
			supervisor: Process supervisor, built from config by default
			completer_factory: Builds sessions; takes the ``Completer`` arguments

		Raises:
			DeploymentError: If the daemon binary cannot be found

		"""
		self.config_loader = config_loader or ConfigLoader.get_instance()
		daemon_config = self.config_loader.get_daemon_config()
		self.supervisor = supervisor or DaemonSupervisor(
			resolve_daemon_binary(daemon_config),
			terminate_timeout=float(daemon_config.get("terminate_timeout", 5.0)),
		)
		self.debug_observer = debug_observer
		self.dispatcher = Dispatcher()
		self.current: Completer | None = None

		self._completer_factory = completer_factory
		self._generation = 0
		self._lock = threading.Lock()

	def open_project(self, project_path: str | Path, completion: Callable[[Outcome], None]) -> None:
		"""
		Start a session for ``project_path``, stopping the current one first.

		Args:
			project_path: Project descriptor to load
			completion: Called once with ``Started`` or an error outcome

		Raises:
			DeploymentError: If the daemon cannot be launched and no other
				session had to be stopped first

		"""
		project_path = Path(project_path)
		with self._lock:
			self._generation += 1
			generation = self._generation
			previous = self.current
			if previous is None or previous.state in FINISHED_STATES:
				self.current = None
				self.current = self._new_completer(project_path, completion)
				return

		logger.info("Stopping session for %s before opening %s", previous.project_path, project_path)
		previous.stop(lambda _outcome: self._open_after_stop(generation, project_path, completion))

	def _open_after_stop(
		self, generation: int, project_path: Path, completion: Callable[[Outcome], None]
	) -> None:
		"""Start the requested session once the previous daemon has been reaped."""
		with self._lock:
			if generation != self._generation:
				logger.debug("Open request for %s superseded", project_path)
				self.dispatcher.post(
					completion, Outcome.error(ErrorKind.INVALID_STATE, MSG_SUPERSEDED.format(path=project_path))
				)
				return

			self.current = None
			try:
				self.current = self._new_completer(project_path, completion)
			except DeploymentError as e:
				logger.critical("Cannot start the completion daemon: %s", e)
				self.dispatcher.post(completion, Outcome.error(ErrorKind.DEPLOYMENT, str(e)))

	def _new_completer(self, project_path: Path, completion: Callable[[Outcome], None]) -> Completer:
		return self._completer_factory(
			project_path,
			completion,
			config_loader=self.config_loader,
			supervisor=self.supervisor,
			dispatcher=self.dispatcher,
			debug_observer=self.debug_observer,
		)

	def list_files(self, callback: Callable[[Outcome], None]) -> None:
		"""Request the files of the open project."""
		completer = self._current_or_report(callback)
		if completer is not None:
			completer.list_files(callback)

	def complete(self, file_path: str | Path, offset: int, callback: Callable[[Outcome], None]) -> int | None:
		"""Request completions from the open project; returns the request token."""
		completer = self._current_or_report(callback)
		if completer is None:
			return None
		return completer.complete(file_path, offset, callback)

	def complete_text(self, content: str, cursor: int, callback: Callable[[Outcome], None]) -> int | None:
		"""Request completions for an unsaved buffer; returns the request token."""
		completer = self._current_or_report(callback)
		if completer is None:
			return None
		return completer.complete_text(content, cursor, callback)

	def is_latest_completion(self, token: int | None) -> bool:
		"""Whether ``token`` belongs to the most recent completion request."""
		with self._lock:
			completer = self.current
		return completer is not None and token is not None and token == completer.latest_completion_token

	def close(self, callback: Callable[[Outcome], None] | None = None) -> None:
		"""
		Stop the current session, e.g. when the application quits.

		Pending ``open_project`` requests are abandoned.

		"""
		with self._lock:
			self._generation += 1
			completer = self.current

		if completer is None:
			if callback is not None:
				self.dispatcher.post(callback, Outcome.stopped())
			return
		completer.stop(callback)

	def wait_idle(self, timeout: float | None = None) -> bool:
		"""Wait until every outcome posted so far has been delivered."""
		return self.dispatcher.flush(timeout)

	def _current_or_report(self, callback: Callable[[Outcome], None]) -> Completer | None:
		with self._lock:
			completer = self.current
		if completer is None:
			self.dispatcher.post(callback, Outcome.error(ErrorKind.INVALID_STATE, MSG_NO_PROJECT))
		return completer
