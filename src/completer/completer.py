"""
Completion client facade.

A ``Completer`` owns one daemon session for one project. Constructing it
starts the daemon; once the daemon reports it is ready the completer
answers file listing and completion queries until it is stopped.

All outcomes reach the caller through the completer's dispatcher, one at a
time and in order. The lifecycle state is only written under ``_lock``.

"""

from __future__ import annotations

import itertools
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

from completer.daemon.client import ProtocolClient
from completer.daemon.debug import notify_started
from completer.daemon.dispatch import Dispatcher
from completer.daemon.models import ErrorKind, LifecycleState, OperationRequest, Outcome, Session
from completer.daemon.monitor import ReadinessMonitor
from completer.daemon.service import DaemonSupervisor, DeploymentError, resolve_daemon_binary
from completer.utils.config_loader import ConfigLoader

if TYPE_CHECKING:
	from collections.abc import Callable
	from concurrent.futures import Future

	from completer.daemon.debug import DebugObserver

logger = logging.getLogger(__name__)

DEFAULT_PORT = 44876
DEFAULT_TEMP_SUFFIX = ".swift"

MSG_NOT_READY = "Cannot {operation} while the completer is {state}"
MSG_STOPPED_BEFORE_READY = "Stopped before the daemon became ready"

FINISHED_STATES = frozenset({LifecycleState.STOPPED, LifecycleState.FAILED})


def _ignore(_outcome: Outcome) -> None:
	"""Default stop callback."""


def cursor_to_byte_offset(content: str, cursor: int) -> int:
	"""
	Convert a character cursor position into a UTF-8 byte offset.

	Args:
		content: Text of the buffer being completed
		cursor: Character index of the cursor, 0 <= cursor <= len(content)

	Returns:
		int: Number of UTF-8 bytes before the cursor

	Raises:
		ValueError: If the cursor lies outside the content

	"""
	if not 0 <= cursor <= len(content):
		msg = f"Cursor {cursor} is outside of a buffer of length {len(content)}"
		raise ValueError(msg)
	return len(content[:cursor].encode("utf-8"))


class Completer:
	"""
	Starts a completion daemon for a project and talks to it.

	Lifecycle: ``UNSTARTED -> STARTING -> READY | FAILED`` and
	``READY | STARTING -> STOPPING -> STOPPED``. Queries are only sent in
	``READY``; anywhere else they produce an ``INVALID_STATE`` error outcome.

	"""

	def __init__(
		self,
		project_path: str | Path,
		completion: Callable[[Outcome], None],
		*,
		port: int | None = None,
		config_loader: ConfigLoader | None = None,
		supervisor: DaemonSupervisor | None = None,
		client: ProtocolClient | None = None,
		dispatcher: Dispatcher | None = None,
		debug_observer: DebugObserver | None = None,
	) -> None:
		"""
		Initialize the completer and start its daemon.

		Args:
			project_path: Project descriptor to load (e.g. an ``.xcodeproj``)
			completion: Called once with ``Started`` or the startup error
			port: Loopback port for the daemon, from config by default
			config_loader: Configuration source
			supervisor: Process supervisor, built from config by default
			client: Protocol client, built from config by default
			dispatcher: Delivery point for outcomes, a private one by default
			debug_observer: Receives request and startup diagnostics

		Raises:
			DeploymentError: If the daemon binary cannot be found or launched

		"""
		self.config_loader = config_loader or ConfigLoader.get_instance()
		self.daemon_config: dict[str, Any] = self.config_loader.get_daemon_config()
		self.client_config: dict[str, Any] = self.config_loader.get_client_config()
		self.completion_config: dict[str, Any] = self.config_loader.get("completion", {}) or {}

		self.session = Session(
			project_path=Path(project_path),
			port=int(port if port is not None else self.daemon_config.get("port", DEFAULT_PORT)),
		)
		self.debug_observer = debug_observer
		self.dispatcher = dispatcher or Dispatcher()
		self.monitor: ReadinessMonitor | None = None
		self.latest_completion_token = 0

		self._completion = completion
		self._lock = threading.RLock()
		self._tokens = itertools.count(1)

		try:
			self.supervisor = supervisor or DaemonSupervisor(
				resolve_daemon_binary(self.daemon_config),
				terminate_timeout=float(self.daemon_config.get("terminate_timeout", 5.0)),
			)
		except DeploymentError:
			self.session.state = LifecycleState.FAILED
			raise

		self.client = client or ProtocolClient(
			port=self.session.port,
			host=self.client_config.get("host", "localhost"),
			timeout=float(self.client_config.get("request_timeout", 10.0)),
			max_workers=int(self.client_config.get("max_workers", 4)),
			debug_observer=debug_observer,
		)

		self._start()

	# --- Accessors ---

	@property
	def state(self) -> LifecycleState:
		"""Current lifecycle state."""
		with self._lock:
			return self.session.state

	@property
	def project_path(self) -> Path:
		return self.session.project_path

	@property
	def port(self) -> int:
		return self.session.port

	@property
	def command_line(self) -> str | None:
		"""Command line the daemon was started with, once spawned."""
		process = self.session.process
		return process.command_line if process else None

	# --- Startup ---

	def _start(self) -> None:
		"""Spawn the daemon and start watching its output."""
		with self._lock:
			self.session.state = LifecycleState.STARTING

		try:
			process = self.supervisor.start(self.session.project_path, self.session.port)
		except DeploymentError:
			with self._lock:
				self.session.state = LifecycleState.FAILED
			self.client.close()
			raise

		self.session.process = process
		timeout = self.daemon_config.get("startup_timeout")
		self.monitor = ReadinessMonitor(
			process.stdout,
			self._on_startup_outcome,
			ready_marker=self.daemon_config.get("ready_marker") or "[INFO] Monitoring",
			error_marker=self.daemon_config.get("error_marker") or "[ERR]",
			max_buffer_chars=int(self.daemon_config.get("max_buffer_chars", 1024 * 1024)),
			startup_timeout=float(timeout) if timeout else None,
		)
		self.monitor.start()

	def _on_startup_outcome(self, outcome: Outcome) -> None:
		"""Move to READY or FAILED when the readiness monitor resolves."""
		with self._lock:
			if self.session.state is not LifecycleState.STARTING:
				# stop() already answered the startup callback
				logger.debug("Ignoring startup outcome %s in state %s", outcome, self.session.state.value)
				return

			if not outcome.is_error:
				self.session.state = LifecycleState.READY
				command_line = self.command_line or ""
				self.dispatcher.post(notify_started, self.debug_observer, command_line)
				self.dispatcher.post(self._completion, outcome)
				logger.info("Completion daemon ready for %s on port %s", self.project_path, self.port)
				return

			# The port stays taken until the process is gone, stop() callers queue meanwhile
			self.session.state = LifecycleState.STOPPING

		logger.warning("Completion daemon for %s failed to start: %s", self.project_path, outcome.message)
		self._reap()
		self.client.close()

		with self._lock:
			self.session.state = LifecycleState.FAILED
			self.dispatcher.post(self._completion, outcome)
			callbacks = list(self.session.stop_callbacks)
			self.session.stop_callbacks.clear()
			for callback in callbacks:
				self.dispatcher.post(callback, Outcome.stopped())

	# --- Queries ---

	def list_files(self, callback: Callable[[Outcome], None]) -> None:
		"""
		Request all files of the project.

		Args:
			callback: Receives ``Files`` or an error outcome

		"""
		self._submit_query(OperationRequest.list_files(), callback, operation="list files")

	def complete(self, file_path: str | Path, offset: int, callback: Callable[[Outcome], None]) -> int:
		"""
		Request completions for ``file_path`` at byte ``offset``.

		Args:
			file_path: File holding the content to complete on
			offset: Byte offset of the cursor in that file
			callback: Receives ``Completions`` or an error outcome, tagged with the token

		Returns:
			int: Token of this request; compare with ``latest_completion_token``
			to discard stale results

		"""
		with self._lock:
			token = next(self._tokens)
			self.latest_completion_token = token
		self._submit_query(
			OperationRequest.complete(file_path, offset), callback, operation="complete", token=token
		)
		return token

	def complete_text(
		self,
		content: str,
		cursor: int,
		callback: Callable[[Outcome], None],
		suffix: str | None = None,
	) -> int:
		"""
		Request completions for an unsaved buffer.

		The buffer is written to a temporary file that is removed once the
		outcome has been handled.

		Args:
			content: Buffer text
			cursor: Character index of the cursor in ``content``
			callback: Receives ``Completions`` or an error outcome
			suffix: Temporary file suffix, from config by default

		Returns:
			int: Token of this request

		"""
		offset = cursor_to_byte_offset(content, cursor)
		suffix = suffix or self.completion_config.get("temp_suffix") or DEFAULT_TEMP_SUFFIX

		fd, name = tempfile.mkstemp(prefix="completer-", suffix=suffix)
		with os.fdopen(fd, "w", encoding="utf-8") as f:
			f.write(content)
		temp_path = Path(name)

		with self._lock:
			token = next(self._tokens)
			self.latest_completion_token = token
		self._submit_query(
			OperationRequest.complete(temp_path, offset),
			callback,
			operation="complete",
			token=token,
			cleanup=lambda: temp_path.unlink(missing_ok=True),
		)
		return token

	def _submit_query(
		self,
		request: OperationRequest,
		callback: Callable[[Outcome], None],
		operation: str,
		token: int | None = None,
		cleanup: Callable[[], None] | None = None,
	) -> None:
		with self._lock:
			state = self.session.state
			if state is not LifecycleState.READY:
				message = MSG_NOT_READY.format(operation=operation, state=state.value)
				logger.debug(message)
				self.dispatcher.post(
					self._deliver, callback, Outcome.error(ErrorKind.INVALID_STATE, message, token=token), cleanup
				)
				return
			future = self.client.submit(request)

		def on_done(done: Future[Outcome]) -> None:
			outcome = done.result()
			if token is not None:
				outcome = outcome.with_token(token)
			self.dispatcher.post(self._deliver_if_ready, callback, outcome, cleanup)

		future.add_done_callback(on_done)

	def _deliver(
		self, callback: Callable[[Outcome], None], outcome: Outcome, cleanup: Callable[[], None] | None
	) -> None:
		try:
			callback(outcome)
		finally:
			if cleanup is not None:
				cleanup()

	def _deliver_if_ready(
		self, callback: Callable[[Outcome], None], outcome: Outcome, cleanup: Callable[[], None] | None
	) -> None:
		"""Deliver a query result unless the completer left READY meanwhile."""
		state = self.state
		if state is not LifecycleState.READY:
			logger.warning("Dropping %s that arrived while the completer is %s", outcome, state.value)
			if cleanup is not None:
				cleanup()
			return
		self._deliver(callback, outcome, cleanup)

	# --- Shutdown ---

	def stop(self, callback: Callable[[Outcome], None] | None = None) -> None:
		"""
		Stop the daemon.

		Sends ``/stop`` and then terminates the process whether or not the
		request succeeded. ``callback`` receives ``Stopped`` once the process
		has been reaped.

		Args:
			callback: Receives ``Stopped``

		"""
		callback = callback or _ignore

		with self._lock:
			state = self.session.state
			if state is LifecycleState.STOPPING:
				self.session.stop_callbacks.append(callback)
				return

			if state in FINISHED_STATES or state is LifecycleState.UNSTARTED:
				already_finished = True
			else:
				already_finished = False
				self.session.state = LifecycleState.STOPPING
				self.session.stop_callbacks.append(callback)
				if state is LifecycleState.STARTING:
					if self.monitor is not None:
						self.monitor.cancel()
					self.dispatcher.post(
						self._completion, Outcome.error(ErrorKind.STARTUP, MSG_STOPPED_BEFORE_READY)
					)

		if already_finished:
			self._reap()
			self.dispatcher.post(callback, Outcome.stopped())
			return

		logger.info("Stopping completion daemon for %s", self.project_path)
		self.client.submit(OperationRequest.stop()).add_done_callback(self._on_stop_response)

	def _on_stop_response(self, done: Future[Outcome]) -> None:
		"""Terminate the daemon after the stop request, then report ``Stopped``."""
		outcome = done.result()
		if outcome.is_error:
			logger.warning("Stop request failed (%s), terminating the daemon anyway", outcome)

		self._reap()

		with self._lock:
			self.session.state = LifecycleState.STOPPED
			callbacks = list(self.session.stop_callbacks)
			self.session.stop_callbacks.clear()
			for callback in callbacks:
				self.dispatcher.post(callback, Outcome.stopped())

		self.client.close()
		logger.info("Completion daemon for %s stopped", self.project_path)

	def _reap(self) -> None:
		"""Terminate the daemon process if one was spawned."""
		process = self.session.process
		if process is None:
			return
		try:
			self.supervisor.terminate(process)
		except OSError:
			logger.exception("Failed to terminate completion daemon (PID: %s)", process.pid)
