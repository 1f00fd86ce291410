"""
Process supervision for the completion daemon.

This module locates the ``sourcekittend`` binary, spawns it for a project
and terminates it again. The daemon's standard output is the only channel
handed back to the caller; the readiness monitor consumes it.

"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

logger = logging.getLogger(__name__)


class CompleterError(Exception):
	"""Base exception for completer failures that cannot become an outcome."""


class DeploymentError(CompleterError):
	"""Raised when the daemon binary is not where the installation says it is."""


@dataclass
class DaemonProcess:
	"""Handle of one spawned daemon process."""

	popen: subprocess.Popen[bytes]
	"""The underlying process object."""

	command: list[str] = field(default_factory=list)
	"""Arguments the process was started with, binary first."""

	@property
	def pid(self) -> int:
		"""OS process id of the daemon."""
		return self.popen.pid

	@property
	def stdout(self) -> IO[bytes]:
		"""Binary standard output stream of the daemon."""
		if self.popen.stdout is None:
			msg = "Daemon process was started without a stdout pipe"
			raise RuntimeError(msg)
		return self.popen.stdout

	@property
	def command_line(self) -> str:
		"""The command line as a shell would display it."""
		return shlex.join(self.command)

	def is_running(self) -> bool:
		"""Whether the process has not exited yet."""
		return self.popen.poll() is None


def resolve_daemon_binary(daemon_config: dict[str, Any]) -> Path:
	"""
	Find the daemon binary described by the daemon configuration section.

	Lookup order:
	1. ``binary``: an explicit path
	2. ``support_dir`` / ``binary_name``: the application's bundled copy
	3. ``binary_name`` on ``PATH``

	Args:
		daemon_config: The ``daemon`` configuration section

	Returns:
		Path: Absolute path of an executable daemon binary

	Raises:
		DeploymentError: If no executable binary can be found

	"""
	binary_name = daemon_config.get("binary_name") or "sourcekittend"
	explicit = daemon_config.get("binary")
	support_dir = daemon_config.get("support_dir")

	if explicit:
		candidate: Path | None = Path(explicit).expanduser()
	elif support_dir:
		candidate = Path(support_dir).expanduser() / binary_name
	else:
		found = shutil.which(binary_name)
		candidate = Path(found) if found else None

	if candidate is None:
		msg = f"Could not find the completion daemon '{binary_name}' on PATH"
		raise DeploymentError(msg)

	if not candidate.is_file():
		msg = f"Could not find the completion daemon at {candidate}"
		raise DeploymentError(msg)

	if not os.access(candidate, os.X_OK):
		msg = f"Completion daemon at {candidate} is not executable"
		raise DeploymentError(msg)

	return candidate.resolve()


class DaemonSupervisor:
	"""
	Spawns and terminates daemon processes for one binary.

	The supervisor keeps no per-process state; every call works on the
	``DaemonProcess`` handle returned by ``start``.

	"""

	def __init__(self, binary_path: str | Path, terminate_timeout: float = 5.0) -> None:
		"""
		Initialize the supervisor.

		Args:
			binary_path: Path to the daemon executable
			terminate_timeout: Seconds to wait after SIGTERM before sending SIGKILL

		"""
		self.binary_path = Path(binary_path)
		self.terminate_timeout = terminate_timeout

	def build_command(self, project_path: str | Path, port: int) -> list[str]:
		"""Build the argument vector for a daemon serving ``project_path`` on ``port``."""
		return [str(self.binary_path), "start", "--port", str(port), "--project", str(project_path)]

	def start(self, project_path: str | Path, port: int) -> DaemonProcess:
		"""
		Spawn the daemon without waiting for it to become ready.

		Args:
			project_path: Project descriptor the daemon should load
			port: Loopback port the daemon should listen on

		Returns:
			DaemonProcess: Handle with the daemon's stdout pipe attached

		Raises:
			DeploymentError: If the binary cannot be executed

		"""
		command = self.build_command(project_path, port)
		logger.info("Starting completion daemon: %s", shlex.join(command))

		try:
			popen = subprocess.Popen(  # noqa: S603
				command,
				stdin=subprocess.DEVNULL,
				stdout=subprocess.PIPE,
				stderr=subprocess.DEVNULL,
			)
		except (FileNotFoundError, PermissionError) as e:
			msg = f"Could not launch the completion daemon at {self.binary_path}: {e}"
			raise DeploymentError(msg) from e

		logger.debug("Completion daemon running with PID %s", popen.pid)
		return DaemonProcess(popen=popen, command=command)

	def terminate(self, process: DaemonProcess) -> None:
		"""
		Terminate the daemon and reap it.

		Sends SIGTERM, waits up to ``terminate_timeout`` seconds and falls
		back to SIGKILL. Terminating a process that already exited is a no-op.

		Args:
			process: Handle returned by ``start``

		"""
		popen = process.popen
		if popen.poll() is not None:
			logger.debug("Daemon PID %s already exited with %s", popen.pid, popen.returncode)
			return

		logger.info("Terminating completion daemon (PID: %s)", popen.pid)
		try:
			popen.terminate()
			try:
				popen.wait(timeout=self.terminate_timeout)
			except subprocess.TimeoutExpired:
				logger.warning("Daemon PID %s ignored SIGTERM, killing it", popen.pid)
				popen.kill()
				popen.wait()
		except ProcessLookupError:
			# Exited between poll() and the signal
			popen.wait()

	def is_running(self, process: DaemonProcess) -> bool:
		"""Whether ``process`` is still alive."""
		return process.is_running()
