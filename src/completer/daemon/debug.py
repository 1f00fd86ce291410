"""
Diagnostic observers for daemon communication.

An observer is injected into the completer at construction and is told
about every request URL and about the command line used to start the
daemon. Observers are informational only; errors they raise are logged
and otherwise ignored.

"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Protocol

from completer.utils.log_setup import DAEMON_DEBUG_LOGGER

logger = logging.getLogger(__name__)


class DebugObserver(Protocol):
	"""Receives diagnostic notifications from the completer."""

	def on_request(self, url: str, headers: dict[str, str]) -> None:
		"""Called before a request is sent to the daemon."""
		...

	def on_started(self, command_line: str) -> None:
		"""Called once the daemon reported it is ready."""
		...


class LoggingDebugObserver:
	"""Writes diagnostic notifications to the debug log."""

	def __init__(self, logger_name: str = DAEMON_DEBUG_LOGGER) -> None:
		self.logger = logging.getLogger(logger_name)

	def on_request(self, url: str, headers: dict[str, str]) -> None:
		self.logger.debug("GET %s headers=%s", url, headers)

	def on_started(self, command_line: str) -> None:
		self.logger.debug("Started: %s", command_line)


class CommunicationLog:
	"""
	Keeps the most recent daemon interactions, newest first.

	This is what an editor shows in its communication log pane.

	"""

	def __init__(self, max_entries: int = 200) -> None:
		self._entries: deque[str] = deque(maxlen=max_entries)
		self._lock = threading.Lock()

	def on_request(self, url: str, headers: dict[str, str]) -> None:
		self._add(f"Get: {url}\nHeaders: {headers}")

	def on_started(self, command_line: str) -> None:
		self._add(f"Started: {command_line}")

	@property
	def entries(self) -> list[str]:
		"""Logged entries, newest first."""
		with self._lock:
			return list(self._entries)

	def render(self, separator: str = "\n--------\n") -> str:
		"""Render the whole log as one block of text."""
		return separator.join(self.entries)

	def clear(self) -> None:
		with self._lock:
			self._entries.clear()

	def _add(self, entry: str) -> None:
		with self._lock:
			self._entries.appendleft(entry)


def notify_request(observer: DebugObserver | None, url: str, headers: dict[str, str]) -> None:
	"""Tell ``observer`` about a request without letting it fail the request."""
	if observer is None:
		return
	try:
		observer.on_request(url, dict(headers))
	except Exception:
		logger.exception("Debug observer failed on request notification")


def notify_started(observer: DebugObserver | None, command_line: str) -> None:
	"""Tell ``observer`` the daemon started without letting it fail startup."""
	if observer is None:
		return
	try:
		observer.on_started(command_line)
	except Exception:
		logger.exception("Debug observer failed on started notification")
