"""
Readiness detection for the completion daemon.

The daemon has no handshake. The only signal that it is serving requests is
a log line on its standard output, so this module scans that stream for a
ready marker and an error marker and resolves exactly once.

"""

from __future__ import annotations

import codecs
import logging
import threading
from typing import IO, TYPE_CHECKING

from completer.daemon.models import ErrorKind, Outcome
from completer.utils.log_setup import DAEMON_OUTPUT_LOGGER

if TYPE_CHECKING:
	from collections.abc import Callable

logger = logging.getLogger(__name__)
output_logger = logging.getLogger(DAEMON_OUTPUT_LOGGER)

DEFAULT_READY_MARKER = "[INFO] Monitoring"
DEFAULT_ERROR_MARKER = "[ERR]"
DEFAULT_MAX_BUFFER_CHARS = 1024 * 1024
DEFAULT_CHUNK_SIZE = 4096

MSG_DAEMON_ERROR = "Failed to start the daemon"
MSG_EOF = "Daemon exited before it became ready"
MSG_OVERFLOW = "Daemon produced {size} characters of output without becoming ready"
MSG_TIMEOUT = "Daemon did not become ready within {timeout} seconds"


class ReadinessMonitor:
	"""
	Watches a daemon's output stream and reports whether startup succeeded.

	The stream is read on a background thread and appended to a buffer that
	is searched for both markers after every read. The first marker to be
	completed in read order decides the outcome, which is passed to
	``on_outcome`` exactly once. After a ready marker the thread keeps
	draining the stream so the daemon never blocks on a full pipe.

	"""

	def __init__(
		self,
		stream: IO[bytes],
		on_outcome: Callable[[Outcome], None],
		ready_marker: str = DEFAULT_READY_MARKER,
		error_marker: str = DEFAULT_ERROR_MARKER,
		max_buffer_chars: int = DEFAULT_MAX_BUFFER_CHARS,
		startup_timeout: float | None = None,
		chunk_size: int = DEFAULT_CHUNK_SIZE,
	) -> None:
		"""
		Initialize the monitor.

		Args:
			stream: Binary output stream of the daemon
			on_outcome: Receives ``Started`` or a ``STARTUP`` error, once
			ready_marker: Literal text signalling the daemon is serving
			error_marker: Literal text signalling startup failed
			max_buffer_chars: Output accepted before giving up on the markers
			startup_timeout: Seconds to wait for a marker, None to wait for EOF
			chunk_size: Maximum bytes requested per read

		"""
		if not ready_marker or not error_marker:
			msg = "Readiness markers must not be empty"
			raise ValueError(msg)

		self.stream = stream
		self.on_outcome = on_outcome
		self.ready_marker = ready_marker
		self.error_marker = error_marker
		self.max_buffer_chars = max_buffer_chars
		self.startup_timeout = startup_timeout
		self.chunk_size = chunk_size

		self.outcome: Outcome | None = None
		self._buffer = ""
		self._scanned = 0
		self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
		self._lock = threading.Lock()
		self._resolved = threading.Event()
		self._cancelled = False
		self._thread: threading.Thread | None = None
		self._timer: threading.Timer | None = None
		self._pending_line = ""

	@property
	def resolved(self) -> bool:
		"""Whether an outcome has been produced or the monitor was cancelled."""
		return self._resolved.is_set()

	def start(self) -> None:
		"""Run the read loop on a background thread."""
		if self._thread is not None:
			msg = "Readiness monitor already started"
			raise RuntimeError(msg)

		if self.startup_timeout is not None:
			self._timer = threading.Timer(self.startup_timeout, self._on_timeout)
			self._timer.daemon = True
			self._timer.start()

		self._thread = threading.Thread(target=self.run, name="completer-monitor", daemon=True)
		self._thread.start()

	def wait(self, timeout: float | None = None) -> Outcome | None:
		"""
		Block until the monitor resolves.

		Returns:
			Outcome | None: The emitted outcome, or None on timeout or cancel

		"""
		self._resolved.wait(timeout)
		return self.outcome

	def cancel(self) -> None:
		"""Suppress any outcome that has not been emitted yet."""
		with self._lock:
			self._cancelled = True
		self._resolved.set()
		self._stop_timer()

	def run(self) -> None:
		"""Read the stream until EOF or an error marker, resolving the outcome."""
		read = getattr(self.stream, "read1", None) or self.stream.read
		try:
			while True:
				try:
					data = read(self.chunk_size)
				except (OSError, ValueError) as e:
					# ValueError: stream closed underneath us
					logger.debug("Daemon output stream failed: %s", e)
					data = b""

				if not data:
					self._log_output(self._decoder.decode(b"", final=True), final=True)
					self._resolve(Outcome.error(ErrorKind.STARTUP, MSG_EOF))
					return

				text = self._decoder.decode(data)
				self._log_output(text)
				if self._resolved.is_set():
					continue

				if self._scan(text):
					return
		finally:
			self._stop_timer()
			try:
				self.stream.close()
			except OSError:
				logger.debug("Error closing daemon output stream", exc_info=True)

	def _scan(self, text: str) -> bool:
		"""
		Append ``text`` and test the accumulated buffer for both markers.

		Returns:
			bool: True when the read loop should end

		"""
		self._buffer += text

		# Only text that could complete a marker needs searching again
		overlap = max(len(self.ready_marker), len(self.error_marker)) - 1
		start = max(0, self._scanned - overlap)
		self._scanned = len(self._buffer)

		ready_end = self._match_end(self.ready_marker, start)
		error_end = self._match_end(self.error_marker, start)

		if error_end is not None and (ready_end is None or error_end < ready_end):
			self._resolve(Outcome.error(ErrorKind.STARTUP, MSG_DAEMON_ERROR))
			return True

		if ready_end is not None:
			self._resolve(Outcome.started())
			self._buffer = ""
			return False

		if len(self._buffer) > self.max_buffer_chars:
			size = len(self._buffer)
			self._buffer = ""
			self._resolve(Outcome.error(ErrorKind.STARTUP, MSG_OVERFLOW.format(size=size)))
			return False

		return False

	def _match_end(self, marker: str, start: int) -> int | None:
		index = self._buffer.find(marker, start)
		if index < 0:
			return None
		return index + len(marker)

	def _resolve(self, outcome: Outcome) -> None:
		with self._lock:
			if self._resolved.is_set() or self._cancelled:
				return
			self.outcome = outcome
			self._resolved.set()

		self._stop_timer()
		logger.debug("Readiness monitor resolved: %s", outcome)
		try:
			self.on_outcome(outcome)
		except Exception:
			logger.exception("Error delivering daemon startup outcome")

	def _on_timeout(self) -> None:
		self._resolve(Outcome.error(ErrorKind.STARTUP, MSG_TIMEOUT.format(timeout=self.startup_timeout)))

	def _stop_timer(self) -> None:
		if self._timer is not None:
			self._timer.cancel()

	def _log_output(self, text: str, final: bool = False) -> None:
		"""Forward complete daemon output lines to the output logger."""
		if not output_logger.isEnabledFor(logging.DEBUG):
			return
		self._pending_line += text
		*lines, self._pending_line = self._pending_line.split("\n")
		if final and self._pending_line:
			lines.append(self._pending_line)
			self._pending_line = ""
		for line in lines:
			output_logger.debug("daemon: %s", line.rstrip("\r"))
