"""Single-threaded delivery of outcomes to collaborator callbacks."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
	from collections.abc import Callable

logger = logging.getLogger(__name__)


class Dispatcher:
	"""
	Runs posted callables one at a time, in posting order, on one thread.

	Every outcome the completer produces reaches collaborator code through a
	dispatcher, so callbacks never race each other regardless of which
	worker thread produced the result.

	"""

	def __init__(self, name: str = "completer-dispatch") -> None:
		"""
		Initialize the dispatcher.

		Args:
			name: Thread name prefix of the delivery thread

		"""
		self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
		self._thread_ident: int | None = None
		self._closed = False
		self._lock = threading.Lock()

	def post(self, func: Callable[..., Any], *args: Any) -> None:  # noqa: ANN401
		"""Queue ``func(*args)`` for delivery. Posts after ``shutdown`` are dropped."""
		with self._lock:
			if self._closed:
				logger.debug("Dispatcher closed, dropping %r", func)
				return
			self._executor.submit(self._run, func, args)

	def is_dispatch_thread(self) -> bool:
		"""Whether the caller is running on the delivery thread."""
		return threading.get_ident() == self._thread_ident

	def flush(self, timeout: float | None = None) -> bool:
		"""
		Wait until everything posted so far has been delivered.

		Args:
			timeout: Seconds to wait, None to wait forever

		Returns:
			bool: True if the queue drained in time

		"""
		if self.is_dispatch_thread():
			msg = "Cannot flush the dispatcher from its own thread"
			raise RuntimeError(msg)

		done = threading.Event()
		with self._lock:
			if self._closed:
				return True
			self._executor.submit(done.set)
		return done.wait(timeout)

	def shutdown(self, wait: bool = True) -> None:
		"""Stop accepting work; optionally wait for queued deliveries."""
		with self._lock:
			self._closed = True
		self._executor.shutdown(wait=wait and not self.is_dispatch_thread())

	def _run(self, func: Callable[..., Any], args: tuple[Any, ...]) -> None:
		self._thread_ident = threading.get_ident()
		try:
			func(*args)
		except Exception:
			logger.exception("Error in completer callback %r", func)
