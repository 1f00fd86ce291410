"""
Client for the completion daemon's HTTP protocol.

This module sends typed requests to the daemon on its loopback port and
turns every response, or failure to get one, into an ``Outcome``. No
transport or decoding exception leaves this module.

"""

from __future__ import annotations

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

import requests

from completer.daemon.debug import notify_request
from completer.daemon.models import ErrorKind, OperationRequest, Outcome, RequestKind

if TYPE_CHECKING:
	from completer.daemon.debug import DebugObserver

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_TIMEOUT = 10.0

# Error messages
ERR_INVALID_PAYLOAD = "invalid payload"
ERR_FILES_SHAPE = "Expected a list of file paths from /files"
ERR_COMPLETIONS_SHAPE = "Wrong completion return type"


def stringify_error_value(value: Any) -> str:  # noqa: ANN401
	"""
	Render the value of an error envelope as a message.

	Strings are used verbatim; any other JSON value is rendered as compact
	JSON so the message is stable regardless of what the daemon sent.

	"""
	if isinstance(value, str):
		return value
	return json.dumps(value, separators=(",", ":"), sort_keys=True)


def extract_error_envelope(payload: Any) -> str | None:  # noqa: ANN401
	"""
	Return the error message if ``payload`` is an error envelope.

	An envelope is a JSON object whose only key is ``error``. Objects that
	carry ``error`` alongside other keys are ordinary payload.

	"""
	if isinstance(payload, dict) and len(payload) == 1 and "error" in payload:
		return stringify_error_value(payload["error"])
	return None


def decode_files(payload: Any) -> Outcome:  # noqa: ANN401
	"""Decode a ``/files`` payload."""
	if not isinstance(payload, list) or not all(isinstance(item, str) for item in payload):
		return Outcome.error(ErrorKind.DECODE, ERR_FILES_SHAPE)
	return Outcome.with_files(payload)


def decode_completions(payload: Any) -> Outcome:  # noqa: ANN401
	"""
	Decode a ``/complete`` payload.

	Entries without a string ``name`` are skipped rather than failing the
	whole batch.

	"""
	if not isinstance(payload, list):
		return Outcome.error(ErrorKind.DECODE, ERR_COMPLETIONS_SHAPE)

	names = []
	skipped = 0
	for entry in payload:
		name = entry.get("name") if isinstance(entry, dict) else None
		if not isinstance(name, str):
			skipped += 1
			continue
		names.append(name)

	if skipped:
		logger.debug("Skipped %d completion entries without a name", skipped)
	return Outcome.with_completions(names)


def decode_payload(kind: RequestKind, payload: Any) -> Outcome:  # noqa: ANN401
	"""
	Turn a parsed response body into the outcome for ``kind``.

	Args:
		kind: The operation the payload answers
		payload: Parsed JSON body

	Returns:
		Outcome: The decoded result or a REMOTE/DECODE error

	"""
	remote_error = extract_error_envelope(payload)
	if remote_error is not None:
		return Outcome.error(ErrorKind.REMOTE, remote_error)

	if kind is RequestKind.LIST_FILES:
		return decode_files(payload)
	if kind is RequestKind.COMPLETE:
		return decode_completions(payload)
	return Outcome.stopped()


class ProtocolClient:
	"""
	Client for one daemon's HTTP endpoint.

	``call`` performs a request synchronously; ``submit`` runs it on the
	client's worker pool and returns a future, one task per request.

	"""

	def __init__(
		self,
		port: int,
		host: str = DEFAULT_HOST,
		timeout: float = DEFAULT_TIMEOUT,
		max_workers: int = 4,
		debug_observer: DebugObserver | None = None,
		session: requests.Session | None = None,
	) -> None:
		"""
		Initialize the client.

		Args:
			port: Loopback port of the daemon
			host: Host name of the daemon
			timeout: Seconds before a request is abandoned
			max_workers: Concurrent requests allowed through ``submit``
			debug_observer: Receives every request URL and headers
			session: HTTP session to use, a new one by default

		"""
		self.port = port
		self.host = host
		self.timeout = timeout
		self.debug_observer = debug_observer
		self.base_url = f"http://{host}:{port}"
		self.session = session or requests.Session()
		self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="completer-request")

		logger.debug("Initialized protocol client: %s", self.base_url)

	def url_for(self, request: OperationRequest) -> str:
		"""Full URL for ``request``."""
		return f"{self.base_url}{request.path}"

	def call(self, request: OperationRequest) -> Outcome:
		"""
		Send ``request`` and decode the response.

		Args:
			request: The operation to perform

		Returns:
			Outcome: Decoded result, or an error outcome for any failure

		"""
		url = self.url_for(request)
		headers = request.header_dict()
		notify_request(self.debug_observer, url, headers)

		try:
			response = self.session.get(url, headers=headers, timeout=self.timeout)
		except requests.RequestException as e:
			logger.debug("Request to %s failed: %s", url, e)
			return Outcome.error(ErrorKind.TRANSPORT, f"error: {e}")

		try:
			payload = response.json()
		except ValueError:
			logger.debug("Response from %s is not JSON (status %s)", url, response.status_code)
			return Outcome.error(ErrorKind.PARSE, ERR_INVALID_PAYLOAD)

		outcome = decode_payload(request.kind, payload)
		if outcome.is_error:
			logger.debug("Request to %s returned %s", url, outcome)
		return outcome

	def submit(self, request: OperationRequest) -> Future[Outcome]:
		"""Perform ``request`` on the worker pool."""
		return self._executor.submit(self._safe_call, request)

	def close(self) -> None:
		"""Stop accepting requests and close the HTTP session."""
		self._executor.shutdown(wait=False)
		self.session.close()

	def _safe_call(self, request: OperationRequest) -> Outcome:
		try:
			return self.call(request)
		except Exception as e:
			logger.exception("Unexpected failure calling %s", request.path)
			return Outcome.error(ErrorKind.TRANSPORT, f"error: {e}")
