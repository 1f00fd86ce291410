"""Tests for the daemon HTTP protocol client."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from completer.daemon.client import (
	ERR_INVALID_PAYLOAD,
	ProtocolClient,
	decode_payload,
	extract_error_envelope,
	stringify_error_value,
)
from completer.daemon.models import ErrorKind, OperationRequest, Outcome, OutcomeKind, RequestKind
from tests.base import RecordingObserver


def make_session(payload: object = None, json_error: Exception | None = None) -> MagicMock:
	"""Build a mocked requests session whose GET returns ``payload`` as JSON."""
	response = MagicMock()
	response.status_code = 200
	if json_error is not None:
		response.json.side_effect = json_error
	else:
		response.json.return_value = payload
	session = MagicMock(spec=requests.Session)
	session.get.return_value = response
	return session


@pytest.fixture
def observer() -> RecordingObserver:
	return RecordingObserver()


def make_client(session: MagicMock, observer: RecordingObserver | None = None) -> ProtocolClient:
	return ProtocolClient(port=44876, timeout=2.0, session=session, debug_observer=observer)


@pytest.mark.unit
@pytest.mark.daemon
class TestProtocolClient:
	"""Tests for ProtocolClient requests and decoding."""

	def test_list_files(self, observer: RecordingObserver) -> None:
		"""A /files array becomes a Files outcome."""
		session = make_session(["a.swift", "b.swift"])
		client = make_client(session, observer)

		outcome = client.call(OperationRequest.list_files())

		assert outcome == Outcome.with_files(["a.swift", "b.swift"])
		session.get.assert_called_once_with("http://localhost:44876/files", headers={}, timeout=2.0)
		assert observer.requests == [("http://localhost:44876/files", {})]

	def test_complete_sends_headers(self, observer: RecordingObserver) -> None:
		"""Completion requests carry the file path and offset headers."""
		session = make_session([{"name": "foo"}])
		client = make_client(session, observer)

		client.call(OperationRequest.complete("/tmp/buffer.swift", 17))

		expected_headers = {"X-Path": "/tmp/buffer.swift", "X-Offset": "17"}
		session.get.assert_called_once_with(
			"http://localhost:44876/complete", headers=expected_headers, timeout=2.0
		)
		assert observer.requests == [("http://localhost:44876/complete", expected_headers)]

	def test_complete_skips_entries_without_name(self) -> None:
		"""Malformed completion entries are dropped, not fatal."""
		session = make_session([{"name": "foo"}, {"notname": "x"}, {"name": "bar"}])

		outcome = make_client(session).call(OperationRequest.complete("/tmp/a.swift", 0))

		assert outcome.kind is OutcomeKind.COMPLETIONS
		assert outcome.completions == ("foo", "bar")

	def test_complete_skips_non_objects_and_non_string_names(self) -> None:
		session = make_session(["raw", {"name": 3}, None, {"name": "ok", "kind": "method"}])

		outcome = make_client(session).call(OperationRequest.complete("/tmp/a.swift", 0))

		assert outcome.completions == ("ok",)

	def test_complete_empty_list(self) -> None:
		outcome = make_client(make_session([])).call(OperationRequest.complete("/tmp/a.swift", 0))

		assert outcome == Outcome.with_completions([])

	def test_transport_error(self) -> None:
		"""Connection failures become TRANSPORT errors."""
		session = make_session()
		session.get.side_effect = requests.ConnectionError("Connection refused")

		outcome = make_client(session).call(OperationRequest.list_files())

		assert outcome.error_kind is ErrorKind.TRANSPORT
		assert "Connection refused" in outcome.message

	def test_timeout_is_transport_error(self) -> None:
		session = make_session()
		session.get.side_effect = requests.Timeout("read timed out")

		outcome = make_client(session).call(OperationRequest.stop())

		assert outcome.error_kind is ErrorKind.TRANSPORT

	def test_invalid_json_is_parse_error(self) -> None:
		"""Bodies that are not JSON become PARSE errors."""
		session = make_session(json_error=ValueError("Expecting value"))

		outcome = make_client(session).call(OperationRequest.list_files())

		assert outcome == Outcome.error(ErrorKind.PARSE, ERR_INVALID_PAYLOAD)

	def test_error_envelope_is_remote_error(self) -> None:
		"""A single-key error object is a daemon-reported error."""
		session = make_session({"error": "boom"})

		outcome = make_client(session).call(OperationRequest.list_files())

		assert outcome == Outcome.error(ErrorKind.REMOTE, "boom")

	def test_error_with_other_fields_is_not_envelope(self) -> None:
		"""An error key next to other keys is payload, which then fails to decode."""
		session = make_session({"error": "boom", "extra": 1})

		outcome = make_client(session).call(OperationRequest.list_files())

		assert outcome.error_kind is ErrorKind.DECODE

	def test_files_wrong_shape(self) -> None:
		outcome = make_client(make_session(["a.swift", 3])).call(OperationRequest.list_files())

		assert outcome.error_kind is ErrorKind.DECODE

	def test_completions_wrong_shape(self) -> None:
		outcome = make_client(make_session({"name": "foo"})).call(OperationRequest.complete("/a", 1))

		assert outcome.error_kind is ErrorKind.DECODE

	def test_stop_accepts_any_payload(self) -> None:
		outcome = make_client(make_session({"status": "bye"})).call(OperationRequest.stop())

		assert outcome == Outcome.stopped()

	def test_stop_reports_error_envelope(self) -> None:
		outcome = make_client(make_session({"error": "not running"})).call(OperationRequest.stop())

		assert outcome == Outcome.error(ErrorKind.REMOTE, "not running")

	def test_failing_observer_does_not_affect_request(self) -> None:
		"""Observer exceptions are logged and ignored."""
		observer = MagicMock()
		observer.on_request.side_effect = RuntimeError("observer broke")
		session = make_session(["a.swift"])

		outcome = make_client(session, observer).call(OperationRequest.list_files())

		assert outcome == Outcome.with_files(["a.swift"])
		observer.on_request.assert_called_once()

	def test_submit_runs_in_background(self) -> None:
		"""submit() returns a future resolving to the outcome."""
		client = make_client(make_session(["a.swift"]))
		try:
			future = client.submit(OperationRequest.list_files())
			assert future.result(timeout=5) == Outcome.with_files(["a.swift"])
		finally:
			client.close()

	def test_submit_contains_unexpected_exceptions(self) -> None:
		"""An unexpected exception still produces an outcome."""
		session = make_session()
		session.get.side_effect = KeyError("surprise")
		client = make_client(session)
		try:
			outcome = client.submit(OperationRequest.list_files()).result(timeout=5)
		finally:
			client.close()

		assert outcome.error_kind is ErrorKind.TRANSPORT

	def test_close_closes_session(self) -> None:
		session = make_session()
		make_client(session).close()

		session.close.assert_called_once()


@pytest.mark.unit
@pytest.mark.daemon
class TestPayloadDecoding:
	"""Tests for the decoding helpers."""

	@pytest.mark.parametrize(
		("value", "expected"),
		[
			("boom", "boom"),
			(42, "42"),
			(None, "null"),
			({"code": 2, "detail": "bad"}, '{"code":2,"detail":"bad"}'),
			(["a", 1], '["a",1]'),
		],
	)
	def test_stringify_error_value(self, value: object, expected: str) -> None:
		"""Non-string envelope values render as compact JSON."""
		assert stringify_error_value(value) == expected

	def test_extract_error_envelope(self) -> None:
		assert extract_error_envelope({"error": "boom"}) == "boom"
		assert extract_error_envelope({"error": "boom", "extra": 1}) is None
		assert extract_error_envelope({"message": "boom"}) is None
		assert extract_error_envelope(["error"]) is None

	def test_remote_error_with_structured_value(self) -> None:
		outcome = decode_payload(RequestKind.LIST_FILES, {"error": {"code": 7}})

		assert outcome == Outcome.error(ErrorKind.REMOTE, '{"code":7}')
