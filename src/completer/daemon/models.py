"""Data models shared by the completion daemon components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
	from collections.abc import Callable
	from pathlib import Path

	from completer.daemon.service import DaemonProcess


class LifecycleState(Enum):
	"""Lifecycle of a completion session."""

	UNSTARTED = "unstarted"
	STARTING = "starting"
	READY = "ready"
	STOPPING = "stopping"
	STOPPED = "stopped"
	FAILED = "failed"


class ErrorKind(Enum):
	"""Classification of every failure an operation can report."""

	DEPLOYMENT = "deployment"  # daemon binary missing
	STARTUP = "startup"  # daemon never became ready
	TRANSPORT = "transport"
	PARSE = "parse"
	DECODE = "decode"
	REMOTE = "remote"  # daemon sent an error envelope
	INVALID_STATE = "invalid_state"


class OutcomeKind(Enum):
	"""Variants of an operation outcome."""

	STARTED = "started"
	STOPPED = "stopped"
	FILES = "files"
	COMPLETIONS = "completions"
	ERROR = "error"


class RequestKind(Enum):
	"""Operations understood by the daemon, mapped to their HTTP path."""

	LIST_FILES = "/files"
	COMPLETE = "/complete"
	STOP = "/stop"

	@property
	def path(self) -> str:
		"""The HTTP path for this operation."""
		return self.value


@dataclass(frozen=True)
class Outcome:
	"""
	Normalized result of a completer operation.

	Only the payload belonging to ``kind`` is populated. Use the classmethod
	constructors rather than building instances directly.

	"""

	kind: OutcomeKind
	"""Which variant this outcome is."""

	files: tuple[str, ...] = ()
	"""Project file paths, for ``FILES``."""

	completions: tuple[str, ...] = ()
	"""Completion names, for ``COMPLETIONS``."""

	error_kind: ErrorKind | None = None
	"""Failure classification, for ``ERROR``."""

	message: str = ""
	"""Human readable failure detail, for ``ERROR``."""

	token: int | None = None
	"""Token of the completion request this outcome answers."""

	@classmethod
	def started(cls) -> Outcome:
		return cls(OutcomeKind.STARTED)

	@classmethod
	def stopped(cls) -> Outcome:
		return cls(OutcomeKind.STOPPED)

	@classmethod
	def with_files(cls, files: list[str] | tuple[str, ...]) -> Outcome:
		return cls(OutcomeKind.FILES, files=tuple(files))

	@classmethod
	def with_completions(cls, names: list[str] | tuple[str, ...], token: int | None = None) -> Outcome:
		return cls(OutcomeKind.COMPLETIONS, completions=tuple(names), token=token)

	@classmethod
	def error(cls, error_kind: ErrorKind, message: str, token: int | None = None) -> Outcome:
		return cls(OutcomeKind.ERROR, error_kind=error_kind, message=message, token=token)

	@property
	def is_error(self) -> bool:
		"""Whether this outcome reports a failure."""
		return self.kind is OutcomeKind.ERROR

	def with_token(self, token: int) -> Outcome:
		"""Return a copy of this outcome tagged with a completion request token."""
		return Outcome(
			kind=self.kind,
			files=self.files,
			completions=self.completions,
			error_kind=self.error_kind,
			message=self.message,
			token=token,
		)

	def __str__(self) -> str:
		"""Render the outcome for logs and the CLI."""
		if self.is_error and self.error_kind is not None:
			return f"Error({self.error_kind.value}): {self.message}"
		if self.kind is OutcomeKind.FILES:
			return f"Files({len(self.files)})"
		if self.kind is OutcomeKind.COMPLETIONS:
			return f"Completions({len(self.completions)})"
		return self.kind.value.capitalize()


@dataclass(frozen=True)
class OperationRequest:
	"""An immutable description of one request to the daemon."""

	kind: RequestKind
	"""The operation to perform."""

	headers: tuple[tuple[str, str], ...] = ()
	"""Protocol header pairs sent with the request."""

	@classmethod
	def list_files(cls) -> OperationRequest:
		return cls(RequestKind.LIST_FILES)

	@classmethod
	def complete(cls, file_path: str | Path, offset: int) -> OperationRequest:
		return cls(RequestKind.COMPLETE, headers=(("X-Path", str(file_path)), ("X-Offset", str(offset))))

	@classmethod
	def stop(cls) -> OperationRequest:
		return cls(RequestKind.STOP)

	@property
	def path(self) -> str:
		"""HTTP path of the request."""
		return self.kind.path

	def header_dict(self) -> dict[str, str]:
		"""Headers as a mapping, in the form HTTP libraries expect."""
		return dict(self.headers)


@dataclass
class Session:
	"""One daemon instance and the lifecycle state of the project it serves."""

	project_path: Path
	"""Project descriptor the daemon was started for."""

	port: int
	"""Loopback port the daemon listens on."""

	process: DaemonProcess | None = None
	"""Handle of the supervised daemon, once spawned."""

	state: LifecycleState = LifecycleState.UNSTARTED
	"""Current lifecycle state."""

	stop_callbacks: list[Callable[[Outcome], None]] = field(default_factory=list)
	"""Callbacks waiting for a stop that is in progress."""
