"""Utility functions for CLI operations in the completer."""

from __future__ import annotations

import contextlib
import logging
import os
from typing import TYPE_CHECKING

from completer.utils.log_setup import console, display_summary

if TYPE_CHECKING:
	from collections.abc import Iterator

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def loading_spinner(message: str = "Processing...") -> Iterator[None]:
	"""
	Display a loading spinner while executing a task.

	Args:
		message: Message to display alongside the spinner

	Yields:
		None

	"""
	# In test environments, don't display a spinner
	if os.environ.get("PYTEST_CURRENT_TEST") or os.environ.get("CI"):
		yield
		return

	with console.status(message):
		yield


def show_error(message: str, exception: Exception | None = None) -> None:
	"""
	Display an error summary with standardized formatting.

	Args:
		message: The error message to display
		exception: Optional exception that caused the error

	"""
	error_text = message
	if exception:
		error_text += f"\n\nDetails: {exception!s}"
		logger.debug("Error occurred", exc_info=exception)

	display_summary(error_text, "Error Summary", "red")


def show_warning(message: str) -> None:
	"""
	Display a warning summary with standardized formatting.

	Args:
		message: The warning message to display

	"""
	display_summary(message, "Warning Summary", "yellow")
