"""
Logging for the completer.

Records come from three sources: the completer modules, the raw stdout of
the daemon (``completer.daemon.output``) and the request log written by the
debug observer (``completer.daemon.debug``). The console shows warnings
unless verbose; daemon output reaches the console only on request, while a
log file always receives everything.

"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.rule import Rule
from rich.text import Text

DAEMON_OUTPUT_LOGGER = "completer.daemon.output"
DAEMON_DEBUG_LOGGER = "completer.daemon.debug"

# Connection pool chatter from requests, one record per daemon call
NOISY_LOGGERS = ("urllib3",)

FILE_LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s: %(message)s"

# Initialize console for rich output
console = Console()


class ConsoleFilter(logging.Filter):
	"""Applies the console level, except daemon output which is shown all or nothing."""

	def __init__(self, level: int, show_daemon_output: bool) -> None:
		super().__init__()
		self.level = level
		self.show_daemon_output = show_daemon_output

	def filter(self, record: logging.LogRecord) -> bool:
		if record.name == DAEMON_OUTPUT_LOGGER:
			return self.show_daemon_output
		return record.levelno >= self.level


def setup_logging(
	is_verbose: bool = False,
	log_to_console: bool = True,
	log_file_path: Path | str | None = None,
	show_daemon_output: bool = False,
) -> None:
	"""
	Set up logging configuration.

	Args:
		is_verbose: Show debug records, including the request log, on the console
		log_to_console: Whether to log to the console
		log_file_path: File receiving every record, daemon output included
		show_daemon_output: Echo the daemon's stdout on the console

	"""
	console_level = logging.DEBUG if is_verbose else logging.WARNING
	needs_debug = is_verbose or show_daemon_output or bool(log_file_path)

	root_logger = logging.getLogger()
	root_logger.setLevel(logging.DEBUG if needs_debug else logging.WARNING)

	# Clear existing handlers to avoid duplicate logs if called multiple times
	for handler in root_logger.handlers[:]:
		root_logger.removeHandler(handler)

	if log_to_console:
		console_handler = RichHandler(
			level=logging.DEBUG,
			console=Console(stderr=True),
			rich_tracebacks=True,
			show_time=True,
			show_path=is_verbose,
		)
		console_handler.addFilter(ConsoleFilter(console_level, show_daemon_output))
		root_logger.addHandler(console_handler)

	for name in NOISY_LOGGERS:
		logging.getLogger(name).setLevel(logging.DEBUG if is_verbose else logging.WARNING)

	if log_file_path:
		file_handler_path = Path(log_file_path)
		try:
			file_handler_path.parent.mkdir(parents=True, exist_ok=True)
			file_handler = logging.FileHandler(file_handler_path, mode="a", encoding="utf-8")
		except OSError as e:
			root_logger.warning("Cannot write log file %s, logging to the console only: %s", file_handler_path, e)
			return
		file_handler.setLevel(logging.DEBUG)
		file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
		root_logger.addHandler(file_handler)
		root_logger.debug("Logging to file: %s", file_handler_path)


def log_environment_info(daemon_config: dict[str, Any] | None = None) -> None:
	"""
	Log the versions in use and, when given, where the daemon will run.

	Args:
		daemon_config: The ``daemon`` configuration section

	"""
	logger = logging.getLogger(__name__)

	import platform

	import requests

	from completer import __version__

	logger.info("Completer version: %s", __version__)
	logger.info("Python version: %s on %s", platform.python_version(), platform.platform())
	logger.info("requests version: %s", requests.__version__)
	if daemon_config:
		logger.info(
			"Daemon: %s on port %s",
			daemon_config.get("binary") or daemon_config.get("binary_name"),
			daemon_config.get("port"),
		)


def display_summary(message: str, title: str, style: str) -> None:
	"""Print ``message`` between two rules, the first carrying ``title``."""
	console.print()
	console.print(Rule(Text(title, style=f"bold {style}"), style=style))
	console.print(f"\n{message}\n", markup=False)
	console.print(Rule(style=style))
	console.print()
