"""Command-line interface package for the completer."""

from __future__ import annotations

import datetime
import logging
import sys
from pathlib import Path
from typing import Annotated

import typer

from completer import __version__
from completer.utils.log_setup import setup_logging

from .check_cmd import register_command as register_check_command
from .complete_cmd import register_command as register_complete_command
from .files_cmd import register_command as register_files_command

logger = logging.getLogger(__name__)

app = typer.Typer(
	help=f"Completer - drive the SourceKitten completion daemon\n\nVersion: {__version__}",
	no_args_is_help=True,
	context_settings={"help_option_names": ["-h", "--help"]},
)

# --- Global Options Callback ---


def _version_callback(value: bool) -> None:
	"""Callback for --version option."""
	if value:
		typer.echo(f"Completer version: {__version__}")
		raise typer.Exit


@app.callback(invoke_without_command=True)
def global_options(
	ctx: typer.Context,
	is_verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose logging.")] = False,
	is_output_log: Annotated[
		bool,
		typer.Option(
			"--save-log",
			help="Enable logging to a file. Logs to logs/completer_{datetime}.log.",
		),
	] = False,
	config_path: Annotated[
		Path | None,
		typer.Option("--config", "-c", help="Path to configuration file.", dir_okay=False, show_default=False),
	] = None,
	show_debug_log: Annotated[
		bool, typer.Option("--debug-log", help="Print the daemon communication log when done.")
	] = False,
	show_daemon_output: Annotated[
		bool, typer.Option("--daemon-output", help="Echo the daemon's own output to the console.")
	] = False,
	_version: Annotated[
		bool | None,
		typer.Option("--version", help="Show version and exit.", callback=_version_callback, is_eager=True),
	] = None,
) -> None:
	"""Global CLI options and logging setup."""
	ctx.meta["is_verbose"] = is_verbose
	ctx.meta["config_path"] = config_path
	ctx.meta["show_debug_log"] = show_debug_log

	log_file_path_to_use: Path | None = None
	if is_output_log:
		log_dir = Path("logs")
		log_dir.mkdir(parents=True, exist_ok=True)
		current_time = datetime.datetime.now(tz=datetime.UTC).strftime("%Y-%m-%d_%H-%M-%S")
		log_file_path_to_use = log_dir / f"completer_{current_time}.log"

	setup_logging(
		is_verbose=is_verbose,
		log_file_path=log_file_path_to_use,
		show_daemon_output=show_daemon_output,
	)
	if config_path:
		logger.debug("Using configuration file %s", config_path)


# --- Register commands ---

register_files_command(app)
register_complete_command(app)
register_check_command(app)


# --- Main Entry Point ---
def main() -> int:
	"""Run the CLI application."""
	return app()


if __name__ == "__main__":
	sys.exit(main())
