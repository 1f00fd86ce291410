"""CLI command listing the files of a project through the daemon."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer

logger = logging.getLogger(__name__)

# --- Command Argument Annotations ---

ProjectArg = Annotated[
	Path,
	typer.Argument(help="Project descriptor to open (e.g. an .xcodeproj).", exists=True, resolve_path=True),
]

TimeoutOpt = Annotated[float, typer.Option("--timeout", "-t", help="Seconds to wait for each daemon answer.")]


# --- Registration Function ---


def register_command(app: typer.Typer) -> None:
	"""Register the files command with the CLI app."""

	@app.command(name="files")
	def files_command(ctx: typer.Context, project: ProjectArg, timeout: TimeoutOpt = 60.0) -> None:
		"""List the source files of a project."""
		exit_code = _files_command_impl(
			project=project,
			timeout=timeout,
			config_path=ctx.meta.get("config_path"),
			show_debug_log=ctx.meta.get("show_debug_log", False),
		)
		if exit_code:
			raise typer.Exit(exit_code)


# --- Implementation Function ---


def _files_command_impl(
	project: Path,
	timeout: float,
	config_path: Path | None = None,
	show_debug_log: bool = False,
) -> int:
	"""Start a session, print its project files and stop it."""
	from completer.cli.runner import run_session
	from completer.utils.log_setup import console

	exit_code, outcome = run_session(
		project,
		lambda manager, waiter: manager.list_files(waiter),
		config_path=config_path,
		timeout=timeout,
		show_debug_log=show_debug_log,
	)
	if exit_code == 0 and outcome is not None:
		for path in outcome.files:
			console.print(path, markup=False, highlight=False, soft_wrap=True)
		logger.debug("Listed %d files for %s", len(outcome.files), project)
	return exit_code
