"""CLI command requesting completions for a file position."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer

from .files_cmd import ProjectArg, TimeoutOpt

logger = logging.getLogger(__name__)

FileArg = Annotated[
	Path,
	typer.Argument(help="Source file to complete in.", exists=True, dir_okay=False, resolve_path=True),
]

OffsetArg = Annotated[int, typer.Argument(help="Byte offset of the cursor in the file.", min=0)]


def register_command(app: typer.Typer) -> None:
	"""Register the complete command with the CLI app."""

	@app.command(name="complete")
	def complete_command(
		ctx: typer.Context,
		project: ProjectArg,
		file: FileArg,
		offset: OffsetArg,
		timeout: TimeoutOpt = 60.0,
	) -> None:
		"""Print the completions the daemon offers at OFFSET in FILE."""
		exit_code = _complete_command_impl(
			project=project,
			file=file,
			offset=offset,
			timeout=timeout,
			config_path=ctx.meta.get("config_path"),
			show_debug_log=ctx.meta.get("show_debug_log", False),
		)
		if exit_code:
			raise typer.Exit(exit_code)


def _complete_command_impl(
	project: Path,
	file: Path,
	offset: int,
	timeout: float,
	config_path: Path | None = None,
	show_debug_log: bool = False,
) -> int:
	"""Start a session, print the completion names and stop it."""
	from completer.cli.runner import run_session
	from completer.utils.log_setup import console

	exit_code, outcome = run_session(
		project,
		lambda manager, waiter: manager.complete(file, offset, waiter),
		config_path=config_path,
		timeout=timeout,
		show_debug_log=show_debug_log,
	)
	if exit_code == 0 and outcome is not None:
		if not outcome.completions:
			console.print("[yellow]No completions")
		for name in outcome.completions:
			console.print(name, markup=False, highlight=False, soft_wrap=True)
		logger.debug("Received %d completions for %s at offset %d", len(outcome.completions), file, offset)
	return exit_code
