"""CLI command verifying the daemon installation."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

ProjectOpt = Annotated[
	Path | None,
	typer.Option("--project", "-p", help="Project to show the daemon command line for.", show_default=False),
]


def register_command(app: typer.Typer) -> None:
	"""Register the check command with the CLI app."""

	@app.command(name="check")
	def check_command(ctx: typer.Context, project: ProjectOpt = None) -> None:
		"""Locate the completion daemon and show how it would be started."""
		exit_code = _check_command_impl(project=project, config_path=ctx.meta.get("config_path"))
		if exit_code:
			raise typer.Exit(exit_code)


def _check_command_impl(project: Path | None = None, config_path: Path | None = None) -> int:
	"""Resolve the daemon binary and print the command line."""
	from completer.daemon.service import DaemonSupervisor, DeploymentError, resolve_daemon_binary
	from completer.utils.cli_utils import show_error
	from completer.utils.config_loader import ConfigError, ConfigLoader
	from completer.utils.log_setup import console, log_environment_info

	try:
		config_loader = ConfigLoader.get_instance(str(config_path) if config_path else None, reload=True)
		daemon_config = config_loader.get_daemon_config()
		log_environment_info(daemon_config)
		binary = resolve_daemon_binary(daemon_config)
	except ConfigError as e:
		show_error("Invalid configuration", e)
		return 1
	except DeploymentError as e:
		show_error("The completion daemon is not installed correctly", e)
		return 1

	supervisor = DaemonSupervisor(binary)
	command = supervisor.build_command(project or "<project>", int(daemon_config["port"]))
	console.print(f"[green]Daemon found:[/] {binary}", soft_wrap=True)
	console.print(" ".join(command), markup=False, highlight=False, soft_wrap=True)
	return 0
