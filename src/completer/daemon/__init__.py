"""
Daemon module for the completer.

This package contains the pieces that run and talk to the completion daemon:
- service: process lifecycle of the daemon binary
- monitor: readiness detection from the daemon's output
- client: HTTP protocol client
- models: outcomes, requests and lifecycle states
- dispatch: serialized delivery of outcomes
- debug: diagnostic observers

"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
	from .client import ProtocolClient
	from .dispatch import Dispatcher
	from .monitor import ReadinessMonitor
	from .service import DaemonSupervisor

__all__ = ["DaemonSupervisor", "Dispatcher", "ProtocolClient", "ReadinessMonitor"]


# Import symbols only when accessed to avoid circular imports
def __getattr__(name: str) -> object:
	if name == "DaemonSupervisor":
		from .service import DaemonSupervisor

		return DaemonSupervisor
	if name == "ReadinessMonitor":
		from .monitor import ReadinessMonitor

		return ReadinessMonitor
	if name == "ProtocolClient":
		from .client import ProtocolClient

		return ProtocolClient
	if name == "Dispatcher":
		from .dispatch import Dispatcher

		return Dispatcher

	msg = f"module {__name__!r} has no attribute {name!r}"
	raise AttributeError(msg)
