"""Completer - client for the SourceKitten completion daemon."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
	from .completer import Completer
	from .manager import CompleterManager

__all__ = ["Completer", "CompleterManager", "__version__"]


# Import symbols only when accessed so the CLI starts without pulling requests in
def __getattr__(name: str) -> object:
	if name == "Completer":
		from .completer import Completer

		return Completer
	if name == "CompleterManager":
		from .manager import CompleterManager

		return CompleterManager

	msg = f"module {__name__!r} has no attribute {name!r}"
	raise AttributeError(msg)
