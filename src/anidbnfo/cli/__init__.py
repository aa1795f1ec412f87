"""Command-line interface for anidbnfo.

- app: The Typer application object exposing every command.
- console: Rich Console instance shared by all commands for styled output.
"""

from anidbnfo.cli.commands import ExitCode, app, console

__all__ = ["ExitCode", "app", "console"]
