"""Typer application and CLI entry point for gatecheck.

This module wires together the top-level Typer application and registers the
built-in sub-commands (``verify``, ``inspect``, ``config``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
:class:`~gatecheck.exceptions.GatecheckError` instances become a clean exit
with their ``exit_code``; any other exception is written to a crash log under
the data directory.

See Also:
    :mod:`gatecheck.config`: Configuration resolution.
    :mod:`gatecheck.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any

import typer

from gatecheck import __version__
from gatecheck.commands.config import config_app
from gatecheck.commands.inspect import inspect_app
from gatecheck.commands.verify import verify_command
from gatecheck.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="gatecheck",
    help="Cross-check API Gateway OpenAPI documents against Lambda Terraform.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("verify")(verify_command)
app.add_typer(inspect_app, name="inspect", help="Inspect extracted models.")
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"gatecheck {__version__}")
        raise typer.Exit()


def _configured_format() -> str:
    """Output format from the config chain, ``auto`` if it cannot be read.

    A broken config file is reported by the command that resolves it; the
    output manager has to exist before that message can be printed.
    """
    from gatecheck.config import resolve_config
    from gatecheck.exceptions import ConfigError

    try:
        return resolve_config().output.format
    except ConfigError:
        return "auto"


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Skip confirmations."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~gatecheck.output.OutputManager` from
    CLI flags (falling back to ``output.format`` from config), routes
    library logging to stderr, and stores shared options in ``ctx.obj``.
    """
    from gatecheck.output import OutputFormat, OutputManager, set_output

    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        try:
            fmt = OutputFormat(_configured_format())
        except ValueError:
            fmt = OutputFormat.AUTO

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    output.configure_logging()

    ctx.ensure_object(dict)
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from gatecheck.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``gatecheck`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from gatecheck.exceptions import GatecheckError
        from gatecheck.output import error

        if isinstance(exc, GatecheckError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
