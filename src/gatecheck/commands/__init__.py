"""Built-in CLI sub-commands for gatecheck.

This package groups the Typer command modules that form the CLI's command
tree:

* :mod:`~gatecheck.commands.verify` -- cross-check OpenAPI against Terraform.
* :mod:`~gatecheck.commands.inspect` -- show the extracted operations,
  lambdas, and identifier graph.
* :mod:`~gatecheck.commands.config` -- view and modify global settings.

Each module either exports a :class:`typer.Typer` sub-application (for
multi-command groups like ``inspect`` and ``config``) or a plain callback
function registered directly on the root app (``verify``).
"""
