"""Config commands -- view and modify global configuration.

Provides the ``gatecheck config`` sub-command group for reading, updating,
and resetting the user's global configuration file
(:class:`~gatecheck.models.GlobalConfig`).  Settings are persisted in the
gatecheck config directory and provide defaults for every ``verify`` run.
"""

from __future__ import annotations

import typer

from gatecheck.exit_codes import EXIT_INVALID_USAGE
from gatecheck.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration.

    Prints the config directory, then the configuration after project
    config and ``GATECHECK_*`` environment variables have been applied.

    Example::

        gatecheck config show
        gatecheck --json config show
    """
    from gatecheck.config import get_config_dir, resolve_config
    from gatecheck.exceptions import ConfigError

    try:
        config = resolve_config()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'verify.tolerate_cyclic_refs')."
    ),
    value: str = typer.Argument(help="Value to set. Lists take comma-separated items."),
) -> None:
    """Set a configuration value in the global config.

    Uses dot notation for nested keys.  The value is coerced to the type of
    the existing field (bool, int, list or str) and the result is validated
    against :class:`~gatecheck.models.GlobalConfig` before saving.

    Raises:
        typer.Exit: With code 2 if the key path is invalid, the value
            cannot be coerced, or validation fails.

    Example::

        gatecheck config set verify.tolerate_cyclic_refs true
        gatecheck config set verify.exclude "legacy/**,*.draft.yaml"
        gatecheck config set output.format json
    """
    from pydantic import ValidationError

    from gatecheck.config import load_global_config, save_global_config
    from gatecheck.models import GlobalConfig

    config = load_global_config()
    data = config.model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target or isinstance(target[final_key], dict):
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    current = target[final_key]
    coerced: object
    if isinstance(current, bool):
        lowered = value.lower()
        if lowered not in ("true", "false", "1", "0", "yes", "no"):
            error(f"Expected true/false for {key}, got: {value}")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        coerced = lowered in ("true", "1", "yes")
    elif isinstance(current, int):
        try:
            coerced = int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    elif isinstance(current, list):
        coerced = [item.strip() for item in value.split(",") if item.strip()]
    else:
        coerced = value

    target[final_key] = coerced

    try:
        new_config = GlobalConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    save_global_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset the global configuration to defaults.

    Asks for confirmation unless ``--force`` is active.

    Example::

        gatecheck config reset
        gatecheck --force config reset
    """
    from gatecheck.config import save_global_config
    from gatecheck.models import GlobalConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
