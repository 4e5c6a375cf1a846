"""Command-line entry point (Typer-based).

Provides :func:`build_cli`, which constructs a Typer app that parses
the process inputs (an optional allow-list of sensor addresses plus
transport and logging switches), applies them on top of the
environment-derived :class:`~tpheat._settings.Settings`, and hands off
to the application's async lifecycle::

    tpheat D1:D7:3F:67:8C:EF FA:74:A7:99:89:04 --le --log-format text
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from typing import TYPE_CHECKING, Annotated, get_args

import typer
from pydantic import ValidationError

from tpheat._errors import ConfigError
from tpheat._settings import (
    BluetoothSettings,
    LoggingSettings,
    RegistrySettings,
    Settings,
)

if TYPE_CHECKING:
    from tpheat._app import App

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_RUNTIME_ERROR = 3

_VALID_LOG_LEVELS: tuple[str, ...] = get_args(
    LoggingSettings.model_fields["level"].annotation,
)
_VALID_LOG_FORMATS: tuple[str, ...] = get_args(
    LoggingSettings.model_fields["format"].annotation,
)


def apply_overrides(
    settings: Settings,
    *,
    addresses: list[str] | None = None,
    le_only: bool = False,
    bredr_only: bool = False,
    watch_changes: bool = False,
    state_file: str | None = None,
    log_level: str | None = None,
    log_format: str | None = None,
) -> Settings:
    """Return *settings* with command-line overrides applied.

    ``--le`` wins over ``--bredr`` when both are given.

    The bluetooth, registry and logging sections are re-validated.

    Raises:
        ConfigError: If an override is invalid.
    """
    bluetooth = settings.bluetooth.model_dump()
    if addresses:
        bluetooth["allowed_addresses"] = addresses
    if le_only:
        bluetooth["transport"] = "le"
    elif bredr_only:
        bluetooth["transport"] = "bredr"
    if watch_changes:
        bluetooth["watch_changes"] = True

    registry = settings.registry.model_dump()
    if state_file is not None:
        registry["state_file"] = state_file

    logging_ = settings.logging.model_dump()
    if log_level is not None:
        logging_["level"] = log_level.upper()
    if log_format is not None:
        logging_["format"] = log_format.lower()

    try:
        update = {
            "bluetooth": BluetoothSettings.model_validate(bluetooth),
            "registry": RegistrySettings.model_validate(registry),
            "logging": LoggingSettings.model_validate(logging_),
        }
    except ValidationError as exc:
        msg = f"Invalid command-line override: {exc}"
        raise ConfigError(msg) from exc
    return settings.model_copy(update=update)


def build_cli(app: App) -> typer.Typer:
    """Construct a Typer CLI from an :class:`~tpheat._app.App` instance.

    Args:
        app: The application to wrap.

    Returns:
        A configured :class:`typer.Typer` ready to invoke.
    """
    name = app._name
    version = app._version
    description = app._description

    cli = typer.Typer(help=f"{name} v{version} — {description}")

    @cli.command()
    def main(
        addresses: Annotated[
            list[str] | None,
            typer.Argument(
                help="Only connect to these sensor addresses.",
                show_default=False,
            ),
        ] = None,
        version_flag: Annotated[
            bool | None,
            typer.Option("--version", is_eager=True, help="Show version and exit."),
        ] = None,
        le_only: Annotated[
            bool,
            typer.Option("--le", help="Discover Bluetooth LE devices only."),
        ] = False,
        bredr_only: Annotated[
            bool,
            typer.Option("--bredr", help="Discover BR/EDR (classic) devices only."),
        ] = False,
        watch_changes: Annotated[
            bool,
            typer.Option("--changes", help="Emit device property-change events."),
        ] = False,
        state_file: Annotated[
            str | None,
            typer.Option("--state-file", help="Override the room state file."),
        ] = None,
        log_level: Annotated[
            str | None,
            typer.Option("--log-level", help="Override log level."),
        ] = None,
        log_format: Annotated[
            str | None,
            typer.Option("--log-format", help="Override log format."),
        ] = None,
        env_file: Annotated[
            str,
            typer.Option("--env-file", help="Path to .env file."),
        ] = ".env",
    ) -> None:
        if version_flag:
            typer.echo(f"{name} v{version}")
            raise typer.Exit()

        if log_level is not None and log_level.upper() not in _VALID_LOG_LEVELS:
            raise typer.BadParameter(
                f"Invalid log level '{log_level}'. "
                f"Choose from: {', '.join(_VALID_LOG_LEVELS)}",
                param_hint="'--log-level'",
            )

        if log_format is not None and log_format.lower() not in _VALID_LOG_FORMATS:
            raise typer.BadParameter(
                f"Invalid log format '{log_format}'. "
                f"Choose from: {', '.join(_VALID_LOG_FORMATS)}",
                param_hint="'--log-format'",
            )

        try:
            settings: Settings = app._settings_class(_env_file=env_file)  # type: ignore[call-arg]
            settings = apply_overrides(
                settings,
                addresses=addresses,
                le_only=le_only,
                bredr_only=bredr_only,
                watch_changes=watch_changes,
                state_file=state_file,
                log_level=log_level,
                log_format=log_format,
            )
        except (ValidationError, ConfigError) as exc:
            logger.error("Configuration error: %s", exc)
            raise SystemExit(EXIT_CONFIG_ERROR) from exc

        try:
            with contextlib.suppress(KeyboardInterrupt):
                asyncio.run(app._run_async(settings=settings))
        except SystemExit:
            raise
        except Exception as exc:
            logger.error("Runtime error: %s", exc)
            sys.exit(EXIT_RUNTIME_ERROR)

    return cli
