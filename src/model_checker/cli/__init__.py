"""CLI for checking an ORM model against a database schema.

Usage:
    DB_PROFILE=dev model-checker check --model myapp.models:Base
    model-checker check --profile dev --schema dbo --strict
    model-checker profiles

Commands:
    check     - Compare the model with the database, list discrepancies
    profiles  - List available profiles

``--model`` takes ``package.module:attribute`` where the attribute is a
declarative base, a ``registry``, a ``MetaData`` or a ``MappingProvider``.
It defaults to ``model`` in the ``[check]`` table of model-checker.toml.
"""

import argparse
import importlib
import logging
import os
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from sqlalchemy.exc import ArgumentError

from model_checker.check import (
    ProfileNotFoundError,
    create_profile_engine,
    get_active_profile_name,
    get_profile,
    run,
)
from model_checker.config.loader import load_config
from model_checker.config.models import ModelCheckOptions
from model_checker.mapping.edmx import MappingDescriptionError
from model_checker.schema.introspector import InvalidDatabaseError

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _import_model(path: str) -> Any:
    """Import ``package.module:attribute``.

    Raises:
        ValueError: If the path is malformed or can't be imported.

    Example:
        >>> _import_model("sqlalchemy:MetaData")
        <class 'sqlalchemy.sql.schema.MetaData'>
    """
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Model path must look like 'package.module:attribute', got '{path}'")

    # Console scripts don't put the working directory on sys.path
    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Cannot import module '{module_name}': {e}") from e

    obj: Any = module
    for part in attribute.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError:
            raise ValueError(f"Module '{module_name}' has no attribute '{attribute}'") from None
    return obj


def _build_options(args: argparse.Namespace, configured: ModelCheckOptions) -> ModelCheckOptions:
    """Apply command line overrides to the configured options."""
    schema_name = configured.database_schema_name if args.schema is None else args.schema
    if args.strict:
        return ModelCheckOptions.strict(schema_name)
    return configured.model_copy(update={"database_schema_name": schema_name})


def _print_errors(errors: list[str]) -> None:
    table = Table(title="Schema Discrepancies", show_header=True, header_style="bold")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Discrepancy")
    for i, error in enumerate(errors, start=1):
        table.add_row(str(i), escape(error))
    console.print(table)


# ============================================================================
# Commands
# ============================================================================


def cmd_check(args: argparse.Namespace) -> int:
    """Compare the model with the database.

    Args:
        args: Parsed arguments with config, profile, model, schema, strict
            and env_prefix.

    Returns:
        0 when no discrepancies were found, 1 on discrepancies or errors.
    """
    try:
        config = load_config(Path(args.config) if args.config else None)
        profile_name = get_active_profile_name(args.profile, env_prefix=args.env_prefix)
        profile = get_profile(config.profiles, profile_name)
    except (FileNotFoundError, ValueError, ProfileNotFoundError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    model_path = args.model or config.check.model
    if not model_path:
        console.print("[red]Error: no model given.[/red]")
        console.print(
            "[dim]Pass[/dim] [cyan]--model package.module:Base[/cyan] "
            "[dim]or set[/dim] [cyan]model[/cyan] [dim]under [check].[/dim]"
        )
        return 1

    try:
        model = _import_model(model_path)
    except ValueError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    options = _build_options(args, config.check.to_options())

    console.print(
        f"Checking [bold]{model_path}[/bold] against profile "
        f"[bold cyan]{profile_name}[/bold cyan]"
        + (f" (schema [cyan]{options.database_schema_name}[/cyan])" if options.database_schema_name else ""),
        style="dim",
    )

    try:
        engine = create_profile_engine(profile)
    except ArgumentError as e:
        console.print(f"[red]Error: invalid database URL for profile '{escape(profile_name)}': {escape(str(e))}[/red]")
        return 1

    try:
        errors = run(engine, model, options)
    except (InvalidDatabaseError, MappingDescriptionError, TypeError) as e:
        console.print(f"\n[bold red]x[/bold red] {escape(str(e))}")
        return 1
    finally:
        engine.dispose()

    console.print()
    if not errors:
        console.print("[bold green]v[/bold green] Model matches the database")
        return 0

    _print_errors(errors)
    console.print(f"\n[bold red]x[/bold red] {len(errors)} discrepancies found")
    return 1


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles.

    Returns:
        0 on success, 1 if the config can't be loaded.
    """
    try:
        config = load_config(Path(args.config) if args.config else None)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("Profile")
    table.add_column("Description")
    for name, profile in config.profiles.items():
        table.add_row(f"[cyan]{name}[/cyan]", escape(profile.description))
    console.print(table)
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors or discrepancies).
    """
    parser = argparse.ArgumentParser(
        prog="model-checker",
        description="Check an ORM model against the schema of a live database",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to model-checker.toml (default: ./model-checker.toml)",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # check command
    p_check = subparsers.add_parser(
        "check",
        help="Compare the model with the database",
    )
    p_check.add_argument("--profile", "-p", default=None, help="Profile to check against")
    p_check.add_argument(
        "--model",
        "-m",
        default=None,
        help="Model import path, e.g. myapp.models:Base",
    )
    p_check.add_argument(
        "--schema",
        default=None,
        help="Only compare tables in this schema (e.g. dbo)",
    )
    p_check.add_argument(
        "--strict",
        action="store_true",
        help="Also report tables, columns and relationships missing from the model",
    )
    p_check.set_defaults(func=cmd_check)

    # profiles command
    p_profiles = subparsers.add_parser(
        "profiles",
        help="List available profiles",
    )
    p_profiles.set_defaults(func=cmd_profiles)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
