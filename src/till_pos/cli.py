"""Command-line entry points for the till.

All orchestration in this module is limited to argparse wiring, loading the
runtime context and handing it to the interactive session or a one-shot
report. The transaction rules live in :mod:`till_pos.core_logic`; the
interactive loop lives in :mod:`till_pos.transaction_flow`.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, data_manager, log
from .transaction_flow import TillSession, format_money


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="till-pos",
        description="Single-till point of sale: catalog lookup, receipts and shift reports.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (searched upward from the working directory by default).",
    )
    parser.add_argument(
        "--catalog",
        type=Path,
        default=None,
        help="Product catalog to load, overriding CatalogFile from the configuration.",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    specs = [
        register_run_command(subparsers),
        register_lookup_command(subparsers),
        register_catalog_command(subparsers),
    ]
    for spec in specs:
        spec.register(subparsers)
    return build_command_table(specs)


def register_run_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``run``."""
    name = "run"
    help_text = "Start the interactive till."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_till)


def register_lookup_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``lookup``."""
    name = "lookup"
    help_text = "Look a product up by exact code or by part of its name."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("query", help="Product code or name fragment.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_lookup)


def register_catalog_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``catalog``."""
    name = "catalog"
    help_text = "List every product in the loaded catalog."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_catalog_listing)


def load_runtime_context(
    config_path: Optional[Path] = None,
    catalog_path: Optional[Path] = None,
) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    return core_logic.load_runtime_context(config_path, catalog_path=catalog_path)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def format_product(product: core_logic.Product) -> str:
    return f"{product.code:<14} {product.name:<30} {format_money(product.unit_price):>10}"


def run_till(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Run the interactive till until the operator exits."""
    print(f"{context.settings.store_name}: {len(context.catalog)} products loaded.")
    session = TillSession(context.catalog, shift=core_logic.new_shift(context))
    session.run()
    return 0


def run_lookup(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the catalog entries matching ``args.query``."""
    matches = context.catalog.lookup(args.query)
    if not matches:
        print("Product not found.")
        return 0
    for product in matches:
        print(format_product(product))
    return 0


def run_catalog_listing(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the whole catalog and how many source rows were skipped."""
    for product in context.catalog:
        print(format_product(product))
    print(f"{len(context.catalog)} products, {context.catalog.skipped_rows} malformed rows skipped.")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.CatalogLoadError):
        log.error("%s", error)
        return 1
    if isinstance(error, (data_manager.ConfigurationError, FileNotFoundError)):
        log.error("%s", error)
        return 2
    log.error("%s", error)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(args.config, args.catalog)
        return dispatch_command(context, args, command_table)
    except KeyboardInterrupt:
        print()
        return 0
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
