"""Shared pytest fixtures and utilities for the till tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator, List, Sequence

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

for candidate in (SRC_DIR, PROJECT_ROOT):
    candidate_str = str(candidate)
    if candidate_str not in sys.path:
        sys.path.insert(0, candidate_str)

from till_pos import core_logic  # noqa: E402
from till_pos.constants import ReopenPolicy  # noqa: E402
from setup_excel import create_catalog_workbook  # noqa: E402

_CONFIG_TEMPLATE = (
    "[System]\n"
    "CatalogFile = {catalog_file}\n"
    "StoreName = {store_name}\n\n"
    "[Catalog]\n"
    "Delimiter = {delimiter}\n\n"
    "[Shift]\n"
    "ReopenPolicy = {reopen_policy}\n"
)

SAMPLE_CATALOG_TEXT = (
    "Name;Code;Price\n"
    "Red Apple;1001;0.45\n"
    "Green Apple;1002;0.50\n"
    "Banana;2001;0.25\n"
    "Chocolate Bar;3001;2.50\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    catalog_path: Path
    store_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return the repository root path."""

    return PROJECT_ROOT


@pytest.fixture
def catalog_file_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that writes a delimited catalog file into a temp folder."""

    def _create_catalog(text: str = SAMPLE_CATALOG_TEXT, *, filename: str = "products.csv", subdir: str | None = None) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        path = base_dir / filename
        path.write_text(text, encoding="utf-8")
        return path

    return _create_catalog


@pytest.fixture
def catalog_file(catalog_file_factory: Callable[..., Path]) -> Path:
    """A semicolon-delimited catalog with four products."""

    return catalog_file_factory()


@pytest.fixture
def catalog_workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that writes a catalog workbook through ``setup_excel``."""

    def _create_workbook(products: Sequence[tuple] | None = None, *, filename: str = "products.xlsx") -> Path:
        path = tmp_path / f"workbook_{uuid.uuid4().hex}" / filename
        if products is None:
            return create_catalog_workbook(path)
        return create_catalog_workbook(path, products=products)

    return _create_workbook


@pytest.fixture
def config_factory(tmp_path: Path, catalog_file_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/catalog bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        store_name: str = "Test Shop",
        delimiter: str = ";",
        reopen_policy: str = ReopenPolicy.RESET.value,
        catalog_text: str = SAMPLE_CATALOG_TEXT,
    ) -> ConfigBundle:
        bundle_dir_name = f"bundle_{uuid.uuid4().hex}"
        catalog_path = catalog_file_factory(catalog_text, subdir=bundle_dir_name)
        bundle_dir = catalog_path.parent
        catalog_entry = catalog_path.name if make_relative else str(catalog_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                catalog_file=catalog_entry,
                store_name=store_name,
                delimiter=delimiter,
                reopen_policy=reopen_policy,
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            catalog_path=catalog_path,
            store_name=store_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    return core_logic.load_runtime_context(config_file)


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def products() -> List[core_logic.Product]:
    return [
        core_logic.Product("Red Apple", "1001", Decimal("0.45")),
        core_logic.Product("Green Apple", "1002", Decimal("0.50")),
        core_logic.Product("Banana", "2001", Decimal("0.25")),
        core_logic.Product("Chocolate Bar", "3001", Decimal("2.50")),
    ]


@pytest.fixture
def catalog(products: List[core_logic.Product]) -> core_logic.Catalog:
    return core_logic.Catalog.from_products(products)


@pytest.fixture
def receipt() -> core_logic.Receipt:
    return core_logic.Receipt()


@pytest.fixture
def shift() -> core_logic.Shift:
    return core_logic.Shift()


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="till-pos", description="Till")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def scripted_io() -> Callable[[Sequence[str]], tuple]:
    """Build ``input``/``print`` replacements that replay a fixed script.

    Running past the end of the script raises ``EOFError`` just like a closed
    terminal would.
    """

    def _build(answers: Sequence[str]) -> tuple:
        pending = list(answers)
        prompts: List[str] = []
        output: List[str] = []

        def fake_input(message: str) -> str:
            prompts.append(message)
            if not pending:
                raise EOFError
            return pending.pop(0)

        return fake_input, output.append, prompts, output

    return _build
