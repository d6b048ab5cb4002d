"""Utility for creating a sample product catalog for the till.

The module doubles as a script (``python setup_excel.py``) and as a library
used by tests. It writes either an Excel workbook or a delimited text file
depending on the target's suffix, using the same three-column layout the till
expects: ``Name``, ``Code``, ``Price``.
"""

from __future__ import annotations

import argparse
import csv
from decimal import Decimal
from pathlib import Path
from typing import Sequence, Tuple
import sys

import openpyxl
from openpyxl.styles import Font

from till_pos.constants import CATALOG_COLUMNS, DEFAULT_DELIMITER
from till_pos.data_manager import is_workbook, load_settings

CatalogEntry = Tuple[str, str, Decimal]

SAMPLE_PRODUCTS: Sequence[CatalogEntry] = (
    ("Red Apple", "4006381333931", Decimal("0.45")),
    ("Green Apple", "4006381333948", Decimal("0.50")),
    ("Banana", "4011", Decimal("0.25")),
    ("Whole Milk 1L", "5000112637922", Decimal("1.29")),
    ("Sourdough Bread", "2000000000015", Decimal("3.80")),
    ("Cheddar Cheese 200g", "5010024201236", Decimal("2.95")),
    ("Sparkling Water 500ml", "5449000131805", Decimal("0.89")),
    ("Dark Chocolate 100g", "7622300336738", Decimal("2.10")),
)


def create_catalog_workbook(
    destination: Path,
    *,
    products: Sequence[CatalogEntry] = SAMPLE_PRODUCTS,
    columns: Sequence[str] = CATALOG_COLUMNS,
    overwrite: bool = False,
) -> Path:
    """Create a catalog workbook at ``destination``.

    When ``overwrite`` is ``False`` (the default) this function raises
    ``FileExistsError`` if the target already exists.
    """

    destination = destination.expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing catalog: {destination}")

    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()
    worksheet = workbook.active
    worksheet.title = "Products"

    bold_font = Font(bold=True)
    for column_index, column_name in enumerate(columns, start=1):
        cell = worksheet.cell(row=1, column=column_index)
        cell.value = column_name
        cell.font = bold_font

    # Prices are stored as text so the workbook keeps two decimals verbatim.
    for name, code, price in products:
        worksheet.append([name, code, str(price)])

    workbook.save(destination)
    return destination


def create_catalog_file(
    destination: Path,
    *,
    products: Sequence[CatalogEntry] = SAMPLE_PRODUCTS,
    columns: Sequence[str] = CATALOG_COLUMNS,
    delimiter: str = DEFAULT_DELIMITER,
    overwrite: bool = False,
) -> Path:
    """Create a delimited catalog file at ``destination``.

    The till reads these files without any quoting, so a field that contains
    the delimiter or a line break cannot be written.

    Raises:
        FileExistsError: If the target exists and ``overwrite`` is ``False``.
        ValueError: If a field cannot be represented in the delimited format.
    """

    destination = destination.expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing catalog: {destination}")

    rows = [list(columns)] + [[name, code, str(price)] for name, code, price in products]
    for row in rows:
        for field in row:
            if delimiter in field or "\n" in field or "\r" in field:
                raise ValueError(
                    f"Catalog field {field!r} cannot contain the delimiter {delimiter!r} or a line break"
                )

    destination.parent.mkdir(parents=True, exist_ok=True)
    with destination.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, delimiter=delimiter, quoting=csv.QUOTE_NONE, quotechar=None)
        writer.writerows(rows)
    return destination


def create_catalog(destination: Path, *, delimiter: str = DEFAULT_DELIMITER, overwrite: bool = False) -> Path:
    """Write the sample catalog in the format implied by the file suffix."""

    if is_workbook(destination):
        return create_catalog_workbook(destination, overwrite=overwrite)
    return create_catalog_file(destination, delimiter=delimiter, overwrite=overwrite)


def run_from_config(config_path: Path | None, *, overwrite: bool = False) -> Path:
    """Create the catalog named by ``config.ini`` (or the default location)."""

    settings = load_settings(config_path)
    return create_catalog(settings.catalog_file, delimiter=settings.delimiter, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Create a sample product catalog for the till")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (searched upward from the working directory by default)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the catalog here instead of the configured CatalogFile.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target catalog if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the CLI script."""

    args = parse_args(argv)

    print("--- Till POS Catalog Setup ---")

    try:
        if args.output is not None:
            settings = load_settings(args.config)
            output_path = create_catalog(args.output, delimiter=settings.delimiter, overwrite=args.force)
        else:
            output_path = run_from_config(args.config, overwrite=args.force)
    except FileNotFoundError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except ValueError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write catalog: {exc}")
        return 1

    print(f"\n[SUCCESS] Created sample catalog at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
