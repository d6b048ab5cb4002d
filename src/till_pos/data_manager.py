"""Data access layer for the till.

This module provides the low-level helpers that touch the filesystem. Business
rules (what makes a catalog row valid, how receipts and shifts behave) belong
in :mod:`till_pos.core_logic`.

The public API covers two responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Catalog sources: streaming raw rows out of delimited text files and
   ``openpyxl`` workbooks without interpreting them.
"""


from __future__ import annotations

import configparser
import csv
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from . import log
from .constants import (
    DEFAULT_CATALOG_FILE,
    DEFAULT_DELIMITER,
    DEFAULT_STORE_NAME,
    WORKBOOK_SUFFIXES,
    ReopenPolicy,
)


CONFIG_FILE_NAME = "config.ini"


class ConfigurationError(ValueError):
    """Raised when ``config.ini`` exists but holds unusable values."""


class CatalogSourceError(OSError):
    """Raised when a catalog source exists but cannot be decoded."""


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    catalog_file: Path
    store_name: str
    delimiter: str
    reopen_policy: ReopenPolicy


def default_settings(base_path: Optional[Path] = None) -> ConfigSettings:
    """Settings used when no configuration file is present."""

    base = base_path if base_path is not None else Path.cwd()
    return ConfigSettings(
        catalog_file=(base / DEFAULT_CATALOG_FILE).resolve(),
        store_name=DEFAULT_STORE_NAME,
        delimiter=DEFAULT_DELIMITER,
        reopen_policy=ReopenPolicy.RESET,
    )


def find_config_file(explicit_path: Optional[Path] = None) -> Optional[Path]:
    """Locate the configuration file for the till.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory looking for ``CONFIG_FILE_NAME``. Unlike a workbook, the
    configuration is optional: ``None`` means "use the defaults".

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path | None: The explicit path, the first ``config.ini`` found while
            walking upward, or ``None`` when nothing was found.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    return None


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Parser containing the raw configuration.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
        ConfigurationError: If the file is not valid INI syntax.
    """

    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    try:
        parser.read(config_path, encoding="utf-8")
    except configparser.Error as exc:
        raise ConfigurationError(f"Malformed configuration file {config_path}: {exc}") from exc
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into :class:`ConfigSettings`.

    Every option is optional and falls back to :func:`default_settings`.
    A relative ``CatalogFile`` is anchored to ``base_path`` (normally the
    directory holding ``config.ini``) or the current working directory.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Anchor for relative catalog paths.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        ConfigurationError: If the delimiter is not a single character or the
            reopen policy is not one of :class:`ReopenPolicy`.
    """

    if base_path is None:
        base_path = Path.cwd()
    defaults = default_settings(base_path)

    catalog_raw = parser.get("System", "CatalogFile", fallback=None)
    store_name = parser.get("System", "StoreName", fallback=defaults.store_name)
    delimiter = parser.get("Catalog", "Delimiter", fallback=defaults.delimiter)
    policy_raw = parser.get("Shift", "ReopenPolicy", fallback=defaults.reopen_policy.value)

    if catalog_raw:
        catalog_file = Path(catalog_raw).expanduser()
        if not catalog_file.is_absolute():
            catalog_file = base_path / catalog_file
        catalog_file = catalog_file.resolve()
    else:
        catalog_file = defaults.catalog_file

    if delimiter == "\\t":
        delimiter = "\t"
    if len(delimiter) != 1:
        raise ConfigurationError(f"Catalog delimiter must be a single character, got {delimiter!r}")

    try:
        reopen_policy = ReopenPolicy(policy_raw.strip().lower())
    except ValueError as exc:
        choices = ", ".join(member.value for member in ReopenPolicy)
        raise ConfigurationError(f"Unknown ReopenPolicy {policy_raw!r} (expected one of: {choices})") from exc

    return ConfigSettings(
        catalog_file=catalog_file,
        store_name=store_name,
        delimiter=delimiter,
        reopen_policy=reopen_policy,
    )


def load_settings(config_path: Optional[Path] = None) -> ConfigSettings:
    """Resolve, read and parse the configuration in one call.

    Falls back to :func:`default_settings` when no configuration file is
    given and none is discovered.
    """

    located = find_config_file(config_path)
    if located is None:
        log.info("No %s found; using default settings", CONFIG_FILE_NAME)
        return default_settings()

    resolved = Path(located).expanduser().resolve()
    settings = parse_settings(read_config(resolved), base_path=resolved.parent)
    log.info("Loaded settings from '%s'", resolved)
    return settings


def is_workbook(source: Path) -> bool:
    """Return ``True`` when ``source`` should be read with ``openpyxl``."""

    return Path(source).suffix.lower() in WORKBOOK_SUFFIXES


def iter_catalog_rows(source: Path, *, delimiter: str = DEFAULT_DELIMITER) -> Iterator[List[str]]:
    """Stream raw data rows from a catalog source, header excluded.

    Dispatches to :func:`iter_workbook_rows` for Excel files and to
    :func:`iter_delimited_rows` for everything else. Rows are returned as
    lists of untrimmed text cells; interpreting them is the caller's job.

    Raises:
        OSError: If the source cannot be opened or decoded.
    """

    if is_workbook(source):
        return iter_workbook_rows(source)
    return iter_delimited_rows(source, delimiter=delimiter)


def iter_delimited_rows(source: Path, *, delimiter: str = DEFAULT_DELIMITER) -> Iterator[List[str]]:
    """Yield the data rows of a delimited text file.

    The first line is a header and is discarded. Blank lines are ignored.
    A UTF-8 byte order mark is tolerated. The format has no quoting rules, so
    one line is always one row and quote characters stay part of the field.

    Args:
        source (Path): File to read.
        delimiter (str): Single-character field separator.

    Yields:
        list[str]: Raw fields of each non-blank data row.

    Raises:
        OSError: If the file cannot be opened.
        CatalogSourceError: If the file is not valid UTF-8 text.
    """

    path = Path(source).expanduser()
    with path.open("r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.reader(handle, delimiter=delimiter, quoting=csv.QUOTE_NONE, quotechar=None)
        try:
            next(reader, None)
            for raw in reader:
                # skip fully empty rows
                if any(cell.strip() for cell in raw):
                    yield raw
        except UnicodeDecodeError as exc:
            raise CatalogSourceError(f"Catalog file {path} is not valid UTF-8: {exc}") from exc


def iter_workbook_rows(source: Path) -> Iterator[List[str]]:
    """Yield the data rows of the first worksheet of an Excel workbook.

    Cell values are coerced to text (``None`` becomes an empty string) so
    workbook rows look exactly like delimited rows to the caller. Numeric price
    cells keep their ``str`` representation.

    Raises:
        FileNotFoundError: If the workbook does not exist.
        CatalogSourceError: If ``openpyxl`` cannot parse the file.
    """

    path = Path(source).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Catalog workbook not found: {path}")

    try:
        workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError) as exc:
        raise CatalogSourceError(f"Unable to read catalog workbook {path}: {exc}") from exc

    try:
        sheet = workbook.worksheets[0]
        for raw in sheet.iter_rows(min_row=2, values_only=True):
            if any(cell is not None and str(cell).strip() for cell in raw):
                yield ["" if cell is None else str(cell) for cell in raw]
    finally:
        workbook.close()
