"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
import uuid
from pathlib import Path

import pytest

from till_pos import data_manager
from till_pos.constants import DEFAULT_CATALOG_FILE, DEFAULT_DELIMITER, ReopenPolicy


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    result = data_manager.find_config_file(config_file)
    assert result == config_file


def test_find_config_file_discovers_in_parent(tmp_path, monkeypatch):
    """Auto-discovery should walk upward from the working directory."""

    config_file = tmp_path / "config.ini"
    config_file.write_text("[System]\nCatalogFile=products.csv\n")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    result = data_manager.find_config_file()
    assert result.resolve() == config_file.resolve()


def test_find_config_file_returns_none_when_missing(tmp_path, monkeypatch):
    """Absent configuration is allowed and reported as ``None``."""

    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(data_manager, "CONFIG_FILE_NAME", f"till_{uuid.uuid4().hex}.ini")
    assert data_manager.find_config_file() is None


def test_read_config_loads_sections(config_file: Path):
    parser = data_manager.read_config(config_file)
    assert parser.get("System", "StoreName") == "Test Shop"
    assert parser.get("Catalog", "Delimiter") == ";"


def test_read_config_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "not_there.ini")


def test_read_config_rejects_invalid_syntax(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("no section header here\n")
    with pytest.raises(data_manager.ConfigurationError):
        data_manager.read_config(path)


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative CatalogFile entries should be anchored to the config location."""

    bundle = config_factory(make_relative=True)
    parser = configparser.ConfigParser()
    parser.read(bundle.config_path)

    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)

    assert settings.catalog_file == (bundle.config_path.parent / bundle.catalog_path.name).resolve()
    assert settings.store_name == "Test Shop"
    assert settings.reopen_policy is ReopenPolicy.RESET


def test_parse_settings_falls_back_to_defaults(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")

    settings = data_manager.parse_settings(parser, base_path=tmp_path)

    assert settings == data_manager.default_settings(tmp_path)
    assert settings.catalog_file == (tmp_path / DEFAULT_CATALOG_FILE).resolve()
    assert settings.delimiter == DEFAULT_DELIMITER


def test_parse_settings_reads_policy_case_insensitively(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[Shift]\nReopenPolicy = Accumulate\n")

    settings = data_manager.parse_settings(parser, base_path=tmp_path)

    assert settings.reopen_policy is ReopenPolicy.ACCUMULATE


def test_parse_settings_rejects_unknown_policy(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[Shift]\nReopenPolicy = sometimes\n")

    with pytest.raises(data_manager.ConfigurationError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_parse_settings_rejects_multi_character_delimiter(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[Catalog]\nDelimiter = ;;\n")

    with pytest.raises(data_manager.ConfigurationError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_parse_settings_accepts_escaped_tab(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[Catalog]\nDelimiter = \\t\n")

    assert data_manager.parse_settings(parser, base_path=tmp_path).delimiter == "\t"


def test_load_settings_without_config_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(data_manager, "find_config_file", lambda explicit=None: None)

    settings = data_manager.load_settings()

    assert settings.catalog_file == (tmp_path / DEFAULT_CATALOG_FILE).resolve()


def test_load_settings_with_explicit_config(config_factory):
    bundle = config_factory(delimiter="|")

    settings = data_manager.load_settings(bundle.config_path)

    assert settings.delimiter == "|"
    assert settings.catalog_file == bundle.catalog_path.resolve()


def test_is_workbook_uses_suffix():
    assert data_manager.is_workbook(Path("catalog.xlsx"))
    assert data_manager.is_workbook(Path("CATALOG.XLSX"))
    assert not data_manager.is_workbook(Path("catalog.csv"))


def test_iter_delimited_rows_skips_header_and_blank_lines(catalog_file_factory):
    path = catalog_file_factory("Name;Code;Price\n\nTea;T1;1.00\n  \nCoffee;C1;2.00\n")

    rows = list(data_manager.iter_delimited_rows(path))

    assert rows == [["Tea", "T1", "1.00"], ["Coffee", "C1", "2.00"]]


def test_iter_delimited_rows_strips_byte_order_mark(tmp_path):
    path = tmp_path / "bom.csv"
    path.write_bytes("\ufeffName;Code;Price\nTea;T1;1.00\n".encode("utf-8"))

    assert list(data_manager.iter_delimited_rows(path)) == [["Tea", "T1", "1.00"]]


def test_iter_delimited_rows_keeps_quote_characters_as_data(catalog_file_factory):
    path = catalog_file_factory('Name;Code;Price\n"Pizza 12;P1;5.00\nBanana;2001;0.25\n"Big" Mac;B1;4.00\n')

    rows = list(data_manager.iter_delimited_rows(path))

    assert rows == [
        ['"Pizza 12', "P1", "5.00"],
        ["Banana", "2001", "0.25"],
        ['"Big" Mac', "B1", "4.00"],
    ]


def test_iter_delimited_rows_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        list(data_manager.iter_delimited_rows(tmp_path / "missing.csv"))


def test_iter_delimited_rows_rejects_undecodable_bytes(tmp_path):
    path = tmp_path / "latin1.csv"
    path.write_bytes(b"Name;Code;Price\nCr\xe8me;C1;1.00\n")

    with pytest.raises(data_manager.CatalogSourceError):
        list(data_manager.iter_delimited_rows(path))


def test_iter_workbook_rows_returns_text_cells(catalog_workbook_factory):
    path = catalog_workbook_factory()

    rows = list(data_manager.iter_workbook_rows(path))

    assert rows[0] == ["Red Apple", "4006381333931", "0.45"]
    assert all(isinstance(cell, str) for row in rows for cell in row)


def test_iter_workbook_rows_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        list(data_manager.iter_workbook_rows(tmp_path / "missing.xlsx"))


def test_iter_workbook_rows_rejects_corrupt_file(tmp_path):
    path = tmp_path / "broken.xlsx"
    path.write_text("definitely not a zip archive")

    with pytest.raises(data_manager.CatalogSourceError):
        list(data_manager.iter_workbook_rows(path))


def test_iter_catalog_rows_dispatches_on_suffix(monkeypatch, tmp_path):
    calls = []
    monkeypatch.setattr(data_manager, "iter_workbook_rows", lambda source: calls.append(("xlsx", source)) or iter(()))
    monkeypatch.setattr(
        data_manager,
        "iter_delimited_rows",
        lambda source, delimiter: calls.append(("text", source, delimiter)) or iter(()),
    )

    data_manager.iter_catalog_rows(tmp_path / "a.xlsx")
    data_manager.iter_catalog_rows(tmp_path / "b.txt", delimiter="|")

    assert calls == [("xlsx", tmp_path / "a.xlsx"), ("text", tmp_path / "b.txt", "|")]
