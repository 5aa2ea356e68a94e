import pytest

from core.exceptions import HeaderError, ImportExitCode
from ingestion.transformers.columns import (
    FALLBACK_COLUMN,
    dedupe_columns,
    infer_columns,
    sanitize_column_name,
    short_table_name,
    split_header,
    table_name_for,
)


class TestSanitizeColumnName:
    """Header to identifier mapping"""

    @pytest.mark.parametrize("raw,expected", [
        ("Name", "name"),
        ("CVR-nr.", "cvr_nr"),
        ("Antal Ansatte", "antal_ansatte"),
        ('"Telefax Nummer"', "telefax_nummer"),
        ("'quoted'", "quoted"),
        ("  __Weird--Name__  ", "weird_name"),
        ("Postnr/By", "postnr_by"),
    ])
    def test_maps_headers(self, raw, expected):
        assert sanitize_column_name(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "---", '""', "æøå"])
    def test_fallback_for_empty_result(self, raw):
        assert sanitize_column_name(raw) == FALLBACK_COLUMN

    @pytest.mark.parametrize("raw", ["id", "ID", "Created At", "updated_at", "deleted-at"])
    def test_reserved_names_are_prefixed(self, raw):
        result = sanitize_column_name(raw)
        assert result.startswith("col_")
        assert result not in {"id", "created_at", "updated_at", "deleted_at"}

    @pytest.mark.parametrize("raw", ["CVR-nr.", "id", "", "Antal  Ansatte!", "x__y", "ÆBLE 2"])
    def test_idempotent(self, raw):
        once = sanitize_column_name(raw)
        assert sanitize_column_name(once) == once

    @pytest.mark.parametrize("raw", ["CVR-nr.", "A b C", "1st Column", "__x__"])
    def test_charset(self, raw):
        result = sanitize_column_name(raw)
        assert result
        assert all(c.islower() or c.isdigit() or c == "_" for c in result)
        assert not result.startswith("_")
        assert not result.endswith("_")
        assert "__" not in result


def test_table_naming():
    assert table_name_for("Telefaxnummer", "cvr_import_") == "cvr_import_telefaxnummer"
    assert table_name_for("Produktions Enhed", "cvr_import_") == "cvr_import_produktions_enhed"
    assert short_table_name("cvr_import_telefaxnummer", "cvr_import_") == "telefaxnummer"
    assert short_table_name("other", "cvr_import_") == "other"


def test_split_header_strips_enclosure():
    assert split_header('"a","b c", d ') == ["a", "b c", "d"]
    assert split_header("a;b", delimiter=";") == ["a", "b"]


def test_dedupe_columns():
    assert dedupe_columns(["a", "b", "a", "a"]) == ["a", "b", "a_2", "a_3"]


class TestInferColumns:
    def test_header_inference(self, write_csv):
        path = write_csv("Name,CVR-nr.,Antal Ansatte\nAcme,123,5\n")

        columns = infer_columns(path)

        assert [c.name for c in columns] == ["name", "cvr_nr", "antal_ansatte"]
        assert [c.raw_header for c in columns] == ["Name", "CVR-nr.", "Antal Ansatte"]
        assert all(c.sql_type == "TEXT" for c in columns)

    def test_strips_bom_and_crlf(self, tmp_path):
        path = tmp_path / "bom.csv"
        path.write_bytes("\ufeffId;Navn\r\n1;x\r\n".encode("utf-8"))

        columns = infer_columns(path, delimiter=";")

        assert [c.name for c in columns] == ["col_id", "navn"]

    def test_empty_header(self, write_csv):
        path = write_csv("")

        with pytest.raises(HeaderError) as exc_info:
            infer_columns(path)

        assert exc_info.value.exit_code == ImportExitCode.CANNOT_READ_HEADERS

    def test_missing_file(self, tmp_path):
        with pytest.raises(HeaderError) as exc_info:
            infer_columns(tmp_path / "missing.csv")

        assert exc_info.value.exit_code == ImportExitCode.CANNOT_OPEN_CSV
