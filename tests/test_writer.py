"""
Tests for JSON/CSV export.
"""

import csv
import json

import pytest

from doc_reconciler.writer import write_auto, write_json
from doc_reconciler.diagnostics import Diagnostic, PARSE_FAILURE

from conftest import make_record


class TestWriter:

    def test_records_to_json(self, tmp_path):
        out = tmp_path / "records.json"

        write_auto([make_record("inv.pdf", quantity="2.5")], str(out))

        data = json.loads(out.read_text(encoding="utf-8"))
        assert data[0]["qty_inv_pz"] == 2.5
        assert data[0]["source_file_name"] == "inv.pdf"

    def test_diagnostics_to_csv(self, tmp_path):
        out = tmp_path / "diagnostics.csv"

        write_auto([Diagnostic(PARSE_FAILURE, "bad price", source_file="a.pdf", page=2)], str(out))

        with open(out, encoding="utf-8-sig", newline="") as f:
            rows = list(csv.DictReader(f))
        assert rows[0]["code"] == PARSE_FAILURE
        assert rows[0]["page"] == "2"

    def test_unsupported_extension(self, tmp_path):
        with pytest.raises(ValueError):
            write_auto([], str(tmp_path / "out.txt"))

    def test_decimal_values_serialised(self, tmp_path):
        out = tmp_path / "one.json"

        write_json({"record": make_record("x.pdf")}, str(out))

        assert json.loads(out.read_text(encoding="utf-8"))["record"]["part_number"] == "P-100"
