"""
Tests for the vendor template registry.
"""

import json
from dataclasses import FrozenInstanceError

import pytest

from doc_reconciler.templates import (
    DOCUMENT_INVOICE,
    DOCUMENT_PURCHASE_ORDER,
    build_template,
    load_vendor_templates,
    select_templates,
)
from doc_reconciler.diagnostics import TemplateError


@pytest.fixture
def templates():
    return load_vendor_templates()


class TestBundledTemplates:

    def test_all_vendors_loaded(self, templates):
        assert list(templates) == ["parker", "lucas", "csm", "elkhart"]

    def test_document_direction(self, templates):
        assert templates["parker"].document_type == DOCUMENT_INVOICE
        assert templates["lucas"].is_invoice_driven
        assert templates["csm"].document_type == DOCUMENT_PURCHASE_ORDER
        assert not templates["elkhart"].is_invoice_driven

    def test_invoice_driven_templates_have_reference_tables(self, templates):
        for key in ("parker", "lucas"):
            assert templates[key].counterpart.table is not None
            assert templates[key].counterpart.match == "filename"

    def test_lucas_logistics(self, templates):
        assert templates["lucas"].logistics.workbook_name == "Email Info.xlsx"
        assert templates["csm"].logistics is None

    def test_templates_are_immutable(self, templates):
        with pytest.raises(FrozenInstanceError):
            templates["csm"].table.row_tolerance = 99

    def test_select_is_case_insensitive(self, templates):
        selected = select_templates(templates, ["CSM", " lucas "])
        assert [t.key for t in selected] == ["csm", "lucas"]

    def test_select_ignores_repeated_vendor(self, templates):
        selected = select_templates(templates, ["csm", "CSM"])
        assert [t.key for t in selected] == ["csm"]

    def test_select_unknown_vendor(self, templates):
        with pytest.raises(TemplateError, match="Unknown vendor"):
            select_templates(templates, ["acme"])


class TestTemplateValidation:

    MINIMAL = {
        "vendor_folder": "07 - ACME",
        "document_folder": "02 - Factura",
        "table": {
            "columns": [{"column": "Part", "label": "Part"}],
            "key_column": "Part",
        },
    }

    def test_minimal_template_defaults(self):
        template = build_template("acme", self.MINIMAL)

        assert template.document_type == DOCUMENT_INVOICE
        assert template.counterpart is None
        assert template.incoterm == "N/A"
        assert template.table.row_tolerance == 10.0
        assert template.vendor_name.fallback == "ACME"

    def test_undefined_key_column(self):
        data = dict(self.MINIMAL, table={"columns": [{"column": "Part", "label": "Part"}], "key_column": "Line"})

        with pytest.raises(TemplateError, match="Key column"):
            build_template("acme", data)

    def test_missing_folder(self):
        data = {k: v for k, v in self.MINIMAL.items() if k != "vendor_folder"}

        with pytest.raises(TemplateError, match="malformed"):
            build_template("acme", data)

    def test_unknown_shape(self):
        data = dict(self.MINIMAL, table={"columns": [{"column": "Part", "label": "Part", "shape": "date"}], "key_column": "Part"})

        with pytest.raises(TemplateError):
            build_template("acme", data)

    def test_custom_file_skips_comment_keys(self, tmp_path):
        path = tmp_path / "templates.json"
        path.write_text(json.dumps({"_comment": "x", "acme": self.MINIMAL}), encoding="utf-8")

        assert list(load_vendor_templates(str(path))) == ["acme"]

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "templates.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(TemplateError):
            load_vendor_templates(str(path))

    def test_label_list_becomes_keyword_set(self):
        data = dict(self.MINIMAL, table={"columns": [{"column": "Part", "label": ["Parte", "Descrip"]}], "key_column": "Part"})

        template = build_template("acme", data)

        assert template.table.columns[0].label == ("Parte", "Descrip")

    def test_missing_file(self, tmp_path):
        with pytest.raises(TemplateError, match="not found"):
            load_vendor_templates(str(tmp_path / "nope.json"))
