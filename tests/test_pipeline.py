"""
Tests for single-document extraction with synthetic page layouts.
"""

from decimal import Decimal
from pathlib import Path

import pytest

from doc_reconciler.pipeline import (
    NO_COUNTERPART_FOLDER,
    NOT_FOUND,
    PO_MISSING,
    extract_document,
    find_counterpart_by_filename,
    resolve_vendor_name,
)
from doc_reconciler.templates import VendorNameRule, build_template, load_vendor_templates
from doc_reconciler.diagnostics import CROSS_REFERENCE_NOT_FOUND

from conftest import make_layout

ACME = {
    "vendor_folder": "07 - ACME",
    "document_folder": "02 - Factura",
    "document_type": "invoice",
    "vendor_name": {"keywords": [["ACME", "ACME SUPPLY"]], "fallback": "ACME"},
    "order_number": {"regexes": ["PO\\s*#?\\s*(\\d+)"]},
    "invoice_number": {"regexes": ["Invoice\\s*No\\.?\\s*(\\w+)"]},
    "table": {
        "columns": [
            {"column": "Part", "label": "Item", "left_margin": 10, "right_margin": 60},
            {"column": "Quantity", "label": "Qty", "left_margin": 20, "right_margin": 40, "shape": "numeric"},
            {"column": "UnitPrice", "label": "Price", "left_margin": 20, "right_margin": 40, "shape": "numeric"},
        ],
        "key_column": "Part",
        "row_tolerance": 8,
    },
    "counterpart": {
        "folder": "01 - Orden de compra",
        "match": "filename",
        "table": {
            "columns": [
                {"column": "Part", "label": "Part", "left_margin": 10, "right_margin": 80},
                {"column": "Quantity", "label": "Qty", "left_margin": 20, "right_margin": 40, "shape": "numeric"},
            ],
            "key_column": "Part",
            "row_tolerance": 8,
        },
    },
    "mirror_unmatched_quantity": True,
}

INVOICE_PAGE = make_layout(
    [
        ("Item", 50, 100),
        ("Qty", 200, 100),
        ("Price", 300, 100),
        ("XJ900", 50, 130),
        ("20", 200, 130),
        ("5.00", 300, 130),
        ("ZZ-1", 50, 150),
        ("7", 200, 150),
        ("1.00", 300, 150),
    ],
    text="ACME Supply Co.\nInvoice No. F123\nPO# 4500999\n",
)

PO_PAGE = make_layout([
    ("Part", 50, 100),
    ("Qty", 250, 100),
    ("XJ900-REV2", 50, 130),
    ("25", 250, 130),
])

CSM_PO_PAGE = make_layout(
    [
        ("CSM", 50, 30),
        ("Corporation", 80, 30),
        ("Line", 50, 150),
        ("Part", 150, 150),
        ("Order", 350, 150),
        ("1", 55, 180),
        ("ABC-100", 150, 180),
        ("25", 350, 180),
        ("2", 55, 200),
        ("XYZ-200", 150, 200),
        ("10", 350, 200),
        ("Total", 150, 260),
        ("35", 350, 260),
    ],
    text="CSM Corporation\nPO Number: 4500123\nLine Part Order\n1 ABC-100 25\n2 XYZ-200 10\nTotal 35\n",
)

CSM_INVOICE_PAGE = make_layout(
    [
        ("Invoice", 50, 50),
        ("#", 100, 50),
        ("98765", 120, 50),
        ("PO", 50, 200),
        ("4500123", 70, 200),
    ],
    text="Invoice # 98765\nPO 4500123\n",
)


def touch(path: Path) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"%PDF-1.4")
    return str(path)


def fake_loader(pages_by_name):
    def load(path):
        return [pages_by_name[Path(path).name]]
    return load


class TestVendorName:

    def test_keyword_resolves_canonical_name(self):
        rule = VendorNameRule(keywords=(("ETI", "ETI, LLC"),), fallback="ELKHART")
        assert resolve_vendor_name(make_layout([], text="Sold by ETI"), rule) == "ETI, LLC"

    def test_fallback(self):
        rule = VendorNameRule(keywords=(("ETI", "ETI, LLC"),), fallback="ELKHART")
        assert resolve_vendor_name(make_layout([("Other", 0, 0)]), rule) == "ELKHART"


class TestInvoiceDriven:

    @pytest.fixture
    def template(self):
        return build_template("acme", ACME)

    def test_reconciles_against_purchase_order(self, tmp_path, template):
        invoice = touch(tmp_path / "07 - ACME" / "02 - Factura" / "F123.pdf")
        touch(tmp_path / "07 - ACME" / "01 - Orden de compra" / "PO_4500999.pdf")
        loader = fake_loader({"F123.pdf": INVOICE_PAGE, "PO_4500999.pdf": PO_PAGE})

        result = extract_document(invoice, template, loader=loader)

        first, second = result.records
        assert first.part_number == "XJ900"
        assert first.qty_inv_pz == Decimal("20")
        assert first.qty_po_pz == Decimal("25")
        assert first.unit_price == Decimal("5.00")
        assert first.matched_reference_line == 0
        assert first.po_number == "4500999"
        assert first.invoice_number == "F123"
        assert first.vendor_name == "ACME SUPPLY"
        assert first.source_file_name == "F123.pdf"

        assert second.part_number == "ZZ-1"
        assert second.qty_po_pz == Decimal("7")
        assert second.matched_reference_line is None

    def test_missing_purchase_order_uses_invoice_only(self, tmp_path, template):
        invoice = touch(tmp_path / "07 - ACME" / "02 - Factura" / "F123.pdf")

        result = extract_document(invoice, template, loader=fake_loader({"F123.pdf": INVOICE_PAGE}))

        assert len(result.records) == 2
        assert result.records[0].qty_po_pz == Decimal("20")
        assert CROSS_REFERENCE_NOT_FOUND in [d.code for d in result.diagnostics]

    def test_counterpart_glob(self, tmp_path, template):
        invoice = touch(tmp_path / "07 - ACME" / "02 - Factura" / "F123.pdf")
        touch(tmp_path / "07 - ACME" / "01 - Orden de compra" / "B_4500999.pdf")
        touch(tmp_path / "07 - ACME" / "01 - Orden de compra" / "A_4500999.pdf")
        touch(tmp_path / "07 - ACME" / "01 - Orden de compra" / "other.pdf")

        found = find_counterpart_by_filename(invoice, template.counterpart, "4500999")

        assert Path(found).name == "A_4500999.pdf"

    def test_unreadable_document_raises(self, tmp_path, template):
        def broken(path):
            raise RuntimeError("encrypted_pdf_not_supported")

        with pytest.raises(RuntimeError):
            extract_document(str(tmp_path / "x.pdf"), template, loader=broken)


class TestPurchaseOrderDriven:

    @pytest.fixture
    def template(self):
        return load_vendor_templates()["csm"]

    @pytest.fixture
    def po_path(self, tmp_path):
        return touch(tmp_path / "05 - CSM" / "01 - Orden de compra" / "po_4500123.pdf")

    def test_invoice_number_from_counterpart(self, tmp_path, template, po_path):
        touch(tmp_path / "05 - CSM" / "02 - Factura" / "factura_a.pdf")
        loader = fake_loader({"po_4500123.pdf": CSM_PO_PAGE, "factura_a.pdf": CSM_INVOICE_PAGE})

        result = extract_document(po_path, template, loader=loader)

        assert [r.part_number for r in result.records] == ["ABC-100", "XYZ-200"]
        assert [r.line_number for r in result.records] == [1, 2]
        assert [r.qty_po_pz for r in result.records] == [Decimal("25"), Decimal("10")]
        assert all(r.qty_inv_pz == Decimal("0") for r in result.records)
        assert {r.invoice_number for r in result.records} == {"98765"}
        assert {r.po_number for r in result.records} == {"4500123"}
        assert {r.vendor_name for r in result.records} == {"CSM CORPORATION"}

    def test_no_counterpart_folder(self, template, po_path):
        result = extract_document(po_path, template, loader=fake_loader({"po_4500123.pdf": CSM_PO_PAGE}))

        assert result.records[0].invoice_number == NO_COUNTERPART_FOLDER

    def test_invoice_not_found(self, tmp_path, template, po_path):
        touch(tmp_path / "05 - CSM" / "02 - Factura" / "factura_b.pdf")
        other = make_layout([], text="Invoice # 1\nPO 999")
        loader = fake_loader({"po_4500123.pdf": CSM_PO_PAGE, "factura_b.pdf": other})

        result = extract_document(po_path, template, loader=loader)

        assert result.records[0].invoice_number == NOT_FOUND

    def test_order_number_missing(self, template, po_path):
        page = make_layout([("Line", 50, 150), ("1", 55, 180)], text="Line\n1")

        result = extract_document(po_path, template, loader=fake_loader({"po_4500123.pdf": page}))

        assert result.records[0].po_number == "UNKNOWN"
        assert result.records[0].invoice_number == PO_MISSING
